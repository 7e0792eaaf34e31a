"""Configuration file management for CLI."""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

from chatr.config import BackendConfig, ClientConfig, load_delivery_config_from_env
from chatr.errors import NotAuthenticatedError


@dataclass
class CliConfig:
    """Identity and backend settings loaded from the config file."""

    user_id: str
    backend_url: str
    api_key: str
    access_token: Optional[str]
    db_path: Path

    def require_token(self) -> str:
        if not self.access_token:
            raise NotAuthenticatedError(
                "No access token saved. Run 'chatr init --token ...' first."
            )
        return self.access_token

    def to_client_config(self) -> ClientConfig:
        return ClientConfig(
            backend=BackendConfig(url=self.backend_url, api_key=self.api_key),
            delivery=load_delivery_config_from_env(),
            db_path=self.db_path,
        )


class ConfigError(Exception):
    """Configuration file error."""

    pass


class ConfigManager:
    """Manages client configuration in ~/.chatr/config.yaml."""

    DEFAULT_DIR = Path.home() / ".chatr"
    CONFIG_FILE = "config.yaml"
    TOKEN_FILE = "session.token"
    DB_FILE = "chatr.db"

    def __init__(self, config_dir: Optional[Path] = None) -> None:
        self._config_dir = config_dir or self.DEFAULT_DIR
        self._config_path = self._config_dir / self.CONFIG_FILE
        self._token_path = self._config_dir / self.TOKEN_FILE
        self._db_path = self._config_dir / self.DB_FILE

    @property
    def config_dir(self) -> Path:
        return self._config_dir

    @property
    def config_path(self) -> Path:
        return self._config_path

    @property
    def db_path(self) -> Path:
        return self._db_path

    def exists(self) -> bool:
        """Check if configuration exists."""
        return self._config_path.exists()

    def load(self) -> CliConfig:
        """Load configuration from file. Raises ConfigError if not found."""
        if not self._config_path.exists():
            raise ConfigError(
                f"Config not found at {self._config_path}. Run 'chatr init' first."
            )

        with open(self._config_path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid config: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError("Invalid config: expected a mapping")
        missing = [k for k in ("user_id", "backend_url", "api_key") if not data.get(k)]
        if missing:
            raise ConfigError(f"Invalid config: missing {', '.join(missing)}")

        token = None
        if self._token_path.exists():
            token = self._token_path.read_text().strip() or None

        return CliConfig(
            user_id=data["user_id"],
            backend_url=data["backend_url"],
            api_key=data["api_key"],
            access_token=token,
            db_path=self._db_path,
        )

    def save(
        self,
        user_id: str,
        backend_url: str,
        api_key: str,
        access_token: Optional[str] = None,
    ) -> None:
        """Save configuration to file."""
        self._config_dir.mkdir(parents=True, exist_ok=True)

        config_data = {"user_id": user_id, "backend_url": backend_url, "api_key": api_key}

        with open(self._config_path, "w") as f:
            yaml.safe_dump(config_data, f, default_flow_style=False)

        if access_token:
            with open(self._token_path, "w") as f:
                f.write(access_token)
            self._token_path.chmod(0o600)
        elif self._token_path.exists():
            self._token_path.unlink()
