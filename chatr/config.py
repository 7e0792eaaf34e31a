"""Client configuration."""
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
import os

logger = logging.getLogger(__name__)

_RECOGNISED_BOOL_VALUES = frozenset(
    ("1", "true", "yes", "0", "false", "no")
)

MAX_RETRIES = 3
RETRY_DELAY = 2.0
CLAIM_LEASE = 60.0


@dataclass(frozen=True)
class BackendConfig:
    """Connection settings for the hosted backend.

    ``url`` is the project base URL (``https://<ref>.supabase.co``); the
    REST and realtime endpoints are derived from it.
    """

    url: str
    api_key: str
    timeout: float = 30.0
    heartbeat_interval: float = 30.0

    @property
    def rest_url(self) -> str:
        return f"{self.url.rstrip('/')}/rest/v1"

    @property
    def realtime_url(self) -> str:
        base = self.url.rstrip("/")
        if base.startswith("https://"):
            base = "wss://" + base[len("https://"):]
        elif base.startswith("http://"):
            base = "ws://" + base[len("http://"):]
        return f"{base}/realtime/v1/websocket"


@dataclass(frozen=True)
class DeliveryConfig:
    """Retry policy for outbound messages.

    ``retry_delay`` is the fixed wait between attempts of a queued message.
    ``backoff_base`` drives the exponential schedule of ``send_with_retry``.
    ``sync_interval`` schedules a periodic drain while online; 0 disables it.
    ``claim_lease`` is how long a delivery claim keeps other processes
    sharing the queue away from a message.
    """

    max_retries: int = MAX_RETRIES
    retry_delay: float = RETRY_DELAY
    backoff_base: float = 1.0
    sync_interval: float = 30.0
    claim_lease: float = CLAIM_LEASE

    def __post_init__(self) -> None:
        if self.max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        if self.retry_delay < 0 or self.backoff_base < 0 or self.sync_interval < 0:
            raise ValueError("Delays must not be negative")
        if self.claim_lease <= 0:
            raise ValueError("claim_lease must be positive")


@dataclass(frozen=True)
class NotificationConfig:
    auto_dismiss: float = 5.0
    sound_enabled: bool = True
    desktop_enabled: bool = True


@dataclass(frozen=True)
class PresenceConfig:
    offline_grace: float = 2.0


@dataclass(frozen=True)
class ClientConfig:
    backend: BackendConfig
    delivery: DeliveryConfig = field(default_factory=DeliveryConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    presence: PresenceConfig = field(default_factory=PresenceConfig)
    db_path: Path = field(default_factory=lambda: Path("data/chatr.db"))


def _parse_bool(value: str, default: bool) -> bool:
    """Parse a boolean environment variable with explicit default.

    Recognises ``true/1/yes`` and ``false/0/no`` (case-insensitive).
    Returns *default* when the value is empty or unset.
    Logs a warning and returns *default* for unrecognised values
    (e.g. typos like ``ture``).
    """
    if not value:
        return default
    normalised = value.lower()
    if normalised not in _RECOGNISED_BOOL_VALUES:
        logger.warning(
            "Unrecognised boolean value %r, using default %s. "
            "Expected one of: true/1/yes or false/0/no.",
            value,
            default,
        )
        return default
    return normalised in ("1", "true", "yes")


def load_config_from_env(db_path: Optional[Path] = None) -> ClientConfig:
    url = os.environ.get("CHATR_BACKEND_URL")
    api_key = os.environ.get("CHATR_API_KEY")
    missing = []
    if not url:
        missing.append("CHATR_BACKEND_URL")
    if not api_key:
        missing.append("CHATR_API_KEY")
    if missing:
        raise ValueError(f"Missing: {', '.join(missing)}")

    return ClientConfig(
        backend=BackendConfig(
            url=url,
            api_key=api_key,
            timeout=float(os.environ.get("CHATR_HTTP_TIMEOUT", "30.0")),
            heartbeat_interval=float(os.environ.get("CHATR_HEARTBEAT_INTERVAL", "30.0")),
        ),
        delivery=load_delivery_config_from_env(),
        notifications=NotificationConfig(
            auto_dismiss=float(os.environ.get("CHATR_AUTO_DISMISS", "5.0")),
            sound_enabled=_parse_bool(os.environ.get("CHATR_SOUND_ENABLED", ""), default=True),
            desktop_enabled=_parse_bool(os.environ.get("CHATR_DESKTOP_NOTIFICATIONS", ""), default=True),
        ),
        presence=PresenceConfig(
            offline_grace=float(os.environ.get("CHATR_PRESENCE_GRACE", "2.0")),
        ),
        db_path=db_path or Path(os.environ.get("CHATR_DB_PATH", "data/chatr.db")),
    )


def load_delivery_config_from_env() -> DeliveryConfig:
    return DeliveryConfig(
        max_retries=int(os.environ.get("CHATR_MAX_RETRIES", str(MAX_RETRIES))),
        retry_delay=float(os.environ.get("CHATR_RETRY_DELAY", str(RETRY_DELAY))),
        backoff_base=float(os.environ.get("CHATR_BACKOFF_BASE", "1.0")),
        sync_interval=float(os.environ.get("CHATR_SYNC_INTERVAL", "30.0")),
        claim_lease=float(os.environ.get("CHATR_CLAIM_LEASE", str(CLAIM_LEASE))),
    )
