"""CLI utilities."""

from .config import CliConfig, ConfigError, ConfigManager
from .validation import validate_backend_url, validate_conversation_id, validate_user_id

__all__ = [
    "ConfigManager",
    "CliConfig",
    "ConfigError",
    "validate_backend_url",
    "validate_conversation_id",
    "validate_user_id",
]
