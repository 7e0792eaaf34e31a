"""Input validation utilities for CLI commands."""

from uuid import UUID

MESSAGE_TYPES = frozenset({
    "text", "image", "video", "audio", "voice", "file", "document", "location", "poll",
})


def _validate_uuid(value: str, label: str) -> str:
    if not value or not value.strip():
        raise ValueError(f"{label} cannot be empty")
    try:
        return str(UUID(value.strip()))
    except ValueError as e:
        raise ValueError(f"{label} must be a valid UUID: {e}") from e


def validate_user_id(user_id: str) -> str:
    """Validate and return user ID. Raises ValueError if invalid."""
    return _validate_uuid(user_id, "User ID")


def validate_conversation_id(conversation_id: str) -> str:
    """Validate and return conversation ID. Raises ValueError if invalid."""
    return _validate_uuid(conversation_id, "Conversation ID")


def validate_backend_url(url: str) -> str:
    """Validate and return backend URL. Raises ValueError if invalid."""
    if not url or not url.strip():
        raise ValueError("Backend URL cannot be empty")
    url = url.strip().rstrip("/")
    if not url.startswith("https://"):
        raise ValueError("Backend URL must use HTTPS (start with https://)")
    if len(url) > 2048:
        raise ValueError("Backend URL cannot exceed 2048 characters")
    return url


def validate_api_key(api_key: str) -> str:
    if not api_key or not api_key.strip():
        raise ValueError("API key cannot be empty")
    return api_key.strip()


def validate_message_type(message_type: str) -> str:
    if message_type not in MESSAGE_TYPES:
        raise ValueError(
            f"Unknown message type {message_type!r}; expected one of {', '.join(sorted(MESSAGE_TYPES))}"
        )
    return message_type


def validate_message_content(content: str, message_type: str = "text") -> str:
    """Validate and return message content. Raises ValueError if invalid.

    Media messages may carry an empty caption.
    """
    if not content and message_type == "text":
        raise ValueError("Message content cannot be empty")
    if len(content) > 65536:
        raise ValueError("Message content cannot exceed 65536 characters")
    return content
