"""Custom exception types for the delivery pipeline."""
from typing import Optional

_RETRYABLE_STATUS = frozenset((408, 429, 500, 502, 503, 504))


class ChatrError(Exception):
    """Base exception for all chatr client errors."""
    pass


class NotAuthenticatedError(ChatrError):
    """Operation requires an authenticated user."""
    pass


class DeliveryError(ChatrError):
    """A backend write or lookup failed."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        # No status means the request never got an answer (network error).
        if self.status_code is None:
            return True
        return self.status_code in _RETRYABLE_STATUS


class SubscriptionError(ChatrError):
    """Realtime channel subscription failed."""
    pass


class QueueConflictError(ChatrError):
    """Another writer changed the persisted queue since it was loaded."""

    def __init__(self, key: str, expected: int, actual: int) -> None:
        super().__init__(
            f"Concurrent write on {key}: expected version {expected}, found {actual}"
        )
        self.key = key
        self.expected = expected
        self.actual = actual
