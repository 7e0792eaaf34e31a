"""Outbound queue models."""
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Optional


@dataclass(frozen=True)
class QueuedMessage:
    """An outbound message waiting for backend confirmation.

    Attributes:
        id: Locally generated unique token.
        conversation_id: Target conversation.
        content: Message body.
        message_type: Kind of message ('text', 'image', ...).
        media_url: Optional attachment location.
        created_at: When the message was first queued.
        retry_count: Failed delivery attempts so far.
        claimed_by: Processor currently delivering the message, if any.
        claimed_at: When that processor last renewed its claim.
    """

    id: str
    conversation_id: str
    content: str
    message_type: str = "text"
    media_url: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    retry_count: int = 0
    claimed_by: Optional[str] = None
    claimed_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        """Validate required fields."""
        if not self.id:
            raise ValueError("id cannot be empty")
        if not self.conversation_id:
            raise ValueError("conversation_id cannot be empty")
        if not self.message_type:
            raise ValueError("message_type cannot be empty")
        if self.retry_count < 0:
            raise ValueError("retry_count cannot be negative")

    def with_retry_count(self, retry_count: int) -> "QueuedMessage":
        return replace(self, retry_count=retry_count)

    def with_claim(self, owner: str, at: datetime) -> "QueuedMessage":
        return replace(self, claimed_by=owner, claimed_at=at)

    def released(self) -> "QueuedMessage":
        return replace(self, claimed_by=None, claimed_at=None)

    def is_claimed_by_other(self, owner: str, now: datetime, lease: timedelta) -> bool:
        """True while another processor holds an unexpired claim."""
        if self.claimed_by is None or self.claimed_by == owner or self.claimed_at is None:
            return False
        return now - self.claimed_at < lease

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "conversation_id": self.conversation_id,
            "content": self.content,
            "message_type": self.message_type,
            "media_url": self.media_url,
            "created_at": self.created_at.isoformat(),
            "retry_count": self.retry_count,
            "claimed_by": self.claimed_by,
            "claimed_at": self.claimed_at.isoformat() if self.claimed_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QueuedMessage":
        """Rebuild a message from its stored form.

        Raises:
            KeyError: If a required key is missing.
            ValueError: If a field is malformed.
        """
        claimed_at = data.get("claimed_at")
        return cls(
            id=data["id"],
            conversation_id=data["conversation_id"],
            content=data["content"],
            message_type=data.get("message_type", "text"),
            media_url=data.get("media_url"),
            created_at=datetime.fromisoformat(data["created_at"]),
            retry_count=int(data.get("retry_count", 0)),
            claimed_by=data.get("claimed_by"),
            claimed_at=datetime.fromisoformat(claimed_at) if claimed_at else None,
        )
