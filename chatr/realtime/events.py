"""Notification-worthy occurrences produced by the inbound listener."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


CALL_CATEGORY = "call"
CALL_CANCELLED_CATEGORY = "call_cancelled"


class InboundKind(Enum):
    MESSAGE = "message"
    APPOINTMENT = "appointment"
    NOTIFICATION = "notification"
    CALL = "call"


@dataclass(frozen=True)
class InboundEvent:
    """A transient event for the presenter; never persisted."""

    kind: InboundKind
    payload: dict[str, Any]
    origin_user_id: Optional[str] = None
    conversation_id: Optional[str] = None
    title: str = ""
    body: str = ""
    event_type: str = "INSERT"
    category: str = ""
    data: dict[str, Any] = field(default_factory=dict)
