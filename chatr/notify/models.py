"""Presentation records."""
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional


@dataclass(frozen=True)
class ToastAction:
    label: str
    callback: Callable[[], Awaitable[Any]]

    async def invoke(self) -> Any:
        return await self.callback()


@dataclass(frozen=True)
class Toast:
    """An in-app toast. ``duration`` of None keeps it until dismissed."""

    title: str
    description: str = ""
    variant: str = "default"
    duration: Optional[float] = 5.0
    action: Optional[ToastAction] = None
    data: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))


@dataclass(frozen=True)
class OSNotification:
    title: str
    body: str
    tag: str
    data: dict[str, Any] = field(default_factory=dict)
    icon: str = "/icons/icon-192x192.png"


@dataclass(frozen=True)
class Presentation:
    """What the presenter did for one inbound event."""

    toast: Optional[Toast] = None
    sound: Optional[str] = None
    os_notification: Optional[OSNotification] = None
    suppressed: bool = False
