"""Notification preferences: which inbound events alert and how."""
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

from chatr.realtime.events import CALL_CATEGORY, InboundEvent, InboundKind


class NotificationLevel(IntEnum):
    """Notification urgency levels, ordered by priority."""

    SILENT = 0  # No toast, sound or OS notification
    NORMAL = 1
    URGENT = 2  # Still alerts during quiet hours


@dataclass(frozen=True)
class NotificationPreferences:
    """User preferences for inbound alerts."""

    enabled: bool = True
    sound_enabled: bool = True
    desktop_enabled: bool = True
    muted_conversations: tuple[str, ...] = ()
    muted_categories: tuple[str, ...] = ()
    quiet_hours: Optional[tuple[int, int]] = None  # (start_hour, end_hour) local

    def __post_init__(self) -> None:
        if self.quiet_hours is not None:
            start, end = self.quiet_hours
            if not (0 <= start <= 23) or not (0 <= end <= 23):
                raise ValueError("Quiet hours must be 0-23")

    def level_for(self, event: InboundEvent, current_hour: int) -> NotificationLevel:
        """
        Determine how loudly to present an inbound event.

        Appointment changes, incoming calls and call notifications are URGENT; everything
        else is NORMAL unless muted. During quiet hours only URGENT events
        get through.
        """
        if not self.enabled:
            return NotificationLevel.SILENT

        if event.conversation_id and event.conversation_id in self.muted_conversations:
            return NotificationLevel.SILENT

        if event.category and event.category in self.muted_categories:
            return NotificationLevel.SILENT

        match event.kind:
            case InboundKind.APPOINTMENT:
                level = NotificationLevel.URGENT
            case InboundKind.CALL if event.category == CALL_CATEGORY:
                level = NotificationLevel.URGENT
            case InboundKind.NOTIFICATION if "call" in event.category:
                level = NotificationLevel.URGENT
            case _:
                level = NotificationLevel.NORMAL

        if self._is_quiet_hours(current_hour) and level < NotificationLevel.URGENT:
            return NotificationLevel.SILENT
        return level

    def _is_quiet_hours(self, current_hour: int) -> bool:
        """Check if current hour is within quiet hours."""
        if self.quiet_hours is None:
            return False
        start, end = self.quiet_hours
        if start <= end:
            return start <= current_hour < end
        # Handle wrap-around (e.g., 22:00 to 06:00)
        return current_hour >= start or current_hour < end
