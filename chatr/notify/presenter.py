"""Notification presenter.

Turns an InboundEvent into a toast, a sound and an OS notification.
Sound and OS notifications are best effort: their failures are logged
and never reach the caller.
"""
import asyncio
import logging
import uuid
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

from chatr.notify.models import OSNotification, Presentation, Toast
from chatr.notify.preferences import NotificationLevel, NotificationPreferences
from chatr.notify.sinks import OSNotifier, SoundPlayer, ToastSink, WindowFocus
from chatr.realtime.events import CALL_CANCELLED_CATEGORY, InboundEvent, InboundKind

logger = logging.getLogger(__name__)

DEFAULT_SOUND = "notification"


def sound_for(category: str) -> str:
    """Pick the sound for an event category."""
    if category == CALL_CANCELLED_CATEGORY:
        return DEFAULT_SOUND
    if "call" in category:
        return "ringtone"
    if "payment" in category or "wallet" in category:
        return "payment"
    if "order" in category or "food" in category:
        return "order"
    return DEFAULT_SOUND


class NotificationPresenter:
    def __init__(
        self,
        toasts: ToastSink,
        sound: SoundPlayer,
        os_notifier: OSNotifier,
        focus: WindowFocus,
        preferences: Optional[NotificationPreferences] = None,
        auto_dismiss: float = 5.0,
    ) -> None:
        self._toasts = toasts
        self._sound = sound
        self._os = os_notifier
        self._focus = focus
        self._preferences = preferences or NotificationPreferences()
        self._auto_dismiss = auto_dismiss
        self._permission_requested = False
        self._timers: set[asyncio.Task] = set()

    @property
    def preferences(self) -> NotificationPreferences:
        return self._preferences

    @preferences.setter
    def preferences(self, value: NotificationPreferences) -> None:
        self._preferences = value

    async def ensure_permission(self) -> str:
        """Ask for OS notification permission once per session if undecided."""
        try:
            state = self._os.permission()
            if state == "default" and not self._permission_requested:
                self._permission_requested = True
                state = await self._os.request_permission()
        except Exception as e:
            logger.debug("Notification permission unavailable: %s", e)
            return "denied"
        return state

    async def present(
        self,
        event: InboundEvent,
        active_conversation_id: Optional[str] = None,
        current_hour: Optional[int] = None,
    ) -> Presentation:
        """Alert the user about *event*.

        A message for the conversation already open produces nothing, since
        it is visible inline.
        """
        if (
            event.kind is InboundKind.MESSAGE
            and active_conversation_id is not None
            and event.conversation_id == active_conversation_id
        ):
            return Presentation(suppressed=True)

        hour = current_hour if current_hour is not None else datetime.now().hour
        if self._preferences.level_for(event, hour) is NotificationLevel.SILENT:
            return Presentation(suppressed=True)

        toast = Toast(title=event.title, description=event.body,
                      duration=self._auto_dismiss, data=dict(event.data))
        await self.toast(toast)
        sound = await self._play(sound_for(event.category)) if self._preferences.sound_enabled else None
        os_notification = await self._notify_os(event) if self._preferences.desktop_enabled else None
        return Presentation(toast=toast, sound=sound, os_notification=os_notification)

    async def toast(self, toast: Toast) -> None:
        try:
            await self._toasts.show(toast)
        except Exception as e:
            logger.warning("Toast %r not shown: %s", toast.title, e)
            return
        if toast.duration:
            self._later(toast.duration, lambda: self._toasts.dismiss(toast.id))

    async def handle_click(self, notification: OSNotification) -> dict[str, Any]:
        """Focus the window and close *notification*; navigation is up to the caller."""
        try:
            await self._focus.focus()
        except Exception as e:
            logger.debug("Focus failed: %s", e)
        try:
            await self._os.close(notification)
        except Exception as e:
            logger.debug("Closing notification %s failed: %s", notification.tag, e)
        return dict(notification.data)

    async def close(self) -> None:
        for task in list(self._timers):
            task.cancel()
        for task in list(self._timers):
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._timers.clear()

    async def _play(self, sound: str) -> Optional[str]:
        try:
            await self._sound.play(sound)
            return sound
        except Exception as e:
            logger.debug("Sound %s failed: %s", sound, e)
        if sound == DEFAULT_SOUND:
            return None
        try:
            await self._sound.play(DEFAULT_SOUND)
            return DEFAULT_SOUND
        except Exception as e:
            logger.debug("Fallback sound failed: %s", e)
            return None

    async def _notify_os(self, event: InboundEvent) -> Optional[OSNotification]:
        try:
            if self._os.permission() != "granted" or self._focus.is_focused():
                return None
            notification = OSNotification(
                title=event.title,
                body=event.body,
                tag=str(event.data.get("message_id") or event.payload.get("id") or uuid.uuid4()),
                data=dict(event.data),
            )
            await self._os.show(notification)
        except Exception as e:
            logger.debug("OS notification failed: %s", e)
            return None
        self._later(self._auto_dismiss, lambda: self._os.close(notification))
        return notification

    def _later(self, delay: float, action: Callable[[], Awaitable[Any]]) -> None:
        async def run() -> None:
            await asyncio.sleep(delay)
            try:
                await action()
            except Exception as e:
                logger.debug("Auto-dismiss failed: %s", e)

        task = asyncio.get_running_loop().create_task(run())
        self._timers.add(task)
        task.add_done_callback(self._timers.discard)
