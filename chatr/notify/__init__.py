"""Notification presentation."""
from chatr.notify.models import OSNotification, Presentation, Toast, ToastAction
from chatr.notify.preferences import NotificationLevel, NotificationPreferences
from chatr.notify.presenter import NotificationPresenter, sound_for
from chatr.notify.sinks import DesktopNotifier, RichToastSink, StaticFocus, TerminalBell

__all__ = [
    "OSNotification", "Presentation", "Toast", "ToastAction",
    "NotificationLevel", "NotificationPreferences",
    "NotificationPresenter", "sound_for",
    "DesktopNotifier", "RichToastSink", "StaticFocus", "TerminalBell",
]
