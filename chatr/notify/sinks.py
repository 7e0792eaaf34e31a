"""Output channels the presenter drives."""
import asyncio
import logging
import shutil
from typing import Protocol

from rich.console import Console

from chatr.notify.models import OSNotification, Toast

logger = logging.getLogger(__name__)

_VARIANT_STYLES = {
    "default": "cyan",
    "success": "green",
    "warning": "yellow",
    "destructive": "red",
}


class ToastSink(Protocol):
    async def show(self, toast: Toast) -> None: ...

    async def dismiss(self, toast_id: str) -> None: ...


class SoundPlayer(Protocol):
    async def play(self, sound: str) -> None: ...


class OSNotifier(Protocol):
    def permission(self) -> str: ...

    async def request_permission(self) -> str: ...

    async def show(self, notification: OSNotification) -> None: ...

    async def close(self, notification: OSNotification) -> None: ...


class WindowFocus(Protocol):
    def is_focused(self) -> bool: ...

    async def focus(self) -> None: ...


class RichToastSink:
    """Prints toasts to a terminal and tracks which are still visible."""

    def __init__(
        self, console: Console | None = None, action_hints: dict[str, str] | None = None,
    ) -> None:
        self._console = console or Console()
        # Toast actions cannot be clicked in a terminal; a hint keyed by the
        # action label tells the user what to run instead.
        self._action_hints = action_hints or {}
        self._visible: dict[str, Toast] = {}

    @property
    def visible(self) -> list[Toast]:
        return list(self._visible.values())

    async def show(self, toast: Toast) -> None:
        self._visible[toast.id] = toast
        style = _VARIANT_STYLES.get(toast.variant, "cyan")
        line = f"[{style}]{toast.title}[/{style}]"
        if toast.description:
            line += f" {toast.description}"
        if toast.action is not None:
            line += f" [dim]({self._action_text(toast)})[/dim]"
        self._console.print(line)

    async def dismiss(self, toast_id: str) -> None:
        self._visible.pop(toast_id, None)

    def _action_text(self, toast: Toast) -> str:
        hint = self._action_hints.get(toast.action.label)
        if hint is not None:
            try:
                return hint.format_map(toast.data)
            except KeyError:
                pass
        return f"{toast.action.label} available"


class TerminalBell:
    """Rings the terminal bell for every sound."""

    def __init__(self, console: Console | None = None) -> None:
        self._console = console or Console()

    async def play(self, sound: str) -> None:
        logger.debug("Playing %s", sound)
        self._console.bell()


class DesktopNotifier:
    """OS notifications through ``notify-send`` (libnotify)."""

    def __init__(self, app_name: str = "Chatr", binary: str = "notify-send") -> None:
        self._app_name = app_name
        self._binary = binary

    def permission(self) -> str:
        return "granted" if shutil.which(self._binary) else "denied"

    async def request_permission(self) -> str:
        return self.permission()

    async def show(self, notification: OSNotification) -> None:
        proc = await asyncio.create_subprocess_exec(
            self._binary, "--app-name", self._app_name,
            notification.title, notification.body,
            stdout=asyncio.subprocess.DEVNULL, stderr=asyncio.subprocess.PIPE,
        )
        _, stderr = await proc.communicate()
        if proc.returncode != 0:
            raise RuntimeError(f"{self._binary} exited {proc.returncode}: {stderr.decode(errors='replace')}")

    async def close(self, notification: OSNotification) -> None:
        # libnotify bubbles expire on their own.
        logger.debug("Notification %s left to expire", notification.tag)


class StaticFocus:
    """Fixed focus state for headless sessions."""

    def __init__(self, focused: bool = False) -> None:
        self._focused = focused

    def is_focused(self) -> bool:
        return self._focused

    async def focus(self) -> None:
        self._focused = True
