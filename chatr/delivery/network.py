"""Online/offline signal driven by connectivity events."""
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

ConnectivityListener = Callable[[bool], Awaitable[None]]


class NetworkMonitor:
    """Tracks connectivity. Purely event-driven, never polls."""

    def __init__(self, initially_online: bool = True) -> None:
        self._online = initially_online
        self._listeners: list[ConnectivityListener] = []

    @property
    def online(self) -> bool:
        return self._online

    def add_listener(self, listener: ConnectivityListener) -> None:
        """Register callback for online/offline transitions."""
        self._listeners.append(listener)

    def remove_listener(self, listener: ConnectivityListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def set_online(self, online: bool) -> None:
        """Feed a connectivity event. Repeats of the current state are ignored."""
        if online == self._online:
            return
        self._online = online
        logger.info("Network %s", "online" if online else "offline")
        for listener in list(self._listeners):
            await listener(online)
