"""Online-user snapshot built from presence channel events."""
import asyncio
import logging
from typing import Any, Iterable, Optional

logger = logging.getLogger(__name__)


class PresenceTracker:
    """Set of online users with a grace period before marking anyone offline.

    A leave only takes effect after ``grace`` seconds; a join for the same
    user in that window cancels it, so short reconnects do not flicker.
    """

    def __init__(self, grace: float = 2.0) -> None:
        self._grace = grace
        self._online: set[str] = set()
        self._pending_leaves: dict[str, asyncio.TimerHandle] = {}

    def snapshot(self) -> frozenset[str]:
        return frozenset(self._online)

    def is_online(self, user_id: str) -> bool:
        return user_id in self._online

    def join(self, user_id: str) -> None:
        timer = self._pending_leaves.pop(user_id, None)
        if timer is not None:
            timer.cancel()
        self._online.add(user_id)

    def leave(self, user_id: str) -> None:
        if user_id not in self._online or user_id in self._pending_leaves:
            return
        if self._grace <= 0:
            self._online.discard(user_id)
            return
        loop = asyncio.get_running_loop()
        self._pending_leaves[user_id] = loop.call_later(self._grace, self._expire, user_id)

    def apply_state(self, state: dict[str, Any]) -> None:
        """Rebuild from a full ``presence_state`` payload keyed by user id."""
        present = set(state)
        for user_id in present:
            self.join(user_id)
        for user_id in self._online - present:
            self.leave(user_id)

    def apply_diff(self, joins: Optional[Iterable[str]] = None,
                   leaves: Optional[Iterable[str]] = None) -> None:
        for user_id in joins or ():
            self.join(user_id)
        for user_id in leaves or ():
            self.leave(user_id)

    async def handle_event(self, event: str, payload: dict[str, Any]) -> None:
        """Presence handler for ``RealtimeChangeFeed.subscribe_presence``."""
        if event == "presence_state":
            self.apply_state(payload)
        elif event == "presence_diff":
            self.apply_diff(joins=(payload.get("joins") or {}).keys(),
                            leaves=(payload.get("leaves") or {}).keys())

    def close(self) -> None:
        for timer in self._pending_leaves.values():
            timer.cancel()
        self._pending_leaves.clear()

    def _expire(self, user_id: str) -> None:
        self._pending_leaves.pop(user_id, None)
        self._online.discard(user_id)
        logger.debug("User %s is offline", user_id)
