"""Per-user persistent queue of outbound messages.

The whole queue is stored as one JSON array under a user-scoped key and
rewritten on every mutation. A mutation re-reads the stored blob, applies
its change and writes back with compare-and-swap on the row version; a
write that loses a race with another process is re-applied to the newer
blob. Delivery additionally claims a message before sending it, so two
processors sharing the queue never send the same message.

Messages that exhausted their retries are kept under a second key until
the user retries or discards them.
"""
import json
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from chatr.errors import QueueConflictError
from chatr.state.database import DatabaseManager
from chatr.state.models.queued import QueuedMessage
from chatr.state.repositories.kv import KeyValueRepository

logger = logging.getLogger(__name__)

QUEUE_KEY_PREFIX = "chatr_message_queue"
SYNC_KEY_PREFIX = "chatr_last_sync"
FAILED_KEY_PREFIX = "chatr_failed_messages"
WRITE_ATTEMPTS = 5

Change = Callable[[list[QueuedMessage]], Optional[list[QueuedMessage]]]


def queue_key(user_id: str) -> str:
    return f"{QUEUE_KEY_PREFIX}:{user_id}"


def sync_key(user_id: str) -> str:
    return f"{SYNC_KEY_PREFIX}:{user_id}"


def failed_key(user_id: str) -> str:
    return f"{FAILED_KEY_PREFIX}:{user_id}"


def _parse(key: str, value: str) -> Optional[list[QueuedMessage]]:
    """Decode a stored blob; None if it is corrupt."""
    try:
        raw = json.loads(value)
        if not isinstance(raw, list):
            raise ValueError("queue blob is not a list")
        return [QueuedMessage.from_dict(item) for item in raw]
    except (ValueError, KeyError, TypeError) as e:
        logger.warning("Corrupt queue blob under %s: %s", key, e)
        return None


def _dump(messages: list[QueuedMessage]) -> str:
    return json.dumps([m.to_dict() for m in messages])


def _replace(messages: list[QueuedMessage], message: QueuedMessage) -> list[QueuedMessage]:
    return [message if m.id == message.id else m for m in messages]


class PersistentQueue:
    """FIFO of not-yet-confirmed messages for one user."""

    def __init__(self, db: DatabaseManager, user_id: str) -> None:
        if not user_id:
            raise ValueError("user_id cannot be empty")
        self._db = db
        self._user_id = user_id
        self._key = queue_key(user_id)
        self._failed_key = failed_key(user_id)
        self._messages: list[QueuedMessage] = []

    @property
    def user_id(self) -> str:
        return self._user_id

    @property
    def key(self) -> str:
        return self._key

    def __len__(self) -> int:
        return len(self._messages)

    def all(self) -> list[QueuedMessage]:
        """Return a snapshot of the queue in enqueue order."""
        return list(self._messages)

    def get(self, message_id: str) -> Optional[QueuedMessage]:
        return next((m for m in self._messages if m.id == message_id), None)

    async def load(self) -> list[QueuedMessage]:
        """Read the persisted queue.

        A blob that cannot be parsed is discarded and the queue starts
        empty.
        """
        await self._ensure_db()
        async with self._db.connection() as conn:
            repo = KeyValueRepository(conn)
            stored = await repo.get(self._key)
            messages = _parse(self._key, stored.value) if stored else []
            if messages is None:
                await repo.delete(self._key)
                messages = []
        self._messages = messages
        logger.debug("Loaded %d queued message(s) for %s", len(messages), self._user_id)
        return self.all()

    async def peek(self) -> list[QueuedMessage]:
        """Read the persisted queue without changing anything.

        A corrupt blob reads as empty but is left in place.
        """
        await self._ensure_db()
        return await self._read(self._key)

    async def enqueue(
        self,
        conversation_id: str,
        content: str,
        message_type: str = "text",
        media_url: Optional[str] = None,
    ) -> QueuedMessage:
        """Append a new message with a fresh id and zero retries."""
        message = QueuedMessage(
            id=str(uuid.uuid4()),
            conversation_id=conversation_id,
            content=content,
            message_type=message_type,
            media_url=media_url,
            created_at=datetime.now(timezone.utc),
            retry_count=0,
        )
        await self._mutate(lambda current: current + [message])
        return message

    async def drain(self, message_id: str) -> bool:
        """Remove a message by id. Returns False if it was not queued."""

        def change(current: list[QueuedMessage]) -> Optional[list[QueuedMessage]]:
            remaining = [m for m in current if m.id != message_id]
            return remaining if len(remaining) != len(current) else None

        return await self._mutate(change)

    async def update(self, message: QueuedMessage) -> bool:
        """Replace the queued entry that has the same id."""

        def change(current: list[QueuedMessage]) -> Optional[list[QueuedMessage]]:
            if not any(m.id == message.id for m in current):
                return None
            return _replace(current, message)

        return await self._mutate(change)

    async def claim(
        self, message_id: str, owner: str, lease: timedelta,
    ) -> Optional[QueuedMessage]:
        """Mark a message as being delivered by *owner*.

        Returns the claimed message, or None if it is no longer queued or
        another owner holds a live claim on it. Renews the claim when
        *owner* already holds it.
        """
        now = datetime.now(timezone.utc)
        claimed: list[QueuedMessage] = []

        def change(current: list[QueuedMessage]) -> Optional[list[QueuedMessage]]:
            claimed.clear()
            target = next((m for m in current if m.id == message_id), None)
            if target is None or target.is_claimed_by_other(owner, now, lease):
                return None
            claimed.append(target.with_claim(owner, now))
            return _replace(current, claimed[0])

        await self._mutate(change)
        return claimed[0] if claimed else None

    async def release(self, message_id: str, owner: str) -> bool:
        """Drop *owner*'s claim so another processor may deliver the message."""

        def change(current: list[QueuedMessage]) -> Optional[list[QueuedMessage]]:
            target = next((m for m in current if m.id == message_id), None)
            if target is None or target.claimed_by != owner:
                return None
            return _replace(current, target.released())

        return await self._mutate(change)

    async def clear(self) -> int:
        cleared: list[QueuedMessage] = []

        def change(current: list[QueuedMessage]) -> Optional[list[QueuedMessage]]:
            cleared[:] = current
            return [] if current else None

        await self._mutate(change)
        return len(cleared)

    async def record_failed(self, message: QueuedMessage) -> None:
        """Keep an exhausted message so the user can retry it later."""
        kept = message.released()
        await self._rewrite(
            self._failed_key,
            lambda current: [m for m in current if m.id != kept.id] + [kept],
        )

    async def failed(self) -> list[QueuedMessage]:
        """Messages that exhausted their retries, oldest first."""
        await self._ensure_db()
        return await self._read(self._failed_key)

    async def forget_failed(self, message_id: str) -> bool:
        def change(current: list[QueuedMessage]) -> Optional[list[QueuedMessage]]:
            remaining = [m for m in current if m.id != message_id]
            return remaining if len(remaining) != len(current) else None

        changed, _ = await self._rewrite(self._failed_key, change)
        return changed

    async def record_sync(self, pending_count: int) -> None:
        """Remember when the queue was last drained and what was left."""
        payload = json.dumps({
            "last_sync": datetime.now(timezone.utc).isoformat(),
            "pending_count": pending_count,
        })
        async with self._db.connection() as conn:
            await KeyValueRepository(conn).put(sync_key(self._user_id), payload)

    async def last_sync(self) -> Optional[dict]:
        async with self._db.connection() as conn:
            stored = await KeyValueRepository(conn).get(sync_key(self._user_id))
        if stored is None:
            return None
        try:
            return json.loads(stored.value)
        except ValueError:
            return None

    async def _ensure_db(self) -> None:
        if not self._db.is_initialized:
            await self._db.initialize()

    async def _read(self, key: str) -> list[QueuedMessage]:
        async with self._db.connection() as conn:
            stored = await KeyValueRepository(conn).get(key)
        if stored is None:
            return []
        return _parse(key, stored.value) or []

    async def _mutate(self, change: Change) -> bool:
        changed, messages = await self._rewrite(self._key, change)
        self._messages = messages
        return changed

    async def _rewrite(self, key: str, change: Change) -> tuple[bool, list[QueuedMessage]]:
        """Apply *change* to the freshest stored list under *key*.

        *change* returns the new list, or None to leave storage untouched.
        Returns whether a write happened and the list now stored.

        Raises:
            QueueConflictError: If other writers keep winning the race.
        """
        attempt = 0
        while True:
            attempt += 1
            async with self._db.connection() as conn:
                repo = KeyValueRepository(conn)
                stored = await repo.get(key)
                version = stored.version if stored else 0
                current = (_parse(key, stored.value) if stored else None) or []
                updated = change(current)
                if updated is None:
                    return False, current
                try:
                    await repo.put(key, _dump(updated), expected_version=version)
                except QueueConflictError:
                    if attempt >= WRITE_ATTEMPTS:
                        raise
                    logger.info("Concurrent write on %s, re-applying (attempt %d)", key, attempt)
                    continue
            return True, updated
