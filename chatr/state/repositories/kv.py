"""Key-value repository with versioned writes."""
import aiosqlite
from datetime import datetime, timezone
from typing import Optional

from chatr.errors import QueueConflictError
from chatr.state.models.stored import StoredValue


class KeyValueRepository:
    """Stores string blobs under string keys.

    Each row carries a version that increases on every write so callers
    can detect a concurrent writer with compare-and-swap.
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def get(self, key: str) -> Optional[StoredValue]:
        cursor = await self._conn.execute(
            "SELECT * FROM kv_store WHERE key = ?", (key,)
        )
        row = await cursor.fetchone()
        return self._row_to_value(row) if row else None

    async def put(
        self,
        key: str,
        value: str,
        expected_version: Optional[int] = None,
    ) -> int:
        """Write *value* under *key*.

        Args:
            key: Storage key.
            value: Serialized blob.
            expected_version: Version the caller last read. ``None`` writes
                unconditionally; ``0`` requires the key to be absent.

        Returns:
            The new version.

        Raises:
            QueueConflictError: If the stored version differs from
                *expected_version*.
        """
        now = datetime.now(timezone.utc).isoformat()
        current = await self.get(key)
        actual = current.version if current else 0
        if expected_version is not None and expected_version != actual:
            raise QueueConflictError(key, expected_version, actual)
        new_version = actual + 1
        if current is None:
            cursor = await self._conn.execute(
                "INSERT OR IGNORE INTO kv_store (key, value, version, updated_at) "
                "VALUES (?, ?, ?, ?)",
                (key, value, new_version, now),
            )
        else:
            cursor = await self._conn.execute(
                "UPDATE kv_store SET value = ?, version = ?, updated_at = ? "
                "WHERE key = ? AND version = ?",
                (value, new_version, now, key, actual),
            )
        await self._conn.commit()
        if cursor.rowcount == 0:
            latest = await self.get(key)
            raise QueueConflictError(key, actual, latest.version if latest else 0)
        return new_version

    async def delete(self, key: str) -> bool:
        cursor = await self._conn.execute(
            "DELETE FROM kv_store WHERE key = ?", (key,)
        )
        await self._conn.commit()
        return cursor.rowcount > 0

    @staticmethod
    def _row_to_value(row: aiosqlite.Row) -> StoredValue:
        """Convert a database row to a StoredValue."""
        return StoredValue(
            key=row["key"],
            value=row["value"],
            version=row["version"],
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )
