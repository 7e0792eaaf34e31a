"""Database connection and lifecycle management."""
import aiosqlite
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

SCHEMA_VERSION = "1.0.0"


class DatabaseError(Exception):
    pass


def _version_key(version: str) -> tuple[int, ...]:
    return tuple(int(part) for part in version.split("."))


class DatabaseManager:
    """Manages the local SQLite store and schema initialization."""

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        self._initialized = False

    @property
    def db_path(self) -> Path:
        return self._db_path

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Create tables and record the schema version.

        Raises:
            DatabaseError: If the file cannot be opened or was written by
                a newer schema than this client understands.
        """
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            async with self.connection() as conn:
                await conn.executescript(_SCHEMA)
                await conn.commit()
                found = await _read_schema_version(conn)
        except aiosqlite.Error as e:
            raise DatabaseError(f"Cannot initialize {self._db_path}: {e}") from e
        if found is not None and _version_key(found) > _version_key(SCHEMA_VERSION):
            raise DatabaseError(
                f"{self._db_path} uses schema {found}; this client supports {SCHEMA_VERSION}"
            )
        self._initialized = True

    async def schema_version(self) -> Optional[str]:
        """Newest schema version recorded in the database."""
        async with self.connection() as conn:
            return await _read_schema_version(conn)

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """Yield an async database connection."""
        conn = await aiosqlite.connect(self._db_path)
        conn.row_factory = aiosqlite.Row
        try:
            yield conn
        finally:
            await conn.close()

    async def close(self) -> None:
        """Mark the manager as closed."""
        self._initialized = False


async def _read_schema_version(conn: aiosqlite.Connection) -> Optional[str]:
    cursor = await conn.execute("SELECT version FROM schema_versions")
    versions = [row["version"] for row in await cursor.fetchall()]
    return max(versions, key=_version_key) if versions else None


_SCHEMA = """
CREATE TABLE IF NOT EXISTS schema_versions (version TEXT PRIMARY KEY, applied_at TEXT NOT NULL);
CREATE TABLE IF NOT EXISTS kv_store (
    key        TEXT PRIMARY KEY,
    value      TEXT NOT NULL,
    version    INTEGER NOT NULL,
    updated_at TEXT NOT NULL
);
INSERT OR IGNORE INTO schema_versions (version, applied_at) VALUES ('1.0.0', datetime('now'));
"""
