"""SQLite-backed fallback store for cloud variables.

The database file is shared by every process using the same path. All
keys are namespaced with a fixed prefix. Each write is also appended to
a change log, which is how other processes learn about local updates.
"""

import logging
import sqlite3
import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "[s3] "

# Change log rows kept behind the newest entry
CHANGE_LOG_RETENTION = 1000

SCHEMA = """
CREATE TABLE IF NOT EXISTS kv (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

-- Change log: one row per write, read by other processes
CREATE TABLE IF NOT EXISTS kv_changes (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    key TEXT NOT NULL,
    value TEXT,
    origin TEXT NOT NULL,
    changed_at TEXT NOT NULL
);
"""


@dataclass(frozen=True)
class StoreChange:
    """A change made by another process. ``new_value`` is None on removal."""

    name: str
    new_value: str | None


def to_store_text(value: Any) -> str:
    """String form a value is persisted as."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class LocalFallbackStore:
    """Persistent, namespaced key/value store shared across processes."""

    def __init__(self, db_path: str | Path, prefix: str = DEFAULT_PREFIX):
        """Initialize the store.

        Args:
            db_path: Path to SQLite database file.
            prefix: Namespace prepended to every variable name.
        """
        self.db_path = db_path if db_path == ":memory:" else Path(db_path).expanduser()
        self.prefix = prefix
        self.origin = uuid.uuid4().hex
        self._conn: sqlite3.Connection | None = None
        self._last_seq = 0

    def connect(self) -> None:
        """Initialize database connection and schema."""
        if isinstance(self.db_path, Path):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(self.db_path), timeout=5.0)
            self._conn.execute("PRAGMA journal_mode=WAL")
        else:
            self._conn = sqlite3.connect(self.db_path)

        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(SCHEMA)
        self._conn.commit()

        # Only changes made after connecting are reported
        row = self._conn.execute("SELECT MAX(seq) FROM kv_changes").fetchone()
        self._last_seq = row[0] or 0
        self._prune_changes()

        logger.info(f"LocalFallbackStore connected to {self.db_path}")

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
            logger.info("LocalFallbackStore connection closed")

    def _ensure_connected(self) -> sqlite3.Connection:
        if self._conn is None:
            self.connect()
        return self._conn

    def key_for(self, name: str) -> str:
        return self.prefix + name

    def name_for(self, key: str) -> str | None:
        """Variable name for a store key, or None outside the namespace."""
        if not key.startswith(self.prefix):
            return None
        return key[len(self.prefix):]

    def _record(self, conn: sqlite3.Connection, key: str, value: str | None) -> None:
        cursor = conn.execute(
            "INSERT INTO kv_changes (key, value, origin, changed_at) VALUES (?, ?, ?, ?)",
            (key, value, self.origin, datetime.now().isoformat()),
        )
        conn.execute(
            "DELETE FROM kv_changes WHERE seq <= ?",
            (cursor.lastrowid - CHANGE_LOG_RETENTION,),
        )

    def _put(self, conn: sqlite3.Connection, key: str, value: str) -> None:
        conn.execute(
            "INSERT INTO kv (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
            (key, value),
        )
        self._record(conn, key, value)

    def _delete(self, conn: sqlite3.Connection, key: str) -> None:
        conn.execute("DELETE FROM kv WHERE key = ?", (key,))
        self._record(conn, key, None)

    def get(self, name: str) -> str | None:
        """Read a variable's persisted value."""
        conn = self._ensure_connected()
        row = conn.execute(
            "SELECT value FROM kv WHERE key = ?", (self.key_for(name),)
        ).fetchone()
        return row["value"] if row else None

    def set(self, name: str, value: Any) -> str:
        """Persist a variable. Returns the stored string form."""
        conn = self._ensure_connected()
        text = to_store_text(value)
        with conn:
            self._put(conn, self.key_for(name), text)
        return text

    def remove(self, name: str) -> None:
        conn = self._ensure_connected()
        with conn:
            self._delete(conn, self.key_for(name))

    def rename(self, old_name: str, new_name: str) -> str | None:
        """Move a value to a new name.

        Read, remove and write are separate commits, so a crash in between
        loses the value.

        Returns:
            The moved value, or None if ``old_name`` had no value.
        """
        value = self.get(old_name)
        self.remove(old_name)
        if value is None:
            return None
        return self.set(new_name, value)

    def items(self) -> dict[str, str]:
        """All namespaced variables, keyed by name."""
        conn = self._ensure_connected()
        rows = conn.execute(
            "SELECT key, value FROM kv WHERE substr(key, 1, ?) = ? ORDER BY key",
            (len(self.prefix), self.prefix),
        ).fetchall()
        return {row["key"][len(self.prefix):]: row["value"] for row in rows}

    def poll_changes(self) -> list[StoreChange]:
        """Return namespaced changes written by other store instances.

        Each change is reported once, in write order.
        """
        conn = self._ensure_connected()
        rows = conn.execute(
            "SELECT seq, key, value, origin FROM kv_changes WHERE seq > ? ORDER BY seq",
            (self._last_seq,),
        ).fetchall()

        changes = []
        for row in rows:
            self._last_seq = row["seq"]
            if row["origin"] == self.origin:
                continue
            name = self.name_for(row["key"])
            if name is None:
                continue
            changes.append(StoreChange(name=name, new_value=row["value"]))
        return changes

    def _prune_changes(self) -> None:
        conn = self._ensure_connected()
        with conn:
            conn.execute(
                "DELETE FROM kv_changes WHERE seq <= (SELECT MAX(seq) FROM kv_changes) - ?",
                (CHANGE_LOG_RETENTION,),
            )
