"""
Fact Store for Stan Chat.

Persists per-user facts ("memory") using SQLite: one row per
(user_id, memory_key), last write wins.

Reconciliation (read, compare, write) runs inside a single write
transaction so two concurrent chat turns for the same user/key can never
leave duplicate rows behind.
"""
import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

from config.settings import settings

logger = logging.getLogger(__name__)

# Seconds a writer waits on a locked database before giving up
BUSY_TIMEOUT_SECONDS = 10.0


@dataclass(frozen=True)
class Fact:
    """A stored fact about a user."""
    user_id: str
    key: str
    value: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class Contradiction:
    """A fact whose newly extracted value differs from the stored one."""
    key: str
    old: str
    new: str


@runtime_checkable
class FactStore(Protocol):
    """Storage capability handed to the extractor and composer."""

    def get(self, user_id: str, key: str) -> Optional[str]:
        ...

    def get_all(self, user_id: str) -> dict[str, str]:
        ...

    def upsert(self, user_id: str, key: str, value: str) -> None:
        ...

    def reconcile(self, user_id: str, key: str, value: str) -> Optional[Contradiction]:
        ...


def _parse_timestamp(value) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


class SQLiteFactStore:
    """
    SQLite-backed fact storage.

    Opens a short-lived connection per operation so the store can be shared
    across concurrent requests without sharing a connection.
    """

    def __init__(self, db_path: Optional[str] = None):
        """
        Initialize fact store.

        Args:
            db_path: Path to SQLite database (default from settings)
        """
        path = Path(db_path) if db_path else Path(settings.db_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.db_path = str(path)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        # isolation_level=None: transactions are opened explicitly
        conn = sqlite3.connect(
            self.db_path,
            timeout=BUSY_TIMEOUT_SECONDS,
            isolation_level=None,
        )
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self):
        """Create the facts table if it doesn't exist."""
        conn = self._connect()
        try:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("""
                CREATE TABLE IF NOT EXISTS user_memory (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    memory_key TEXT NOT NULL,
                    memory_value TEXT NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    UNIQUE(user_id, memory_key)
                )
            """)
        finally:
            conn.close()

    def get(self, user_id: str, key: str) -> Optional[str]:
        """
        Get the stored value for one fact.

        Args:
            user_id: User identifier
            key: Fact key

        Returns:
            Stored value or None if the user has no such fact
        """
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT memory_value FROM user_memory WHERE user_id = ? AND memory_key = ?",
                (user_id, key)
            ).fetchone()
            return row["memory_value"] if row else None
        finally:
            conn.close()

    def get_all(self, user_id: str) -> dict[str, str]:
        """
        Get every fact for a user as a key -> value mapping.

        Keys come back in insertion order.
        """
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT memory_key, memory_value FROM user_memory WHERE user_id = ? ORDER BY id",
                (user_id,)
            ).fetchall()
            return {row["memory_key"]: row["memory_value"] for row in rows}
        finally:
            conn.close()

    def list_facts(self, user_id: str) -> list[Fact]:
        """List a user's facts with timestamps."""
        conn = self._connect()
        try:
            rows = conn.execute(
                """
                SELECT user_id, memory_key, memory_value, created_at, updated_at
                FROM user_memory
                WHERE user_id = ?
                ORDER BY id
                """,
                (user_id,)
            ).fetchall()
            return [
                Fact(
                    user_id=row["user_id"],
                    key=row["memory_key"],
                    value=row["memory_value"],
                    created_at=_parse_timestamp(row["created_at"]),
                    updated_at=_parse_timestamp(row["updated_at"]),
                )
                for row in rows
            ]
        finally:
            conn.close()

    def upsert(self, user_id: str, key: str, value: str) -> None:
        """Insert or overwrite a fact."""
        conn = self._connect()
        try:
            self._upsert(conn, user_id, key, value)
        finally:
            conn.close()

    def _upsert(self, conn: sqlite3.Connection, user_id: str, key: str, value: str) -> None:
        conn.execute(
            """
            INSERT INTO user_memory (user_id, memory_key, memory_value)
            VALUES (?, ?, ?)
            ON CONFLICT(user_id, memory_key) DO UPDATE SET
                memory_value = excluded.memory_value,
                updated_at = CURRENT_TIMESTAMP
            """,
            (user_id, key, value)
        )

    def reconcile(self, user_id: str, key: str, value: str) -> Optional[Contradiction]:
        """
        Merge one extracted fact into the store.

        - No stored row: insert.
        - Same value stored: no-op.
        - Different value stored: overwrite and report the change.

        Args:
            user_id: User identifier
            key: Fact key
            value: Newly extracted value

        Returns:
            Contradiction if the stored value changed, else None
        """
        conn = self._connect()
        try:
            # IMMEDIATE takes the write lock before the read
            conn.execute("BEGIN IMMEDIATE")
            row = conn.execute(
                "SELECT memory_value FROM user_memory WHERE user_id = ? AND memory_key = ?",
                (user_id, key)
            ).fetchone()

            contradiction = None
            if row is None:
                self._upsert(conn, user_id, key, value)
            elif row["memory_value"] != value:
                contradiction = Contradiction(key=key, old=row["memory_value"], new=value)
                self._upsert(conn, user_id, key, value)

            conn.execute("COMMIT")
            return contradiction
        except Exception:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

    def delete(self, user_id: str, key: str) -> bool:
        """
        Delete one fact.

        Returns:
            True if a row was removed
        """
        conn = self._connect()
        try:
            cursor = conn.execute(
                "DELETE FROM user_memory WHERE user_id = ? AND memory_key = ?",
                (user_id, key)
            )
            return cursor.rowcount > 0
        finally:
            conn.close()

    def ping(self) -> bool:
        """Check the database can be opened and queried."""
        try:
            conn = self._connect()
            try:
                conn.execute("SELECT 1 FROM user_memory LIMIT 1")
            finally:
                conn.close()
            return True
        except sqlite3.Error as e:
            logger.warning(f"Fact store unavailable: {e}")
            return False


# Singleton instance
_fact_store: Optional[SQLiteFactStore] = None


def get_fact_store() -> SQLiteFactStore:
    """Get or create SQLiteFactStore singleton."""
    global _fact_store
    if _fact_store is None:
        _fact_store = SQLiteFactStore()
    return _fact_store


def reset_fact_store() -> None:
    """Reset the singleton (for testing)."""
    global _fact_store
    _fact_store = None
