"""
SQLite database manager for the decision service.

Provides a single decisions.db file holding collections, saved items and
bearer tokens. Thread-safe with WAL journal mode for concurrent read/write.
"""
import sqlite3
import threading
from pathlib import Path
from typing import Optional
from config import settings


class Database:
    """Thread-local SQLite connection manager with WAL mode."""

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path: Path = Path(db_path) if db_path else settings.db_path
        self._local = threading.local()
        self._init_schema()

    def get_connection(self) -> sqlite3.Connection:
        """Get a thread-local SQLite connection."""
        conn = getattr(self._local, 'conn', None)
        if conn is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.db_path))
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA busy_timeout=5000")
            conn.execute("PRAGMA foreign_keys=ON")
            self._local.conn = conn
        return conn

    def _init_schema(self):
        """Create all tables if they don't exist."""
        conn = self.get_connection()
        cursor = conn.cursor()

        # -- collections --
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS collections (
                id TEXT PRIMARY KEY,
                owner_id TEXT NOT NULL,
                title TEXT DEFAULT '',
                created_at TEXT NOT NULL
            )
        """)

        # -- saved_items --
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS saved_items (
                id TEXT PRIMARY KEY,
                collection_id TEXT NOT NULL,
                url TEXT DEFAULT '',
                domain TEXT DEFAULT '',
                title TEXT DEFAULT '',
                added_at TEXT NOT NULL,
                last_opened_at TEXT,
                open_count INTEGER DEFAULT 0,
                decision_group_id TEXT,
                shortlisted INTEGER DEFAULT 0,
                dismissed INTEGER DEFAULT 0,
                chosen INTEGER DEFAULT 0,
                FOREIGN KEY (collection_id) REFERENCES collections(id) ON DELETE CASCADE
            )
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_items_collection_added
            ON saved_items(collection_id, added_at)
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_items_decision_group
            ON saved_items(collection_id, decision_group_id)
        """)

        # -- api_tokens --
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS api_tokens (
                token_hash TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                name TEXT DEFAULT '',
                created_at TEXT NOT NULL,
                revoked_at TEXT
            )
        """)

        conn.commit()

    def close(self):
        """Close the thread-local connection if open."""
        conn = getattr(self._local, 'conn', None)
        if conn is not None:
            conn.close()
            self._local.conn = None


_db: Optional[Database] = None
_db_lock = threading.Lock()


def get_db() -> Database:
    """Get the shared Database instance for settings.db_path."""
    global _db
    if _db is None:
        with _db_lock:
            if _db is None:
                _db = Database()
    return _db
