"""
SQLite database connection and schema management.
"""

import sqlite3
import threading
from pathlib import Path
from typing import Optional


class Database:
    """SQLite database connection manager.

    The connection is shared between scheduler threads; every statement and
    its commit must run while holding ``lock``.
    """

    def __init__(self, db_path: str):
        """
        Initialize database connection.

        Args:
            db_path: Path to SQLite database file, or ":memory:" for in-memory DB.
        """
        self.db_path = db_path
        self.lock = threading.RLock()
        self._connection: Optional[sqlite3.Connection] = None
        self._connect()

    def _connect(self) -> None:
        """Establish database connection."""
        if self.db_path != ":memory:":
            # Ensure parent directory exists
            path = Path(self.db_path)
            path.parent.mkdir(parents=True, exist_ok=True)

        self._connection = sqlite3.connect(self.db_path, check_same_thread=False)
        self._connection.row_factory = sqlite3.Row

    @property
    def connection(self) -> sqlite3.Connection:
        """Get the database connection."""
        if self._connection is None:
            raise sqlite3.ProgrammingError("Database connection is closed")
        return self._connection

    def initialize(self) -> None:
        """Create database schema if it doesn't exist."""
        with self.lock:
            cursor = self.connection.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS watchers (
                    id TEXT PRIMARY KEY,
                    query TEXT NOT NULL,
                    schedule TEXT NOT NULL,
                    notifications TEXT NOT NULL DEFAULT '[]',
                    status TEXT NOT NULL DEFAULT 'active',
                    min_price REAL,
                    max_price REAL,
                    last_run TIMESTAMP,
                    number_of_runs INTEGER NOT NULL DEFAULT 0,
                    seen_ids TEXT,
                    running_since TIMESTAMP,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            self._migrate(cursor)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_watchers_status ON watchers(status)
            """)

            self.connection.commit()

    def _migrate(self, cursor: sqlite3.Cursor) -> None:
        """Add columns missing from databases created by older versions."""
        cursor.execute("PRAGMA table_info(watchers)")
        columns = {row["name"] for row in cursor.fetchall()}
        if "running_since" not in columns:
            cursor.execute("ALTER TABLE watchers ADD COLUMN running_since TIMESTAMP")

    def close(self) -> None:
        """Close the database connection."""
        with self.lock:
            if self._connection:
                self._connection.close()
                self._connection = None
