"""
Repository classes for CRUD operations.
"""

import json
import uuid
from datetime import datetime
from typing import Optional, Sequence

from src.errors import NotFoundError
from .connection import Database
from .models import (
    Setting,
    Watcher,
    WatcherStatus,
    target_from_dict,
    target_to_dict,
)


def _parse_timestamp(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _format_timestamp(value: datetime) -> str:
    # Fixed width so claims compare correctly as text
    return value.isoformat(timespec="microseconds")


class WatcherRepository:
    """CRUD operations for watchers."""

    def __init__(self, db: Database):
        self.db = db

    def create(self, watcher: Watcher) -> Watcher:
        """Create a new watcher and assign its ID."""
        watcher.id = watcher.id or str(uuid.uuid4())
        now = datetime.now()
        with self.db.lock:
            cursor = self.db.connection.cursor()
            cursor.execute(
                """
                INSERT INTO watchers
                (id, query, schedule, notifications, status, min_price, max_price,
                 last_run, number_of_runs, seen_ids, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    watcher.id,
                    watcher.query,
                    watcher.schedule,
                    self._dump_notifications(watcher),
                    watcher.status.value,
                    watcher.min_price,
                    watcher.max_price,
                    watcher.last_run.isoformat() if watcher.last_run else None,
                    watcher.number_of_runs,
                    self._dump_seen_ids(watcher.seen_ids),
                    now.isoformat(),
                    now.isoformat(),
                ),
            )
            self.db.connection.commit()
        watcher.created_at = now
        watcher.updated_at = now
        return watcher

    def get_by_id(self, watcher_id: str) -> Optional[Watcher]:
        """Get watcher by ID."""
        with self.db.lock:
            cursor = self.db.connection.cursor()
            cursor.execute("SELECT * FROM watchers WHERE id = ?", (watcher_id,))
            row = cursor.fetchone()
        if row is None:
            return None
        return self._row_to_watcher(row)

    def list_all(self) -> list[Watcher]:
        """List all watchers."""
        with self.db.lock:
            cursor = self.db.connection.cursor()
            cursor.execute("SELECT * FROM watchers ORDER BY created_at, id")
            rows = cursor.fetchall()
        return [self._row_to_watcher(row) for row in rows]

    def list_active(self) -> list[Watcher]:
        """List watchers the scheduler should keep timers for."""
        with self.db.lock:
            cursor = self.db.connection.cursor()
            cursor.execute(
                "SELECT * FROM watchers WHERE status = ? ORDER BY created_at, id",
                (WatcherStatus.ACTIVE.value,),
            )
            rows = cursor.fetchall()
        return [self._row_to_watcher(row) for row in rows]

    def set_status(self, watcher_id: str, status: WatcherStatus) -> None:
        """Pause or resume a watcher."""
        self._update(
            watcher_id,
            "status = ?",
            (status.value,),
        )

    def update_schedule(self, watcher_id: str, schedule: str) -> None:
        """Change a watcher's cron expression."""
        self._update(watcher_id, "schedule = ?", (schedule,))

    def update_run_result(
        self,
        watcher_id: str,
        last_run: datetime,
        number_of_runs: int,
        seen_ids: Sequence[str],
    ) -> None:
        """
        Persist bookkeeping for a completed run cycle in one statement.

        Raises:
            NotFoundError: If the watcher was deleted
        """
        self._update(
            watcher_id,
            "last_run = ?, number_of_runs = ?, seen_ids = ?",
            (last_run.isoformat(), number_of_runs, self._dump_seen_ids(seen_ids)),
        )

    def claim_run(self, watcher_id: str, now: datetime, stale_before: datetime) -> bool:
        """
        Mark a watcher as running unless another run holds it.

        A claim older than ``stale_before`` is treated as abandoned and taken
        over. The check and the write are one statement, so only one process
        can win.

        Returns:
            True if this caller now owns the run
        """
        with self.db.lock:
            cursor = self.db.connection.cursor()
            cursor.execute(
                """
                UPDATE watchers SET running_since = ?
                WHERE id = ? AND (running_since IS NULL OR running_since < ?)
                """,
                (_format_timestamp(now), watcher_id, _format_timestamp(stale_before)),
            )
            self.db.connection.commit()
            return cursor.rowcount == 1

    def release_run(self, watcher_id: str) -> None:
        """Clear a run claim. No-op if the watcher is gone."""
        with self.db.lock:
            cursor = self.db.connection.cursor()
            cursor.execute(
                "UPDATE watchers SET running_since = NULL WHERE id = ?",
                (watcher_id,),
            )
            self.db.connection.commit()

    def delete(self, watcher_id: str) -> None:
        """
        Delete watcher.

        Raises:
            NotFoundError: If the watcher doesn't exist
        """
        with self.db.lock:
            cursor = self.db.connection.cursor()
            cursor.execute("DELETE FROM watchers WHERE id = ?", (watcher_id,))
            self.db.connection.commit()
            if cursor.rowcount == 0:
                raise NotFoundError(watcher_id)

    def _update(self, watcher_id: str, assignments: str, params: tuple) -> None:
        with self.db.lock:
            cursor = self.db.connection.cursor()
            cursor.execute(
                f"UPDATE watchers SET {assignments}, updated_at = ? WHERE id = ?",
                (*params, datetime.now().isoformat(), watcher_id),
            )
            self.db.connection.commit()
            if cursor.rowcount == 0:
                raise NotFoundError(watcher_id)

    def _dump_notifications(self, watcher: Watcher) -> str:
        return json.dumps([target_to_dict(t) for t in watcher.notifications])

    def _dump_seen_ids(self, seen_ids: Optional[Sequence[str]]) -> Optional[str]:
        if seen_ids is None:
            return None
        return json.dumps(list(seen_ids))

    def _row_to_watcher(self, row) -> Watcher:
        """Convert database row to Watcher."""
        seen_ids = row["seen_ids"]
        return Watcher(
            id=row["id"],
            query=row["query"],
            schedule=row["schedule"],
            notifications=[
                target_from_dict(item) for item in json.loads(row["notifications"])
            ],
            status=WatcherStatus(row["status"]),
            min_price=row["min_price"],
            max_price=row["max_price"],
            last_run=_parse_timestamp(row["last_run"]),
            number_of_runs=row["number_of_runs"],
            seen_ids=tuple(json.loads(seen_ids)) if seen_ids is not None else None,
            created_at=_parse_timestamp(row["created_at"]),
            updated_at=_parse_timestamp(row["updated_at"]),
        )


class SettingRepository:
    """Key/value overrides for global search defaults."""

    def __init__(self, db: Database):
        self.db = db

    def get_value(self, key: str) -> Optional[str]:
        """Get a setting value, or None if unset."""
        with self.db.lock:
            cursor = self.db.connection.cursor()
            cursor.execute("SELECT value FROM settings WHERE key = ?", (key,))
            row = cursor.fetchone()
        return row["value"] if row else None

    def set_value(self, key: str, value: str) -> None:
        """Insert or update a setting."""
        with self.db.lock:
            cursor = self.db.connection.cursor()
            cursor.execute(
                """
                INSERT INTO settings (key, value)
                VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (key, value),
            )
            self.db.connection.commit()

    def list_all(self) -> list[Setting]:
        """List all settings."""
        with self.db.lock:
            cursor = self.db.connection.cursor()
            cursor.execute("SELECT * FROM settings ORDER BY key")
            rows = cursor.fetchall()
        return [
            Setting(key=row["key"], value=row["value"], updated_at=row["updated_at"])
            for row in rows
        ]

    def as_dict(self) -> dict[str, str]:
        return {s.key: s.value for s in self.list_all()}

    def initialize_defaults(self, defaults: dict[str, str]) -> None:
        """Seed missing settings without touching existing values."""
        with self.db.lock:
            cursor = self.db.connection.cursor()
            cursor.executemany(
                "INSERT OR IGNORE INTO settings (key, value) VALUES (?, ?)",
                list(defaults.items()),
            )
            self.db.connection.commit()
