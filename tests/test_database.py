"""
Database layer tests.
Tests for SQLite connection, schema creation, and repositories.
"""

import sqlite3
from datetime import datetime
from pathlib import Path

import pytest

from src.database.connection import Database
from src.database.models import DiscordTarget, EmailTarget, Watcher, WatcherStatus
from src.database.repository import SettingRepository, WatcherRepository
from src.errors import NotFoundError


class TestDatabaseConnection:
    """Test database connection and initialization."""

    def test_create_in_memory_database(self):
        """Should create an in-memory SQLite database."""
        db = Database(":memory:")
        assert db.connection is not None

    def test_create_file_database(self, tmp_path: Path):
        """Should create a file-based SQLite database in a new directory."""
        db_path = tmp_path / "nested" / "test.db"
        db = Database(str(db_path))
        db.initialize()
        assert db_path.exists()
        db.close()

    def test_initialize_schema(self):
        """Should create all required tables on initialization."""
        db = Database(":memory:")
        db.initialize()

        cursor = db.connection.cursor()
        cursor.execute("SELECT name FROM sqlite_master WHERE type='table'")
        tables = {row[0] for row in cursor.fetchall()}

        assert {"watchers", "settings"}.issubset(tables)

    def test_initialize_is_idempotent(self, db):
        db.initialize()

    def test_initialize_adds_missing_columns(self, tmp_path: Path):
        """Should upgrade a watchers table created without the run claim column."""
        db_path = tmp_path / "old.db"
        old = sqlite3.connect(str(db_path))
        old.execute(
            "CREATE TABLE watchers (id TEXT PRIMARY KEY, query TEXT NOT NULL, "
            "schedule TEXT NOT NULL, notifications TEXT NOT NULL DEFAULT '[]', "
            "status TEXT NOT NULL DEFAULT 'active', min_price REAL, max_price REAL, "
            "last_run TIMESTAMP, number_of_runs INTEGER NOT NULL DEFAULT 0, seen_ids TEXT, "
            "created_at TIMESTAMP, updated_at TIMESTAMP)"
        )
        old.commit()
        old.close()

        db = Database(str(db_path))
        db.initialize()
        db.initialize()

        columns = {row["name"] for row in db.connection.execute("PRAGMA table_info(watchers)")}
        assert "running_since" in columns
        db.close()

    def test_close_connection(self):
        """Should properly close database connection."""
        db = Database(":memory:")
        db.close()
        with pytest.raises(sqlite3.ProgrammingError):
            db.connection.execute("SELECT 1")


class TestWatcherRepository:
    """Test Watcher CRUD operations."""

    @pytest.fixture
    def watcher(self):
        return Watcher(
            query="Macbook Pro 14",
            schedule="*/5 * * * *",
            notifications=[
                DiscordTarget(webhook_url="https://discord.com/api/webhooks/1/a"),
                EmailTarget(email="user@example.com"),
            ],
            min_price=5000,
            max_price=15000,
        )

    def test_create_assigns_id(self, watcher_repo: WatcherRepository, watcher):
        created = watcher_repo.create(watcher)
        assert created.id is not None
        assert created.created_at is not None

    def test_get_by_id_round_trips_fields(self, watcher_repo: WatcherRepository, watcher):
        created = watcher_repo.create(watcher)

        fetched = watcher_repo.get_by_id(created.id)

        assert fetched.query == "Macbook Pro 14"
        assert fetched.schedule == "*/5 * * * *"
        assert fetched.notifications == watcher.notifications
        assert fetched.status == WatcherStatus.ACTIVE
        assert fetched.min_price == 5000
        assert fetched.max_price == 15000
        assert fetched.number_of_runs == 0
        assert fetched.last_run is None
        assert fetched.seen_ids is None

    def test_get_missing_returns_none(self, watcher_repo: WatcherRepository):
        assert watcher_repo.get_by_id("missing") is None

    def test_list_active_excludes_stopped(self, watcher_repo: WatcherRepository):
        active = watcher_repo.create(Watcher(query="a", schedule="* * * * *"))
        stopped = watcher_repo.create(
            Watcher(query="b", schedule="* * * * *", status=WatcherStatus.STOPPED)
        )

        ids = [w.id for w in watcher_repo.list_active()]

        assert active.id in ids
        assert stopped.id not in ids
        assert len(watcher_repo.list_all()) == 2

    def test_set_status(self, watcher_repo: WatcherRepository, watcher):
        created = watcher_repo.create(watcher)

        watcher_repo.set_status(created.id, WatcherStatus.STOPPED)

        assert watcher_repo.get_by_id(created.id).status == WatcherStatus.STOPPED

    def test_set_status_missing(self, watcher_repo: WatcherRepository):
        with pytest.raises(NotFoundError):
            watcher_repo.set_status("missing", WatcherStatus.STOPPED)

    def test_update_schedule(self, watcher_repo: WatcherRepository, watcher):
        created = watcher_repo.create(watcher)

        watcher_repo.update_schedule(created.id, "0 * * * *")

        assert watcher_repo.get_by_id(created.id).schedule == "0 * * * *"

    def test_update_run_result(self, watcher_repo: WatcherRepository, watcher):
        """Should persist bookkeeping fields together."""
        created = watcher_repo.create(watcher)
        now = datetime(2024, 5, 1, 12, 0, 0)

        watcher_repo.update_run_result(
            created.id, last_run=now, number_of_runs=1, seen_ids=("a1", "a2")
        )

        fetched = watcher_repo.get_by_id(created.id)
        assert fetched.last_run == now
        assert fetched.number_of_runs == 1
        assert fetched.seen_ids == ("a1", "a2")

    def test_update_run_result_empty_marker(self, watcher_repo: WatcherRepository, watcher):
        """An empty baseline is stored distinctly from no baseline."""
        created = watcher_repo.create(watcher)

        watcher_repo.update_run_result(
            created.id, last_run=datetime.now(), number_of_runs=1, seen_ids=()
        )

        assert watcher_repo.get_by_id(created.id).seen_ids == ()

    def test_update_run_result_deleted_watcher(self, watcher_repo: WatcherRepository):
        with pytest.raises(NotFoundError):
            watcher_repo.update_run_result(
                "missing", last_run=datetime.now(), number_of_runs=1, seen_ids=()
            )

    def test_delete(self, watcher_repo: WatcherRepository, watcher):
        created = watcher_repo.create(watcher)

        watcher_repo.delete(created.id)

        assert watcher_repo.get_by_id(created.id) is None

    def test_delete_missing(self, watcher_repo: WatcherRepository):
        with pytest.raises(NotFoundError):
            watcher_repo.delete("missing")


class TestRunClaims:
    """Test the cross-process run claim."""

    NOW = datetime(2024, 5, 1, 12, 0, 0)
    STALE_BEFORE = datetime(2024, 5, 1, 11, 30, 0)

    @pytest.fixture
    def watcher(self, watcher_repo: WatcherRepository):
        return watcher_repo.create(Watcher(query="cykel", schedule="* * * * *"))

    def test_only_one_claim_wins(self, watcher_repo: WatcherRepository, watcher):
        assert watcher_repo.claim_run(watcher.id, self.NOW, self.STALE_BEFORE) is True
        assert watcher_repo.claim_run(watcher.id, self.NOW, self.STALE_BEFORE) is False

    def test_release_allows_next_claim(self, watcher_repo: WatcherRepository, watcher):
        watcher_repo.claim_run(watcher.id, self.NOW, self.STALE_BEFORE)

        watcher_repo.release_run(watcher.id)

        assert watcher_repo.claim_run(watcher.id, self.NOW, self.STALE_BEFORE) is True

    def test_stale_claim_is_taken_over(self, watcher_repo: WatcherRepository, watcher):
        """A claim older than the cutoff was left by a crashed process."""
        watcher_repo.claim_run(watcher.id, datetime(2024, 5, 1, 9, 0, 0), datetime(2024, 5, 1, 8, 0, 0))

        assert watcher_repo.claim_run(watcher.id, self.NOW, self.STALE_BEFORE) is True

    def test_claim_missing_watcher(self, watcher_repo: WatcherRepository):
        assert watcher_repo.claim_run("missing", self.NOW, self.STALE_BEFORE) is False
        watcher_repo.release_run("missing")

    def test_claim_seen_by_other_connection(self, tmp_path: Path):
        """Two processes sharing a database file can't both claim a watcher."""
        db_path = str(tmp_path / "shared.db")
        daemon_db = Database(db_path)
        daemon_db.initialize()
        cli_db = Database(db_path)
        daemon_repo = WatcherRepository(daemon_db)
        cli_repo = WatcherRepository(cli_db)
        watcher = daemon_repo.create(Watcher(query="cykel", schedule="* * * * *"))

        assert daemon_repo.claim_run(watcher.id, self.NOW, self.STALE_BEFORE) is True
        assert cli_repo.claim_run(watcher.id, self.NOW, self.STALE_BEFORE) is False

        daemon_repo.release_run(watcher.id)
        assert cli_repo.claim_run(watcher.id, self.NOW, self.STALE_BEFORE) is True

        cli_db.close()
        daemon_db.close()


class TestSettingRepository:
    """Test settings storage."""

    @pytest.fixture
    def repo(self, db):
        return SettingRepository(db)

    def test_get_unset_value(self, repo: SettingRepository):
        assert repo.get_value("BLOCKET_QUERY_LIMIT") is None

    def test_set_and_get(self, repo: SettingRepository):
        repo.set_value("BLOCKET_QUERY_LIMIT", "40")
        repo.set_value("BLOCKET_QUERY_LIMIT", "20")
        assert repo.get_value("BLOCKET_QUERY_LIMIT") == "20"

    def test_initialize_defaults_keeps_existing(self, repo: SettingRepository):
        repo.set_value("BLOCKET_QUERY_SORT", "date")

        repo.initialize_defaults({"BLOCKET_QUERY_SORT": "rel", "BLOCKET_QUERY_LIMIT": "60"})

        assert repo.as_dict() == {"BLOCKET_QUERY_SORT": "date", "BLOCKET_QUERY_LIMIT": "60"}
