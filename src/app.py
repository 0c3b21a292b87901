"""
Application wiring.
"""

import logging
from datetime import timedelta
from typing import Optional

from src.config import AppConfig, apply_setting_overrides, default_settings
from src.database.connection import Database
from src.database.repository import SettingRepository, WatcherRepository
from src.data.client import BlocketClient
from src.data.query import QueryExecutor
from src.notifiers.dispatcher import NotificationDispatcher
from src.watchers.cycle import RunOutcome, WatcherRunCycle
from src.watchers.dedup import AdDeduplicator
from src.watchers.scheduler import CronScheduler
from src.watchers.service import WatcherService

logger = logging.getLogger(__name__)


class AdwatchApp:
    """Main Adwatch application."""

    def __init__(
        self,
        db: Database,
        config: AppConfig,
        dry_run: bool = False,
        client: Optional[BlocketClient] = None,
    ):
        """
        Initialize Adwatch app.

        Args:
            db: Initialized database instance
            config: Configuration built once at startup
            dry_run: Log notifications instead of sending them
            client: Search provider; built from config when omitted
        """
        self.db = db
        self.config = config

        # Initialize repositories
        self.watcher_repo = WatcherRepository(db)
        self.setting_repo = SettingRepository(db)

        # Stored settings override the file's search defaults
        self.setting_repo.initialize_defaults(default_settings(config.search))
        apply_setting_overrides(config.search, self.setting_repo.as_dict())

        # Initialize services
        self.client = client or BlocketClient(config.search)
        self.run_cycle = WatcherRunCycle(
            repository=self.watcher_repo,
            executor=QueryExecutor(self.client),
            deduplicator=AdDeduplicator(config.advanced.max_seen_ids),
            dispatcher=NotificationDispatcher(config.notifications, dry_run=dry_run),
            notifications=config.notifications,
            claim_timeout=timedelta(seconds=config.advanced.run_claim_timeout_seconds),
        )
        self.scheduler = CronScheduler(
            self.run_cycle,
            self.watcher_repo,
            timezone=config.schedule.timezone,
        )
        self.watchers = WatcherService(self.watcher_repo, self.scheduler)

    def start(self) -> None:
        """Start the scheduler. Fails if the watcher set can't be loaded."""
        self.scheduler.start()

    def stop(self) -> None:
        self.scheduler.stop()

    def run_all_once(self) -> list[RunOutcome]:
        """Run every active watcher one time, sequentially."""
        outcomes = []
        for watcher in self.watcher_repo.list_active():
            try:
                outcome = self.scheduler.on_tick(watcher.id)
            except Exception as e:
                logger.error(f"Error running watcher {watcher.id}: {e}")
                continue
            if outcome is not None:
                outcomes.append(outcome)
        return outcomes
