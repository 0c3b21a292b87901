"""
Watcher mutation surface used by the CLI and any CRUD layer.
"""

import logging
import threading
from collections import defaultdict
from typing import Optional

from src.data.query import validate_price_bounds
from src.database.models import NotificationTarget, Watcher, WatcherStatus
from src.database.repository import WatcherRepository
from src.errors import NotFoundError, ValidationError
from .cycle import RunOutcome
from .scheduler import CronScheduler

logger = logging.getLogger(__name__)


class WatcherService:
    """Creates and mutates watchers, keeping the scheduler in sync.

    Every mutation for a given watcher ID runs under that ID's lock, so the
    stored record and the live timer are updated together.
    """

    def __init__(self, repository: WatcherRepository, scheduler: CronScheduler):
        self.repository = repository
        self.scheduler = scheduler
        self._locks: defaultdict[str, threading.Lock] = defaultdict(threading.Lock)
        self._locks_guard = threading.Lock()

    def create_watcher(
        self,
        query: str,
        schedule: str,
        notifications: Optional[list[NotificationTarget]] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
    ) -> Watcher:
        """
        Persist a new active watcher and register its timer.

        Raises:
            ValidationError: If the query is empty or the price bounds are invalid
            InvalidScheduleError: If the schedule doesn't parse
        """
        query = (query or "").strip()
        if not query:
            raise ValidationError("Query cannot be empty")
        validate_price_bounds(min_price, max_price)
        self.scheduler.validate(schedule)

        watcher = Watcher(
            query=query,
            schedule=schedule.strip(),
            notifications=list(notifications or []),
            status=WatcherStatus.ACTIVE,
            min_price=min_price,
            max_price=max_price,
        )
        watcher = self.repository.create(watcher)

        with self._lock_for(watcher.id):
            self.scheduler.register(watcher)

        logger.info(f"Created watcher {watcher.id} for {query!r} ({watcher.schedule})")
        return watcher

    def pause_watcher(self, watcher_id: str) -> Watcher:
        """
        Stop a watcher and remove its timer.

        Raises:
            NotFoundError: If the watcher doesn't exist
        """
        with self._lock_for(watcher_id):
            self.repository.set_status(watcher_id, WatcherStatus.STOPPED)
            self.scheduler.unregister(watcher_id)
            logger.info(f"Paused watcher {watcher_id}")
            return self.get_watcher(watcher_id)

    def resume_watcher(self, watcher_id: str) -> Watcher:
        """
        Reactivate a watcher and register its timer.

        Raises:
            NotFoundError: If the watcher doesn't exist
            InvalidScheduleError: If the stored schedule doesn't parse; the
                watcher stays stopped
        """
        with self._lock_for(watcher_id):
            watcher = self.get_watcher(watcher_id)
            self.scheduler.validate(watcher.schedule)

            self.repository.set_status(watcher_id, WatcherStatus.ACTIVE)
            watcher.status = WatcherStatus.ACTIVE
            self.scheduler.register(watcher)
            logger.info(f"Resumed watcher {watcher_id}")
            return watcher

    def reschedule_watcher(self, watcher_id: str, schedule: str) -> Watcher:
        """
        Change a watcher's schedule, replacing its timer if active.

        Raises:
            NotFoundError: If the watcher doesn't exist
            InvalidScheduleError: If the new schedule doesn't parse
        """
        self.scheduler.validate(schedule)
        schedule = schedule.strip()

        with self._lock_for(watcher_id):
            self.repository.update_schedule(watcher_id, schedule)
            watcher = self.get_watcher(watcher_id)
            if watcher.is_active:
                self.scheduler.register(watcher)
            logger.info(f"Rescheduled watcher {watcher_id} to {schedule}")
            return watcher

    def delete_watcher(self, watcher_id: str) -> None:
        """
        Remove a watcher and cancel its timer.

        An in-flight cycle finishes; its bookkeeping write is then discarded.

        Raises:
            NotFoundError: If the watcher doesn't exist
        """
        with self._lock_for(watcher_id):
            self.scheduler.unregister(watcher_id)
            self.repository.delete(watcher_id)
            logger.info(f"Deleted watcher {watcher_id}")

        with self._locks_guard:
            self._locks.pop(watcher_id, None)

    def get_watcher(self, watcher_id: str) -> Watcher:
        """
        Raises:
            NotFoundError: If the watcher doesn't exist
        """
        watcher = self.repository.get_by_id(watcher_id)
        if watcher is None:
            raise NotFoundError(watcher_id)
        return watcher

    def list_watchers(self) -> list[Watcher]:
        return self.repository.list_all()

    def run_now(self, watcher_id: str) -> Optional[RunOutcome]:
        """
        Run one cycle immediately, outside the watcher's schedule.

        Returns None if a cycle for the watcher is already running.
        """
        self.get_watcher(watcher_id)
        return self.scheduler.on_tick(watcher_id)

    def _lock_for(self, watcher_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks[watcher_id]
