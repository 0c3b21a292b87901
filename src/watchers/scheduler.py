"""
Cron registry keeping one timer per active watcher.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional
from zoneinfo import ZoneInfo

from croniter import croniter, CroniterError

from src.database.models import Watcher
from src.database.repository import WatcherRepository
from src.errors import InvalidScheduleError
from .cycle import RunOutcome, WatcherRunCycle

logger = logging.getLogger(__name__)


def next_fire_time(schedule: str, after: datetime) -> datetime:
    """
    Compute the next time a cron expression fires after a given moment.

    Raises:
        InvalidScheduleError: If the expression cannot be parsed
    """
    if not schedule or not schedule.strip():
        raise InvalidScheduleError(schedule, "empty expression")
    try:
        return croniter(schedule.strip(), after).get_next(datetime)
    except (CroniterError, ValueError, KeyError) as e:
        raise InvalidScheduleError(schedule, str(e))


@dataclass
class _TimerHandle:
    """Live timer for one watcher."""

    watcher_id: str
    schedule: str
    next_run: datetime
    timer: Optional[Any] = None
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True
        if self.timer is not None:
            self.timer.cancel()


class CronScheduler:
    """Maintains exactly one recurring timer per active watcher.

    Registering an ID that already has a timer cancels the old one first, so
    every schedule change is a plain replace. Timers are only armed once the
    scheduler is started; before that ``register`` just records the handle.
    """

    def __init__(
        self,
        run_cycle: WatcherRunCycle,
        repository: WatcherRepository,
        timezone: str = "UTC",
        timer_factory: Callable[..., Any] = threading.Timer,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.run_cycle = run_cycle
        self.repository = repository
        self.tz = ZoneInfo(timezone)
        self.timer_factory = timer_factory
        self.clock = clock or (lambda: datetime.now(self.tz))

        self._timers: dict[str, _TimerHandle] = {}
        self._in_flight: set[str] = set()
        self._lock = threading.RLock()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        """
        Register every active watcher and arm the timers.

        Raises:
            Exception: Whatever the repository raises when listing watchers
        """
        watchers = self.repository.list_active()

        with self._lock:
            self._running = True
            for watcher in watchers:
                try:
                    self.register(watcher)
                except InvalidScheduleError as e:
                    logger.error(f"Skipping watcher {watcher.id}: {e}")

        logger.info(f"Scheduler started with {len(self._timers)} watchers")

    def stop(self) -> None:
        """Cancel all timers. Cycles already running are left to finish."""
        with self._lock:
            self._running = False
            for handle in self._timers.values():
                handle.cancel()
            self._timers.clear()
        logger.info("Scheduler stopped")

    def validate(self, schedule: str) -> None:
        """Raise InvalidScheduleError if the schedule can't be used."""
        next_fire_time(schedule, self.clock())

    def register(self, watcher: Watcher) -> None:
        """
        Create or replace the timer for a watcher.

        Raises:
            InvalidScheduleError: If the schedule doesn't parse; any existing
                timer for the watcher is left as it was
        """
        next_run = next_fire_time(watcher.schedule, self.clock())

        with self._lock:
            existing = self._timers.pop(watcher.id, None)
            if existing is not None:
                existing.cancel()

            handle = _TimerHandle(watcher.id, watcher.schedule, next_run)
            self._timers[watcher.id] = handle
            if self._running:
                self._arm(handle)

        logger.debug(f"Registered watcher {watcher.id} ({watcher.schedule}), next run {next_run}")

    def unregister(self, watcher_id: str) -> None:
        """Cancel and forget a watcher's timer; no-op if there is none."""
        with self._lock:
            handle = self._timers.pop(watcher_id, None)
        if handle is not None:
            handle.cancel()
            logger.debug(f"Unregistered watcher {watcher_id}")

    def reconcile(self) -> None:
        """Bring timers in line with the watchers currently stored as active."""
        active = {w.id: w for w in self.repository.list_active()}

        with self._lock:
            for watcher_id in set(self._timers) - set(active):
                self.unregister(watcher_id)

            for watcher_id, watcher in active.items():
                handle = self._timers.get(watcher_id)
                if handle is not None and handle.schedule == watcher.schedule:
                    continue
                try:
                    self.register(watcher)
                except InvalidScheduleError as e:
                    logger.error(f"Skipping watcher {watcher_id}: {e}")

    def on_tick(self, watcher_id: str) -> Optional[RunOutcome]:
        """
        Run one cycle for a watcher unless one is already in flight.

        Returns:
            The cycle's outcome, or None if the tick was skipped or crashed
        """
        with self._lock:
            if watcher_id in self._in_flight:
                logger.info(f"Watcher {watcher_id} is still running, skipping tick")
                return None
            self._in_flight.add(watcher_id)

        try:
            return self.run_cycle.run(watcher_id)
        except Exception as e:
            logger.exception(f"Run cycle for watcher {watcher_id} crashed: {e}")
            return None
        finally:
            with self._lock:
                self._in_flight.discard(watcher_id)

    def is_registered(self, watcher_id: str) -> bool:
        with self._lock:
            return watcher_id in self._timers

    def is_running(self, watcher_id: str) -> bool:
        with self._lock:
            return watcher_id in self._in_flight

    def registered_ids(self) -> set[str]:
        with self._lock:
            return set(self._timers)

    def next_run(self, watcher_id: str) -> Optional[datetime]:
        with self._lock:
            handle = self._timers.get(watcher_id)
            return handle.next_run if handle else None

    def _arm(self, handle: _TimerHandle) -> None:
        delay = max(0.0, (handle.next_run - self.clock()).total_seconds())
        timer = self.timer_factory(delay, self._fire, args=(handle,))
        timer.daemon = True
        handle.timer = timer
        timer.start()

    def _fire(self, handle: _TimerHandle) -> None:
        with self._lock:
            if handle.cancelled or self._timers.get(handle.watcher_id) is not handle:
                return
            # Arm the next firing before running so a slow cycle can't delay it.
            # Never before the boundary just fired, even if the timer woke early.
            handle.next_run = next_fire_time(
                handle.schedule, max(handle.next_run, self.clock())
            )
            self._arm(handle)

        self.on_tick(handle.watcher_id)
