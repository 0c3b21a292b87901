"""
One poll-diff-notify execution for a single watcher.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional

from src.config import NotificationsConfig
from src.data.client import Listing
from src.data.query import QueryExecutor
from src.database.models import DiscordTarget, EmailTarget, NotificationTarget, Watcher
from src.database.repository import WatcherRepository
from src.errors import NotFoundError, ProviderError, ValidationError
from src.notifiers.base import DispatchResult
from src.notifiers.dispatcher import NotificationDispatcher
from .dedup import AdDeduplicator

logger = logging.getLogger(__name__)


@dataclass
class RunOutcome:
    """Result of one run cycle."""

    watcher_id: str
    success: bool
    new_listings: list[Listing] = field(default_factory=list)
    marker: Optional[tuple[str, ...]] = None
    dispatch_results: list[DispatchResult] = field(default_factory=list)
    error: Optional[str] = None


class WatcherRunCycle:
    """Runs query, dedup, dispatch and bookkeeping for one watcher."""

    def __init__(
        self,
        repository: WatcherRepository,
        executor: QueryExecutor,
        deduplicator: AdDeduplicator,
        dispatcher: NotificationDispatcher,
        notifications: NotificationsConfig,
        clock: Callable[[], datetime] = datetime.now,
        claim_timeout: timedelta = timedelta(minutes=30),
    ):
        self.repository = repository
        self.executor = executor
        self.deduplicator = deduplicator
        self.dispatcher = dispatcher
        self.notifications = notifications
        self.clock = clock
        self.claim_timeout = claim_timeout

    def run(self, watcher_id: str) -> RunOutcome:
        """
        Execute one cycle.

        Provider and validation failures abort the cycle without touching
        bookkeeping. Notification failures are logged and never stop the
        bookkeeping write. A watcher claimed by another process (the daemon
        or a CLI run) is skipped.
        """
        watcher = self.repository.get_by_id(watcher_id)
        if watcher is None:
            logger.warning(f"Watcher {watcher_id} no longer exists, skipping run")
            return RunOutcome(watcher_id, success=False, error="not found")
        if not watcher.is_active:
            logger.info(f"Watcher {watcher_id} is stopped, skipping run")
            return RunOutcome(watcher_id, success=False, error="stopped")

        now = self.clock()
        if not self.repository.claim_run(watcher_id, now, now - self.claim_timeout):
            logger.info(f"Watcher {watcher_id} is running elsewhere, skipping run")
            return RunOutcome(watcher_id, success=False, error="already running")

        try:
            # Re-read so counters written by the previous claim holder are seen
            watcher = self.repository.get_by_id(watcher_id)
            if watcher is None:
                return RunOutcome(watcher_id, success=False, error="not found")
            return self._run_claimed(watcher)
        finally:
            self.repository.release_run(watcher_id)

    def _run_claimed(self, watcher: Watcher) -> RunOutcome:
        watcher_id = watcher.id

        try:
            listings = self.executor.execute(watcher)
        except (ProviderError, ValidationError) as e:
            logger.error(f"Query failed for watcher {watcher_id} ({watcher.query!r}): {e}")
            return RunOutcome(watcher_id, success=False, error=str(e))

        new_listings, marker = self.deduplicator.diff(watcher.seen_ids, listings)
        if watcher.seen_ids is None:
            logger.info(
                f"Watcher {watcher_id} recorded a baseline of {len(marker)} listings"
            )

        results = []
        if new_listings:
            logger.info(f"Watcher {watcher_id} found {len(new_listings)} new listings")
            results = self._notify(watcher, new_listings)

        outcome = RunOutcome(
            watcher_id,
            success=True,
            new_listings=new_listings,
            marker=marker,
            dispatch_results=results,
        )

        try:
            self.repository.update_run_result(
                watcher_id,
                last_run=self.clock(),
                number_of_runs=watcher.number_of_runs + 1,
                seen_ids=marker,
            )
        except NotFoundError:
            logger.warning(f"Watcher {watcher_id} was deleted during its run, discarding result")
            outcome.error = "deleted during run"

        return outcome

    def targets_for(self, watcher: Watcher) -> list[NotificationTarget]:
        """Watcher's targets, or the configured defaults when it has none."""
        if watcher.notifications:
            return list(watcher.notifications)
        targets: list[NotificationTarget] = [DiscordTarget()]
        if self.notifications.email.enabled:
            targets.append(EmailTarget())
        return targets

    def _notify(self, watcher: Watcher, listings: list[Listing]) -> list[DispatchResult]:
        """Dispatch to every target concurrently and wait for all of them."""
        targets = self.targets_for(watcher)

        with ThreadPoolExecutor(
            max_workers=len(targets), thread_name_prefix=f"notify-{watcher.id}"
        ) as pool:
            futures = [
                pool.submit(self.dispatcher.dispatch, target, listings)
                for target in targets
            ]
            results = [future.result() for future in futures]

        for result in results:
            if not result.success:
                logger.error(
                    f"Watcher {watcher.id}: {result.channel} delivery failed "
                    f"({result.failed} messages): {result.error}"
                )
        return results
