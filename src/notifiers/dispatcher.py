"""
Delivers new listings to notification targets with batching and retries.
"""

import logging
import math
import time
from typing import Optional

from src.config import NotificationsConfig
from src.data.client import Listing
from src.database.models import DiscordTarget, EmailTarget, NotificationTarget
from src.errors import DeliveryError
from .base import DispatchResult, Notifier, with_retry
from .discord import DiscordNotifier
from .email import EmailNotifier

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Sends batches of listings to one target at a time.

    ``dispatch`` never raises: every failure ends up in the returned
    DispatchResult and the log.
    """

    def __init__(self, config: NotificationsConfig, dry_run: bool = False):
        self.config = config
        self.dry_run = dry_run

    def dispatch(
        self, target: NotificationTarget, listings: list[Listing]
    ) -> DispatchResult:
        """
        Deliver listings to a single target.

        Args:
            target: Discord or email target
            listings: New listings, in the order they should be sent

        Returns:
            DispatchResult with counts of sent and failed messages
        """
        channel = getattr(getattr(target, "kind", None), "value", "unknown").lower()

        try:
            if not listings:
                logger.debug("No listings to notify about")
                return DispatchResult(channel=channel, skipped=True)

            if isinstance(target, DiscordTarget):
                return self._dispatch_discord(target, listings)
            elif isinstance(target, EmailTarget):
                return self._dispatch_email(target, listings)
            else:
                raise TypeError(f"Unsupported notification target: {target!r}")

        except Exception as e:
            logger.exception(f"Error sending {channel} notification for {len(listings)} listings")
            return DispatchResult(channel=channel, failed=1, error=str(e))

    def _dispatch_discord(
        self, target: DiscordTarget, listings: list[Listing]
    ) -> DispatchResult:
        discord = self.config.discord
        webhook_url = target.webhook_url or discord.webhook_url

        if not discord.enabled or not webhook_url:
            logger.debug("Discord notifications disabled or missing webhook URL")
            return DispatchResult(channel="discord", skipped=True)

        notifier = DiscordNotifier(
            webhook_url=webhook_url,
            username=discord.username,
            avatar_url=discord.avatar_url,
        )
        return self._deliver(notifier, listings)

    def _dispatch_email(
        self, target: EmailTarget, listings: list[Listing]
    ) -> DispatchResult:
        email = self.config.email
        if not email.enabled:
            return DispatchResult(channel="email", skipped=True)

        notifier = EmailNotifier(address=target.email or email.default_address)
        result = DispatchResult(channel="email")
        self._send(notifier, listings, None, result)
        return result

    def _deliver(self, notifier: Notifier, listings: list[Listing]) -> DispatchResult:
        """Send listings as batches or one message each, in order."""
        general = self.config.general
        result = DispatchResult(channel=notifier.channel)

        if general.enable_batching and len(listings) > 1:
            size = general.batch_size
            if notifier.max_listings is not None:
                size = min(size, notifier.max_listings)
            total_batches = math.ceil(len(listings) / size)

            for number, start in enumerate(range(0, len(listings), size), start=1):
                batch = listings[start:start + size]
                logger.info(
                    f"Sending {notifier.channel} notification batch "
                    f"{number}/{total_batches} ({len(batch)} listings)"
                )
                self._send(
                    notifier,
                    batch,
                    _batch_header(len(listings), number, total_batches),
                    result,
                )

                # Wait a bit between batches
                if number < total_batches:
                    time.sleep(general.batch_delay_seconds)
        else:
            logger.info(
                f"Sending {len(listings)} individual {notifier.channel} notifications"
            )
            for index, listing in enumerate(listings):
                self._send(notifier, [listing], None, result)

                # Avoid hitting rate limits
                if index < len(listings) - 1:
                    time.sleep(general.message_delay_seconds)

        return result

    def _send(
        self,
        notifier: Notifier,
        listings: list[Listing],
        content: Optional[str],
        result: DispatchResult,
    ) -> None:
        if self.dry_run:
            logger.info(
                f"Dry run: skipping {notifier.channel} message with {len(listings)} listings"
            )
            result.skipped = True
            return

        general = self.config.general
        try:
            with_retry(
                lambda: notifier.send(listings, content),
                general.max_retries,
                general.retry_delay_seconds,
            )
            result.sent += 1
        except DeliveryError as e:
            logger.error(
                f"Giving up on {notifier.channel} message with {len(listings)} listings: {e}"
            )
            result.failed += 1
            result.error = str(e)


def _batch_header(total: int, number: int, total_batches: int) -> str:
    header = f"Found {total} new listings!"
    if total_batches > 1:
        header = f"{header} (batch {number}/{total_batches})"
    return header
