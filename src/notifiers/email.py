"""
Email notifier.

Delivery is not wired up yet; when the feature flag is on the notifier only
records what would have been sent.
"""

import logging
from typing import Optional

from src.data.client import Listing
from .base import Notifier

logger = logging.getLogger(__name__)


class EmailNotifier(Notifier):
    """Logs email notifications for a single recipient."""

    channel = "email"

    def __init__(self, address: Optional[str] = None):
        self.address = address

    def send(self, listings: list[Listing], content: Optional[str] = None) -> None:
        logger.info(
            f"Email notification would be sent to {self.address or 'default'}: "
            f"{self._create_subject(listings)!r}"
        )

    def _create_subject(self, listings: list[Listing]) -> str:
        """Create email subject."""
        if len(listings) == 1:
            return f"[Adwatch] New listing: {listings[0].title}"
        return f"[Adwatch] {len(listings)} new listings"
