"""
Base notifier classes.
"""

import logging
import random
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from src.data.client import Listing
from src.errors import DeliveryError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class DispatchResult:
    """Outcome of delivering listings to one notification target."""

    channel: str
    sent: int = 0
    failed: int = 0
    skipped: bool = False
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.failed == 0 and self.error is None


class Notifier(ABC):
    """Abstract base class for notifiers."""

    channel = "unknown"
    # Most listings one message can carry; None means no limit
    max_listings: Optional[int] = None

    @abstractmethod
    def send(self, listings: list[Listing], content: Optional[str] = None) -> None:
        """
        Send one message describing the given listings.

        Args:
            listings: Listings to include in the message
            content: Optional header line

        Raises:
            DeliveryError: If the message could not be delivered
        """
        pass


def backoff_delay(attempt: int, retry_delay: float) -> float:
    """Delay after a failed attempt (0-indexed), with +/-10% jitter."""
    return retry_delay * (1.5**attempt) * (0.9 + random.random() * 0.2)


def with_retry(fn: Callable[[], T], max_retries: int, retry_delay: float) -> T:
    """
    Call fn until it succeeds or max_retries attempts have failed.

    Args:
        fn: Operation to attempt
        max_retries: Total number of attempts
        retry_delay: Base delay in seconds between attempts

    Returns:
        Result of the first successful attempt

    Raises:
        DeliveryError: The last error once all attempts failed
    """
    attempts = max(1, max_retries)
    last_error: Optional[Exception] = None

    for attempt in range(attempts):
        try:
            return fn()
        except DeliveryError as e:
            last_error = e
            logger.warning(f"Retry attempt {attempt + 1}/{attempts} failed: {e}")

            if attempt < attempts - 1:
                time.sleep(backoff_delay(attempt, retry_delay))

    raise last_error or DeliveryError("Operation failed after multiple retries")
