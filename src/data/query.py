"""
Translates watchers into search provider calls.
"""

import logging

from src.database.models import Watcher
from src.errors import ValidationError
from .client import BlocketClient, Listing

logger = logging.getLogger(__name__)


class QueryExecutor:
    """Runs a watcher's query against the search provider."""

    def __init__(self, client: BlocketClient):
        self.client = client

    def execute(self, watcher: Watcher) -> list[Listing]:
        """
        Search listings for a watcher.

        Raises:
            ValidationError: If the price bounds are inverted
            ProviderError: If the provider call fails
        """
        validate_price_bounds(watcher.min_price, watcher.max_price)

        listings = self.client.search(
            watcher.query,
            min_price=watcher.min_price,
            max_price=watcher.max_price,
        )
        logger.debug(f"Query {watcher.query!r} returned {len(listings)} listings")
        return listings


def validate_price_bounds(min_price, max_price) -> None:
    """Reject negative or inverted price bounds."""
    for value in (min_price, max_price):
        if value is not None and value < 0:
            raise ValidationError(f"Price bound cannot be negative: {value}")
    if min_price is not None and max_price is not None and min_price > max_price:
        raise ValidationError(
            f"min_price ({min_price}) is greater than max_price ({max_price})"
        )
