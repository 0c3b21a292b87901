"""
Detects which listings of a poll have not been seen before.
"""

from typing import Optional, Sequence

from src.data.client import Listing


class AdDeduplicator:
    """Diffs fresh search results against a watcher's seen-ID marker.

    The marker is a tuple of listing IDs, most recently seen first. ``None``
    means the watcher has never completed a run; that first run only records
    a baseline so creating a watcher doesn't flood its channels.
    """

    def __init__(self, max_seen_ids: int = 200):
        self.max_seen_ids = max_seen_ids

    def diff(
        self,
        previous: Optional[Sequence[str]],
        listings: Sequence[Listing],
    ) -> tuple[list[Listing], tuple[str, ...]]:
        """
        Split listings into new ones and compute the updated marker.

        Args:
            previous: Marker from the last successful run, or None
            listings: Listings returned by the current poll

        Returns:
            Tuple of (new listings in result order, updated marker)
        """
        unique = _unique_by_id(listings)

        if previous is None:
            return [], tuple(listing.id for listing in unique)[: self._limit(unique)]

        previous = tuple(previous)
        if not unique:
            return [], previous

        seen = set(previous)
        new_listings = [listing for listing in unique if listing.id not in seen]

        current_ids = [listing.id for listing in unique]
        current_set = set(current_ids)
        older = [ad_id for ad_id in previous if ad_id not in current_set]
        marker = tuple(current_ids + older)[: self._limit(unique)]

        return new_listings, marker

    def _limit(self, current: Sequence[Listing]) -> int:
        # Current IDs are always kept so an unchanged result set is never renotified
        return max(self.max_seen_ids, len(current))


def _unique_by_id(listings: Sequence[Listing]) -> list[Listing]:
    seen: set[str] = set()
    unique = []
    for listing in listings:
        if listing.id in seen:
            continue
        seen.add(listing.id)
        unique.append(listing)
    return unique
