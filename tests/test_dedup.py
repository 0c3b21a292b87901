"""
Deduplicator tests.
"""

import pytest

from conftest import make_listing
from src.watchers.dedup import AdDeduplicator


@pytest.fixture
def dedup():
    return AdDeduplicator(max_seen_ids=200)


class TestAdDeduplicator:
    """Test new-listing detection."""

    def test_first_run_records_baseline(self, dedup: AdDeduplicator):
        """Should notify nothing on the first run and remember every ID."""
        listings = [make_listing("a1"), make_listing("a2")]

        new, marker = dedup.diff(None, listings)

        assert new == []
        assert set(marker) == {"a1", "a2"}

    def test_first_run_with_no_results_sets_empty_baseline(self, dedup: AdDeduplicator):
        new, marker = dedup.diff(None, [])

        assert new == []
        assert marker == ()

    def test_detects_new_listing(self, dedup: AdDeduplicator):
        listings = [make_listing("a3"), make_listing("a1"), make_listing("a2")]

        new, marker = dedup.diff(("a1", "a2"), listings)

        assert [l.id for l in new] == ["a3"]
        assert set(marker) == {"a1", "a2", "a3"}

    def test_unchanged_results_are_idempotent(self, dedup: AdDeduplicator):
        """A second diff over the same results yields nothing new."""
        listings = [make_listing("a1"), make_listing("a2"), make_listing("a3")]

        _, marker = dedup.diff(("a1",), listings)
        new, marker_again = dedup.diff(marker, listings)

        assert new == []
        assert set(marker_again) == set(marker)

    def test_empty_results_keep_marker(self, dedup: AdDeduplicator):
        new, marker = dedup.diff(("a1", "a2"), [])

        assert new == []
        assert marker == ("a1", "a2")

    def test_duplicates_within_result_set(self, dedup: AdDeduplicator):
        """Should notify a repeated ID only once."""
        listings = [make_listing("a3"), make_listing("a3"), make_listing("a4")]

        new, marker = dedup.diff(("a1",), listings)

        assert [l.id for l in new] == ["a3", "a4"]
        assert marker.count("a3") == 1

    def test_vanished_listing_not_renotified(self, dedup: AdDeduplicator):
        """A listing that drops out and comes back within the window stays seen."""
        _, marker = dedup.diff(("a1", "a2"), [make_listing("a2")])
        new, _ = dedup.diff(marker, [make_listing("a1"), make_listing("a2")])

        assert new == []

    def test_marker_is_bounded(self):
        dedup = AdDeduplicator(max_seen_ids=3)
        previous = ("old1", "old2", "old3")

        _, marker = dedup.diff(previous, [make_listing("n1"), make_listing("n2")])

        assert marker == ("n1", "n2", "old1")

    def test_marker_keeps_all_current_ids_above_bound(self):
        """Current IDs are never truncated, even past the bound."""
        dedup = AdDeduplicator(max_seen_ids=2)
        listings = [make_listing(f"a{i}") for i in range(5)]

        new, marker = dedup.diff(("x",), listings)
        again, _ = dedup.diff(marker, listings)

        assert len(new) == 5
        assert len(marker) == 5
        assert again == []
