"""
Pytest configuration and shared fixtures.
"""

from datetime import datetime
from typing import Optional

import pytest

from src.config import NotificationsConfig
from src.data.client import Listing
from src.database.connection import Database
from src.database.repository import WatcherRepository
from src.errors import ProviderError


class FakeTimer:
    """Stands in for threading.Timer; fires only when told to."""

    def __init__(self, interval, function, args=None, kwargs=None):
        self.interval = interval
        self.function = function
        self.args = args or ()
        self.kwargs = kwargs or {}
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.function(*self.args, **self.kwargs)


class TimerFactory:
    """Records every timer the scheduler creates."""

    def __init__(self):
        self.timers: list[FakeTimer] = []

    def __call__(self, interval, function, args=None, kwargs=None):
        timer = FakeTimer(interval, function, args=args, kwargs=kwargs)
        self.timers.append(timer)
        return timer

    @property
    def live(self) -> list[FakeTimer]:
        return [t for t in self.timers if t.started and not t.cancelled]


class FakeSearchClient:
    """Search provider returning queued result sets."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = []

    def search(self, query, min_price=None, max_price=None):
        self.calls.append((query, min_price, max_price))
        result = self.results.pop(0) if self.results else []
        if isinstance(result, Exception):
            raise result
        return result


def make_listing(
    ad_id: str,
    title: Optional[str] = None,
    price: Optional[float] = 1500,
    image_url: Optional[str] = None,
    description: str = "Fint skick",
) -> Listing:
    return Listing(
        id=ad_id,
        title=title or f"Listing {ad_id}",
        url=f"https://www.blocket.se/annons/{ad_id}",
        description=description,
        price_value=price,
        price_suffix=" kr",
        image_url=image_url,
    )


@pytest.fixture
def db():
    """Create in-memory database with schema."""
    db = Database(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def watcher_repo(db):
    return WatcherRepository(db)


@pytest.fixture
def timer_factory():
    return TimerFactory()


@pytest.fixture
def fixed_now():
    return datetime(2024, 5, 1, 12, 0, 0)


@pytest.fixture
def notifications_config():
    """Notification config with no real delays."""
    config = NotificationsConfig()
    config.discord.webhook_url = "https://discord.com/api/webhooks/123/default"
    config.general.batch_delay_seconds = 0
    config.general.message_delay_seconds = 0
    config.general.retry_delay_seconds = 0
    return config


@pytest.fixture
def sample_discord_webhook_url():
    """Sample Discord webhook URL for testing."""
    return "https://discord.com/api/webhooks/123456789/abcdefghijklmnop"


@pytest.fixture
def provider_error():
    return ProviderError("Search failed with HTTP 503: Service Unavailable")
