"""
Data models for Adwatch.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union

from src.errors import ValidationError


class WatcherStatus(str, Enum):
    """Whether the scheduler keeps a live timer for a watcher."""

    ACTIVE = "active"
    STOPPED = "stopped"


class NotificationKind(str, Enum):
    """Notification channel kinds."""

    DISCORD = "DISCORD"
    EMAIL = "EMAIL"


@dataclass(frozen=True)
class DiscordTarget:
    """Discord webhook target. None means the configured default webhook."""

    webhook_url: Optional[str] = None
    kind: NotificationKind = field(default=NotificationKind.DISCORD, init=False)


@dataclass(frozen=True)
class EmailTarget:
    """Email target."""

    email: Optional[str] = None
    kind: NotificationKind = field(default=NotificationKind.EMAIL, init=False)


NotificationTarget = Union[DiscordTarget, EmailTarget]


def target_to_dict(target: NotificationTarget) -> dict[str, Any]:
    """Serialize a notification target for storage."""
    if isinstance(target, DiscordTarget):
        return {"kind": target.kind.value, "webhook_url": target.webhook_url}
    elif isinstance(target, EmailTarget):
        return {"kind": target.kind.value, "email": target.email}
    raise ValidationError(f"Unknown notification target: {target!r}")


def target_from_dict(data: dict[str, Any]) -> NotificationTarget:
    """
    Parse a stored notification target.

    Raises:
        ValidationError: If the kind is missing or unknown
    """
    kind = str(data.get("kind", "")).upper()
    if kind == NotificationKind.DISCORD.value:
        return DiscordTarget(webhook_url=data.get("webhook_url") or None)
    elif kind == NotificationKind.EMAIL.value:
        return EmailTarget(email=data.get("email") or None)
    raise ValidationError(f"Unknown notification kind: {data.get('kind')!r}")


@dataclass
class Watcher:
    """A persisted recurring search task."""

    query: str
    schedule: str  # cron expression, e.g. "*/5 * * * *"
    notifications: list[NotificationTarget] = field(default_factory=list)
    status: WatcherStatus = WatcherStatus.ACTIVE
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    id: Optional[str] = None
    last_run: Optional[datetime] = None
    number_of_runs: int = 0
    seen_ids: Optional[tuple[str, ...]] = None  # None = never completed a run
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == WatcherStatus.ACTIVE


@dataclass
class Setting:
    """Key/value override for global search defaults."""

    key: str
    value: str
    updated_at: Optional[datetime] = None
