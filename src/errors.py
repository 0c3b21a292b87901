"""
Exception types shared across the watcher engine.
"""


class AdwatchError(Exception):
    """Base class for all Adwatch errors."""

    pass


class InvalidScheduleError(AdwatchError):
    """Raised when a cron expression cannot be parsed."""

    def __init__(self, schedule: str, reason: str = ""):
        self.schedule = schedule
        message = f"Invalid schedule: {schedule!r}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class ValidationError(AdwatchError):
    """Raised when watcher fields or query bounds are malformed."""

    pass


class ProviderError(AdwatchError):
    """Raised when the search provider fails or returns unparseable data."""

    pass


class DeliveryError(AdwatchError):
    """Raised when a single notification attempt fails."""

    pass


class NotFoundError(AdwatchError):
    """Raised when a watcher record no longer exists."""

    def __init__(self, watcher_id: str):
        self.watcher_id = watcher_id
        super().__init__(f"Watcher not found: {watcher_id}")
