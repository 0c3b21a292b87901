"""
Configuration loading and validation.
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml


class ConfigValidationError(Exception):
    """Raised when configuration is invalid."""

    pass


@dataclass
class DatabaseConfig:
    """Database configuration."""

    path: str = "data/adwatch.db"


@dataclass
class SearchConfig:
    """Default query parameters merged into every watcher search."""

    limit: int = 60
    sort: str = "rel"
    listing_type: str = "s"
    status: str = "active"
    geolocation: int = 3
    include: str = "extend_with_shipping"
    base_url: str = "https://api.blocket.se"
    token_url: str = (
        "https://www.blocket.se/api/adout-api-route/refresh-token-and-validate-session"
    )
    timeout_seconds: float = 15.0


@dataclass
class ScheduleConfig:
    """Schedule configuration."""

    timezone: str = "Europe/Stockholm"
    reconcile_interval_seconds: int = 60


@dataclass
class DiscordNotificationConfig:
    """Discord notification settings."""

    enabled: bool = True
    webhook_url: Optional[str] = None
    username: str = "Blocket Bot"
    avatar_url: Optional[str] = None


@dataclass
class EmailNotificationConfig:
    """Email notification settings. Delivery is behind a feature flag."""

    enabled: bool = False
    default_address: Optional[str] = None


@dataclass
class GeneralNotificationConfig:
    """Batching and retry settings shared by all channels."""

    enable_batching: bool = True
    batch_size: int = 5
    batch_delay_seconds: float = 2.0
    message_delay_seconds: float = 0.5
    max_retries: int = 3
    retry_delay_seconds: float = 1.0


@dataclass
class NotificationsConfig:
    """Notifications configuration."""

    discord: DiscordNotificationConfig = field(
        default_factory=DiscordNotificationConfig
    )
    email: EmailNotificationConfig = field(default_factory=EmailNotificationConfig)
    general: GeneralNotificationConfig = field(
        default_factory=GeneralNotificationConfig
    )


@dataclass
class AdvancedConfig:
    """Advanced configuration."""

    log_level: str = "INFO"
    max_seen_ids: int = 200
    # A run claim older than this is treated as left behind by a crashed process
    run_claim_timeout_seconds: int = 1800


@dataclass
class AppConfig:
    """Main application configuration."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    schedule: ScheduleConfig = field(default_factory=ScheduleConfig)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)
    advanced: AdvancedConfig = field(default_factory=AdvancedConfig)


# Settings table keys that override SearchConfig fields
SETTING_KEYS = {
    "BLOCKET_QUERY_LIMIT": ("limit", int),
    "BLOCKET_QUERY_SORT": ("sort", str),
    "BLOCKET_QUERY_LISTING_TYPE": ("listing_type", str),
    "BLOCKET_QUERY_STATUS": ("status", str),
    "BLOCKET_QUERY_GEOLOCATION": ("geolocation", int),
    "BLOCKET_QUERY_INCLUDE": ("include", str),
}


def _substitute_env_vars(value: Any) -> Any:
    """Substitute environment variables in string values."""
    if isinstance(value, str):
        # Match ${VAR_NAME} pattern
        pattern = r"\$\{([^}]+)\}"
        matches = re.findall(pattern, value)
        for var_name in matches:
            env_value = os.environ.get(var_name, "")
            value = value.replace(f"${{{var_name}}}", env_value)
        return value
    elif isinstance(value, dict):
        return {k: _substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_substitute_env_vars(item) for item in value]
    return value


def _validate_timezone(timezone: str) -> None:
    """Validate timezone string."""
    if not timezone:
        raise ConfigValidationError("Timezone cannot be empty")
    try:
        ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError):
        raise ConfigValidationError(f"Unknown timezone: {timezone}")


def _validate_config(config_dict: dict[str, Any]) -> None:
    """Validate configuration values."""
    db_config = config_dict.get("database") or {}
    db_path = db_config.get("path", DatabaseConfig.path)
    if not db_path:
        raise ConfigValidationError("Database path is required")

    path = Path(db_path)
    parent = path.parent
    if parent.exists() and not os.access(parent, os.W_OK):
        raise ConfigValidationError(f"Database path not writable: {parent}")

    schedule = config_dict.get("schedule") or {}
    _validate_timezone(schedule.get("timezone", ScheduleConfig.timezone))

    general = (config_dict.get("notifications") or {}).get("general") or {}
    if general.get("batch_size", 1) < 1:
        raise ConfigValidationError("Batch size must be at least 1")
    if general.get("max_retries", 1) < 1:
        raise ConfigValidationError("Max retries must be at least 1")
    for key in ("batch_delay_seconds", "message_delay_seconds", "retry_delay_seconds"):
        if general.get(key, 0) < 0:
            raise ConfigValidationError(f"{key} cannot be negative")

    advanced = config_dict.get("advanced") or {}
    if advanced.get("run_claim_timeout_seconds", 1) <= 0:
        raise ConfigValidationError("run_claim_timeout_seconds must be positive")


def build_config(config_dict: Mapping[str, Any]) -> AppConfig:
    """
    Build an AppConfig from a raw (already substituted) mapping.

    Raises:
        ConfigValidationError: If configuration is invalid
    """
    config_dict = dict(config_dict)
    _validate_config(config_dict)

    notif_dict = config_dict.get("notifications") or {}

    try:
        notifications = NotificationsConfig(
            discord=DiscordNotificationConfig(**(notif_dict.get("discord") or {})),
            email=EmailNotificationConfig(**(notif_dict.get("email") or {})),
            general=GeneralNotificationConfig(**(notif_dict.get("general") or {})),
        )
        return AppConfig(
            database=DatabaseConfig(**(config_dict.get("database") or {})),
            search=SearchConfig(**(config_dict.get("search") or {})),
            schedule=ScheduleConfig(**(config_dict.get("schedule") or {})),
            notifications=notifications,
            advanced=AdvancedConfig(**(config_dict.get("advanced") or {})),
        )
    except TypeError as e:
        raise ConfigValidationError(f"Unknown configuration key: {e}")


def load_config(config_path: str) -> AppConfig:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to configuration file

    Returns:
        AppConfig instance

    Raises:
        ConfigValidationError: If configuration is invalid
        FileNotFoundError: If config file doesn't exist
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(path) as f:
        raw_config = yaml.safe_load(f) or {}

    return build_config(_substitute_env_vars(raw_config))


def apply_setting_overrides(search: SearchConfig, settings: Mapping[str, str]) -> SearchConfig:
    """
    Merge stored settings into the search defaults.

    Unknown keys are ignored; values that don't convert raise.

    Raises:
        ConfigValidationError: If a stored value has the wrong type
    """
    for key, (attr, cast) in SETTING_KEYS.items():
        raw = settings.get(key)
        if raw is None or raw == "":
            continue
        try:
            setattr(search, attr, cast(raw))
        except ValueError:
            raise ConfigValidationError(f"Invalid value for {key}: {raw!r}")
    return search


def default_settings(search: SearchConfig) -> dict[str, str]:
    """Settings rows seeded on first start."""
    return {key: str(getattr(search, attr)) for key, (attr, _) in SETTING_KEYS.items()}
