"""
Centralized configuration with environment variable overrides.

Booking policy knobs (durations, search bounds, the start-session window),
dashboard limits and portal display settings all live here. Nothing is
hardcoded in the booking domain or the services.
"""

import logging
import os
from dataclasses import dataclass, field
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_bool(env_var: str, default: str) -> bool:
    """Parse a boolean flag from an env var."""
    raw = os.getenv(env_var, default).strip().lower()
    if raw in _TRUE_VALUES:
        return True
    if raw in _FALSE_VALUES:
        return False
    raise ValueError(f"Invalid boolean for {env_var}: {raw!r}")


@dataclass(frozen=True)
class PortalConfig:
    """Portal-wide display and locale settings."""

    name: str = os.getenv("PORTAL_NAME", "LearnBridge Support Services")
    timezone: str = os.getenv("PORTAL_TIMEZONE", "UTC")
    online_venue_placeholder: str = os.getenv(
        "ONLINE_VENUE_PLACEHOLDER", "Online (details via chat)"
    )


@dataclass(frozen=True)
class BookingConfig:
    """Negotiation, conflict and session-start policy."""

    default_duration_minutes: int = _safe_int("DEFAULT_DURATION_MINUTES", "60")
    max_preferred_slots: int = _safe_int("MAX_PREFERRED_SLOTS", "5")
    search_stride_minutes: int = _safe_int("SEARCH_STRIDE_MINUTES", "60")
    search_steps: int = _safe_int("SEARCH_STEPS", "24")
    enforce_start_window: bool = _safe_bool("ENFORCE_START_WINDOW", "true")
    start_window_minutes: int = _safe_int("START_WINDOW_MINUTES", "15")
    next_available_respects_schedule: bool = _safe_bool(
        "NEXT_AVAILABLE_RESPECTS_SCHEDULE", "false"
    )
    notify_on_transitions: bool = _safe_bool("NOTIFY_ON_TRANSITIONS", "true")


@dataclass(frozen=True)
class DashboardConfig:
    """Bounds on the record sets fetched for read-side views."""

    notification_limit: int = _safe_int("NOTIFICATION_LIMIT", "50")
    query_limit: int = _safe_int("DASHBOARD_QUERY_LIMIT", "1000")
    chat_history_limit: int = _safe_int("CHAT_HISTORY_LIMIT", "20")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    portal: PortalConfig = field(default_factory=PortalConfig)
    booking: BookingConfig = field(default_factory=BookingConfig)
    dashboard: DashboardConfig = field(default_factory=DashboardConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.portal.timezone)


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    for name, value in [
        ("DEFAULT_DURATION_MINUTES", config.booking.default_duration_minutes),
        ("MAX_PREFERRED_SLOTS", config.booking.max_preferred_slots),
        ("SEARCH_STRIDE_MINUTES", config.booking.search_stride_minutes),
        ("SEARCH_STEPS", config.booking.search_steps),
        ("NOTIFICATION_LIMIT", config.dashboard.notification_limit),
        ("DASHBOARD_QUERY_LIMIT", config.dashboard.query_limit),
        ("CHAT_HISTORY_LIMIT", config.dashboard.chat_history_limit),
    ]:
        if value < 1:
            raise ValueError(f"{name} must be >= 1, got {value}")

    if config.booking.start_window_minutes < 0:
        raise ValueError(
            f"START_WINDOW_MINUTES must be >= 0, got {config.booking.start_window_minutes}"
        )

    try:
        ZoneInfo(config.portal.timezone)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(
            f"PORTAL_TIMEZONE is not a known time zone: {config.portal.timezone!r}"
        ) from None


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logger.info("Configuration loaded for '%s'", config.portal.name)
    return config


# Singleton instance
settings = load_config()
