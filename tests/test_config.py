"""Tests for configuration loading and validation."""

from dataclasses import replace

import pytest

from learnbridge.config import (
    AppConfig,
    BookingConfig,
    DashboardConfig,
    PortalConfig,
    _safe_bool,
    _safe_int,
    _validate_config,
)
from conftest import make_config


class TestConfigValidation:
    def test_default_config_passes_validation(self):
        _validate_config(AppConfig())  # should not raise

    def test_explicit_test_config_passes_validation(self):
        _validate_config(make_config())

    def test_zero_search_steps_rejected(self):
        config = make_config(search_steps=0)
        with pytest.raises(ValueError, match="SEARCH_STEPS"):
            _validate_config(config)

    def test_zero_max_slots_rejected(self):
        config = make_config(max_preferred_slots=0)
        with pytest.raises(ValueError, match="MAX_PREFERRED_SLOTS"):
            _validate_config(config)

    def test_negative_start_window_rejected(self):
        config = make_config(start_window_minutes=-5)
        with pytest.raises(ValueError, match="START_WINDOW_MINUTES"):
            _validate_config(config)

    def test_zero_start_window_allowed(self):
        _validate_config(make_config(start_window_minutes=0))

    def test_unknown_timezone_rejected(self):
        config = replace(make_config(), portal=PortalConfig(timezone="Mars/Olympus_Mons"))
        with pytest.raises(ValueError, match="PORTAL_TIMEZONE"):
            _validate_config(config)

    def test_zero_dashboard_limit_rejected(self):
        config = replace(make_config(), dashboard=DashboardConfig(query_limit=0))
        with pytest.raises(ValueError, match="DASHBOARD_QUERY_LIMIT"):
            _validate_config(config)


class TestConfigValues:
    def test_booking_defaults(self):
        booking = make_config().booking
        assert booking.default_duration_minutes == 60
        assert booking.max_preferred_slots == 5
        assert booking.search_stride_minutes == 60
        assert booking.search_steps == 24
        assert booking.start_window_minutes == 15
        assert booking.next_available_respects_schedule is False

    def test_tz_property(self):
        config = replace(make_config(), portal=PortalConfig(timezone="Europe/London"))
        assert config.tz.key == "Europe/London"

    def test_configs_are_frozen(self):
        with pytest.raises(Exception):
            BookingConfig().search_steps = 3  # type: ignore[misc]


class TestEnvParsing:
    def test_safe_int_reads_env(self, monkeypatch):
        monkeypatch.setenv("SEARCH_STEPS", "12")
        assert _safe_int("SEARCH_STEPS", "24") == 12

    def test_safe_int_default(self, monkeypatch):
        monkeypatch.delenv("SEARCH_STEPS", raising=False)
        assert _safe_int("SEARCH_STEPS", "24") == 24

    def test_safe_int_bad_value(self, monkeypatch):
        monkeypatch.setenv("SEARCH_STEPS", "lots")
        with pytest.raises(ValueError, match="SEARCH_STEPS"):
            _safe_int("SEARCH_STEPS", "24")

    @pytest.mark.parametrize("raw,expected", [
        ("true", True), ("1", True), ("Yes", True), ("off", False), ("0", False),
    ])
    def test_safe_bool(self, monkeypatch, raw, expected):
        monkeypatch.setenv("ENFORCE_START_WINDOW", raw)
        assert _safe_bool("ENFORCE_START_WINDOW", "true") is expected

    def test_safe_bool_bad_value(self, monkeypatch):
        monkeypatch.setenv("ENFORCE_START_WINDOW", "maybe")
        with pytest.raises(ValueError, match="ENFORCE_START_WINDOW"):
            _safe_bool("ENFORCE_START_WINDOW", "true")
