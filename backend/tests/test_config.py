"""Tests for application settings."""

import pytest
from pydantic import ValidationError

from roadheat.config import Settings


class TestSettings:
    """Tests for Settings loading from the environment."""

    def test_defaults(self, monkeypatch):
        """Refresh timings default to 90 s polling and a 5 s debounce."""
        monkeypatch.delenv("MQTT_HOST", raising=False)
        settings = Settings(_env_file=None)

        assert settings.poll_interval_seconds == 90.0
        assert settings.realtime_debounce_seconds == 5.0
        assert settings.max_heatmap_cells == 500
        assert settings.report_source == "sql"
        assert settings.report_lookback_days is None
        assert settings.fetch_timeout_seconds is None
        assert settings.mqtt_enabled is False

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("POLL_INTERVAL_SECONDS", "30")
        monkeypatch.setenv("MQTT_HOST", "broker.local")
        monkeypatch.setenv("REPORT_SOURCE", "HTTP")
        monkeypatch.setenv("REPORT_LOOKBACK_DAYS", "60")
        settings = Settings(_env_file=None)

        assert settings.poll_interval_seconds == 30.0
        assert settings.mqtt_enabled is True
        assert settings.report_source == "http"
        assert settings.report_lookback_days == 60

    def test_cors_origins_comma_separated(self):
        settings = Settings(_env_file=None, cors_origins="http://a.test, http://b.test")
        assert settings.cors_origins == ["http://a.test", "http://b.test"]

    def test_invalid_report_source(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, report_source="redis")

    def test_cell_cap_cannot_exceed_500(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, max_heatmap_cells=1000)
