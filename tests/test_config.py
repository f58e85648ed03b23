"""
Tests for Settings
Tests environment overrides and scheduler defaults
"""

import pytest

from config import Settings


class TestSettings:

    @pytest.mark.unit
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("UPCOMING_SWEEP_INTERVAL_SECONDS", raising=False)
        monkeypatch.delenv("AUTO_MISS_ENABLED", raising=False)
        settings = Settings(_env_file=None)

        assert settings.UPCOMING_SWEEP_INTERVAL_SECONDS == 300
        assert settings.AUTO_MISS_ENABLED is False

    @pytest.mark.unit
    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("UPCOMING_SWEEP_INTERVAL_SECONDS", "60")
        monkeypatch.setenv("AUTO_MISS_ENABLED", "true")
        settings = Settings(_env_file=None)

        assert settings.UPCOMING_SWEEP_INTERVAL_SECONDS == 60
        assert settings.AUTO_MISS_ENABLED is True

    @pytest.mark.unit
    def test_names_are_case_sensitive(self, monkeypatch):
        monkeypatch.delenv("UPCOMING_SWEEP_INTERVAL_SECONDS", raising=False)
        monkeypatch.setenv("upcoming_sweep_interval_seconds", "60")
        settings = Settings(_env_file=None)

        assert settings.UPCOMING_SWEEP_INTERVAL_SECONDS == 300
