"""Tests for configuration precedence and validation."""

from unittest.mock import patch

import pytest
from pydantic import ValidationError

from threadcleaner.concurrency.thread_cleaner import ThreadCleaner
from threadcleaner.config import configuration
from threadcleaner.config.configuration import get_default_values, get_settings_registry, register_setting
from threadcleaner.config.environment import CleanerSettings, Environment, load_dotenv_files
from threadcleaner.config.settings import NOT_GIVEN, get_value, load_settings


class TestCleanerSettings:
    """Tests for resolving reaper options."""

    def test_defaults(self, monkeypatch):
        for key in ("REAPER_POLL_INTERVAL", "REAPER_NICENESS", "LIVE_SET_STRIPES"):
            monkeypatch.delenv(key, raising=False)
        settings = Environment.get_cleaner_settings()
        assert settings == CleanerSettings(poll_interval=1.0, niceness=19, stripes=16)

    def test_env_overrides_default(self, monkeypatch):
        """Test that string values from the environment are coerced."""
        monkeypatch.setenv("REAPER_POLL_INTERVAL", "0.25")
        monkeypatch.setenv("LIVE_SET_STRIPES", "4")
        settings = Environment.get_cleaner_settings()
        assert settings.poll_interval == 0.25
        assert settings.stripes == 4

    def test_settings_file_used_when_env_unset(self, monkeypatch):
        monkeypatch.delenv("REAPER_NICENESS", raising=False)
        Environment.settings = {"REAPER_NICENESS": 5}
        assert Environment.get_cleaner_settings().niceness == 5

    def test_env_wins_over_settings_file(self, monkeypatch):
        monkeypatch.setenv("REAPER_NICENESS", "7")
        Environment.settings = {"REAPER_NICENESS": 5}
        assert Environment.get_cleaner_settings().niceness == 7

    def test_explicit_override_wins(self, monkeypatch):
        monkeypatch.setenv("REAPER_POLL_INTERVAL", "3")
        settings = Environment.get_cleaner_settings(poll_interval=0.1, stripes=None)
        assert settings.poll_interval == 0.1

    def test_invalid_env_value_rejected(self, monkeypatch):
        monkeypatch.setenv("REAPER_POLL_INTERVAL", "soon")
        with pytest.raises(ValidationError):
            Environment.get_cleaner_settings()

    @pytest.mark.parametrize(
        "options",
        [{"poll_interval": 0}, {"stripes": 0}, {"niceness": 20}, {"niceness": -1}],
    )
    def test_invalid_cleaner_options(self, options):
        with pytest.raises(ValidationError):
            ThreadCleaner(name="invalid", **options)


class TestLogLevel:
    """Tests for log level priority."""

    def test_explicit_log_level(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "warning")
        assert Environment.get_log_level() == "WARNING"

    def test_debug_flag(self, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        monkeypatch.setenv("DEBUG", "1")
        assert Environment.get_log_level() == "DEBUG"

    def test_package_level_fallback(self, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        monkeypatch.delenv("DEBUG", raising=False)
        monkeypatch.setenv("THREADCLEANER_LOG_LEVEL", "error")
        assert Environment.get_log_level() == "ERROR"


class TestSettingsFiles:
    """Tests for the YAML and .env loaders."""

    def test_load_settings_from_yaml(self, tmp_path):
        settings_file = tmp_path / "settings.yaml"
        settings_file.write_text("REAPER_POLL_INTERVAL: 0.5\nLIVE_SET_STRIPES: 8\n")
        assert load_settings(settings_file) == {"REAPER_POLL_INTERVAL": 0.5, "LIVE_SET_STRIPES": 8}

    def test_load_settings_missing_file(self, tmp_path):
        assert load_settings(tmp_path / "absent.yaml") == {}

    def test_load_settings_empty_file(self, tmp_path):
        settings_file = tmp_path / "settings.yaml"
        settings_file.write_text("")
        assert load_settings(settings_file) == {}

    def test_environment_load_settings(self, tmp_path):
        settings_file = tmp_path / "settings.yaml"
        settings_file.write_text("REAPER_NICENESS: 3\n")
        with (
            patch("threadcleaner.config.environment.load_dotenv_files"),
            patch(
                "threadcleaner.config.environment.load_settings",
                side_effect=lambda: load_settings(settings_file),
            ),
        ):
            Environment.load_settings()
        assert Environment.settings == {"REAPER_NICENESS": 3}

    def test_dotenv_does_not_override(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ENV", "test")
        monkeypatch.setenv("REAPER_NICENESS", "1")
        # Recorded so teardown removes the value loaded from .env.test
        monkeypatch.setenv("LIVE_SET_STRIPES", "placeholder")
        monkeypatch.delenv("LIVE_SET_STRIPES")
        (tmp_path / ".env").write_text("REAPER_NICENESS=9\n")
        (tmp_path / ".env.test").write_text("LIVE_SET_STRIPES=2\n")

        load_dotenv_files(tmp_path)

        assert Environment.get_reaper_niceness() == "1"
        assert Environment.get_live_set_stripes() == "2"


class TestGetValue:
    def test_missing_without_default_raises(self, monkeypatch):
        monkeypatch.delenv("NOT_A_SETTING", raising=False)
        with pytest.raises(KeyError, match="NOT_A_SETTING"):
            get_value("NOT_A_SETTING", {}, {}, NOT_GIVEN)

    def test_empty_env_value_falls_through(self, monkeypatch):
        monkeypatch.setenv("REAPER_NICENESS", "")
        assert get_value("REAPER_NICENESS", {"REAPER_NICENESS": 4}, {}) == 4


class TestSettingsRegistry:
    """Tests for declared settings and their defaults."""

    def test_builtin_settings_registered(self):
        names = {setting.env_var for setting in get_settings_registry()}
        assert {"ENV", "LOG_LEVEL", "REAPER_POLL_INTERVAL", "REAPER_NICENESS", "LIVE_SET_STRIPES"} <= names

    def test_defaults_come_from_declarations(self):
        defaults = get_default_values()
        assert defaults["REAPER_POLL_INTERVAL"] == 1.0
        assert defaults["REAPER_NICENESS"] == 19
        assert defaults["LIVE_SET_STRIPES"] == 16
        assert defaults["ENV"] == "development"

    def test_redeclaring_replaces_default(self, monkeypatch):
        """Test that an application can change a built-in default before creating a cleaner."""
        monkeypatch.delenv("LIVE_SET_STRIPES", raising=False)
        monkeypatch.setitem(configuration._registry, "LIVE_SET_STRIPES", configuration._registry["LIVE_SET_STRIPES"])
        register_setting(
            package_name="myapp",
            env_var="LIVE_SET_STRIPES",
            group="Reaper",
            description="Fewer stripes for a small service",
            default=2,
        )
        assert [s.env_var for s in get_settings_registry()].count("LIVE_SET_STRIPES") == 1
        assert Environment.get_live_set_stripes() == 2
        assert ThreadCleaner(name="small")._live_set.stripes == 2
