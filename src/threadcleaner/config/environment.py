import os
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from threadcleaner.config.configuration import get_default_values
from threadcleaner.config.settings import get_value, load_settings

"""
Environment Configuration Management Module

Configuration for the cleaner is read, in order of precedence, from:

- Environment variables (including values loaded from .env files)
- Settings file (~/.config/threadcleaner/settings.yaml)
- Defaults declared with register_setting

The resolved reaper options are validated into a CleanerSettings model so a
bad value fails loudly when a cleaner is created instead of inside the reaper
thread.
"""


def load_dotenv_files(base_dir: Optional[Path] = None):
    """Load environment variables from .env files based on current environment."""
    from dotenv import load_dotenv

    project_root = base_dir if base_dir is not None else Path.cwd()

    env_name = os.environ.get("ENV", "development")

    # Later files only fill in what earlier ones left unset (override=False)
    env_files = [
        project_root / ".env",
        project_root / f".env.{env_name}",
        project_root / f".env.{env_name}.local",
    ]

    for env_file in env_files:
        if env_file.exists():
            load_dotenv(env_file, override=False)


class CleanerSettings(BaseModel):
    """Validated reaper and live-set options."""

    poll_interval: float = Field(1.0, gt=0, description="Seconds per bounded wait on the notification queue")
    niceness: int = Field(19, ge=0, le=19, description="Reaper thread niceness on Linux, 0 disables")
    stripes: int = Field(16, ge=1, description="Lock stripes in the live set")


class Environment(object):
    """
    Central access point for threadcleaner configuration.

    Values are looked up lazily and the settings file is read once per
    process; call `load_settings` again to pick up changes.
    """

    settings: Optional[Dict[str, Any]] = None

    @classmethod
    def load_settings(cls):
        load_dotenv_files()
        cls.settings = load_settings()

    @classmethod
    def get_settings(cls) -> Dict[str, Any]:
        if cls.settings is None:
            cls.load_settings()
        assert cls.settings is not None
        return cls.settings

    @classmethod
    def get(cls, key: str, default: Any = None):
        return get_value(key, cls.get_settings(), get_default_values(), default)

    @classmethod
    def is_debug(cls) -> bool:
        return str(cls.get("DEBUG") or "").strip().lower() in {"1", "true", "yes", "on"}

    @classmethod
    def get_log_level(cls) -> str:
        """Return desired log level string.

        Priority:
        1) Explicit LOG_LEVEL from env/settings via get()
        2) If DEBUG is truthy, return "DEBUG"
        3) THREADCLEANER_LOG_LEVEL env (default "INFO")
        """
        level = cls.get("LOG_LEVEL")
        if level:
            return str(level).upper()
        if cls.is_debug():
            return "DEBUG"
        return os.getenv("THREADCLEANER_LOG_LEVEL", "INFO").upper()

    @classmethod
    def is_metrics_enabled(cls) -> bool:
        value = cls.get("THREADCLEANER_METRICS_ENABLED")
        return str(value).strip().lower() in {"1", "true", "yes", "on"}

    @classmethod
    def get_reaper_poll_interval(cls):
        return cls.get("REAPER_POLL_INTERVAL")

    @classmethod
    def get_reaper_niceness(cls):
        return cls.get("REAPER_NICENESS")

    @classmethod
    def get_live_set_stripes(cls):
        return cls.get("LIVE_SET_STRIPES")

    @classmethod
    def get_cleaner_settings(cls, **overrides: Any) -> CleanerSettings:
        """Resolve reaper options, letting explicit non-None overrides win.

        Raises:
            pydantic.ValidationError: If a configured value is malformed.
        """
        values = {
            "poll_interval": cls.get_reaper_poll_interval(),
            "niceness": cls.get_reaper_niceness(),
            "stripes": cls.get_live_set_stripes(),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return CleanerSettings.model_validate(values)
