"""Utility functions for reading the threadcleaner settings file."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict

import yaml

from threadcleaner.config.configuration import register_setting

# Constants
SETTINGS_FILE = "settings.yaml"
MISSING_MESSAGE = "Missing required setting: {}"
NOT_GIVEN = object()

# Built-in settings. Their defaults are what ``Environment`` falls back to,
# and embedding applications can list them via :func:`get_settings_registry`.

register_setting(
    package_name="threadcleaner",
    env_var="ENV",
    group="General",
    description="Deployment environment; selects which .env.<ENV> files are loaded",
    default="development",
)
register_setting(
    package_name="threadcleaner",
    env_var="LOG_LEVEL",
    group="Logging",
    description="Log level for threadcleaner loggers; unknown names fall back to INFO",
    enum=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
)
register_setting(
    package_name="threadcleaner",
    env_var="DEBUG",
    group="Logging",
    description="Truthy value switches logging to DEBUG when LOG_LEVEL is unset",
)
register_setting(
    package_name="threadcleaner",
    env_var="REAPER_POLL_INTERVAL",
    group="Reaper",
    description=(
        "Seconds the reaper waits on the notification queue before restarting "
        "the wait. Only affects how often an idle reaper wakes up."
    ),
    default=1.0,
)
register_setting(
    package_name="threadcleaner",
    env_var="REAPER_NICENESS",
    group="Reaper",
    description=(
        "Niceness applied to the reaper thread on Linux so cleanup never competes "
        "with application work. Set to 0 to keep the default priority."
    ),
    default=19,
)
register_setting(
    package_name="threadcleaner",
    env_var="LIVE_SET_STRIPES",
    group="Reaper",
    description="Number of lock stripes in the set of pending cleanup handles",
    default=16,
)
register_setting(
    package_name="threadcleaner",
    env_var="THREADCLEANER_METRICS_ENABLED",
    group="Observability",
    description="Enable in-process metrics for registrations and cleanup tasks",
    enum=["0", "1"],
)

# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------

def get_system_file_path(filename: str) -> Path:
    """Return the path to the configuration file for the current OS."""
    import platform

    os_name = platform.system()
    if os_name in {"Linux", "Darwin"}:
        return Path.home() / ".config" / "threadcleaner" / filename
    elif os_name == "Windows":
        appdata = os.getenv("APPDATA")
        if appdata is not None:
            return Path(appdata) / "threadcleaner" / filename
        return Path("data") / filename
    return Path("data") / filename

# ---------------------------------------------------------------------------
# Settings helpers
# ---------------------------------------------------------------------------

def load_settings(settings_file: Path | None = None) -> Dict[str, Any]:
    """Load settings from the YAML settings file, if one exists."""
    if settings_file is None:
        settings_file = get_system_file_path(SETTINGS_FILE)

    if not settings_file.exists():
        return {}

    with open(settings_file, "r") as f:
        return yaml.safe_load(f) or {}

def get_value(
    key: str,
    settings: Dict[str, Any],
    default_env: Dict[str, Any],
    default: Any = NOT_GIVEN,
) -> Any:
    """Retrieve a configuration value from the environment, settings, or defaults.

    Environment variables win over the settings file so deployments can
    override a checked-in configuration.
    """
    value = os.environ.get(key)
    if value is None or str(value) == "":
        value = settings.get(key)

    if value is None:
        value = default_env.get(key, default)

    if value is not NOT_GIVEN:
        return value
    raise KeyError(MISSING_MESSAGE.format(key))
