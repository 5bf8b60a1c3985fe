import logging
import os
import sys
from typing import ClassVar, Optional

_DEFAULT_FORMAT = os.getenv(
    "THREADCLEANER_LOG_FORMAT",
    "%(asctime)s | %(levelname)s | %(threadName)s | %(name)s | %(message)s",
)
_DEFAULT_DATEFMT = os.getenv("THREADCLEANER_LOG_DATEFMT", "%Y-%m-%d %H:%M:%S")
_configured: str | int | None = None


def _supports_color() -> bool:
    try:
        return sys.stdout.isatty() and os.getenv("NO_COLOR") is None
    except Exception:
        return False


class _LevelColorFormatter(logging.Formatter):
    COLORS: ClassVar[dict[str, str]] = {
        "DEBUG": "\x1b[37m",  # light gray
        "INFO": "\x1b[32m",  # green
        "WARNING": "\x1b[33m",  # yellow
        "ERROR": "\x1b[31m",  # red
        "CRITICAL": "\x1b[41m",  # red background
    }

    RESET: ClassVar[str] = "\x1b[0m"

    def __init__(self, fmt: str, datefmt: str, use_color: bool) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        if self.use_color:
            levelname = record.levelname
            color = self.COLORS.get(levelname, "")
            record.levelname_color = f"{color}{levelname}{self.RESET}" if color else levelname
        else:
            record.levelname_color = record.levelname
        return super().format(record)


def configure_logging(
    level: Optional[str | int] = None,
    fmt: Optional[str] = None,
    datefmt: Optional[str] = None,
) -> str | int:
    """Configure the ``threadcleaner`` logger once with a consistent format.

    Only the package logger is touched; the root logger belongs to the
    embedding application. An unknown level name falls back to INFO with a
    warning.

    Environment overrides:
    - `THREADCLEANER_LOG_LEVEL` (or `LOG_LEVEL` / `DEBUG`)
    - `THREADCLEANER_LOG_FORMAT`
    - `THREADCLEANER_LOG_DATEFMT`
    """
    from threadcleaner.config.environment import Environment

    global _configured

    if isinstance(level, str):
        level = level.upper()

    if level is None:
        level = Environment.get_log_level()

    unknown_level = None
    if isinstance(level, str) and not isinstance(logging.getLevelName(level), int):
        unknown_level, level = level, "INFO"

    if _configured is not None and _configured == level:
        return level
    _configured = level

    use_color = _supports_color()
    if fmt is None:
        if os.getenv("THREADCLEANER_LOG_FORMAT") is None and use_color:
            # Color by level using ANSI; name in cyan, ts in gray
            fmt = (
                "\x1b[90m%(asctime)s\x1b[0m | %(levelname_color)s | %(threadName)s"
                " | \x1b[36m%(name)s\x1b[0m | %(message)s"
            )
        else:
            fmt = _DEFAULT_FORMAT
    datefmt = datefmt if datefmt is not None else _DEFAULT_DATEFMT

    package_logger = logging.getLogger("threadcleaner")
    package_logger.setLevel(level)

    handler = next(
        (h for h in package_logger.handlers if getattr(h, "_threadcleaner", False)),
        None,
    )
    # Leave output to the application when it has configured the root logger
    if handler is None and not logging.getLogger().handlers:
        handler = logging.StreamHandler()
        handler._threadcleaner = True  # type: ignore[attr-defined]
        package_logger.addHandler(handler)
    if handler is not None:
        handler.setLevel(level)
        handler.setFormatter(_LevelColorFormatter(fmt=fmt, datefmt=datefmt, use_color=use_color))
    if unknown_level is not None:
        package_logger.warning("Unknown log level %r, using INFO", unknown_level)
    return level


def get_logger(name: str) -> logging.Logger:
    """Return a module-scoped logger."""
    level = configure_logging()
    logger = logging.getLogger(name)
    logger.setLevel(level)
    return logger
