"""Run cleanup tasks after threads and other resources are garbage collected."""

from threadcleaner.concurrency.thread_cleaner import (
    InvalidArgumentError,
    ThreadCleaner,
    ThreadCleanerError,
    get_default_cleaner,
    register,
)

__version__ = "0.1.0"

__all__ = [
    "InvalidArgumentError",
    "ThreadCleaner",
    "ThreadCleanerError",
    "get_default_cleaner",
    "register",
]
