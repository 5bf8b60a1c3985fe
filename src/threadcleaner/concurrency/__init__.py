from .concurrent_set import ConcurrentSet
from .thread_cleaner import (
    CleanerReference,
    InvalidArgumentError,
    ReferenceState,
    ThreadCleaner,
    ThreadCleanerError,
    get_default_cleaner,
    register,
)

__all__ = [
    "CleanerReference",
    "ConcurrentSet",
    "InvalidArgumentError",
    "ReferenceState",
    "ThreadCleaner",
    "ThreadCleanerError",
    "get_default_cleaner",
    "register",
]
