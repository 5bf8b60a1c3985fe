import gc
import time
from collections.abc import Callable

import pytest

from threadcleaner.concurrency.thread_cleaner import ThreadCleaner
from threadcleaner.config.environment import Environment
from threadcleaner.observability.metrics import shutdown_metrics


@pytest.fixture(autouse=True)
def isolated_settings():
    """Keep the user's settings file and .env files out of the tests."""
    previous = Environment.settings
    Environment.settings = {}
    yield
    Environment.settings = previous


@pytest.fixture(autouse=True)
def reset_metrics():
    shutdown_metrics()
    yield
    shutdown_metrics()


@pytest.fixture
def cleaner() -> ThreadCleaner:
    """A private cleaner with a fast-polling reaper running at normal priority."""
    return ThreadCleaner(name="test-reaper", poll_interval=0.05, niceness=0, stripes=4)


@pytest.fixture
def wait_until() -> Callable[..., bool]:
    """Return a helper that collects garbage until a condition holds or time runs out."""

    def _wait(condition: Callable[[], bool], timeout: float = 5.0) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            gc.collect()
            if condition():
                return True
            time.sleep(0.01)
        return condition()

    return _wait
