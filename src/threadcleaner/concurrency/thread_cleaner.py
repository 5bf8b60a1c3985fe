"""Run cleanup tasks after a thread (or any weakly referenceable object) is collected.

Some resources, worker threads in particular, have no reliable close() call
site: they simply stop being referenced. ``register`` attaches a cleanup task
to such a resource without keeping it alive. When the garbage collector
reclaims the resource, the weakref callback hands the tracking reference to a
single low-priority reaper thread which runs the task and forgets the
reference.

Semantics
---------
- The task runs at most once, and exactly once if the resource is collected
  while the interpreter is still running. There is no bound on how late that
  is, and nothing runs for resources still alive at exit.
- Tasks run one at a time on the reaper thread, in collection order.
- A task that raises is logged and counted; the reaper keeps going.

Implementation notes
--------------------
- The weakref callback runs inside the garbage collector on whatever thread
  triggered it, so it only flips a flag and calls ``SimpleQueue.put``, which
  is reentrant.
- References are kept alive by a lock-striped ``ConcurrentSet`` until their
  task has run; a weakref that is itself collected never fires its callback.
- A forked child inherits the live sets but not the reaper threads, so every
  cleaner is reset in the child and restarts its reaper on the next
  registration there.
"""

from __future__ import annotations

import os
import queue
import sys
import threading
import time
import weakref
from collections.abc import Callable
from enum import Enum
from typing import Any, Optional

from threadcleaner.concurrency.concurrent_set import ConcurrentSet
from threadcleaner.config.environment import Environment
from threadcleaner.config.logging_config import get_logger
from threadcleaner.observability import metrics

log = get_logger(__name__)

DEFAULT_REAPER_NAME = "ThreadCleanerReaper"


class ThreadCleanerError(Exception):
    """Base exception for thread cleaner errors."""

    pass


class InvalidArgumentError(ThreadCleanerError, ValueError):
    """Raised when register() gets a missing task or an unobservable resource."""

    pass


class ReferenceState(str, Enum):
    """Lifecycle of a CleanerReference."""

    PENDING = "pending"
    NOTIFIED = "notified"
    RETIRED = "retired"
    CLEARED = "cleared"


class CleanerReference(weakref.ref):
    """
    Weak reference to a resource carrying the task to run once it is collected.

    Calling the reference always returns None, even while the resource is
    alive, so nothing can recover a strong reference through it. Equality and
    hashing are by identity: several references to one resource are distinct.
    """

    __slots__ = ("_cleanup_task", "_cleaner", "_state", "_cleared")

    def __new__(cls, referent: Any, cleanup_task: Callable[[], Any], cleaner: ThreadCleaner):
        return super().__new__(cls, referent, cleaner._notify)

    def __init__(self, referent: Any, cleanup_task: Callable[[], Any], cleaner: ThreadCleaner):
        super().__init__(referent, cleaner._notify)
        self._cleanup_task = cleanup_task
        self._cleaner = cleaner
        self._state = ReferenceState.PENDING
        self._cleared = False

    def __call__(self) -> None:
        return None

    def __eq__(self, other: object) -> bool:
        return self is other

    def __ne__(self, other: object) -> bool:
        return self is not other

    __hash__ = object.__hash__

    def __repr__(self) -> str:
        return f"<{type(self).__name__} at {id(self):#x}; state={self.state.value}; task={self._cleanup_task!r}>"

    @property
    def state(self) -> ReferenceState:
        if self._cleared:
            return ReferenceState.CLEARED
        return self._state

    @property
    def cleanup_task(self) -> Callable[[], Any]:
        return self._cleanup_task

    def cleanup(self) -> None:
        """Run the cleanup task and mark the reference retired."""
        try:
            self._cleanup_task()
        finally:
            self._state = ReferenceState.RETIRED

    def clear(self) -> None:
        """Stop tracking: the task will not run and the live-set entry is dropped.

        Idempotent, and harmless after the reaper has already evicted it.
        """
        self._cleared = True
        self._cleaner._evict(self)


class ThreadCleaner:
    """
    Tracks registered resources and owns the reaper thread that cleans up after them.

    Most code should call the module-level ``register`` which uses a single
    process-wide cleaner. Separate instances are useful to isolate a subsystem
    (or a test) with its own reaper and live set.

    Example:
        def release_slot():
            pool.release(slot_id)

        worker = threading.Thread(target=work)
        worker.start()
        register(worker, release_slot)
        # release_slot() runs on the reaper once `worker` is finished and dropped
    """

    def __init__(
        self,
        name: str = DEFAULT_REAPER_NAME,
        *,
        poll_interval: Optional[float] = None,
        niceness: Optional[int] = None,
        stripes: Optional[int] = None,
    ) -> None:
        """
        Initialize the cleaner. The reaper thread starts on the first registration.

        Args:
            name: Name of the reaper thread.
            poll_interval: Seconds per bounded wait on the notification queue
                (default: REAPER_POLL_INTERVAL setting).
            niceness: Niceness applied to the reaper thread on Linux, 0 keeps the
                default priority (default: REAPER_NICENESS setting).
            stripes: Lock stripes in the live set (default: LIVE_SET_STRIPES setting).

        Raises:
            pydantic.ValidationError: If an option or configured value is invalid.
        """
        settings = Environment.get_cleaner_settings(
            poll_interval=poll_interval,
            niceness=niceness,
            stripes=stripes,
        )
        self.name = name
        self.poll_interval = settings.poll_interval
        self.niceness = settings.niceness
        self._live_set: ConcurrentSet[CleanerReference] = ConcurrentSet(stripes=settings.stripes)
        self._queue: queue.SimpleQueue[CleanerReference] = queue.SimpleQueue()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._start_lock = threading.Lock()
        self._started = False
        with _cleaners_lock:
            _cleaners.add(self)

    def _reset_after_fork(self) -> None:
        """Forget the parent's reaper in a forked child.

        Only the forking thread survives a fork, so the child gets a fresh
        channel and an unstarted reaper; the next registration starts it.
        Inherited handles stay tracked, and those the parent had queued but not
        yet processed are queued again on the new channel.
        """
        self._queue = queue.SimpleQueue()
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._start_lock = threading.Lock()
        self._started = False
        self._live_set.reset_locks()
        for reference in self._live_set.snapshot():
            if reference.state is ReferenceState.NOTIFIED:
                self._queue.put(reference)

    def start(self) -> None:
        """Start the reaper thread (idempotent)."""
        if self._started:
            return
        with self._start_lock:
            if self._started:
                return
            self._thread.start()
            self._started = True

    def is_running(self) -> bool:
        return self._thread.is_alive()

    def live_count(self) -> int:
        """Number of references whose cleanup task has not run yet."""
        return len(self._live_set)

    def register(self, resource: Any, cleanup_task: Callable[[], Any]) -> None:
        """
        Run ``cleanup_task`` once ``resource`` has been garbage collected.

        Registering the same resource again adds an independent task; both run.

        Args:
            resource: Any weakly referenceable object, typically a threading.Thread.
            cleanup_task: Zero-argument callable; its return value is ignored.

        Raises:
            InvalidArgumentError: If cleanup_task is missing or not callable, or
                resource cannot be weakly referenced.
        """
        self._track(resource, cleanup_task)

    def _track(self, resource: Any, cleanup_task: Callable[[], Any]) -> CleanerReference:
        if cleanup_task is None:
            raise InvalidArgumentError("cleanup_task must not be None")
        if not callable(cleanup_task):
            raise InvalidArgumentError(f"cleanup_task must be callable, got {type(cleanup_task).__name__}")
        try:
            reference = CleanerReference(resource, cleanup_task, self)
        except TypeError as e:
            raise InvalidArgumentError(f"cannot weakly reference a {type(resource).__name__} object") from e

        self._live_set.add(reference)
        self.start()

        if metrics.get_registry() is not None:
            metrics.cleaner_counter("registered", "Cleanup tasks registered").increment()
            _update_live_handles_gauge()
        log.debug("Registered %r for %s", reference, type(resource).__name__)
        return reference

    def _notify(self, reference: CleanerReference) -> None:
        # Called by the garbage collector; must not block or take locks
        if reference._cleared:
            return
        reference._state = ReferenceState.NOTIFIED
        self._queue.put(reference)

    def _evict(self, reference: CleanerReference) -> None:
        if self._live_set.discard(reference):
            _update_live_handles_gauge()

    def _lower_priority(self) -> None:
        if self.niceness <= 0:
            return
        # Per-thread niceness is a Linux property; elsewhere it would renice the whole process
        if not sys.platform.startswith("linux"):
            log.debug("Leaving reaper priority unchanged on %s", sys.platform)
            return
        try:
            os.setpriority(os.PRIO_PROCESS, threading.get_native_id(), self.niceness)
        except (AttributeError, OSError) as e:
            log.debug("Could not lower reaper priority: %s", e)

    def _run(self) -> None:
        """Reaper loop. Never returns."""
        self._lower_priority()
        log.info("Reaper %s started (poll interval %.2fs)", self.name, self.poll_interval)
        channel = self._queue

        while True:
            try:
                reference = channel.get(timeout=self.poll_interval)
            except queue.Empty:
                continue

            try:
                self._process(reference)
            except Exception:
                log.exception("Unexpected error in reaper %s", self.name)
            # Drop the task closure before blocking again
            del reference

    def _process(self, reference: CleanerReference) -> None:
        try:
            # Cleared after it was queued, or queued again after it already ran
            if reference._cleared or reference._state is not ReferenceState.NOTIFIED:
                log.debug("Skipping %r", reference)
                return

            started = time.monotonic()
            try:
                reference.cleanup()
            # SystemExit raised by a task must not end the reaper either
            except BaseException:
                log.exception("Cleanup task %r failed", reference.cleanup_task)
                if metrics.get_registry() is not None:
                    metrics.cleaner_counter("failed", "Cleanup tasks that raised").increment()
            else:
                log.debug("Retired %r", reference)
                if metrics.get_registry() is not None:
                    metrics.cleaner_counter("retired", "Cleanup tasks completed").increment()

            if metrics.get_registry() is not None:
                metrics.task_duration_histogram().observe(time.monotonic() - started)
        finally:
            self._evict(reference)


_cleaners: weakref.WeakSet[ThreadCleaner] = weakref.WeakSet()
_cleaners_lock = threading.Lock()

_default_cleaner: Optional[ThreadCleaner] = None
_default_lock = threading.Lock()


def _update_live_handles_gauge() -> None:
    """Set the live-handles gauge to the number of pending handles across all cleaners."""
    if metrics.get_registry() is None:
        return
    with _cleaners_lock:
        cleaners = list(_cleaners)
    metrics.live_handles_gauge().set(float(sum(cleaner.live_count() for cleaner in cleaners)))


def _reset_cleaners_after_fork() -> None:
    global _cleaners_lock, _default_lock

    _cleaners_lock = threading.Lock()
    _default_lock = threading.Lock()
    for cleaner in list(_cleaners):
        cleaner._reset_after_fork()


if hasattr(os, "register_at_fork"):
    os.register_at_fork(after_in_child=_reset_cleaners_after_fork)


def get_default_cleaner() -> ThreadCleaner:
    """Return the process-wide cleaner, creating it on first use."""
    global _default_cleaner

    if _default_cleaner is None:
        with _default_lock:
            if _default_cleaner is None:
                _default_cleaner = ThreadCleaner()
    return _default_cleaner


def register(resource: Any, cleanup_task: Callable[[], Any]) -> None:
    """
    Run ``cleanup_task`` on the shared reaper once ``resource`` is garbage collected.

    Use this only when there is no other way to run cleanup for the resource:
    the task runs at an unspecified time after collection, and not at all if
    the interpreter exits first.

    Raises:
        InvalidArgumentError: If cleanup_task is missing or not callable, or
            resource cannot be weakly referenced.
    """
    get_default_cleaner().register(resource, cleanup_task)
