import threading
from collections.abc import Hashable
from typing import Generic, TypeVar

T = TypeVar("T", bound=Hashable)


class ConcurrentSet(Generic[T]):
    """
    A thread-safe set split into independently locked stripes.

    Each item lives in the stripe selected by its hash, so threads adding or
    removing unrelated items rarely contend on the same lock. Only single-item
    operations are offered; there is no snapshot-consistent view across
    stripes.

    Example:
        live: ConcurrentSet[object] = ConcurrentSet(stripes=16)
        live.add(handle)
        ...
        live.discard(handle)
    """

    def __init__(self, stripes: int = 16):
        """
        Initialize the set.

        Args:
            stripes: Number of independently locked buckets (default: 16).

        Raises:
            ValueError: If stripes is not a positive integer.
        """
        if stripes < 1:
            raise ValueError("stripes must be a positive integer")
        self._locks = [threading.Lock() for _ in range(stripes)]
        self._buckets: list[set[T]] = [set() for _ in range(stripes)]

    @property
    def stripes(self) -> int:
        return len(self._buckets)

    def reset_locks(self) -> None:
        """Replace every stripe lock, e.g. in a forked child where one may be held forever."""
        self._locks = [threading.Lock() for _ in self._buckets]

    def snapshot(self) -> list[T]:
        """Return the current items, one stripe at a time."""
        items: list[T] = []
        for lock, bucket in zip(self._locks, self._buckets):
            with lock:
                items.extend(bucket)
        return items

    def _index(self, item: T) -> int:
        return hash(item) % len(self._buckets)

    def add(self, item: T) -> bool:
        """
        Add an item.

        Returns:
            True if the item was not already present.
        """
        idx = self._index(item)
        with self._locks[idx]:
            bucket = self._buckets[idx]
            if item in bucket:
                return False
            bucket.add(item)
            return True

    def discard(self, item: T) -> bool:
        """
        Remove an item if present. Safe to call more than once.

        Returns:
            True if this call removed the item.
        """
        idx = self._index(item)
        with self._locks[idx]:
            bucket = self._buckets[idx]
            if item not in bucket:
                return False
            bucket.remove(item)
            return True

    def __contains__(self, item: object) -> bool:
        try:
            idx = hash(item) % len(self._buckets)
        except TypeError:
            return False
        with self._locks[idx]:
            return item in self._buckets[idx]

    def __len__(self) -> int:
        total = 0
        for lock, bucket in zip(self._locks, self._buckets):
            with lock:
                total += len(bucket)
        return total

    def __repr__(self) -> str:
        return f"{type(self).__name__}(size={len(self)}, stripes={self.stripes})"
