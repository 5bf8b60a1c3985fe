#!/usr/bin/env python
"""
Verification script for thread cleanup under load.

Spawns batches of short-lived worker threads, registers a cleanup task for
each one, drops every reference and waits for the reaper.

It validates that:
- Every cleanup task runs exactly once
- A fraction of deliberately failing tasks does not stall the others
- The live set drains back to zero
"""

import argparse
import gc
import sys
import threading
import time
from collections import Counter
from pathlib import Path

# Add the src directory to the path so we can import the package from a checkout
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from threadcleaner.concurrency.thread_cleaner import ThreadCleaner
from threadcleaner.observability.metrics import format_prometheus_metrics, init_metrics


def spawn_batch(cleaner: ThreadCleaner, batch: int, size: int, fail_every: int, runs: Counter, lock: threading.Lock) -> None:
    """Start, join and register `size` worker threads, then drop them."""
    workers = []
    for i in range(size):
        worker_id = batch * size + i
        worker = threading.Thread(target=time.sleep, args=(0.001,), name=f"worker-{worker_id}")
        worker.start()
        workers.append(worker)

        def cleanup(worker_id: int = worker_id) -> None:
            with lock:
                runs[worker_id] += 1
            if fail_every and worker_id % fail_every == 0:
                raise RuntimeError(f"cleanup for worker {worker_id} failed on purpose")

        cleaner.register(worker, cleanup)

    for worker in workers:
        worker.join()
    workers.clear()


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--batches", type=int, default=20)
    parser.add_argument("--batch-size", type=int, default=50)
    parser.add_argument("--fail-every", type=int, default=7, help="make every Nth cleanup raise, 0 disables")
    parser.add_argument("--timeout", type=float, default=30.0)
    args = parser.parse_args()

    init_metrics(enabled=True)
    cleaner = ThreadCleaner(name="verify-reaper", poll_interval=0.1)
    runs: Counter = Counter()
    lock = threading.Lock()
    expected = args.batches * args.batch_size

    print("=" * 60)
    print("Thread Cleanup Verification")
    print("=" * 60)
    print(f"Worker threads: {expected} ({args.batches} batches of {args.batch_size})")

    start_time = time.time()
    for batch in range(args.batches):
        spawn_batch(cleaner, batch, args.batch_size, args.fail_every, runs, lock)

    deadline = time.monotonic() + args.timeout
    while cleaner.live_count() and time.monotonic() < deadline:
        gc.collect()
        time.sleep(0.05)
    elapsed = time.time() - start_time

    with lock:
        cleaned = len(runs)
        duplicates = sum(1 for count in runs.values() if count > 1)

    print("\nResults:")
    print(f"  Cleanup tasks run: {cleaned}/{expected}")
    print(f"  Tasks run more than once: {duplicates}")
    print(f"  Handles still pending: {cleaner.live_count()}")
    print(f"  Time elapsed: {elapsed:.3f}s")
    print("\nMetrics:")
    print(format_prometheus_metrics())

    all_passed = cleaned == expected and duplicates == 0 and cleaner.live_count() == 0
    print("PASS" if all_passed else "FAIL")
    return 0 if all_passed else 1


if __name__ == "__main__":
    sys.exit(main())
