"""
Inbound worker pool.

Each inbound request runs start to finish on one worker thread: that is
its single cooperative sequence of execution. The pool is bounded; when
every worker is busy, submit() refuses instead of queueing, and the
server answers 503 without routing.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        submit() Flow                                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   slot = semaphore.acquire(blocking=False)                           │
    │          │                                                           │
    │          ├── no slot  → return False   (caller sends 503)            │
    │          │                                                           │
    │          └── slot     → executor.submit(task)                        │
    │                          task finishes → release slot                │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Optional


logger = logging.getLogger(__name__)


class WorkerPool:
    """
    Bounded pool of request workers.

    Usage:
        pool = WorkerPool(max_workers=8)
        if not pool.submit(handle, conn):
            reject(conn)
        ...
        pool.shutdown()
    """

    def __init__(self, max_workers: int = 8, name: str = "gateway-worker"):
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self.max_workers = max_workers
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=name)
        self._slots = threading.BoundedSemaphore(max_workers)
        self._lock = threading.Lock()
        self._busy = 0
        self._completed = 0
        self._failed = 0
        self._rejected = 0
        self._shutdown = False

    def submit(self, func: Callable[..., Any], *args: Any) -> bool:
        """
        Run func(*args) on a free worker.

        Returns:
            False if every worker is busy.

        Raises:
            RuntimeError: If the pool is shut down.
        """
        if self._shutdown:
            raise RuntimeError("worker pool is shut down")

        if not self._slots.acquire(blocking=False):
            with self._lock:
                self._rejected += 1
            return False

        with self._lock:
            self._busy += 1
        self._executor.submit(self._run, func, args)
        return True

    def _run(self, func: Callable[..., Any], args: tuple) -> None:
        start = time.monotonic()
        try:
            func(*args)
            with self._lock:
                self._completed += 1
        except Exception as e:
            with self._lock:
                self._failed += 1
            logger.exception(f"Worker task failed after {time.monotonic() - start:.3f}s: {e}")
        finally:
            with self._lock:
                self._busy -= 1
            self._slots.release()

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None) -> None:
        """
        Stop accepting work. With wait=True, let running tasks finish
        (up to timeout seconds).
        """
        if self._shutdown:
            return
        self._shutdown = True
        logger.info("Shutting down worker pool...")

        if wait and timeout is not None:
            deadline = time.monotonic() + timeout
            while self.busy and time.monotonic() < deadline:
                time.sleep(0.05)
            if self.busy:
                logger.warning(f"Shutdown timeout, {self.busy} requests still running")
            self._executor.shutdown(wait=False)
        else:
            self._executor.shutdown(wait=wait)

        logger.info(f"Worker pool shutdown complete: {self.stats}")

    @property
    def busy(self) -> int:
        with self._lock:
            return self._busy

    @property
    def stats(self) -> dict:
        with self._lock:
            return {
                "workers": self.max_workers,
                "busy": self._busy,
                "completed": self._completed,
                "failed": self._failed,
                "rejected": self._rejected,
            }
