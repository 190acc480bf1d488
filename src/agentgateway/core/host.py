"""
=============================================================================
HOST TASK FACILITY
=============================================================================

Some things the gateway needs are inherently blocking in Python:

    socket.getaddrinfo()         the C library resolver
    requests.Session.request()   TLS handshake + HTTP exchange

These are HOST facilities: the engine never calls them directly. A HostTask
runs the blocking call on the host executor and hands the engine back a
readiness token, so from the engine's point of view they look exactly like
a non-blocking socket:

    ┌──────────────┐   submit    ┌──────────────────┐
    │   engine     │ ──────────► │  host executor   │
    │  sequence    │             │  (worker thread) │
    │              │             │                  │
    │ poll([token])│ ◄── 1 byte ─│  fn(*args) done  │
    │      │       │    on pipe  └──────────────────┘
    │      ▼       │
    │  task.done() │
    │  task.result │
    └──────────────┘

The wake-up is a one-byte write to a pipe. The read end of the pipe is the
readiness token, so it goes through the same poll() as every socket.

=============================================================================
ORDERING
=============================================================================

The outcome is stored BEFORE the byte is written. When poll() reports the
pipe readable, done() is already True; there is no window where the token
fired but the result is missing.

=============================================================================
"""

import logging
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Optional, Tuple

from .poll import EVENT_READ, Pollable


logger = logging.getLogger(__name__)


DiscardCallback = Callable[[Any], None]


def create_executor(max_workers: int = 8) -> ThreadPoolExecutor:
    """Executor that runs host facilities (resolver, outgoing HTTP)."""
    return ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="gateway-host")


class HostTask:
    """
    A blocking call running on the host executor, observed through a pipe.

    Args:
        fn: The blocking callable.
        *args: Arguments for fn.
        executor: Host executor to run on.
        timeout: Optional seconds after which the token fires even if the
                 call has not finished (the caller then sees done() False).
        on_discard: Called with a successful result that nobody will
                    consume, i.e. one that arrives after close().
    """

    def __init__(
        self,
        fn: Callable[..., Any],
        *args: Any,
        executor: ThreadPoolExecutor,
        timeout: Optional[float] = None,
        on_discard: Optional[DiscardCallback] = None,
    ):
        self._read_fd, self._write_fd = os.pipe()
        os.set_blocking(self._read_fd, False)

        self._lock = threading.Lock()
        self._closed = False
        self._taken = False
        self._on_discard = on_discard
        self._outcome: Optional[Tuple[bool, Any]] = None
        self._deadline = time.monotonic() + timeout if timeout is not None else None

        self._future = executor.submit(self._run, fn, args)

    def _run(self, fn: Callable[..., Any], args: tuple) -> None:
        try:
            outcome = (True, fn(*args))
        except Exception as e:  # handed to the waiting sequence via result()
            outcome = (False, e)

        with self._lock:
            self._outcome = outcome
            if self._closed:
                self._discard(outcome)
                return
            try:
                os.write(self._write_fd, b"\x00")
            except OSError as e:
                logger.debug(f"Host task wake-up write failed: {e}")

    def _discard(self, outcome: Tuple[bool, Any]) -> None:
        ok, value = outcome
        if ok and self._on_discard is not None:
            try:
                self._on_discard(value)
            except Exception:
                logger.exception("Discarding abandoned host task result failed")

    def subscribe(self) -> Pollable:
        """Readiness token: the pipe, plus the deadline if one was given."""
        return Pollable(self._read_fd, EVENT_READ, deadline=self._deadline)

    def done(self) -> bool:
        return self._outcome is not None

    def result(self) -> Any:
        """
        Return the call's result, re-raising the exception it raised.

        Raises:
            RuntimeError: If called before done().
        """
        outcome = self._outcome
        if outcome is None:
            raise RuntimeError("host task has not finished")
        self._taken = True
        ok, value = outcome
        if ok:
            return value
        raise value

    def close(self) -> None:
        """Release the pipe. Safe to call more than once."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            if self._outcome is not None and not self._taken:
                self._discard(self._outcome)
            for fd in (self._read_fd, self._write_fd):
                try:
                    os.close(fd)
                except OSError:
                    pass

    def __enter__(self) -> "HostTask":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
