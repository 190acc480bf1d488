"""
=============================================================================
READINESS-POLL SUBSTRATE
=============================================================================

The single suspension point of the whole gateway. Every operation that
would normally be one blocking call (resolve, connect, read, HTTP fetch) is
instead written as:

    start the operation
    while it reports WouldBlock:
        poll([its readiness token])
        retry

Nothing else in the engine is allowed to block.

=============================================================================
READINESS TOKENS (POLLABLES)
=============================================================================

A Pollable is bound to exactly one wait condition:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                       What a Pollable watches                        │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   fileobj + EVENT_WRITE    pending TCP connect                       │
    │   fileobj + EVENT_READ     pending TCP read                          │
    │   pipe fd + EVENT_READ     pending host task (DNS, outgoing HTTP)    │
    │   deadline only            monotonic clock ("wake me in N seconds")  │
    │   fileobj + deadline       host task with a response deadline        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

poll() returns the indexes of the tokens that fired, but callers are free to
ignore them: the contract is only "at least one is ready now", and the
caller re-probes its operation to find out what changed.

=============================================================================
WHY selectors?
=============================================================================

selectors.DefaultSelector picks the best primitive for the platform
(epoll on Linux, kqueue on BSD/macOS, select elsewhere). We create one
selector per poll() call; tokens are never shared between sequences, so
there is no long-lived registration to keep in sync.

=============================================================================
"""

import logging
import selectors
import time
from typing import Any, Dict, List, Optional, Sequence, Tuple


logger = logging.getLogger(__name__)


EVENT_READ = selectors.EVENT_READ
EVENT_WRITE = selectors.EVENT_WRITE


class Pollable:
    """
    A readiness token.

    Ready when its file object is ready for `events`, or when its monotonic
    `deadline` has passed, whichever happens first.

    Attributes:
        fileobj: Socket, pipe fd or anything with fileno(). None for clock tokens.
        events: EVENT_READ and/or EVENT_WRITE.
        deadline: time.monotonic() value after which the token counts as ready.
    """

    def __init__(
        self,
        fileobj: Any = None,
        events: int = EVENT_READ,
        deadline: Optional[float] = None,
    ):
        if fileobj is None and deadline is None:
            raise ValueError("a pollable needs a file object, a deadline, or both")
        self.fileobj = fileobj
        self.events = events
        self.deadline = deadline

    def __repr__(self) -> str:
        return f"Pollable(fd={self.fileno()}, events={self.events}, deadline={self.deadline})"

    def fileno(self) -> int:
        if self.fileobj is None:
            return -1
        if isinstance(self.fileobj, int):
            return self.fileobj
        try:
            return self.fileobj.fileno()
        except (OSError, ValueError):
            return -1

    def expired(self, now: Optional[float] = None) -> bool:
        if self.deadline is None:
            return False
        return (time.monotonic() if now is None else now) >= self.deadline

    def ready(self) -> bool:
        """Probe readiness without suspending."""
        if self.expired():
            return True
        if self.fileobj is None:
            return False
        fd = self.fileno()
        if fd < 0:
            # Closed underneath us: let the owner discover the error.
            return True
        with selectors.DefaultSelector() as selector:
            selector.register(fd, self.events)
            return bool(selector.select(0))


def subscribe_duration(seconds: float) -> Pollable:
    """Clock token that becomes ready `seconds` from now."""
    return Pollable(deadline=time.monotonic() + max(0.0, seconds))


def poll(pollables: Sequence[Pollable]) -> List[int]:
    """
    Suspend until at least one of `pollables` is ready.

    ┌─────────────────────────────────────────────────────────────────┐
    │                       poll() Flow                                │
    ├─────────────────────────────────────────────────────────────────┤
    │                                                                  │
    │   group file tokens by fd (one registration per fd)              │
    │        │                                                         │
    │        ▼                                                         │
    │   timeout = earliest deadline - now   (None if no deadlines)     │
    │        │                                                         │
    │        ▼                                                         │
    │   selector.select(timeout)                                       │
    │        │                                                         │
    │        ├── fd events  → tokens whose event mask matches          │
    │        └── deadlines  → tokens whose deadline has passed         │
    │        │                                                         │
    │        ▼                                                         │
    │   nothing ready (spurious wake)? loop                            │
    │                                                                  │
    └─────────────────────────────────────────────────────────────────┘

    Args:
        pollables: Non-empty sequence of tokens.

    Returns:
        Sorted indexes of the tokens that are ready.

    Raises:
        ValueError: If `pollables` is empty.
    """
    if not pollables:
        raise ValueError("poll() requires at least one pollable")

    by_fd: Dict[int, Tuple[int, List[int]]] = {}
    ready: List[int] = []

    for index, pollable in enumerate(pollables):
        if pollable.fileobj is None:
            continue
        fd = pollable.fileno()
        if fd < 0:
            ready.append(index)
            continue
        events, indexes = by_fd.get(fd, (0, []))
        by_fd[fd] = (events | pollable.events, indexes + [index])

    if ready:
        return ready

    deadlines = [p.deadline for p in pollables if p.deadline is not None]

    with selectors.DefaultSelector() as selector:
        for fd, (events, indexes) in by_fd.items():
            selector.register(fd, events, indexes)

        while True:
            timeout = None
            if deadlines:
                timeout = max(0.0, min(deadlines) - time.monotonic())

            fired = set()
            for key, mask in selector.select(timeout):
                for index in key.data:
                    if pollables[index].events & mask:
                        fired.add(index)

            now = time.monotonic()
            for index, pollable in enumerate(pollables):
                if pollable.expired(now):
                    fired.add(index)

            if fired:
                return sorted(fired)

            logger.debug("poll woke with nothing ready, waiting again")
