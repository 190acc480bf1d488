"""
=============================================================================
BYTE STREAMS AND READ LOOPS
=============================================================================

A connected TCP socket is split into two halves:

    InputStream    read(n)                    non-blocking
                   blocking_read(n)           poll() then read
    OutputStream   blocking_write_and_flush   poll() writable, send all

On top of InputStream sit the two read policies the gateway uses:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         Read Policies                                │
    ├──────────────────┬──────────────────────────────────────────────────┤
    │ read_to_end      │ For servers that close when done (HTTP/1.1       │
    │  (bulk)          │ with Connection: close). Keep reading chunks     │
    │                  │ until EOF. Any error ends the loop and the       │
    │                  │ bytes read so far are returned.                  │
    ├──────────────────┼──────────────────────────────────────────────────┤
    │ read_bounded     │ For interactive peers that may never close or    │
    │  (interactive)   │ never answer. At most max_polls cycles, each     │
    │                  │ waiting on the stream OR a short clock token,    │
    │                  │ stopping at max_bytes or when the peer goes      │
    │                  │ quiet for quiet_polls cycles.                    │
    └──────────────────┴──────────────────────────────────────────────────┘

Reading a socket returns:

    data          some bytes arrived
    b""           nothing available right now (read) / EOF (read_to_end)
    StreamClosed  the peer closed its side
    LastOperationFailed
                  the read itself failed (reset, etc.)

=============================================================================
"""

import logging
import socket

from .errors import LastOperationFailed, StreamClosed, StreamError
from .poll import EVENT_READ, EVENT_WRITE, Pollable, poll, subscribe_duration


logger = logging.getLogger(__name__)


DEFAULT_CHUNK_SIZE = 32 * 1024
DEFAULT_READ_POLLS = 20
DEFAULT_MAX_BYTES = 4096
DEFAULT_POLL_INTERVAL = 0.25
DEFAULT_QUIET_POLLS = 1


class InputStream:
    """Read half of a connected non-blocking socket."""

    def __init__(self, sock: socket.socket):
        self._sock = sock
        self.closed = False
        self.eof = False

    def subscribe(self) -> Pollable:
        return Pollable(self._sock, EVENT_READ)

    def read(self, n: int) -> bytes:
        """
        Read up to n bytes without blocking.

        Returns b"" when nothing is available yet.

        Raises:
            StreamClosed: The peer closed the connection.
            LastOperationFailed: The socket reported an error.
        """
        if self.eof or self.closed:
            raise StreamClosed()
        try:
            data = self._sock.recv(n)
        except (BlockingIOError, InterruptedError):
            return b""
        except OSError as e:
            raise LastOperationFailed(e.strerror or str(e)) from e

        if not data:
            self.eof = True
            raise StreamClosed()
        return data

    def blocking_read(self, n: int) -> bytes:
        """Wait until readable, then read up to n bytes."""
        while True:
            data = self.read(n)
            if data:
                return data
            poll([self.subscribe()])

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            self._sock.shutdown(socket.SHUT_RD)
        except OSError:
            pass


class OutputStream:
    """Write half of a connected non-blocking socket."""

    def __init__(self, sock: socket.socket):
        self._sock = sock
        self.closed = False

    def subscribe(self) -> Pollable:
        return Pollable(self._sock, EVENT_WRITE)

    def blocking_write_and_flush(self, data: bytes) -> None:
        """
        Write all of data, waiting for writability as needed.

        Raises:
            LastOperationFailed: The write failed. Not retried.
        """
        if self.closed:
            raise LastOperationFailed("stream closed")

        view = memoryview(data)
        while view:
            try:
                sent = self._sock.send(view)
            except (BlockingIOError, InterruptedError):
                poll([self.subscribe()])
                continue
            except OSError as e:
                raise LastOperationFailed(e.strerror or str(e)) from e
            view = view[sent:]

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            self._sock.shutdown(socket.SHUT_WR)
        except OSError:
            pass


def read_to_end(stream, chunk_size: int = DEFAULT_CHUNK_SIZE) -> bytes:
    """
    Read until the stream ends.

    Stops at the first empty read or StreamClosed; any other stream error
    also stops the loop. Either way the bytes gathered so far are returned.
    """
    buffer = bytearray()
    while True:
        try:
            chunk = stream.blocking_read(chunk_size)
        except StreamClosed:
            break
        except StreamError as e:
            logger.debug(f"Bulk read stopped after {len(buffer)} bytes: {e}")
            break
        if not chunk:
            break
        buffer.extend(chunk)
    return bytes(buffer)


def read_bounded(
    stream: InputStream,
    max_polls: int = DEFAULT_READ_POLLS,
    max_bytes: int = DEFAULT_MAX_BYTES,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
    quiet_polls: int = DEFAULT_QUIET_POLLS,
) -> bytes:
    """
    Read an interactive reply with a hard ceiling.

    Each of at most max_polls cycles waits for the stream or for
    poll_interval seconds, whichever comes first, then reads once.
    The loop ends early on StreamClosed, once max_bytes have been
    collected, or after quiet_polls empty reads in a row once part of the
    reply has arrived (the peer went quiet). LastOperationFailed is
    treated as transient.

    A reply sent in parts further apart than quiet_polls * poll_interval
    is cut after the first part.

    A peer that never sends costs at most max_polls * poll_interval.
    """
    buffer = bytearray()
    quiet = 0
    for cycle in range(max_polls):
        poll([stream.subscribe(), subscribe_duration(poll_interval)])
        try:
            chunk = stream.read(min(DEFAULT_MAX_BYTES, max_bytes - len(buffer)))
        except StreamClosed:
            break
        except LastOperationFailed as e:
            logger.debug(f"Read cycle {cycle} failed, retrying: {e}")
            continue

        if not chunk:
            if buffer:
                quiet += 1
                if quiet >= quiet_polls:
                    break
            continue
        quiet = 0
        buffer.extend(chunk)
        if len(buffer) >= max_bytes:
            break

    return bytes(buffer)
