"""
Unit tests for byte streams and the two read policies.
"""

import threading
import time

import pytest

from agentgateway.core.errors import LastOperationFailed, StreamClosed
from agentgateway.core.poll import subscribe_duration
from agentgateway.core.streams import InputStream, OutputStream, read_bounded, read_to_end


class ScriptedStream:
    """Stream that replays a list of chunks and exceptions."""

    def __init__(self, script):
        self._script = list(script)

    def blocking_read(self, n):
        if not self._script:
            raise StreamClosed()
        step = self._script.pop(0)
        if isinstance(step, Exception):
            raise step
        return step


class FlakyInputStream:
    """Non-blocking stream whose reads follow a script; always pollable."""

    def __init__(self, script):
        self._script = list(script)
        self.reads = 0

    def subscribe(self):
        return subscribe_duration(0)

    def read(self, n):
        self.reads += 1
        if not self._script:
            raise StreamClosed()
        step = self._script.pop(0)
        if isinstance(step, Exception):
            raise step
        return step


class TestInputStream:
    """Tests for InputStream.read()."""

    def test_nothing_available(self, socket_pair):
        local, _ = socket_pair
        assert InputStream(local).read(10) == b""

    def test_data(self, socket_pair):
        local, peer = socket_pair
        peer.sendall(b"hello")
        stream = InputStream(local)
        assert stream.blocking_read(10) == b"hello"

    def test_peer_closed(self, socket_pair):
        local, peer = socket_pair
        peer.close()
        stream = InputStream(local)

        with pytest.raises(StreamClosed):
            stream.blocking_read(10)
        assert stream.eof
        with pytest.raises(StreamClosed):
            stream.read(10)

    def test_read_after_close(self, socket_pair):
        local, _ = socket_pair
        stream = InputStream(local)
        stream.close()
        stream.close()
        with pytest.raises(StreamClosed):
            stream.read(1)


class TestOutputStream:
    """Tests for OutputStream."""

    def test_large_write_completes(self, socket_pair):
        """A write bigger than the socket buffer waits for the peer to drain."""
        local, peer = socket_pair
        payload = b"x" * (2 * 1024 * 1024)
        received = bytearray()

        def drain():
            while len(received) < len(payload):
                data = peer.recv(65536)
                if not data:
                    break
                received.extend(data)

        reader = threading.Thread(target=drain, daemon=True)
        reader.start()
        OutputStream(local).blocking_write_and_flush(payload)
        reader.join(timeout=10.0)

        assert bytes(received) == payload

    def test_write_after_close(self, socket_pair):
        local, _ = socket_pair
        stream = OutputStream(local)
        stream.close()
        with pytest.raises(LastOperationFailed):
            stream.blocking_write_and_flush(b"x")


class TestReadToEnd:
    """Tests for the bulk read loop."""

    def test_reads_until_close(self, socket_pair):
        local, peer = socket_pair
        peer.sendall(b"part one, ")
        peer.sendall(b"part two")
        peer.close()
        assert read_to_end(InputStream(local), chunk_size=4) == b"part one, part two"

    def test_error_returns_partial_data(self):
        """A failing read ends the loop; what was read is kept."""
        stream = ScriptedStream([b"abc", b"def", LastOperationFailed("reset"), b"never"])
        assert read_to_end(stream) == b"abcdef"

    def test_empty_chunk_ends_loop(self):
        stream = ScriptedStream([b"abc", b"", b"never"])
        assert read_to_end(stream) == b"abc"


class TestReadBounded:
    """Tests for the interactive read loop."""

    def test_silent_peer_is_bounded(self, socket_pair):
        """A peer that never writes costs at most max_polls * poll_interval."""
        local, _ = socket_pair
        start = time.monotonic()
        data = read_bounded(InputStream(local), max_polls=5, poll_interval=0.05)
        elapsed = time.monotonic() - start

        assert data == b""
        assert elapsed < 2.0

    def test_reply_returned(self, socket_pair):
        local, peer = socket_pair
        peer.sendall(b"pong\n")
        assert read_bounded(InputStream(local), max_polls=5, poll_interval=0.05) == b"pong\n"

    def test_max_bytes_cap(self, socket_pair):
        local, peer = socket_pair
        peer.sendall(b"y" * 10000)
        data = read_bounded(InputStream(local), max_polls=20, max_bytes=4096, poll_interval=0.05)
        assert data == b"y" * 4096

    def test_stops_on_close(self, socket_pair):
        local, peer = socket_pair
        peer.sendall(b"bye")
        peer.close()
        start = time.monotonic()
        data = read_bounded(InputStream(local), max_polls=100, poll_interval=0.5)
        assert data == b"bye"
        assert time.monotonic() - start < 5.0

    def test_failed_reads_are_retried(self):
        """A failing read is not the end; later data is still collected."""
        stream = FlakyInputStream([
            LastOperationFailed("temporarily unavailable"),
            LastOperationFailed("temporarily unavailable"),
            b"pong\n",
        ])
        assert read_bounded(stream, max_polls=5, poll_interval=0.01) == b"pong\n"
        assert stream.reads == 4

    def test_failed_reads_count_against_max_polls(self):
        stream = FlakyInputStream([LastOperationFailed("reset")] * 10 + [b"late"])
        assert read_bounded(stream, max_polls=3, poll_interval=0.01) == b""
        assert stream.reads == 3

    def test_pause_after_first_part_ends_reply(self, socket_pair):
        """With one quiet cycle allowed, a reply paused mid-way is cut."""
        local, peer = socket_pair
        peer.sendall(b"first ")
        timer = threading.Timer(0.4, peer.sendall, args=(b"second",))
        timer.start()
        try:
            data = read_bounded(InputStream(local), max_polls=40, poll_interval=0.05)
        finally:
            timer.join()
        assert data == b"first "

    def test_quiet_polls_wait_out_pause(self, socket_pair):
        local, peer = socket_pair
        peer.sendall(b"first ")
        timer = threading.Timer(0.4, peer.sendall, args=(b"second",))
        timer.start()
        try:
            data = read_bounded(
                InputStream(local), max_polls=60, poll_interval=0.05, quiet_polls=20
            )
        finally:
            timer.join()
        assert data == b"first second"
