"""
=============================================================================
OUTGOING HTTP FACILITY
=============================================================================

The host side of an outbound HTTP exchange. The engine builds an
OutgoingRequest, writes its body, and hands it to the OutgoingHandler,
which performs the exchange with `requests` on the host executor:

    OutgoingRequest ──► OutgoingHandler.handle() ──► FutureIncomingResponse
         │                                                   │
    OutgoingBody.write()                                subscribe() / get()
    OutgoingBody.finish()                                    │
                                                             ▼
                                                      IncomingResponse
                                                        .status
                                                        .headers
                                                        .consume() ──► body stream

The response body is streamed (stream=True): headers arrive on the host
thread, and each body chunk is read by its own host task, so the engine
waits for body bytes in poll() just as it waits for the headers.

A response that nobody picks up (the future was dropped after a timeout)
is closed when it lands, so its connection goes back to the pool.

=============================================================================
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, List, Optional, Tuple

import requests

from .errors import LastOperationFailed, ResponseTimeout, StreamClosed, TransportError
from .host import HostTask
from .network import Network, instance_network
from .poll import Pollable, poll


logger = logging.getLogger(__name__)


class Fields:
    """Ordered, case-insensitive header list."""

    def __init__(self, entries: Optional[Iterable[Tuple[str, str]]] = None):
        self._entries: List[Tuple[str, str]] = []
        for name, value in entries or ():
            self.append(name, value)

    def append(self, name: str, value: str) -> None:
        self._entries.append((name.lower(), value))

    def get(self, name: str) -> List[str]:
        name = name.lower()
        return [v for n, v in self._entries if n == name]

    def entries(self) -> List[Tuple[str, str]]:
        return list(self._entries)

    def to_dict(self) -> Dict[str, str]:
        merged: Dict[str, str] = {}
        for name, value in self._entries:
            merged[name] = f"{merged[name]}, {value}" if name in merged else value
        return merged

    def __contains__(self, name: str) -> bool:
        return bool(self.get(name))

    def __len__(self) -> int:
        return len(self._entries)


class OutgoingBody:
    """Request body, written through its stream then finished."""

    def __init__(self):
        self._buffer = bytearray()
        self._open = False
        self.finished = False

    def write(self) -> "OutgoingBody":
        """Return the body's output stream (the body itself)."""
        if self.finished:
            raise TransportError("body already finished")
        self._open = True
        return self

    def blocking_write_and_flush(self, data: bytes) -> None:
        if not self._open or self.finished:
            raise LastOperationFailed("body stream is not open")
        self._buffer.extend(data)

    def finish(self) -> None:
        self._open = False
        self.finished = True

    def getvalue(self) -> bytes:
        return bytes(self._buffer)


class OutgoingRequest:
    def __init__(
        self,
        method: str,
        scheme: str,
        authority: str,
        path_with_query: str = "/",
        headers: Optional[Fields] = None,
    ):
        self.method = method.upper()
        self.scheme = scheme
        self.authority = authority
        self.path_with_query = path_with_query or "/"
        self.headers = headers if headers is not None else Fields()
        self._body: Optional[OutgoingBody] = None

    @property
    def url(self) -> str:
        return f"{self.scheme}://{self.authority}{self.path_with_query}"

    def body(self) -> OutgoingBody:
        """The request body. Created on first call."""
        if self._body is None:
            self._body = OutgoingBody()
        return self._body

    def payload(self) -> Optional[bytes]:
        if self._body is None:
            return None
        if not self._body.finished:
            raise TransportError("request body was not finished")
        return self._body.getvalue()


class IncomingBody:
    """
    Response body stream.

    Each chunk is read from the connection by a HostTask; the sequence
    waits on the task's token, so body reads suspend in poll() like every
    other engine read. The stall bound is the requests read timeout.
    """

    def __init__(self, response: requests.Response, executor: ThreadPoolExecutor):
        self._response = response
        self._executor = executor
        self.closed = False

    def _read_chunk(self, n: int) -> bytes:
        return self._response.raw.read(n, decode_content=True)

    def blocking_read(self, n: int) -> bytes:
        if self.closed:
            raise StreamClosed()
        with HostTask(self._read_chunk, n, executor=self._executor) as task:
            while not task.done():
                poll([task.subscribe()])
            try:
                data = task.result()
            except Exception as e:  # urllib3 errors reach raw.read() unwrapped
                raise LastOperationFailed(str(e)) from e
        if not data:
            raise StreamClosed()
        return data

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._response.close()


class IncomingResponse:
    def __init__(self, response: requests.Response, executor: ThreadPoolExecutor):
        self._response = response
        self._executor = executor
        self.status: int = response.status_code
        self.headers = Fields(response.headers.items())
        self._consumed = False

    def consume(self) -> IncomingBody:
        if self._consumed:
            raise TransportError("response body already consumed")
        self._consumed = True
        return IncomingBody(self._response, self._executor)

    def close(self) -> None:
        self._response.close()


class FutureIncomingResponse:
    """
    A response that is on its way.

    subscribe() fires when the response headers arrive, the exchange fails,
    or the timeout passes.
    """

    def __init__(self, task: HostTask, timeout: Optional[float], executor: ThreadPoolExecutor):
        self._task = task
        self.timeout = timeout
        self._executor = executor

    def subscribe(self) -> Pollable:
        return self._task.subscribe()

    def get(self) -> Optional[IncomingResponse]:
        """
        The response, or None if it has not arrived yet.

        Raises:
            ResponseTimeout: requests gave up waiting.
            TransportError: Any other failure of the exchange.
        """
        if not self._task.done():
            return None
        try:
            response = self._task.result()
        except requests.Timeout as e:
            raise ResponseTimeout(self.timeout) from e
        except requests.RequestException as e:
            raise TransportError(str(e)) from e
        finally:
            self._task.close()
        return IncomingResponse(response, self._executor)

    def close(self) -> None:
        self._task.close()


def _close_response(response) -> None:
    logger.debug("Closing abandoned outgoing response")
    response.close()


class OutgoingHandler:
    """
    Performs outgoing requests with a shared requests.Session.
    """

    def __init__(self, network: Optional[Network] = None, session: Optional[requests.Session] = None):
        self.network = network or instance_network()
        self.session = session or requests.Session()

    def _exchange(self, request: OutgoingRequest, payload: Optional[bytes], timeout: Optional[float]):
        return self.session.request(
            request.method,
            request.url,
            headers=request.headers.to_dict(),
            data=payload,
            stream=True,
            timeout=timeout,
            allow_redirects=False,
        )

    def handle(self, request: OutgoingRequest, timeout: Optional[float] = None) -> FutureIncomingResponse:
        """
        Dispatch `request`.

        Raises:
            TransportError: The request body was opened but not finished.
        """
        payload = request.payload()
        logger.debug(f"{request.method} {request.url} ({len(payload or b'')} body bytes)")

        task = HostTask(
            self._exchange,
            request,
            payload,
            timeout,
            executor=self.network.executor,
            timeout=timeout,
            on_discard=_close_response,
        )
        return FutureIncomingResponse(task, timeout, self.network.executor)


_handler: Optional[OutgoingHandler] = None


def default_handler() -> OutgoingHandler:
    global _handler
    if _handler is None:
        _handler = OutgoingHandler()
    return _handler
