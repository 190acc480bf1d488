"""
=============================================================================
GATEWAY ERROR TAXONOMY
=============================================================================

Every failure the network engine can report is a subclass of GatewayError.
The router catches GatewayError at its boundary and turns it into a line of
human-readable text, so nothing raised down here ever aborts an inbound
request.

=============================================================================
ERRORS BY ORIGIN
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        GatewayError                                  │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   WouldBlock               "not yet" signal, caught by poll loops    │
    │                                                                      │
    │   RESOLUTION               NoAddressFound                            │
    │                            ResolutionFailed(reason)                  │
    │                                                                      │
    │   CONNECTION               SocketCreateFailed(reason)                │
    │                            ConnectFailed(reason)                     │
    │                                                                      │
    │   TRANSPORT                StreamError                               │
    │                            ├── StreamClosed                          │
    │                            └── LastOperationFailed(reason)           │
    │                                                                      │
    │   PROTOCOL / API           UnsupportedScheme(url)                    │
    │                            HttpStatusError(status, body)             │
    │                            TransportError(reason)                    │
    │                            ResponseTimeout                           │
    │                                                                      │
    │   CONFIGURATION            MissingCredential(name)                   │
    │                            CompletionFormatError(reason)             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The str() of each error is what ends up in the response body, so messages
are short and lowercase, in the style "connect failed: connection refused".

=============================================================================
"""

from typing import Optional


class GatewayError(Exception):
    """Base class for every error raised by the gateway engine."""


class WouldBlock(GatewayError):
    """
    The operation cannot make progress yet.

    Callers wait on the operation's readiness token and retry. This never
    reaches the router; every state machine swallows it inside its loop.
    """

    def __init__(self, message: str = "would block"):
        super().__init__(message)


# =============================================================================
# RESOLUTION
# =============================================================================

class NoAddressFound(GatewayError):
    """The resolver finished without producing a single address."""

    def __init__(self, hostname: str = ""):
        self.hostname = hostname
        super().__init__(f"no addresses found for '{hostname}'" if hostname else "no addresses found")


class ResolutionFailed(GatewayError):
    """The resolver reported an error other than exhaustion."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"resolution failed: {reason}")


# =============================================================================
# CONNECTION
# =============================================================================

class SocketCreateFailed(GatewayError):
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"create socket: {reason}")


class ConnectFailed(GatewayError):
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"connect failed: {reason}")


# =============================================================================
# TRANSPORT
# =============================================================================

class StreamError(GatewayError):
    """Base for byte-stream read/write failures."""


class StreamClosed(StreamError):
    """The peer closed the stream (end of stream)."""

    def __init__(self, message: str = "stream closed"):
        super().__init__(message)


class LastOperationFailed(StreamError):
    """The last read or write failed; the stream may still be usable."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"stream operation failed: {reason}")


# =============================================================================
# PROTOCOL / API
# =============================================================================

class UnsupportedScheme(GatewayError):
    def __init__(self, url: str):
        self.url = url
        super().__init__(f"unsupported scheme in url '{url}' (expected http:// or https://)")


class HttpStatusError(GatewayError):
    """
    The origin answered with a non-2xx status.

    The body is kept: most APIs put their diagnostic JSON there.
    """

    def __init__(self, status: int, body: str):
        self.status = status
        self.body = body
        super().__init__(f"http status {status}: {body}")

    def __eq__(self, other):
        if not isinstance(other, HttpStatusError):
            return NotImplemented
        return (self.status, self.body) == (other.status, other.body)

    def __hash__(self):
        return hash((self.status, self.body))


class TransportError(GatewayError):
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"transport error: {reason}")


class ResponseTimeout(GatewayError):
    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout
        if timeout is None:
            super().__init__("response timeout")
        else:
            super().__init__(f"response timeout after {timeout:g}s")


# =============================================================================
# CONFIGURATION / COLLABORATORS
# =============================================================================

class MissingCredential(GatewayError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"{name} is not set")


class CompletionFormatError(GatewayError):
    """The AI-completion response did not have the expected shape."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"unexpected completion payload: {reason}")
