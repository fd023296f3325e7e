"""Typed exception hierarchy for centapi."""

from __future__ import annotations


class CentError(Exception):
    """Base class for all centapi errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ConfigError(CentError):
    """Raised for configuration issues (unreadable file, invalid JSON, validation failure)."""


class CommandEncodeError(CentError):
    """Raised when a buffered command cannot be encoded as JSON."""

    def __init__(self, method: str, reason: str) -> None:
        self.method = method
        self.reason = reason
        super().__init__(f"Cannot encode '{method}' command: {reason}")


class PipeEmptyError(CentError):
    """Raised when sending a pipe that holds no commands."""

    def __init__(self) -> None:
        super().__init__("no commands in pipe")


class ClientError(CentError):
    """Base class for transport-level failures (connection, endpoint, protocol)."""


class TransportError(ClientError):
    """Raised when the HTTP exchange itself fails (connect, TLS, timeout)."""


class EndpointError(ClientError):
    """Raised when the dynamic endpoint resolver fails."""


class StatusCodeError(ClientError):
    """Raised when the server answers with a non-200 HTTP status."""

    def __init__(self, code: int) -> None:
        self.code = code
        super().__init__(f"wrong status code: {code}")


class MalformedResponseError(ClientError):
    """Raised when the reply stream cannot be trusted.

    Either an element of the stream failed to parse, or the number of
    replies differs from the number of commands sent. Replies are correlated
    to commands by position only, so the whole batch is discarded.
    """

    def __init__(self, reason: str = "") -> None:
        self.reason = reason
        message = "malformed response returned from server"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class ServerError(CentError):
    """Error reported by the server for one command of a batch.

    Attributes:
        code: Numeric error code from the reply.
        message: Human-readable error message from the reply.
    """

    def __init__(self, code: int, message: str) -> None:
        self.code = code
        super().__init__(message)

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"

    def __repr__(self) -> str:
        return f"ServerError(code={self.code!r}, message={self.message!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ServerError):
            return NotImplemented
        return self.code == other.code and self.message == other.message

    def __hash__(self) -> int:
        return hash((self.code, self.message))


class DecodeError(CentError):
    """Raised when a successful reply's result does not match its method's shape."""

    def __init__(self, method: str, reason: str) -> None:
        self.method = method
        self.reason = reason
        super().__init__(f"Cannot decode '{method}' result: {reason}")
