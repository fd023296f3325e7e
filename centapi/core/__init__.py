"""Core types: errors and cancellation."""

from centapi.core.cancel import CancellationToken
from centapi.core.errors import (
    CentError,
    ClientError,
    CommandEncodeError,
    ConfigError,
    DecodeError,
    EndpointError,
    MalformedResponseError,
    PipeEmptyError,
    ServerError,
    StatusCodeError,
    TransportError,
)

__all__ = [
    "CancellationToken",
    "CentError",
    "ClientError",
    "CommandEncodeError",
    "ConfigError",
    "DecodeError",
    "EndpointError",
    "MalformedResponseError",
    "PipeEmptyError",
    "ServerError",
    "StatusCodeError",
    "TransportError",
]
