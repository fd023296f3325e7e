"""Command envelope, per-method params payloads and replies."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from centapi.api.options import (
    ChannelsOptions,
    DisconnectOptions,
    HistoryOptions,
    PublishOptions,
    SubscribeOptions,
    UnsubscribeOptions,
)
from centapi.core.errors import ServerError


class Method(str, Enum):
    """Server API method names."""

    PUBLISH = "publish"
    BROADCAST = "broadcast"
    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"
    DISCONNECT = "disconnect"
    PRESENCE = "presence"
    PRESENCE_STATS = "presence_stats"
    HISTORY = "history"
    HISTORY_REMOVE = "history_remove"
    CHANNELS = "channels"
    INFO = "info"


class CommandParams(Protocol):
    """Anything that can serialize itself into a command's params object."""

    def to_dict(self) -> dict[str, Any]: ...


# --- Params payloads ---
# Required fields first, then every set optional field merged in.


@dataclass(frozen=True)
class PublishRequest:
    """A single publication; also accepted in bulk by Pipe.add_publish_requests().

    Attributes:
        channel: Channel to publish into.
        data: JSON-serializable publication payload.
        options: Optional publish parameters.
    """

    channel: str
    data: Any
    options: PublishOptions = field(default_factory=PublishOptions)

    def to_dict(self) -> dict[str, Any]:
        return {"channel": self.channel, "data": self.data, **self.options.to_dict()}


@dataclass(frozen=True)
class BroadcastParams:
    channels: tuple[str, ...]
    data: Any
    options: PublishOptions = field(default_factory=PublishOptions)

    def to_dict(self) -> dict[str, Any]:
        return {"channels": list(self.channels), "data": self.data, **self.options.to_dict()}


@dataclass(frozen=True)
class SubscribeParams:
    channel: str
    user: str
    options: SubscribeOptions = field(default_factory=SubscribeOptions)

    def to_dict(self) -> dict[str, Any]:
        return {"channel": self.channel, "user": self.user, **self.options.to_dict()}


@dataclass(frozen=True)
class UnsubscribeParams:
    channel: str
    user: str
    options: UnsubscribeOptions = field(default_factory=UnsubscribeOptions)

    def to_dict(self) -> dict[str, Any]:
        return {"channel": self.channel, "user": self.user, **self.options.to_dict()}


@dataclass(frozen=True)
class DisconnectParams:
    user: str
    options: DisconnectOptions = field(default_factory=DisconnectOptions)

    def to_dict(self) -> dict[str, Any]:
        return {"user": self.user, **self.options.to_dict()}


@dataclass(frozen=True)
class ChannelParams:
    """Params for methods that only take a channel (presence, presence_stats, history_remove)."""

    channel: str

    def to_dict(self) -> dict[str, Any]:
        return {"channel": self.channel}


@dataclass(frozen=True)
class HistoryParams:
    channel: str
    options: HistoryOptions = field(default_factory=HistoryOptions)

    def to_dict(self) -> dict[str, Any]:
        return {"channel": self.channel, **self.options.to_dict()}


@dataclass(frozen=True)
class ChannelsParams:
    options: ChannelsOptions = field(default_factory=ChannelsOptions)

    def to_dict(self) -> dict[str, Any]:
        return self.options.to_dict()


@dataclass(frozen=True)
class InfoParams:
    def to_dict(self) -> dict[str, Any]:
        return {}


@dataclass(frozen=True)
class Command:
    """One API command.

    Attributes:
        method: Server API method name.
        params: Method-specific params payload.
        uid: Optional correlation hint, omitted from the wire when None.
    """

    method: str
    params: CommandParams
    uid: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.uid is not None:
            data["uid"] = self.uid
        data["method"] = self.method
        data["params"] = self.params.to_dict()
        return data


@dataclass(frozen=True)
class Reply:
    """Server reply to one command, correlated by position.

    Attributes:
        result: Raw JSON result payload (None when absent).
        error: Per-command server error, or None on success.
        method: Method name echoed by the server, if any.
    """

    result: Any = None
    error: ServerError | None = None
    method: str | None = None

    @property
    def ok(self) -> bool:
        """Return True if the server reported no error for this command."""
        return self.error is None

    def raise_for_error(self) -> None:
        """Raise the reply's ServerError, if any."""
        if self.error is not None:
            raise self.error

    def decode(self, method: str) -> Any:
        """Decode the result for the given method, raising the server error first.

        Raises:
            ServerError: If the reply carries an error.
            DecodeError: If the result does not match the method's result shape.
        """
        from centapi.api.results import decode_result

        self.raise_for_error()
        return decode_result(method, self.result)
