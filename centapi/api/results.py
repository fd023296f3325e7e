"""Typed results of API commands and the decoders that build them.

Every method maps to exactly one result shape. Decoding ignores unknown
fields but fails with DecodeError on a missing or non-object result, a
missing required field, or a field of the wrong type. Subscribe,
unsubscribe, disconnect and history_remove only acknowledge; their result
payload is not decoded.
"""

from collections.abc import Callable
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, ValidationError

from centapi.core.errors import DecodeError


class _Result(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class PublishResult(_Result):
    """Stream position of the new publication (zero values when history is off)."""

    offset: StrictInt = 0
    epoch: StrictStr = ""


class ReplyErrorModel(_Result):
    code: StrictInt
    message: StrictStr


class PublishResponse(_Result):
    """Outcome of the publication into one channel of a broadcast."""

    error: ReplyErrorModel | None = None
    result: PublishResult | None = None


class BroadcastResult(_Result):
    """One PublishResponse per broadcast channel, in request order."""

    responses: list[PublishResponse]


class ClientInfo(_Result):
    """Information about one client connection."""

    client: StrictStr
    user: StrictStr
    conn_info: Any = None
    chan_info: Any = None


class PresenceResult(_Result):
    """Clients currently subscribed to a channel, keyed by client ID."""

    presence: dict[str, ClientInfo] = Field(default_factory=dict)


class PresenceStatsResult(_Result):
    num_clients: StrictInt
    num_users: StrictInt


class Publication(_Result):
    offset: StrictInt = 0
    data: Any = None
    info: ClientInfo | None = None


class HistoryResult(_Result):
    """Publications from channel history plus the current stream top position."""

    publications: list[Publication] = Field(default_factory=list)
    offset: StrictInt = 0
    epoch: StrictStr = ""


class ChannelInfo(_Result):
    num_clients: StrictInt = 0


class ChannelsResult(_Result):
    """Active channels (with one or more subscribers), keyed by name."""

    channels: dict[str, ChannelInfo] = Field(default_factory=dict)


class Metrics(_Result):
    interval: float = 0.0
    items: dict[str, float] = Field(default_factory=dict)


class ProcessInfo(_Result):
    cpu: float = 0.0
    rss: StrictInt = 0


class NodeInfo(_Result):
    """Information and statistics about one server node."""

    uid: StrictStr
    name: StrictStr
    version: StrictStr = ""
    num_clients: StrictInt = 0
    num_users: StrictInt = 0
    num_channels: StrictInt = 0
    uptime: StrictInt = 0
    metrics: Metrics | None = None
    process: ProcessInfo | None = None


class InfoResult(_Result):
    nodes: list[NodeInfo]


T = TypeVar("T", bound=_Result)


def _decode(method: str, model: type[T], result: Any) -> T:
    if not isinstance(result, dict):
        raise DecodeError(method, f"expected a JSON object, got: {type(result).__name__}")
    try:
        return model.model_validate(result)
    except ValidationError as e:
        raise DecodeError(method, str(e)) from e


def decode_publish(result: Any) -> PublishResult:
    return _decode("publish", PublishResult, result)


def decode_broadcast(result: Any) -> BroadcastResult:
    return _decode("broadcast", BroadcastResult, result)


def decode_presence(result: Any) -> PresenceResult:
    return _decode("presence", PresenceResult, result)


def decode_presence_stats(result: Any) -> PresenceStatsResult:
    return _decode("presence_stats", PresenceStatsResult, result)


def decode_history(result: Any) -> HistoryResult:
    return _decode("history", HistoryResult, result)


def decode_channels(result: Any) -> ChannelsResult:
    return _decode("channels", ChannelsResult, result)


def decode_info(result: Any) -> InfoResult:
    return _decode("info", InfoResult, result)


DECODERS: dict[str, Callable[[Any], _Result]] = {
    "publish": decode_publish,
    "broadcast": decode_broadcast,
    "presence": decode_presence,
    "presence_stats": decode_presence_stats,
    "history": decode_history,
    "channels": decode_channels,
    "info": decode_info,
}

# Methods whose reply carries no result beyond success or error
ACK_METHODS = frozenset({"subscribe", "unsubscribe", "disconnect", "history_remove"})


def decode_result(method: str, result: Any) -> _Result | None:
    """Decode a reply result according to the method that produced it.

    Args:
        method: Method name of the command at the reply's position.
        result: Raw JSON result payload of a reply without error.

    Returns:
        The typed result, or None for acknowledgement-only methods.

    Raises:
        DecodeError: If the method is unknown or the result does not match.
    """
    if method in ACK_METHODS:
        return None
    decoder = DECODERS.get(method)
    if decoder is None:
        raise DecodeError(method, "unknown method")
    return decoder(result)
