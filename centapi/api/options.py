"""Optional parameters for API commands.

Each command kind has an options record whose fields default to None
("unset"). Option decorators are small functions returning a setter for one
field; Pipe.add_* applies them in order to a fresh record, so the last
decorator for a field wins. Unset fields never reach the wire.

Example:
    pipe.add_subscribe(
        "chat",
        "42",
        with_presence(True),
        with_recover_since(StreamPosition(offset=10, epoch="xyz")),
    )
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

# History limit meaning "return every publication currently in the stream".
NO_LIMIT = -1


def _set_fields(pairs: list[tuple[str, Any]]) -> dict[str, Any]:
    """Build a wire dict from (name, value) pairs, dropping unset values."""
    return {name: value for name, value in pairs if value is not None}


@dataclass(frozen=True)
class StreamPosition:
    """Position inside a channel's publication stream.

    Attributes:
        offset: Incremental publication offset inside the stream.
        epoch: Stream epoch; changes when the stream is lost and recreated,
            which makes recovery from an older position impossible.
    """

    offset: int | None = None
    epoch: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _set_fields([("offset", self.offset), ("epoch", self.epoch)])


@dataclass(frozen=True)
class Disconnect:
    """Custom disconnect sent to a client's connection.

    Attributes:
        reason: Short description of the disconnect.
        reconnect: Advice to the client whether to reconnect.
        code: Disconnect code; omitted when None.
    """

    reason: str = ""
    reconnect: bool = False
    code: int | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"reason": self.reason, "reconnect": self.reconnect}
        if self.code is not None:
            data["code"] = self.code
        return data


@dataclass
class PublishOptions:
    """Options for publish and broadcast."""

    skip_history: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        return _set_fields([("skip_history", self.skip_history)])


@dataclass
class SubscribeOptions:
    """Options for server-side subscribe.

    Attributes:
        info: Custom channel info attached to the subscription.
        presence: Participate in channel presence.
        join_leave: Send join and leave messages for this client.
        position: Track the client's position inside the stream.
        recover: Recover missed publications on resubscribe.
        data: Custom data sent to the client with the subscribe push.
        recover_since: Stream position to recover from.
        client: Client ID to subscribe (only a single connection of the user).
    """

    info: Any = None
    presence: bool | None = None
    join_leave: bool | None = None
    position: bool | None = None
    recover: bool | None = None
    data: Any = None
    recover_since: StreamPosition | None = None
    client: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _set_fields([
            ("info", self.info),
            ("presence", self.presence),
            ("join_leave", self.join_leave),
            ("position", self.position),
            ("recover", self.recover),
            ("data", self.data),
            ("recover_since", self.recover_since.to_dict() if self.recover_since else None),
            ("client", self.client),
        ])


@dataclass
class UnsubscribeOptions:
    """Options for server-side unsubscribe."""

    client: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _set_fields([("client", self.client)])


@dataclass
class DisconnectOptions:
    """Options for disconnect.

    Attributes:
        disconnect: Custom disconnect; the server default is used when unset.
        client_whitelist: Client IDs of the user to keep connected.
        client: Disconnect only this client ID of the user.
    """

    disconnect: Disconnect | None = None
    client_whitelist: list[str] | None = None
    client: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _set_fields([
            ("disconnect", self.disconnect.to_dict() if self.disconnect else None),
            ("whitelist", self.client_whitelist),
            ("client", self.client),
        ])


@dataclass
class HistoryOptions:
    """Options for history.

    Attributes:
        since: Return publications after this stream position.
        limit: Maximum number of publications. NO_LIMIT returns the whole
            stream; 0 returns only the current stream top position.
        reverse: Iterate the stream from newest to oldest.
    """

    since: StreamPosition | None = None
    limit: int | None = None
    reverse: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        return _set_fields([
            ("since", self.since.to_dict() if self.since else None),
            ("limit", self.limit),
            ("reverse", self.reverse),
        ])


@dataclass
class ChannelsOptions:
    """Options for channels."""

    pattern: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _set_fields([("pattern", self.pattern)])


PublishOption = Callable[[PublishOptions], None]
SubscribeOption = Callable[[SubscribeOptions], None]
UnsubscribeOption = Callable[[UnsubscribeOptions], None]
DisconnectOption = Callable[[DisconnectOptions], None]
HistoryOption = Callable[[HistoryOptions], None]
ChannelsOption = Callable[[ChannelsOptions], None]


# === Publish / broadcast ===


def with_skip_history(skip: bool) -> PublishOption:
    """Do not save the publication into channel history."""

    def apply(opts: PublishOptions) -> None:
        opts.skip_history = skip

    return apply


# === Subscribe ===


def with_subscribe_info(info: Any) -> SubscribeOption:
    """Attach custom channel info to the subscription."""

    def apply(opts: SubscribeOptions) -> None:
        opts.info = info

    return apply


def with_presence(enabled: bool) -> SubscribeOption:
    def apply(opts: SubscribeOptions) -> None:
        opts.presence = enabled

    return apply


def with_join_leave(enabled: bool) -> SubscribeOption:
    def apply(opts: SubscribeOptions) -> None:
        opts.join_leave = enabled

    return apply


def with_position(enabled: bool) -> SubscribeOption:
    def apply(opts: SubscribeOptions) -> None:
        opts.position = enabled

    return apply


def with_recover(enabled: bool) -> SubscribeOption:
    def apply(opts: SubscribeOptions) -> None:
        opts.recover = enabled

    return apply


def with_subscribe_client(client_id: str) -> SubscribeOption:
    """Subscribe only the given client connection of the user."""

    def apply(opts: SubscribeOptions) -> None:
        opts.client = client_id

    return apply


def with_subscribe_data(data: Any) -> SubscribeOption:
    """Send custom data to the client with the subscribe push."""

    def apply(opts: SubscribeOptions) -> None:
        opts.data = data

    return apply


def with_recover_since(since: StreamPosition | None) -> SubscribeOption:
    """Subscribe and recover publications from a stream position."""

    def apply(opts: SubscribeOptions) -> None:
        opts.recover_since = since

    return apply


# === Unsubscribe ===


def with_unsubscribe_client(client_id: str) -> UnsubscribeOption:
    """Unsubscribe only the given client connection of the user."""

    def apply(opts: UnsubscribeOptions) -> None:
        opts.client = client_id

    return apply


# === Disconnect ===


def with_disconnect(disconnect: Disconnect | None) -> DisconnectOption:
    """Use a custom disconnect instead of the server default."""

    def apply(opts: DisconnectOptions) -> None:
        opts.disconnect = disconnect

    return apply


def with_disconnect_client(client_id: str) -> DisconnectOption:
    def apply(opts: DisconnectOptions) -> None:
        opts.client = client_id

    return apply


def with_disconnect_client_whitelist(whitelist: list[str]) -> DisconnectOption:
    """Keep the listed client IDs connected."""

    def apply(opts: DisconnectOptions) -> None:
        opts.client_whitelist = whitelist

    return apply


# === History ===


def with_limit(limit: int) -> HistoryOption:
    def apply(opts: HistoryOptions) -> None:
        opts.limit = limit

    return apply


def with_since(since: StreamPosition | None) -> HistoryOption:
    def apply(opts: HistoryOptions) -> None:
        opts.since = since

    return apply


def with_reverse(reverse: bool) -> HistoryOption:
    def apply(opts: HistoryOptions) -> None:
        opts.reverse = reverse

    return apply


# === Channels ===


def with_pattern(pattern: str) -> ChannelsOption:
    """Filter channels by pattern."""

    def apply(opts: ChannelsOptions) -> None:
        opts.pattern = pattern

    return apply
