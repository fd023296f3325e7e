"""Ordered, thread-safe buffer of API commands sent in one HTTP request."""

import copy
import threading
from collections.abc import Iterable, Sequence
from typing import Any

from centapi.api.options import (
    ChannelsOption,
    ChannelsOptions,
    DisconnectOption,
    DisconnectOptions,
    HistoryOption,
    HistoryOptions,
    PublishOption,
    PublishOptions,
    SubscribeOption,
    SubscribeOptions,
    UnsubscribeOption,
    UnsubscribeOptions,
)
from centapi.api.types import (
    BroadcastParams,
    ChannelParams,
    ChannelsParams,
    Command,
    DisconnectParams,
    HistoryParams,
    InfoParams,
    Method,
    PublishRequest,
    SubscribeParams,
    UnsubscribeParams,
)


def _apply(options: Any, opts: Iterable[Any]) -> Any:
    """Apply option decorators in order to a fresh options record."""
    for opt in opts:
        opt(options)
    return options


class Pipe:
    """Collects commands to send several of them in one HTTP request.

    Commands are kept in enqueue order and the server replies in the same
    order. Every add_* call appends atomically under a lock, so a pipe may
    be shared between threads. Values passed to add_* (data, option values)
    are deep-copied: mutating them afterwards does not change a buffered
    command.

    Nothing is sent until the pipe is passed to CentClient.send_pipe().
    Whether a successful send empties the pipe is a client setting
    (ClientConfig.clear_pipe_on_send); call reset() to clear it explicitly.

    Example:
        pipe = client.pipe()
        pipe.add_publish("chat", {"input": "test"})
        pipe.add_presence("chat")
        replies = await client.send_pipe(pipe)
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._commands: list[Command] = []

    def __len__(self) -> int:
        with self._lock:
            return len(self._commands)

    def __repr__(self) -> str:
        return f"Pipe(commands={len(self)})"

    @property
    def commands(self) -> tuple[Command, ...]:
        """Snapshot of the buffered commands in enqueue order."""
        with self._lock:
            return tuple(self._commands)

    def reset(self) -> None:
        """Discard all buffered commands."""
        with self._lock:
            self._commands = []

    def discard_sent(self, count: int) -> None:
        """Remove the first `count` commands (the ones consumed by a send).

        Commands appended while the send was in flight stay buffered.
        """
        with self._lock:
            del self._commands[:count]

    def add(self, command: Command) -> None:
        """Append a pre-built command."""
        with self._lock:
            self._commands.append(command)

    def _add_many(self, commands: Sequence[Command]) -> None:
        with self._lock:
            self._commands.extend(commands)

    def add_publish(self, channel: str, data: Any, *opts: PublishOption) -> None:
        """Queue a publish of data into channel."""
        options = _apply(PublishOptions(), opts)
        params = PublishRequest(channel=channel, data=copy.deepcopy(data), options=options)
        self.add(Command(method=Method.PUBLISH.value, params=params))

    def add_publish_requests(self, requests: Iterable[PublishRequest]) -> None:
        """Queue several publications at once; they are appended as one atomic block."""
        commands = [
            Command(method=Method.PUBLISH.value, params=copy.deepcopy(request))
            for request in requests
        ]
        self._add_many(commands)

    def add_broadcast(self, channels: Sequence[str], data: Any, *opts: PublishOption) -> None:
        """Queue a publish of the same data into many channels."""
        if isinstance(channels, str):
            raise TypeError("channels must be a sequence of channel names, not a str")
        options = _apply(PublishOptions(), opts)
        params = BroadcastParams(
            channels=tuple(channels),
            data=copy.deepcopy(data),
            options=options,
        )
        self.add(Command(method=Method.BROADCAST.value, params=params))

    def add_subscribe(self, channel: str, user: str, *opts: SubscribeOption) -> None:
        """Queue a server-side subscription of user to channel."""
        options = copy.deepcopy(_apply(SubscribeOptions(), opts))
        params = SubscribeParams(channel=channel, user=user, options=options)
        self.add(Command(method=Method.SUBSCRIBE.value, params=params))

    def add_unsubscribe(self, channel: str, user: str, *opts: UnsubscribeOption) -> None:
        options = _apply(UnsubscribeOptions(), opts)
        params = UnsubscribeParams(channel=channel, user=user, options=options)
        self.add(Command(method=Method.UNSUBSCRIBE.value, params=params))

    def add_disconnect(self, user: str, *opts: DisconnectOption) -> None:
        options = copy.deepcopy(_apply(DisconnectOptions(), opts))
        params = DisconnectParams(user=user, options=options)
        self.add(Command(method=Method.DISCONNECT.value, params=params))

    def add_presence(self, channel: str) -> None:
        self.add(Command(method=Method.PRESENCE.value, params=ChannelParams(channel=channel)))

    def add_presence_stats(self, channel: str) -> None:
        self.add(Command(method=Method.PRESENCE_STATS.value, params=ChannelParams(channel=channel)))

    def add_history(self, channel: str, *opts: HistoryOption) -> None:
        options = _apply(HistoryOptions(), opts)
        params = HistoryParams(channel=channel, options=options)
        self.add(Command(method=Method.HISTORY.value, params=params))

    def add_history_remove(self, channel: str) -> None:
        self.add(Command(method=Method.HISTORY_REMOVE.value, params=ChannelParams(channel=channel)))

    def add_channels(self, *opts: ChannelsOption) -> None:
        options = _apply(ChannelsOptions(), opts)
        self.add(Command(method=Method.CHANNELS.value, params=ChannelsParams(options=options)))

    def add_info(self) -> None:
        self.add(Command(method=Method.INFO.value, params=InfoParams()))
