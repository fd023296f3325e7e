"""Batched command pipeline for the server HTTP API.

Commands are collected in a Pipe, sent as newline-delimited JSON in one
HTTP request and answered by a stream of replies in the same order:

    POST /api
    {"method":"publish","params":{"channel":"chat","data":{"input":"test"}}}
    {"method":"presence","params":{"channel":"chat"}}

    {"result":{"offset":7,"epoch":"xyz"}}
    {"error":{"code":102,"message":"unknown channel"}}
"""

from centapi.api.options import (
    NO_LIMIT,
    ChannelsOptions,
    Disconnect,
    DisconnectOptions,
    HistoryOptions,
    PublishOptions,
    StreamPosition,
    SubscribeOptions,
    UnsubscribeOptions,
    with_disconnect,
    with_disconnect_client,
    with_disconnect_client_whitelist,
    with_join_leave,
    with_limit,
    with_pattern,
    with_position,
    with_presence,
    with_recover,
    with_recover_since,
    with_reverse,
    with_since,
    with_skip_history,
    with_subscribe_client,
    with_subscribe_data,
    with_subscribe_info,
    with_unsubscribe_client,
)
from centapi.api.pipe import Pipe
from centapi.api.protocol import (
    ReplyStreamDecoder,
    parse_replies,
    parse_reply,
    serialize_command,
    serialize_commands,
)
from centapi.api.results import (
    BroadcastResult,
    ChannelInfo,
    ChannelsResult,
    ClientInfo,
    HistoryResult,
    InfoResult,
    Metrics,
    NodeInfo,
    PresenceResult,
    PresenceStatsResult,
    ProcessInfo,
    Publication,
    PublishResponse,
    PublishResult,
    decode_broadcast,
    decode_channels,
    decode_history,
    decode_info,
    decode_presence,
    decode_presence_stats,
    decode_publish,
    decode_result,
)
from centapi.api.types import Command, Method, PublishRequest, Reply

__all__ = [
    # Envelope
    "Command",
    "Method",
    "PublishRequest",
    "Reply",
    # Buffer and framing
    "Pipe",
    "ReplyStreamDecoder",
    "parse_replies",
    "parse_reply",
    "serialize_command",
    "serialize_commands",
    # Options
    "NO_LIMIT",
    "ChannelsOptions",
    "Disconnect",
    "DisconnectOptions",
    "HistoryOptions",
    "PublishOptions",
    "StreamPosition",
    "SubscribeOptions",
    "UnsubscribeOptions",
    "with_disconnect",
    "with_disconnect_client",
    "with_disconnect_client_whitelist",
    "with_join_leave",
    "with_limit",
    "with_pattern",
    "with_position",
    "with_presence",
    "with_recover",
    "with_recover_since",
    "with_reverse",
    "with_since",
    "with_skip_history",
    "with_subscribe_client",
    "with_subscribe_data",
    "with_subscribe_info",
    "with_unsubscribe_client",
    # Results
    "BroadcastResult",
    "ChannelInfo",
    "ChannelsResult",
    "ClientInfo",
    "HistoryResult",
    "InfoResult",
    "Metrics",
    "NodeInfo",
    "PresenceResult",
    "PresenceStatsResult",
    "ProcessInfo",
    "Publication",
    "PublishResponse",
    "PublishResult",
    "decode_broadcast",
    "decode_channels",
    "decode_history",
    "decode_info",
    "decode_presence",
    "decode_presence_stats",
    "decode_publish",
    "decode_result",
]
