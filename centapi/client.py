"""Async HTTP client for the server API."""

import asyncio
import inspect
import logging
import os
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

import httpx

from centapi.api.options import (
    ChannelsOption,
    DisconnectOption,
    HistoryOption,
    PublishOption,
    SubscribeOption,
    UnsubscribeOption,
)
from centapi.api.pipe import Pipe
from centapi.api.protocol import ReplyStreamDecoder, parse_reply, serialize_commands
from centapi.api.results import (
    BroadcastResult,
    ChannelsResult,
    HistoryResult,
    InfoResult,
    PresenceResult,
    PresenceStatsResult,
    PublishResult,
    decode_broadcast,
    decode_channels,
    decode_history,
    decode_info,
    decode_presence,
    decode_presence_stats,
    decode_publish,
)
from centapi.api.types import Reply
from centapi.config.schema import ClientConfig
from centapi.core.cancel import CancellationToken
from centapi.core.errors import (
    EndpointError,
    MalformedResponseError,
    PipeEmptyError,
    StatusCodeError,
    TransportError,
)

logger = logging.getLogger(__name__)

# Returns the endpoint URL, directly or as an awaitable
EndpointResolver = Callable[[], str | Awaitable[str]]

DEFAULT_TIMEOUT = 1.0
DEFAULT_MAX_CONNECTIONS = 100


class CentClient:
    """Async client for the server HTTP API.

    Single commands are available as methods (publish, presence, ...). To
    send several commands in one HTTP request, fill a Pipe and pass it to
    send_pipe(), then inspect every reply.

    Usage:
        async with CentClient("http://localhost:8000/api", api_key="...") as client:
            result = await client.publish("chat", {"input": "test"})
            print(result.offset, result.epoch)

            pipe = client.pipe()
            pipe.add_publish("chat", {"input": "test1"})
            pipe.add_publish("chat", {"input": "test2"})
            for reply in await client.send_pipe(pipe):
                reply.raise_for_error()

        # Or from configuration (file and environment):
        async with CentClient.from_config(load_config()) as client:
            info = await client.info()
    """

    def __init__(
        self,
        addr: str | None = None,
        api_key: str | None = None,
        *,
        get_addr: EndpointResolver | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_connections: int = DEFAULT_MAX_CONNECTIONS,
        verify_ssl: bool = True,
        clear_pipe_on_send: bool = False,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            addr: Static API endpoint URL.
            api_key: Optional API key, sent as 'Authorization: apikey <key>'.
            get_addr: Optional endpoint resolver called before every request.
                When set, addr is ignored. May return the URL or an awaitable.
            timeout: Request timeout in seconds for the default HTTP client.
            max_connections: Connection pool size for the default HTTP client.
            verify_ssl: TLS verification for the default HTTP client.
            clear_pipe_on_send: If True, send_pipe() removes the sent commands
                from the pipe after a successful exchange. If False (default),
                the pipe is left untouched and the caller resets it.
            http_client: Custom httpx.AsyncClient. The caller keeps ownership
                and must close it.

        Raises:
            ValueError: If neither addr nor get_addr is given.
        """
        if addr is None and get_addr is None:
            raise ValueError("Either addr or get_addr must be provided")

        self._addr = addr
        self._get_addr = get_addr
        self._api_key = api_key
        self._timeout = timeout
        self._max_connections = max_connections
        self._verify_ssl = verify_ssl
        self._clear_pipe_on_send = clear_pipe_on_send

        # Only clients created here are closed by aclose()
        self._client: httpx.AsyncClient | None = http_client
        self._owns_client = False
        self._retired: list[httpx.AsyncClient] = []
        logger.debug(
            "CentClient initialized: addr=%s, dynamic_addr=%s, timeout=%s",
            addr, get_addr is not None, timeout,
        )

    @classmethod
    def from_config(
        cls,
        config: ClientConfig,
        *,
        get_addr: EndpointResolver | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> "CentClient":
        """Create a client from a ClientConfig.

        The API key is config.api_key if set, otherwise the value of the
        environment variable named by config.api_key_env (if any).
        """
        api_key = config.api_key or os.environ.get(config.api_key_env) or None
        if api_key is None:
            logger.debug("No API key configured (checked %s)", config.api_key_env)
        return cls(
            addr=config.addr,
            api_key=api_key,
            get_addr=get_addr,
            timeout=config.timeout,
            max_connections=config.max_connections,
            verify_ssl=config.verify_ssl,
            clear_pipe_on_send=config.clear_pipe_on_send,
            http_client=http_client,
        )

    async def __aenter__(self) -> "CentClient":
        await self._ensure_client()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close HTTP clients created by this instance. Safe to call multiple times."""
        retired, self._retired = self._retired, []
        for client in retired:
            await client.aclose()
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
            self._owns_client = False

    async def _ensure_client(self) -> httpx.AsyncClient:
        """Get or lazily create the shared HTTP client."""
        if self._client is None:
            limits = httpx.Limits(
                max_connections=self._max_connections,
                max_keepalive_connections=self._max_connections,
            )
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                limits=limits,
                verify=self._verify_ssl,
            )
            self._owns_client = True
        return self._client

    def set_http_client(self, http_client: httpx.AsyncClient) -> None:
        """Replace the HTTP client used for requests.

        Not safe to call while requests are in flight. The caller owns the
        new client; a client previously created by this instance is closed
        on aclose().
        """
        if self._client is not None and self._owns_client:
            self._retired.append(self._client)
        self._client = http_client
        self._owns_client = False

    def pipe(self) -> Pipe:
        """Return a new empty Pipe for batching commands."""
        return Pipe()

    async def _resolve_endpoint(self) -> str:
        """Return the endpoint for the next request.

        Raises:
            EndpointError: If the resolver fails or returns an empty address.
        """
        if self._get_addr is None:
            if not self._addr:
                raise EndpointError("API endpoint address is empty")
            return self._addr

        try:
            endpoint = self._get_addr()
            if inspect.isawaitable(endpoint):
                endpoint = await endpoint
        except Exception as e:
            logger.warning("Endpoint resolver failed: %s", e)
            raise EndpointError(f"Failed to resolve API endpoint: {e}") from e

        if not endpoint:
            raise EndpointError("Endpoint resolver returned an empty address")
        return endpoint

    def _build_headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"apikey {self._api_key}"
        return headers

    async def send_pipe(
        self,
        pipe: Pipe,
        *,
        cancel_token: CancellationToken | None = None,
        timeout: float | None = None,
    ) -> list[Reply]:
        """Send all commands of a pipe in one HTTP request.

        Replies are returned in command order. A reply may carry a per-command
        ServerError; those do not fail the call, so check every reply.

        Args:
            pipe: The pipe to send. Its commands are snapshotted at call time.
            cancel_token: Optional token; cancelling it aborts the request.
            timeout: Optional timeout in seconds for this request only.

        Returns:
            One Reply per command, in the same order.

        Raises:
            PipeEmptyError: If the pipe holds no commands (no request is made).
            CommandEncodeError: If a command cannot be encoded as JSON.
            EndpointError: If the endpoint resolver fails.
            TransportError: On connection failure or timeout.
            StatusCodeError: If the server answers with a non-200 status.
            MalformedResponseError: If the reply stream is invalid or the
                reply count differs from the command count.
            asyncio.CancelledError: If the call is cancelled.
        """
        commands = pipe.commands
        if not commands:
            raise PipeEmptyError()

        body = serialize_commands(commands)

        if cancel_token is None:
            replies = await self._send(body, len(commands), timeout)
        else:
            replies = await self._send_cancellable(body, len(commands), timeout, cancel_token)

        if len(replies) != len(commands):
            logger.warning(
                "Reply count mismatch: sent %d command(s), got %d reply(ies)",
                len(commands), len(replies),
            )
            raise MalformedResponseError(
                f"expected {len(commands)} replies, got {len(replies)}"
            )

        if self._clear_pipe_on_send:
            pipe.discard_sent(len(commands))
        return replies

    async def _send_cancellable(
        self,
        body: bytes,
        count: int,
        timeout: float | None,
        cancel_token: CancellationToken,
    ) -> list[Reply]:
        """Run _send() as a task that the token can cancel."""
        cancel_token.raise_if_cancelled()
        task = asyncio.ensure_future(self._send(body, count, timeout))
        cancel_task = task.cancel
        cancel_token.on_cancel(cancel_task)
        try:
            return await task
        finally:
            cancel_token.remove_callback(cancel_task)

    async def _send(self, body: bytes, count: int, timeout: float | None) -> list[Reply]:
        endpoint = await self._resolve_endpoint()
        client = await self._ensure_client()

        request_kwargs: dict[str, Any] = {"content": body, "headers": self._build_headers()}
        if timeout is not None:
            request_kwargs["timeout"] = timeout

        logger.debug("API request: commands=%d, endpoint=%s", count, endpoint)
        try:
            async with client.stream("POST", endpoint, **request_kwargs) as response:
                if response.status_code != 200:
                    logger.warning("API request failed with status %d", response.status_code)
                    raise StatusCodeError(response.status_code)

                decoder = ReplyStreamDecoder()
                values: list[Any] = []
                async for chunk in response.aiter_bytes():
                    values.extend(decoder.feed_bytes(chunk))
                values.extend(decoder.close())
                return [parse_reply(value) for value in values]
        except httpx.ConnectError as e:
            logger.warning("Connection failed to %s: %s", endpoint, e)
            raise TransportError(f"Connection failed: {e}") from e
        except httpx.TimeoutException as e:
            logger.warning("Request timed out: endpoint=%s", endpoint)
            raise TransportError(f"Request timed out: {e}") from e
        except httpx.HTTPError as e:
            logger.warning("HTTP error for %s: %s", endpoint, e)
            raise TransportError(f"HTTP error occurred: {e}") from e
        except MalformedResponseError as e:
            logger.warning("Invalid reply stream from %s: %s", endpoint, e.reason)
            raise

    async def _send_single(
        self,
        pipe: Pipe,
        cancel_token: CancellationToken | None,
        timeout: float | None,
    ) -> Reply:
        """Send a one-command pipe and return its reply, raising its ServerError."""
        replies = await self.send_pipe(pipe, cancel_token=cancel_token, timeout=timeout)
        reply = replies[0]
        reply.raise_for_error()
        return reply

    # === Single-command API ===

    async def publish(
        self,
        channel: str,
        data: Any,
        *opts: PublishOption,
        cancel_token: CancellationToken | None = None,
        timeout: float | None = None,
    ) -> PublishResult:
        """Publish data into a channel.

        Returns:
            Stream position of the publication.

        Raises:
            ServerError: If the server rejected the command.
            DecodeError: If the result has an unexpected shape.
        """
        pipe = self.pipe()
        pipe.add_publish(channel, data, *opts)
        reply = await self._send_single(pipe, cancel_token, timeout)
        return decode_publish(reply.result)

    async def broadcast(
        self,
        channels: Sequence[str],
        data: Any,
        *opts: PublishOption,
        cancel_token: CancellationToken | None = None,
        timeout: float | None = None,
    ) -> BroadcastResult:
        """Publish the same data into many channels.

        Each channel gets its own PublishResponse, which may carry an error.
        """
        pipe = self.pipe()
        pipe.add_broadcast(channels, data, *opts)
        reply = await self._send_single(pipe, cancel_token, timeout)
        return decode_broadcast(reply.result)

    async def subscribe(
        self,
        channel: str,
        user: str,
        *opts: SubscribeOption,
        cancel_token: CancellationToken | None = None,
        timeout: float | None = None,
    ) -> None:
        """Subscribe a user to a channel (server-side subscription)."""
        pipe = self.pipe()
        pipe.add_subscribe(channel, user, *opts)
        await self._send_single(pipe, cancel_token, timeout)

    async def unsubscribe(
        self,
        channel: str,
        user: str,
        *opts: UnsubscribeOption,
        cancel_token: CancellationToken | None = None,
        timeout: float | None = None,
    ) -> None:
        """Unsubscribe a user from a channel."""
        pipe = self.pipe()
        pipe.add_unsubscribe(channel, user, *opts)
        await self._send_single(pipe, cancel_token, timeout)

    async def disconnect(
        self,
        user: str,
        *opts: DisconnectOption,
        cancel_token: CancellationToken | None = None,
        timeout: float | None = None,
    ) -> None:
        """Close connections of a user."""
        pipe = self.pipe()
        pipe.add_disconnect(user, *opts)
        await self._send_single(pipe, cancel_token, timeout)

    async def presence(
        self,
        channel: str,
        *,
        cancel_token: CancellationToken | None = None,
        timeout: float | None = None,
    ) -> PresenceResult:
        """Get clients currently subscribed to a channel."""
        pipe = self.pipe()
        pipe.add_presence(channel)
        reply = await self._send_single(pipe, cancel_token, timeout)
        return decode_presence(reply.result)

    async def presence_stats(
        self,
        channel: str,
        *,
        cancel_token: CancellationToken | None = None,
        timeout: float | None = None,
    ) -> PresenceStatsResult:
        """Get channel presence counters (clients and unique users)."""
        pipe = self.pipe()
        pipe.add_presence_stats(channel)
        reply = await self._send_single(pipe, cancel_token, timeout)
        return decode_presence_stats(reply.result)

    async def history(
        self,
        channel: str,
        *opts: HistoryOption,
        cancel_token: CancellationToken | None = None,
        timeout: float | None = None,
    ) -> HistoryResult:
        """Get channel history publications and the current stream position."""
        pipe = self.pipe()
        pipe.add_history(channel, *opts)
        reply = await self._send_single(pipe, cancel_token, timeout)
        return decode_history(reply.result)

    async def history_remove(
        self,
        channel: str,
        *,
        cancel_token: CancellationToken | None = None,
        timeout: float | None = None,
    ) -> None:
        """Remove channel history."""
        pipe = self.pipe()
        pipe.add_history_remove(channel)
        await self._send_single(pipe, cancel_token, timeout)

    async def channels(
        self,
        *opts: ChannelsOption,
        cancel_token: CancellationToken | None = None,
        timeout: float | None = None,
    ) -> ChannelsResult:
        """Get active channels (with one or more subscribers)."""
        pipe = self.pipe()
        pipe.add_channels(*opts)
        reply = await self._send_single(pipe, cancel_token, timeout)
        return decode_channels(reply.result)

    async def info(
        self,
        *,
        cancel_token: CancellationToken | None = None,
        timeout: float | None = None,
    ) -> InfoResult:
        """Get information about running server nodes."""
        pipe = self.pipe()
        pipe.add_info()
        reply = await self._send_single(pipe, cancel_token, timeout)
        return decode_info(reply.result)
