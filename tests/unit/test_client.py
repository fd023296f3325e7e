"""Unit tests for CentClient: pipe sending and the single-command API."""

import asyncio
import json

import httpx
import pytest

from centapi.api.options import with_limit, with_presence, with_skip_history
from centapi.api.results import PublishResult, decode_result
from centapi.client import CentClient
from centapi.config.schema import ClientConfig
from centapi.core.cancel import CancellationToken
from centapi.core.errors import (
    CommandEncodeError,
    DecodeError,
    EndpointError,
    MalformedResponseError,
    PipeEmptyError,
    ServerError,
    StatusCodeError,
    TransportError,
)


def _commands(request: httpx.Request) -> list[dict]:
    return [json.loads(line) for line in request.content.decode("utf-8").splitlines()]


class TestSendPipe:
    """Tests for CentClient.send_pipe()."""

    @pytest.mark.asyncio
    async def test_two_publishes_scenario(self, make_client, ndjson):
        """Two publishes go out as two NDJSON lines and decode in order."""
        received = []

        def handler(request: httpx.Request) -> httpx.Response:
            received.append(request)
            return httpx.Response(
                200,
                content=ndjson(
                    {"result": {"offset": 1, "epoch": "e"}},
                    {"result": {"offset": 2, "epoch": "e"}},
                ),
            )

        client = make_client(handler)
        pipe = client.pipe()
        pipe.add_publish("chat", {"input": "test"})
        pipe.add_publish("chat", {"input": "test2"})
        replies = await client.send_pipe(pipe)

        request = received[0]
        assert request.method == "POST"
        assert str(request.url) == "http://localhost:8000/api"
        assert request.headers["content-type"] == "application/json"
        assert "authorization" not in request.headers
        assert _commands(request) == [
            {"method": "publish", "params": {"channel": "chat", "data": {"input": "test"}}},
            {"method": "publish", "params": {"channel": "chat", "data": {"input": "test2"}}},
        ]

        results = [reply.decode("publish") for reply in replies]
        assert [r.offset for r in results] == [1, 2]

    @pytest.mark.asyncio
    async def test_api_key_header(self, make_client, ndjson):
        """A configured API key is sent as 'apikey <key>'."""
        headers = []

        def handler(request: httpx.Request) -> httpx.Response:
            headers.append(request.headers.get("authorization"))
            return httpx.Response(200, content=ndjson({"result": {}}))

        client = make_client(handler, api_key="secret")
        pipe = client.pipe()
        pipe.add_info()
        await client.send_pipe(pipe)
        assert headers == ["apikey secret"]

    @pytest.mark.asyncio
    async def test_order_preserved_for_mixed_commands(self, make_client, ndjson):
        """Reply i decodes with the decoder of the method enqueued at i."""
        server_results = {
            "publish": {"offset": 3, "epoch": "e"},
            "presence_stats": {"num_clients": 2, "num_users": 1},
            "history": {"publications": [{"offset": 3, "data": "x"}], "offset": 3, "epoch": "e"},
            "channels": {"channels": {"chat": {"num_clients": 2}}},
            "subscribe": {},
            "info": {"nodes": [{"uid": "u", "name": "n"}]},
        }

        def handler(request: httpx.Request) -> httpx.Response:
            methods = [c["method"] for c in _commands(request)]
            return httpx.Response(
                200, content=ndjson(*({"result": server_results[m]} for m in methods))
            )

        client = make_client(handler)
        pipe = client.pipe()
        pipe.add_publish("chat", 1)
        pipe.add_presence_stats("chat")
        pipe.add_history("chat", with_limit(1))
        pipe.add_channels()
        pipe.add_subscribe("chat", "42", with_presence(True))
        pipe.add_info()
        replies = await client.send_pipe(pipe)

        assert len(replies) == len(pipe)
        decoded = [
            decode_result(command.method, reply.result)
            for command, reply in zip(pipe.commands, replies)
        ]
        assert decoded[0].offset == 3
        assert decoded[1].num_clients == 2
        assert decoded[2].publications[0].data == "x"
        assert decoded[3].channels["chat"].num_clients == 2
        assert decoded[4] is None
        assert decoded[5].nodes[0].name == "n"

    @pytest.mark.asyncio
    async def test_error_isolated_to_its_reply(self, make_client, ndjson):
        """An error in reply 2 of 3 does not affect replies 1 and 3."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                content=ndjson(
                    {"result": {"offset": 1}},
                    {"error": {"code": 102, "message": "unknown channel"}},
                    {"result": {"offset": 3}},
                ),
            )

        client = make_client(handler)
        pipe = client.pipe()
        for channel in ("a", "b", "c"):
            pipe.add_publish(channel, {})
        replies = await client.send_pipe(pipe)

        assert replies[0].error is None
        assert replies[1].error == ServerError(102, "unknown channel")
        assert replies[2].error is None
        assert replies[0].decode("publish").offset == 1
        assert replies[2].decode("publish").offset == 3
        with pytest.raises(ServerError):
            replies[1].decode("publish")

    @pytest.mark.asyncio
    async def test_empty_pipe_makes_no_request(self, make_client):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200)

        client = make_client(handler)
        with pytest.raises(PipeEmptyError):
            await client.send_pipe(client.pipe())
        assert calls == []

    @pytest.mark.asyncio
    async def test_reset_then_send_fails(self, make_client):
        client = make_client(lambda request: httpx.Response(200))
        pipe = client.pipe()
        pipe.add_info()
        pipe.reset()
        assert len(pipe) == 0
        with pytest.raises(PipeEmptyError):
            await client.send_pipe(pipe)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("reply_count", [1, 3])
    async def test_reply_count_mismatch(self, make_client, ndjson, reply_count):
        """Fewer or more replies than commands is a malformed response."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=ndjson(*([{"result": {}}] * reply_count)))

        client = make_client(handler)
        pipe = client.pipe()
        pipe.add_info()
        pipe.add_info()
        with pytest.raises(MalformedResponseError) as exc_info:
            await client.send_pipe(pipe)
        assert "expected 2 replies" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_invalid_json_in_stream(self, make_client):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b'{"result":{}}\n{"result":\n')

        client = make_client(handler)
        pipe = client.pipe()
        pipe.add_info()
        pipe.add_info()
        with pytest.raises(MalformedResponseError):
            await client.send_pipe(pipe)

    @pytest.mark.asyncio
    async def test_non_object_reply(self, make_client, ndjson):
        client = make_client(lambda request: httpx.Response(200, content=ndjson([1])))
        pipe = client.pipe()
        pipe.add_info()
        with pytest.raises(MalformedResponseError):
            await client.send_pipe(pipe)

    @pytest.mark.asyncio
    async def test_invalid_utf8_reply(self, make_client):
        """Undecodable bytes fail the call instead of becoming replacement characters."""
        client = make_client(lambda request: httpx.Response(200, content=b'{"result":"\xff"}\n'))
        pipe = client.pipe()
        pipe.add_publish("chat", {})
        with pytest.raises(MalformedResponseError, match="UTF-8"):
            await client.send_pipe(pipe)

    @pytest.mark.asyncio
    async def test_non_200_status(self, make_client):
        """A non-200 status fails without parsing the body."""
        client = make_client(lambda request: httpx.Response(401, content=b"not json"))
        pipe = client.pipe()
        pipe.add_info()
        with pytest.raises(StatusCodeError) as exc_info:
            await client.send_pipe(pipe)
        assert exc_info.value.code == 401

    @pytest.mark.asyncio
    async def test_unserializable_data_fails_before_request(self, make_client):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200)

        client = make_client(handler)
        pipe = client.pipe()
        pipe.add_publish("chat", {"bad": object()})
        with pytest.raises(CommandEncodeError):
            await client.send_pipe(pipe)
        assert calls == []
        assert len(pipe) == 1

    @pytest.mark.asyncio
    async def test_connection_error(self, make_client):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Connection refused")

        client = make_client(handler)
        pipe = client.pipe()
        pipe.add_info()
        with pytest.raises(TransportError) as exc_info:
            await client.send_pipe(pipe)
        assert "Connection failed" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_timeout_error(self, make_client):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out")

        client = make_client(handler)
        pipe = client.pipe()
        pipe.add_info()
        with pytest.raises(TransportError) as exc_info:
            await client.send_pipe(pipe)
        assert "timed out" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_per_request_timeout(self, make_client, ndjson):
        timeouts = []

        def handler(request: httpx.Request) -> httpx.Response:
            timeouts.append(request.extensions["timeout"]["read"])
            return httpx.Response(200, content=ndjson({"result": {}}))

        client = make_client(handler)
        pipe = client.pipe()
        pipe.add_info()
        await client.send_pipe(pipe, timeout=7.5)
        assert timeouts == [7.5]


class TestPipeClearing:
    """Post-send buffer policy."""

    @pytest.mark.asyncio
    async def test_pipe_kept_by_default(self, make_client, ndjson):
        client = make_client(lambda request: httpx.Response(200, content=ndjson({"result": {}})))
        pipe = client.pipe()
        pipe.add_info()
        await client.send_pipe(pipe)
        assert len(pipe) == 1

    @pytest.mark.asyncio
    async def test_pipe_cleared_when_configured(self, make_client, ndjson):
        client = make_client(
            lambda request: httpx.Response(200, content=ndjson({"result": {}})),
            clear_pipe_on_send=True,
        )
        pipe = client.pipe()
        pipe.add_info()
        await client.send_pipe(pipe)
        assert len(pipe) == 0

    @pytest.mark.asyncio
    async def test_pipe_not_cleared_on_failure(self, make_client):
        client = make_client(lambda request: httpx.Response(500), clear_pipe_on_send=True)
        pipe = client.pipe()
        pipe.add_info()
        with pytest.raises(StatusCodeError):
            await client.send_pipe(pipe)
        assert len(pipe) == 1

    @pytest.mark.asyncio
    async def test_commands_added_during_send_survive(self, make_client, ndjson):
        """Only the commands that were sent are removed."""
        holder = {}

        def handler(request: httpx.Request) -> httpx.Response:
            holder["pipe"].add_presence("late")
            return httpx.Response(200, content=ndjson({"result": {}}))

        client = make_client(handler, clear_pipe_on_send=True)
        pipe = client.pipe()
        holder["pipe"] = pipe
        pipe.add_info()
        await client.send_pipe(pipe)
        assert [c.method for c in pipe.commands] == ["presence"]


class TestEndpointResolution:
    @pytest.mark.asyncio
    async def test_resolver_called_per_send(self, make_client, ndjson):
        """The resolver is called before every request and overrides addr."""
        endpoints = iter(["http://node1:8000/api", "http://node2:8000/api"])
        urls = []

        def handler(request: httpx.Request) -> httpx.Response:
            urls.append(str(request.url))
            return httpx.Response(200, content=ndjson({"result": {}}))

        client = make_client(handler, get_addr=lambda: next(endpoints))
        for _ in range(2):
            pipe = client.pipe()
            pipe.add_info()
            await client.send_pipe(pipe)
        assert urls == ["http://node1:8000/api", "http://node2:8000/api"]

    @pytest.mark.asyncio
    async def test_async_resolver(self, make_client, ndjson):
        urls = []

        async def resolve() -> str:
            return "http://discovered:8000/api"

        def handler(request: httpx.Request) -> httpx.Response:
            urls.append(str(request.url))
            return httpx.Response(200, content=ndjson({"result": {}}))

        client = make_client(handler, addr=None, get_addr=resolve)
        pipe = client.pipe()
        pipe.add_info()
        await client.send_pipe(pipe)
        assert urls == ["http://discovered:8000/api"]

    @pytest.mark.asyncio
    async def test_resolver_failure_surfaces_immediately(self, make_client):
        calls = []

        def resolve() -> str:
            calls.append("resolve")
            raise RuntimeError("discovery down")

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append("request")
            return httpx.Response(200)

        client = make_client(handler, get_addr=resolve)
        pipe = client.pipe()
        pipe.add_info()
        with pytest.raises(EndpointError) as exc_info:
            await client.send_pipe(pipe)
        assert "discovery down" in str(exc_info.value)
        assert calls == ["resolve"]

    @pytest.mark.asyncio
    async def test_resolver_empty_address(self, make_client):
        client = make_client(lambda request: httpx.Response(200), get_addr=lambda: "")
        pipe = client.pipe()
        pipe.add_info()
        with pytest.raises(EndpointError):
            await client.send_pipe(pipe)

    @pytest.mark.asyncio
    async def test_empty_static_address(self, make_client):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200)

        client = make_client(handler, addr="")
        pipe = client.pipe()
        pipe.add_info()
        with pytest.raises(EndpointError):
            await client.send_pipe(pipe)
        assert calls == []

    def test_addr_or_resolver_required(self):
        with pytest.raises(ValueError):
            CentClient()


class TestCancellation:
    @staticmethod
    async def _slow_handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(10)
        return httpx.Response(200)

    @pytest.mark.asyncio
    async def test_token_cancels_in_flight_request(self, make_client):
        client = make_client(self._slow_handler)
        pipe = client.pipe()
        pipe.add_info()
        token = CancellationToken()

        task = asyncio.create_task(client.send_pipe(pipe, cancel_token=token))
        await asyncio.sleep(0.01)
        token.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    @pytest.mark.asyncio
    async def test_cancelled_token_makes_no_request(self, make_client):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200)

        client = make_client(handler)
        pipe = client.pipe()
        pipe.add_info()
        token = CancellationToken()
        token.cancel()
        with pytest.raises(asyncio.CancelledError):
            await client.send_pipe(pipe, cancel_token=token)
        assert calls == []

    @pytest.mark.asyncio
    async def test_token_callback_removed_after_send(self, make_client, ndjson):
        """A finished send leaves no callback behind on the token."""
        client = make_client(lambda request: httpx.Response(200, content=ndjson({"result": {}})))
        pipe = client.pipe()
        pipe.add_info()
        token = CancellationToken()
        await client.send_pipe(pipe, cancel_token=token)
        assert token._callbacks == []

    @pytest.mark.asyncio
    async def test_wait_for_bounds_the_call(self, make_client):
        client = make_client(self._slow_handler)
        pipe = client.pipe()
        pipe.add_info()
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(client.send_pipe(pipe), timeout=0.05)


class TestSingleCommandApi:
    """Tests for the convenience methods built on one-command pipes."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("call", "method", "result", "check"),
        [
            (lambda c: c.publish("chat", {"a": 1}), "publish", {"offset": 1, "epoch": "e"},
             lambda r: r.offset == 1),
            (lambda c: c.broadcast(["a", "b"], {}), "broadcast",
             {"responses": [{"result": {}}, {"result": {}}]}, lambda r: len(r.responses) == 2),
            (lambda c: c.subscribe("chat", "42"), "subscribe", {}, lambda r: r is None),
            (lambda c: c.unsubscribe("chat", "42"), "unsubscribe", {}, lambda r: r is None),
            (lambda c: c.disconnect("42"), "disconnect", {}, lambda r: r is None),
            (lambda c: c.presence("chat"), "presence", {"presence": {}},
             lambda r: r.presence == {}),
            (lambda c: c.presence_stats("chat"), "presence_stats",
             {"num_clients": 0, "num_users": 0}, lambda r: r.num_users == 0),
            (lambda c: c.history("chat"), "history", {"offset": 0, "epoch": "e"},
             lambda r: r.publications == []),
            (lambda c: c.history_remove("chat"), "history_remove", {}, lambda r: r is None),
            (lambda c: c.channels(), "channels", {"channels": {}}, lambda r: r.channels == {}),
            (lambda c: c.info(), "info", {"nodes": []}, lambda r: r.nodes == []),
        ],
    )
    async def test_method_roundtrip(self, make_client, ndjson, call, method, result, check):
        """Each method sends exactly one command and returns its typed result."""
        sent = []

        def handler(request: httpx.Request) -> httpx.Response:
            sent.extend(_commands(request))
            return httpx.Response(200, content=ndjson({"result": result}))

        client = make_client(handler)
        value = await call(client)

        assert [c["method"] for c in sent] == [method]
        assert check(value)

    @pytest.mark.asyncio
    async def test_publish_with_options(self, make_client, ndjson):
        sent = []

        def handler(request: httpx.Request) -> httpx.Response:
            sent.extend(_commands(request))
            return httpx.Response(200, content=ndjson({"result": {}}))

        client = make_client(handler)
        result = await client.publish("chat", {"input": "x"}, with_skip_history(True))
        assert isinstance(result, PublishResult)
        assert sent[0]["params"] == {"channel": "chat", "data": {"input": "x"}, "skip_history": True}

    @pytest.mark.asyncio
    async def test_server_error_raised(self, make_client, ndjson):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, content=ndjson({"error": {"code": 102, "message": "unknown channel"}})
            )

        client = make_client(handler)
        with pytest.raises(ServerError) as exc_info:
            await client.presence("missing")
        assert exc_info.value.code == 102

    @pytest.mark.asyncio
    async def test_ack_method_raises_server_error(self, make_client, ndjson):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, content=ndjson({"error": {"code": 103, "message": "permission denied"}})
            )

        client = make_client(handler)
        with pytest.raises(ServerError):
            await client.subscribe("chat", "42")

    @pytest.mark.asyncio
    async def test_decode_error_distinct_from_server_error(self, make_client, ndjson):
        client = make_client(lambda request: httpx.Response(200, content=ndjson({"result": {}})))
        with pytest.raises(DecodeError):
            await client.presence_stats("chat")

    @pytest.mark.asyncio
    async def test_missing_result_is_decode_error(self, make_client, ndjson):
        client = make_client(lambda request: httpx.Response(200, content=ndjson({})))
        with pytest.raises(DecodeError):
            await client.info()


class TestClientLifecycle:
    @pytest.mark.asyncio
    async def test_context_manager_creates_and_closes_client(self):
        async with CentClient("http://localhost:8000/api") as client:
            assert client._client is not None
        assert client._client is None

    @pytest.mark.asyncio
    async def test_injected_client_not_closed(self):
        http_client = httpx.AsyncClient()
        async with CentClient("http://localhost:8000/api", http_client=http_client):
            pass
        assert not http_client.is_closed
        await http_client.aclose()

    @pytest.mark.asyncio
    async def test_set_http_client(self, make_client, ndjson):
        """set_http_client() routes later requests through the new client."""
        client = make_client(lambda request: httpx.Response(500))
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, content=ndjson({"result": {"offset": 9}}))
        )
        client.set_http_client(httpx.AsyncClient(transport=transport))
        result = await client.publish("chat", 1)
        assert result.offset == 9

    @pytest.mark.asyncio
    async def test_set_http_client_retires_owned_client(self):
        client = CentClient("http://localhost:8000/api")
        owned = await client._ensure_client()
        replacement = httpx.AsyncClient()
        client.set_http_client(replacement)
        await client.aclose()
        assert owned.is_closed
        assert not replacement.is_closed
        await replacement.aclose()

    def test_from_config_reads_api_key_env(self, clean_env):
        clean_env.setenv("MY_CENT_KEY", "from-env")
        config = ClientConfig(addr="http://localhost:8000/api", api_key_env="MY_CENT_KEY")
        client = CentClient.from_config(config)
        assert client._build_headers()["Authorization"] == "apikey from-env"

    def test_from_config_explicit_key_wins(self, clean_env):
        clean_env.setenv("CENTRIFUGO_API_KEY", "from-env")
        config = ClientConfig(addr="http://localhost:8000/api", api_key="explicit")
        client = CentClient.from_config(config)
        assert client._build_headers()["Authorization"] == "apikey explicit"

    def test_from_config_without_key(self, clean_env):
        config = ClientConfig(addr="http://localhost:8000/api")
        client = CentClient.from_config(config)
        assert "Authorization" not in client._build_headers()
