"""Newline-delimited JSON framing for API requests and replies.

Requests carry one compact JSON object per command, one per line. Replies
come back as a stream of JSON objects in the same order. Reply payloads may
contain escaped newlines inside strings, so the stream is decoded value by
value with a JSON decoder rather than split on line breaks.
"""

import codecs
import json
import re
from collections.abc import Iterable
from typing import Any

from centapi.api.types import Command, Reply
from centapi.core.errors import CommandEncodeError, MalformedResponseError, ServerError

# Insignificant whitespace between top-level JSON values
_WHITESPACE = re.compile(r"[ \t\n\r]*")


def serialize_command(command: Command) -> str:
    """Serialize a Command to a JSON line.

    Args:
        command: The Command to serialize.

    Returns:
        A single line of JSON text (no trailing newline).

    Raises:
        CommandEncodeError: If the params contain a value JSON cannot represent.
    """
    try:
        return json.dumps(command.to_dict(), separators=(",", ":"), allow_nan=False)
    except (TypeError, ValueError) as e:
        raise CommandEncodeError(command.method, str(e)) from e


def serialize_commands(commands: Iterable[Command]) -> bytes:
    """Serialize commands into a request body, one newline-terminated line each.

    Raises:
        CommandEncodeError: If any command cannot be encoded. Nothing is
            returned in that case, so a batch is never sent partially.
    """
    return "".join(serialize_command(command) + "\n" for command in commands).encode("utf-8")


def parse_reply(data: Any) -> Reply:
    """Validate one decoded stream element and build a Reply.

    Args:
        data: A JSON value decoded from the reply stream.

    Returns:
        The parsed Reply.

    Raises:
        MalformedResponseError: If the element is not a reply object.
    """
    if not isinstance(data, dict):
        raise MalformedResponseError(f"reply must be a JSON object, got: {type(data).__name__}")

    method = data.get("method")
    if method is not None and not isinstance(method, str):
        raise MalformedResponseError(f"method must be a string, got: {type(method).__name__}")

    error: ServerError | None = None
    raw_error = data.get("error")
    if raw_error is not None:
        if not isinstance(raw_error, dict):
            raise MalformedResponseError(
                f"error must be an object, got: {type(raw_error).__name__}"
            )
        code = raw_error.get("code")
        message = raw_error.get("message")
        if not isinstance(code, int) or isinstance(code, bool):
            raise MalformedResponseError("error must have a numeric 'code' field")
        if not isinstance(message, str):
            raise MalformedResponseError("error must have a string 'message' field")
        error = ServerError(code, message)

    return Reply(result=data.get("result"), error=error, method=method)


class ReplyStreamDecoder:
    """Incremental decoder for a stream of concatenated JSON values.

    Feed chunks as they arrive; complete top-level values are returned by
    feed() or, at the latest, by close() at end of stream. close() fails if
    the remainder is not a sequence of complete values.

    After an unfinished value the decoder waits until the buffered text has
    doubled before decoding again, so one large reply costs linear time
    however finely it is chunked.

    Byte chunks go through feed_bytes(), which decodes UTF-8 strictly:
    invalid bytes are a MalformedResponseError, not replacement characters.

    Example:
        decoder = ReplyStreamDecoder()
        values = []
        async for chunk in response.aiter_bytes():
            values.extend(decoder.feed_bytes(chunk))
        values.extend(decoder.close())
    """

    def __init__(self) -> None:
        self._decoder = json.JSONDecoder()
        self._text = codecs.getincrementaldecoder("utf-8")()
        self._chunks: list[str] = []
        self._size = 0
        self._retry_at = 0

    def feed(self, chunk: str) -> list[Any]:
        """Add a chunk of text and return the values completed so far."""
        if chunk:
            self._chunks.append(chunk)
            self._size += len(chunk)
        if not self._size or self._size < self._retry_at:
            return []

        buffer = "".join(self._chunks)
        values: list[Any] = []
        pos = 0
        while True:
            pos = _WHITESPACE.match(buffer, pos).end()
            if pos == len(buffer):
                break
            try:
                value, end = self._decoder.raw_decode(buffer, pos)
            except json.JSONDecodeError:
                # Incomplete value, or garbage that close() will report
                break
            if end == len(buffer) and isinstance(value, (int, float)):
                # A number at the end of the buffer may continue in the next chunk
                break
            values.append(value)
            pos = end

        rest = buffer[pos:]
        self._chunks = [rest] if rest else []
        self._size = len(rest)
        self._retry_at = 2 * len(rest)
        return values

    def feed_bytes(self, chunk: bytes) -> list[Any]:
        """Add a chunk of UTF-8 bytes and return the values completed so far.

        Raises:
            MalformedResponseError: If the bytes are not valid UTF-8.
        """
        try:
            text = self._text.decode(chunk)
        except UnicodeDecodeError as e:
            raise MalformedResponseError(f"invalid UTF-8 in reply stream: {e}") from e
        return self.feed(text)

    def close(self) -> list[Any]:
        """Flush the buffered remainder at end of stream.

        Raises:
            MalformedResponseError: If the remainder is not a sequence of
                complete JSON values, or ends inside a UTF-8 sequence.
        """
        try:
            tail = self._text.decode(b"", final=True)
        except UnicodeDecodeError as e:
            raise MalformedResponseError(f"invalid UTF-8 in reply stream: {e}") from e
        self._chunks.append(tail)
        buffer = "".join(self._chunks)
        self._chunks = []
        self._size = 0
        self._retry_at = 0

        values: list[Any] = []
        pos = 0
        while True:
            pos = _WHITESPACE.match(buffer, pos).end()
            if pos == len(buffer):
                return values
            try:
                value, pos = self._decoder.raw_decode(buffer, pos)
            except json.JSONDecodeError as e:
                raise MalformedResponseError(f"invalid JSON in reply stream: {e}") from e
            values.append(value)


def parse_replies(text: str) -> list[Reply]:
    """Parse a complete reply stream into Replies, in stream order.

    Raises:
        MalformedResponseError: If any element is invalid JSON or not a reply object.
    """
    decoder = ReplyStreamDecoder()
    values = decoder.feed(text)
    values.extend(decoder.close())
    return [parse_reply(value) for value in values]
