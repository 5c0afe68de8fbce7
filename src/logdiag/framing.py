from __future__ import annotations

import asyncio
import json

from logdiag.exceptions import (
    CleanEof,
    InvalidBody,
    MalformedHeader,
    TruncatedMessage,
)
from logdiag.json_types import JSONObject

HEADER_TERMINATOR = b"\r\n\r\n"
_CONTENT_LENGTH = b"content-length:"


def _content_length(head: bytes) -> int:
    for line in head.split(b"\r\n"):
        if line.lower().startswith(_CONTENT_LENGTH):
            raw = line.split(b":", 1)[1].strip()
            try:
                length = int(raw)
            except ValueError as exc:
                raise MalformedHeader(f"Invalid Content-Length: {raw!r}") from exc
            if length < 0:
                raise MalformedHeader(f"Invalid Content-Length: {length}")
            return length
    raise MalformedHeader("Missing Content-Length header")


def decode_body(body: bytes) -> JSONObject:
    try:
        message = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise InvalidBody(f"Undecodable message body: {exc}") from exc
    if not isinstance(message, dict):
        raise InvalidBody(f"Invalid message payload: {type(message).__name__}")
    return message


def encode_message(message: JSONObject) -> bytes:
    payload = json.dumps(message, ensure_ascii=False, separators=(",", ":")).encode(
        "utf-8"
    )
    header = f"Content-Length: {len(payload)}\r\n\r\n".encode("ascii")
    return header + payload


async def read_message(reader: asyncio.StreamReader) -> JSONObject:
    try:
        header = await reader.readuntil(HEADER_TERMINATOR)
    except asyncio.IncompleteReadError as exc:
        if not exc.partial:
            raise CleanEof("stream closed") from exc
        raise TruncatedMessage(
            "stream closed in header", received=len(exc.partial)
        ) from exc
    except asyncio.LimitOverrunError as exc:
        raise MalformedHeader("header block exceeds stream limit") from exc
    length = _content_length(header[: -len(HEADER_TERMINATOR)])
    try:
        body = await reader.readexactly(length)
    except asyncio.IncompleteReadError as exc:
        raise TruncatedMessage(
            f"stream closed in body ({len(exc.partial)}/{length} bytes)",
            received=len(exc.partial),
        ) from exc
    return decode_body(body)


async def write_message(writer: asyncio.StreamWriter, message: JSONObject) -> None:
    writer.write(encode_message(message))
    await writer.drain()


class MessageChannel:
    """Serializes whole frames onto one writer shared by several tasks."""

    def __init__(self, writer: asyncio.StreamWriter, *, name: str = "") -> None:
        self._writer = writer
        self._lock = asyncio.Lock()
        self.name = name

    async def send(self, message: JSONObject) -> None:
        async with self._lock:
            await write_message(self._writer, message)
