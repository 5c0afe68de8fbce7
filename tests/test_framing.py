from __future__ import annotations

import asyncio

import pytest

from logdiag.exceptions import (
    CleanEof,
    InvalidBody,
    MalformedHeader,
    TransportError,
    TruncatedMessage,
)
from logdiag.framing import MessageChannel, encode_message, read_message, write_message
from tests.lsp_helpers import CaptureWriter, frame, stream_of


def _read(data: bytes):
    async def _run():
        return await read_message(stream_of(data))

    return asyncio.run(_run())


def test_write_then_read_reproduces_message_and_leaves_trailing_bytes() -> None:
    message = {"jsonrpc": "2.0", "id": 7, "method": "x", "params": {"text": "héllo ✓"}}

    async def _run():
        writer = CaptureWriter()
        await write_message(writer, message)
        assert writer.drains == 1
        reader = stream_of(bytes(writer.buffer) + b"Content-Length: 2")
        decoded = await read_message(reader)
        rest = await reader.read()
        return decoded, rest

    decoded, rest = asyncio.run(_run())
    assert decoded == message
    assert rest == b"Content-Length: 2"


def test_encoded_header_counts_body_bytes_not_characters() -> None:
    encoded = encode_message({"m": "é"})
    head, _, body = encoded.partition(b"\r\n\r\n")
    assert head == f"Content-Length: {len(body)}".encode("ascii")
    assert len(body) > len('{"m":"é"}')


def test_header_name_is_case_insensitive_and_first_wins() -> None:
    body = b'{"a":1}'
    data = (
        b"content-type: application/vscode-jsonrpc\r\n"
        b"CONTENT-LENGTH: 7\r\n"
        b"Content-Length: 99\r\n\r\n" + body
    )
    assert _read(data) == {"a": 1}


def test_empty_stream_is_clean_eof() -> None:
    with pytest.raises(CleanEof):
        _read(b"")


@pytest.mark.parametrize(
    "data",
    [
        b"Content-Len",
        b"Content-Length: 10\r\n",
        b'Content-Length: 10\r\n\r\n{"a":',
    ],
)
def test_closure_after_first_byte_is_truncation(data: bytes) -> None:
    with pytest.raises(TruncatedMessage) as excinfo:
        _read(data)
    assert isinstance(excinfo.value, TransportError)
    assert not isinstance(excinfo.value, CleanEof)


@pytest.mark.parametrize(
    "data",
    [
        b"Content-Type: x\r\n\r\n{}",
        b"Content-Length: abc\r\n\r\n{}",
        b"Content-Length: -1\r\n\r\n{}",
    ],
)
def test_unusable_content_length_is_malformed(data: bytes) -> None:
    with pytest.raises(MalformedHeader):
        _read(data)


@pytest.mark.parametrize("body", [b"not json", b"[1, 2]", b"\xff\xfe"])
def test_bad_body_is_invalid(body: bytes) -> None:
    data = f"Content-Length: {len(body)}\r\n\r\n".encode("ascii") + body
    with pytest.raises(InvalidBody):
        _read(data)


def test_consecutive_messages_are_read_in_order() -> None:
    async def _run():
        reader = stream_of(frame({"id": 1}) + frame({"id": 2}))
        first = await read_message(reader)
        second = await read_message(reader)
        with pytest.raises(CleanEof):
            await read_message(reader)
        return first, second

    assert asyncio.run(_run()) == ({"id": 1}, {"id": 2})


def test_channel_writes_whole_frames_from_concurrent_senders() -> None:
    async def _run():
        writer = CaptureWriter()
        channel = MessageChannel(writer, name="client")
        await asyncio.gather(*(channel.send({"id": index}) for index in range(20)))
        return await writer.messages()

    messages = asyncio.run(_run())
    assert sorted(message["id"] for message in messages) == list(range(20))


def test_json_types_module_is_documented() -> None:
    from logdiag import json_types

    assert json_types.__doc__ is not None
    assert json_types.__doc__.startswith("JSON-like value types")
