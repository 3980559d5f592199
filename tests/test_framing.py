import asyncio
import struct

import pytest

from mail_courier.transport.errors import Direction, TransportError, TransportErrorKind
from mail_courier.transport.framing import (
    DEFAULT_MAX_FRAME_BYTES,
    DelimitedFraming,
    LengthPrefixFraming,
    encode_frame,
    get_framing,
)


def make_reader(data: bytes, eof: bool = True) -> asyncio.StreamReader:
    reader = asyncio.StreamReader()
    reader.feed_data(data)
    if eof:
        reader.feed_eof()
    return reader


def test_delimited_encode_prefixes_decimal_length():
    body = b'{"pattern":"email.send_email"}'
    frame = DelimitedFraming().encode(body)
    assert frame == str(len(body)).encode() + b"#" + body


def test_delimited_encode_counts_bytes_not_characters():
    body = "{\"subject\":\"caffè\"}".encode("utf-8")
    frame = DelimitedFraming().encode(body)
    assert frame.startswith(b"20#")


def test_length_prefix_encode_uses_big_endian_uint32():
    frame = LengthPrefixFraming().encode(b"abc")
    assert frame == b"\x00\x00\x00\x03abc"


@pytest.mark.asyncio
async def test_delimited_read_frame_returns_body():
    body = b'{"success":true}'
    reader = make_reader(DelimitedFraming().encode(body))
    assert await DelimitedFraming().read_frame(reader, DEFAULT_MAX_FRAME_BYTES) == body


@pytest.mark.asyncio
async def test_delimited_read_frame_leaves_trailing_bytes():
    reader = make_reader(b"2#okEXTRA")
    assert await DelimitedFraming().read_frame(reader, 100) == b"ok"
    assert await reader.read() == b"EXTRA"


@pytest.mark.asyncio
async def test_length_prefix_read_frame_returns_body():
    reader = make_reader(struct.pack(">I", 5) + b"hello")
    assert await LengthPrefixFraming().read_frame(reader, 100) == b"hello"


@pytest.mark.asyncio
async def test_delimited_eof_before_delimiter_is_peer_closed():
    with pytest.raises(TransportError) as exc_info:
        await DelimitedFraming().read_frame(make_reader(b"12"), 100)
    assert exc_info.value.kind is TransportErrorKind.PEER_CLOSED_EARLY


@pytest.mark.asyncio
async def test_delimited_short_body_is_peer_closed():
    with pytest.raises(TransportError) as exc_info:
        await DelimitedFraming().read_frame(make_reader(b"10#abc"), 100)
    assert exc_info.value.kind is TransportErrorKind.PEER_CLOSED_EARLY


@pytest.mark.asyncio
async def test_delimited_non_numeric_prefix_is_malformed():
    with pytest.raises(TransportError) as exc_info:
        await DelimitedFraming().read_frame(make_reader(b"1x#abc"), 100)
    assert exc_info.value.kind is TransportErrorKind.MALFORMED_FRAME


@pytest.mark.asyncio
async def test_delimited_prefix_longer_than_twenty_bytes_is_malformed():
    reader = make_reader(b"1" * 21, eof=False)
    with pytest.raises(TransportError) as exc_info:
        await DelimitedFraming().read_frame(reader, 100)
    assert exc_info.value.kind is TransportErrorKind.MALFORMED_FRAME


@pytest.mark.asyncio
async def test_delimited_empty_frame_is_malformed():
    with pytest.raises(TransportError) as exc_info:
        await DelimitedFraming().read_frame(make_reader(b"0#"), 100)
    assert exc_info.value.kind is TransportErrorKind.MALFORMED_FRAME


@pytest.mark.asyncio
async def test_oversized_response_is_rejected_before_body_is_read():
    reader = make_reader(b"101#", eof=False)
    with pytest.raises(TransportError) as exc_info:
        await DelimitedFraming().read_frame(reader, 100)
    assert exc_info.value.kind is TransportErrorKind.SIZE_EXCEEDED
    assert exc_info.value.direction is Direction.RESPONSE


@pytest.mark.asyncio
async def test_length_prefix_truncated_header_is_peer_closed():
    with pytest.raises(TransportError) as exc_info:
        await LengthPrefixFraming().read_frame(make_reader(b"\x00\x00"), 100)
    assert exc_info.value.kind is TransportErrorKind.PEER_CLOSED_EARLY


def test_encode_frame_rejects_oversized_request():
    with pytest.raises(TransportError) as exc_info:
        encode_frame(DelimitedFraming(), b"x" * 11, max_size=10)
    assert exc_info.value.kind is TransportErrorKind.SIZE_EXCEEDED
    assert exc_info.value.direction is Direction.REQUEST


def test_encode_frame_accepts_body_at_limit():
    assert encode_frame(DelimitedFraming(), b"x" * 10, max_size=10) == b"10#" + b"x" * 10


def test_get_framing_by_name():
    assert isinstance(get_framing("delimited"), DelimitedFraming)
    assert isinstance(get_framing(" Length_Prefix "), LengthPrefixFraming)
    with pytest.raises(ValueError):
        get_framing("netstring")


def test_delimiter_must_be_single_non_digit_byte():
    with pytest.raises(ValueError):
        DelimitedFraming(delimiter=b"7")
    with pytest.raises(ValueError):
        DelimitedFraming(delimiter=b"##")


ROUND_TRIP_BODIES = {
    "empty_object": b"{}",
    "nested_arrays": b'{"a":[[1,[2,[3]]],[],{"b":[null,true,false]}]}',
    "non_bmp_unicode": '{"subject":"Ciao \U0001F600 \U00010348 ✓"}'.encode("utf-8"),
    "delimiter_in_body": b'{"note":"12#34","q":"\\"#\\""}',
}


@pytest.mark.asyncio
@pytest.mark.parametrize("framing", [DelimitedFraming(), LengthPrefixFraming()], ids=lambda f: f.name)
@pytest.mark.parametrize("body", list(ROUND_TRIP_BODIES.values()), ids=list(ROUND_TRIP_BODIES))
async def test_frame_round_trip_is_byte_identical(framing, body):
    reader = make_reader(encode_frame(framing, body))
    assert await framing.read_frame(reader, DEFAULT_MAX_FRAME_BYTES) == body


@pytest.mark.asyncio
@pytest.mark.parametrize("framing", [DelimitedFraming(), LengthPrefixFraming()], ids=lambda f: f.name)
async def test_frame_round_trip_at_size_limit(framing):
    body = b'{"pad":"' + b"x" * 1000 + b'"}'
    reader = make_reader(encode_frame(framing, body, max_size=len(body)))
    assert await framing.read_frame(reader, len(body)) == body
