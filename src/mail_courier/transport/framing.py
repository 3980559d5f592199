# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Length framing for request/response exchanges over a TCP stream.

Two conventions are in use by the remote services:

- ``delimited``: decimal ASCII length, ``#``, then the UTF-8 JSON body
  (``42#{"pattern": ...}``). This is the NestJS TCP transport default.
- ``length_prefix``: 4-byte big-endian unsigned length, then the body.

Both implement :class:`Framing` and are selected by configuration through
:func:`get_framing`. Responses are read with the same convention used for
the request.
"""

from __future__ import annotations

import asyncio
import struct
from typing import Protocol

from .errors import Direction, TransportError, TransportErrorKind

DEFAULT_MAX_FRAME_BYTES = 10 * 1024 * 1024
MAX_PREFIX_BYTES = 20


class Framing(Protocol):
    """Framing strategy used by the framed TCP client."""

    name: str

    def encode(self, body: bytes) -> bytes:
        """Prefix ``body`` with its length marker."""
        ...

    async def read_frame(self, reader: asyncio.StreamReader, max_size: int) -> bytes:
        """Read one complete frame body from ``reader``."""
        ...


def _check_size(length: int, max_size: int, direction: Direction) -> None:
    if length > max_size:
        raise TransportError(
            TransportErrorKind.SIZE_EXCEEDED,
            f"{direction.value} of {length} bytes exceeds limit of {max_size} bytes",
            direction=direction,
        )


async def _read_body(reader: asyncio.StreamReader, length: int) -> bytes:
    try:
        return await reader.readexactly(length)
    except asyncio.IncompleteReadError as exc:
        raise TransportError(
            TransportErrorKind.PEER_CLOSED_EARLY,
            f"connection closed after {len(exc.partial)} of {length} bytes",
        ) from exc


class DelimitedFraming:
    """``<decimal length><delimiter><body>`` framing."""

    name = "delimited"

    def __init__(self, delimiter: bytes = b"#", max_prefix: int = MAX_PREFIX_BYTES):
        if len(delimiter) != 1 or delimiter.isdigit():
            raise ValueError("delimiter must be a single non-digit byte")
        self.delimiter = delimiter
        self.max_prefix = max_prefix

    def encode(self, body: bytes) -> bytes:
        return str(len(body)).encode("ascii") + self.delimiter + body

    async def read_frame(self, reader: asyncio.StreamReader, max_size: int) -> bytes:
        prefix = bytearray()
        while True:
            byte = await reader.read(1)
            if not byte:
                raise TransportError(
                    TransportErrorKind.PEER_CLOSED_EARLY,
                    "connection closed before length delimiter",
                )
            if byte == self.delimiter:
                break
            prefix += byte
            if len(prefix) > self.max_prefix:
                raise TransportError(
                    TransportErrorKind.MALFORMED_FRAME,
                    f"length prefix longer than {self.max_prefix} bytes",
                )

        text = prefix.decode("ascii", errors="replace")
        if not text.isdigit():
            raise TransportError(
                TransportErrorKind.MALFORMED_FRAME, f"invalid length prefix {text!r}"
            )
        length = int(text)
        if length == 0:
            raise TransportError(TransportErrorKind.MALFORMED_FRAME, "empty response frame")
        _check_size(length, max_size, Direction.RESPONSE)
        return await _read_body(reader, length)


class LengthPrefixFraming:
    """``<uint32 big-endian length><body>`` framing."""

    name = "length_prefix"
    _header = struct.Struct(">I")

    def encode(self, body: bytes) -> bytes:
        return self._header.pack(len(body)) + body

    async def read_frame(self, reader: asyncio.StreamReader, max_size: int) -> bytes:
        try:
            header = await reader.readexactly(self._header.size)
        except asyncio.IncompleteReadError as exc:
            raise TransportError(
                TransportErrorKind.PEER_CLOSED_EARLY,
                f"connection closed after {len(exc.partial)} of 4 length bytes",
            ) from exc
        (length,) = self._header.unpack(header)
        if length == 0:
            raise TransportError(TransportErrorKind.MALFORMED_FRAME, "empty response frame")
        _check_size(length, max_size, Direction.RESPONSE)
        return await _read_body(reader, length)


FRAMINGS: dict[str, type] = {
    DelimitedFraming.name: DelimitedFraming,
    LengthPrefixFraming.name: LengthPrefixFraming,
}


def get_framing(name: str) -> Framing:
    """Instantiate a framing strategy by configuration name.

    Raises:
        ValueError: If ``name`` is not a known framing.
    """
    try:
        return FRAMINGS[name.strip().lower()]()
    except KeyError:
        raise ValueError(
            f"unknown framing {name!r}; expected one of {', '.join(sorted(FRAMINGS))}"
        ) from None


def encode_frame(framing: Framing, body: bytes, max_size: int = DEFAULT_MAX_FRAME_BYTES) -> bytes:
    """Frame an outgoing body, enforcing the request size ceiling."""
    _check_size(len(body), max_size, Direction.REQUEST)
    return framing.encode(body)


__all__ = [
    "DEFAULT_MAX_FRAME_BYTES",
    "DelimitedFraming",
    "Framing",
    "LengthPrefixFraming",
    "encode_frame",
    "get_framing",
]
