# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Framed TCP request/response transport."""

from .client import FramedTcpClient
from .codec import EmailCodec, JsonCodec, RequestCodec, StorageDeleteCodec, StorageUploadCodec
from .errors import CodecError, Direction, Err, Ok, TransportError, TransportErrorKind
from .framing import DelimitedFraming, Framing, LengthPrefixFraming, get_framing

__all__ = [
    "CodecError",
    "DelimitedFraming",
    "Direction",
    "EmailCodec",
    "Err",
    "FramedTcpClient",
    "Framing",
    "JsonCodec",
    "LengthPrefixFraming",
    "Ok",
    "RequestCodec",
    "StorageDeleteCodec",
    "StorageUploadCodec",
    "TransportError",
    "TransportErrorKind",
    "get_framing",
]
