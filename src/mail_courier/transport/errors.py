# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Failure taxonomy and result types for the framed transport.

Internal helpers raise :class:`TransportError`; the client boundary converts
it into an :class:`Err` so callers receive ``Ok | Err`` values instead of
exceptions.

Example::

    result = await client.send(payload)
    if isinstance(result, Ok):
        print(result.value.success)
    else:
        print(result.error.kind, result.error.detail)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar, Union

T = TypeVar("T")


class TransportErrorKind(str, Enum):
    """Reasons a framed request/response exchange can fail.

    None of them is fatal to the process; every kind is reported to the
    caller, who may retry.
    """

    CONNECT_TIMEOUT = "connect_timeout"
    CONNECT_REFUSED = "connect_refused"
    SIZE_EXCEEDED = "size_exceeded"
    READ_TIMEOUT = "read_timeout"
    PEER_CLOSED_EARLY = "peer_closed_early"
    MALFORMED_FRAME = "malformed_frame"
    ENCODE_ERROR = "encode_error"
    DECODE_ERROR = "decode_error"


class Direction(str, Enum):
    """Which side of the exchange a size limit was hit on."""

    REQUEST = "request"
    RESPONSE = "response"


class TransportError(Exception):
    """A failed exchange with the remote service.

    Attributes:
        kind: Failure classification.
        detail: Human-readable description for logs.
        direction: Set for size violations.
    """

    def __init__(
        self,
        kind: TransportErrorKind,
        detail: str = "",
        direction: Direction | None = None,
    ):
        super().__init__(detail or kind.value)
        self.kind = kind
        self.detail = detail or kind.value
        self.direction = direction

    def __repr__(self) -> str:
        suffix = f", direction={self.direction.value}" if self.direction else ""
        return f"TransportError({self.kind.value}: {self.detail}{suffix})"


class CodecError(Exception):
    """Raised by codecs when a request cannot be encoded or a response decoded."""


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful exchange carrying the decoded response."""

    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    """Failed exchange.

    ``raw`` holds the response body when the peer answered but the codec
    could not decode it.
    """

    error: TransportError
    raw: bytes | None = None

    @property
    def ok(self) -> bool:
        return False

    @property
    def kind(self) -> TransportErrorKind:
        return self.error.kind

    @property
    def reached_peer(self) -> bool:
        """True when a complete response frame was received."""
        return self.error.kind is TransportErrorKind.DECODE_ERROR and self.raw is not None


Result = Union[Ok[T], Err]

__all__ = [
    "CodecError",
    "Direction",
    "Err",
    "Ok",
    "Result",
    "TransportError",
    "TransportErrorKind",
]
