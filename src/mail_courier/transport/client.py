# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Framed request/response client for TCP microservices.

Every call opens its own connection, writes one length-framed request,
reads one length-framed response and closes the connection:

    connect -> encode -> write frame -> read frame -> decode -> close

Within one client instance the exchange is serialized by a single-slot
token so the frames of concurrent calls never interleave. Failures never
escape as exceptions: :meth:`FramedTcpClient.send` returns ``Ok`` or
``Err`` (see :mod:`mail_courier.transport.errors`). Task cancellation
still propagates, after the connection has been released.

Example::

    client = FramedTcpClient(EmailCodec(), TcpConfig(host="mailer", port=4003))
    result = await client.send(EmailPayload(to="user@example.com", subject="Hi"))
    if result.ok:
        print(result.value.message_id)
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Generic, TypeVar

from ..logger import get_logger
from .codec import RequestCodec, encode_request
from .errors import CodecError, Err, Ok, TransportError, TransportErrorKind
from .framing import Framing, encode_frame, get_framing

if TYPE_CHECKING:
    from ..config_loader import TcpConfig
    from ..metrics import CourierMetrics

RequestT = TypeVar("RequestT")
ResponseT = TypeVar("ResponseT")

Streams = tuple[asyncio.StreamReader, asyncio.StreamWriter]
Connector = Callable[[str, int], Awaitable[Streams]]

logger = get_logger("transport")


async def open_tcp(host: str, port: int) -> Streams:
    return await asyncio.open_connection(host, port)


class FramedTcpClient(Generic[RequestT, ResponseT]):
    """Client for one remote ``pattern`` over the framed TCP protocol.

    Attributes:
        codec: Request codec for the message kind.
        config: Host, port, timeouts, size ceiling and framing name.
        framing: Framing strategy; defaults to ``config.framing``.
    """

    def __init__(
        self,
        codec: RequestCodec,
        config: TcpConfig,
        framing: Framing | None = None,
        connector: Connector | None = None,
        metrics: CourierMetrics | None = None,
        id_factory: Callable[[], str] | None = None,
    ):
        """Initialize the client.

        Args:
            codec: Encodes requests and decodes responses.
            config: Transport configuration.
            framing: Explicit framing strategy, overriding ``config.framing``.
            connector: Coroutine ``(host, port) -> (reader, writer)``;
                defaults to ``asyncio.open_connection``.
            metrics: Optional metrics collector.
            id_factory: Correlation id generator; defaults to UUID4 strings.
        """
        self.codec = codec
        self.config = config
        self.framing = framing or get_framing(config.framing)
        self._connector = connector or open_tcp
        self._metrics = metrics
        self._id_factory = id_factory or (lambda: str(uuid.uuid4()))
        # Single-slot token: holding it is the right to run one exchange.
        self._slot: asyncio.Queue[None] = asyncio.Queue(maxsize=1)
        self._slot.put_nowait(None)

    @property
    def pattern(self) -> str:
        return self.codec.pattern

    @property
    def busy(self) -> bool:
        """True while an exchange holds the send slot."""
        return self._slot.empty()

    @asynccontextmanager
    async def _send_slot(self) -> AsyncIterator[None]:
        token = await self._slot.get()
        try:
            yield token
        finally:
            self._slot.put_nowait(token)

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[Streams]:
        """Open a connection for one exchange and always close it."""
        host, port = self.config.host, self.config.port
        logger.debug("Connecting to %s at %s:%s", self.pattern, host, port)
        try:
            reader, writer = await asyncio.wait_for(
                self._connector(host, port), timeout=self.config.connect_timeout
            )
        except asyncio.TimeoutError as exc:
            raise TransportError(
                TransportErrorKind.CONNECT_TIMEOUT,
                f"connect to {host}:{port} timed out after {self.config.connect_timeout}s",
            ) from exc
        except OSError as exc:
            raise TransportError(
                TransportErrorKind.CONNECT_REFUSED, f"connect to {host}:{port} failed: {exc}"
            ) from exc

        try:
            yield reader, writer
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError as exc:
                logger.debug("Error while closing connection to %s:%s: %s", host, port, exc)

    async def send(self, request: RequestT) -> Ok[ResponseT] | Err:
        """Perform one framed exchange.

        Args:
            request: Typed request accepted by the codec.

        Returns:
            ``Ok(response)`` on success; ``Err(error)`` on any transport or
            codec failure. A response that arrived but could not be decoded
            yields ``Err`` of kind ``DECODE_ERROR`` with ``raw`` set.
        """
        request_id = self._id_factory()
        async with self._send_slot():
            try:
                frame = self._encode(request, request_id)
                body = await self._exchange(frame)
            except TransportError as exc:
                return self._failed(exc)
            except (ConnectionError, asyncio.IncompleteReadError) as exc:
                return self._failed(
                    TransportError(TransportErrorKind.PEER_CLOSED_EARLY, f"connection lost: {exc}")
                )

        try:
            response = self.codec.parse_response(body)
        except CodecError as exc:
            logger.warning(
                "Failed to decode %s response (%d bytes): %s", self.pattern, len(body), exc
            )
            return self._failed(
                TransportError(TransportErrorKind.DECODE_ERROR, str(exc)), raw=body
            )
        except Exception as exc:
            logger.exception(
                "Codec raised while decoding %s response (%d bytes)", self.pattern, len(body)
            )
            return self._failed(
                TransportError(TransportErrorKind.DECODE_ERROR, f"{type(exc).__name__}: {exc}"),
                raw=body,
            )

        if self._metrics:
            self._metrics.inc_request(self.pattern, "ok")
        return Ok(response)

    def _encode(self, request: RequestT, request_id: str) -> bytes:
        try:
            body = encode_request(self.codec, request, request_id)
        except CodecError as exc:
            if exc.__cause__ is not None:
                logger.exception("Codec raised while encoding %s request", self.pattern)
            raise TransportError(TransportErrorKind.ENCODE_ERROR, str(exc)) from exc
        return encode_frame(self.framing, body, self.config.max_frame_bytes)

    async def _exchange(self, frame: bytes) -> bytes:
        async with self._connection() as (reader, writer):
            writer.write(frame)
            await writer.drain()
            logger.info(
                "Request sent. Pattern: %s, Length: %d bytes", self.pattern, len(frame)
            )
            if self._metrics:
                self._metrics.add_frame_bytes("request", len(frame))

            try:
                body = await asyncio.wait_for(
                    self.framing.read_frame(reader, self.config.max_frame_bytes),
                    timeout=self.config.read_timeout,
                )
            except asyncio.TimeoutError as exc:
                raise TransportError(
                    TransportErrorKind.READ_TIMEOUT,
                    f"no response within {self.config.read_timeout}s",
                ) from exc

        logger.info("Received response. Pattern: %s, Length: %d bytes", self.pattern, len(body))
        logger.debug("Response body: %s", body[:2048].decode("utf-8", errors="replace"))
        if self._metrics:
            self._metrics.add_frame_bytes("response", len(body))
        return body

    def _failed(self, error: TransportError, raw: bytes | None = None) -> Err:
        if error.kind is not TransportErrorKind.DECODE_ERROR:
            logger.error("%s request failed: %s", self.pattern, error.detail)
        if self._metrics:
            self._metrics.inc_request(self.pattern, error.kind.value)
        return Err(error, raw=raw)

    def __repr__(self) -> str:
        return (
            f"<FramedTcpClient {self.pattern} {self.config.host}:{self.config.port} "
            f"framing={self.framing.name}>"
        )

