# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Request codecs: wire envelope encoding and response decoding.

A codec is the per-message-kind capability injected into
:class:`~mail_courier.transport.client.FramedTcpClient`. It names the remote
``pattern``, turns a typed request into the ``data`` object and parses the
response body into a typed value.

Wire request envelope::

    {"pattern": "email.send_email", "data": {...}, "id": "<correlation id>"}
"""

from __future__ import annotations

import json
import uuid
from typing import Any, Generic, Protocol, TypeVar

from pydantic import BaseModel, ValidationError
from pydantic.alias_generators import to_camel

from ..models import (
    EmailPayload,
    EmailServiceResponse,
    FileDeletePayload,
    FileUploadPayload,
    StorageServiceResponse,
)
from .errors import CodecError

RequestT = TypeVar("RequestT")
ResponseT = TypeVar("ResponseT")
RequestT_contra = TypeVar("RequestT_contra", contravariant=True)
ResponseT_co = TypeVar("ResponseT_co", covariant=True)


class RequestCodec(Protocol[RequestT_contra, ResponseT_co]):
    """Capability set for one message kind."""

    pattern: str

    def transform_request(self, request: RequestT_contra) -> dict[str, Any]:
        """Return the ``data`` object for the wire envelope."""
        ...

    def parse_response(self, raw: bytes) -> ResponseT_co:
        """Decode a response body. Raises :class:`CodecError` on failure."""
        ...


def camelize_keys(value: Any) -> Any:
    """Recursively convert ``snake_case`` dict keys to lower camel case."""
    if isinstance(value, dict):
        return {to_camel(k) if isinstance(k, str) else k: camelize_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [camelize_keys(v) for v in value]
    return value


def dumps_compact(document: Any) -> bytes:
    """Serialize to compact UTF-8 JSON (no whitespace between tokens)."""
    return json.dumps(document, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def encode_request(codec: RequestCodec, request: Any, request_id: str) -> bytes:
    """Build and serialize the ``{pattern, data, id}`` envelope.

    Raises:
        CodecError: If the request cannot be transformed or serialized.
    """
    try:
        data = codec.transform_request(request)
        return dumps_compact({"pattern": codec.pattern, "data": data, "id": request_id})
    except CodecError:
        raise
    except Exception as exc:
        raise CodecError(f"cannot encode {codec.pattern} request: {exc}") from exc


class JsonCodec(Generic[RequestT, ResponseT]):
    """Generic JSON codec.

    Requests that are pydantic models are dumped with their camel case
    aliases; plain dicts have their keys camelized. Responses are validated
    into ``response_model`` when one is given, otherwise returned as parsed
    JSON.

    With ``strict_success`` a response without a ``success`` field is a
    decode error instead of being treated as successful.
    """

    def __init__(
        self,
        pattern: str,
        response_model: type[BaseModel] | None = None,
        strict_success: bool = False,
    ):
        self.pattern = pattern
        self.response_model = response_model
        self.strict_success = strict_success

    def transform_request(self, request: RequestT) -> dict[str, Any]:
        if isinstance(request, BaseModel):
            return request.model_dump(mode="json", by_alias=True, exclude_none=True)
        if isinstance(request, dict):
            return camelize_keys(request)
        raise CodecError(f"unsupported request type {type(request).__name__}")

    def parse_response(self, raw: bytes) -> ResponseT:
        try:
            document = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise CodecError(f"response is not valid JSON: {exc}") from exc

        if self.strict_success:
            if not isinstance(document, dict) or "success" not in document:
                raise CodecError("response has no success field")
        if self.response_model is None:
            return document
        if not isinstance(document, dict):
            raise CodecError(f"expected a JSON object, got {type(document).__name__}")
        try:
            return self.response_model.model_validate(document)
        except ValidationError as exc:
            raise CodecError(f"unexpected response shape: {exc}") from exc

    def __repr__(self) -> str:
        return f"{type(self).__name__}(pattern={self.pattern!r})"


class EmailCodec(JsonCodec[EmailPayload, EmailServiceResponse]):
    """Codec for ``email.send_email``.

    Adds a fresh ``requestId`` to every request's data so the email service
    can trace it independently of the envelope correlation id.
    """

    def __init__(self, strict_success: bool = False):
        super().__init__("email.send_email", EmailServiceResponse, strict_success)

    def transform_request(self, request: EmailPayload) -> dict[str, Any]:
        data = super().transform_request(request)
        data["requestId"] = str(uuid.uuid4())
        return data


class StorageUploadCodec(JsonCodec[FileUploadPayload, StorageServiceResponse]):
    def __init__(self, strict_success: bool = False):
        super().__init__("storage.upload_file", StorageServiceResponse, strict_success)


class StorageDeleteCodec(JsonCodec[FileDeletePayload, StorageServiceResponse]):
    def __init__(self, strict_success: bool = False):
        super().__init__("storage.delete_file", StorageServiceResponse, strict_success)


__all__ = [
    "EmailCodec",
    "JsonCodec",
    "RequestCodec",
    "StorageDeleteCodec",
    "StorageUploadCodec",
    "camelize_keys",
    "dumps_compact",
    "encode_request",
]
