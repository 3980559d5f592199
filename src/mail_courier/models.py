# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Pydantic models for the payloads delivered by mail-courier.

All models serialize with lower camel case field names (``fromName``,
``fileContent``) and omit unset optional fields, which is the shape the
remote services expect on the wire and in event records.

Models:
    - SingleRecipient / MultipleRecipients: the ``to`` field variants
    - EmailPayload: email send request
    - EmailServiceResponse: reply of the email service
    - FileUploadPayload / FileDeletePayload: storage requests
    - StorageServiceResponse: reply of the storage service
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Any, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    PlainValidator,
)
from pydantic.alias_generators import to_camel


@dataclass(frozen=True)
class SingleRecipient:
    """A single recipient address."""

    address: str

    def lowered(self) -> SingleRecipient:
        return SingleRecipient(self.address.lower())

    def routing_key(self) -> str | None:
        return self.address.lower()

    def to_wire(self) -> str:
        return self.address


@dataclass(frozen=True)
class MultipleRecipients:
    """Several recipient addresses delivered as one payload."""

    addresses: tuple[str, ...]

    def lowered(self) -> MultipleRecipients:
        return MultipleRecipients(tuple(a.lower() for a in self.addresses))

    def routing_key(self) -> str | None:
        # No single recipient to order on; the broker picks the partition.
        return None

    def to_wire(self) -> list[str]:
        return list(self.addresses)


Recipient = Union[SingleRecipient, MultipleRecipients]


def parse_recipient(value: Any) -> Recipient:
    """Resolve a ``to`` value into a :data:`Recipient` variant.

    Accepts a string, a list/tuple of strings, or an existing variant.
    A comma separated string with several addresses becomes
    :class:`MultipleRecipients`; a one-element list collapses to
    :class:`SingleRecipient`.

    Raises:
        ValueError: On empty input, blank addresses or non-string items.
    """
    if isinstance(value, (SingleRecipient, MultipleRecipients)):
        return value
    if isinstance(value, str):
        items = [part.strip() for part in value.split(",")]
    elif isinstance(value, (list, tuple)):
        if not all(isinstance(item, str) for item in value):
            raise ValueError("recipient addresses must be strings")
        items = [item.strip() for item in value]
    else:
        raise ValueError(f"unsupported recipient value: {type(value).__name__}")

    if not items or any(not item for item in items):
        raise ValueError("recipient addresses must not be blank")
    if len(items) == 1:
        return SingleRecipient(items[0])
    return MultipleRecipients(tuple(items))


RecipientField = Annotated[
    Recipient,
    PlainValidator(parse_recipient),
    PlainSerializer(lambda r: r.to_wire(), when_used="always"),
]


class Priority(str, Enum):
    """Delivery priority understood by the email service."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class WireModel(BaseModel):
    """Base for models exchanged with the remote services."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
    )

    def to_wire(self) -> dict[str, Any]:
        """Dump as a JSON-compatible dict with camel case keys, omitting None."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class EmailPayload(WireModel):
    """Email send request.

    Template and locale fields are passed through untouched; rendering is
    done by the email service.

    Attributes:
        to: Recipient variant (single address or several).
        subject: Subject line.
        html: HTML body.
        text: Plain text body.
        template: Server-side template name.
        locale: Template locale.
        data: Template variables.
        from_addr: Sender address (``from`` on the wire).
        from_name: Sender display name.
        priority: Delivery priority.
        metadata: Opaque caller metadata.
    """

    to: RecipientField
    subject: str | None = None
    html: str | None = None
    text: str | None = None
    template: str | None = None
    locale: str = "en"
    data: dict[str, Any] | None = None
    from_addr: Annotated[str | None, Field(default=None, alias="from")]
    from_name: str | None = None
    priority: Priority = Priority.NORMAL
    metadata: dict[str, Any] | None = None

    def normalized(self) -> EmailPayload:
        """Return a copy with recipient addresses lower-cased."""
        return self.model_copy(update={"to": self.to.lowered()})


class EmailServiceResponse(WireModel):
    """Reply of the email service. ``success`` defaults to True when absent."""

    success: bool = True
    message: str | None = None
    message_id: str | None = None


class FileUploadPayload(WireModel):
    """Storage upload request with base64 encoded content."""

    file_name: Annotated[str, Field(min_length=1)]
    file_content: str = ""
    content_type: str = "application/octet-stream"
    folder: str | None = None
    metadata: dict[str, Any] | None = None
    overwrite: bool = False


class FileDeletePayload(WireModel):
    """Storage delete request."""

    file_id: Annotated[str, Field(min_length=1)]
    permanent: bool = False


class StorageServiceResponse(WireModel):
    """Reply of the storage service."""

    success: bool = True
    message: str | None = None
    file_id: str | None = None
    url: str | None = None


__all__ = [
    "EmailPayload",
    "EmailServiceResponse",
    "FileDeletePayload",
    "FileUploadPayload",
    "MultipleRecipients",
    "Priority",
    "Recipient",
    "SingleRecipient",
    "StorageServiceResponse",
    "WireModel",
    "parse_recipient",
]
