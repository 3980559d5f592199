import json

import pytest

from mail_courier.models import EmailPayload, EmailServiceResponse, FileUploadPayload
from mail_courier.transport.codec import (
    EmailCodec,
    JsonCodec,
    StorageDeleteCodec,
    StorageUploadCodec,
    camelize_keys,
    dumps_compact,
    encode_request,
)
from mail_courier.transport.errors import CodecError


def test_encode_request_builds_pattern_data_id_envelope():
    codec = JsonCodec("storage.delete_file")
    body = encode_request(codec, {"file_id": "f-1"}, "req-1")
    assert json.loads(body) == {
        "pattern": "storage.delete_file",
        "data": {"fileId": "f-1"},
        "id": "req-1",
    }


def test_encode_request_is_compact_utf8():
    codec = JsonCodec("email.send_email")
    body = encode_request(codec, {"subject": "caffè"}, "1")
    assert b" " not in body
    assert "caffè".encode("utf-8") in body


def test_email_codec_adds_request_id_and_camel_case_fields():
    codec = EmailCodec()
    data = codec.transform_request(
        EmailPayload(to="User@Example.com", subject="Hi", from_name="Billing")
    )
    assert data["to"] == "User@Example.com"
    assert data["fromName"] == "Billing"
    assert data["locale"] == "en"
    assert data["requestId"]
    assert "html" not in data


def test_email_codec_request_ids_are_unique():
    codec = EmailCodec()
    payload = EmailPayload(to="a@example.com")
    assert codec.transform_request(payload)["requestId"] != codec.transform_request(payload)["requestId"]


def test_parse_response_lenient_defaults_success():
    response = EmailCodec().parse_response(b'{"messageId":"m-1"}')
    assert isinstance(response, EmailServiceResponse)
    assert response.success is True
    assert response.message_id == "m-1"


def test_parse_response_reports_failure():
    response = EmailCodec().parse_response(b'{"success":false,"message":"bad template"}')
    assert response.success is False
    assert response.message == "bad template"


def test_parse_response_strict_requires_success_field():
    with pytest.raises(CodecError):
        EmailCodec(strict_success=True).parse_response(b'{"messageId":"m-1"}')


@pytest.mark.parametrize("raw", [b"not json", b"\xff\xfe", b"[1, 2]"])
def test_parse_response_rejects_undecodable_bodies(raw):
    with pytest.raises(CodecError):
        StorageUploadCodec().parse_response(raw)


def test_generic_codec_without_model_returns_document():
    assert JsonCodec("x.y").parse_response(b'{"a":1}') == {"a": 1}


def test_unsupported_request_type_is_codec_error():
    with pytest.raises(CodecError):
        encode_request(JsonCodec("x.y"), object(), "1")


def test_storage_codec_patterns():
    assert StorageUploadCodec().pattern == "storage.upload_file"
    assert StorageDeleteCodec().pattern == "storage.delete_file"
    data = StorageUploadCodec().transform_request(
        FileUploadPayload(file_name="a.txt", file_content="aGk=")
    )
    assert data == {
        "fileName": "a.txt",
        "fileContent": "aGk=",
        "contentType": "application/octet-stream",
        "overwrite": False,
    }


def test_camelize_keys_recurses_into_nested_values():
    assert camelize_keys({"outer_key": [{"inner_key": 1}]}) == {"outerKey": [{"innerKey": 1}]}


def test_dumps_compact_separators():
    assert dumps_compact({"a": [1, 2]}) == b'{"a":[1,2]}'


def test_strict_success_applies_without_response_model():
    codec = JsonCodec("x.y", strict_success=True)
    with pytest.raises(CodecError):
        codec.parse_response(b"{}")
    with pytest.raises(CodecError):
        codec.parse_response(b"[true]")
    assert codec.parse_response(b'{"success":false}') == {"success": False}


def test_unexpected_transform_failure_becomes_codec_error():
    class BrokenCodec(JsonCodec):
        def transform_request(self, request):
            return request["missing"]

    with pytest.raises(CodecError):
        encode_request(BrokenCodec("x.y"), {}, "1")
