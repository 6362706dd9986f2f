"""Shared fixtures for upload relay tests."""

import base64
import logging
from types import SimpleNamespace
from unittest.mock import Mock, patch

import pytest
from urllib3 import encode_multipart_formdata

from upload_relay.utils.config import RelayConfig

STATEMENT_URL = "https://hooks.example.com/statement"
TRANSACTION_URL = "https://hooks.example.com/transaction"

# Smallest byte sequence that looks like a JPEG (SOI ... EOI)
JPEG_BYTES = b"\xff\xd8\xff\xe0\x00\x10JFIF\x00" + b"\x01" * 32 + b"\xff\xd9"

STATEMENT_REPLY = """```json
{
    "clientName": "ACME SDN BHD",
    "bank": "Maybank",
    "cardType": "Visa Platinum",
    "cardNumber": "4321",
    "currency": "MYR",
    "statementPeriodStart": "2024-05-01",
    "statementPeriodEnd": "2024-05-31",
    "statementDate": "2024-06-01",
    "dueDate": "2024-06-21",
    "dueAmount": 150.0,
    "outstandingBal": 3000.55
}
```"""


def multipart_fields(upload_type="statement", client_name="Acme", payment_by=None,
                     file=("statement.jpg", JPEG_BYTES, "image/jpeg")):
    fields = []
    if upload_type is not None:
        fields.append(("uploadType", upload_type))
    if client_name is not None:
        fields.append(("clientName", client_name))
    if payment_by is not None:
        fields.append(("paymentBy", payment_by))
    if file is not None:
        fields.append(("file", file))
    return fields


def make_event(fields=None, method="POST", body=None, content_type=None, http_api=False):
    """Build an API Gateway proxy event carrying a base64-encoded multipart body."""
    if body is None:
        body, content_type = encode_multipart_formdata(fields if fields is not None else multipart_fields())
    event = {
        "headers": {"content-type": content_type} if content_type else {},
        "body": base64.b64encode(body).decode(),
        "isBase64Encoded": True,
    }
    if http_api:
        event["requestContext"] = {"http": {"method": method}}
    else:
        event["httpMethod"] = method
    return event


def completion(content, refusal=None, finish_reason="stop"):
    message = SimpleNamespace(content=content, refusal=refusal)
    return SimpleNamespace(choices=[SimpleNamespace(message=message, finish_reason=finish_reason)])


def webhook_response(status_code=200, text="Accepted"):
    response = Mock()
    response.status_code = status_code
    response.text = text
    return response


@pytest.fixture
def upload_dir(tmp_path):
    path = tmp_path / "uploads"
    path.mkdir()
    return path


@pytest.fixture
def config(upload_dir):
    return RelayConfig(
        statement_webhook_url=STATEMENT_URL,
        transaction_webhook_url=TRANSACTION_URL,
        openai_api_key="test-key",
        temp_dir=str(upload_dir),
    )


@pytest.fixture
def logger():
    return logging.getLogger("upload-relay-test")


@pytest.fixture
def openai_client():
    client = Mock()
    client.chat.completions.create.return_value = completion(STATEMENT_REPLY)
    return client


@pytest.fixture
def webhook_post():
    with patch("upload_relay.core.relay.requests.post", return_value=webhook_response()) as post:
        yield post
