"""Tests for multipart parsing and temporary file handling."""

import os
from unittest.mock import Mock, patch

import pytest
from urllib3 import encode_multipart_formdata

from conftest import JPEG_BYTES, multipart_fields
from upload_relay.core.errors import MultipartParseError
from upload_relay.core.models import UploadType
from upload_relay.core.multipart import UploadParser, received_upload


def encode(fields):
    return encode_multipart_formdata(fields)


def test_parse_collects_fields_and_spools_file(upload_dir):
    body, content_type = encode(multipart_fields(payment_by="Jane"))
    parser = UploadParser(temp_dir=str(upload_dir))

    upload = parser.parse(body, content_type)

    assert upload.upload_type is UploadType.STATEMENT
    assert upload.raw_upload_type == "statement"
    assert upload.client_name == "Acme"
    assert upload.payment_by == "Jane"
    assert upload.file.filename == "statement.jpg"
    assert upload.file.mime_type == "image/jpeg"
    assert upload.file.size == len(JPEG_BYTES)
    assert os.path.dirname(upload.file.path) == str(upload_dir)
    assert upload.file.read_bytes() == JPEG_BYTES

    parser.cleanup()
    assert not os.path.exists(upload.file.path)


def test_repeated_fields_keep_first_value(upload_dir):
    body, content_type = encode([
        ("uploadType", "transaction"),
        ("uploadType", "statement"),
        ("clientName", "First"),
        ("clientName", "Second"),
        ("file", ("a.jpg", b"first file", "image/jpeg")),
        ("file", ("b.jpg", b"second file", "image/jpeg")),
    ])

    with received_upload(body, content_type, temp_dir=str(upload_dir)) as upload:
        assert upload.upload_type is UploadType.TRANSACTION
        assert upload.client_name == "First"
        assert upload.file.filename == "a.jpg"
        assert upload.file.read_bytes() == b"first file"
        # The second file part is never written to disk
        assert len(list(upload_dir.iterdir())) == 1

    assert list(upload_dir.iterdir()) == []


def test_missing_file_and_fields(upload_dir):
    body, content_type = encode([("clientName", "Acme")])

    with received_upload(body, content_type, temp_dir=str(upload_dir)) as upload:
        assert upload.file is None
        assert not upload.has_file
        assert upload.raw_upload_type is None
        assert upload.upload_type is UploadType.TRANSACTION
        assert upload.payment_by is None


def test_file_part_under_other_name_is_ignored(upload_dir):
    body, content_type = encode([
        ("uploadType", "statement"),
        ("attachment", ("a.jpg", JPEG_BYTES, "image/jpeg")),
    ])

    with received_upload(body, content_type, temp_dir=str(upload_dir)) as upload:
        assert upload.file is None
        assert list(upload_dir.iterdir()) == []


def test_windows_path_filename_is_reduced_to_basename(upload_dir):
    body, content_type = encode([("file", ("C:\\Users\\me\\statement.jpg", JPEG_BYTES, "image/jpeg"))])

    with received_upload(body, content_type, temp_dir=str(upload_dir)) as upload:
        assert upload.file.filename == "statement.jpg"


def test_non_ascii_field_values(upload_dir):
    body, content_type = encode(multipart_fields(client_name="Syarikat Ünïcode"))

    with received_upload(body, content_type, temp_dir=str(upload_dir)) as upload:
        assert upload.client_name == "Syarikat Ünïcode"


@pytest.mark.parametrize("content_type", [
    None,
    "",
    "application/json",
    "multipart/form-data",
])
def test_rejects_non_multipart_content(content_type, upload_dir):
    with pytest.raises(MultipartParseError):
        UploadParser(temp_dir=str(upload_dir)).parse(b"{}", content_type)


def test_truncated_body_is_rejected_and_cleaned_up(upload_dir):
    body, content_type = encode(multipart_fields())
    truncated = body[: len(body) // 2 + len(JPEG_BYTES) // 2]

    with pytest.raises(MultipartParseError):
        with received_upload(truncated, content_type, temp_dir=str(upload_dir)):
            pass

    assert list(upload_dir.iterdir()) == []


def test_garbage_body_is_rejected(upload_dir):
    with pytest.raises(MultipartParseError):
        with received_upload(b"this is not multipart at all",
                             "multipart/form-data; boundary=abc123", temp_dir=str(upload_dir)):
            pass


def test_file_removed_when_body_raises(upload_dir):
    body, content_type = encode(multipart_fields())

    with pytest.raises(RuntimeError):
        with received_upload(body, content_type, temp_dir=str(upload_dir)) as upload:
            assert os.path.exists(upload.file.path)
            raise RuntimeError("downstream failure")

    assert list(upload_dir.iterdir()) == []


def test_cleanup_failure_is_logged_not_raised(upload_dir):
    body, content_type = encode(multipart_fields())
    logger = Mock()
    parser = UploadParser(temp_dir=str(upload_dir), logger=logger)
    parser.parse(body, content_type)

    with patch("upload_relay.core.multipart.os.remove", side_effect=PermissionError("read-only")):
        parser.cleanup()

    logger.warning.assert_called_once()
    assert "read-only" in logger.warning.call_args.args[0]


def test_cleanup_tolerates_already_removed_file(upload_dir):
    body, content_type = encode(multipart_fields())
    logger = Mock()
    parser = UploadParser(temp_dir=str(upload_dir), logger=logger)
    upload = parser.parse(body, content_type)
    os.remove(upload.file.path)

    parser.cleanup()

    logger.warning.assert_not_called()
