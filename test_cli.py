"""Tests for the upload-relay command line."""

import json
from unittest.mock import patch

import pytest

import cli
from conftest import JPEG_BYTES, STATEMENT_URL, TRANSACTION_URL, webhook_response


@pytest.fixture(autouse=True)
def relay_env(monkeypatch):
    monkeypatch.setenv("STATEMENT_WEBHOOK_URL", STATEMENT_URL)
    monkeypatch.setenv("TRANSACTION_WEBHOOK_URL", TRANSACTION_URL)
    monkeypatch.delenv("RELAY_MODE", raising=False)
    with patch("cli.load_dotenv"):
        yield


def test_relays_local_file(tmp_path, capsys, webhook_post):
    path = tmp_path / "statement.jpg"
    path.write_bytes(JPEG_BYTES)

    with pytest.raises(SystemExit) as exc_info:
        cli.main([str(path), "--type", "statement", "--client-name", "Acme"])

    assert exc_info.value.code == 0
    assert webhook_post.call_args.args[0] == STATEMENT_URL
    assert json.loads(capsys.readouterr().out)["success"] is True
    assert path.exists()


def test_rejected_upload_exits_nonzero(tmp_path, capsys):
    path = tmp_path / "receipt.jpg"
    path.write_bytes(JPEG_BYTES)

    with patch("upload_relay.core.relay.requests.post", return_value=webhook_response(400, "Bad request")):
        with pytest.raises(SystemExit) as exc_info:
            cli.main([str(path)])

    assert exc_info.value.code == 1
    assert json.loads(capsys.readouterr().out) == {"error": "Webhook request failed", "details": "Bad request"}


def test_missing_file_exits_nonzero(tmp_path, webhook_post):
    with pytest.raises(SystemExit) as exc_info:
        cli.main([str(tmp_path / "missing.jpg")])

    assert exc_info.value.code == 1
    webhook_post.assert_not_called()
