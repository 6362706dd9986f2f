"""
AWS Lambda handler for the upload relay service.

This module handles HTTP events (API Gateway REST/HTTP APIs and Lambda function
URLs) carrying a multipart upload, relays the upload and translates the outcome
into an HTTP response.
"""

import base64
import json
from typing import Any, Dict, Optional

from ..core.errors import MethodNotAllowed, NoFileUploaded, PayloadTooLarge, RelayError
from ..core.multipart import received_upload
from ..core.relay import UploadRelay
from ..utils.config import RELAY_MODE_DIRECT, RELAY_MODE_EXTRACT, RelayConfig
from ..utils.logger import setup_logger

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

_config: Optional[RelayConfig] = None


def get_config() -> RelayConfig:
    """Load the configuration once per container."""
    global _config
    if _config is None:
        _config = RelayConfig.from_env()
    return _config


def build_response(status_code: int, body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Build a Lambda proxy response with CORS headers and an optional JSON body."""
    headers = dict(CORS_HEADERS)
    if body is None:
        payload = ""
    else:
        headers["Content-Type"] = "application/json"
        payload = json.dumps(body)
    return {
        "statusCode": status_code,
        "headers": headers,
        "body": payload,
        "isBase64Encoded": False,
    }


def get_method(event: Dict[str, Any]) -> str:
    method = event.get("httpMethod")
    if not method:
        # HTTP API (payload v2) and function URLs
        method = event.get("requestContext", {}).get("http", {}).get("method", "")
    return method.upper()


def get_header(event: Dict[str, Any], name: str) -> Optional[str]:
    """Case-insensitive header lookup."""
    headers = event.get("headers") or {}
    name = name.lower()
    for key, value in headers.items():
        if key.lower() == name:
            return value
    return None


def get_body(event: Dict[str, Any]) -> bytes:
    body = event.get("body") or ""
    if event.get("isBase64Encoded"):
        return base64.b64decode(body)
    if isinstance(body, bytes):
        return body
    return body.encode("utf-8")


def handle_event(event: Dict[str, Any], config: Optional[RelayConfig] = None, mode: Optional[str] = None,
                 relay: Optional[UploadRelay] = None, logger: Optional[Any] = None) -> Dict[str, Any]:
    """
    Handle one HTTP upload event.

    Args:
        event: Lambda HTTP event
        config: Relay configuration (loaded from the environment when omitted)
        mode: "direct" or "extract"; defaults to config.relay_mode
        relay: UploadRelay to use (built from config when omitted)
        logger: Logger instance

    Returns:
        Lambda proxy response dict
    """
    if logger is None:
        logger = setup_logger("upload-relay")

    method = get_method(event)
    if method == "OPTIONS":
        return build_response(200)
    if method != "POST":
        logger.warning(f"Rejected {method or 'unknown'} request")
        return build_response(MethodNotAllowed.status_code, MethodNotAllowed().to_body())

    try:
        if config is None:
            config = get_config()
        if relay is None:
            relay = UploadRelay(config, logger=logger)
        mode = mode or config.relay_mode

        body = get_body(event)
        if len(body) > config.max_upload_bytes:
            raise PayloadTooLarge(
                f"Request body is {len(body)} bytes; the limit is {config.max_upload_bytes} bytes"
            )

        content_type = get_header(event, "Content-Type")
        with received_upload(body, content_type, temp_dir=config.temp_dir, logger=logger) as upload:
            if not upload.has_file:
                raise NoFileUploaded()

            logger.info(
                f"Received {upload.upload_type.value} upload '{upload.file.filename}' "
                f"for client '{upload.client_name}' (mode: {mode})"
            )
            result = relay.relay(upload, mode)

        return build_response(200, result)

    except NoFileUploaded as e:
        logger.warning("Upload rejected: no file in request")
        return build_response(e.status_code, e.to_body())
    except RelayError as e:
        logger.error(f"Upload error: {str(e)}", exc_info=e.status_code >= 500)
        return build_response(e.status_code, e.to_body())
    except Exception as e:
        logger.error(f"Upload error: {str(e)}", exc_info=True)
        return build_response(500, {"error": "Upload failed", "message": str(e)})


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    AWS Lambda handler relaying uploads with the mode set in RELAY_MODE.

    Args:
        event: HTTP event containing a multipart upload
        context: Lambda context object

    Returns:
        Lambda proxy response dict
    """
    return handle_event(event)


def direct_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """AWS Lambda handler that always forwards the raw file."""
    return handle_event(event, mode=RELAY_MODE_DIRECT)


def extraction_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """AWS Lambda handler that always extracts fields before forwarding."""
    return handle_event(event, mode=RELAY_MODE_EXTRACT)
