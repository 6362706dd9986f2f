"""
Error types raised while relaying an upload.

Each error knows the HTTP status it maps to and the JSON body it renders,
so the handler can translate any failure with a single except clause.
"""

from typing import Any, Dict, Optional


class RelayError(Exception):
    """Base class for failures that map to a specific HTTP response."""

    status_code = 500
    error = "Upload failed"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.error)
        self.message = message

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.error}
        if self.message:
            body["message"] = self.message
        return body


class ConfigurationError(RelayError):
    """Required configuration is missing or invalid."""


class MethodNotAllowed(RelayError):
    status_code = 405
    error = "Method not allowed"


class NoFileUploaded(RelayError):
    status_code = 400
    error = "No file uploaded"


class PayloadTooLarge(RelayError):
    status_code = 413
    error = "Payload too large"


class UnsupportedFileType(RelayError):
    status_code = 415
    error = "Unsupported file type"


class MultipartParseError(RelayError):
    """The request body could not be read as multipart form data."""


class ExtractionError(RelayError):
    """The extraction provider failed or returned something unusable."""

    error = "Extraction failed"


class UnexpectedProviderResponse(ExtractionError):
    """The provider reply did not have the choice/message/text shape we read."""


class ExtractionParseError(ExtractionError):
    """The model reply was not a JSON object."""

    def __init__(self, message: str, raw_text: str):
        super().__init__(message)
        self.raw_text = raw_text


class DestinationRejected(RelayError):
    """The destination webhook answered with a non-2xx status."""

    error = "Webhook request failed"

    def __init__(self, status_code: int, details: str):
        super().__init__(f"Webhook responded with status {status_code}")
        self.status_code = status_code
        self.details = details

    def to_body(self) -> Dict[str, Any]:
        return {"error": self.error, "details": self.details}
