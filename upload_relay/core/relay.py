"""
Core upload relay functionality.

This module contains the UploadRelay class that forwards a received upload to
the destination webhook, either as the raw file (direct relay) or as a JSON
record extracted from the document with the OpenAI vision API (extraction
relay).
"""

import base64
import mimetypes
from io import BytesIO
from typing import Any, Dict, List, Optional, Tuple

import requests
from openai import OpenAI, OpenAIError
from pdf2image import convert_from_bytes
from PIL import Image

from .errors import DestinationRejected, ExtractionError, UnsupportedFileType
from .extraction import build_prompt, build_record, parse_model_reply, read_message_text
from .models import UploadedFile, UploadRequest
from ..utils.config import RELAY_MODE_EXTRACT, RelayConfig

DEFAULT_MIME_TYPE = "image/jpeg"
PDF_MIME_TYPE = "application/pdf"


class UploadRelay:
    """
    Relays statement and transaction uploads to workflow webhooks.

    Two paths are supported:
    - forward_file: the file itself is re-posted as multipart form data
    - relay_extracted: the file is read by a vision model and the resulting
      fields are posted as JSON
    """

    def __init__(self, config: RelayConfig, logger: Optional[Any] = None, client: Optional[Any] = None):
        """
        Initialize the relay.

        Args:
            config: Relay configuration (webhook URLs, timeouts, model settings)
            logger: Logger instance for logging output
            client: OpenAI client; built lazily from config.openai_api_key when omitted
        """
        self.config = config
        self.logger = logger
        self._client = client

    def _log(self, message: str, level: str = "info"):
        """Log message using the configured logger or print as fallback."""
        if self.logger:
            if level == "error":
                self.logger.error(message)
            elif level == "warning":
                self.logger.warning(message)
            elif level == "debug":
                self.logger.debug(message)
            else:
                self.logger.info(message)
        else:
            print(message)

    @property
    def client(self) -> Any:
        if self._client is None:
            if not self.config.openai_api_key:
                raise ExtractionError("OpenAI API key not found. Set OPENAI_API_KEY environment variable.")
            self._client = OpenAI(
                api_key=self.config.openai_api_key,
                timeout=self.config.extraction_timeout,
                max_retries=0,
            )
        return self._client

    def relay(self, upload: UploadRequest, mode: str) -> Dict[str, Any]:
        """Relay an upload with the given mode ("direct" or "extract")."""
        if mode == RELAY_MODE_EXTRACT:
            return self.relay_extracted(upload)
        return self.forward_file(upload)

    def resolve_mime_type(self, file: UploadedFile) -> str:
        """
        Determine the MIME type of an uploaded file.

        The part's own Content-Type wins, then a guess from the filename,
        then image/jpeg.
        """
        mime_type = (file.mime_type or "").lower()
        if mime_type and mime_type != "application/octet-stream":
            return mime_type
        guessed, _ = mimetypes.guess_type(file.filename)
        return guessed or DEFAULT_MIME_TYPE

    def check_file_type(self, file: UploadedFile) -> str:
        """
        Check the file's MIME type against the configured allow-list.

        Returns:
            The resolved MIME type
        """
        mime_type = self.resolve_mime_type(file)
        allowed = self.config.allowed_mime_types
        if allowed and mime_type not in allowed:
            raise UnsupportedFileType(
                f"File type '{mime_type}' is not accepted. Allowed types: {', '.join(sorted(allowed))}"
            )
        return mime_type

    def forward_file(self, upload: UploadRequest) -> Dict[str, Any]:
        """
        Forward the uploaded file and its form fields to the destination webhook.

        Args:
            upload: Parsed upload with a spooled file

        Returns:
            Success response body

        Raises:
            DestinationRejected: if the webhook answers with a non-2xx status
        """
        webhook_url = self.config.webhook_url_for(upload.upload_type)
        self.check_file_type(upload.file)
        # The part keeps the content type the client sent
        content_type = upload.file.mime_type or "application/octet-stream"

        form_fields = {
            "uploadType": upload.raw_upload_type or upload.upload_type.value,
            "clientName": upload.client_name or "",
        }
        if upload.payment_by:
            form_fields["paymentBy"] = upload.payment_by

        self._log(f"Forwarding '{upload.file.filename}' ({upload.file.size} bytes) "
                  f"as {upload.upload_type.value} upload")

        with open(upload.file.path, "rb") as f:
            response = requests.post(
                webhook_url,
                data=form_fields,
                files={"file": (upload.file.filename, f, content_type)},
                timeout=self.config.webhook_timeout,
            )

        result = response.text
        self._check_webhook_response(response, result)

        return {
            "success": True,
            "message": "File uploaded successfully",
            "webhookResponse": result,
        }

    def image_to_base64(self, image: Image.Image) -> str:
        """Convert PIL Image to base64 string."""
        buffered = BytesIO()
        # Convert to RGB if necessary
        if image.mode != 'RGB':
            image = image.convert('RGB')
        image.save(buffered, format="JPEG", quality=85)
        return base64.b64encode(buffered.getvalue()).decode()

    def encode_images(self, file: UploadedFile, mime_type: str) -> List[Tuple[str, str]]:
        """
        Read the uploaded file into (mime_type, base64) pairs for the vision API.

        PDFs are rendered page by page (up to config.pdf_max_pages) as JPEG;
        anything else is sent as-is.
        """
        data = file.read_bytes()

        if mime_type != PDF_MIME_TYPE:
            return [(mime_type, base64.b64encode(data).decode())]

        try:
            pages = convert_from_bytes(
                data,
                dpi=self.config.pdf_dpi,
                first_page=1,
                last_page=self.config.pdf_max_pages,
            )
        except Exception as e:
            raise ExtractionError(f"Failed to render PDF pages: {str(e)}") from e

        if not pages:
            raise ExtractionError("PDF has no pages")

        self._log(f"Rendered {len(pages)} PDF page(s) for extraction", "debug")
        return [("image/jpeg", self.image_to_base64(page)) for page in pages]

    def extract_fields(self, upload: UploadRequest) -> Dict[str, Any]:
        """
        Extract statement or transaction fields from the uploaded document.

        Args:
            upload: Parsed upload with a spooled file

        Returns:
            Parsed JSON object returned by the model

        Raises:
            ExtractionError: if the API call fails or its reply cannot be used
        """
        mime_type = self.check_file_type(upload.file)
        images = self.encode_images(upload.file, mime_type)
        prompt = build_prompt(upload.upload_type)

        content: List[Dict[str, Any]] = [{"type": "text", "text": prompt}]
        for image_mime, image_b64 in images:
            content.append({
                "type": "image_url",
                "image_url": {
                    "url": f"data:{image_mime};base64,{image_b64}",
                    "detail": "high"
                }
            })

        self._log(f"Requesting {upload.upload_type.value} extraction from {self.config.openai_model}")

        try:
            response = self.client.chat.completions.create(
                model=self.config.openai_model,
                messages=[
                    {
                        "role": "user",
                        "content": content
                    }
                ],
                max_tokens=self.config.openai_max_tokens,
                temperature=0.1
            )
        except OpenAIError as e:
            raise ExtractionError(f"Extraction API request failed: {str(e)}") from e

        result_text = read_message_text(response)
        self._log(f"Extraction response: {result_text}", "debug")
        return parse_model_reply(result_text)

    def post_record(self, webhook_url: str, record: Dict[str, Any]) -> requests.Response:
        """POST a normalized record to the destination webhook as JSON."""
        return requests.post(webhook_url, json=record, timeout=self.config.webhook_timeout)

    def relay_extracted(self, upload: UploadRequest) -> Dict[str, Any]:
        """
        Extract fields from the uploaded document and forward them as a JSON record.

        Returns:
            Success response body

        Raises:
            ExtractionError: if extraction fails
            DestinationRejected: if the webhook answers with a non-2xx status
        """
        webhook_url = self.config.webhook_url_for(upload.upload_type)
        extracted = self.extract_fields(upload)

        record = build_record(
            upload.upload_type,
            extracted,
            client_name=upload.client_name,
            payment_by=upload.payment_by,
            default_currency=self.config.default_currency,
        )

        self._log(f"Forwarding extracted {record['recordType']} record")
        response = self.post_record(webhook_url, record)

        result = response.text
        self._check_webhook_response(response, result)

        return {
            "success": True,
            "message": "File processed successfully",
            "extractedData": extracted,
            "makeResponse": result,
        }

    def _check_webhook_response(self, response: requests.Response, result: str):
        if 200 <= response.status_code < 300:
            self._log(f"Webhook accepted upload (status {response.status_code})")
            return
        self._log(f"Webhook rejected upload (status {response.status_code}): {result}", "warning")
        raise DestinationRejected(response.status_code, result)
