"""
Multipart form parsing for upload requests.

The body is fed through python-multipart's streaming parser. Plain fields are
collected in memory; the first part named ``file`` that carries a filename is
written straight to a temporary file, which the caller must release through
``received_upload`` (or ``UploadParser.cleanup``).
"""

import os
import tempfile
from contextlib import contextmanager
from typing import Any, Dict, IO, Iterator, List, Optional

import python_multipart
from python_multipart.exceptions import FormParserError
from python_multipart.multipart import parse_options_header

from .errors import MultipartParseError
from .models import UploadedFile, UploadRequest

FILE_FIELD = "file"


class UploadParser:
    """Parses one multipart body. Not reusable across requests."""

    def __init__(self, temp_dir: Optional[str] = None, logger: Optional[Any] = None,
                 file_field: str = FILE_FIELD):
        self.temp_dir = temp_dir
        self.logger = logger
        self.file_field = file_field

        self.fields: Dict[str, List[str]] = {}
        self.file: Optional[UploadedFile] = None

        self._headers: Dict[bytes, bytes] = {}
        self._header_field = b""
        self._header_value = b""
        self._field_name: Optional[str] = None
        self._field_data: Optional[bytearray] = None
        self._file_handle: Optional[IO[bytes]] = None
        self._ended = False

    def parse(self, body: bytes, content_type: Optional[str]) -> UploadRequest:
        """
        Parse a complete multipart body.

        Args:
            body: Raw request body
            content_type: Value of the request's Content-Type header

        Returns:
            UploadRequest built from the first value of each field

        Raises:
            MultipartParseError: if the body is not well-formed multipart form data
        """
        if not content_type:
            raise MultipartParseError("Missing Content-Type header")

        mime_type, options = parse_options_header(content_type)
        if mime_type != b"multipart/form-data":
            raise MultipartParseError(
                f"Expected multipart/form-data body, got {mime_type.decode('latin-1') or 'unknown'}"
            )

        boundary = options.get(b"boundary")
        if not boundary:
            raise MultipartParseError("Missing multipart boundary")

        callbacks = {
            "on_part_begin": self._on_part_begin,
            "on_header_field": self._on_header_field,
            "on_header_value": self._on_header_value,
            "on_header_end": self._on_header_end,
            "on_headers_finished": self._on_headers_finished,
            "on_part_data": self._on_part_data,
            "on_part_end": self._on_part_end,
            "on_end": self._on_end,
        }
        parser = python_multipart.MultipartParser(boundary, callbacks)

        try:
            parser.write(body)
            parser.finalize()
        except FormParserError as e:
            raise MultipartParseError(f"Malformed multipart body: {str(e)}") from e
        finally:
            self._close_file_handle()

        if not self._ended:
            raise MultipartParseError("Malformed multipart body: missing closing boundary")

        return UploadRequest.from_form(self.fields, self.file)

    def cleanup(self):
        """Delete the spooled file, if any. Failures are logged, never raised."""
        self._close_file_handle()
        if self.file is None:
            return

        path = self.file.path
        try:
            os.remove(path)
            self._log(f"Cleaned up temporary file: {path}", "debug")
        except FileNotFoundError:
            pass
        except Exception as e:
            self._log(f"Warning: Failed to clean up temporary file: {e}", "warning")

    def _log(self, message: str, level: str = "info"):
        if not self.logger:
            return
        getattr(self.logger, level)(message)

    def _close_file_handle(self):
        if self._file_handle is not None:
            self._file_handle.close()
            self._file_handle = None

    # Parser callbacks

    def _on_part_begin(self):
        self._headers = {}
        self._header_field = b""
        self._header_value = b""
        self._field_name = None
        self._field_data = None

    def _on_header_field(self, data: bytes, start: int, end: int):
        self._header_field += data[start:end]

    def _on_header_value(self, data: bytes, start: int, end: int):
        self._header_value += data[start:end]

    def _on_header_end(self):
        self._headers[self._header_field.strip().lower()] = self._header_value.strip()
        self._header_field = b""
        self._header_value = b""

    def _on_headers_finished(self):
        disposition = self._headers.get(b"content-disposition")
        if not disposition:
            raise MultipartParseError("Multipart part is missing Content-Disposition")

        _, options = parse_options_header(disposition)
        name = options.get(b"name", b"").decode("utf-8", errors="replace")
        filename = options.get(b"filename")

        if filename is None:
            self._field_name = name
            self._field_data = bytearray()
            return

        # Only the first file part is kept; later ones are dropped unread
        if name != self.file_field or self.file is not None:
            return

        original_name = os.path.basename(filename.decode("utf-8", errors="replace").replace("\\", "/"))
        part_type = self._headers.get(b"content-type")
        mime_type = parse_options_header(part_type)[0].decode("latin-1") if part_type else None

        suffix = os.path.splitext(original_name)[1]
        handle = tempfile.NamedTemporaryFile(
            mode="wb", prefix="upload_", suffix=suffix, dir=self.temp_dir, delete=False
        )
        self._file_handle = handle
        self.file = UploadedFile(
            path=handle.name,
            filename=original_name,
            mime_type=mime_type or None,
        )
        self._log(f"Receiving file '{original_name}' into {handle.name}", "debug")

    def _on_part_data(self, data: bytes, start: int, end: int):
        if self._file_handle is not None:
            self._file_handle.write(data[start:end])
            self.file.size += end - start
        elif self._field_data is not None:
            self._field_data += data[start:end]

    def _on_part_end(self):
        if self._field_data is not None and self._field_name is not None:
            value = self._field_data.decode("utf-8", errors="replace")
            self.fields.setdefault(self._field_name, []).append(value)
        self._field_name = None
        self._field_data = None
        self._close_file_handle()

    def _on_end(self):
        self._ended = True


@contextmanager
def received_upload(body: bytes, content_type: Optional[str], temp_dir: Optional[str] = None,
                    logger: Optional[Any] = None) -> Iterator[UploadRequest]:
    """
    Parse an upload and guarantee its temporary file is removed afterwards.

    The file is released exactly once, on success, on error, and when parsing
    itself fails partway through.
    """
    parser = UploadParser(temp_dir=temp_dir, logger=logger)
    try:
        yield parser.parse(body, content_type)
    finally:
        parser.cleanup()
