"""
Request-scoped entities for an upload relay.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional


class UploadType(Enum):
    """
    Declared kind of upload.

    Only the exact value "statement" selects the statement variant. Every
    other value, including a missing or unrecognized one, falls back to
    TRANSACTION. Revisit this fallback before adding new variants.
    """

    STATEMENT = "statement"
    TRANSACTION = "transaction"

    @classmethod
    def from_field(cls, value: Optional[str]) -> "UploadType":
        if value == cls.STATEMENT.value:
            return cls.STATEMENT
        return cls.TRANSACTION


@dataclass
class UploadedFile:
    """A file received with the request, spooled to local storage."""

    path: str
    filename: str
    mime_type: Optional[str] = None
    size: int = 0

    def read_bytes(self) -> bytes:
        with open(self.path, "rb") as f:
            return f.read()


def first_value(fields: Dict[str, List[str]], name: str) -> Optional[str]:
    """Return the first value submitted for a form field, ignoring repeats."""
    values = fields.get(name)
    if not values:
        return None
    return values[0]


@dataclass
class UploadRequest:
    upload_type: UploadType
    raw_upload_type: Optional[str]
    client_name: Optional[str]
    payment_by: Optional[str]
    file: Optional[UploadedFile]

    @classmethod
    def from_form(cls, fields: Dict[str, List[str]], file: Optional[UploadedFile]) -> "UploadRequest":
        raw_upload_type = first_value(fields, "uploadType")
        return cls(
            upload_type=UploadType.from_field(raw_upload_type),
            raw_upload_type=raw_upload_type,
            client_name=first_value(fields, "clientName"),
            payment_by=first_value(fields, "paymentBy"),
            file=file,
        )

    @property
    def has_file(self) -> bool:
        return self.file is not None and self.file.size > 0
