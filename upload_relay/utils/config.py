"""
Configuration for the upload relay service.

Values are read once from the environment into a RelayConfig; entry points
pass the instance down instead of reading os.environ themselves.
"""

import os
from dataclasses import dataclass, field
from typing import FrozenSet, Optional

from ..core.errors import ConfigurationError
from ..core.models import UploadType

RELAY_MODE_DIRECT = "direct"
RELAY_MODE_EXTRACT = "extract"
RELAY_MODES = (RELAY_MODE_DIRECT, RELAY_MODE_EXTRACT)

DEFAULT_ALLOWED_MIME_TYPES = frozenset({
    "image/jpeg",
    "image/png",
    "image/webp",
    "image/gif",
    "image/heic",
    "application/pdf",
})


@dataclass(frozen=True)
class RelayConfig:
    statement_webhook_url: str
    transaction_webhook_url: str
    relay_mode: str = RELAY_MODE_DIRECT
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o"
    openai_max_tokens: int = 1500
    webhook_timeout: float = 30.0
    extraction_timeout: float = 60.0
    max_upload_bytes: int = 10 * 1024 * 1024  # 10MB
    # Empty set disables the file type check
    allowed_mime_types: FrozenSet[str] = field(default_factory=lambda: DEFAULT_ALLOWED_MIME_TYPES)
    default_currency: str = "MYR"
    pdf_max_pages: int = 3
    pdf_dpi: int = 200
    temp_dir: Optional[str] = None

    def webhook_url_for(self, upload_type: UploadType) -> str:
        if upload_type is UploadType.STATEMENT:
            return self.statement_webhook_url
        return self.transaction_webhook_url

    @classmethod
    def from_env(cls) -> "RelayConfig":
        """
        Build the configuration from environment variables.

        Raises:
            ConfigurationError: if a required variable is missing or a value is invalid
        """
        statement_url = os.getenv("STATEMENT_WEBHOOK_URL")
        if not statement_url:
            raise ConfigurationError("STATEMENT_WEBHOOK_URL environment variable not found.")

        transaction_url = os.getenv("TRANSACTION_WEBHOOK_URL")
        if not transaction_url:
            raise ConfigurationError("TRANSACTION_WEBHOOK_URL environment variable not found.")

        relay_mode = os.getenv("RELAY_MODE", RELAY_MODE_DIRECT).strip().lower()
        if relay_mode not in RELAY_MODES:
            raise ConfigurationError(
                f"RELAY_MODE must be one of {', '.join(RELAY_MODES)}, got '{relay_mode}'."
            )

        allowed = os.getenv("ALLOWED_MIME_TYPES")
        if allowed is None:
            allowed_mime_types = DEFAULT_ALLOWED_MIME_TYPES
        elif allowed.strip() == "*":
            allowed_mime_types = frozenset()
        else:
            allowed_mime_types = frozenset(
                t.strip().lower() for t in allowed.split(",") if t.strip()
            )

        return cls(
            statement_webhook_url=statement_url,
            transaction_webhook_url=transaction_url,
            relay_mode=relay_mode,
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            openai_model=os.getenv("OPENAI_MODEL", "gpt-4o"),
            openai_max_tokens=_int_env("OPENAI_MAX_TOKENS", 1500),
            webhook_timeout=_float_env("WEBHOOK_TIMEOUT_SECONDS", 30.0),
            extraction_timeout=_float_env("EXTRACTION_TIMEOUT_SECONDS", 60.0),
            max_upload_bytes=_int_env("MAX_UPLOAD_BYTES", 10 * 1024 * 1024),
            allowed_mime_types=allowed_mime_types,
            default_currency=os.getenv("DEFAULT_CURRENCY", "MYR"),
            pdf_max_pages=_int_env("PDF_MAX_PAGES", 3),
            pdf_dpi=_int_env("PDF_DPI", 200),
            temp_dir=os.getenv("UPLOAD_TMP_DIR") or None,
        )


def _int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got '{value}'.")


def _float_env(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got '{value}'.")
