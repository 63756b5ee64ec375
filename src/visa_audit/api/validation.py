"""Upload checks that run before any model call."""

from __future__ import annotations

import base64
import binascii

from visa_audit.core.config import UploadConfig
from visa_audit.exceptions import DocumentValidationError
from visa_audit.models import UploadedDocument


def decoded_size(payload: str) -> int:
    """Byte size of a base64 payload (a ``data:`` URL prefix is allowed).

    Raises:
        DocumentValidationError: The payload is empty or not valid base64.
    """
    if payload.startswith("data:") and "," in payload:
        payload = payload.split(",", 1)[1]
    if not payload:
        raise DocumentValidationError("File data is required")
    try:
        return len(base64.b64decode(payload, validate=True))
    except (binascii.Error, ValueError) as e:
        raise DocumentValidationError(f"Document is not valid base64: {e}") from e


def validate_document(document: UploadedDocument, config: UploadConfig) -> None:
    """Reject unsupported types (415) and oversized payloads (413).

    Raises:
        DocumentValidationError: With the HTTP status to answer.
    """
    if not document.filename:
        raise DocumentValidationError("Filename is required")
    if document.mime_type not in config.allowed_mime_types:
        raise DocumentValidationError(
            f"Unsupported document type {document.mime_type!r}; "
            f"allowed: {', '.join(config.allowed_mime_types)}",
            status_code=415,
        )
    size = decoded_size(document.base64)
    if size > config.max_bytes:
        raise DocumentValidationError(
            f"{document.filename} is {size} bytes; the limit is {config.max_bytes} bytes",
            status_code=413,
        )
