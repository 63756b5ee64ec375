"""Document reader: one vision call per uploaded document.

Reads never raise. A failed call or an unparsable reply becomes a sentinel
extraction with ``docType="error"`` so one bad document cannot block a batch.
"""

from __future__ import annotations

import asyncio
import logging
import time

from visa_audit.events import DOCUMENT_AGENT, DocumentReadEvent, Emit, OrchestratorEvent
from visa_audit.exceptions import JSONParseError, LLMClientError
from visa_audit.models import DocumentExtraction, UploadedDocument
from visa_audit.prompts import get_prompt
from visa_audit.providers import ImageInput, LLMClient, extract_json_object

log = logging.getLogger(__name__)


def extraction_from_reply(doc_id: str, reply: str) -> DocumentExtraction:
    """Build an extraction from a raw model reply, degrading to the error sentinel."""
    try:
        parsed = extract_json_object(reply)
    except JSONParseError as e:
        return DocumentExtraction.error(doc_id, f"Could not parse document read: {e}")

    structured = parsed.get("structuredData")
    return DocumentExtraction(
        id=doc_id,
        doc_type=str(parsed.get("docType") or "unknown"),
        language=str(parsed.get("language") or "Unknown"),
        extracted_text=str(parsed.get("extractedText") or ""),
        structured_data=structured if isinstance(structured, dict) else {},
    )


class DocumentReader:
    """Extracts verbatim text and key fields from document images."""

    def __init__(self, client: LLMClient, *, max_tokens: int = 8000) -> None:
        self._client = client
        self._max_tokens = max_tokens

    async def read(self, document: UploadedDocument) -> DocumentExtraction:
        """Read a single document. Never raises."""
        try:
            reply = await self._client.complete(
                get_prompt("visa", "document", "READ_PROMPT"),
                images=[ImageInput(document.base64, document.mime_type)],
                model=self._client.vision_model,
                max_tokens=self._max_tokens,
            )
        except LLMClientError as e:
            log.warning("Document read failed for %s: %s", document.filename, e)
            return DocumentExtraction.error(document.id, str(e))

        extraction = extraction_from_reply(document.id, reply)
        if extraction.is_error:
            log.warning("Document read for %s returned unparsable JSON", document.filename)
        return extraction

    async def read_and_report(self, document: UploadedDocument, emit: Emit) -> DocumentExtraction:
        """Read one document and emit its ``document_read`` event."""
        started = time.monotonic()
        extraction = await self.read(document)
        emit(
            DocumentReadEvent(
                doc=document.filename,
                language="Error" if extraction.is_error else extraction.language,
                doc_type=extraction.doc_type,
                duration_ms=int((time.monotonic() - started) * 1000),
            )
        )
        return extraction

    async def read_batch(
        self, documents: list[UploadedDocument], emit: Emit
    ) -> list[DocumentExtraction]:
        """Read all documents in parallel. Results keep upload order."""
        started = time.monotonic()
        emit(
            OrchestratorEvent(
                action="agent_start",
                agent=DOCUMENT_AGENT,
                message=f"Reading {len(documents)} documents...",
            )
        )
        extractions = await asyncio.gather(*(self.read_and_report(d, emit) for d in documents))
        duration_ms = int((time.monotonic() - started) * 1000)
        emit(
            OrchestratorEvent(
                action="agent_complete",
                agent=DOCUMENT_AGENT,
                message=f"Read {len(documents)} documents in {duration_ms / 1000:.1f}s",
                duration_ms=duration_ms,
            )
        )
        return list(extractions)
