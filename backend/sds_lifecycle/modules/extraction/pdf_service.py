"""PDF text extraction for safety data sheets (PyMuPDF)."""

from __future__ import annotations

import re

import fitz  # PyMuPDF
import structlog
from pydantic import BaseModel

from sds_lifecycle.core.exceptions import PermanentExtractionError

logger = structlog.get_logger()


class ParsedDocument(BaseModel):
    """Text layer of one SDS PDF."""

    text: str
    page_count: int
    looks_like_sds: bool
    metadata: dict = {}


_SDS_MARKERS = [
    r"safety\s+data\s+sheet",
    r"material\s+safety\s+data",
    r"sikkerhetsdatablad",
    r"sicherheitsdatenblatt",
    r"fiche\s+de\s+donn[ée]es\s+de\s+s[ée]curit[ée]",
    r"SECTION\s+1[\s:.]+IDENTIFICATION",
    r"SECTION\s+2[\s:.]+HAZARDS?\s+IDENTIFICATION",
]


def looks_like_sds(text: str) -> bool:
    """Scan the first ~3000 chars for SDS section headings or titles."""
    sample = text[:3000]
    return any(re.search(p, sample, re.IGNORECASE) for p in _SDS_MARKERS)


def parse_pdf(pdf_bytes: bytes, max_file_size_mb: int = 20) -> ParsedDocument:
    """Extract the text layer page by page.

    Raises PermanentExtractionError for anything that will never yield text:
    oversize files, bytes PyMuPDF cannot open, and scanned PDFs without a
    text layer.
    """
    if not pdf_bytes:
        raise PermanentExtractionError("Empty document")
    if len(pdf_bytes) > max_file_size_mb * 1024 * 1024:
        raise PermanentExtractionError(
            f"Document is {len(pdf_bytes) // (1024 * 1024)} MB, limit is {max_file_size_mb} MB"
        )

    try:
        doc = fitz.open(stream=pdf_bytes, filetype="pdf")
    except (fitz.FileDataError, RuntimeError, ValueError) as exc:
        raise PermanentExtractionError(f"Unreadable PDF: {exc}") from exc

    try:
        parts: list[str] = []
        for page_idx in range(len(doc)):
            text = doc[page_idx].get_text("text") or ""
            if text.strip():
                parts.append(f"## Page {page_idx + 1}\n\n{text.strip()}")
        page_count = len(doc)
        pdf_meta = doc.metadata or {}
    finally:
        doc.close()

    full_text = "\n\n".join(parts)
    if not full_text.strip():
        raise PermanentExtractionError("PDF has no text layer")

    metadata: dict = {}
    if pdf_meta.get("title"):
        metadata["pdf_title"] = pdf_meta["title"]
    if pdf_meta.get("modDate"):
        metadata["modification_date"] = pdf_meta["modDate"]

    is_sds = looks_like_sds(full_text)
    logger.info("pdf_parsed", pages=page_count, chars=len(full_text), looks_like_sds=is_sds)

    return ParsedDocument(
        text=full_text,
        page_count=page_count,
        looks_like_sds=is_sds,
        metadata=metadata,
    )
