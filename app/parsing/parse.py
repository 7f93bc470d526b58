from __future__ import annotations

import logging
from io import BytesIO

from docx import Document
from pypdf import PdfReader

logger = logging.getLogger(__name__)

PDF_MIME = "application/pdf"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


def _parse_txt(data: bytes) -> tuple[str, list[str]]:
    return data.decode("utf-8", errors="replace"), []


def _parse_pdf(data: bytes) -> tuple[str, list[str]]:
    warnings: list[str] = []
    try:
        reader = PdfReader(BytesIO(data))
        text_parts: list[str] = []
        for page in reader.pages:
            page_text = (page.extract_text() or "").strip()
            if page_text:
                text_parts.append(page_text)
        if not text_parts:
            warnings.append("No extractable text found in PDF.")
        return "\n".join(text_parts), warnings
    except Exception as exc:
        warnings.append(f"PDF parsing failed: {exc}")
        return "", warnings


def _parse_docx(data: bytes) -> tuple[str, list[str]]:
    warnings: list[str] = []
    try:
        document = Document(BytesIO(data))
        paragraphs = [p.text.strip() for p in document.paragraphs if p.text and p.text.strip()]
        if not paragraphs:
            warnings.append("No extractable text found in DOCX.")
        return "\n".join(paragraphs), warnings
    except Exception as exc:
        warnings.append(f"DOCX parsing failed: {exc}")
        return "", warnings


def extract_text(data: bytes, mime_type: str) -> str:
    """Best-effort plain text of a document; unreadable documents yield an empty string."""
    mime = (mime_type or "").split(";")[0].strip().lower()
    if mime == PDF_MIME:
        text, warnings = _parse_pdf(data)
    elif mime == DOCX_MIME:
        text, warnings = _parse_docx(data)
    else:
        text, warnings = _parse_txt(data)

    for warning in warnings:
        logger.warning("text_extraction_warning mime=%s: %s", mime or "unknown", warning)
    return text
