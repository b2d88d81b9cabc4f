from __future__ import annotations

"""PDF upload text extraction backed by PyMuPDF."""

import logging
import re

logger = logging.getLogger(__name__)

_SOFT_HYPHEN_BREAK = re.compile(r"(\w)-\n(\w)")
_RUNS_OF_WHITESPACE = re.compile(r"\s+")


class PDFLoaderError(RuntimeError):
    """The upload is not a readable PDF."""


def clean_page_text(text: str) -> str:
    """Rejoin words hyphenated across lines and flatten whitespace."""
    joined = _SOFT_HYPHEN_BREAK.sub(r"\1\2", text.replace("\r\n", "\n"))
    return _RUNS_OF_WHITESPACE.sub(" ", joined).strip()


def extract_pdf_text(data: bytes) -> str:
    """Return the text of every non-blank page, one page per line."""
    try:
        import fitz
    except ImportError as exc:
        raise PDFLoaderError("install the 'pdf' extra (PyMuPDF) to read PDF uploads") from exc

    try:
        document = fitz.open(stream=data, filetype="pdf")
    except Exception as exc:
        raise PDFLoaderError(f"Unable to read PDF: {exc}") from exc
    with document:
        if document.needs_pass:
            raise PDFLoaderError("PDF is password protected")
        pages = [clean_page_text(page.get_text() or "") for page in document]
    text = "\n".join(page for page in pages if page)
    logger.info(
        "pdf_text_extracted",
        extra={"pages": len(pages), "text_pages": sum(1 for page in pages if page)},
    )
    return text
