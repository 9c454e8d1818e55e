"""Format adapters used by the document loader."""

import logging

from .base import DecodedText, TextAdapter

logger = logging.getLogger(__name__)

try:
    from .pdf_adapter import PDFAdapter
except ImportError:
    PDFAdapter = None
    logger.warning("PDF support unavailable: install 'pymupdf'")

try:
    from .docx_adapter import DOCXAdapter
except ImportError:
    DOCXAdapter = None
    logger.warning("DOCX support unavailable: install 'python-docx'")

try:
    from .txt_adapter import TXTAdapter
except ImportError:
    TXTAdapter = None
    logger.warning("TXT support unavailable: install 'charset-normalizer'")


def build_default_adapters(
    *,
    min_pdf_text_chars: int = 50,
    max_ocr_pages: int = 20,
    ocr_budget_seconds: float | None = None,
) -> dict[str, TextAdapter]:
    """Return the default format adapter map, in dispatch order."""
    adapters: dict[str, TextAdapter] = {}
    if PDFAdapter is not None:
        adapters["pdf"] = PDFAdapter(
            min_text_chars=min_pdf_text_chars,
            max_ocr_pages=max_ocr_pages,
            ocr_budget_seconds=ocr_budget_seconds,
        )
    if DOCXAdapter is not None:
        adapters["docx"] = DOCXAdapter()
    if TXTAdapter is not None:
        adapters["txt"] = TXTAdapter()
    return adapters


__all__ = [
    "DecodedText",
    "TextAdapter",
    "PDFAdapter",
    "DOCXAdapter",
    "TXTAdapter",
    "build_default_adapters",
]
