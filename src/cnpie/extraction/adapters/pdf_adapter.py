"""PDF adapter: embedded text objects first, OCR when they are too sparse."""

from __future__ import annotations

import logging
import time

import pymupdf

from cnpie.extraction.adapters.base import DecodedText
from cnpie.extraction.config import DEFAULT_MAX_OCR_PAGES
from cnpie.extraction.errors import DocumentError, ErrorKind
from cnpie.extraction.normalization import meaningful_length
from cnpie.extraction.ocr import OcrStatus, recognize_pages

logger = logging.getLogger(__name__)

_PDF_MAGIC = b"%PDF-"
DEFAULT_MIN_TEXT_CHARS = 50


class PDFAdapter:
    """Extract page text in reading order, falling back to OCR for scans."""

    format_name = "pdf"

    def __init__(
        self,
        *,
        min_text_chars: int = DEFAULT_MIN_TEXT_CHARS,
        max_ocr_pages: int = DEFAULT_MAX_OCR_PAGES,
        ocr_budget_seconds: float | None = None,
    ) -> None:
        if min_text_chars < 0:
            raise ValueError("min_text_chars cannot be negative")
        if max_ocr_pages < 1:
            raise ValueError("max_ocr_pages must be >= 1")
        if ocr_budget_seconds is not None and ocr_budget_seconds <= 0:
            raise ValueError("ocr_budget_seconds must be positive")
        self._min_text_chars = min_text_chars
        self._max_ocr_pages = max_ocr_pages
        self._ocr_budget_seconds = ocr_budget_seconds

    def supports(self, name: str, sniffed_bytes: bytes | None = None) -> bool:
        if name.lower().endswith(".pdf"):
            return True
        if sniffed_bytes is None:
            return False
        return sniffed_bytes.startswith(_PDF_MAGIC)

    def decode(self, raw: bytes) -> DecodedText:
        # The OCR budget counts from the start of decoding.
        deadline = None if self._ocr_budget_seconds is None else time.monotonic() + self._ocr_budget_seconds
        try:
            doc = pymupdf.open(stream=raw, filetype="pdf")
        except Exception as exc:
            raise DocumentError(ErrorKind.UNREADABLE, f"PDF could not be opened: {exc}") from exc

        with doc:
            page_count = doc.page_count
            embedded = "\n\n".join(page.get_text("text").strip() for page in doc).strip()
            if meaningful_length(embedded) >= self._min_text_chars:
                return DecodedText(text=embedded, format_name=self.format_name, page_count=page_count)

            logger.info(
                "PDF embedded text below threshold (%d < %d chars), trying OCR",
                meaningful_length(embedded),
                self._min_text_chars,
            )
            result = recognize_pages(doc, max_pages=self._max_ocr_pages, deadline=deadline)

        if result.status == OcrStatus.FAILED:
            logger.warning("OCR failed for PDF: %s", result.detail)

        if result.status == OcrStatus.SUCCESS and meaningful_length(result.text) >= self._min_text_chars:
            return DecodedText(text=result.text, format_name=self.format_name, page_count=page_count, used_ocr=True)

        raise DocumentError(
            ErrorKind.UNREADABLE,
            f"PDF has no extractable text (embedded={meaningful_length(embedded)} chars, ocr={result.status.value})",
        )
