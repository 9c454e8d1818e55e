"""Text recognition for scanned PDFs that carry too little embedded text.

pytesseract and Pillow load lazily inside ``_read_page``.  A missing Tesseract
binary is reported once per process; after that every call returns
``OcrStatus.UNAVAILABLE`` straight away.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import io
import logging
import time

import pymupdf

logger = logging.getLogger(__name__)

_LANGUAGES = "spa+eng"
_DPI = 300
_TESSERACT_CONFIG = "--oem 3 --psm 6"
_MISSING_BINARY_HINTS = ("tesseract is not installed", "tesseract is not in your path")

# None until the first attempt, False once the binary is known to be absent.
_binary_present: bool | None = None


class OcrStatus(str, Enum):
    SUCCESS = "success"
    EMPTY = "empty"
    FAILED = "failed"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True, slots=True)
class OcrOutcome:
    status: OcrStatus
    text: str = ""
    pages_read: int = 0
    detail: str | None = None


def _binary_missing(exc: Exception) -> bool:
    # pytesseract is not imported here, so match on the class name.
    if type(exc).__name__ == "TesseractNotFoundError":
        return True
    lowered = str(exc).lower()
    return any(hint in lowered for hint in _MISSING_BINARY_HINTS)


def _read_page(page: pymupdf.Page) -> str:
    import pytesseract
    from PIL import Image

    zoom = _DPI / 72
    pixmap = page.get_pixmap(matrix=pymupdf.Matrix(zoom, zoom), colorspace=pymupdf.csRGB)
    with Image.open(io.BytesIO(pixmap.tobytes("png"))) as image:
        return pytesseract.image_to_string(image, lang=_LANGUAGES, config=_TESSERACT_CONFIG)


def recognize_pages(
    doc: pymupdf.Document,
    *,
    max_pages: int | None = None,
    deadline: float | None = None,
) -> OcrOutcome:
    """Run Tesseract over the pages of *doc* and join the non-empty results.

    At most *max_pages* pages are read.  *deadline* is a ``time.monotonic()``
    value; once it passes no further page is started and the outcome is
    ``FAILED``.
    """
    global _binary_present

    if _binary_present is False:
        return OcrOutcome(OcrStatus.UNAVAILABLE)

    page_total = doc.page_count if max_pages is None else min(doc.page_count, max_pages)
    if page_total < doc.page_count:
        logger.info("OCR limited to the first %d of %d pages", page_total, doc.page_count)

    chunks: list[str] = []
    for index in range(page_total):
        if deadline is not None and time.monotonic() >= deadline:
            logger.warning("OCR time budget exhausted after %d page(s)", len(chunks))
            return OcrOutcome(OcrStatus.FAILED, pages_read=len(chunks), detail="OCR time budget exhausted")
        page = doc[index]
        try:
            chunks.append(_read_page(page).strip())
        except Exception as exc:
            if not _binary_missing(exc):
                return OcrOutcome(OcrStatus.FAILED, pages_read=len(chunks), detail=str(exc))
            _binary_present = False
            logger.warning("Tesseract binary not found; scanned PDFs will be reported as unreadable")
            return OcrOutcome(OcrStatus.UNAVAILABLE)

    _binary_present = True
    text = "\n\n".join(chunk for chunk in chunks if chunk)
    if not text:
        return OcrOutcome(OcrStatus.EMPTY, pages_read=len(chunks), detail="no text recognised")
    return OcrOutcome(OcrStatus.SUCCESS, text=text, pages_read=len(chunks))
