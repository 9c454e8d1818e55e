"""OCR fallback: graceful degradation and the process-wide Tesseract flag."""

from __future__ import annotations

import logging
import time

import pymupdf
import pytest

from cnpie.extraction import ocr


@pytest.fixture(autouse=True)
def _fresh_flag(monkeypatch) -> None:
    monkeypatch.setattr(ocr, "_binary_present", None)


def _blank_document(pages: int = 1) -> pymupdf.Document:
    doc = pymupdf.open()
    for _ in range(pages):
        doc.new_page()
    return doc


class TesseractNotFoundError(Exception):
    pass


def test_binary_missing_by_class_name_or_message() -> None:
    assert ocr._binary_missing(TesseractNotFoundError("anything"))
    assert ocr._binary_missing(Exception("tesseract is not installed or it's not in your PATH"))
    assert not ocr._binary_missing(Exception("some other failure"))


def test_pages_are_joined_in_order(monkeypatch) -> None:
    texts = iter(["Primera página", "  ", "Tercera página"])
    monkeypatch.setattr(ocr, "_read_page", lambda page: next(texts))

    with _blank_document(3) as doc:
        outcome = ocr.recognize_pages(doc)

    assert outcome.status is ocr.OcrStatus.SUCCESS
    assert outcome.text == "Primera página\n\nTercera página"
    assert outcome.pages_read == 3
    assert ocr._binary_present is True


def test_blank_recognition_is_reported_as_empty(monkeypatch) -> None:
    monkeypatch.setattr(ocr, "_read_page", lambda page: "")

    with _blank_document() as doc:
        outcome = ocr.recognize_pages(doc)

    assert outcome.status is ocr.OcrStatus.EMPTY
    assert outcome.text == ""


def test_missing_tesseract_warns_once_then_short_circuits(monkeypatch, caplog: pytest.LogCaptureFixture) -> None:
    calls: list[object] = []

    def _missing(page):
        calls.append(page)
        raise TesseractNotFoundError("tesseract is not installed or it's not in your PATH")

    monkeypatch.setattr(ocr, "_read_page", _missing)

    with caplog.at_level(logging.WARNING, logger="cnpie.extraction.ocr"):
        with _blank_document() as first_doc:
            first = ocr.recognize_pages(first_doc)
        with _blank_document() as second_doc:
            second = ocr.recognize_pages(second_doc)

    assert first.status is ocr.OcrStatus.UNAVAILABLE
    assert second.status is ocr.OcrStatus.UNAVAILABLE
    assert ocr._binary_present is False
    assert len(calls) == 1
    warnings = [record for record in caplog.records if record.levelno == logging.WARNING]
    assert len(warnings) == 1
    assert "Tesseract" in warnings[0].message


def test_unexpected_error_returns_failed_and_keeps_flag(monkeypatch) -> None:
    def _boom(page):
        raise RuntimeError("Unexpected internal error")

    monkeypatch.setattr(ocr, "_read_page", _boom)

    with _blank_document() as doc:
        outcome = ocr.recognize_pages(doc)

    assert outcome.status is ocr.OcrStatus.FAILED
    assert "Unexpected internal error" in (outcome.detail or "")
    assert ocr._binary_present is None


def test_page_cap_limits_recognition(monkeypatch) -> None:
    calls: list[object] = []

    def _read(page):
        calls.append(page)
        return f"Página {len(calls)}"

    monkeypatch.setattr(ocr, "_read_page", _read)

    with _blank_document(5) as doc:
        outcome = ocr.recognize_pages(doc, max_pages=2)

    assert outcome.status is ocr.OcrStatus.SUCCESS
    assert outcome.pages_read == 2
    assert outcome.text == "Página 1\n\nPágina 2"
    assert len(calls) == 2


def test_expired_deadline_stops_before_the_next_page(monkeypatch) -> None:
    calls: list[object] = []

    def _slow_read(page):
        calls.append(page)
        time.sleep(0.05)
        return "texto"

    monkeypatch.setattr(ocr, "_read_page", _slow_read)

    with _blank_document(4) as doc:
        outcome = ocr.recognize_pages(doc, deadline=time.monotonic() + 0.01)

    assert outcome.status is ocr.OcrStatus.FAILED
    assert outcome.detail == "OCR time budget exhausted"
    assert outcome.pages_read == 1
    assert len(calls) == 1
