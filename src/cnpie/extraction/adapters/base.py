"""Shared adapter contract for per-format text decoders."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(slots=True)
class DecodedText:
    """Plain text recovered from a document payload."""

    text: str
    format_name: str
    page_count: int | None = None
    used_ocr: bool = False


@runtime_checkable
class TextAdapter(Protocol):
    """Protocol that every format adapter must implement."""

    format_name: str

    def supports(self, name: str, sniffed_bytes: bytes | None = None) -> bool:
        """Return True when this adapter can decode the named payload."""

    def decode(self, raw: bytes) -> DecodedText:
        """Decode raw bytes into text, raising ``DocumentError`` when unreadable."""
