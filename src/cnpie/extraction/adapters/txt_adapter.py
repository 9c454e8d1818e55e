"""Plain-text adapter with encoding detection."""

from __future__ import annotations

from charset_normalizer import from_bytes

from cnpie.extraction.adapters.base import DecodedText
from cnpie.extraction.errors import DocumentError, ErrorKind

_TEXT_SUFFIXES = {".txt", ".md", ".csv", ".json", ".html", ".htm"}
_BINARY_PREFIXES = (b"%PDF-", b"PK\x03\x04", b"\xd0\xcf\x11\xe0", b"\x89PNG", b"\xff\xd8\xff", b"GIF8")
# Exports from Word and older school systems are often cp1252.
_FALLBACK_ENCODINGS = ("utf-8", "cp1252")


def _suffix(name: str) -> str:
    dot = name.rfind(".")
    return name[dot:].lower() if dot != -1 else ""


class TXTAdapter:
    """Decode text-like uploads (notes, exports, CSV) into a string."""

    format_name = "txt"

    def supports(self, name: str, sniffed_bytes: bytes | None = None) -> bool:
        suffix = _suffix(name)
        if suffix:
            return suffix in _TEXT_SUFFIXES
        if sniffed_bytes is None:
            return False
        head = sniffed_bytes.lstrip()
        return not head.startswith(_BINARY_PREFIXES) and b"\x00" not in head

    def decode(self, raw: bytes) -> DecodedText:
        if not raw:
            return DecodedText(text="", format_name=self.format_name)

        match = from_bytes(raw).best()
        if match is not None:
            return DecodedText(text=str(match), format_name=self.format_name)

        for encoding in _FALLBACK_ENCODINGS:
            try:
                return DecodedText(text=raw.decode(encoding), format_name=self.format_name)
            except UnicodeDecodeError:
                continue
        raise DocumentError(ErrorKind.UNREADABLE, "Could not detect text encoding")
