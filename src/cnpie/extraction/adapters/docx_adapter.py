"""DOCX adapter reading paragraphs and table cells in document order."""

from __future__ import annotations

import io

from docx import Document
from docx.table import Table
from docx.text.paragraph import Paragraph

from cnpie.extraction.adapters.base import DecodedText
from cnpie.extraction.errors import DocumentError, ErrorKind

_ZIP_MAGIC = b"PK\x03\x04"


class DOCXAdapter:
    """Extract raw text from Word 2007+ documents."""

    format_name = "docx"

    def supports(self, name: str, sniffed_bytes: bytes | None = None) -> bool:
        if name.lower().endswith(".docx"):
            return True
        # Unnamed uploads are claimed by their zip header; other zips fail in decode.
        if sniffed_bytes is None or "." in name.rsplit("/", 1)[-1]:
            return False
        return sniffed_bytes.startswith(_ZIP_MAGIC)

    def decode(self, raw: bytes) -> DecodedText:
        if not raw.startswith(_ZIP_MAGIC):
            raise DocumentError(ErrorKind.UNREADABLE, "DOCX payload is not a zip container")
        try:
            document = Document(io.BytesIO(raw))
        except Exception as exc:
            raise DocumentError(ErrorKind.UNREADABLE, f"DOCX could not be opened: {exc}") from exc

        parts: list[str] = []
        for block in document.iter_inner_content():
            if isinstance(block, Paragraph):
                if block.text.strip():
                    parts.append(block.text)
            elif isinstance(block, Table):
                for row in block.rows:
                    cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
                    if cells:
                        parts.append(" | ".join(cells))

        return DecodedText(text="\n".join(parts), format_name=self.format_name)
