"""Resolve document references to decoded ``SourceDocument`` instances."""

from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor
import logging

from cnpie.extraction.adapters import build_default_adapters
from cnpie.extraction.adapters.base import TextAdapter
from cnpie.extraction.config import (
    DEFAULT_MAX_DOCUMENT_BYTES,
    DEFAULT_MIN_MEANINGFUL_CHARS,
    DEFAULT_STORE_TIMEOUT_SECONDS,
)
from cnpie.extraction.errors import DocumentError, ErrorKind
from cnpie.extraction.models import DocumentReference, SourceDocument
from cnpie.extraction.normalization import meaningful_length
from cnpie.extraction.store import DocumentStore

logger = logging.getLogger(__name__)

_LEGACY_SUFFIXES = (".doc", ".xls", ".ppt")


class DocumentLoader:
    """Read a reference from the store, enforce limits, and decode it to text."""

    def __init__(
        self,
        store: DocumentStore,
        *,
        adapters: dict[str, TextAdapter] | None = None,
        max_bytes: int = DEFAULT_MAX_DOCUMENT_BYTES,
        min_meaningful_chars: int = DEFAULT_MIN_MEANINGFUL_CHARS,
        timeout_seconds: float = DEFAULT_STORE_TIMEOUT_SECONDS,
        sniff_bytes: int = 4096,
        executor: ThreadPoolExecutor | None = None,
    ) -> None:
        if max_bytes < 1:
            raise ValueError("max_bytes must be >= 1")
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")

        self._store = store
        self._adapter_map: dict[str, TextAdapter] = dict(adapters) if adapters is not None else build_default_adapters()
        self._max_bytes = max_bytes
        self._min_meaningful_chars = min_meaningful_chars
        self._timeout_seconds = timeout_seconds
        self._sniff_bytes = sniff_bytes
        # Own pool so a stuck read never holds up the loop's default executor at shutdown.
        self._executor = executor or ThreadPoolExecutor(max_workers=4, thread_name_prefix="cnpie-load")

    @property
    def adapter_map(self) -> dict[str, TextAdapter]:
        return dict(self._adapter_map)

    def register_adapter(self, name: str, adapter: TextAdapter) -> None:
        if not name:
            raise ValueError("Adapter name cannot be empty")
        self._adapter_map[name] = adapter

    def load(self, reference: DocumentReference) -> SourceDocument:
        """Blocking load: store read, size check, format dispatch, decode."""

        raw = self._store.read(reference.reference)
        if len(raw) > self._max_bytes:
            raise DocumentError(
                ErrorKind.TOO_LARGE,
                f"{reference.label} is {len(raw)} bytes, limit is {self._max_bytes}",
            )

        adapter = self._select_adapter(reference, raw[: self._sniff_bytes])
        decoded = adapter.decode(raw)

        if meaningful_length(decoded.text) < self._min_meaningful_chars:
            raise DocumentError(
                ErrorKind.UNREADABLE,
                f"{reference.label} has too little text ({meaningful_length(decoded.text)} chars)",
            )

        logger.info(
            "Loaded document label=%s format=%s size=%d bytes text=%d chars ocr=%s",
            reference.label,
            decoded.format_name,
            len(raw),
            len(decoded.text),
            decoded.used_ocr,
        )
        return SourceDocument(
            label=reference.label,
            content=decoded.text,
            byte_size=len(raw),
            format_name=decoded.format_name,
            page_count=decoded.page_count,
        )

    async def load_async(self, reference: DocumentReference) -> SourceDocument:
        """Run ``load`` off the event loop, bounded by the store timeout."""

        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(self._executor, self.load, reference),
                timeout=self._timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise DocumentError(
                ErrorKind.TIMEOUT,
                f"Loading {reference.label} exceeded {self._timeout_seconds}s",
            ) from exc

    def close(self) -> None:
        """Release the load threads without waiting for reads still in flight."""
        self._executor.shutdown(wait=False, cancel_futures=True)

    def _select_adapter(self, reference: DocumentReference, sniffed: bytes) -> TextAdapter:
        for name in (reference.label, reference.reference):
            if name.lower().endswith(_LEGACY_SUFFIXES):
                raise DocumentError(ErrorKind.UNSUPPORTED_FORMAT, f"Legacy Office format not supported: {name}")

        # Declared extension wins; magic bytes only decide for unnamed payloads.
        for name in (reference.label, reference.reference):
            for adapter in self._adapter_map.values():
                if adapter.supports(name):
                    return adapter

        for adapter in self._adapter_map.values():
            if adapter.supports(reference.label, sniffed):
                return adapter

        raise DocumentError(ErrorKind.UNSUPPORTED_FORMAT, f"No decoder for document: {reference.label}")
