"""Caller-side entry point: envelope parsing, store wiring and capped retries."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Mapping, Sequence
from urllib.parse import unquote

from cnpie.extraction.adapters import build_default_adapters
from cnpie.extraction.config import ExtractionSettings
from cnpie.extraction.errors import TRANSPORT_ERROR_KINDS, ErrorKind, ExtractionError
from cnpie.extraction.invoker import ModelInvoker
from cnpie.extraction.loader import DocumentLoader
from cnpie.extraction.models import DocumentReference, ExtractionResult, FieldKind, FieldSpec
from cnpie.extraction.pipeline import ExtractionPipeline
from cnpie.extraction.result import failure_envelope, finalize, success_envelope
from cnpie.extraction.store import DocumentStore, LocalDocumentStore, SupabaseStorageStore

logger = logging.getLogger(__name__)

TRANSPORT_RETRY_NOTICE = "La consulta a la IA falló de forma temporal y se repitió una vez."
STRICT_RETRY_NOTICE = "La respuesta de la IA no tuvo el formato esperado y se solicitó de nuevo con instrucciones más estrictas."


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """At most one automatic re-run per extraction, always reported in warnings."""

    transport_retries: int = 0
    backoff_seconds: float = 1.0
    strict_reinvoke_on_shape_mismatch: bool = False

    def __post_init__(self) -> None:
        if self.transport_retries not in (0, 1):
            raise ValueError("transport_retries must be 0 or 1")
        if self.backoff_seconds < 0:
            raise ValueError("backoff_seconds cannot be negative")


@dataclass(frozen=True, slots=True)
class ExtractionInput:
    documents: tuple[DocumentReference, ...]
    fields: tuple[FieldSpec, ...]
    context: Mapping[str, Any] | None = None


def _label_from_reference(reference: str) -> str:
    tail = reference.split("?", 1)[0].rstrip("/").rsplit("/", 1)[-1]
    return unquote(tail) or reference


def _parse_field(item: Any) -> FieldSpec:
    if not isinstance(item, Mapping):
        raise ValueError("each field must be an object")

    name = str(item.get("name") or item.get("fieldName") or "").strip()
    kind_raw = str(item.get("kind") or item.get("type") or "").strip()
    if not name:
        raise ValueError("field is missing 'name'")
    if not kind_raw:
        raise ValueError(f"field {name!r} is missing 'kind'")

    max_length = item.get("maxLength")
    if max_length is not None and (isinstance(max_length, bool) or not isinstance(max_length, int)):
        raise ValueError(f"field {name!r} has non-integer maxLength")

    return FieldSpec(
        name=name,
        kind=FieldKind.parse(kind_raw),
        description=str(item.get("description") or "").strip(),
        max_length=max_length,
        label=str(item["label"]).strip() if item.get("label") else None,
    )


def _parse_document(item: Any) -> DocumentReference:
    if not isinstance(item, Mapping):
        raise ValueError("each document must be an object")
    reference = str(item.get("reference") or item.get("url") or "").strip()
    if not reference:
        raise ValueError("document is missing 'reference'")
    label = str(item.get("label") or item.get("nombre") or "").strip() or _label_from_reference(reference)
    return DocumentReference(reference=reference, label=label)


def parse_input_envelope(payload: Mapping[str, Any]) -> ExtractionInput:
    """Validate the caller envelope ``{documents, fields, context?}``.

    Raises ``ValueError`` for contract violations.  An empty ``documents``
    list is allowed here; the pipeline rejects it with a typed error.
    """
    documents_raw = payload.get("documents", [])
    fields_raw = payload.get("fields")
    context = payload.get("context")

    if not isinstance(documents_raw, list):
        raise ValueError("'documents' must be a list")
    if not isinstance(fields_raw, list) or not fields_raw:
        raise ValueError("'fields' must be a non-empty list")
    if context is not None and not isinstance(context, Mapping):
        raise ValueError("'context' must be an object when provided")

    fields = tuple(_parse_field(item) for item in fields_raw)
    names = [spec.name for spec in fields]
    if len(set(names)) != len(names):
        raise ValueError("field names must be unique")

    return ExtractionInput(
        documents=tuple(_parse_document(item) for item in documents_raw),
        fields=fields,
        context=context,
    )


def build_store(settings: ExtractionSettings, *, store_root: str | Path | None = None) -> DocumentStore:
    if store_root is None and settings.supabase_url and settings.supabase_service_key:
        return SupabaseStorageStore(
            settings.supabase_url,
            settings.supabase_service_key,
            timeout_seconds=settings.store_timeout_seconds,
        )
    return LocalDocumentStore(store_root or ".")


class ExtractionService:
    """Build a fresh pipeline per attempt and apply the retry policy."""

    def __init__(
        self,
        settings: ExtractionSettings,
        *,
        loader: DocumentLoader,
        invoker: ModelInvoker,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._settings = settings
        self._loader = loader
        self._invoker = invoker
        self._retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings: ExtractionSettings,
        *,
        store: DocumentStore | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> "ExtractionService":
        loader = DocumentLoader(
            store or build_store(settings),
            adapters=build_default_adapters(
                min_pdf_text_chars=settings.min_pdf_text_chars,
                max_ocr_pages=settings.max_ocr_pages,
                ocr_budget_seconds=settings.store_timeout_seconds,
            ),
            max_bytes=settings.max_document_bytes,
            min_meaningful_chars=settings.min_meaningful_chars,
            timeout_seconds=settings.store_timeout_seconds,
        )
        return cls(settings, loader=loader, invoker=ModelInvoker(settings), retry_policy=retry_policy)

    def close(self) -> None:
        self._loader.close()

    def new_pipeline(self, *, strict: bool = False) -> ExtractionPipeline:
        return ExtractionPipeline(
            self._loader,
            self._invoker,
            max_document_chars=self._settings.max_document_chars,
            strict=strict,
        )

    async def extract(
        self,
        documents: Sequence[DocumentReference],
        fields: Sequence[FieldSpec],
        context: Mapping[str, Any] | None = None,
    ) -> ExtractionResult:
        policy = self._retry_policy
        try:
            return await self.new_pipeline().run(documents, fields, context)
        except ExtractionError as exc:
            if exc.kind in TRANSPORT_ERROR_KINDS and policy.transport_retries:
                logger.warning("Retrying extraction once after %s (backoff %.1fs)", exc.kind.value, policy.backoff_seconds)
                await self._sleep(policy.backoff_seconds)
                notice, strict = TRANSPORT_RETRY_NOTICE, False
            elif exc.kind == ErrorKind.SHAPE_MISMATCH and policy.strict_reinvoke_on_shape_mismatch:
                logger.warning("Re-invoking extraction once with strict instructions")
                notice, strict = STRICT_RETRY_NOTICE, True
            else:
                raise

        result = await self.new_pipeline(strict=strict).run(documents, fields, context)
        return finalize(result, upstream_warnings=[notice])

    async def run_envelope(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        """Envelope in, envelope out; contract violations still raise ``ValueError``."""
        request = parse_input_envelope(payload)
        try:
            result = await self.extract(request.documents, request.fields, request.context)
        except ExtractionError as exc:
            return failure_envelope(exc)
        return success_envelope(result)
