"""Single-run extraction pipeline: load, assemble, invoke, validate, finalize."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Mapping, Sequence

from cnpie.extraction.config import DEFAULT_MAX_DOCUMENT_CHARS
from cnpie.extraction.errors import DocumentError, ErrorKind, ExtractionError, user_message
from cnpie.extraction.invoker import ModelInvoker
from cnpie.extraction.loader import DocumentLoader
from cnpie.extraction.models import DocumentReference, ExtractionResult, FieldSpec, SourceDocument
from cnpie.extraction.prompts import assemble
from cnpie.extraction.result import build_analysis, finalize
from cnpie.extraction.validator import validate

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    ASSEMBLING = "assembling"
    INVOKING = "invoking"
    VALIDATING = "validating"
    DONE = "done"
    FAILED = "failed"


def skipped_document_warning(label: str, kind: ErrorKind) -> str:
    return f"Se omitió el documento '{label}': {user_message(kind)}"


class ExtractionPipeline:
    """One pipeline instance serves exactly one run and is never resumed."""

    def __init__(
        self,
        loader: DocumentLoader,
        invoker: ModelInvoker,
        *,
        max_document_chars: int = DEFAULT_MAX_DOCUMENT_CHARS,
        strict: bool = False,
    ) -> None:
        self._loader = loader
        self._invoker = invoker
        self._max_document_chars = max_document_chars
        self._strict = strict
        self._state = PipelineState.IDLE
        self._error_kind: ErrorKind | None = None
        self._history: list[PipelineState] = [PipelineState.IDLE]

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def error_kind(self) -> ErrorKind | None:
        return self._error_kind

    @property
    def history(self) -> tuple[PipelineState, ...]:
        return tuple(self._history)

    def _enter(self, state: PipelineState) -> None:
        self._state = state
        self._history.append(state)

    def _fail(self, kind: ErrorKind | None) -> None:
        self._error_kind = kind
        self._enter(PipelineState.FAILED)

    async def run(
        self,
        references: Sequence[DocumentReference],
        fields: Sequence[FieldSpec],
        context: Mapping[str, Any] | None = None,
    ) -> ExtractionResult:
        if self._state != PipelineState.IDLE:
            raise RuntimeError(f"pipeline already used (state={self._state.value}); start a new run")
        if not fields:
            raise ValueError("at least one field is required")

        try:
            self._enter(PipelineState.LOADING)
            if not references:
                raise DocumentError(ErrorKind.NOT_FOUND, "No documents provided")
            documents, skipped, load_warnings = await self._load_all(references)

            self._enter(PipelineState.ASSEMBLING)
            request = assemble(
                documents,
                fields,
                context,
                max_document_chars=self._max_document_chars,
                strict=self._strict,
            )

            self._enter(PipelineState.INVOKING)
            raw = await self._invoker.invoke(request)

            self._enter(PipelineState.VALIDATING)
            validated = validate(raw, request.fields, labels=[doc.label for doc in request.documents])
            result = finalize(
                validated,
                upstream_warnings=load_warnings + list(request.warnings),
                analysis=build_analysis(request.documents, skipped),
            )
        except ExtractionError as exc:
            logger.warning("Extraction failed at %s: %s", self._history[-1].value, exc)
            self._fail(exc.kind)
            raise
        except BaseException:
            # Cancellation and unexpected errors: discard, nothing to roll back.
            self._fail(None)
            raise

        self._enter(PipelineState.DONE)
        logger.info(
            "Extraction done: %d/%d fields, %d warning(s)",
            len(result.fields),
            len(result.requested_fields),
            len(result.warnings),
        )
        return result

    async def _load_all(
        self, references: Sequence[DocumentReference]
    ) -> tuple[list[SourceDocument], list[str], list[str]]:
        outcomes = await asyncio.gather(
            *(self._loader.load_async(ref) for ref in references),
            return_exceptions=True,
        )

        documents: list[SourceDocument] = []
        skipped: list[str] = []
        warnings: list[str] = []
        first_error: ExtractionError | None = None

        for ref, outcome in zip(references, outcomes):
            if isinstance(outcome, SourceDocument):
                documents.append(outcome)
                continue
            if not isinstance(outcome, ExtractionError):
                raise outcome
            logger.warning("Skipping document %s: %s", ref.label, outcome)
            first_error = first_error or outcome
            skipped.append(ref.label)
            warnings.append(skipped_document_warning(ref.label, outcome.kind))

        if first_error is not None and not documents:
            raise first_error
        return documents, skipped, warnings
