"""Final aggregation of validated fields and the caller-facing envelopes."""

from __future__ import annotations

from typing import Any, Iterable, Sequence

from cnpie.extraction.errors import ExtractionError, user_message
from cnpie.extraction.models import DocumentAnalysis, ExtractionResult, SourceDocument


def build_analysis(documents: Sequence[SourceDocument], skipped: Sequence[str] = ()) -> DocumentAnalysis:
    file_types: list[str] = []
    for doc in documents:
        if doc.format_name not in file_types:
            file_types.append(doc.format_name)
    return DocumentAnalysis(
        processed_documents=tuple(doc.label for doc in documents),
        skipped_documents=tuple(skipped),
        word_count=sum(doc.word_count for doc in documents),
        file_types=tuple(file_types),
    )


def finalize(
    validated: ExtractionResult,
    *,
    upstream_warnings: Iterable[str] = (),
    analysis: DocumentAnalysis | None = None,
) -> ExtractionResult:
    """Merge pipeline warnings and document metadata into a fresh result.

    Loader and assembler warnings come first, in stage order, followed by the
    validator's.  The input result is left untouched.
    """
    return ExtractionResult(
        requested_fields=validated.requested_fields,
        fields=validated.fields,
        missing_fields=validated.missing_fields,
        confidence=validated.confidence,
        source_attribution=validated.source_attribution,
        warnings=tuple(upstream_warnings) + validated.warnings,
        analysis=analysis or validated.analysis,
    )


def success_envelope(result: ExtractionResult) -> dict[str, Any]:
    return result.to_dict()


def failure_envelope(error: ExtractionError) -> dict[str, Any]:
    """Machine-checkable failure payload; the message is the user-safe text for the kind."""
    return {
        "success": False,
        "errorKind": error.kind.value,
        "message": user_message(error.kind),
    }


INVALID_REQUEST = "InvalidRequest"


def invalid_request_envelope(reason: str) -> dict[str, Any]:
    """Failure payload for a malformed request, which never reaches the pipeline."""
    return {
        "success": False,
        "errorKind": INVALID_REQUEST,
        "message": reason,
    }
