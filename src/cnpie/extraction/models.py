"""Canonical data structures shared by all extraction stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping


class FieldKind(str, Enum):
    TEXT = "text"
    LIST = "list"
    NUMBER = "number"
    BOOLEAN = "boolean"

    @classmethod
    def parse(cls, raw: str) -> "FieldKind":
        """Accept the form-schema aliases used by the accelerator forms."""
        normalized = raw.strip().lower()
        aliases = {
            "textarea": cls.TEXT,
            "list-of-text": cls.LIST,
            "list_of_text": cls.LIST,
        }
        if normalized in aliases:
            return aliases[normalized]
        return cls(normalized)


@dataclass(frozen=True, slots=True)
class FieldSpec:
    """Declared shape of one value the pipeline should extract."""

    name: str
    kind: FieldKind
    description: str
    max_length: int | None = None
    label: str | None = None

    def __post_init__(self) -> None:
        if not self.name.strip():
            raise ValueError("field name cannot be empty")
        if self.max_length is not None and self.max_length < 1:
            raise ValueError(f"max_length must be >= 1 for field {self.name!r}")


@dataclass(frozen=True, slots=True)
class DocumentReference:
    """Pointer to a stored document plus its human-readable origin."""

    reference: str
    label: str


@dataclass(frozen=True, slots=True)
class SourceDocument:
    """Decoded document text with provenance; lives for one pipeline run."""

    label: str
    content: str
    byte_size: int
    format_name: str
    page_count: int | None = None
    truncated: bool = False

    @property
    def word_count(self) -> int:
        return len(self.content.split())


@dataclass(frozen=True, slots=True)
class ExtractionRequest:
    """Assembled unit of work handed to the model invoker."""

    documents: tuple[SourceDocument, ...]
    fields: tuple[FieldSpec, ...]
    instruction_template: str
    system_prompt: str
    user_prompt: str
    context: Mapping[str, Any] | None = None
    strict: bool = False
    warnings: tuple[str, ...] = ()

    @property
    def field_names(self) -> tuple[str, ...]:
        return tuple(spec.name for spec in self.fields)


@dataclass(frozen=True, slots=True)
class RawModelOutput:
    """Unparsed text returned by the model endpoint."""

    text: str
    model: str
    finish_reason: str | None = None
    prompt_tokens: int | None = None
    completion_tokens: int | None = None


@dataclass(frozen=True, slots=True)
class DocumentAnalysis:
    """Summary of which inputs fed an extraction."""

    processed_documents: tuple[str, ...] = ()
    skipped_documents: tuple[str, ...] = ()
    word_count: int = 0
    file_types: tuple[str, ...] = ()
    language: str = "es"

    def to_dict(self) -> dict[str, Any]:
        return {
            "processedDocuments": list(self.processed_documents),
            "skippedDocuments": list(self.skipped_documents),
            "wordCount": self.word_count,
            "fileTypes": list(self.file_types),
            "language": self.language,
        }


def _frozen(mapping: Mapping[str, Any]) -> Mapping[str, Any]:
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True, slots=True)
class ExtractionResult:
    """Validated extraction outcome.

    ``fields`` and ``missing_fields`` partition the requested field names;
    construction fails otherwise, so a half-populated result cannot exist.
    """

    requested_fields: tuple[str, ...]
    fields: Mapping[str, Any]
    missing_fields: tuple[str, ...]
    confidence: Mapping[str, float] = field(default_factory=dict)
    source_attribution: Mapping[str, str] = field(default_factory=dict)
    warnings: tuple[str, ...] = ()
    analysis: DocumentAnalysis = field(default_factory=DocumentAnalysis)

    def __post_init__(self) -> None:
        requested = set(self.requested_fields)
        if len(requested) != len(self.requested_fields):
            raise ValueError("requested field names must be unique")

        found = set(self.fields)
        missing = set(self.missing_fields)
        if found & missing:
            raise ValueError(f"fields both found and missing: {sorted(found & missing)}")
        if found | missing != requested:
            raise ValueError("found and missing fields must cover exactly the requested fields")
        if not set(self.confidence) <= found:
            raise ValueError("confidence given for fields that were not extracted")
        if not set(self.source_attribution) <= found:
            raise ValueError("source attribution given for fields that were not extracted")

        object.__setattr__(self, "fields", _frozen(self.fields))
        object.__setattr__(self, "confidence", _frozen(self.confidence))
        object.__setattr__(self, "source_attribution", _frozen(self.source_attribution))

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "fields": {name: _plain(value) for name, value in self.fields.items()},
            "confidence": dict(self.confidence),
            "sourceAttribution": dict(self.source_attribution),
            "missingFields": list(self.missing_fields),
            "warnings": list(self.warnings),
            "documentAnalysis": self.analysis.to_dict(),
        }


def _plain(value: Any) -> Any:
    if isinstance(value, tuple):
        return list(value)
    return value
