from __future__ import annotations

import pytest

from cnpie.extraction.models import DocumentAnalysis, ExtractionResult, FieldKind, FieldSpec
from cnpie.extraction.result import finalize


def test_field_kind_parse_accepts_form_aliases() -> None:
    assert FieldKind.parse("textarea") is FieldKind.TEXT
    assert FieldKind.parse("List-Of-Text") is FieldKind.LIST
    assert FieldKind.parse(" number ") is FieldKind.NUMBER
    with pytest.raises(ValueError):
        FieldKind.parse("date")


def test_field_spec_validates_name_and_limit() -> None:
    with pytest.raises(ValueError, match="name"):
        FieldSpec("  ", FieldKind.TEXT, "vacío")
    with pytest.raises(ValueError, match="max_length"):
        FieldSpec("resumen", FieldKind.TEXT, "Resumen", max_length=0)


def test_result_requires_partition_of_requested_fields() -> None:
    with pytest.raises(ValueError, match="both found and missing"):
        ExtractionResult(requested_fields=("a",), fields={"a": "x"}, missing_fields=("a",))
    with pytest.raises(ValueError, match="cover exactly"):
        ExtractionResult(requested_fields=("a", "b"), fields={"a": "x"}, missing_fields=())
    with pytest.raises(ValueError, match="confidence"):
        ExtractionResult(requested_fields=("a",), fields={}, missing_fields=("a",), confidence={"a": 0.5})


def test_result_is_immutable_and_serializes_lists() -> None:
    result = ExtractionResult(
        requested_fields=("objetivos", "resumen"),
        fields={"objetivos": ("uno", "dos")},
        missing_fields=("resumen",),
        confidence={"objetivos": 0.8},
        source_attribution={"objetivos": "plan.txt"},
        analysis=DocumentAnalysis(processed_documents=("plan.txt",), word_count=12, file_types=("txt",)),
    )

    with pytest.raises(TypeError):
        result.fields["resumen"] = "tarde"  # type: ignore[index]

    assert result.to_dict() == {
        "success": True,
        "fields": {"objetivos": ["uno", "dos"]},
        "confidence": {"objetivos": 0.8},
        "sourceAttribution": {"objetivos": "plan.txt"},
        "missingFields": ["resumen"],
        "warnings": [],
        "documentAnalysis": {
            "processedDocuments": ["plan.txt"],
            "skippedDocuments": [],
            "wordCount": 12,
            "fileTypes": ["txt"],
            "language": "es",
        },
    }


def test_finalize_puts_upstream_warnings_first_and_keeps_input() -> None:
    validated = ExtractionResult(
        requested_fields=("a",),
        fields={"a": "x"},
        missing_fields=(),
        warnings=("del validador",),
    )

    final = finalize(validated, upstream_warnings=["del cargador"])

    assert final.warnings == ("del cargador", "del validador")
    assert validated.warnings == ("del validador",)
