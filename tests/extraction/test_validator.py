from __future__ import annotations

import json

import pytest

from cnpie.extraction.errors import ErrorKind, ShapeMismatchError
from cnpie.extraction.models import FieldKind, FieldSpec, RawModelOutput
from cnpie.extraction.validator import parse_payload, resolve_source, validate


def _raw(payload: object) -> RawModelOutput:
    return RawModelOutput(text=json.dumps(payload, ensure_ascii=False), model="gpt-4o-mini")


def _fields() -> list[FieldSpec]:
    return [
        FieldSpec("resumen", FieldKind.TEXT, "Resumen del proyecto", max_length=50),
        FieldSpec("objetivos", FieldKind.LIST, "Objetivos"),
        FieldSpec("estudiantes", FieldKind.NUMBER, "Cantidad de estudiantes"),
        FieldSpec("financiado", FieldKind.BOOLEAN, "Tiene financiamiento externo"),
    ]


def test_overlong_text_is_truncated_with_warning() -> None:
    fields = [FieldSpec("resumen", FieldKind.TEXT, "Resumen", max_length=50)]
    long_value = "r" * 80

    result = validate(_raw({"extractedData": {"resumen": long_value}}), fields)

    assert result.fields["resumen"] == "r" * 50
    assert result.missing_fields == ()
    assert result.warnings == ("El campo 'resumen' superaba 50 caracteres y fue recortado.",)


@pytest.mark.parametrize(
    "text",
    [
        "Lo siento, no puedo ayudar con eso.",
        '{"extractedData": {"resumen": "sin cerrar"',
        "",
        "[1, 2, 3]",
    ],
)
def test_malformed_output_raises_shape_mismatch(text: str) -> None:
    with pytest.raises(ShapeMismatchError) as exc_info:
        validate(RawModelOutput(text=text, model="gpt-4o-mini"), _fields())

    assert exc_info.value.kind is ErrorKind.SHAPE_MISMATCH


def test_non_object_extracted_data_raises_shape_mismatch() -> None:
    with pytest.raises(ShapeMismatchError, match="extractedData"):
        validate(_raw({"extractedData": ["a", "b"]}), _fields())


def test_fenced_and_reasoning_wrapped_payloads_are_repaired() -> None:
    text = '<think>revisando</think>\n```json\n{"extractedData": {"resumen": "Huerto escolar"}}\n```'

    assert parse_payload(text) == {"extractedData": {"resumen": "Huerto escolar"}}


def test_fields_partition_into_found_and_missing() -> None:
    result = validate(
        _raw(
            {
                "extractedData": {
                    "resumen": "Huerto escolar",
                    "objetivos": [],
                    "estudiantes": None,
                    "financiado": False,
                }
            }
        ),
        _fields(),
    )

    assert dict(result.fields) == {"resumen": "Huerto escolar", "financiado": False}
    assert result.missing_fields == ("objetivos", "estudiantes")
    assert set(result.fields) | set(result.missing_fields) == set(result.requested_fields)


def test_values_are_coerced_along_the_ladder() -> None:
    result = validate(
        _raw(
            {
                "extractedData": {
                    "resumen": ["Primera idea", "Segunda idea"],
                    "objetivos": "Mejorar la alimentación",
                    "estudiantes": "32,5",
                    "financiado": "Sí",
                }
            }
        ),
        [
            FieldSpec("resumen", FieldKind.TEXT, "Resumen"),
            FieldSpec("objetivos", FieldKind.LIST, "Objetivos"),
            FieldSpec("estudiantes", FieldKind.NUMBER, "Cantidad"),
            FieldSpec("financiado", FieldKind.BOOLEAN, "Financiamiento"),
        ],
    )

    assert result.fields["resumen"] == "Primera idea\nSegunda idea"
    assert result.fields["objetivos"] == ("Mejorar la alimentación",)
    assert result.fields["estudiantes"] == 32.5
    assert result.fields["financiado"] is True


def test_uncoercible_values_become_missing_with_warning() -> None:
    result = validate(
        _raw({"extractedData": {"estudiantes": "muchos", "financiado": {"valor": True}}}),
        _fields(),
    )

    assert "estudiantes" in result.missing_fields
    assert "financiado" in result.missing_fields
    assert any("'estudiantes'" in warning for warning in result.warnings)
    assert any("'financiado'" in warning for warning in result.warnings)


def test_list_items_are_capped_individually() -> None:
    fields = [FieldSpec("objetivos", FieldKind.LIST, "Objetivos", max_length=5)]

    result = validate(_raw({"extractedData": {"objetivos": ["corto", "demasiado largo"]}}), fields)

    assert result.fields["objetivos"] == ("corto", "demas")
    assert result.warnings == ("El campo 'objetivos' superaba 5 caracteres y fue recortado.",)


def test_confidence_and_sources_only_for_found_fields() -> None:
    result = validate(
        _raw(
            {
                "extractedData": {"resumen": "Huerto", "objetivos": None},
                "confidence": {"resumen": 1.4, "objetivos": 0.9},
                "sources": {"resumen": "Documento 2", "objetivos": "plan.txt"},
                "warnings": ["El acta está incompleta", 7, "  "],
            }
        ),
        _fields(),
        labels=["plan.txt", "acta.docx"],
    )

    assert dict(result.confidence) == {"resumen": 1.0}
    assert dict(result.source_attribution) == {"resumen": "acta.docx"}
    assert result.warnings[-1] == "El acta está incompleta"


def test_flat_payload_and_unknown_keys() -> None:
    result = validate(_raw({"resumen": "Huerto", "presupuesto": 1000}), _fields())

    assert result.fields["resumen"] == "Huerto"
    assert result.warnings == ("Se ignoraron campos no solicitados: presupuesto.",)


def test_validation_is_deterministic() -> None:
    raw = _raw(
        {
            "extractedData": {"resumen": "x" * 60, "objetivos": ["a", "b"], "otro": 1},
            "confidence": {"resumen": 0.5},
        }
    )

    first = validate(raw, _fields(), labels=["plan.txt"])
    second = validate(raw, _fields(), labels=["plan.txt"])

    assert first == second
    assert first.to_dict() == second.to_dict()


def test_resolve_source() -> None:
    labels = ["plan.txt", "acta.docx"]

    assert resolve_source("Según ACTA.DOCX, sección 2", labels) == "acta.docx"
    assert resolve_source("documento 1", labels) == "plan.txt"
    assert resolve_source("documento 9", labels) is None
    assert resolve_source(None, labels) is None
    assert resolve_source(None, ["único.pdf"]) == "único.pdf"


def test_non_finite_numbers_become_missing_with_warning() -> None:
    fields = [
        FieldSpec("monto", FieldKind.NUMBER, "Monto solicitado"),
        FieldSpec("otro", FieldKind.NUMBER, "Otro monto"),
        FieldSpec("horas", FieldKind.NUMBER, "Horas"),
    ]

    result = validate(
        RawModelOutput(
            text='{"extractedData": {"monto": "NaN", "otro": "-Infinity", "horas": 1e999}, "confidence": {"monto": 1e999}}',
            model="gpt-4o-mini",
        ),
        fields,
    )

    assert dict(result.fields) == {}
    assert result.missing_fields == ("monto", "otro", "horas")
    assert len(result.warnings) == 3
    assert json.loads(json.dumps(result.to_dict(), allow_nan=False))["missingFields"] == ["monto", "otro", "horas"]


def test_bare_non_standard_json_constants_are_rejected() -> None:
    fields = [FieldSpec("monto", FieldKind.NUMBER, "Monto solicitado")]

    with pytest.raises(ShapeMismatchError, match="NaN"):
        validate(RawModelOutput(text='{"extractedData": {"monto": NaN}}', model="gpt-4o-mini"), fields)

    with pytest.raises(ShapeMismatchError, match="Infinity"):
        validate(RawModelOutput(text='{"monto": Infinity}', model="gpt-4o-mini"), fields)
