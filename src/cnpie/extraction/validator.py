"""Deterministic validation of model output against the requested fields.

Structural corruption (unparseable text, non-object payloads) raises
``ShapeMismatchError``.  Field-level problems never fail the run: values of
the wrong kind get one coercion attempt and otherwise count as missing, and
over-long values are cut at ``max_length`` with a warning.
"""

from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from cnpie.extraction.errors import ShapeMismatchError
from cnpie.extraction.models import ExtractionResult, FieldKind, FieldSpec, RawModelOutput

logger = logging.getLogger(__name__)

_THINK_RE = re.compile(r"<think>.*?</think>", re.DOTALL)
_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*\n?(.*?)\n?```$", re.DOTALL)
_DOCUMENT_INDEX_RE = re.compile(r"documento\s+(\d+)", re.IGNORECASE)

_TRUE_WORDS = {"true", "sí", "si", "yes", "verdadero"}
_FALSE_WORDS = {"false", "no", "falso"}

_MISSING = object()


class _WrongKind(Exception):
    """Value is present but no well-defined coercion exists."""


@dataclass(slots=True)
class _FieldOutcome:
    value: Any = _MISSING
    truncated: bool = False
    wrong_kind: bool = False


def truncation_notice(name: str, limit: int) -> str:
    return f"El campo '{name}' superaba {limit} caracteres y fue recortado."


def _repair(text: str) -> str:
    """Strip reasoning blocks and a Markdown fence around the payload."""
    cleaned = _THINK_RE.sub("", text).strip()
    match = _FENCE_RE.match(cleaned)
    if match:
        cleaned = match.group(1).strip()
    return cleaned


def parse_payload(text: str) -> dict[str, Any]:
    cleaned = _repair(text)
    if not cleaned:
        raise ShapeMismatchError("Model returned empty output")
    try:
        payload = json.loads(cleaned, parse_constant=_reject_constant)
    except json.JSONDecodeError as exc:
        raise ShapeMismatchError(f"Model output is not valid JSON: {exc.msg} at position {exc.pos}") from exc
    if not isinstance(payload, dict):
        raise ShapeMismatchError(f"Model output must be a JSON object, got {type(payload).__name__}")
    return payload


def _reject_constant(token: str) -> Any:
    raise ShapeMismatchError(f"Model output contains non-standard JSON constant {token}")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _finite(value: int | float) -> int | float:
    if isinstance(value, float) and not math.isfinite(value):
        raise _WrongKind(value)
    return value


def _parse_number(raw: str) -> int | float:
    text = raw.strip().replace(" ", "")
    if text.count(",") == 1 and "." not in text:
        text = text.replace(",", ".")
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return _finite(float(text))
    except ValueError as exc:
        raise _WrongKind(raw) from exc


def _text_items(values: list[Any]) -> list[str]:
    items: list[str] = []
    for item in values:
        if isinstance(item, str):
            cleaned = item.strip()
        elif _is_number(item):
            cleaned = str(item)
        else:
            raise _WrongKind(item)
        if cleaned:
            items.append(cleaned)
    return items


def _coerce(kind: FieldKind, value: Any) -> Any:
    """Return the value in canonical form, ``_MISSING`` when empty."""
    if value is None:
        return _MISSING

    if kind == FieldKind.TEXT:
        if isinstance(value, str):
            return value.strip() or _MISSING
        if _is_number(value):
            return str(value)
        if isinstance(value, list):
            return "\n".join(_text_items(value)) or _MISSING
        raise _WrongKind(value)

    if kind == FieldKind.LIST:
        if isinstance(value, list):
            return tuple(_text_items(value)) or _MISSING
        if isinstance(value, str):
            return (value.strip(),) if value.strip() else _MISSING
        raise _WrongKind(value)

    if kind == FieldKind.NUMBER:
        if _is_number(value):
            return _finite(value)
        if isinstance(value, str):
            return _parse_number(value) if value.strip() else _MISSING
        raise _WrongKind(value)

    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        word = value.strip().lower()
        if not word:
            return _MISSING
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
    raise _WrongKind(value)


def _apply_max_length(spec: FieldSpec, value: Any) -> tuple[Any, bool]:
    limit = spec.max_length
    if limit is None:
        return value, False
    if spec.kind == FieldKind.TEXT and len(value) > limit:
        return value[:limit], True
    if spec.kind == FieldKind.LIST and any(len(item) > limit for item in value):
        return tuple(item[:limit] for item in value), True
    return value, False


def _check_field(spec: FieldSpec, data: Mapping[str, Any]) -> _FieldOutcome:
    try:
        value = _coerce(spec.kind, data.get(spec.name))
    except _WrongKind:
        return _FieldOutcome(wrong_kind=True)
    if value is _MISSING:
        return _FieldOutcome()
    value, truncated = _apply_max_length(spec, value)
    return _FieldOutcome(value=value, truncated=truncated)


def _clamp_confidence(value: Any) -> float | None:
    if not _is_number(value) or not math.isfinite(value):
        return None
    return min(1.0, max(0.0, float(value)))


def resolve_source(raw: Any, labels: Sequence[str]) -> str | None:
    """Map a model-written source mention onto one of the document labels."""
    if len(labels) == 1:
        return labels[0]
    if not isinstance(raw, str) or not raw.strip():
        return None

    lowered = raw.casefold()
    for label in labels:
        if label.casefold() in lowered:
            return label

    match = _DOCUMENT_INDEX_RE.search(raw)
    if match:
        index = int(match.group(1))
        if 1 <= index <= len(labels):
            return labels[index - 1]
    return None


def _as_mapping(payload: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = payload.get(key)
    if isinstance(value, Mapping):
        return value
    if value is not None:
        logger.info("Ignoring non-object %r in model output", key)
    return {}


def validate(
    raw: RawModelOutput | str,
    fields: Sequence[FieldSpec],
    *,
    labels: Sequence[str] = (),
) -> ExtractionResult:
    """Turn raw model text into an ``ExtractionResult`` or raise ``ShapeMismatchError``.

    Accepts the ``extractedData`` envelope requested by the prompt or a flat
    object keyed by field name.  Pure: the same input always yields an equal
    result.
    """
    text = raw.text if isinstance(raw, RawModelOutput) else raw
    payload = parse_payload(text)

    if "extractedData" in payload:
        data = payload["extractedData"]
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ShapeMismatchError(f"'extractedData' must be an object, got {type(data).__name__}")
        confidence_raw = _as_mapping(payload, "confidence")
        sources_raw = _as_mapping(payload, "sources")
        model_warnings = payload.get("warnings")
    else:
        data = payload
        confidence_raw, sources_raw, model_warnings = {}, {}, None

    accepted: dict[str, Any] = {}
    missing: list[str] = []
    confidence: dict[str, float] = {}
    attribution: dict[str, str] = {}
    warnings: list[str] = []

    for spec in fields:
        outcome = _check_field(spec, data)
        if outcome.value is _MISSING:
            missing.append(spec.name)
            if outcome.wrong_kind:
                warnings.append(
                    f"El campo '{spec.name}' llegó con un formato inesperado y debe completarse manualmente."
                )
            continue

        accepted[spec.name] = outcome.value
        if outcome.truncated:
            warnings.append(truncation_notice(spec.name, spec.max_length or 0))

        score = _clamp_confidence(confidence_raw.get(spec.name))
        if score is not None:
            confidence[spec.name] = score
        source = resolve_source(sources_raw.get(spec.name), labels)
        if source is not None:
            attribution[spec.name] = source

    requested = {spec.name for spec in fields}
    unexpected = sorted(key for key in data if key not in requested)
    if unexpected:
        warnings.append(f"Se ignoraron campos no solicitados: {', '.join(unexpected)}.")

    if isinstance(model_warnings, list):
        warnings.extend(item.strip() for item in model_warnings if isinstance(item, str) and item.strip())

    return ExtractionResult(
        requested_fields=tuple(spec.name for spec in fields),
        fields=accepted,
        missing_fields=tuple(missing),
        confidence=confidence,
        source_attribution=attribution,
        warnings=tuple(warnings),
    )
