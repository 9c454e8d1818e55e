"""Prompt assembly for document field extraction.

Every requested field is rendered with its name, description, kind and
length limit, so the model always receives a closed target schema.
"""

from __future__ import annotations

import json
from typing import Any, Mapping, Sequence

from cnpie.extraction.config import DEFAULT_MAX_DOCUMENT_CHARS
from cnpie.extraction.models import ExtractionRequest, FieldKind, FieldSpec, SourceDocument

TRUNCATION_MARKER = "...(documento truncado)"

SYSTEM_PROMPT = """Eres un experto extractor de información de documentos educativos. Tu tarea es analizar documentos y extraer información estructurada de manera precisa.

REGLAS IMPORTANTES:
1. Solo extrae información que esté EXPLÍCITAMENTE presente en los documentos
2. Si un campo no tiene información clara, devuelve null
3. Respeta los límites de caracteres especificados
4. Para listas, identifica elementos claros y separados
5. Mantén el contexto y significado original del texto
6. Si los documentos no parecen relacionados con los campos solicitados, indícalo en las advertencias"""

INSTRUCTION_TEMPLATE = """Analiza los siguientes documentos educativos y extrae la información de los campos esperados.

CAMPOS ESPERADOS:
{fields}
{context}
DOCUMENTOS A ANALIZAR ({document_count}):
{documents}

INSTRUCCIONES DE OUTPUT:
Devuelve un JSON con esta estructura exacta:
{{
  "extractedData": {{ "<campo>": <valor o null> }},
  "confidence": {{ "<campo>": <número entre 0.0 y 1.0> }},
  "sources": {{ "<campo>": "<nombre del documento de donde proviene>" }},
  "warnings": ["<advertencias sobre la calidad de la extracción>"]
}}
Usa EXACTAMENTE los nombres de campo indicados."""

STRICT_SUFFIX = """

REGLAS ESTRICTAS DE FORMATO:
- Devuelve SOLO un objeto JSON válido, sin texto antes ni después.
- No uses bloques de código Markdown ni explicaciones.
- Las listas deben ser arreglos JSON de cadenas de texto.
- Los números deben ser números JSON y los valores sí/no deben ser true o false."""

_KIND_LABELS = {
    FieldKind.TEXT: "texto",
    FieldKind.LIST: "lista de textos",
    FieldKind.NUMBER: "número",
    FieldKind.BOOLEAN: "sí/no",
}


def truncation_warning(label: str, limit: int) -> str:
    return f"El documento '{label}' fue truncado a {limit} caracteres para el análisis."


def _field_line(spec: FieldSpec) -> str:
    title = f"{spec.name} ({spec.label})" if spec.label else spec.name
    details = f"tipo: {_KIND_LABELS[spec.kind]}"
    if spec.max_length is not None:
        details += f", máximo {spec.max_length} caracteres"
    return f"- {title}: {spec.description} ({details})"


def _context_block(context: Mapping[str, Any] | None) -> str:
    if not context:
        return ""
    rendered = json.dumps(dict(context), ensure_ascii=False, indent=2, sort_keys=True, default=str)
    return f"\nCONTEXTO DEL PROYECTO:\n{rendered}\n"


def _document_block(index: int, doc: SourceDocument) -> str:
    body = doc.content + (f" {TRUNCATION_MARKER}" if doc.truncated else "")
    return f"### Documento {index}: {doc.label}\n```\n{body}\n```"


def _truncate(doc: SourceDocument, limit: int) -> SourceDocument:
    if len(doc.content) <= limit:
        return doc
    return SourceDocument(
        label=doc.label,
        content=doc.content[:limit],
        byte_size=doc.byte_size,
        format_name=doc.format_name,
        page_count=doc.page_count,
        truncated=True,
    )


def assemble(
    docs: Sequence[SourceDocument],
    fields: Sequence[FieldSpec],
    context: Mapping[str, Any] | None = None,
    *,
    max_document_chars: int = DEFAULT_MAX_DOCUMENT_CHARS,
    strict: bool = False,
) -> ExtractionRequest:
    """Merge template, field schema and source texts into one request.

    Pure function: documents longer than *max_document_chars* are cut at that
    boundary and a warning naming the document is carried on the request.
    """
    if not fields:
        raise ValueError("at least one field is required")
    names = [spec.name for spec in fields]
    if len(set(names)) != len(names):
        raise ValueError("field names must be unique")
    if max_document_chars < 1:
        raise ValueError("max_document_chars must be >= 1")

    prepared = tuple(_truncate(doc, max_document_chars) for doc in docs)
    warnings = tuple(
        truncation_warning(doc.label, max_document_chars) for doc in prepared if doc.truncated
    )

    user_prompt = INSTRUCTION_TEMPLATE.format(
        fields="\n".join(_field_line(spec) for spec in fields),
        context=_context_block(context),
        document_count=len(prepared),
        documents="\n\n".join(_document_block(idx, doc) for idx, doc in enumerate(prepared, 1)),
    )
    if strict:
        user_prompt += STRICT_SUFFIX

    return ExtractionRequest(
        documents=prepared,
        fields=tuple(fields),
        instruction_template=INSTRUCTION_TEMPLATE,
        system_prompt=SYSTEM_PROMPT,
        user_prompt=user_prompt,
        context=dict(context) if context else None,
        strict=strict,
        warnings=warnings,
    )


def _value_schema(spec: FieldSpec) -> dict[str, Any]:
    if spec.kind == FieldKind.LIST:
        return {"type": ["array", "null"], "items": {"type": "string"}}
    if spec.kind == FieldKind.NUMBER:
        return {"type": ["number", "null"]}
    if spec.kind == FieldKind.BOOLEAN:
        return {"type": ["boolean", "null"]}
    return {"type": ["string", "null"]}


def _closed_object(properties: dict[str, Any]) -> dict[str, Any]:
    return {
        "type": "object",
        "properties": properties,
        "required": list(properties),
        "additionalProperties": False,
    }


def build_response_schema(fields: Sequence[FieldSpec]) -> dict[str, Any]:
    """JSON schema for structured-output mode; every field is nullable."""
    return _closed_object(
        {
            "extractedData": _closed_object({spec.name: _value_schema(spec) for spec in fields}),
            "confidence": _closed_object({spec.name: {"type": ["number", "null"]} for spec in fields}),
            "sources": _closed_object({spec.name: {"type": ["string", "null"]} for spec in fields}),
            "warnings": {"type": "array", "items": {"type": "string"}},
        }
    )
