"""Runtime configuration for the extraction pipeline."""

from __future__ import annotations

from dataclasses import dataclass
import os
from typing import Mapping


DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_TEMPERATURE = 0.3
DEFAULT_MAX_TOKENS = 3000
DEFAULT_MODEL_TIMEOUT_SECONDS = 45.0
DEFAULT_STORE_TIMEOUT_SECONDS = 20.0
DEFAULT_MAX_DOCUMENT_BYTES = 5 * 1024 * 1024
DEFAULT_MAX_DOCUMENT_CHARS = 15000
DEFAULT_MIN_PDF_TEXT_CHARS = 50
DEFAULT_MIN_MEANINGFUL_CHARS = 50
DEFAULT_MAX_OCR_PAGES = 20
OUTPUT_MODES = ("json_schema", "json_object")


def _parse_positive_int(*, name: str, raw_value: str, minimum: int = 1) -> int:
    value = int(raw_value)
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}")
    return value


def _parse_positive_float(*, name: str, raw_value: str, minimum: float = 0.001) -> float:
    value = float(raw_value)
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}")
    return value


@dataclass(frozen=True, slots=True)
class ExtractionSettings:
    """Validated settings for the model endpoint, document limits and stores."""

    api_key: str
    model: str = DEFAULT_MODEL
    base_url: str = DEFAULT_OPENAI_BASE_URL
    temperature: float = DEFAULT_TEMPERATURE
    max_tokens: int = DEFAULT_MAX_TOKENS
    model_timeout_seconds: float = DEFAULT_MODEL_TIMEOUT_SECONDS
    store_timeout_seconds: float = DEFAULT_STORE_TIMEOUT_SECONDS
    max_document_bytes: int = DEFAULT_MAX_DOCUMENT_BYTES
    max_document_chars: int = DEFAULT_MAX_DOCUMENT_CHARS
    min_pdf_text_chars: int = DEFAULT_MIN_PDF_TEXT_CHARS
    min_meaningful_chars: int = DEFAULT_MIN_MEANINGFUL_CHARS
    max_ocr_pages: int = DEFAULT_MAX_OCR_PAGES
    output_mode: str = "json_schema"
    supabase_url: str | None = None
    supabase_service_key: str | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ExtractionSettings":
        source: Mapping[str, str] = os.environ if environ is None else environ

        api_key = source.get("OPENAI_API_KEY", "").strip()
        if not api_key:
            raise ValueError("Missing required extraction environment variable: OPENAI_API_KEY")

        base_url = source.get("OPENAI_BASE_URL", DEFAULT_OPENAI_BASE_URL).strip()
        if not base_url:
            raise ValueError("OPENAI_BASE_URL cannot be empty")
        if not (base_url.startswith("http://") or base_url.startswith("https://")):
            raise ValueError("OPENAI_BASE_URL must start with http:// or https://")

        model = source.get("EXTRACTION_MODEL", DEFAULT_MODEL).strip()
        if not model:
            raise ValueError("EXTRACTION_MODEL cannot be empty")

        output_mode = source.get("EXTRACTION_OUTPUT_MODE", "json_schema").strip().lower()
        if output_mode not in OUTPUT_MODES:
            raise ValueError(f"EXTRACTION_OUTPUT_MODE must be one of: {', '.join(OUTPUT_MODES)}")

        temperature = float(source.get("EXTRACTION_TEMPERATURE", str(DEFAULT_TEMPERATURE)).strip())
        if not 0.0 <= temperature <= 2.0:
            raise ValueError("EXTRACTION_TEMPERATURE must be between 0 and 2")

        supabase_url = source.get("SUPABASE_URL", "").strip() or None
        supabase_key = source.get("SUPABASE_SERVICE_ROLE_KEY", "").strip() or None
        if supabase_url and not supabase_key:
            raise ValueError("SUPABASE_SERVICE_ROLE_KEY is required when SUPABASE_URL is set")

        return cls(
            api_key=api_key,
            model=model,
            base_url=base_url.rstrip("/"),
            temperature=temperature,
            max_tokens=_parse_positive_int(
                name="EXTRACTION_MAX_TOKENS",
                raw_value=source.get("EXTRACTION_MAX_TOKENS", str(DEFAULT_MAX_TOKENS)).strip(),
            ),
            model_timeout_seconds=_parse_positive_float(
                name="EXTRACTION_MODEL_TIMEOUT_SECONDS",
                raw_value=source.get("EXTRACTION_MODEL_TIMEOUT_SECONDS", str(DEFAULT_MODEL_TIMEOUT_SECONDS)).strip(),
            ),
            store_timeout_seconds=_parse_positive_float(
                name="EXTRACTION_STORE_TIMEOUT_SECONDS",
                raw_value=source.get("EXTRACTION_STORE_TIMEOUT_SECONDS", str(DEFAULT_STORE_TIMEOUT_SECONDS)).strip(),
            ),
            max_document_bytes=_parse_positive_int(
                name="EXTRACTION_MAX_DOCUMENT_BYTES",
                raw_value=source.get("EXTRACTION_MAX_DOCUMENT_BYTES", str(DEFAULT_MAX_DOCUMENT_BYTES)).strip(),
            ),
            max_document_chars=_parse_positive_int(
                name="EXTRACTION_MAX_DOCUMENT_CHARS",
                raw_value=source.get("EXTRACTION_MAX_DOCUMENT_CHARS", str(DEFAULT_MAX_DOCUMENT_CHARS)).strip(),
            ),
            min_pdf_text_chars=_parse_positive_int(
                name="EXTRACTION_MIN_PDF_TEXT_CHARS",
                raw_value=source.get("EXTRACTION_MIN_PDF_TEXT_CHARS", str(DEFAULT_MIN_PDF_TEXT_CHARS)).strip(),
                minimum=0,
            ),
            min_meaningful_chars=_parse_positive_int(
                name="EXTRACTION_MIN_MEANINGFUL_CHARS",
                raw_value=source.get("EXTRACTION_MIN_MEANINGFUL_CHARS", str(DEFAULT_MIN_MEANINGFUL_CHARS)).strip(),
                minimum=0,
            ),
            max_ocr_pages=_parse_positive_int(
                name="EXTRACTION_MAX_OCR_PAGES",
                raw_value=source.get("EXTRACTION_MAX_OCR_PAGES", str(DEFAULT_MAX_OCR_PAGES)).strip(),
            ),
            output_mode=output_mode,
            supabase_url=supabase_url.rstrip("/") if supabase_url else None,
            supabase_service_key=supabase_key,
        )
