"""Chat-completions invoker for extraction requests.

One request per call: no retries happen here, the caller owns retry policy.
Failures surface as ``InvocationError`` with a kind that tells timeouts,
provider backpressure and transport problems apart.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from cnpie.extraction.config import ExtractionSettings
from cnpie.extraction.errors import ErrorKind, InvocationError
from cnpie.extraction.models import ExtractionRequest, RawModelOutput
from cnpie.extraction.prompts import build_response_schema

logger = logging.getLogger(__name__)

_TIMEOUT_ERROR_NAMES = {"APITimeoutError", "TimeoutException", "ReadTimeout", "ConnectTimeout"}
_RATE_LIMIT_ERROR_NAMES = {"RateLimitError"}


def _build_default_client(settings: ExtractionSettings) -> Any:
    from openai import OpenAI

    return OpenAI(
        api_key=settings.api_key,
        base_url=settings.base_url,
        timeout=settings.model_timeout_seconds,
        max_retries=0,
    )


def classify_invocation_error(exc: BaseException) -> ErrorKind:
    """Map an SDK or transport exception onto the flat error taxonomy."""
    name = type(exc).__name__
    if isinstance(exc, (TimeoutError, asyncio.TimeoutError)) or name in _TIMEOUT_ERROR_NAMES:
        return ErrorKind.TIMEOUT
    if getattr(exc, "status_code", None) == 429 or name in _RATE_LIMIT_ERROR_NAMES:
        return ErrorKind.RATE_LIMITED
    return ErrorKind.TRANSPORT_FAILURE


def _message_content(response: Any) -> tuple[str, str | None]:
    """Return ``(text, finish_reason)`` of the first choice; empty text when absent.

    An empty answer is left for the validator to reject as a shape mismatch.
    """
    choices = getattr(response, "choices", None) or []
    if not choices:
        return "", None

    choice = choices[0]
    text = getattr(getattr(choice, "message", None), "content", None)
    if isinstance(text, list):
        # Some OpenAI-compatible gateways return content parts.
        text = "".join(part.get("text", "") for part in text if isinstance(part, dict))
    return (text if isinstance(text, str) else ""), getattr(choice, "finish_reason", None)


class ModelInvoker:
    """Send an ``ExtractionRequest`` to the configured text-generation endpoint."""

    def __init__(self, settings: ExtractionSettings, *, client: Any | None = None) -> None:
        self._settings = settings
        self._client = client or _build_default_client(settings)

    @property
    def model(self) -> str:
        return self._settings.model

    def response_format(self, request: ExtractionRequest) -> dict[str, Any]:
        if self._settings.output_mode == "json_object":
            return {"type": "json_object"}
        return {
            "type": "json_schema",
            "json_schema": {
                "name": "field_extraction",
                "strict": True,
                "schema": build_response_schema(request.fields),
            },
        }

    async def invoke(self, request: ExtractionRequest) -> RawModelOutput:
        timeout = self._settings.model_timeout_seconds
        try:
            response = await asyncio.wait_for(asyncio.to_thread(self._complete, request), timeout=timeout)
        except asyncio.TimeoutError as exc:
            logger.warning("Model call exceeded %.1fs (model=%s)", timeout, self.model)
            raise InvocationError(ErrorKind.TIMEOUT, f"Model call exceeded {timeout}s") from exc
        except Exception as exc:
            kind = classify_invocation_error(exc)
            logger.warning("Model call failed kind=%s model=%s: %s", kind.value, self.model, exc)
            raise InvocationError(kind, f"Model call failed: {exc}") from exc

        text, finish_reason = _message_content(response)
        if finish_reason == "length":
            logger.warning("Model output hit max_tokens=%d, payload may be cut", self._settings.max_tokens)

        usage = getattr(response, "usage", None)
        return RawModelOutput(
            text=text,
            model=str(getattr(response, "model", None) or self.model),
            finish_reason=finish_reason,
            prompt_tokens=getattr(usage, "prompt_tokens", None),
            completion_tokens=getattr(usage, "completion_tokens", None),
        )

    def _complete(self, request: ExtractionRequest) -> Any:
        return self._client.chat.completions.create(
            model=self._settings.model,
            messages=[
                {"role": "system", "content": request.system_prompt},
                {"role": "user", "content": request.user_prompt},
            ],
            temperature=self._settings.temperature,
            max_tokens=self._settings.max_tokens,
            response_format=self.response_format(request),
        )
