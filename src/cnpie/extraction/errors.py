"""Flat error taxonomy for the extraction pipeline.

Callers branch on ``ExtractionError.kind``; ``message`` is diagnostic text and
is never shown to end users directly (see ``user_message``).
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    NOT_FOUND = "NotFound"
    TOO_LARGE = "TooLarge"
    UNSUPPORTED_FORMAT = "UnsupportedFormat"
    UNREADABLE = "Unreadable"
    TIMEOUT = "Timeout"
    TRANSPORT_FAILURE = "TransportFailure"
    RATE_LIMITED = "RateLimited"
    SHAPE_MISMATCH = "ShapeMismatch"


INPUT_ERROR_KINDS = frozenset(
    {ErrorKind.NOT_FOUND, ErrorKind.TOO_LARGE, ErrorKind.UNSUPPORTED_FORMAT, ErrorKind.UNREADABLE}
)
TRANSPORT_ERROR_KINDS = frozenset({ErrorKind.TIMEOUT, ErrorKind.TRANSPORT_FAILURE, ErrorKind.RATE_LIMITED})

_USER_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.NOT_FOUND: "No se encontró el documento. Verifica que el archivo siga disponible.",
    ErrorKind.TOO_LARGE: "El documento supera el tamaño máximo permitido.",
    ErrorKind.UNSUPPORTED_FORMAT: "El formato del documento no es compatible. Usa PDF, Word (.docx) o texto.",
    ErrorKind.UNREADABLE: (
        "No se pudo leer texto del documento. Puede estar vacío o ser una imagen escaneada sin texto."
    ),
    ErrorKind.TIMEOUT: "La consulta tardó demasiado. Inténtalo de nuevo más tarde.",
    ErrorKind.TRANSPORT_FAILURE: "No se pudo conectar con el servicio. Inténtalo de nuevo más tarde.",
    ErrorKind.RATE_LIMITED: "El servicio está saturado en este momento. Inténtalo de nuevo más tarde.",
    ErrorKind.SHAPE_MISMATCH: "La respuesta de la IA no tuvo el formato esperado. Completa los campos manualmente.",
}


def user_message(kind: ErrorKind) -> str:
    """Short, kind-specific message safe to show to end users."""
    return _USER_MESSAGES[kind]


class ExtractionError(Exception):
    """Base error for every pipeline stage."""

    allowed_kinds: frozenset[ErrorKind] = frozenset(ErrorKind)

    def __init__(self, kind: ErrorKind, message: str) -> None:
        if kind not in self.allowed_kinds:
            raise ValueError(f"{type(self).__name__} cannot carry kind {kind.value}")
        super().__init__(message)
        self.kind = kind
        self.message = message

    def __str__(self) -> str:
        return f"{self.message} (kind={self.kind.value})"


class DocumentError(ExtractionError):
    """Raised by stores and the document loader."""

    allowed_kinds = INPUT_ERROR_KINDS | TRANSPORT_ERROR_KINDS


class InvocationError(ExtractionError):
    """Raised by the model invoker for transport-level failures."""

    allowed_kinds = TRANSPORT_ERROR_KINDS


class ShapeMismatchError(ExtractionError):
    """Raised when model output cannot be trusted as structured data."""

    allowed_kinds = frozenset({ErrorKind.SHAPE_MISMATCH})

    def __init__(self, message: str) -> None:
        super().__init__(ErrorKind.SHAPE_MISMATCH, message)
