"""Document loading, prompt assembly, model invocation and result validation."""

from .config import ExtractionSettings
from .errors import (
    DocumentError,
    ErrorKind,
    ExtractionError,
    InvocationError,
    ShapeMismatchError,
    user_message,
)
from .models import (
    DocumentAnalysis,
    DocumentReference,
    ExtractionRequest,
    ExtractionResult,
    FieldKind,
    FieldSpec,
    RawModelOutput,
    SourceDocument,
)
from .pipeline import ExtractionPipeline, PipelineState
from .service import ExtractionService, RetryPolicy, parse_input_envelope

__all__ = [
    "DocumentAnalysis",
    "DocumentError",
    "DocumentReference",
    "ErrorKind",
    "ExtractionError",
    "ExtractionPipeline",
    "ExtractionRequest",
    "ExtractionResult",
    "ExtractionService",
    "ExtractionSettings",
    "FieldKind",
    "FieldSpec",
    "InvocationError",
    "PipelineState",
    "RawModelOutput",
    "RetryPolicy",
    "ShapeMismatchError",
    "SourceDocument",
    "parse_input_envelope",
    "user_message",
]
