from __future__ import annotations

import pytest

from cnpie.extraction.errors import (
    DocumentError,
    ErrorKind,
    InvocationError,
    ShapeMismatchError,
    user_message,
)


def test_every_kind_has_a_user_message() -> None:
    for kind in ErrorKind:
        assert user_message(kind)


def test_error_kind_values_are_stable_identifiers() -> None:
    assert {kind.value for kind in ErrorKind} == {
        "NotFound",
        "TooLarge",
        "UnsupportedFormat",
        "Unreadable",
        "Timeout",
        "TransportFailure",
        "RateLimited",
        "ShapeMismatch",
    }


def test_errors_reject_kinds_outside_their_stage() -> None:
    with pytest.raises(ValueError, match="InvocationError"):
        InvocationError(ErrorKind.NOT_FOUND, "wrong stage")

    with pytest.raises(ValueError, match="DocumentError"):
        DocumentError(ErrorKind.SHAPE_MISMATCH, "wrong stage")


def test_error_string_includes_kind() -> None:
    error = ShapeMismatchError("Model output is not valid JSON")

    assert error.kind is ErrorKind.SHAPE_MISMATCH
    assert error.message == "Model output is not valid JSON"
    assert str(error) == "Model output is not valid JSON (kind=ShapeMismatch)"
