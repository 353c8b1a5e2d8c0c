import pytest

from eppsched.errors import (
    BAD_REQUEST,
    INTERNAL,
    UNKNOWN,
    SchedulingError,
    canonical_code,
)


def test_error_message_format():
    err = SchedulingError(INTERNAL, "no pods available for the given request")
    assert str(err) == "inference gateway: Internal - no pods available for the given request"


def test_canonical_code_of_scheduling_error():
    err = SchedulingError(BAD_REQUEST, "prompt not found in request")
    assert canonical_code(err) == "BadRequest"


def test_canonical_code_of_other_error_is_unknown():
    assert canonical_code(ValueError("boom")) == UNKNOWN


def test_error_keeps_fields_and_is_an_exception():
    err = SchedulingError(INTERNAL, "broken")
    assert isinstance(err, Exception)
    assert err.code == INTERNAL
    assert err.msg == "broken"
    assert canonical_code(err) == "Internal"


def test_errors_with_same_fields_compare_equal():
    assert SchedulingError(INTERNAL, "x") == SchedulingError(INTERNAL, "x")
    assert not SchedulingError(INTERNAL, "x") == SchedulingError(BAD_REQUEST, "x")