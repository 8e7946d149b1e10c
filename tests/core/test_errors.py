"""Tests for the typed error taxonomy."""

from __future__ import annotations

import json

import pytest

from spotcheck.core.errors import (
    TAXONOMY,
    CircuitOpenError,
    ErrorKind,
    Severity,
    TypedError,
    is_retryable,
    traits_for,
)

# kind → (severity, recoverable, retryable)
EXPECTED = {
    "gps_unavailable": ("medium", True, False),
    "gps_permission_denied": ("high", True, False),
    "location_too_far": ("medium", True, False),
    "network_error": ("medium", True, True),
    "api_error": ("high", True, True),
    "timeout_error": ("medium", True, True),
    "rate_limited": ("medium", True, True),
    "authentication_error": ("high", True, False),
    "authorization_error": ("high", False, False),
    "challenge_expired": ("low", False, False),
    "already_completed": ("low", False, False),
    "storage_error": ("high", True, False),
    "data_corruption": ("critical", False, False),
    "validation_error": ("medium", True, False),
    "configuration_error": ("critical", False, False),
    "unknown_error": ("high", True, False),
}


class TestTaxonomy:
    def test_every_kind_has_traits(self):
        assert set(TAXONOMY) == set(ErrorKind)

    @pytest.mark.parametrize("kind, expected", sorted(EXPECTED.items()))
    def test_traits_match_table(self, kind, expected):
        traits = traits_for(ErrorKind(kind))
        assert (traits.severity.value, traits.recoverable, traits.retryable) == expected

    def test_added_kinds(self):
        assert traits_for(ErrorKind.CIRCUIT_OPEN).retryable is False
        assert traits_for(ErrorKind.FRAUD_DETECTED).recoverable is False
        assert traits_for(ErrorKind.INVALID_PROOF).severity is Severity.MEDIUM

    def test_taxonomy_is_read_only(self):
        with pytest.raises(TypeError):
            TAXONOMY[ErrorKind.NETWORK_ERROR] = TAXONOMY[ErrorKind.API_ERROR]  # type: ignore[index]


class TestTypedError:
    def test_defaults_from_taxonomy(self):
        err = TypedError(ErrorKind.API_ERROR)
        assert err.severity is Severity.HIGH
        assert err.recoverable is True
        assert err.retryable is True
        assert err.message == "Remote service returned an error"
        assert err.user_message == TAXONOMY[ErrorKind.API_ERROR].user_message

    def test_accepts_kind_string(self):
        assert TypedError("timeout_error").kind is ErrorKind.TIMEOUT_ERROR

    def test_explicit_overrides(self):
        err = TypedError(ErrorKind.NETWORK_ERROR, "boom", retryable=False, severity=Severity.LOW)
        assert err.retryable is False
        assert err.severity is Severity.LOW
        assert str(err) == "boom"

    def test_correlation_ids_are_unique(self):
        ids = {TypedError(ErrorKind.UNKNOWN_ERROR).correlation_id for _ in range(200)}
        assert len(ids) == 200
        assert all(i.startswith("err_") for i in ids)

    def test_timestamp_is_aware(self):
        assert TypedError(ErrorKind.UNKNOWN_ERROR).timestamp.tzinfo is not None

    def test_fields_cannot_be_reassigned(self):
        err = TypedError(ErrorKind.NETWORK_ERROR)
        with pytest.raises(AttributeError):
            err.kind = ErrorKind.API_ERROR  # type: ignore[misc]
        with pytest.raises(AttributeError):
            err.retryable = False  # type: ignore[misc]
        with pytest.raises(AttributeError):
            del err.message

    def test_context_is_copied_and_read_only(self):
        ctx = {"attempt": 1}
        err = TypedError(ErrorKind.NETWORK_ERROR, context=ctx)
        ctx["attempt"] = 2
        assert err.context["attempt"] == 1
        with pytest.raises(TypeError):
            err.context["attempt"] = 3  # type: ignore[index]

    def test_cause_is_chained(self):
        cause = ConnectionError("reset")
        err = TypedError(ErrorKind.NETWORK_ERROR, cause=cause)
        assert err.__cause__ is cause
        assert err.cause is cause

    def test_can_be_raised(self):
        with pytest.raises(TypedError) as info:
            raise TypedError(ErrorKind.CHALLENGE_EXPIRED)
        assert info.value.kind is ErrorKind.CHALLENGE_EXPIRED

    def test_for_user_hides_internal_message(self):
        err = TypedError(ErrorKind.API_ERROR, "upstream 503 from pod api-7f9c")
        payload = err.for_user()
        assert "api-7f9c" not in json.dumps(payload)
        assert payload["correlation_id"] == err.correlation_id

    def test_to_dict_is_json_safe(self):
        err = TypedError(
            ErrorKind.RATE_LIMITED,
            context={"kind": ErrorKind.API_ERROR, "values": (1, 2), "obj": object()},
            cause=ValueError("x"),
        )
        data = json.loads(json.dumps(err.to_dict()))
        assert data["kind"] == "rate_limited"
        assert data["context"]["kind"] == "api_error"
        assert data["context"]["values"] == [1, 2]
        assert data["cause"] == "ValueError: x"


class TestCircuitOpenError:
    def test_is_typed_and_not_retryable(self):
        err = CircuitOpenError("fetch_profile")
        assert isinstance(err, TypedError)
        assert err.kind is ErrorKind.CIRCUIT_OPEN
        assert err.retryable is False
        assert err.circuit == "fetch_profile"
        assert "fetch_profile" in err.message

    def test_is_retryable_helper(self):
        assert is_retryable(TypedError(ErrorKind.TIMEOUT_ERROR)) is True
        assert is_retryable(CircuitOpenError("x")) is False
        assert is_retryable(RuntimeError("raw")) is False
