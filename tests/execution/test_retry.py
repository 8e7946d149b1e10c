"""Tests for RetryPolicy, compute_delay and RetryScheduler."""

from __future__ import annotations

import pytest

from spotcheck.core.classifier import ErrorClassifier
from spotcheck.core.errors import CircuitOpenError, ErrorKind, TypedError
from spotcheck.core.settings import SpotcheckSettings
from spotcheck.execution.circuit_breaker import CircuitBreakerRegistry, CircuitState
from spotcheck.execution.retry import (
    DEFAULT_RETRY_POLICY,
    GPS_POLICY,
    STORAGE_POLICY,
    RetryPolicy,
    RetryScheduler,
    compute_delay,
)


class HttpError(Exception):
    def __init__(self, status: int):
        self.status = status
        super().__init__(f"HTTP {status}")


class QuotaExceededError(Exception):
    pass


class Flaky:
    """Fails with the given exceptions, then returns ``result``."""

    def __init__(self, *errors: BaseException, result: object = "done"):
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


@pytest.fixture
def scheduler(recording_sleep, fake_clock):
    return RetryScheduler(
        ErrorClassifier(),
        CircuitBreakerRegistry(clock=fake_clock),
        sleep=recording_sleep,
        rng=lambda: 0.5,
    )


# ── Policy / delays ──────────────────────────────────────────────────────


class TestRetryPolicy:
    def test_default(self):
        assert DEFAULT_RETRY_POLICY.max_attempts == 3
        assert DEFAULT_RETRY_POLICY.base_delay == 1.0
        assert DEFAULT_RETRY_POLICY.max_delay == 10.0
        assert DEFAULT_RETRY_POLICY.retryable_kinds == {
            ErrorKind.NETWORK_ERROR,
            ErrorKind.API_ERROR,
            ErrorKind.TIMEOUT_ERROR,
            ErrorKind.RATE_LIMITED,
        }

    def test_presets(self):
        assert GPS_POLICY.max_attempts == 2
        assert GPS_POLICY.retryable_kinds == {ErrorKind.TIMEOUT_ERROR}
        assert STORAGE_POLICY.retryable_kinds == {ErrorKind.STORAGE_ERROR}

    @pytest.mark.parametrize(
        "changes",
        [{"max_attempts": 0}, {"backoff_multiplier": 1.0}, {"base_delay": -1}, {"jitter_ratio": 2}],
    )
    def test_validation(self, changes):
        with pytest.raises(ValueError):
            DEFAULT_RETRY_POLICY.with_overrides(**changes)

    def test_from_settings(self, tmp_path):
        settings = SpotcheckSettings(data_dir=tmp_path, retry_max_attempts=6, retry_base_delay=0.25)
        policy = RetryPolicy.from_settings(settings)
        assert policy.max_attempts == 6
        assert policy.base_delay == 0.25

    def test_with_overrides_is_a_copy(self):
        p = DEFAULT_RETRY_POLICY.with_overrides(max_attempts=5)
        assert p.max_attempts == 5
        assert DEFAULT_RETRY_POLICY.max_attempts == 3


class TestComputeDelay:
    def test_exponential_without_jitter(self):
        assert [compute_delay(n, DEFAULT_RETRY_POLICY, lambda: 0.0) for n in (1, 2, 3, 4)] == [
            1.0,
            2.0,
            4.0,
            8.0,
        ]

    def test_jitter_up_to_ten_percent(self):
        assert compute_delay(1, DEFAULT_RETRY_POLICY, lambda: 0.999) == pytest.approx(1.0999)

    def test_never_exceeds_max_delay(self):
        for attempt in range(1, 12):
            assert compute_delay(attempt, DEFAULT_RETRY_POLICY, lambda: 0.999) <= 10.0
        assert compute_delay(5, DEFAULT_RETRY_POLICY, lambda: 0.999) == 10.0

    def test_attempt_is_one_based(self):
        with pytest.raises(ValueError):
            compute_delay(0)


# ── execute_with_retry ───────────────────────────────────────────────────


class TestExecuteWithRetry:
    @pytest.mark.asyncio
    async def test_success_first_try(self, scheduler, recording_sleep):
        op = Flaky()
        assert await scheduler.execute_with_retry(op) == "done"
        assert op.calls == 1
        assert recording_sleep.delays == []

    @pytest.mark.asyncio
    async def test_retries_transient_then_succeeds(self, scheduler, recording_sleep):
        op = Flaky(TimeoutError(), HttpError(503))
        assert await scheduler.execute_with_retry(op) == "done"
        assert op.calls == 3
        assert recording_sleep.delays == [pytest.approx(1.05), pytest.approx(2.1)]

    @pytest.mark.asyncio
    async def test_non_retryable_raises_immediately(self, scheduler, recording_sleep):
        raw = HttpError(401)
        op = Flaky(raw)
        with pytest.raises(TypedError) as info:
            await scheduler.execute_with_retry(op)
        assert info.value.kind is ErrorKind.AUTHENTICATION_ERROR
        assert info.value.__cause__ is raw
        assert op.calls == 1
        assert recording_sleep.delays == []

    @pytest.mark.asyncio
    async def test_storage_policy_retries_quota_failure(self, scheduler, recording_sleep):
        op = Flaky(QuotaExceededError("storage quota exceeded"), result="saved")
        assert await scheduler.execute_with_retry(op, STORAGE_POLICY) == "saved"
        assert op.calls == 2
        assert recording_sleep.delays == [pytest.approx(0.525)]

    @pytest.mark.asyncio
    async def test_default_policy_does_not_retry_storage(self, scheduler):
        op = Flaky(QuotaExceededError("storage quota exceeded"))
        with pytest.raises(TypedError) as info:
            await scheduler.execute_with_retry(op)
        assert info.value.kind is ErrorKind.STORAGE_ERROR
        assert op.calls == 1

    @pytest.mark.asyncio
    async def test_exhaustion_makes_exactly_max_attempts(self, scheduler, recording_sleep):
        op = Flaky(*(ConnectionError("down") for _ in range(5)))
        with pytest.raises(TypedError) as info:
            await scheduler.execute_with_retry(op)
        assert info.value.kind is ErrorKind.NETWORK_ERROR
        assert info.value.context["attempt"] == 3
        assert op.calls == 3
        assert len(recording_sleep.delays) == 2

    @pytest.mark.asyncio
    async def test_kind_outside_policy_not_retried(self, scheduler):
        op = Flaky(ConnectionError("down"))
        with pytest.raises(TypedError):
            await scheduler.execute_with_retry(op, GPS_POLICY)
        assert op.calls == 1

    @pytest.mark.asyncio
    async def test_custom_predicate_overrides_kind(self, scheduler):
        op = Flaky(ValueError("odd"), ValueError("odd"))
        result = await scheduler.execute_with_retry(op, should_retry=lambda e: isinstance(e, ValueError))
        assert result == "done"
        assert op.calls == 3

    @pytest.mark.asyncio
    async def test_typed_error_raised_as_is(self, scheduler):
        typed = TypedError(ErrorKind.CHALLENGE_EXPIRED)
        with pytest.raises(TypedError) as info:
            await scheduler.execute_with_retry(Flaky(typed))
        assert info.value is typed

    @pytest.mark.asyncio
    async def test_callbacks(self, scheduler):
        retries: list[tuple[int, ErrorKind, float]] = []
        failures: list[int] = []
        op = Flaky(TimeoutError())
        await scheduler.execute_with_retry(
            op,
            on_retry=lambda attempt, err, delay: retries.append((attempt, err.kind, delay)),
            on_failure=lambda err, attempt: failures.append(attempt),
        )
        assert retries == [(1, ErrorKind.TIMEOUT_ERROR, pytest.approx(1.05))]
        assert failures == [1]

    @pytest.mark.asyncio
    async def test_single_attempt_policy(self, scheduler, recording_sleep):
        op = Flaky(TimeoutError())
        with pytest.raises(TypedError):
            await scheduler.execute_with_retry(op, DEFAULT_RETRY_POLICY.with_overrides(max_attempts=1))
        assert op.calls == 1
        assert recording_sleep.delays == []


# ── execute_with_circuit_breaker ─────────────────────────────────────────


class TestExecuteWithCircuitBreaker:
    @pytest.mark.asyncio
    async def test_failures_count_toward_breaker(self, scheduler):
        op = Flaky(*(HttpError(500) for _ in range(3)))
        with pytest.raises(TypedError):
            await scheduler.execute_with_circuit_breaker(op, "fetch_leaderboard")
        assert scheduler.breakers.get("fetch_leaderboard").failure_count == 3

    @pytest.mark.asyncio
    async def test_open_circuit_is_terminal(self, scheduler, recording_sleep):
        scheduler.breakers.get_or_create("fetch_profile").force_open()
        op = Flaky()
        with pytest.raises(CircuitOpenError):
            await scheduler.execute_with_circuit_breaker(op, "fetch_profile")
        assert op.calls == 0
        assert recording_sleep.delays == []

    @pytest.mark.asyncio
    async def test_open_circuit_recorded_in_diagnostics(self, scheduler):
        scheduler.breakers.get_or_create("fetch_profile").force_open()
        with pytest.raises(CircuitOpenError) as info:
            await scheduler.execute_with_circuit_breaker(Flaky(), "fetch_profile")
        assert scheduler.classifier.recent() == [info.value]
        assert info.value.kind is ErrorKind.CIRCUIT_OPEN

    @pytest.mark.asyncio
    async def test_breaker_opens_mid_retry(self, scheduler):
        scheduler.breakers.get_or_create("submit_proof", failure_threshold=2)
        op = Flaky(*(TimeoutError() for _ in range(5)))
        with pytest.raises(CircuitOpenError):
            await scheduler.execute_with_circuit_breaker(op, "submit_proof")
        assert op.calls == 2
        assert scheduler.breakers.snapshot()["submit_proof"] is CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_circuit_in_context(self, scheduler):
        with pytest.raises(TypedError) as info:
            await scheduler.execute_with_circuit_breaker(Flaky(HttpError(403)), "fetch_profile")
        assert info.value.context["circuit"] == "fetch_profile"


# ── retry_batch ──────────────────────────────────────────────────────────


class TestRetryBatch:
    @pytest.mark.asyncio
    async def test_outcomes_in_order(self, scheduler):
        outcomes = await scheduler.retry_batch(
            [Flaky(result=1), Flaky(HttpError(401)), Flaky(TimeoutError(), result=3)]
        )
        assert [o.success for o in outcomes] == [True, False, True]
        assert outcomes[0].result == 1
        assert outcomes[1].error.kind is ErrorKind.AUTHENTICATION_ERROR
        assert outcomes[2].result == 3
