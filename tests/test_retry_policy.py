import asyncio

from google.api_core import exceptions as google_exceptions

from refinery.utils.retries import backoff_delay, is_retryable_error, plan_retry


def test_rate_limit_backs_off_exponentially_within_budget():
    err = RuntimeError("429 Too Many Requests")
    first = plan_retry(0, err, max_retries=3, base_delay=0.5)
    second = plan_retry(1, err, max_retries=3, base_delay=0.5)
    last = plan_retry(2, err, max_retries=3, base_delay=0.5)

    assert first.retry and first.delay == 0.5
    assert second.retry and second.delay == 1.0
    assert not last.retry
    assert last.retryable


def test_non_retryable_error_stops_immediately():
    decision = plan_retry(0, ValueError("invalid api key"), max_retries=5, base_delay=1.0)
    assert decision.retry is False
    assert decision.retryable is False
    assert decision.delay == 0.0


def test_provider_exception_classes_are_classified():
    assert is_retryable_error(google_exceptions.ResourceExhausted("quota"))
    assert is_retryable_error(asyncio.TimeoutError())
    # Terminal classes win even when the message looks transient.
    assert not is_retryable_error(google_exceptions.PermissionDenied("rate limit"))


def test_single_attempt_budget_never_retries():
    decision = plan_retry(0, RuntimeError("service unavailable"), max_retries=1, base_delay=1.0)
    assert decision.retry is False
    assert decision.retryable is True


def test_jitter_stays_within_fraction():
    for _ in range(20):
        delay = backoff_delay(2, 1.0, jitter=0.25)
        assert 4.0 <= delay <= 5.0
