import asyncio
import random
from typing import NamedTuple

import openai
from google.api_core import exceptions as google_exceptions

_RETRYABLE_TYPES = (
    asyncio.TimeoutError,
    TimeoutError,
    google_exceptions.TooManyRequests,
    google_exceptions.ResourceExhausted,
    google_exceptions.ServiceUnavailable,
    google_exceptions.DeadlineExceeded,
    google_exceptions.InternalServerError,
    openai.RateLimitError,
    openai.APITimeoutError,
    openai.APIConnectionError,
    openai.InternalServerError,
)

_TERMINAL_TYPES = (
    google_exceptions.Unauthenticated,
    google_exceptions.PermissionDenied,
    google_exceptions.InvalidArgument,
    google_exceptions.BadRequest,
    openai.AuthenticationError,
    openai.PermissionDeniedError,
    openai.BadRequestError,
)

_RETRYABLE_TOKENS = (
    "429",
    "too many requests",
    "rate limit",
    "resource exhausted",
    "resource_exhausted",
    "overloaded",
    "engine_overloaded_error",
    "timeout",
    "timed out",
    "unavailable",
    "concurrency",
)


class RetryDecision(NamedTuple):
    retry: bool
    delay: float
    retryable: bool


def is_retryable_error(error: BaseException) -> bool:
    """Rate-limit and transient failures are retryable; auth and malformed requests are not."""
    if isinstance(error, _TERMINAL_TYPES):
        return False
    if isinstance(error, _RETRYABLE_TYPES):
        return True
    error_str = str(error).lower()
    return any(token in error_str for token in _RETRYABLE_TOKENS)


def backoff_delay(attempt: int, base_delay: float, jitter: float = 0.0) -> float:
    delay = base_delay * (2 ** attempt)
    if jitter > 0:
        delay += random.uniform(0, delay * jitter)
    return delay


def plan_retry(
    attempt: int,
    error: BaseException,
    *,
    max_retries: int,
    base_delay: float,
    jitter: float = 0.0,
) -> RetryDecision:
    """
    Decides what to do after the zero-based `attempt` failed with `error`.
    `max_retries` is the total attempt budget, so max_retries=3 allows delays
    of base_delay and 2*base_delay before giving up.
    """
    retryable = is_retryable_error(error)
    if not retryable or attempt + 1 >= max_retries:
        return RetryDecision(retry=False, delay=0.0, retryable=retryable)
    return RetryDecision(retry=True, delay=backoff_delay(attempt, base_delay, jitter), retryable=True)
