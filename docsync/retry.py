from collections.abc import Callable
from typing import TypeVar

from loguru import logger
from qdrant_client.http.exceptions import ResponseHandlingException, UnexpectedResponse
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

T = TypeVar("T")

RETRYABLE_EXCEPTIONS: tuple[type[BaseException], ...] = (
    ConnectionError,
    TimeoutError,
    OSError,
    ResponseHandlingException,
    UnexpectedResponse,
)


def _log_retry(state: RetryCallState) -> None:
    exc = state.outcome.exception() if state.outcome else None
    logger.warning(
        "Retrying {} (attempt {}) after error: {}",
        getattr(state.fn, "__name__", "call"),
        state.attempt_number,
        exc,
    )


def retrying(attempts: int, max_wait: float = 10.0) -> Retrying:
    return Retrying(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=0.5, max=max_wait),
        retry=retry_if_exception_type(RETRYABLE_EXCEPTIONS),
        before_sleep=_log_retry,
        reraise=True,
    )


def call_with_retry(
    fn: Callable[..., T], *args, attempts: int = 3, max_wait: float = 10.0, **kwargs
) -> T:
    """Run `fn` under the retry policy; the last error is re-raised unchanged."""
    return retrying(attempts, max_wait)(fn, *args, **kwargs)
