"""Retry policy for Kubernetes API calls.

Only transient failures are retried: network errors, timeouts, throttling
and server-side unavailability.  Semantic rejections such as validation
errors, conflicts or permission problems propagate on the first attempt.
"""

from __future__ import annotations

import logging
from typing import Callable, TypeVar

from kubernetes.client.exceptions import ApiException
from tenacity import RetryCallState, Retrying, retry_if_exception, stop_after_attempt, wait_exponential
from urllib3.exceptions import HTTPError as Urllib3HTTPError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_ATTEMPTS = 5
DEFAULT_WAIT = 0.5  # seconds, doubled after every failed attempt
MAX_WAIT = 10.0

TRANSIENT_STATUSES = {0, 429, 500, 502, 503, 504}


def is_transient(exc: BaseException) -> bool:
    """True if *exc* is worth retrying."""
    if isinstance(exc, ApiException):
        return exc.status in TRANSIENT_STATUSES
    return isinstance(exc, (Urllib3HTTPError, ConnectionError, TimeoutError))


def log_retry(
    fn: Callable[[], T],
    description: str,
    attempts: int = DEFAULT_ATTEMPTS,
    wait: float = DEFAULT_WAIT,
) -> T:
    """Call *fn*, retrying transient failures up to *attempts* times.

    Every failed attempt is logged with *description*.  The last error is
    re-raised once attempts are exhausted.
    """
    retryer = Retrying(
        retry=retry_if_exception(is_transient),
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=wait, max=MAX_WAIT),
        before_sleep=_log_attempt(description, attempts),
        reraise=True,
    )
    return retryer(fn)


def _log_attempt(description: str, attempts: int) -> Callable[[RetryCallState], None]:
    def log(state: RetryCallState) -> None:
        exc = state.outcome.exception() if state.outcome else None
        logger.warning(
            "Attempt %d/%d to %s failed, retrying: %s",
            state.attempt_number, attempts, description, _reason(exc),
        )
    return log


def _reason(exc: BaseException | None) -> str:
    if isinstance(exc, ApiException):
        return f"{exc.status} {exc.reason}"
    return str(exc)
