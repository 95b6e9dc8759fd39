"""Network retry policies: Tenacity-based backoff for resilient HTTP.

Used by the ``http_request`` provider function, which retries transient
failures the way a retrying HTTP client would:

- Transport errors (connection refused, DNS, timeouts, protocol errors)
- Rate limiting (429, honouring ``Retry-After``)
- Server errors (5xx other than 501 Not Implemented)

When the attempts are exhausted on a retryable *response*, the last response
is handed back to the caller instead of raising, so the function can still
report the final status code.  Exhausted transport errors are re-raised.

Archive downloads performed by the extraction resources are deliberately not
wrapped in this policy.

Example:
    >>> from UtilitiesProvider.network.retry import create_http_retry_policy
    >>> policy = create_http_retry_policy()
    >>> response = policy(client.get, "https://api.example.com/data")
"""

from __future__ import annotations

import email.utils
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

import httpx
from tenacity import (
    RetryCallState,
    Retrying,
    before_sleep_log,
    retry_if_exception,
    retry_if_result,
    stop_after_attempt,
    stop_after_delay,
    wait_random_exponential,
)
from tenacity.wait import wait_base

from ..settings import RetrySettings

logger = logging.getLogger(__name__)

RETRYABLE_EXCEPTIONS = (httpx.TransportError,)


def is_retryable_exception(exc: BaseException) -> bool:
    """Return ``True`` for transport failures worth another attempt."""

    return isinstance(exc, RETRYABLE_EXCEPTIONS) and not isinstance(exc, httpx.UnsupportedProtocol)


# ============================================================================
# Retry Policies
# ============================================================================


def _parse_retry_after_value(value: Optional[str]) -> Optional[float]:
    """Convert a Retry-After header value into a delay in seconds."""
    if not value:
        return None

    try:
        delay = float(int(value))
    except ValueError:
        try:
            dt = email.utils.parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return None
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        delay = (dt - datetime.now(timezone.utc)).total_seconds()

    return max(0.0, delay)


def _extract_retry_after_seconds(candidate: object) -> Optional[float]:
    """Extract Retry-After guidance from an HTTPX response-like object."""
    if candidate is None:
        return None
    headers = getattr(candidate, "headers", None)
    if headers is None:
        return None
    return _parse_retry_after_value(headers.get("Retry-After"))


class _RetryAfterOrBackoff(wait_base):
    """Wait strategy that honours Retry-After before falling back to backoff."""

    def __init__(self, fallback_wait: wait_base, max_delay_seconds: float) -> None:
        self._fallback_wait = fallback_wait
        self._max_delay_seconds = max_delay_seconds

    def __call__(self, retry_state: RetryCallState) -> float:
        delay = self._retry_after_delay(retry_state)
        if delay is not None:
            return min(delay, float(self._max_delay_seconds))
        return float(self._fallback_wait(retry_state))

    def _retry_after_delay(self, retry_state: RetryCallState) -> Optional[float]:
        outcome = retry_state.outcome
        if outcome is None or outcome.failed:
            return None
        return _extract_retry_after_seconds(outcome.result())


def is_retryable_status(status_code: int) -> bool:
    """Return ``True`` for 429 and every 5xx except 501."""

    return status_code == 429 or (status_code >= 500 and status_code != 501)


def _retry_on_status(response: object) -> bool:
    status_code = getattr(response, "status_code", None)
    if status_code is None:
        return False
    return is_retryable_status(int(status_code))


def _return_last_response(retry_state: RetryCallState):
    """Hand back the final response once attempts run out; re-raise final errors."""

    outcome = retry_state.outcome
    if outcome is None:  # pragma: no cover - tenacity always records an outcome
        return None
    if outcome.failed:
        raise outcome.exception()
    logger.warning(
        "giving up after %s attempts",
        retry_state.attempt_number,
        extra={"stage": "http", "attempt": retry_state.attempt_number},
    )
    return outcome.result()


def create_http_retry_policy(
    settings: Optional[RetrySettings] = None,
    *,
    wait: Optional[wait_base] = None,
    sleep: Optional[Callable[[float], None]] = None,
) -> Retrying:
    """Create the Tenacity retry policy used for provider HTTP calls.

    Args:
        settings: Attempt budget and backoff bounds; defaults to
            :class:`RetrySettings` defaults.
        wait: Override the wait strategy (tests pass ``wait_none()``).
        sleep: Override the sleep function.

    Returns:
        A :class:`tenacity.Retrying` to be invoked as ``policy(fn, *args)``.
        With ``settings.enabled`` false the policy makes exactly one attempt.
    """

    cfg = settings or RetrySettings()
    max_attempts = cfg.max_attempts if cfg.enabled else 1

    wait_strategy = wait
    if wait_strategy is None:
        wait_strategy = _RetryAfterOrBackoff(
            fallback_wait=wait_random_exponential(
                multiplier=cfg.backoff_base,
                max=cfg.backoff_max,
            ),
            max_delay_seconds=cfg.backoff_max,
        )

    kwargs = {}
    if sleep is not None:
        kwargs["sleep"] = sleep

    return Retrying(
        stop=stop_after_attempt(max_attempts) | stop_after_delay(cfg.max_delay_seconds),
        wait=wait_strategy,
        retry=(
            retry_if_exception(is_retryable_exception)
            | retry_if_result(_retry_on_status)
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING, exc_info=True),
        retry_error_callback=_return_last_response,
        reraise=True,
        **kwargs,
    )


__all__ = [
    "RETRYABLE_EXCEPTIONS",
    "create_http_retry_policy",
    "is_retryable_exception",
    "is_retryable_status",
]
