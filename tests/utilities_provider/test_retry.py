"""Tests for the Tenacity retry policy used by ``http_request``."""

from __future__ import annotations

import email.utils
from datetime import datetime, timedelta, timezone

import httpx
import pytest
from tenacity import wait_none

from UtilitiesProvider.network.retry import (
    _parse_retry_after_value,
    create_http_retry_policy,
    is_retryable_exception,
    is_retryable_status,
)
from UtilitiesProvider.settings import RetrySettings


@pytest.mark.parametrize(
    "status, expected",
    [(200, False), (404, False), (429, True), (500, True), (501, False), (502, True), (503, True), (599, True)],
)
def test_retryable_statuses(status, expected):
    assert is_retryable_status(status) is expected


def test_retryable_exceptions():
    assert is_retryable_exception(httpx.ConnectError("refused"))
    assert is_retryable_exception(httpx.ReadTimeout("slow"))
    assert not is_retryable_exception(httpx.UnsupportedProtocol("gopher"))
    assert not is_retryable_exception(ValueError("bad"))


def test_retry_after_header_values():
    assert _parse_retry_after_value("7") == 7.0
    assert _parse_retry_after_value(None) is None
    assert _parse_retry_after_value("soon") is None

    future = datetime.now(timezone.utc) + timedelta(seconds=60)
    delay = _parse_retry_after_value(email.utils.format_datetime(future))
    assert 0 < delay <= 60

    past = datetime.now(timezone.utc) - timedelta(seconds=60)
    assert _parse_retry_after_value(email.utils.format_datetime(past)) == 0.0


def test_policy_honours_retry_after():
    sleeps = []
    responses = iter(
        [
            httpx.Response(429, headers={"Retry-After": "2"}),
            httpx.Response(200),
        ]
    )

    policy = create_http_retry_policy(RetrySettings(backoff_max=10), sleep=sleeps.append)
    response = policy(lambda: next(responses))

    assert response.status_code == 200
    assert sleeps == [2.0]


def test_policy_caps_retry_after_at_backoff_max():
    sleeps = []
    responses = iter(
        [
            httpx.Response(503, headers={"Retry-After": "600"}),
            httpx.Response(200),
        ]
    )

    policy = create_http_retry_policy(RetrySettings(backoff_max=5), sleep=sleeps.append)
    policy(lambda: next(responses))

    assert sleeps == [5.0]


def test_policy_does_not_retry_unsupported_protocol():
    calls = []

    def _call():
        calls.append(1)
        raise httpx.UnsupportedProtocol("gopher://")

    policy = create_http_retry_policy(RetrySettings(max_attempts=4), wait=wait_none())
    with pytest.raises(httpx.UnsupportedProtocol):
        policy(_call)

    assert len(calls) == 1


def test_disabled_policy_makes_single_attempt():
    calls = []

    def _call():
        calls.append(1)
        return httpx.Response(500)

    policy = create_http_retry_policy(RetrySettings(enabled=False, max_attempts=9), wait=wait_none())

    assert policy(_call).status_code == 500
    assert len(calls) == 1
