# === NAVMAP v1 ===
# {
#   "module": "tests.utilities_provider.test_functions",
#   "purpose": "Cover path inspection functions and the retrying http_request function",
#   "sections": []
# }
# === /NAVMAP ===

"""Tests for provider functions.

HTTP traffic is served by :class:`httpx.MockTransport` and retries run with
``wait_none`` so the suite never sleeps.
"""

from __future__ import annotations

import json
import os
from datetime import datetime

import httpx
import pytest
from tenacity import wait_none

from UtilitiesProvider.errors import FunctionError, OwnershipError
from UtilitiesProvider.functions import (
    http_request,
    path_exists,
    path_owner,
    path_permission,
)
from UtilitiesProvider.settings import RetrySettings
from UtilitiesProvider.testing import use_mock_http_client

# --- Path functions ---------------------------------------------------------------


def test_path_exists(tmp_path):
    present = tmp_path / "present.txt"
    present.write_text("x")

    assert path_exists(str(present)).exists is True
    assert path_exists(str(tmp_path)).exists is True
    assert path_exists(str(tmp_path / "absent")).exists is False


def test_path_permission(tmp_path):
    target = tmp_path / "file"
    target.write_text("x")
    os.chmod(target, 0o640)

    assert path_permission(str(target)) == "0640"


def test_path_permission_errors(tmp_path):
    with pytest.raises(FunctionError) as empty:
        path_permission("")
    assert empty.value.argument_index == 1
    assert str(empty.value) == "Path cannot be empty"

    with pytest.raises(FunctionError) as missing:
        path_permission(str(tmp_path / "absent"))
    assert str(missing.value).startswith("Error retrieving path information")


def test_path_owner(fake_ownership, tmp_path):
    assert path_owner(str(tmp_path), ownership=fake_ownership) == "alice"


def test_path_owner_errors(ownership_factory, tmp_path):
    with pytest.raises(FunctionError, match="Path cannot be empty"):
        path_owner("", ownership=ownership_factory())

    with pytest.raises(FunctionError, match="Error retrieving path information"):
        path_owner(str(tmp_path / "absent"), ownership=ownership_factory())

    class _NoOwner(ownership_factory):
        def owner_name(self, path: str) -> str:
            raise OwnershipError("no user for uid 4242")

    with pytest.raises(FunctionError, match="Error retrieving file owner information"):
        path_owner(str(tmp_path), ownership=_NoOwner())


# --- http_request -----------------------------------------------------------------


class _Scripted:
    """Handler replaying a list of statuses (or exceptions) and recording requests."""

    def __init__(self, *steps):
        self.steps = list(steps)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        step = self.steps.pop(0) if len(self.steps) > 1 else self.steps[0]
        if isinstance(step, Exception):
            raise step
        return httpx.Response(step, text=f"status {step}")


def _client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


def test_http_request_returns_body_status_and_timestamp():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["body"] = request.content
        seen["header"] = request.headers.get("X-Trace")
        return httpx.Response(201, json={"ok": True})

    with _client(handler) as client:
        result = http_request(
            "https://api.example.org/items",
            "post",
            '{"name": "x"}',
            {"X-Trace": "abc"},
            client=client,
        )

    assert result.status_code == 201
    assert json.loads(result.response_body) == {"ok": True}
    assert seen == {"method": "POST", "body": b'{"name": "x"}', "header": "abc"}
    assert result.timestamp.endswith("Z")
    datetime.fromisoformat(result.timestamp.replace("Z", "+00:00"))


def test_http_request_retries_transient_statuses():
    handler = _Scripted(503, 429, 200)

    with _client(handler) as client:
        result = http_request(
            "https://api.example.org/", client=client, retry_settings=RetrySettings(), wait=wait_none()
        )

    assert result.status_code == 200
    assert result.response_body == "status 200"
    assert len(handler.requests) == 3


def test_http_request_returns_last_response_when_retries_run_out():
    handler = _Scripted(502)

    with _client(handler) as client:
        result = http_request(
            "https://api.example.org/",
            client=client,
            retry_settings=RetrySettings(max_attempts=3),
            wait=wait_none(),
        )

    assert result.status_code == 502
    assert result.response_body == "status 502"
    assert len(handler.requests) == 3


@pytest.mark.parametrize("status", [404, 501])
def test_http_request_does_not_retry_permanent_statuses(status):
    handler = _Scripted(status)

    with _client(handler) as client:
        result = http_request("https://api.example.org/", client=client, wait=wait_none())

    assert result.status_code == status
    assert len(handler.requests) == 1


def test_http_request_with_retries_disabled_makes_one_attempt():
    handler = _Scripted(503)

    with _client(handler) as client:
        result = http_request(
            "https://api.example.org/",
            client=client,
            retry_settings=RetrySettings(enabled=False),
            wait=wait_none(),
        )

    assert result.status_code == 503
    assert len(handler.requests) == 1


def test_retry_mode_environment_switch_disables_retries(monkeypatch):
    monkeypatch.setenv("HTTP_REQ_RETRY_MODE", "false")
    handler = _Scripted(503)

    with _client(handler) as client:
        result = http_request("https://api.example.org/", client=client, wait=wait_none())

    assert result.status_code == 503
    assert len(handler.requests) == 1


def test_http_request_transport_failure_is_argument_two():
    handler = _Scripted(httpx.ConnectError("connection refused"))

    with _client(handler) as client:
        with pytest.raises(FunctionError) as excinfo:
            http_request(
                "https://api.example.org/",
                client=client,
                retry_settings=RetrySettings(max_attempts=2),
                wait=wait_none(),
            )

    assert excinfo.value.argument_index == 2
    assert str(excinfo.value) == "Failed to execute HTTP request"
    assert len(handler.requests) == 2


def test_http_request_recovers_after_transport_failure():
    handler = _Scripted(httpx.ReadTimeout("timed out"), 200)

    with _client(handler) as client:
        result = http_request("https://api.example.org/", client=client, wait=wait_none())

    assert result.status_code == 200
    assert len(handler.requests) == 2


@pytest.mark.parametrize("method", ["", "   "])
def test_http_request_invalid_method_is_argument_one(method):
    with _client(_Scripted(200)) as client:
        with pytest.raises(FunctionError) as excinfo:
            http_request("https://api.example.org/", method, client=client)

    assert excinfo.value.argument_index == 1
    assert str(excinfo.value) == "Failed to create HTTP request"


def test_http_request_uses_shared_client_by_default():
    handler = _Scripted(200)

    with use_mock_http_client(httpx.MockTransport(handler)):
        result = http_request("https://api.example.org/shared", wait=wait_none())

    assert result.status_code == 200
    assert str(handler.requests[0].url) == "https://api.example.org/shared"
