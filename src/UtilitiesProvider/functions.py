"""Provider functions: path inspection and a retrying HTTP request.

Functions take positional arguments like their Terraform counterparts and
raise :class:`~UtilitiesProvider.errors.FunctionError` carrying the 1-based
index of the argument the failure is attributed to.
"""

from __future__ import annotations

import logging
import os
import stat
from datetime import datetime, timezone
from typing import Mapping, Optional

import httpx
from tenacity.wait import wait_base

from .errors import FunctionError, OwnershipError
from .io import OwnershipProvider, default_ownership_provider
from .models import HttpResponse, PathExistsResult
from .net import get_http_client
from .network.retry import create_http_retry_policy, is_retryable_status
from .settings import RetrySettings, get_settings

__all__ = [
    "path_exists",
    "path_owner",
    "path_permission",
    "http_request",
    "rfc3339_now",
]

LOGGER = logging.getLogger("UtilitiesProvider.functions")


def rfc3339_now() -> str:
    now = datetime.now(timezone.utc).replace(microsecond=0)
    return now.isoformat().replace("+00:00", "Z")


# ============================================================================
# PATH FUNCTIONS
# ============================================================================


def path_exists(path: str) -> PathExistsResult:
    """Report whether ``path`` exists; any error other than "not found" counts as existing."""

    try:
        os.stat(path)
    except FileNotFoundError:
        return PathExistsResult(exists=False)
    except OSError:
        return PathExistsResult(exists=True)
    return PathExistsResult(exists=True)


def path_owner(path: str, *, ownership: Optional[OwnershipProvider] = None) -> str:
    """Return the name of the user owning ``path``."""

    if not path:
        raise FunctionError(1, "Path cannot be empty")
    provider = ownership or default_ownership_provider()
    try:
        os.stat(path)
    except OSError as exc:
        LOGGER.error(
            "failed to retrieve path information",
            extra={"stage": "function", "path": path, "detail": str(exc)},
        )
        raise FunctionError(1, "Error retrieving path information") from exc
    try:
        return provider.owner_name(path)
    except (OwnershipError, OSError) as exc:
        raise FunctionError(1, "Error retrieving file owner information") from exc


def path_permission(path: str) -> str:
    """Return the permission bits of ``path`` as a ``%04o`` string."""

    if not path:
        raise FunctionError(1, "Path cannot be empty")
    try:
        info = os.stat(path)
    except OSError as exc:
        raise FunctionError(1, f"Error retrieving path information: {exc}") from exc
    return f"{stat.S_IMODE(info.st_mode):04o}"


# ============================================================================
# HTTP REQUEST
# ============================================================================


def http_request(
    url: str,
    method: str = "GET",
    request_body: str = "",
    headers: Optional[Mapping[str, str]] = None,
    *,
    client: Optional[httpx.Client] = None,
    retry_settings: Optional[RetrySettings] = None,
    wait: Optional[wait_base] = None,
) -> HttpResponse:
    """Perform an HTTP request and return its body, status and a timestamp.

    Transient failures (transport errors, 429, 5xx other than 501) are
    retried with backoff unless retries are disabled in the settings.  When
    the retry budget runs out on an error status, that final response is
    returned as-is.

    Raises:
        FunctionError: ``1`` when the request cannot be built, ``2`` when it
            cannot be sent, ``3`` when the response body cannot be read.
    """

    http = client or get_http_client()
    settings = retry_settings or get_settings().retry

    if not method or not method.strip():
        raise FunctionError(1, "Failed to create HTTP request")
    try:
        request = http.build_request(
            method.strip().upper(),
            url,
            content=request_body.encode("utf-8") if request_body else None,
            headers=dict(headers or {}),
        )
    except (httpx.InvalidURL, TypeError, ValueError) as exc:
        LOGGER.error(
            "failed to create HTTP request",
            extra={"stage": "function", "url": url, "detail": str(exc)},
        )
        raise FunctionError(1, "Failed to create HTTP request") from exc

    def _send() -> httpx.Response:
        response = http.send(request, stream=True)
        if is_retryable_status(response.status_code):
            try:
                response.read()
            finally:
                response.close()
        return response

    policy = create_http_retry_policy(settings, wait=wait)
    try:
        response = policy(_send)
    except httpx.HTTPError as exc:
        LOGGER.error(
            "HTTP request failed",
            extra={"stage": "function", "url": url, "detail": str(exc)},
        )
        raise FunctionError(2, "Failed to execute HTTP request") from exc

    try:
        body = response.read()
    except httpx.HTTPError as exc:
        LOGGER.error(
            "failed to read response body",
            extra={"stage": "function", "url": url, "detail": str(exc)},
        )
        raise FunctionError(3, "Failed to read HTTP response body") from exc
    finally:
        response.close()

    return HttpResponse(
        response_body=body.decode(response.encoding or "utf-8", errors="replace"),
        status_code=response.status_code,
        timestamp=rfc3339_now(),
    )
