# === NAVMAP v1 ===
# {
#   "module": "UtilitiesProvider.net",
#   "purpose": "Provide the shared HTTPX client used for archive downloads and http_request",
#   "sections": [
#     {"id": "constants", "name": "Constants & globals", "anchor": "CONST", "kind": "constants"},
#     {"id": "helpers", "name": "Client construction helpers", "anchor": "HELP", "kind": "helpers"},
#     {"id": "api", "name": "Public API", "anchor": "API", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Shared HTTPX client used across provider networking."""

from __future__ import annotations

import contextlib
import logging
import ssl
import threading
from typing import Callable, Optional

import certifi
import httpx

from .settings import HttpSettings, get_settings

LOGGER = logging.getLogger("UtilitiesProvider.net")

# --- Constants & globals -------------------------------------------------------

_CLIENT_LOCK = threading.RLock()
_HTTP_CLIENT: Optional[httpx.Client] = None
_CLIENT_FACTORY: Optional[Callable[[], Optional[httpx.Client]]] = None

# --- Client construction helpers ----------------------------------------------


def _build_ssl_context() -> ssl.SSLContext:
    context = ssl.create_default_context()
    context.load_verify_locations(certifi.where())
    return context


def _timeout_for(config: HttpSettings) -> httpx.Timeout:
    return httpx.Timeout(
        connect=config.connect_timeout_sec,
        read=config.read_timeout_sec,
        write=config.write_timeout_sec,
        pool=config.pool_timeout_sec,
    )


def _log_response(response: httpx.Response) -> None:
    LOGGER.debug(
        "http-response",
        extra={
            "stage": "http",
            "url": str(response.request.url),
            "status": response.status_code,
        },
    )


def build_http_client(config: Optional[HttpSettings] = None) -> httpx.Client:
    """Construct a new client from ``config`` (defaults to the cached settings)."""

    cfg = config or get_settings().http
    return httpx.Client(
        transport=httpx.HTTPTransport(retries=0, verify=_build_ssl_context()),
        timeout=_timeout_for(cfg),
        headers={"User-Agent": cfg.user_agent},
        trust_env=True,
        follow_redirects=cfg.follow_redirects,
        event_hooks={"response": [_log_response]},
    )


def _close_client_unlocked() -> None:
    global _HTTP_CLIENT
    if _HTTP_CLIENT is not None:
        with contextlib.suppress(Exception):
            _HTTP_CLIENT.close()
    _HTTP_CLIENT = None


# --- Public API ----------------------------------------------------------------


def configure_http_client(
    client: Optional[httpx.Client] = None,
    *,
    factory: Optional[Callable[[], Optional[httpx.Client]]] = None,
) -> None:
    """Override the shared HTTPX client or register a factory for tests."""

    if client is not None and factory is not None:
        raise ValueError("provide either a client or factory, not both")

    with _CLIENT_LOCK:
        global _HTTP_CLIENT, _CLIENT_FACTORY

        if client is None:
            _close_client_unlocked()
        else:
            if _HTTP_CLIENT is not client:
                _close_client_unlocked()
            _HTTP_CLIENT = client

        _CLIENT_FACTORY = factory


def reset_http_client() -> None:
    """Reset the shared HTTPX client to its default configuration (test helper)."""

    with _CLIENT_LOCK:
        global _CLIENT_FACTORY
        _CLIENT_FACTORY = None
        _close_client_unlocked()


def get_http_client(config: Optional[HttpSettings] = None) -> httpx.Client:
    """Return the shared HTTPX client, creating it if necessary."""

    global _HTTP_CLIENT

    with _CLIENT_LOCK:
        if _HTTP_CLIENT is not None:
            return _HTTP_CLIENT

        factory = _CLIENT_FACTORY
        if factory is not None:
            candidate = factory()
            if candidate is not None and not isinstance(candidate, httpx.Client):
                raise TypeError("client factory must return an httpx.Client or None")
            if candidate is not None:
                factory_name = getattr(
                    factory, "__qualname__", getattr(factory, "__name__", repr(factory))
                )
                LOGGER.info(
                    "using custom httpx client",
                    extra={"stage": "http", "factory": factory_name},
                )
                _HTTP_CLIENT = candidate
                return candidate

        _HTTP_CLIENT = build_http_client(config)
        return _HTTP_CLIENT


__all__ = [
    "build_http_client",
    "configure_http_client",
    "reset_http_client",
    "get_http_client",
]
