"""Test helpers for code that drives the provider over HTTP or with settings overrides."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

import httpx

from .net import configure_http_client, reset_http_client
from .settings import invalidate_settings_cache

__all__ = ["use_mock_http_client", "fresh_settings"]


@contextmanager
def use_mock_http_client(transport: httpx.BaseTransport, **client_kwargs) -> Iterator[httpx.Client]:
    """Temporarily install a shared HTTPX client backed by ``transport``."""

    client = httpx.Client(transport=transport, **client_kwargs)
    configure_http_client(client=client)
    try:
        yield client
    finally:
        reset_http_client()
        client.close()


@contextmanager
def fresh_settings() -> Iterator[None]:
    """Drop cached settings on entry and exit so environment changes take effect."""

    invalidate_settings_cache()
    try:
        yield
    finally:
        invalidate_settings_cache()
