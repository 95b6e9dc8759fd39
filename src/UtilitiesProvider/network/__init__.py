"""Network subsystem: shared HTTPX client and Tenacity retry policies.

Modules:
- retry: Tenacity-based retry policy for 429/5xx and transport failures

Example:
    >>> from UtilitiesProvider.network import get_http_client, create_http_retry_policy
    >>> client = get_http_client()
    >>> policy = create_http_retry_policy()
    >>> response = policy(client.get, url)
"""

from ..net import configure_http_client, get_http_client, reset_http_client
from .retry import (
    create_http_retry_policy,
    is_retryable_exception,
    is_retryable_status,
)

__all__ = [
    "configure_http_client",
    "get_http_client",
    "reset_http_client",
    "create_http_retry_policy",
    "is_retryable_exception",
    "is_retryable_status",
]
