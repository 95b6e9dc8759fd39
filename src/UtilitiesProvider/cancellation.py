"""Cooperative cancellation primitives shared by long-running provider operations.

Resource lifecycles may be asked to stop while an archive is downloading or
halfway through extraction.  This module offers the light-weight
:class:`CancellationToken` checked at well-defined checkpoints, and
:class:`CancellationTokenGroup` used by the provider to broadcast a stop request
to every in-flight operation.  Cancellation never interrupts threads; it is
observed by :func:`raise_if_cancelled` and unwinds without rollback.
"""

from __future__ import annotations

import threading
from typing import Optional

from .errors import Canceled


class CancellationToken:
    """Thread-safe cancellation token for cooperative task cancellation.

    Examples:
        >>> token = CancellationToken()
        >>> token.is_cancelled()
        False
        >>> token.cancel()
        >>> token.is_cancelled()
        True
    """

    def __init__(self) -> None:
        self._is_cancelled = threading.Event()
        self._lock = threading.Lock()

    def cancel(self) -> None:
        """Signal that cancellation has been requested."""
        with self._lock:
            self._is_cancelled.set()

    def is_cancelled(self) -> bool:
        """Return ``True`` once cancellation has been requested."""
        return self._is_cancelled.is_set()

    def reset(self) -> None:
        """Reset the token to its initial state (tests and controlled reuse only)."""
        with self._lock:
            self._is_cancelled.clear()


class CancellationTokenGroup:
    """A group of cancellation tokens that can be cancelled together.

    The provider owns one group; every operation it starts receives a token
    from it so ``Provider.stop()`` reaches all of them at once.
    """

    def __init__(self) -> None:
        self._tokens: list[CancellationToken] = []
        self._lock = threading.Lock()
        self._cancelled = False

    def add_token(self, token: CancellationToken) -> None:
        """Add ``token`` to this group, cancelling it if the group already was."""
        with self._lock:
            self._tokens.append(token)
            if self._cancelled:
                token.cancel()

    def create_token(self) -> CancellationToken:
        """Create a new token that belongs to this group."""
        token = CancellationToken()
        self.add_token(token)
        return token

    def remove_token(self, token: CancellationToken) -> None:
        """Release ``token`` once the associated operation has finished."""

        with self._lock:
            try:
                self._tokens.remove(token)
            except ValueError:
                # Already released.
                pass

    def cancel_all(self) -> None:
        """Cancel every token in the group, including tokens added later."""
        with self._lock:
            self._cancelled = True
            for token in self._tokens:
                token.cancel()

    def is_any_cancelled(self) -> bool:
        with self._lock:
            return any(token.is_cancelled() for token in self._tokens)

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)


def raise_if_cancelled(token: Optional[CancellationToken], stage: str) -> None:
    """Raise :class:`Canceled` for ``stage`` when ``token`` has been cancelled.

    A ``None`` token means the caller did not supply a cancellation signal.
    """

    if token is not None and token.is_cancelled():
        raise Canceled(stage)


# === NAVMAP v1 ===
# {
#   "module": "UtilitiesProvider.cancellation",
#   "purpose": "Provide cooperative cancellation tokens shared by resource lifecycles and downloads",
#   "sections": [
#     {"id": "token", "name": "CancellationToken", "anchor": "TOK", "kind": "api"},
#     {"id": "group", "name": "CancellationTokenGroup", "anchor": "GRP", "kind": "api"},
#     {"id": "checkpoint", "name": "raise_if_cancelled", "anchor": "CHK", "kind": "api"}
#   ]
# }
# === /NAVMAP ===
