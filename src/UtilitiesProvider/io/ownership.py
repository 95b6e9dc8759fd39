"""User and group ownership behind a small capability interface.

Platforms with a UID/GID model use :class:`PosixOwnershipProvider`, built on
``pwd``, ``grp`` and ``os.chown``.  Everywhere else
:class:`NullOwnershipProvider` reports ``"unknown"`` owners and treats
``chown`` as a no-op.  :func:`default_ownership_provider` picks one once, so
the resources never branch on the platform themselves.
"""

from __future__ import annotations

import getpass
import os
from typing import Protocol, runtime_checkable

from ..errors import OwnershipError

__all__ = [
    "OwnershipProvider",
    "PosixOwnershipProvider",
    "NullOwnershipProvider",
    "UNKNOWN_OWNER",
    "default_ownership_provider",
]

UNKNOWN_OWNER = "unknown"


@runtime_checkable
class OwnershipProvider(Protocol):
    """Resolve and apply file ownership."""

    def current_user(self) -> str: ...

    def current_group(self) -> str: ...

    def user_id(self, name: str) -> int: ...

    def group_id(self, name: str) -> int: ...

    def owner_name(self, path: str) -> str: ...

    def group_name(self, path: str) -> str: ...

    def chown(self, path: str, uid: int, gid: int) -> None: ...


class PosixOwnershipProvider:
    """Ownership backed by the passwd and group databases."""

    def __init__(self) -> None:
        import grp
        import pwd

        self._grp = grp
        self._pwd = pwd

    def current_user(self) -> str:
        try:
            return self._pwd.getpwuid(os.getuid()).pw_name
        except KeyError as exc:
            raise OwnershipError(f"unable to resolve the current user: {exc}") from exc

    def current_group(self) -> str:
        try:
            return self._grp.getgrgid(os.getgid()).gr_name
        except KeyError as exc:
            raise OwnershipError(f"unable to resolve the current group: {exc}") from exc

    def user_id(self, name: str) -> int:
        try:
            return self._pwd.getpwnam(name).pw_uid
        except KeyError as exc:
            raise OwnershipError(f"failed to lookup user '{name}'") from exc

    def group_id(self, name: str) -> int:
        try:
            return self._grp.getgrnam(name).gr_gid
        except KeyError as exc:
            raise OwnershipError(f"failed to lookup group '{name}'") from exc

    def owner_name(self, path: str) -> str:
        uid = os.stat(path).st_uid
        try:
            return self._pwd.getpwuid(uid).pw_name
        except KeyError as exc:
            raise OwnershipError(f"no user for uid {uid}") from exc

    def group_name(self, path: str) -> str:
        gid = os.stat(path).st_gid
        try:
            return self._grp.getgrgid(gid).gr_name
        except KeyError as exc:
            raise OwnershipError(f"no group for gid {gid}") from exc

    def chown(self, path: str, uid: int, gid: int) -> None:
        try:
            os.chown(path, uid, gid)
        except OSError as exc:
            raise OwnershipError(f"failed to set ownership for path '{path}': {exc}") from exc


class NullOwnershipProvider:
    """Ownership for platforms without UIDs and GIDs."""

    def current_user(self) -> str:
        try:
            return getpass.getuser()
        except (KeyError, OSError):
            return UNKNOWN_OWNER

    def current_group(self) -> str:
        return UNKNOWN_OWNER

    def user_id(self, name: str) -> int:
        return -1

    def group_id(self, name: str) -> int:
        return -1

    def owner_name(self, path: str) -> str:
        os.stat(path)
        return UNKNOWN_OWNER

    def group_name(self, path: str) -> str:
        os.stat(path)
        return UNKNOWN_OWNER

    def chown(self, path: str, uid: int, gid: int) -> None:
        return None


def default_ownership_provider() -> OwnershipProvider:
    """Return the ownership provider suited to the running platform."""

    if hasattr(os, "chown") and os.name == "posix":
        return PosixOwnershipProvider()
    return NullOwnershipProvider()
