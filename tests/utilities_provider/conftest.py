"""Shared fixtures for the utilities provider test suite."""

from __future__ import annotations

import io
import logging
import tarfile
import zipfile
from pathlib import Path
from typing import Callable, Dict, Iterable, Optional, Tuple, Union

import httpx
import pytest

from UtilitiesProvider import net as net_mod
from UtilitiesProvider.errors import OwnershipError
from UtilitiesProvider.testing import fresh_settings

_ENV_VARS = (
    "UTILITIES_LOG_LEVEL",
    "UTILITIES_LOG_DIR",
    "UTILITIES_HTTP_TIMEOUT_SEC",
    "UTILITIES_RETRY_MAX_ATTEMPTS",
    "UTILITIES_RETRY_MODE",
    "UTILITIES_TF_STATE",
    "HTTP_REQ_RETRY_MODE",
    "TF_STATE",
)

# name -> content (bytes/str for files, None for a directory entry)
ArchiveMembers = Iterable[Tuple[str, Optional[Union[str, bytes]]]]


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch):
    """Clear provider environment variables and cached singletons around each test."""

    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    net_mod.reset_http_client()
    with fresh_settings():
        yield
    net_mod.reset_http_client()
    package_logger = logging.getLogger("UtilitiesProvider")
    for handler in list(package_logger.handlers):
        if getattr(handler, "_utilities_managed", False):
            package_logger.removeHandler(handler)
            handler.close()
    package_logger.setLevel(logging.NOTSET)
    package_logger.propagate = True


def _as_bytes(content: Union[str, bytes]) -> bytes:
    return content.encode("utf-8") if isinstance(content, str) else content


@pytest.fixture
def make_zip(tmp_path) -> Callable[..., Path]:
    """Return a factory building ZIP archives under ``tmp_path``."""

    def _build(members: ArchiveMembers, name: str = "archive.zip", mode: int = 0o644) -> Path:
        archive = tmp_path / name
        with zipfile.ZipFile(archive, "w") as zf:
            for member, content in members:
                info = zipfile.ZipInfo(member)
                if content is None:
                    info.external_attr = (0o40755 << 16) | 0x10
                    zf.writestr(info, b"")
                else:
                    info.external_attr = (0o100000 | mode) << 16
                    zf.writestr(info, _as_bytes(content))
        return archive

    return _build


@pytest.fixture
def make_tar(tmp_path) -> Callable[..., Path]:
    """Return a factory building gzip-compressed tar archives under ``tmp_path``.

    Members whose content is a ``("symlink", target)`` tuple become symlinks.
    """

    def _build(members: ArchiveMembers, name: str = "archive.tar.gz", mode: int = 0o644) -> Path:
        archive = tmp_path / name
        with tarfile.open(archive, "w:gz") as tar:
            for member, content in members:
                info = tarfile.TarInfo(member)
                if content is None:
                    info.type = tarfile.DIRTYPE
                    info.mode = 0o755
                    tar.addfile(info)
                elif isinstance(content, tuple) and content[0] == "symlink":
                    info.type = tarfile.SYMTYPE
                    info.linkname = content[1]
                    tar.addfile(info)
                else:
                    data = _as_bytes(content)
                    info.size = len(data)
                    info.mode = mode
                    tar.addfile(info, io.BytesIO(data))
        return archive

    return _build


@pytest.fixture
def mock_client() -> Callable[..., httpx.Client]:
    """Return a factory for HTTPX clients served by a handler function."""

    clients = []

    def _build(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.Client:
        client = httpx.Client(transport=httpx.MockTransport(handler))
        clients.append(client)
        return client

    yield _build
    for client in clients:
        client.close()


class FakeOwnership:
    """Deterministic ownership provider recording ``chown`` calls."""

    def __init__(
        self,
        *,
        user: str = "alice",
        group: str = "staff",
        users: Optional[Dict[str, int]] = None,
        groups: Optional[Dict[str, int]] = None,
        fail_group_lookup: bool = False,
    ) -> None:
        self.user = user
        self.group = group
        self.users = users or {"alice": 1000, "bob": 1001}
        self.groups = groups or {"staff": 50, "wheel": 0}
        self.fail_group_lookup = fail_group_lookup
        self.chown_calls = []

    def current_user(self) -> str:
        return self.user

    def current_group(self) -> str:
        return self.group

    def user_id(self, name: str) -> int:
        if name not in self.users:
            raise OwnershipError(f"failed to lookup user '{name}'")
        return self.users[name]

    def group_id(self, name: str) -> int:
        if name not in self.groups:
            raise OwnershipError(f"failed to lookup group '{name}'")
        return self.groups[name]

    def owner_name(self, path: str) -> str:
        Path(path).stat()
        return self.user

    def group_name(self, path: str) -> str:
        Path(path).stat()
        if self.fail_group_lookup:
            raise OwnershipError("no group for gid 4242")
        return self.group

    def chown(self, path: str, uid: int, gid: int) -> None:
        self.chown_calls.append((path, uid, gid))


@pytest.fixture
def fake_ownership() -> FakeOwnership:
    return FakeOwnership()


@pytest.fixture
def ownership_factory() -> Callable[..., FakeOwnership]:
    """Return the :class:`FakeOwnership` constructor for tests needing custom lookups."""

    return FakeOwnership
