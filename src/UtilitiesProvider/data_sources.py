"""Read-only data sources: local directory metadata and bcrypt hashes."""

from __future__ import annotations

import hashlib
import json
import logging
import os
import stat
from pathlib import Path
from typing import List, Optional

import bcrypt

from .errors import ConfigurationError, HashGenerationError, OwnershipError
from .io import OwnershipProvider, default_ownership_provider
from .models import BcryptHash, LocalDirectoryInfo
from .settings import BcryptSettings

__all__ = [
    "LocalDirectoryDataSource",
    "BcryptHashDataSource",
    "bcrypt_hash_id",
    "read_hash_from_state_file",
]

LOGGER = logging.getLogger("UtilitiesProvider.data_sources")


class LocalDirectoryDataSource:
    """``utilities_local_directory``: report whether a directory exists and who owns it."""

    type_name = "utilities_local_directory"

    def __init__(self, *, ownership: Optional[OwnershipProvider] = None) -> None:
        self._ownership = ownership or default_ownership_provider()

    def read(self, path: str) -> LocalDirectoryInfo:
        try:
            info = os.stat(path)
        except OSError:
            info = None
        if info is None or not stat.S_ISDIR(info.st_mode):
            return LocalDirectoryInfo(id=path, path=path, exists=False)

        try:
            user = self._ownership.owner_name(path)
        except OwnershipError:
            user = str(info.st_uid)
        try:
            group = self._ownership.group_name(path)
        except OwnershipError:
            group = str(info.st_gid)

        return LocalDirectoryInfo(
            id=path,
            path=path,
            exists=True,
            permissions=f"{stat.S_IMODE(info.st_mode):04o}",
            user=user,
            group=group,
        )


def bcrypt_hash_id(plaintext: str, cost: int) -> str:
    """Return the stable identifier of a ``(plaintext, cost)`` pair.

    The identifier is a SHA-256 digest so the plaintext never appears in state.
    """

    return hashlib.sha256(f"{plaintext}:{cost}".encode("utf-8")).hexdigest()


def read_hash_from_state_file(state_file: Path, expected_id: str) -> str:
    """Return the hash recorded for ``expected_id`` in a Terraform state file, or ``""``."""

    try:
        payload = json.loads(Path(state_file).read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return ""
    if not isinstance(payload, dict):
        return ""

    for resource in payload.get("resources") or []:
        if not isinstance(resource, dict) or resource.get("type") != BcryptHashDataSource.type_name:
            continue
        for instance in resource.get("instances") or []:
            attributes = instance.get("attributes") if isinstance(instance, dict) else None
            if isinstance(attributes, dict) and attributes.get("id") == expected_id:
                value = attributes.get("hash")
                return value if isinstance(value, str) else ""
    return ""


class BcryptHashDataSource:
    """``utilities_bcrypt_hash``: bcrypt a plaintext, reusing a previously recorded hash.

    bcrypt salts every hash, so a fresh hash differs on each read.  To keep
    plans stable the hash stored in the Terraform state for the same
    identifier is returned again as long as it still verifies.
    """

    type_name = "utilities_bcrypt_hash"

    def __init__(
        self,
        *,
        settings: Optional[BcryptSettings] = None,
        working_dir: Optional[Path] = None,
    ) -> None:
        self._settings = settings or BcryptSettings()
        self._working_dir = working_dir

    def state_files(self) -> List[Path]:
        if self._settings.state_file is not None:
            return [Path(self._settings.state_file)]
        cwd = self._working_dir or Path.cwd()
        return [cwd / "terraform.tfstate", cwd / ".terraform" / "terraform.tfstate"]

    def read(self, plaintext: str, cost: Optional[int] = None) -> BcryptHash:
        cfg = self._settings
        resolved_cost = cfg.default_cost if cost is None else int(cost)
        if resolved_cost < cfg.min_cost or resolved_cost > cfg.max_cost:
            raise ConfigurationError(
                f"cost must be between {cfg.min_cost} and {cfg.max_cost}, got {resolved_cost}"
            )

        identifier = bcrypt_hash_id(plaintext, resolved_cost)
        for candidate in self.state_files():
            existing = read_hash_from_state_file(candidate, identifier)
            if existing and self._verifies(plaintext, existing):
                LOGGER.debug(
                    "reusing recorded bcrypt hash",
                    extra={"stage": "bcrypt", "path": str(candidate)},
                )
                return BcryptHash(id=identifier, plaintext=plaintext, cost=resolved_cost, hash=existing)

        try:
            hashed = bcrypt.hashpw(plaintext.encode("utf-8"), bcrypt.gensalt(rounds=resolved_cost))
        except ValueError as exc:
            raise HashGenerationError(f"error generating bcrypt hash: {exc}") from exc
        return BcryptHash(
            id=identifier,
            plaintext=plaintext,
            cost=resolved_cost,
            hash=hashed.decode("utf-8"),
        )

    @staticmethod
    def _verifies(plaintext: str, hashed: str) -> bool:
        try:
            return bcrypt.checkpw(plaintext.encode("utf-8"), hashed.encode("utf-8"))
        except ValueError:
            return False
