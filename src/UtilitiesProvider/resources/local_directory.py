"""The ``utilities_local_directory`` resource.

Ensures a directory exists with the requested owner, group and permission
bits.  Directories the resource creates are marked ``managed`` and may be
removed on destroy; pre-existing directories are only removed when ``force`` is
set.  Paths on the protected list (``/``, ``/etc``, ``/usr`` and so on) are
never chowned, chmodded or deleted; such requests complete with a
``PROTECTED_PATH`` warning instead.
"""

from __future__ import annotations

import logging
import os
import shutil
import stat
from typing import Any, Iterable, Optional, Tuple

from ..diagnostics import OperationResult, WarningCode, warning
from ..errors import DirectoryError, OwnershipError
from ..io import OwnershipProvider, default_ownership_provider
from ..models import LocalDirectoryConfig, LocalDirectoryState, coerce_model
from ..settings import DirectorySettings

__all__ = ["LocalDirectoryResource", "format_permissions", "is_protected_path"]


def format_permissions(mode: int) -> str:
    """Render the permission bits of ``mode`` as a ``%04o`` string."""

    return f"{stat.S_IMODE(mode):04o}"


def is_protected_path(path: str, protected_paths: Iterable[str]) -> bool:
    normalized = os.path.normpath(os.path.abspath(path))
    return any(normalized == os.path.normpath(item) for item in protected_paths)


class LocalDirectoryResource:
    """Lifecycle of a managed local directory."""

    type_name = "utilities_local_directory"

    def __init__(
        self,
        *,
        ownership: Optional[OwnershipProvider] = None,
        protected_paths: Optional[Iterable[str]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._ownership = ownership or default_ownership_provider()
        if protected_paths is None:
            protected_paths = DirectorySettings().protected_paths
        self._protected: Tuple[str, ...] = tuple(protected_paths)
        self._logger = logger or logging.getLogger("UtilitiesProvider.resources")

    def is_protected(self, path: str) -> bool:
        return is_protected_path(path, self._protected)

    # --- Lifecycle --------------------------------------------------------------

    def create(self, config: Any) -> OperationResult[LocalDirectoryState]:
        resolved = coerce_model(LocalDirectoryConfig, config, what=f"{self.type_name} configuration")
        return self._apply(resolved, managed=False)

    def update(self, config: Any, prior: Any) -> OperationResult[LocalDirectoryState]:
        """Re-apply ``config``; a directory managed before stays managed."""

        resolved = coerce_model(LocalDirectoryConfig, config, what=f"{self.type_name} configuration")
        previous = coerce_model(LocalDirectoryState, prior, what=f"{self.type_name} state")
        return self._apply(resolved, managed=previous.managed)

    def read(self, state: Any) -> OperationResult[LocalDirectoryState]:
        current = coerce_model(LocalDirectoryState, state, what=f"{self.type_name} state")
        path = current.path
        try:
            info = os.stat(path)
        except FileNotFoundError:
            diagnostic = warning(
                WarningCode.PATH_MISSING,
                "directory does not exist",
                f"{path} was not found; ownership and permissions are unknown",
                path=path,
            )
            diagnostic.log(self._logger, stage="directory")
            cleared = current.model_copy(update={"user": None, "group": None, "permissions": None})
            return OperationResult(state=cleared, warnings=[diagnostic])
        except OSError as exc:
            raise DirectoryError(f"failed to check the path '{path}': {exc}", path=path) from exc

        if not stat.S_ISDIR(info.st_mode):
            raise DirectoryError(f"the path '{path}' exists but is not a directory", path=path)

        warnings = []
        user = self._ownership.owner_name(path)
        try:
            group = self._ownership.group_name(path)
        except OwnershipError as exc:
            diagnostic = warning(
                WarningCode.GROUP_LOOKUP_FAILED,
                "unable to resolve directory group",
                f"group lookup for {path} failed: {exc}",
                path=path,
            )
            diagnostic.log(self._logger, stage="directory")
            warnings.append(diagnostic)
            group = ""

        refreshed = current.model_copy(
            update={"user": user, "group": group, "permissions": format_permissions(info.st_mode)}
        )
        return OperationResult(state=refreshed, warnings=warnings)

    def delete(self, state: Any) -> OperationResult[LocalDirectoryState]:
        """Remove the directory when it is managed or ``force`` is set."""

        current = coerce_model(LocalDirectoryState, state, what=f"{self.type_name} state")
        path = current.path
        try:
            info = os.stat(path)
        except FileNotFoundError:
            self._logger.info(
                "directory does not exist, skipping deletion",
                extra={"stage": "directory", "path": path},
            )
            return OperationResult(state=None)
        except OSError as exc:
            raise DirectoryError(
                f"failed to access directory for deletion: {exc}", path=path
            ) from exc

        if not stat.S_ISDIR(info.st_mode):
            raise DirectoryError(f"the path '{path}' exists but is not a directory", path=path)

        if self.is_protected(path):
            diagnostic = warning(
                WarningCode.PROTECTED_PATH,
                "refusing to delete a protected path",
                f"{path} is critical to the operating system and was left in place",
                path=path,
            )
            diagnostic.log(self._logger, stage="directory")
            return OperationResult(state=None, warnings=[diagnostic])

        if not (current.force or current.managed):
            diagnostic = warning(
                WarningCode.UNMANAGED_DIRECTORY,
                "directory is unmanaged, skipping deletion",
                f"{path} existed before it was managed; set force to remove it",
                path=path,
            )
            diagnostic.log(self._logger, stage="directory")
            return OperationResult(state=None, warnings=[diagnostic])

        try:
            shutil.rmtree(path)
        except OSError as exc:
            raise DirectoryError(f"failed to delete directory: {exc}", path=path) from exc
        self._logger.info(
            "directory deleted",
            extra={"stage": "directory", "path": path, "force": current.force},
        )
        return OperationResult(state=None)

    # --- Helpers ----------------------------------------------------------------

    def _apply(
        self, config: LocalDirectoryConfig, *, managed: bool
    ) -> OperationResult[LocalDirectoryState]:
        path = config.path
        exists = False
        try:
            info = os.stat(path)
        except FileNotFoundError:
            info = None
        except OSError as exc:
            raise DirectoryError(f"failed to check the path '{path}': {exc}", path=path) from exc
        if info is not None:
            if not stat.S_ISDIR(info.st_mode):
                raise DirectoryError(f"the path '{path}' exists but is not a directory", path=path)
            exists = True

        user = config.user or self._ownership.current_user()
        group = config.group or self._ownership.current_group()
        uid = self._ownership.user_id(user)
        gid = self._ownership.group_id(group)

        if not exists:
            try:
                os.makedirs(path, exist_ok=True)
            except OSError as exc:
                raise DirectoryError(f"failed to create directory '{path}': {exc}", path=path) from exc
            managed = True
            self._logger.info("directory created", extra={"stage": "directory", "path": path})

        warnings = []
        if self.is_protected(path):
            diagnostic = warning(
                WarningCode.PROTECTED_PATH,
                "skipping ownership modification for protected OS path",
                f"{path} is critical to the operating system; ownership and permissions were not changed",
                path=path,
            )
            diagnostic.log(self._logger, stage="directory")
            warnings.append(diagnostic)
        else:
            self._ownership.chown(path, uid, gid)
            if config.permissions:
                try:
                    os.chmod(path, int(config.permissions, 8))
                except OSError as exc:
                    raise DirectoryError(
                        f"failed to set permissions on '{path}': {exc}", path=path
                    ) from exc

        try:
            mode = os.stat(path).st_mode
        except OSError as exc:
            raise DirectoryError(f"failed to read back '{path}': {exc}", path=path) from exc

        state = LocalDirectoryState(
            path=path,
            user=user,
            group=group,
            permissions=format_permissions(mode),
            force=config.force,
            managed=managed,
        )
        return OperationResult(state=state, warnings=warnings)
