"""Filesystem utilities: archive extraction, content fingerprints, and cleanup.

Extraction goes through libarchive, which detects ZIP and tar (plain or
gzip-compressed) containers automatically, so both extraction resources share
a single code path.  Every path the extractor creates is recorded in creation
order; :func:`remove_created_paths` walks that record backwards to undo an
extraction.  Entries that would land outside the destination are rejected
before anything is written for them.
"""

from __future__ import annotations

import errno
import hashlib
import logging
import os
import re
import stat
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Dict, Iterable, List, Optional, Set, Tuple, Union

import libarchive

from ..cancellation import CancellationToken, raise_if_cancelled
from ..diagnostics import Diagnostic, WarningCode, warning
from ..errors import (
    ArchiveReadFailed,
    DirectoryCreationFailed,
    FileWriteFailed,
    SourceUnreadable,
    UnsafeEntryPath,
)

LOGGER = logging.getLogger("UtilitiesProvider.io")

DEFAULT_DIRECTORY_MODE = 0o755

PathLike = Union[str, "os.PathLike[str]"]

__all__ = [
    "DEFAULT_DIRECTORY_MODE",
    "ExtractionResult",
    "RemovalResult",
    "extract_archive",
    "fingerprint_file",
    "mask_sensitive_data",
    "remove_created_paths",
    "sha256_file",
]


# ============================================================================
# LOG MASKING
# ============================================================================


def mask_sensitive_data(payload: Dict[str, object]) -> Dict[str, object]:
    """Return a copy of ``payload`` with common secret fields masked."""

    sensitive_keys = {
        "authorization",
        "api_key",
        "apikey",
        "token",
        "secret",
        "password",
        "plaintext",
    }
    token_pattern = re.compile(r"^[A-Za-z0-9+/=_-]{32,}$")

    def _mask_value(value: object, key_hint: Optional[str] = None) -> object:
        if isinstance(value, dict):
            return {
                sub_key: _mask_value(sub_value, str(sub_key).lower())
                for sub_key, sub_value in value.items()
            }
        if isinstance(value, (list, tuple)):
            masked = []
            for item in value:
                if isinstance(item, tuple) and len(item) == 2 and isinstance(item[0], str):
                    masked.append((item[0], _mask_value(item[1], item[0].lower())))
                else:
                    masked.append(_mask_value(item, key_hint))
            return masked if isinstance(value, list) else tuple(masked)
        if isinstance(value, str):
            lowered = value.lower()
            if key_hint in sensitive_keys:
                return "***masked***"
            if "bearer " in lowered or "apikey" in lowered:
                return "***masked***"
            if token_pattern.fullmatch(value):
                return "***masked***"
        return value

    masked: Dict[str, object] = {}
    for key, value in payload.items():
        lower = key.lower()
        if lower in sensitive_keys:
            masked[key] = "***masked***"
        else:
            masked[key] = _mask_value(value, lower)
    return masked


# ============================================================================
# FINGERPRINTS
# ============================================================================


def sha256_file(path: Path) -> str:
    """Compute the SHA-256 digest for the provided file."""

    hasher = hashlib.sha256()
    with Path(path).open("rb") as stream:
        for chunk in iter(lambda: stream.read(1 << 20), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


def fingerprint_file(path: PathLike) -> str:
    """Return the content fingerprint of ``path`` used for drift detection.

    Raises:
        SourceUnreadable: If the file cannot be opened or read to completion.
    """

    try:
        return sha256_file(Path(path))
    except OSError as exc:
        raise SourceUnreadable(
            f"unable to fingerprint {path}: {exc}", path=os.fspath(path)
        ) from exc


# ============================================================================
# EXTRACTION
# ============================================================================


@dataclass(slots=True)
class ExtractionResult:
    """Paths created by one extraction, in creation order."""

    created_paths: List[str] = field(default_factory=list)
    destination_was_created: bool = False
    warnings: List[Diagnostic] = field(default_factory=list)


def _validate_member_path(member_name: str) -> Tuple[str, ...]:
    """Return the normalised parts of ``member_name`` or raise on traversal."""

    normalized = member_name.replace("\\", "/")
    relative = PurePosixPath(normalized)
    if relative.is_absolute():
        raise UnsafeEntryPath(
            f"absolute path detected in archive: {member_name}", entry=member_name
        )
    if any(part in {"", ".", ".."} for part in relative.parts):
        raise UnsafeEntryPath(
            f"archive entry escapes the destination: {member_name}", entry=member_name
        )
    return relative.parts


def _check_containment(target: str, destination_real: str, member_name: str) -> None:
    """Reject ``target`` when symlinks already on disk resolve it outside the root."""

    resolved = os.path.realpath(target)
    if os.path.commonpath([destination_real, resolved]) != destination_real:
        raise UnsafeEntryPath(
            f"archive entry resolves outside the destination: {member_name}",
            entry=member_name,
        )


class _Recorder:
    """Collects created paths once each, preserving creation order."""

    def __init__(self) -> None:
        self.paths: List[str] = []
        self._seen: Set[str] = set()

    def add(self, path: str) -> None:
        if path not in self._seen:
            self._seen.add(path)
            self.paths.append(path)


def _make_directories(target: str, root: str, mode: int, recorder: _Recorder) -> None:
    """Create ``target`` and any missing ancestors below ``root``.

    Only directories this call creates are recorded; a directory that already
    exists belongs to the user and is left out of the record.
    """

    missing: List[str] = []
    current = target
    while current != root and not os.path.isdir(current):
        if os.path.lexists(current):
            raise DirectoryCreationFailed(f"path exists and is not a directory: {current}")
        missing.append(current)
        current = os.path.dirname(current)

    for path in reversed(missing):
        path_mode = mode if path == target else DEFAULT_DIRECTORY_MODE
        try:
            os.mkdir(path, path_mode)
        except FileExistsError:
            if not os.path.isdir(path):
                raise DirectoryCreationFailed(f"path exists and is not a directory: {path}")
            continue
        except OSError as exc:
            raise DirectoryCreationFailed(f"unable to create directory {path}: {exc}") from exc
        recorder.add(path)


def _prepare_destination(destination: str) -> bool:
    """Ensure ``destination`` exists; return ``True`` when it was created here."""

    if os.path.isdir(destination):
        return False
    if os.path.lexists(destination):
        raise DirectoryCreationFailed(f"destination is not a directory: {destination}")
    try:
        os.makedirs(destination, DEFAULT_DIRECTORY_MODE)
    except OSError as exc:
        raise DirectoryCreationFailed(
            f"unable to create destination {destination}: {exc}"
        ) from exc
    return True


def _write_file(entry, target: str) -> None:
    try:
        with open(target, "wb") as handle:
            for block in entry.get_blocks():
                handle.write(block)
    except OSError as exc:
        raise FileWriteFailed(f"unable to write {target}: {exc}") from exc


def _entry_kind(entry) -> str:
    if entry.issym:
        return "symlink"
    if entry.islnk:
        return "hardlink"
    if entry.isblk or entry.ischr:
        return "device"
    if entry.isfifo:
        return "fifo"
    if entry.issock:
        return "socket"
    return "unknown"


def extract_archive(
    archive_path: PathLike,
    destination: PathLike,
    *,
    cancellation_token: Optional[CancellationToken] = None,
    logger: Optional[logging.Logger] = None,
) -> ExtractionResult:
    """Extract ``archive_path`` into ``destination`` and record what was created.

    Entries are processed in archive order.  Directory entries are created with
    their archive permission bits (``0755`` when absent) and recorded only when
    this run creates them; an entry naming the destination itself or a
    directory that already exists is not recorded.  Regular files are streamed
    block by block after their parent directories exist; parents created along
    the way are recorded before the file.  Permission bits on files are applied
    on a best-effort basis.  Symlinks, hard links, devices, FIFOs, and sockets
    are skipped with a warning.

    Args:
        archive_path: ZIP or tar(.gz) archive to read.
        destination: Target directory; created with parents when absent.
        cancellation_token: Checked before starting, before the destination is
            prepared, and before each entry.
        logger: Optional logger for structured ``stage="extract"`` records.

    Returns:
        :class:`ExtractionResult` with created paths in creation order.

    Raises:
        Canceled: When the token is cancelled at a checkpoint.  Files already
            written stay on disk.
        UnsafeEntryPath: When an entry is absolute or escapes ``destination``.
        DirectoryCreationFailed: When a directory cannot be created.
        FileWriteFailed: When file content cannot be written.
        ArchiveReadFailed: When the archive cannot be opened or decoded.
    """

    log = logger or LOGGER
    raise_if_cancelled(cancellation_token, "extract")

    dest = os.path.abspath(os.fspath(destination))
    raise_if_cancelled(cancellation_token, "extract:destination")
    result = ExtractionResult(destination_was_created=_prepare_destination(dest))
    dest_real = os.path.realpath(dest)
    recorder = _Recorder()

    try:
        with libarchive.file_reader(os.fspath(archive_path)) as archive:
            for entry in archive:
                raise_if_cancelled(cancellation_token, "extract:entry")
                member_name = entry.pathname
                parts = _validate_member_path(member_name)
                target = os.path.join(dest, *parts) if parts else dest
                _check_containment(target, dest_real, member_name)
                perm = stat.S_IMODE(entry.mode or 0)

                if entry.isdir:
                    if target == dest:
                        continue
                    _make_directories(
                        target,
                        dest,
                        perm or DEFAULT_DIRECTORY_MODE,
                        recorder,
                    )
                elif entry.isreg and not entry.islnk:
                    if target == dest:
                        raise UnsafeEntryPath(
                            f"file entry names the destination itself: {member_name}",
                            entry=member_name,
                        )
                    _make_directories(
                        os.path.dirname(target),
                        dest,
                        DEFAULT_DIRECTORY_MODE,
                        recorder,
                    )
                    _write_file(entry, target)
                    if perm != 0:
                        try:
                            os.chmod(target, perm)
                        except OSError as exc:
                            diagnostic = warning(
                                WarningCode.PERMISSION_APPLY_FAILED,
                                "unable to apply archive permissions",
                                f"chmod {perm:04o} on {target} failed: {exc}",
                                path=target,
                            )
                            diagnostic.log(log, stage="extract")
                            result.warnings.append(diagnostic)
                    recorder.add(target)
                else:
                    kind = _entry_kind(entry)
                    diagnostic = warning(
                        WarningCode.UNSUPPORTED_ENTRY,
                        "skipped unsupported archive entry",
                        f"{member_name} is a {kind}; only files and directories are extracted",
                        path=target,
                    )
                    diagnostic.log(log, stage="extract")
                    result.warnings.append(diagnostic)
    except libarchive.ArchiveError as exc:
        raise ArchiveReadFailed(f"failed to read archive {archive_path}: {exc}") from exc

    result.created_paths = recorder.paths
    log.info(
        "extracted archive",
        extra={
            "stage": "extract",
            "path": dest,
            "archive": os.fspath(archive_path),
            "created": len(result.created_paths),
            "destination_created": result.destination_was_created,
        },
    )
    return result


# ============================================================================
# CLEANUP
# ============================================================================


@dataclass(slots=True)
class RemovalResult:
    """Outcome of :func:`remove_created_paths`.

    ``remaining`` holds the paths not yet attempted when the walk stopped
    early; it is empty when ``completed`` is true.
    """

    remaining: List[str] = field(default_factory=list)
    warnings: List[Diagnostic] = field(default_factory=list)
    completed: bool = True


def _remove_one(path: str) -> None:
    if os.path.isdir(path) and not os.path.islink(path):
        os.rmdir(path)
    else:
        os.unlink(path)


def remove_created_paths(
    created_paths: Iterable[str],
    *,
    destination: Optional[str] = None,
    destination_was_created: bool = False,
    cancellation_token: Optional[CancellationToken] = None,
    logger: Optional[logging.Logger] = None,
) -> RemovalResult:
    """Remove ``created_paths`` in reverse creation order, best effort.

    Paths that are already gone produce a ``PATH_MISSING`` warning; any other
    failure produces ``REMOVE_FAILED``.  When ``destination_was_created`` is
    set, ``destination`` is removed last if it is empty.
    """

    log = logger or LOGGER
    ordered = list(created_paths)
    result = RemovalResult()

    for index in range(len(ordered) - 1, -1, -1):
        if cancellation_token is not None and cancellation_token.is_cancelled():
            result.remaining = ordered[: index + 1]
            result.completed = False
            log.warning(
                "delete canceled",
                extra={"stage": "delete", "remaining": len(result.remaining)},
            )
            return result
        path = ordered[index]
        try:
            _remove_one(path)
        except FileNotFoundError:
            diagnostic = warning(
                WarningCode.PATH_MISSING,
                "path already removed",
                f"{path} no longer exists; nothing to delete",
                path=path,
            )
            diagnostic.log(log, stage="delete")
            result.warnings.append(diagnostic)
        except OSError as exc:
            diagnostic = warning(
                WarningCode.REMOVE_FAILED,
                "unable to remove extracted path",
                f"removing {path} failed: {exc}",
                path=path,
            )
            diagnostic.log(log, stage="delete")
            result.warnings.append(diagnostic)

    if destination_was_created and destination:
        try:
            os.rmdir(destination)
        except FileNotFoundError:
            pass
        except OSError as exc:
            if exc.errno in (errno.ENOTEMPTY, errno.EEXIST):
                log.debug(
                    "destination not empty; left in place",
                    extra={"stage": "delete", "path": destination},
                )
            else:
                diagnostic = warning(
                    WarningCode.REMOVE_FAILED,
                    "unable to remove destination",
                    f"removing {destination} failed: {exc}",
                    path=destination,
                )
                diagnostic.log(log, stage="delete")
                result.warnings.append(diagnostic)

    return result
