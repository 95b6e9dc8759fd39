"""Exception hierarchy shared across provider resources, data sources, and functions.

The provider spans archive staging, extraction, fingerprinting, directory
management, and HTTP calls.  This module groups the fatal failure modes into a
tidy hierarchy so the orchestrating code can react to high-level categories
(for example, configuration mistakes vs. transient download errors) while still
having access to the specialised subclasses.  Non-fatal conditions are never
raised; they travel as :class:`~UtilitiesProvider.diagnostics.Diagnostic`
warnings instead.
"""

from __future__ import annotations

from typing import Optional

__all__ = [
    "UtilitiesError",
    "ConfigurationError",
    "SourceNotFound",
    "SourceUnreadable",
    "DownloadFailed",
    "ExtractionError",
    "UnsafeEntryPath",
    "DirectoryCreationFailed",
    "FileWriteFailed",
    "ArchiveReadFailed",
    "ExtractionFailed",
    "Canceled",
    "DirectoryError",
    "OwnershipError",
    "FunctionError",
    "HashGenerationError",
]


class UtilitiesError(RuntimeError):
    """Base exception for every fatal provider failure."""

    retryable: bool = False


class ConfigurationError(UtilitiesError):
    """Raised when plan or configuration inputs are invalid, before any I/O."""


class SourceNotFound(UtilitiesError):
    """Raised when a local archive path does not exist or is not a regular file."""

    def __init__(self, message: str, *, path: Optional[str] = None) -> None:
        super().__init__(message)
        self.path = path


class SourceUnreadable(UtilitiesError):
    """Raised when a source file cannot be opened or read to completion."""

    def __init__(self, message: str, *, path: Optional[str] = None) -> None:
        super().__init__(message)
        self.path = path


class DownloadFailed(UtilitiesError):
    """Raised when fetching an archive over HTTP fails."""

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code
        self.retryable = retryable


class ExtractionError(UtilitiesError):
    """Base class for failures raised while materialising archive entries."""


class UnsafeEntryPath(ExtractionError):
    """Raised when an archive entry would resolve outside the destination."""

    def __init__(self, message: str, *, entry: str) -> None:
        super().__init__(message)
        self.entry = entry


class DirectoryCreationFailed(ExtractionError):
    """Raised when the destination or an entry directory cannot be created."""


class FileWriteFailed(ExtractionError):
    """Raised when an extracted file cannot be created or written."""


class ArchiveReadFailed(ExtractionError):
    """Raised when the archive container cannot be opened or decoded."""


class ExtractionFailed(UtilitiesError):
    """Raised by resource lifecycles when create/update cannot complete.

    The underlying failure is available both as ``cause`` and through the
    standard ``__cause__`` chain.
    """

    def __init__(self, message: str, *, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.cause = cause


class Canceled(UtilitiesError):
    """Raised when a cooperative cancellation checkpoint observes a cancel request."""

    retryable = True

    def __init__(self, stage: str) -> None:
        super().__init__(f"operation canceled ({stage})")
        self.stage = stage


class DirectoryError(UtilitiesError):
    """Raised when a managed directory path is unusable or cannot be removed."""

    def __init__(self, message: str, *, path: Optional[str] = None) -> None:
        super().__init__(message)
        self.path = path


class OwnershipError(UtilitiesError):
    """Raised when user/group lookups or ownership changes fail."""


class FunctionError(UtilitiesError):
    """Raised by provider functions; ``argument_index`` is 1-based like Terraform's."""

    def __init__(self, argument_index: int, message: str) -> None:
        super().__init__(message)
        self.argument_index = argument_index


class HashGenerationError(UtilitiesError):
    """Raised when bcrypt cannot produce a hash for the supplied inputs."""


# === NAVMAP v1 ===
# {
#   "module": "UtilitiesProvider.errors",
#   "purpose": "Define the exception hierarchy used across provider resources, data sources, and functions",
#   "sections": [
#     {"id": "base", "name": "Base Exceptions", "anchor": "BAS", "kind": "api"},
#     {"id": "source", "name": "Source & Download Errors", "anchor": "SRC", "kind": "api"},
#     {"id": "extraction", "name": "Extraction Errors", "anchor": "EXT", "kind": "api"},
#     {"id": "provider", "name": "Directory, Ownership & Function Errors", "anchor": "PRV", "kind": "api"}
#   ]
# }
# === /NAVMAP ===
