"""Aggregated IO helpers for the utilities provider.

This subpackage bundles filesystem utilities (archive extraction, content
fingerprints, best-effort cleanup, log masking), archive staging over HTTP, and
the ownership capability interface used by the directory resource.
Re-exporting the most common symbols keeps importing ergonomics simple for the
rest of the codebase.
"""

from .filesystem import (
    DEFAULT_DIRECTORY_MODE,
    ExtractionResult,
    RemovalResult,
    extract_archive,
    fingerprint_file,
    mask_sensitive_data,
    remove_created_paths,
    sha256_file,
)
from .network import StagedArchive, download_to_tempfile, stage_archive
from .ownership import (
    NullOwnershipProvider,
    OwnershipProvider,
    PosixOwnershipProvider,
    default_ownership_provider,
)

__all__ = [
    "DEFAULT_DIRECTORY_MODE",
    "ExtractionResult",
    "RemovalResult",
    "extract_archive",
    "fingerprint_file",
    "mask_sensitive_data",
    "remove_created_paths",
    "sha256_file",
    "NullOwnershipProvider",
    "OwnershipProvider",
    "PosixOwnershipProvider",
    "default_ownership_provider",
    "StagedArchive",
    "download_to_tempfile",
    "stage_archive",
]

