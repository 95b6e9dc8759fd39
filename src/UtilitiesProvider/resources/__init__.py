"""Managed resources exposed by the provider."""

from .extract import ExtractArchiveResource, ExtractTarResource, ExtractZipResource
from .local_directory import LocalDirectoryResource

__all__ = [
    "ExtractArchiveResource",
    "ExtractTarResource",
    "ExtractZipResource",
    "LocalDirectoryResource",
]
