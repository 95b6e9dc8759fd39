# === NAVMAP v1 ===
# {
#   "module": "UtilitiesProvider.models",
#   "purpose": "Pydantic records for resource plans, persisted state, and data source/function outputs",
#   "sections": [
#     {"id": "archive", "name": "Archive Source & Extraction", "anchor": "ARC", "kind": "models"},
#     {"id": "directory", "name": "Local Directory", "anchor": "DIR", "kind": "models"},
#     {"id": "outputs", "name": "Data Source & Function Outputs", "anchor": "OUT", "kind": "models"}
#   ]
# }
# === /NAVMAP ===

"""Typed records exchanged between the provider registry and its resources.

Plans (Terraform configuration) and states (what was persisted after the last
successful operation) are Pydantic models.  State records serialise to the
Terraform attribute names (``file_hash``, ``created_files``,
``destination_created``) while accepting either the attribute name or the
Python field name on input, so JSON state written by the CLI round-trips.
"""

from __future__ import annotations

import os
import re
from typing import Any, Dict, List, Literal, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from .errors import ConfigurationError

__all__ = [
    "ArchiveKind",
    "ARCHIVE_URL_PATTERNS",
    "ArchiveSource",
    "ExtractionPlan",
    "ExtractionRecord",
    "LocalDirectoryConfig",
    "LocalDirectoryState",
    "LocalDirectoryInfo",
    "BcryptHash",
    "HttpResponse",
    "PathExistsResult",
    "coerce_model",
]

ArchiveKind = Literal["zip", "tar"]

ARCHIVE_URL_PATTERNS: Dict[str, "re.Pattern[str]"] = {
    "zip": re.compile(r"^https?://.+\.zip$", re.IGNORECASE),
    "tar": re.compile(r"^https?://.+\.(tar\.gz|tgz|tar)$", re.IGNORECASE),
}

_PERMISSIONS_PATTERN = re.compile(r"^0[0-7]{3}$")


def coerce_model(model: type, payload: Any, *, what: str):
    """Validate ``payload`` into ``model`` raising :class:`ConfigurationError` on failure."""

    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise ConfigurationError(f"invalid {what}: {exc}") from exc


# ============================================================================
# ARCHIVE SOURCE & EXTRACTION
# ============================================================================


class ArchiveSource(BaseModel):
    """Exactly one of a local archive path or a remote archive URL."""

    local_path: Optional[str] = None
    remote_url: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _exactly_one(self) -> "ArchiveSource":
        if bool(self.local_path) == bool(self.remote_url):
            raise ValueError("exactly one of 'source' or 'url' must be set")
        return self

    @property
    def is_remote(self) -> bool:
        return self.remote_url is not None

    def check_url_suffix(self, kind: str) -> None:
        """Raise :class:`ConfigurationError` when the URL does not name a ``kind`` archive."""

        if self.remote_url is None:
            return
        pattern = ARCHIVE_URL_PATTERNS[kind]
        if not pattern.match(self.remote_url):
            raise ConfigurationError(
                f"url must be an http(s) address of a {kind} archive: {self.remote_url}"
            )


class ExtractionPlan(BaseModel):
    """Terraform configuration of an extraction resource."""

    source: Optional[str] = None
    url: Optional[str] = None
    destination: str = Field(min_length=1)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("source", "url")
    @classmethod
    def _blank_is_unset(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def _one_source(self) -> "ExtractionPlan":
        if self.source and self.url:
            raise ValueError("only one of 'source' or 'url' can be specified")
        if not self.source and not self.url:
            raise ValueError("either 'source' or 'url' must be specified")
        return self

    @property
    def archive_source(self) -> ArchiveSource:
        return ArchiveSource(local_path=self.source, remote_url=self.url)

    @property
    def absolute_destination(self) -> str:
        return os.path.abspath(self.destination)


class ExtractionRecord(BaseModel):
    """Persisted state of one extraction.

    ``content_fingerprint`` is empty for URL-sourced records because remote
    content is never re-fetched for comparison.
    """

    source: Optional[str] = None
    url: Optional[str] = None
    destination: str
    content_fingerprint: str = Field(
        default="",
        validation_alias=AliasChoices("content_fingerprint", "file_hash"),
        serialization_alias="file_hash",
    )
    created_paths: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("created_paths", "created_files"),
        serialization_alias="created_files",
    )
    destination_was_created: bool = Field(
        default=False,
        validation_alias=AliasChoices("destination_was_created", "destination_created"),
        serialization_alias="destination_created",
    )

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @property
    def is_remote(self) -> bool:
        return not self.source

    def to_state(self) -> Dict[str, Any]:
        """Return the record keyed by Terraform attribute names."""

        return self.model_dump(mode="json", by_alias=True)


# ============================================================================
# LOCAL DIRECTORY
# ============================================================================


class LocalDirectoryConfig(BaseModel):
    """Configuration of the ``utilities_local_directory`` resource."""

    path: str = Field(min_length=1)
    user: Optional[str] = None
    group: Optional[str] = None
    permissions: Optional[str] = None
    force: bool = False

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("permissions")
    @classmethod
    def validate_permissions(cls, value: Optional[str]) -> Optional[str]:
        if value is None or value == "":
            return None
        if not _PERMISSIONS_PATTERN.match(value):
            raise ValueError("permissions must be a four digit octal string such as '0755'")
        return value

    @field_validator("user", "group")
    @classmethod
    def _blank_is_unset(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            return None
        return value


class LocalDirectoryState(BaseModel):
    """Persisted state of a managed directory.

    ``managed`` records whether the directory was created by the provider, which
    decides whether destroy may remove it without ``force``.
    """

    path: str
    user: Optional[str] = None
    group: Optional[str] = None
    permissions: Optional[str] = None
    force: bool = False
    managed: bool = False

    model_config = ConfigDict(frozen=True)

    def to_state(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


# ============================================================================
# DATA SOURCE & FUNCTION OUTPUTS
# ============================================================================


class LocalDirectoryInfo(BaseModel):
    id: str
    path: str
    exists: bool
    permissions: str = ""
    user: str = ""
    group: str = ""

    model_config = ConfigDict(frozen=True)


class BcryptHash(BaseModel):
    """Output of the ``utilities_bcrypt_hash`` data source."""

    id: str
    plaintext: str = Field(repr=False)
    cost: int
    hash: str

    model_config = ConfigDict(frozen=True)


class HttpResponse(BaseModel):
    response_body: str
    status_code: int
    timestamp: str

    model_config = ConfigDict(frozen=True)


class PathExistsResult(BaseModel):
    exists: bool

    model_config = ConfigDict(frozen=True)
