# === NAVMAP v1 ===
# {
#   "module": "UtilitiesProvider.resources.extract",
#   "purpose": "Create/read/update/delete lifecycle of the archive extraction resources",
#   "sections": [
#     {"id": "base", "name": "ExtractArchiveResource", "anchor": "BAS", "kind": "api"},
#     {"id": "variants", "name": "Zip & Tar Resources", "anchor": "VAR", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Archive extraction resources.

Each resource instance owns one :class:`~UtilitiesProvider.models.ExtractionRecord`
and drives it through four operations:

``create``
    Fingerprint a local source, stage the archive (downloading it when the
    plan names a URL), extract it, and return the new record.  Failures other
    than cancellation surface as :class:`ExtractionFailed`; nothing is returned
    on failure even if files were already written.
``read``
    Recompute the fingerprint of a local source.  A change is reported as a
    ``DRIFT_DETECTED`` warning together with the refreshed fingerprint.
``update``
    Re-extract only when the source content, source, URL or destination
    changed.  Otherwise the prior record is returned untouched.  Paths from the
    earlier extraction are not removed first; when the destination is the same
    they stay in the record so ``delete`` still removes them.
``delete``
    Remove the recorded paths in reverse order, reporting failures as warnings.
"""

from __future__ import annotations

import logging
from typing import Any, ClassVar, Optional

import httpx

from ..cancellation import CancellationToken
from ..diagnostics import OperationResult, WarningCode, warning
from ..errors import Canceled, ExtractionFailed, UtilitiesError
from ..io import extract_archive, fingerprint_file, remove_created_paths, stage_archive
from ..models import ExtractionPlan, ExtractionRecord, coerce_model

__all__ = ["ExtractArchiveResource", "ExtractZipResource", "ExtractTarResource"]


class ExtractArchiveResource:
    """Lifecycle shared by the zip and tar extraction resources."""

    type_name: ClassVar[str] = ""
    archive_kind: ClassVar[str] = ""
    download_suffix: ClassVar[str] = ""

    def __init__(
        self,
        *,
        client: Optional[httpx.Client] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._client = client
        self._logger = logger or logging.getLogger("UtilitiesProvider.resources")

    # --- Validation -------------------------------------------------------------

    def validate_plan(self, plan: Any) -> ExtractionPlan:
        """Return ``plan`` as an :class:`ExtractionPlan` or raise ``ConfigurationError``."""

        resolved = coerce_model(ExtractionPlan, plan, what=f"{self.type_name} configuration")
        resolved.archive_source.check_url_suffix(self.archive_kind)
        return resolved

    def _coerce_state(self, state: Any) -> ExtractionRecord:
        return coerce_model(ExtractionRecord, state, what=f"{self.type_name} state")

    # --- Lifecycle --------------------------------------------------------------

    def create(
        self, plan: Any, *, cancellation_token: Optional[CancellationToken] = None
    ) -> OperationResult[ExtractionRecord]:
        resolved = self.validate_plan(plan)
        try:
            fingerprint = fingerprint_file(resolved.source) if resolved.source else ""
            return self._extract(resolved, fingerprint, cancellation_token)
        except Canceled:
            raise
        except (UtilitiesError, OSError) as exc:
            raise self._failed("create", resolved, exc) from exc

    def read(
        self, state: Any, *, cancellation_token: Optional[CancellationToken] = None
    ) -> OperationResult[ExtractionRecord]:
        """Refresh ``state`` against its local source.

        URL-sourced records are returned unchanged.  ``SourceUnreadable`` is
        raised when the local source can no longer be hashed.
        """

        record = self._coerce_state(state)
        if record.is_remote:
            return OperationResult(state=record)

        current = fingerprint_file(record.source)
        if current == record.content_fingerprint:
            return OperationResult(state=record)

        diagnostic = warning(
            WarningCode.DRIFT_DETECTED,
            "source archive changed since last extraction",
            f"{record.source}: recorded {record.content_fingerprint or '<none>'}, "
            f"current {current}",
            path=record.source,
        )
        diagnostic.log(self._logger, stage="fingerprint")
        refreshed = record.model_copy(update={"content_fingerprint": current})
        return OperationResult(state=refreshed, warnings=[diagnostic])

    def update(
        self,
        plan: Any,
        prior: Any,
        *,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> OperationResult[ExtractionRecord]:
        resolved = self.validate_plan(plan)
        previous = self._coerce_state(prior)
        try:
            fingerprint = fingerprint_file(resolved.source) if resolved.source else ""
        except UtilitiesError as exc:
            raise self._failed("update", resolved, exc) from exc

        unchanged = (
            fingerprint == previous.content_fingerprint
            and (resolved.source or None) == (previous.source or None)
            and (resolved.url or None) == (previous.url or None)
            and resolved.absolute_destination == previous.destination
        )
        if unchanged:
            self._logger.debug(
                "source unchanged; skipping re-extraction",
                extra={"stage": "extract", "resource": self.type_name, "path": previous.destination},
            )
            return OperationResult(state=previous)

        try:
            result = self._extract(resolved, fingerprint, cancellation_token)
        except Canceled:
            raise
        except (UtilitiesError, OSError) as exc:
            raise self._failed("update", resolved, exc) from exc

        record = result.state
        if previous.destination == record.destination:
            # Directories made by the earlier run already exist and are not
            # recorded again; keep the earlier paths ahead of the new ones.
            merged = list(previous.created_paths)
            seen = set(merged)
            merged.extend(path for path in record.created_paths if path not in seen)
            result.state = record.model_copy(
                update={
                    "created_paths": merged,
                    "destination_was_created": previous.destination_was_created
                    or record.destination_was_created,
                }
            )
        return result

    def delete(
        self, state: Any, *, cancellation_token: Optional[CancellationToken] = None
    ) -> OperationResult[ExtractionRecord]:
        """Remove every recorded path, newest first.

        The result carries ``state=None`` once the walk finishes.  When
        cancellation interrupts it, the result is aborted and its state keeps
        the paths that were not attempted.
        """

        record = self._coerce_state(state)
        removal = remove_created_paths(
            record.created_paths,
            destination=record.destination,
            destination_was_created=record.destination_was_created,
            cancellation_token=cancellation_token,
            logger=self._logger,
        )
        if not removal.completed:
            remaining = record.model_copy(update={"created_paths": removal.remaining})
            return OperationResult(state=remaining, warnings=removal.warnings, succeeded=False)

        self._logger.info(
            "removed extracted paths",
            extra={
                "stage": "delete",
                "resource": self.type_name,
                "path": record.destination,
                "warnings": len(removal.warnings),
            },
        )
        return OperationResult(state=None, warnings=removal.warnings)

    # --- Helpers ----------------------------------------------------------------

    def _extract(
        self,
        plan: ExtractionPlan,
        fingerprint: str,
        cancellation_token: Optional[CancellationToken],
    ) -> OperationResult[ExtractionRecord]:
        with stage_archive(
            plan.archive_source,
            client=self._client,
            cancellation_token=cancellation_token,
            suffix=self.download_suffix,
            logger=self._logger,
        ) as staged:
            extraction = extract_archive(
                staged.path,
                plan.absolute_destination,
                cancellation_token=cancellation_token,
                logger=self._logger,
            )

        record = ExtractionRecord(
            source=plan.source,
            url=plan.url,
            destination=plan.absolute_destination,
            content_fingerprint=fingerprint,
            created_paths=extraction.created_paths,
            destination_was_created=extraction.destination_was_created,
        )
        return OperationResult(state=record, warnings=list(extraction.warnings))

    def _failed(self, operation: str, plan: ExtractionPlan, exc: BaseException) -> ExtractionFailed:
        origin = plan.source or plan.url
        self._logger.error(
            "extraction failed",
            extra={
                "stage": "extract",
                "resource": self.type_name,
                "path": plan.absolute_destination,
                "detail": str(exc),
            },
        )
        return ExtractionFailed(
            f"{self.type_name} {operation} failed for {origin} -> {plan.destination}: {exc}",
            cause=exc,
        )


class ExtractZipResource(ExtractArchiveResource):
    """``utilities_extract_zip``: extract a ZIP archive from a path or URL."""

    type_name = "utilities_extract_zip"
    archive_kind = "zip"
    download_suffix = ".zip"


class ExtractTarResource(ExtractArchiveResource):
    """``utilities_extract_tar``: extract a tar or tar.gz archive from a path or URL."""

    type_name = "utilities_extract_tar"
    archive_kind = "tar"
    download_suffix = ".tar.gz"
