# === NAVMAP v1 ===
# {
#   "module": "UtilitiesProvider.diagnostics",
#   "purpose": "Warning codes, diagnostics, and operation results for best-effort provider operations",
#   "sections": [
#     {"id": "codes", "name": "Warning Codes", "anchor": "COD", "kind": "constants"},
#     {"id": "diagnostic", "name": "Diagnostic", "anchor": "DIA", "kind": "api"},
#     {"id": "result", "name": "OperationResult", "anchor": "RES", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Warning codes, diagnostics, and operation results.

Fatal failures are exceptions (see :mod:`UtilitiesProvider.errors`).  Everything
that should not stop an operation, such as a permission bit that could not be
applied, a skipped symlink, or a file that could not be removed during
destroy, is collected as a :class:`Diagnostic` on an :class:`OperationResult`,
so callers can tell apart "fully done", "done with warnings", and "aborted".
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, List, Optional, TypeVar

T = TypeVar("T")


# ============================================================================
# WARNING CODES
# ============================================================================


class Severity(str, Enum):
    WARNING = "warning"
    ERROR = "error"


class WarningCode(str, Enum):
    """Codes for non-fatal conditions reported by provider operations."""

    PERMISSION_APPLY_FAILED = "W_PERMISSION_APPLY_FAILED"  # chmod after extraction failed
    UNSUPPORTED_ENTRY = "W_UNSUPPORTED_ENTRY"  # symlink/hardlink/device/fifo/socket skipped
    DRIFT_DETECTED = "W_DRIFT_DETECTED"  # local source fingerprint changed
    REMOVE_FAILED = "W_REMOVE_FAILED"  # created path could not be removed
    PROTECTED_PATH = "W_PROTECTED_PATH"  # operation skipped on a protected OS path
    GROUP_LOOKUP_FAILED = "W_GROUP_LOOKUP_FAILED"
    PATH_MISSING = "W_PATH_MISSING"
    UNMANAGED_DIRECTORY = "W_UNMANAGED_DIRECTORY"  # destroy left a pre-existing directory


class OutcomeStatus(str, Enum):
    COMPLETE = "complete"
    COMPLETE_WITH_WARNINGS = "complete_with_warnings"
    ABORTED = "aborted"


# ============================================================================
# DIAGNOSTIC
# ============================================================================


@dataclass(slots=True, frozen=True)
class Diagnostic:
    """A single summary/detail message attached to an operation result."""

    code: WarningCode
    summary: str
    detail: str
    path: Optional[str] = None
    severity: Severity = Severity.WARNING

    def to_dict(self) -> dict:
        return {
            "code": self.code.value,
            "severity": self.severity.value,
            "summary": self.summary,
            "detail": self.detail,
            "path": self.path,
        }

    def log(self, logger: logging.Logger, *, stage: str) -> None:
        """Emit this diagnostic on ``logger`` as a structured warning."""

        logger.warning(
            self.summary,
            extra={
                "stage": stage,
                "code": self.code.value,
                "detail": self.detail,
                "path": self.path,
            },
        )


def warning(
    code: WarningCode, summary: str, detail: str, *, path: Optional[str] = None
) -> Diagnostic:
    return Diagnostic(code=code, summary=summary, detail=detail, path=path)


# ============================================================================
# OPERATION RESULT
# ============================================================================


@dataclass(slots=True)
class OperationResult(Generic[T]):
    """Outcome of a provider operation.

    Attributes:
        state: Resulting state record, or ``None`` when the resource was removed.
        warnings: Non-fatal diagnostics gathered while the operation ran.
        succeeded: ``False`` when the operation stopped before finishing its
            work (for example, a destroy interrupted by cancellation).
    """

    state: Optional[T] = None
    warnings: List[Diagnostic] = field(default_factory=list)
    succeeded: bool = True

    @property
    def status(self) -> OutcomeStatus:
        if not self.succeeded:
            return OutcomeStatus.ABORTED
        if self.warnings:
            return OutcomeStatus.COMPLETE_WITH_WARNINGS
        return OutcomeStatus.COMPLETE

    @property
    def drift_detected(self) -> bool:
        return self.has_warning(WarningCode.DRIFT_DETECTED)

    def has_warning(self, code: WarningCode) -> bool:
        return any(item.code is code for item in self.warnings)

    def warnings_for(self, code: WarningCode) -> List[Diagnostic]:
        return [item for item in self.warnings if item.code is code]

    def to_dict(self) -> dict:
        state = self.state
        if state is not None and hasattr(state, "to_state"):
            state = state.to_state()
        elif state is not None and hasattr(state, "model_dump"):
            state = state.model_dump(mode="json")
        return {
            "status": self.status.value,
            "state": state,
            "warnings": [item.to_dict() for item in self.warnings],
        }


__all__ = [
    "Severity",
    "WarningCode",
    "OutcomeStatus",
    "Diagnostic",
    "OperationResult",
    "warning",
]
