# === NAVMAP v1 ===
# {
#   "module": "UtilitiesProvider",
#   "purpose": "Package initialization and lazy public API for the utilities provider",
#   "sections": [
#     {"id": "exports", "name": "Export map", "anchor": "EXP", "kind": "constants"},
#     {"id": "getattr", "name": "__getattr__", "anchor": "function-getattr", "kind": "function"},
#     {"id": "dir", "name": "__dir__", "anchor": "function-dir", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Public API for the utilities provider.

The provider manages local directories, extracts ZIP and tar archives from
local paths or URLs while tracking every path it creates, inspects paths,
performs retrying HTTP requests, and produces stable bcrypt hashes.  Symbols
are imported lazily so ``import UtilitiesProvider`` stays cheap for the CLI.
"""

from __future__ import annotations

from importlib import import_module
from typing import Any, Dict

__version__ = "0.1.0"

_EXPORT_MAP: Dict[str, str] = {
    "Provider": "provider",
    "ProviderSettings": "settings",
    "get_settings": "settings",
    "invalidate_settings_cache": "settings",
    "ExtractZipResource": "resources.extract",
    "ExtractTarResource": "resources.extract",
    "LocalDirectoryResource": "resources.local_directory",
    "LocalDirectoryDataSource": "data_sources",
    "BcryptHashDataSource": "data_sources",
    "ExtractionPlan": "models",
    "ExtractionRecord": "models",
    "OperationResult": "diagnostics",
    "WarningCode": "diagnostics",
    "CancellationToken": "cancellation",
    "UtilitiesError": "errors",
    "ConfigurationError": "errors",
    "ExtractionFailed": "errors",
    "Canceled": "errors",
    "path_exists": "functions",
    "path_owner": "functions",
    "path_permission": "functions",
    "http_request": "functions",
}

__all__ = [*_EXPORT_MAP, "__version__"]


def __getattr__(name: str) -> Any:
    module_name = _EXPORT_MAP.get(name)
    if module_name is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    value = getattr(import_module(f".{module_name}", __name__), name)
    globals()[name] = value
    return value


def __dir__() -> list[str]:
    return sorted(set(globals()) | set(__all__))
