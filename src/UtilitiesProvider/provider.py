# === NAVMAP v1 ===
# {
#   "module": "UtilitiesProvider.provider",
#   "purpose": "In-process registry of resources, data sources, and functions with shared settings and cancellation",
#   "sections": [
#     {"id": "registry", "name": "Provider", "anchor": "PRV", "kind": "api"},
#     {"id": "operations", "name": "Resource Operations", "anchor": "OPS", "kind": "api"},
#     {"id": "reconcile", "name": "Reconcile", "anchor": "REC", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""The ``utilities`` provider registry.

:class:`Provider` wires every resource, data source and function to one set of
settings, one HTTP client, and one ownership provider.  It hands each
resource operation a cancellation token from a shared
:class:`~UtilitiesProvider.cancellation.CancellationTokenGroup`, so
:meth:`Provider.stop` reaches every operation still in flight.
"""

from __future__ import annotations

import functools
import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional

import httpx

from .cancellation import CancellationToken, CancellationTokenGroup
from .data_sources import BcryptHashDataSource, LocalDirectoryDataSource
from .diagnostics import OperationResult
from .errors import ConfigurationError
from .functions import http_request, path_exists, path_owner, path_permission
from .io import OwnershipProvider, default_ownership_provider
from .resources import ExtractTarResource, ExtractZipResource, LocalDirectoryResource
from .settings import ProviderSettings, get_settings

__all__ = ["PROVIDER_TYPE_NAME", "PROVIDER_VERSION", "Provider"]

PROVIDER_TYPE_NAME = "utilities"
PROVIDER_VERSION = "0.1.0"

LOGGER = logging.getLogger("UtilitiesProvider")


class Provider:
    """Registry of everything the ``utilities`` provider exposes."""

    type_name = PROVIDER_TYPE_NAME

    def __init__(
        self,
        *,
        settings: Optional[ProviderSettings] = None,
        client: Optional[httpx.Client] = None,
        ownership: Optional[OwnershipProvider] = None,
        version: str = PROVIDER_VERSION,
    ) -> None:
        self.settings = settings or get_settings()
        self.version = version
        self._client = client
        self._ownership = ownership or default_ownership_provider()
        self._tokens = CancellationTokenGroup()

        self.resources: Dict[str, Any] = {}
        self.data_sources: Dict[str, Any] = {}
        self.functions: Dict[str, Callable[..., Any]] = {}

        for resource in (
            ExtractZipResource(client=client),
            ExtractTarResource(client=client),
            LocalDirectoryResource(
                ownership=self._ownership,
                protected_paths=self.settings.directory.protected_paths,
            ),
        ):
            self.resources[resource.type_name] = resource

        for data_source in (
            LocalDirectoryDataSource(ownership=self._ownership),
            BcryptHashDataSource(settings=self.settings.bcrypt),
        ):
            self.data_sources[data_source.type_name] = data_source

        self.functions = {
            "path_exists": path_exists,
            "path_owner": functools.partial(path_owner, ownership=self._ownership),
            "path_permission": path_permission,
            "http_request": functools.partial(
                http_request, client=client, retry_settings=self.settings.retry
            ),
        }

    # --- Registry ---------------------------------------------------------------

    def resource(self, type_name: str):
        try:
            return self.resources[type_name]
        except KeyError:
            raise ConfigurationError(f"unknown resource type: {type_name}") from None

    def data_source(self, type_name: str):
        try:
            return self.data_sources[type_name]
        except KeyError:
            raise ConfigurationError(f"unknown data source: {type_name}") from None

    def function(self, name: str) -> Callable[..., Any]:
        try:
            return self.functions[name]
        except KeyError:
            raise ConfigurationError(f"unknown function: {name}") from None

    def metadata(self) -> Dict[str, Any]:
        return {
            "type_name": self.type_name,
            "version": self.version,
            "resources": sorted(self.resources),
            "data_sources": sorted(self.data_sources),
            "functions": sorted(self.functions),
        }

    # --- Cancellation -----------------------------------------------------------

    @contextmanager
    def operation_token(self) -> Iterator[CancellationToken]:
        """Yield a token that :meth:`stop` cancels; released when the block exits."""

        token = self._tokens.create_token()
        try:
            yield token
        finally:
            self._tokens.remove_token(token)

    def stop(self) -> None:
        """Cancel every in-flight operation and any started afterwards."""

        LOGGER.warning(
            "stop requested; cancelling in-flight operations",
            extra={"stage": "provider", "operations": len(self._tokens)},
        )
        self._tokens.cancel_all()

    # --- Resource operations ----------------------------------------------------

    def _supports_cancellation(self, resource: Any) -> bool:
        return not isinstance(resource, LocalDirectoryResource)

    def create(self, type_name: str, plan: Any) -> OperationResult:
        resource = self.resource(type_name)
        if not self._supports_cancellation(resource):
            return resource.create(plan)
        with self.operation_token() as token:
            return resource.create(plan, cancellation_token=token)

    def read(self, type_name: str, state: Any) -> OperationResult:
        resource = self.resource(type_name)
        if not self._supports_cancellation(resource):
            return resource.read(state)
        with self.operation_token() as token:
            return resource.read(state, cancellation_token=token)

    def update(self, type_name: str, plan: Any, prior: Any) -> OperationResult:
        resource = self.resource(type_name)
        if not self._supports_cancellation(resource):
            return resource.update(plan, prior)
        with self.operation_token() as token:
            return resource.update(plan, prior, cancellation_token=token)

    def delete(self, type_name: str, state: Any) -> OperationResult:
        resource = self.resource(type_name)
        if not self._supports_cancellation(resource):
            return resource.delete(state)
        with self.operation_token() as token:
            return resource.delete(state, cancellation_token=token)

    def read_data_source(self, type_name: str, **arguments: Any):
        return self.data_source(type_name).read(**arguments)

    def call_function(self, name: str, *arguments: Any):
        return self.function(name)(*arguments)

    # --- Reconcile --------------------------------------------------------------

    def reconcile(self, type_name: str, plan: Any, state: Any) -> OperationResult:
        """Refresh ``state`` and bring it in line with ``plan``.

        A refresh that reports drift schedules an update against the
        pre-refresh record, so a changed source archive is extracted again.
        Without drift the update still runs; it is a no-op when nothing
        changed.  Warnings from the refresh are carried into the result.
        """

        refreshed = self.read(type_name, state)
        prior = state if refreshed.drift_detected else refreshed.state
        if refreshed.drift_detected:
            LOGGER.info(
                "drift detected; re-applying configuration",
                extra={"stage": "provider", "resource": type_name},
            )
        result = self.update(type_name, plan, prior)
        warnings: List = list(refreshed.warnings)
        warnings.extend(result.warnings)
        return OperationResult(state=result.state, warnings=warnings, succeeded=result.succeeded)
