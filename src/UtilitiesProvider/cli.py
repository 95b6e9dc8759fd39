# === NAVMAP v1 ===
# {
#   "module": "UtilitiesProvider.cli",
#   "purpose": "Typer command line driving provider resources, data sources, and functions with JSON state files",
#   "sections": [
#     {"id": "helpers", "name": "State & Output Helpers", "anchor": "HLP", "kind": "helpers"},
#     {"id": "extract", "name": "Extraction Commands", "anchor": "EXT", "kind": "cli"},
#     {"id": "directory", "name": "Directory Commands", "anchor": "DIR", "kind": "cli"},
#     {"id": "misc", "name": "bcrypt, call, show-config", "anchor": "MSC", "kind": "cli"}
#   ]
# }
# === /NAVMAP ===

"""Command line interface for the utilities provider.

Every resource command reads and writes a JSON state file, so a sequence of
invocations behaves like a plan/apply/destroy cycle::

    $ utilities extract --type zip --source site.zip --destination /srv/site --state site.json
    $ utilities refresh --type zip --state site.json
    $ utilities destroy --type zip --state site.json

Results are printed to stdout as JSON.  Fatal errors are printed to stderr and
exit with status 1; a cancelled operation exits with status 130.
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer

from .diagnostics import OperationResult
from .errors import Canceled, FunctionError, UtilitiesError
from .logging_utils import setup_logging
from .provider import PROVIDER_VERSION, Provider
from .settings import LoggingSettings, get_settings

app = typer.Typer(
    name="utilities",
    help="Filesystem, archive, HTTP and bcrypt utilities driven from JSON state files",
    no_args_is_help=True,
)
directory_app = typer.Typer(help="Manage a local directory (utilities_local_directory)")
app.add_typer(directory_app, name="directory")


class ArchiveType(str, Enum):
    zip = "zip"
    tar = "tar"


RESOURCE_TYPES = {
    ArchiveType.zip: "utilities_extract_zip",
    ArchiveType.tar: "utilities_extract_tar",
}

# ============================================================================
# STATE & OUTPUT HELPERS
# ============================================================================


def _load_state(path: Path) -> Optional[Dict[str, Any]]:
    if not path.exists():
        return None
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        typer.echo(f"Error: unable to read state file {path}: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    if payload is None:
        return None
    if not isinstance(payload, dict):
        typer.echo(f"Error: state file {path} does not hold a JSON object", err=True)
        raise typer.Exit(code=1)
    return payload


def _save_state(path: Path, result: OperationResult) -> None:
    payload = result.to_dict()["state"]
    if payload is None:
        path.unlink(missing_ok=True)
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2, sort_keys=True) + "\n", encoding="utf-8")


def _emit(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2, sort_keys=True, default=str))


def _fail(exc: UtilitiesError) -> None:
    payload: Dict[str, Any] = {"error": type(exc).__name__, "message": str(exc)}
    if isinstance(exc, FunctionError):
        payload["argument"] = exc.argument_index
    cause = getattr(exc, "cause", None)
    if cause is not None:
        payload["cause"] = f"{type(cause).__name__}: {cause}"
    typer.echo(json.dumps(payload, sort_keys=True), err=True)
    raise typer.Exit(code=130 if isinstance(exc, Canceled) else 1)


def _provider() -> Provider:
    return Provider(settings=get_settings())


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Logging level (DEBUG, INFO, WARNING, ERROR)"
    ),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit log records as JSON"),
) -> None:
    """Utilities provider command line."""

    configured = get_settings().logging
    overrides: Dict[str, Any] = {}
    if log_level is not None:
        overrides["level"] = log_level
    if json_logs:
        overrides["json_logs"] = True
    try:
        logging_settings = LoggingSettings.model_validate(
            {**configured.model_dump(), **overrides}
        )
    except ValueError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=2) from exc
    setup_logging(logging_settings)


# ============================================================================
# EXTRACTION COMMANDS
# ============================================================================


@app.command()
def extract(
    destination: str = typer.Option(..., "--destination", "-d", help="Directory to extract into"),
    state: Path = typer.Option(..., "--state", help="JSON state file to read and write"),
    archive_type: ArchiveType = typer.Option(ArchiveType.zip, "--type", "-t"),
    source: Optional[str] = typer.Option(None, "--source", "-s", help="Local archive path"),
    url: Optional[str] = typer.Option(None, "--url", "-u", help="Remote archive URL"),
) -> None:
    """Create or update an extraction.

    Without a state file the archive is extracted and a new record saved.
    With one, the extraction is updated: nothing happens when the source is
    unchanged.
    """

    provider = _provider()
    type_name = RESOURCE_TYPES[archive_type]
    plan = {"source": source, "url": url, "destination": destination}
    prior = _load_state(state)
    try:
        if prior is None:
            result = provider.create(type_name, plan)
        else:
            result = provider.update(type_name, plan, prior)
    except UtilitiesError as exc:
        _fail(exc)
        return
    _save_state(state, result)
    _emit(result.to_dict())


@app.command()
def refresh(
    state: Path = typer.Option(..., "--state", help="JSON state file to refresh"),
    archive_type: ArchiveType = typer.Option(ArchiveType.zip, "--type", "-t"),
) -> None:
    """Re-fingerprint the source of an extraction and report drift.

    A drifted record is reported but not saved; the state file keeps the
    fingerprint of the content on disk so the next ``extract`` re-applies the
    changed archive.
    """

    prior = _load_state(state)
    if prior is None:
        typer.echo(f"Error: no state at {state}", err=True)
        raise typer.Exit(code=1)
    try:
        result = _provider().read(RESOURCE_TYPES[archive_type], prior)
    except UtilitiesError as exc:
        _fail(exc)
        return
    if not result.drift_detected:
        _save_state(state, result)
    payload = result.to_dict()
    payload["drift_detected"] = result.drift_detected
    _emit(payload)


@app.command()
def destroy(
    state: Path = typer.Option(..., "--state", help="JSON state file of the extraction"),
    archive_type: ArchiveType = typer.Option(ArchiveType.zip, "--type", "-t"),
) -> None:
    """Remove every path an extraction created."""

    prior = _load_state(state)
    if prior is None:
        _emit({"status": "complete", "state": None, "warnings": []})
        return
    try:
        result = _provider().delete(RESOURCE_TYPES[archive_type], prior)
    except UtilitiesError as exc:
        _fail(exc)
        return
    _save_state(state, result)
    _emit(result.to_dict())


# ============================================================================
# DIRECTORY COMMANDS
# ============================================================================


@directory_app.command("apply")
def directory_apply(
    path: str = typer.Argument(..., help="Directory to manage"),
    state: Path = typer.Option(..., "--state", help="JSON state file to read and write"),
    user: Optional[str] = typer.Option(None, "--user"),
    group: Optional[str] = typer.Option(None, "--group"),
    permissions: Optional[str] = typer.Option(None, "--permissions", help="Octal, e.g. 0755"),
    force: bool = typer.Option(False, "--force", help="Allow destroy to remove a pre-existing directory"),
) -> None:
    """Create or update a managed directory."""

    config = {
        "path": path,
        "user": user,
        "group": group,
        "permissions": permissions,
        "force": force,
    }
    prior = _load_state(state)
    provider = _provider()
    try:
        if prior is None:
            result = provider.create("utilities_local_directory", config)
        else:
            result = provider.update("utilities_local_directory", config, prior)
    except UtilitiesError as exc:
        _fail(exc)
        return
    _save_state(state, result)
    _emit(result.to_dict())


@directory_app.command("destroy")
def directory_destroy(
    state: Path = typer.Option(..., "--state", help="JSON state file of the directory"),
) -> None:
    """Remove a managed directory (or one applied with --force)."""

    prior = _load_state(state)
    if prior is None:
        _emit({"status": "complete", "state": None, "warnings": []})
        return
    try:
        result = _provider().delete("utilities_local_directory", prior)
    except UtilitiesError as exc:
        _fail(exc)
        return
    _save_state(state, result)
    _emit(result.to_dict())


@directory_app.command("show")
def directory_show(path: str = typer.Argument(..., help="Directory to inspect")) -> None:
    """Describe a directory without managing it."""

    info = _provider().read_data_source("utilities_local_directory", path=path)
    _emit(info.model_dump(mode="json"))


# ============================================================================
# BCRYPT, CALL, SHOW-CONFIG
# ============================================================================


@app.command("bcrypt")
def bcrypt_hash(
    plaintext: str = typer.Argument(..., help="Value to hash"),
    cost: Optional[int] = typer.Option(None, "--cost", help="bcrypt cost factor (4-31)"),
) -> None:
    """Hash a plaintext with bcrypt, reusing the hash recorded in Terraform state."""

    try:
        result = _provider().read_data_source("utilities_bcrypt_hash", plaintext=plaintext, cost=cost)
    except UtilitiesError as exc:
        _fail(exc)
        return
    _emit(result.model_dump(mode="json", exclude={"plaintext"}))


@app.command("call")
def call_function(
    name: str = typer.Argument(..., help="path_exists, path_owner, path_permission or http_request"),
    arguments: Optional[List[str]] = typer.Argument(None, help="Positional function arguments"),
    header: Optional[List[str]] = typer.Option(
        None, "--header", "-H", help="Request header as NAME=VALUE (http_request only)"
    ),
) -> None:
    """Call a provider function and print its result."""

    provider = _provider()
    args: List[Any] = list(arguments or [])
    if name == "http_request":
        headers: Dict[str, str] = {}
        for item in header or []:
            key, sep, value = item.partition("=")
            if not sep or not key:
                typer.echo(f"Error: header must be NAME=VALUE, got {item!r}", err=True)
                raise typer.Exit(code=2)
            headers[key.strip()] = value.strip()
        while len(args) < 3:
            args.append(["", "GET", ""][len(args)])
        args.append(headers)
    try:
        result = provider.call_function(name, *args)
    except TypeError as exc:
        typer.echo(f"Error: wrong arguments for {name}: {exc}", err=True)
        raise typer.Exit(code=2) from exc
    except UtilitiesError as exc:
        _fail(exc)
        return
    if hasattr(result, "model_dump"):
        _emit(result.model_dump(mode="json"))
    else:
        _emit({"result": result})


@app.command("show-config")
def show_config() -> None:
    """Print the effective settings and their hash."""

    settings = get_settings()
    payload = settings.model_dump(mode="json")
    payload["config_hash"] = settings.config_hash()
    payload["version"] = PROVIDER_VERSION
    _emit(payload)


def run() -> None:
    """Console-script entry point."""

    logging.captureWarnings(True)
    app()


__all__ = ["app", "run"]
