"""Structured logging helpers shared across provider components."""

from __future__ import annotations

import gzip
import json
import logging
import sys
from datetime import datetime, timedelta, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional

from .io import mask_sensitive_data
from .settings import LoggingSettings

__all__ = ["LOGGER_NAME", "JSONFormatter", "setup_logging", "get_logger"]

LOGGER_NAME = "UtilitiesProvider"

_STRUCTURED_FIELDS = ("code", "detail", "path", "resource", "url", "status", "attempt")


class JSONFormatter(logging.Formatter):
    """Formatter emitting masked JSON log entries."""

    def format(self, record: logging.LogRecord) -> str:
        """Render ``record`` as a JSON string with provider-specific fields."""

        now = datetime.now(timezone.utc)
        payload = {
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", None),
            "stage": getattr(record, "stage", None),
        }
        for name in _STRUCTURED_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                payload[name] = value
        if hasattr(record, "extra_fields") and isinstance(record.extra_fields, dict):
            payload.update(record.extra_fields)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(mask_sensitive_data(payload), default=str)


def _compress_old_log(path: Path) -> None:
    """Compress ``path`` into a ``.gz`` file and remove the original."""

    compressed_path = path.with_suffix(path.suffix + ".gz")
    with path.open("rb") as source, gzip.open(compressed_path, "wb") as target:
        target.write(source.read())
    path.unlink(missing_ok=True)


def _cleanup_logs(log_dir: Path, retention_days: int) -> List[str]:
    """Compress or purge log files in ``log_dir`` based on retention policy."""

    actions: List[str] = []
    now = datetime.now(timezone.utc)
    retention_delta = timedelta(days=retention_days)
    for file in log_dir.glob("*.jsonl"):
        mtime = datetime.fromtimestamp(file.stat().st_mtime, tz=timezone.utc)
        if now - mtime > retention_delta:
            target = file.with_suffix(file.suffix + ".gz")
            _compress_old_log(file)
            actions.append(f"Compressed {file.name} -> {target.name}")
    for file in log_dir.glob("*.jsonl.gz"):
        mtime = datetime.fromtimestamp(file.stat().st_mtime, tz=timezone.utc)
        if now - mtime > retention_delta:
            file.unlink(missing_ok=True)
            actions.append(f"Deleted expired archive {file.name}")
    return actions


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return the package logger or one of its children."""

    if not name:
        return logging.getLogger(LOGGER_NAME)
    return logging.getLogger(f"{LOGGER_NAME}.{name}")


def setup_logging(
    settings: Optional[LoggingSettings] = None,
    *,
    stream=None,
    propagate: bool = False,
) -> logging.Logger:
    """Configure provider logging with an optional rotating JSON log file.

    Handlers installed here are tagged so calling the function again replaces
    them instead of stacking duplicates.
    """

    cfg = settings or LoggingSettings()

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, cfg.level.upper(), logging.INFO))

    for handler in list(logger.handlers):
        if getattr(handler, "_utilities_managed", False):
            logger.removeHandler(handler)
            if isinstance(handler, logging.StreamHandler):
                handler_stream = getattr(handler, "stream", None)
                if handler_stream in (sys.stdout, sys.stderr):
                    continue
            handler.close()

    if cfg.json_logs:
        console_formatter: logging.Formatter = JSONFormatter()
    else:
        console_formatter = logging.Formatter("%(levelname)s: %(message)s")
    stream_handler = logging.StreamHandler(stream or sys.stderr)
    stream_handler.setFormatter(console_formatter)
    stream_handler._utilities_managed = True  # type: ignore[attr-defined]
    logger.addHandler(stream_handler)

    if cfg.log_dir is not None:
        log_dir = Path(cfg.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        _cleanup_logs(log_dir, cfg.retention_days)
        today = datetime.now(timezone.utc).strftime("%Y%m%d")
        file_handler = RotatingFileHandler(
            log_dir / f"utilities-{today}.jsonl",
            maxBytes=int(cfg.max_log_size_mb * 1024 * 1024),
            backupCount=5,
        )
        file_handler.setFormatter(JSONFormatter())
        file_handler._utilities_managed = True  # type: ignore[attr-defined]
        logger.addHandler(file_handler)

    logger.propagate = propagate
    return logger
