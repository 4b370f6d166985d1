"""
Structured Logging Utilities

Centralises logging setup for ContentHub: masking sensitive fields, emitting
JSON log records, generating correlation identifiers, and rolling log files to
keep a bounded retention window.  Modules log through
``logging.getLogger(__name__)`` and attach context with
``extra={"stage": ..., "slug": ...}``; the JSON formatter lifts those keys into
the emitted object.
"""

from __future__ import annotations

import gzip
import json
import logging
import sys
import uuid
from datetime import datetime, timedelta, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict

from ContentHub.config.models import LoggingConfig

ROOT_LOGGER_NAME = "ContentHub"

_SENSITIVE_KEYS = {"authorization", "api_key", "apikey", "token", "secret", "password"}
_CONTEXT_KEYS = ("stage", "slug", "content_id", "correlation_id", "path", "reason")


def mask_sensitive_data(payload: Dict[str, object]) -> Dict[str, object]:
    """Return a copy of ``payload`` with common secret fields masked.

    Examples:
        >>> mask_sensitive_data({"password": "hunter2", "status": "ok"})
        {'password': '***masked***', 'status': 'ok'}
    """
    masked: Dict[str, object] = {}
    for key, value in payload.items():
        lower = key.lower()
        if lower in _SENSITIVE_KEYS:
            masked[key] = "***masked***"
        elif isinstance(value, str) and "bearer " in value.lower():
            masked[key] = "***masked***"
        else:
            masked[key] = value
    return masked


def generate_correlation_id() -> str:
    """Return a twelve character identifier linking related log entries."""
    return uuid.uuid4().hex[:12]


class JSONFormatter(logging.Formatter):
    """Formatter emitting one JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        now = datetime.now(timezone.utc)
        log_obj: Dict[str, object] = {
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in _CONTEXT_KEYS:
            log_obj[key] = getattr(record, key, None)
        if record.exc_info:
            log_obj["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(mask_sensitive_data(log_obj), default=str)


def _compress_old_log(path: Path) -> None:
    """Compress a log file in place with gzip."""
    compressed_path = path.with_suffix(path.suffix + ".gz")
    with path.open("rb") as source, gzip.open(compressed_path, "wb") as target:
        target.write(source.read())
    path.unlink(missing_ok=True)


def _cleanup_logs(log_dir: Path, retention_days: int) -> None:
    """Compress then expire JSON log files older than ``retention_days``."""
    now = datetime.now(timezone.utc)
    retention_delta = timedelta(days=retention_days)
    for file in log_dir.glob("*.jsonl"):
        mtime = datetime.fromtimestamp(file.stat().st_mtime, tz=timezone.utc)
        if now - mtime > retention_delta:
            _compress_old_log(file)
    for file in log_dir.glob("*.jsonl.gz"):
        mtime = datetime.fromtimestamp(file.stat().st_mtime, tz=timezone.utc)
        if now - mtime > retention_delta:
            file.unlink(missing_ok=True)


def setup_logging(config: LoggingConfig) -> logging.Logger:
    """Configure console and optional JSON file handlers for ContentHub.

    Handlers installed by a previous call are replaced, so calling this more
    than once (tests, CLI re-entry) does not duplicate output.

    Returns:
        The ``ContentHub`` package logger.
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(getattr(logging, config.level.upper(), logging.INFO))

    for handler in list(logger.handlers):
        if getattr(handler, "_contenthub_managed", False):
            logger.removeHandler(handler)
            handler.close()

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    stream_handler._contenthub_managed = True  # type: ignore[attr-defined]
    logger.addHandler(stream_handler)

    if config.json_file is not None:
        log_path = Path(config.json_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        _cleanup_logs(log_path.parent, config.retention_days)
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=int(config.max_log_size_mb * 1024 * 1024),
            backupCount=5,
        )
        file_handler.setFormatter(JSONFormatter())
        file_handler._contenthub_managed = True  # type: ignore[attr-defined]
        logger.addHandler(file_handler)

    logger.propagate = True
    return logger


__all__ = [
    "JSONFormatter",
    "ROOT_LOGGER_NAME",
    "generate_correlation_id",
    "mask_sensitive_data",
    "setup_logging",
]
