"""
Structured Logging Utilities

Centralizes logging setup for the pigeon client: masking credentials and
cookies before they reach a log line, emitting JSON log records, generating
per-call correlation identifiers, and rolling log files to maintain a clean
retention window.

The library itself only ever logs through ``logging.getLogger(__name__)``;
:func:`setup_logging` is for applications that want pigeon's records on the
console and in a JSON-lines file.
"""

from __future__ import annotations

import gzip
import json
import logging
import re
import sys
import uuid
from datetime import datetime, timedelta, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, Optional, Union

LOGGER_NAME = "pigeon"

MASK = "***masked***"

SENSITIVE_KEYS = frozenset(
    {
        "authorization",
        "proxy-authorization",
        "cookie",
        "set-cookie",
        "api_key",
        "apikey",
        "token",
        "secret",
        "password",
    }
)

_URL_USERINFO = re.compile(r"(?P<scheme>[a-zA-Z][a-zA-Z0-9+.-]*://)[^/@\s]+@")

# Attributes every LogRecord carries; anything else arrived through ``extra=``
_RECORD_ATTRIBUTES = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


def mask_sensitive_data(payload: Dict[str, object]) -> Dict[str, object]:
    """Remove secrets from structured payloads prior to logging.

    Args:
        payload: Arbitrary key-value pairs that may contain credentials,
            cookies or URLs with userinfo.

    Returns:
        Copy of the payload where secret fields are replaced with
        ``***masked***`` and URL credentials are stripped.

    Examples:
        >>> mask_sensitive_data({"Authorization": "Basic abc", "status": 200})
        {'Authorization': '***masked***', 'status': 200}
        >>> mask_sensitive_data({"url": "https://u:p@example.com/x"})
        {'url': 'https://***masked***@example.com/x'}
    """
    masked: Dict[str, object] = {}
    for key, value in payload.items():
        if key.lower() in SENSITIVE_KEYS:
            masked[key] = MASK
        elif isinstance(value, str) and "://" in value:
            masked[key] = _URL_USERINFO.sub(rf"\g<scheme>{MASK}@", value)
        else:
            masked[key] = value
    return masked


def generate_correlation_id() -> str:
    """Create a short identifier that links the log lines of one call.

    Examples:
        >>> len(generate_correlation_id())
        12
    """
    return uuid.uuid4().hex[:12]


class JSONFormatter(logging.Formatter):
    """Formatter emitting one JSON object per record.

    Fields passed through ``extra=`` are included at the top level.

    Examples:
        >>> formatter = JSONFormatter()
        >>> isinstance(formatter.format(logging.makeLogRecord({'msg': 'test'})), str)
        True
    """

    def format(self, record: logging.LogRecord) -> str:
        now = datetime.now(timezone.utc)
        log_obj: Dict[str, object] = {
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in vars(record).items():
            if key in _RECORD_ATTRIBUTES or key.startswith("_"):
                continue
            log_obj[key] = value
        if record.exc_info:
            log_obj["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(mask_sensitive_data(log_obj), default=str)


def _compress_old_log(path: Path) -> None:
    """Compress a log file in place using gzip."""
    compressed_path = path.with_suffix(path.suffix + ".gz")
    with path.open("rb") as source, gzip.open(compressed_path, "wb") as target:
        target.write(source.read())
    path.unlink(missing_ok=True)


def _cleanup_logs(log_dir: Path, retention_days: int) -> None:
    """Compress logs older than ``retention_days`` and delete expired archives."""
    now = datetime.now(timezone.utc)
    retention_delta = timedelta(days=retention_days)
    for file in log_dir.glob("*.jsonl"):
        mtime = datetime.fromtimestamp(file.stat().st_mtime, tz=timezone.utc)
        if now - mtime > retention_delta:
            _compress_old_log(file)
    for file in log_dir.glob("*.jsonl.gz"):
        mtime = datetime.fromtimestamp(file.stat().st_mtime, tz=timezone.utc)
        if now - mtime > retention_delta * 2:
            file.unlink(missing_ok=True)


def setup_logging(
    level: Union[str, int] = "INFO",
    log_dir: Optional[Path] = None,
    *,
    max_log_size_mb: int = 10,
    retention_days: int = 30,
    propagate: bool = False,
) -> logging.Logger:
    """Configure console and (optionally) JSON-lines file handlers for pigeon.

    Args:
        level: Level name or number for the ``pigeon`` logger.
        log_dir: Directory for ``pigeon-YYYYMMDD.jsonl`` files; no file handler when None.
        max_log_size_mb: Rotation size of the JSON-lines file.
        retention_days: Age after which old log files are compressed.
        propagate: Whether records also reach the root logger.

    Returns:
        The configured ``pigeon`` logger. Calling again replaces the handlers
        installed by the previous call.

    Examples:
        >>> logger = setup_logging("DEBUG")
        >>> logger.name
        'pigeon'
    """
    logger = logging.getLogger(LOGGER_NAME)
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    logger.setLevel(level)

    for handler in list(logger.handlers):
        if getattr(handler, "_pigeon_managed", False):
            logger.removeHandler(handler)
            handler.close()

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    stream_handler._pigeon_managed = True  # type: ignore[attr-defined]
    logger.addHandler(stream_handler)

    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        _cleanup_logs(log_dir, retention_days)
        today = datetime.now(timezone.utc).strftime("%Y%m%d")
        file_handler = RotatingFileHandler(
            log_dir / f"pigeon-{today}.jsonl",
            maxBytes=int(max_log_size_mb * 1024 * 1024),
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setFormatter(JSONFormatter())
        file_handler._pigeon_managed = True  # type: ignore[attr-defined]
        logger.addHandler(file_handler)

    logger.propagate = propagate
    return logger


__all__ = [
    "JSONFormatter",
    "generate_correlation_id",
    "mask_sensitive_data",
    "setup_logging",
]
