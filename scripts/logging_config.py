"""Diagnostic logging for the add-on monitor.

Diagnostics go to *stderr*; the per-repository progress lines and the
run summary are the commands' own stdout and never pass through here.
Scheduled CI runs keep the default JSON-lines format so the records can
be filtered by ``repo`` or ``endpoint``; ``LOG_FORMAT=text`` switches to
a one-line human format for local runs.

Usage
-----
::

    from logging_config import setup_logging

    logger = setup_logging(__name__)
    logger.warning("rate limit reached", extra={"repo": "owner/repo", "remaining": 9})
"""

from __future__ import annotations

import json
import logging
import os
import re
import sys
from datetime import datetime, timezone

# Optional ``extra=`` fields copied into every record that carries them.
STRUCTURED_KEYS = ("repo", "endpoint", "status_code", "remaining", "issue")

_CONTROL_CHAR_RE = re.compile(r"[\r\n\x00-\x1f\x7f]")


def sanitize_log(value: object) -> str:
    """Strip newlines and control characters from an API-supplied value.

    Issue titles and error messages come from remote repositories and
    must not be able to forge extra log lines in the text format.
    """
    return _CONTROL_CHAR_RE.sub("", str(value))


def _structured_fields(record: logging.LogRecord) -> dict[str, object]:
    return {key: getattr(record, key) for key in STRUCTURED_KEYS if getattr(record, key, None) is not None}


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_structured_fields(record),
        }
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """``LEVEL logger: message [key=value ...]`` for interactive use."""

    def format(self, record: logging.LogRecord) -> str:
        line = f"{record.levelname} {record.name}: {sanitize_log(record.getMessage())}"
        fields = _structured_fields(record)
        if fields:
            line += " [" + " ".join(f"{k}={v}" for k, v in fields.items()) + "]"
        if record.exc_info and record.exc_info[1] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


class _StderrHandler(logging.StreamHandler):
    """``StreamHandler`` bound to whatever ``sys.stderr`` is at emit time.

    pytest's ``capsys`` swaps ``sys.stderr`` after loggers are created.
    """

    def __init__(self) -> None:
        super().__init__(sys.stderr)

    @property
    def stream(self):
        return sys.stderr

    @stream.setter
    def stream(self, _value) -> None:
        pass


def _resolve_level(level: str | None) -> int:
    name = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    return getattr(logging, name, logging.INFO)


def _formatter() -> logging.Formatter:
    if os.environ.get("LOG_FORMAT", "json").lower() == "text":
        return TextFormatter()
    return JSONFormatter()


def setup_logging(
    name: str = "",
    level: str | None = None,
) -> logging.Logger:
    """Return the logger *name*, attaching the stderr handler on first use.

    Parameters
    ----------
    name : str
        Logger name, typically ``__name__`` of the calling module.
    level : str | None
        Override log level (``DEBUG``, ``INFO``, ``WARNING``, ``ERROR``).
        Defaults to the ``LOG_LEVEL`` environment variable or ``INFO``.
        An explicit level is applied even if the logger already exists.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        if level:
            logger.setLevel(_resolve_level(level))
        return logger

    logger.setLevel(_resolve_level(level))
    handler = _StderrHandler()
    handler.setFormatter(_formatter())
    logger.addHandler(handler)
    logger.propagate = False
    return logger
