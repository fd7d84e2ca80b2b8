"""Logging configuration shared by the library and the CLI.

Provides:
    - Console and file handlers, the file optionally rotated
    - JSON output mode for log ingestion
    - Contextual fields (project, file) carried through contextvars
    - Warning capture (Python warnings -> logging)

Public API:
    setup_logging(log_level="INFO", context={"app": "export"})
    push_context(project="bracket")
    pop_context(keys=["project"])

Format examples:
    Human: 2026-03-02T09:12:44.501Z | INFO     | project=bracket | exported 412 lines
    JSON:  {"t": "2026-03-02T09:12:44.501000+00:00", "lvl": "INFO", "project": "bracket", ...}

Idempotent: repeated setup_logging() calls replace the handlers they
installed instead of stacking new ones.
"""

from __future__ import annotations

import contextvars
import json as jsonlib
import logging
import logging.handlers
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

_context_var: contextvars.ContextVar[dict[str, Any]] = contextvars.ContextVar(
    "gcam_logging_context", default={}
)

# handlers installed by setup_logging, removed again on the next call
_installed: list[logging.Handler] = []

_COLORS = {
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[35m",
}
_RESET = "\033[0m"


class ContextFormatter(logging.Formatter):
    """Formatter that appends the fields set with :func:`push_context`.

    Parameters
    ----------
    fmt_mode : str
        ``"human"`` or ``"json"``.
    use_color : bool
        ANSI level colours; only honoured when stderr is a terminal.
    tz : str
        ``"UTC"`` or ``"local"`` timestamps.
    """

    def __init__(self, fmt_mode: str = "human", use_color: bool = True, tz: str = "UTC") -> None:
        super().__init__()
        if fmt_mode not in ("human", "json"):
            raise ValueError(f"Unknown format mode: {fmt_mode}. Use 'human' or 'json'.")
        self.fmt_mode = fmt_mode
        self.use_color = use_color and sys.stderr.isatty()
        self.tz = tz

    def format(self, record: logging.LogRecord) -> str:
        context = _context_var.get()
        if self.tz == "UTC":
            ts = datetime.fromtimestamp(record.created, tz=timezone.utc)
        else:
            ts = datetime.fromtimestamp(record.created)
        if self.fmt_mode == "json":
            return self._format_json(record, ts, context)
        return self._format_human(record, ts, context)

    def _format_json(self, record: logging.LogRecord, ts: datetime, context: dict) -> str:
        entry = {
            "t": ts.isoformat(),
            "lvl": record.levelname,
            "name": record.name,
            "pid": os.getpid(),
            "msg": record.getMessage(),
        }
        entry.update(context)
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return jsonlib.dumps(entry, default=str)

    def _format_human(self, record: logging.LogRecord, ts: datetime, context: dict) -> str:
        ts_str = ts.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"
        level = f"{record.levelname:8s}"
        if self.use_color:
            level = f"{_COLORS.get(record.levelname, '')}{level}{_RESET}"

        parts = [ts_str, "|", level, "|"]
        if context:
            parts.append(" ".join(f"{k}={v}" for k, v in context.items()))
            parts.append("|")
        parts.append(record.getMessage())
        line = " ".join(parts)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str | Path] = None,
    *,
    json: bool = False,
    color: bool = True,
    to_stderr: bool = True,
    rotate: Optional[dict[str, Any]] = None,
    tz: str = "UTC",
    capture_warnings: bool = True,
    context: Optional[dict[str, Any]] = None,
) -> list[logging.Handler]:
    """Configure the root logger (idempotent).

    Parameters
    ----------
    log_level : str
        "DEBUG", "INFO", "WARNING", "ERROR" or "CRITICAL".
    log_file : str or Path, optional
        Also log to this file; its directory is created.
    json : bool
        JSON lines in the log file instead of the human format.
    color : bool
        ANSI colours on the console.
    to_stderr : bool
        Install the console handler.
    rotate : dict, optional
        ``{"mode": "size", "max_bytes": ..., "backup_count": ...}`` or
        ``{"mode": "time", "when": "D", "interval": 1, "backup_count": ...}``.
    tz : str
        "UTC" (default) or "local".
    capture_warnings : bool
        Route :mod:`warnings` through logging.
    context : dict, optional
        Initial contextual fields.

    Returns
    -------
    list of logging.Handler
        The handlers installed by this call.

    Raises
    ------
    ValueError
        Unknown level name or rotation mode.
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level}")

    root = logging.getLogger()
    for handler in _installed:
        root.removeHandler(handler)
        handler.close()
    _installed.clear()
    root.setLevel(level)

    if to_stderr:
        console = logging.StreamHandler(sys.stderr)
        console.setFormatter(ContextFormatter("human", color, tz))
        _installed.append(console)
    if log_file:
        _installed.append(_create_file_handler(log_file, rotate, json, tz))
    for handler in _installed:
        root.addHandler(handler)

    if context:
        push_context(**context)
    if capture_warnings:
        logging.captureWarnings(True)
    return list(_installed)


def _create_file_handler(
    log_file: str | Path,
    rotate: Optional[dict[str, Any]],
    json_format: bool,
    tz: str,
) -> logging.Handler:
    path = Path(log_file)
    path.parent.mkdir(parents=True, exist_ok=True)

    if rotate:
        mode = rotate.get("mode", "size")
        if mode == "size":
            handler: logging.Handler = logging.handlers.RotatingFileHandler(
                path,
                maxBytes=rotate.get("max_bytes", 10_000_000),
                backupCount=rotate.get("backup_count", 5),
            )
        elif mode == "time":
            handler = logging.handlers.TimedRotatingFileHandler(
                path,
                when=rotate.get("when", "D"),
                interval=rotate.get("interval", 1),
                backupCount=rotate.get("backup_count", 7),
            )
        else:
            raise ValueError(f"Unknown rotation mode: {mode}. Use 'size' or 'time'.")
    else:
        handler = logging.FileHandler(path)

    handler.setFormatter(ContextFormatter("json" if json_format else "human", False, tz))
    return handler


def push_context(**kwargs: Any) -> None:
    """Add fields to every subsequent log record of this context.

    Examples
    --------
    >>> push_context(project="bracket")
    >>> logger.info("exported")  # -> "... | project=bracket | exported"
    """
    _context_var.set({**_context_var.get(), **kwargs})


def pop_context(keys: Optional[list[str]] = None) -> None:
    """Remove the named fields, or all of them when *keys* is None."""
    if keys is None:
        _context_var.set({})
        return
    current = dict(_context_var.get())
    for key in keys:
        current.pop(key, None)
    _context_var.set(current)


def get_context() -> dict[str, Any]:
    """Copy of the current contextual fields."""
    return dict(_context_var.get())


__all__ = [
    "ContextFormatter",
    "get_context",
    "pop_context",
    "push_context",
    "setup_logging",
]
