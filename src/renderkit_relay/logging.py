"""
Relay logging.

Two sinks share the ``renderkit_relay`` logger tree:

- console: one short line per record, coloured on a TTY unless ``NO_COLOR``
- ``<log_dir>/relay.log``: JSON Lines, rotated, only when a log directory
  is configured

Each module logs through a component logger (Relay, Loader, Forge, HTTP) so
records carry the component name; structured fields go in ``context``.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

ROOT_LOGGER_NAME = "renderkit_relay"
LOG_FILE_NAME = "relay.log"

_USE_COLOR = not os.environ.get("NO_COLOR") and sys.stdout.isatty()


def _ansi(code: str) -> str:
    return f"\033[{code}m" if _USE_COLOR else ""


_RESET = _ansi("0")
_DIM = _ansi("2")

_LEVEL_COLORS = {
    logging.DEBUG: _ansi("36"),
    logging.WARNING: _ansi("33"),
    logging.ERROR: _ansi("31"),
    logging.CRITICAL: _ansi("35"),
}

_COMPONENT_COLORS = {
    "Relay": _ansi("34"),
    "Loader": _ansi("33"),
    "Forge": _ansi("36"),
    "HTTP": _ansi("35"),
}


class JSONLFormatter(logging.Formatter):
    """
    One JSON object per line::

        {"timestamp": "...Z", "level": "ERROR", "component": "Relay",
         "message": "Render failed", "context": {"block": "hero"}}

    Warnings and errors also carry ``source`` (file, line, function);
    records with an exception carry its type and message.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC)
            .isoformat()
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "component": getattr(record, "component", "Relay"),
            "message": record.getMessage(),
        }

        context = getattr(record, "context", None)
        if context:
            entry["context"] = context

        if record.levelno >= logging.WARNING:
            source = {"file": record.pathname, "line": record.lineno}
            if record.funcName and record.funcName != "<module>":
                source["function"] = record.funcName
            entry["source"] = source

        if record.exc_info and record.exc_info[0]:
            entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
            }

        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """``HH:MM:SS [Component] LEVEL: message key=value ...`` (level omitted for INFO)."""

    def format(self, record: logging.LogRecord) -> str:
        component = getattr(record, "component", "Relay")
        color = _COMPONENT_COLORS.get(component, "")
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")

        parts = [f"{_DIM}{timestamp}{_RESET}", f"{color}[{component}]{_RESET}"]
        if record.levelno != logging.INFO:
            level_color = _LEVEL_COLORS.get(record.levelno, "")
            parts.append(f"{level_color}{record.levelname}{_RESET}:")
        parts.append(record.getMessage())

        context = getattr(record, "context", None)
        if context:
            pairs = " ".join(f"{k}={v}" for k, v in context.items())
            parts.append(f"{_DIM}{pairs}{_RESET}")

        message = " ".join(parts)
        if record.exc_info and record.exc_info[0]:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return message


def setup_logging(
    level: int | str = logging.INFO,
    log_dir: Path | str | None = None,
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 3,
) -> Path | None:
    """
    Configure the relay logger tree.

    Args:
        level: Minimum level (int or level name; unknown names mean INFO)
        log_dir: Directory for the JSONL file; console only when ``None``
        max_bytes: Rotation size of the JSONL file
        backup_count: Rotated files to keep

    Returns:
        The log directory, or ``None`` when logging to the console only
    """
    if isinstance(level, str):
        level = logging.getLevelNamesMapping().get(level.upper(), logging.INFO)

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level)
    for handler in list(root.handlers):
        handler.close()
    root.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(ConsoleFormatter())
    root.addHandler(console)

    if log_dir is None:
        return None

    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME
    file_handler = RotatingFileHandler(
        log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    file_handler.setFormatter(JSONLFormatter())
    root.addHandler(file_handler)

    root.info(
        "Relay logging initialized",
        extra={"component": "Relay", "context": {"log_file": str(log_file)}},
    )
    return log_dir


class _ComponentFilter(logging.Filter):
    """Stamps the component name on every record passing through a logger."""

    def __init__(self, component: str) -> None:
        super().__init__()
        self.component = component

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "component"):
            record.component = self.component
        return True


def get_logger(component: str) -> logging.Logger:
    """Logger ``renderkit_relay.<component>`` tagged with *component*."""
    logger = logging.getLogger(f"{ROOT_LOGGER_NAME}.{component.lower()}")
    if not any(isinstance(f, _ComponentFilter) for f in logger.filters):
        logger.addFilter(_ComponentFilter(component))
    return logger


def log_with_context(
    logger: logging.Logger,
    level: int,
    message: str,
    context: dict[str, Any] | None = None,
    exc_info: bool = False,
    **kwargs: Any,
) -> None:
    """Log *message* with structured context (``context`` merged with ``kwargs``)."""
    merged = {**(context or {}), **kwargs}
    extra = {"context": merged} if merged else {}
    logger.log(level, message, extra=extra, exc_info=exc_info)


def get_relay_logger() -> logging.Logger:
    return get_logger("Relay")


def get_loader_logger() -> logging.Logger:
    return get_logger("Loader")


def get_forge_logger() -> logging.Logger:
    return get_logger("Forge")


def get_http_logger() -> logging.Logger:
    return get_logger("HTTP")
