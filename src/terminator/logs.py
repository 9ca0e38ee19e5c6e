"""
Logger construction.

get_logger() builds the single "terminator" logger that is passed to every
component. Records are written one per line in logfmt or JSON, with level
names shortened to debug/info/warn/error.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone

LOGGER_NAME = "terminator"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}

_LEVEL_NAMES = {
    logging.DEBUG: "debug",
    logging.INFO: "info",
    logging.WARNING: "warn",
    logging.ERROR: "error",
    logging.CRITICAL: "error",
}


def level_name(record: logging.LogRecord) -> str:
    return _LEVEL_NAMES.get(record.levelno, record.levelname.lower())


def timestamp(record: logging.LogRecord) -> str:
    ts = datetime.fromtimestamp(record.created, tz=timezone.utc)
    return ts.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _logfmt_value(value: str) -> str:
    if value and not any(c in value for c in ' ="\\\n\t'):
        return value
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
    return f'"{escaped}"'


class LogfmtFormatter(logging.Formatter):
    """ts=... level=warn message="..." """

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        fields = [
            ("ts", timestamp(record)),
            ("level", level_name(record)),
            ("message", message),
        ]
        return " ".join(f"{key}={_logfmt_value(value)}" for key, value in fields)


class JsonFormatter(logging.Formatter):
    """One JSON object per line with ts, level and message."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": timestamp(record),
            "level": level_name(record),
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


_FORMATTERS = {
    "logfmt": LogfmtFormatter,
    "json": JsonFormatter,
}


def get_logger(level: str = "info", output: str = "stdout", fmt: str = "logfmt") -> logging.Logger:
    """
    Configure and return the terminator logger.

    Args:
        level: One of debug, info, warn, error.
        output: stdout or stderr.
        fmt: logfmt or json.

    Raises:
        ValueError: If any argument is not one of the accepted values.
    """
    try:
        numeric_level = _LEVELS[level.lower()]
        formatter = _FORMATTERS[fmt.lower()]()
        stream = {"stdout": sys.stdout, "stderr": sys.stderr}[output.lower()]
    except KeyError as exc:
        raise ValueError(f"unsupported logging setting {exc.args[0]!r}") from exc

    logger = logging.getLogger(LOGGER_NAME)
    logger.handlers = []
    handler = logging.StreamHandler(stream)
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.setLevel(numeric_level)
    logger.propagate = False
    return logger
