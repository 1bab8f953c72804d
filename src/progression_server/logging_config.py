"""Process-wide logging setup.

Modules log through ``logging.getLogger(__name__)``; this module only decides
where records go and how they look. The format is chosen by
``config.logging.format``:

    simple    level and message
    detailed  timestamp, level, logger name, message
    json      one JSON object per line
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime

from progression_server.config import LoggingSettings

_FORMATS = {
    "simple": "%(levelname)s: %(message)s",
    "detailed": "%(asctime)s %(levelname)-8s %(name)s - %(message)s",
}


class JsonFormatter(logging.Formatter):
    """Emit log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = str(record.exc_info[1])
        return json.dumps(entry, default=str)


def build_formatter(fmt: str) -> logging.Formatter:
    """Return the formatter for a configured format name."""
    if fmt == "json":
        return JsonFormatter()
    return logging.Formatter(_FORMATS.get(fmt, _FORMATS["detailed"]))


def configure_logging(settings: LoggingSettings | None = None) -> logging.Logger:
    """Install a single stderr handler on the ``progression_server`` logger.

    Calling this twice replaces the previous handler rather than stacking a
    second one.

    Args:
        settings: Logging section to apply. Defaults to the loaded config.

    Returns:
        The configured package logger.
    """
    if settings is None:
        from progression_server.config import config

        settings = config.logging

    root = logging.getLogger("progression_server")
    root.setLevel(getattr(logging, settings.level.upper(), logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(build_formatter(settings.format))
    root.addHandler(handler)
    return root
