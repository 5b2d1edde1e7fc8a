"""Root logging configuration for the indexer processes.

Every module logs through ``logging.getLogger(__name__)``; this module only
decides where those records go and how they look. The CLI calls
:func:`configure_logging` once per process (the API server and the scan loop
run in separate processes and each configure themselves).
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime

_FORMATS = {
    "simple": "%(levelname)s %(message)s",
    "detailed": "%(asctime)s %(levelname)-8s %(name)s: %(message)s",
}


class JsonFormatter(logging.Formatter):
    """One JSON object per line, for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def _resolve_level(level_name: str) -> int:
    return getattr(logging, level_name.upper(), logging.INFO)


def _build_formatter(fmt: str) -> logging.Formatter:
    if fmt == "json":
        return JsonFormatter()
    return logging.Formatter(_FORMATS.get(fmt, _FORMATS["detailed"]))


def configure_logging(level: str | None = None, fmt: str | None = None) -> None:
    """Configure root logging from arguments or the loaded config.

    Existing root handlers (for example the ones uvicorn or pytest install)
    are reused and only re-leveled and re-formatted.
    """
    from antsol_indexer.config import config

    resolved_level = _resolve_level(level or config.logging.level)
    formatter = _build_formatter(fmt or config.logging.format)
    root_logger = logging.getLogger()

    if root_logger.handlers:
        root_logger.setLevel(resolved_level)
        for handler in root_logger.handlers:
            handler.setLevel(resolved_level)
            handler.setFormatter(formatter)
        return

    logging.basicConfig(level=resolved_level)
    for handler in logging.getLogger().handlers:
        handler.setFormatter(formatter)
