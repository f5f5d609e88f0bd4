from __future__ import annotations

import json
import logging
import logging.config
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

# Attributes every LogRecord carries; anything else came in through ``extra=``
_RECORD_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}

# Third-party loggers that are noisy at INFO
_QUIET_LOGGERS = ("apscheduler", "aiosqlite", "asyncio")


class JsonFormatter(logging.Formatter):
    """One JSON object per line, including fields passed via ``extra=``."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in _RECORD_ATTRS and not key.startswith("_"):
                payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack"] = record.stack_info
        return json.dumps(payload, ensure_ascii=False, default=str)


_configured = False


def configure_logging(settings=None) -> None:
    """
    Configure application logging once per process.

    Console output follows ``LOG_JSON``; the rotating file handler always
    writes JSON. ``LOG_FILE=-`` disables the file handler.
    """

    global _configured
    if _configured:
        return

    if settings is None:
        from leetdash.core.settings import get_settings

        settings = get_settings()

    log_level = settings.log_level or "INFO"
    handlers: Dict[str, Dict[str, Any]] = {
        "console": {
            "class": "logging.StreamHandler",
            "level": log_level,
            "formatter": "json" if settings.log_json else "standard",
        },
    }
    if settings.log_file != "-":
        log_file = Path(settings.log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": log_level,
            "formatter": "json",
            "filename": str(log_file),
            "maxBytes": 5 * 1024 * 1024,
            "backupCount": 5,
            "encoding": "utf-8",
        }

    loggers: Dict[str, Dict[str, Any]] = {name: {"level": "WARNING"} for name in _QUIET_LOGGERS}

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "standard": {"format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s"},
                "json": {"()": "leetdash.core.logging.JsonFormatter"},
            },
            "handlers": handlers,
            "loggers": loggers,
            "root": {"level": log_level, "handlers": list(handlers)},
        }
    )
    logging.captureWarnings(True)
    _configured = True


__all__ = ["configure_logging", "JsonFormatter"]
