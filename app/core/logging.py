import json
import logging
import logging.config
from datetime import datetime, timezone
from typing import Any, Optional

from app.core.context import get_actor_id, get_request_id
from app.core.settings import settings

AUDIT_LOGGER_NAME = "app.audit"

# Structured fields services attach through ``extra=``
CONTEXT_FIELDS = ("proposal_id", "document_type", "blob_key", "action", "reason", "notification_id")

TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] [%(request_id)s] [%(actor_id)s] %(message)s"


class RequestContextFilter(logging.Filter):
    """Stamp request and actor ids from the current context onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()
        record.actor_id = get_actor_id()
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line, labelled with the stream it belongs to."""

    def __init__(self, stream_label: str = "transactional") -> None:
        super().__init__()
        self.stream_label = stream_label

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "stream": self.stream_label,
            "request_id": getattr(record, "request_id", "-"),
            "actor_id": getattr(record, "actor_id", "-"),
            "message": record.getMessage(),
        }
        entry.update(
            {key: getattr(record, key) for key in CONTEXT_FIELDS if getattr(record, key, None) is not None}
        )
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _formatter(stream_label: str) -> dict[str, Any]:
    if settings.log_format == "text":
        return {"format": TEXT_FORMAT}
    return {"()": JsonFormatter, "stream_label": stream_label}


def _stream_handler(formatter: str, level: str) -> dict[str, Any]:
    return {
        "class": "logging.StreamHandler",
        "level": level,
        "formatter": formatter,
        "filters": ["request_context"],
        "stream": "ext://sys.stdout",
    }


def _server_logger(level: str) -> dict[str, Any]:
    return {"handlers": ["default"], "level": level, "propagate": False}


def configure_logging(level: Optional[str] = None) -> None:
    log_level = (level or settings.log_level).upper()
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {"request_context": {"()": RequestContextFilter}},
            "formatters": {
                "transactional": _formatter("transactional"),
                "audit": _formatter("audit"),
            },
            "handlers": {
                "default": _stream_handler("transactional", log_level),
                "audit": _stream_handler("audit", log_level),
            },
            "root": {"handlers": ["default"], "level": log_level},
            "loggers": {
                # Audit lines go to their own stream only
                AUDIT_LOGGER_NAME: {"handlers": ["audit"], "level": log_level, "propagate": False},
                "uvicorn": _server_logger(log_level),
                "uvicorn.error": _server_logger(log_level),
                "uvicorn.access": _server_logger(log_level),
                "sqlalchemy.engine": {"level": "WARNING"},
            },
        }
    )
    logging.getLogger(__name__).debug(
        "Logging configured (level=%s, format=%s, environment=%s)",
        log_level,
        settings.log_format,
        settings.environment,
    )


def get_audit_logger() -> logging.Logger:
    return logging.getLogger(AUDIT_LOGGER_NAME)
