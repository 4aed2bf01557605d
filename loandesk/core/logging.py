import json
import logging
import logging.config
from datetime import datetime, timezone
from typing import Optional

from loandesk.core.context import get_principal_id, get_request_id
from loandesk.core.settings import settings


AUDIT_LOGGER_NAME = "loandesk.audit"
PLAIN_FORMAT = "%(asctime)s %(levelname)s [%(request_id)s %(principal_id)s] %(name)s: %(message)s"

# Structured extras copied onto JSON lines when a call site passes them.
CONTEXT_FIELDS = ("event", "application_id", "loan_id", "document_id")


class RequestContextFilter(logging.Filter):
    """Stamp every record with the current request and principal ids."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.principal_id = get_principal_id()
        record.request_id = get_request_id()
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line; the audit stream uses its own label."""

    def __init__(self, stream_label: str = "app") -> None:
        super().__init__()
        self.stream_label = stream_label

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "stream": self.stream_label,
            "request_id": getattr(record, "request_id", "-"),
            "principal_id": getattr(record, "principal_id", "-"),
        }
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                payload[field] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def _formatters() -> dict:
    if settings.log_format == "plain":
        return {
            "app": {"format": PLAIN_FORMAT},
            "audit": {"format": "%(asctime)s AUDIT [%(request_id)s %(principal_id)s] %(message)s"},
        }
    return {
        "app": {"()": JsonFormatter, "stream_label": "app"},
        "audit": {"()": JsonFormatter, "stream_label": "audit"},
    }


def configure_logging(level: Optional[str] = None) -> None:
    log_level = (level or settings.log_level).upper()
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {"request_context": {"()": RequestContextFilter}},
            "formatters": _formatters(),
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": "app",
                    "filters": ["request_context"],
                    "stream": "ext://sys.stdout",
                },
                "audit": {
                    "class": "logging.StreamHandler",
                    "formatter": "audit",
                    "filters": ["request_context"],
                    "stream": "ext://sys.stdout",
                },
            },
            "root": {"handlers": ["default"], "level": log_level},
            "loggers": {
                AUDIT_LOGGER_NAME: {"handlers": ["audit"], "level": "INFO", "propagate": False},
                "sqlalchemy.engine": {
                    "level": "INFO" if settings.log_sql else "WARNING",
                    "propagate": True,
                },
                "uvicorn": {"handlers": ["default"], "level": log_level, "propagate": False},
                "uvicorn.access": {"handlers": ["default"], "level": log_level, "propagate": False},
            },
        }
    )
    logging.getLogger(__name__).info(
        "Logging configured environment=%s format=%s storage=%s",
        settings.environment,
        settings.log_format,
        settings.storage_provider,
    )


def get_audit_logger() -> logging.Logger:
    return logging.getLogger(AUDIT_LOGGER_NAME)
