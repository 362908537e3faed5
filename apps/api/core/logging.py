"""
Logging setup shared by the API and the Celery worker.

LOG_FORMAT=json (always in production) emits one JSON object per line;
anything else gets a plain human-readable format.
"""
import json
import logging
import logging.config
from datetime import datetime, timezone

from core.config import settings

QUIET_LOGGERS = ("sqlalchemy.engine", "urllib3", "httpx", "httpcore", "anthropic", "openai")


class JSONFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "environment": settings.ENVIRONMENT,
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        # logger.info("...", extra={"extra_fields": {"user_id": ...}})
        entry.update(getattr(record, "extra_fields", None) or {})
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging() -> logging.Logger:
    use_json = settings.LOG_FORMAT == "json" or settings.ENVIRONMENT == "production"
    level = settings.LOG_LEVEL.upper()

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {"()": JSONFormatter},
            "text": {"format": "%(asctime)s %(levelname)-7s %(name)s: %(message)s"},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
                "formatter": "json" if use_json else "text",
            },
        },
        "root": {"level": level, "handlers": ["console"]},
        "loggers": {name: {"level": "WARNING"} for name in QUIET_LOGGERS},
    })
    return logging.getLogger()
