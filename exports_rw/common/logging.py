import json
import logging
from logging.config import dictConfig

# client libraries only log warnings and above
QUIET_LOGGERS = ("botocore", "boto3", "urllib3", "s3transfer")


def setup_logging(level: str = "INFO") -> None:
    loggers = {
        name: {"level": "WARNING", "propagate": True} for name in QUIET_LOGGERS
    }
    loggers["exports_rw.startup"] = {
        "handlers": ["startup_console"],
        "level": "INFO",
        "propagate": False,
    }
    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "json": {"()": JsonFormatter},
                "plain": {"format": "%(levelname)s %(name)s: %(message)s"},
            },
            "handlers": {
                "console": {"class": "logging.StreamHandler", "formatter": "json"},
                "startup_console": {
                    "class": "logging.StreamHandler",
                    "formatter": "plain",
                },
            },
            "root": {"level": level.upper(), "handlers": ["console"]},
            "loggers": loggers,
        }
    )


class JsonFormatter(logging.Formatter):
    """One JSON object per line; ``extra={"extra": {...}}`` fields are merged in."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            payload.update(extra)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)
