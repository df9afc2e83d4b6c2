import json
import logging
import os
from logging.config import dictConfig
from traceback import format_exception

from docgate.config import settings


class JsonFormatter(logging.Formatter):
    """Structured JSON formatter for prod logs."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: dict[str, object] = {
            "time": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "pid": record.process,
            "message": record.getMessage(),
        }

        http_ctx = {
            k: v for k, v in {
                "method": getattr(record, "http_method", None),
                "path": getattr(record, "path", None),
                "status": getattr(record, "status_code", None),
                "user_id": getattr(record, "user_id", None),
            }.items() if v is not None
        }
        if http_ctx:
            payload["http"] = http_ctx

        backend = getattr(record, "backend", None)
        if backend is not None:
            payload["backend"] = backend

        if record.exc_info:
            exc_type = record.exc_info[0].__name__ if record.exc_info[0] else None
            stack = "".join(format_exception(*record.exc_info))
            max_stack = int(os.getenv("LOG_STACK_LIMIT", "4000"))
            payload["error"] = {
                "type": exc_type,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "stack": stack[:max_stack] + ("...(truncated)" if len(stack) > max_stack else ""),
            }

        return json.dumps(payload, ensure_ascii=False)


def _read_level() -> str:
    if settings.log_level:
        return settings.log_level.upper()
    return "INFO" if settings.is_prod else "DEBUG"


def _read_format() -> str:
    if settings.log_format:
        return settings.log_format.lower()
    return "json" if settings.is_prod else "plain"


def setup_logging() -> None:
    level = _read_level()
    formatter_name = "json" if _read_format() == "json" else "plain"

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "plain": {
                    "format": "%(asctime)s %(levelname)-5s [pid:%(process)d] %(name)s: %(message)s",
                    "datefmt": "%Y-%m-%dT%H:%M:%S",
                },
                "json": {
                    "()": JsonFormatter,
                    "datefmt": "%Y-%m-%dT%H:%M:%S",
                },
            },
            "handlers": {
                "stream": {
                    "class": "logging.StreamHandler",
                    "level": level,
                    "formatter": formatter_name,
                }
            },
            "root": {"level": level, "handlers": ["stream"]},
            # httpx logs every request line at INFO, including Drive URLs
            "loggers": {
                "httpx": {"level": "WARNING", "propagate": True},
                "uvicorn.access": {"level": "INFO", "handlers": [], "propagate": True},
            },
        }
    )
