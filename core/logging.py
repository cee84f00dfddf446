"""
Structured logging configuration
Supports both JSON and text formats for different environments
"""
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pythonjsonlogger import jsonlogger

from core.config import settings

# Context keys promoted to top-level fields in JSON output
CONTEXT_FIELDS = ("domain", "job_id", "url", "worker_id", "message_id")


class AuditJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that stamps app metadata onto every record"""

    def add_fields(
        self,
        log_record: Dict[str, Any],
        record: logging.LogRecord,
        message_dict: Dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["app"] = settings.app_name
        log_record["environment"] = settings.environment
        log_record["level"] = record.levelname
        log_record["logger"] = record.name

        for key in CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                log_record[key] = value

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)


def setup_logging() -> None:
    """Configure the root logger from settings"""
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)

    if settings.log_format == "json":
        formatter = AuditJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s")
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # Third-party chatter
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


class LoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that carries audit context on every message"""

    def __init__(self, logger: logging.Logger, extra: Optional[Dict[str, Any]] = None):
        super().__init__(logger, extra or {})

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra = dict(self.extra)
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        return msg, kwargs

    def with_context(self, **context) -> "LoggerAdapter":
        """Create a new logger with additional context (job_id, url, ...)"""
        new_extra = dict(self.extra)
        new_extra.update(context)
        return LoggerAdapter(self.logger, new_extra)


def get_logger(name: str, **context) -> LoggerAdapter:
    """
    Get a logger instance with optional context

    Args:
        name: Logger name (usually __name__)
        **context: Additional context to include in all logs

    Returns:
        LoggerAdapter instance

    Example:
        logger = get_logger(__name__, domain="d3")
        logger.with_context(job_id=job.job_id).info("Fetch started")
    """
    return LoggerAdapter(logging.getLogger(name), context)


# Initialize logging on import
setup_logging()
