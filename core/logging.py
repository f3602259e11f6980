"""
Structured logging configuration

JSON lines for deployed environments, plain text for local work. Engine
modules log through get_logger() with a domain tag so merges, exclusions and
scan timings can be filtered per component.
"""
import logging
import sys
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional

from pythonjsonlogger import jsonlogger

from core.config import settings

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
JSON_FORMAT = "%(timestamp)s %(level)s %(name)s %(message)s"


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter stamping app, environment and level on every record"""

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

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)


def build_formatter(log_format: str) -> logging.Formatter:
    if log_format == "json":
        return CustomJsonFormatter(JSON_FORMAT)
    return logging.Formatter(TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")


def setup_logging(level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    """
    Configure the root logger

    Args:
        level: overrides settings.log_level
        log_format: "json" or "text", overrides settings.log_format
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, (level or settings.log_level).upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(build_formatter(log_format or settings.log_format))
    root_logger.addHandler(console_handler)

    # SQL statements only when echo is requested
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if settings.database_echo else logging.WARNING)


class LoggerAdapter(logging.LoggerAdapter):
    """Adapter that folds its bound context into each record's extra"""

    def __init__(self, logger: logging.Logger, extra: Optional[Dict[str, Any]] = None):
        super().__init__(logger, extra or {})

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs

    def with_context(self, **context) -> "LoggerAdapter":
        """New adapter with extra bound fields; this one is left unchanged"""
        return LoggerAdapter(self.logger, {**self.extra, **context})


def get_logger(name: str, **context) -> LoggerAdapter:
    """
    Get a logger bound to optional context

    Example:
        logger = get_logger("venue_merger", domain="venues")
        logger.with_context(venue_id=42).info("Merged venue")
    """
    return LoggerAdapter(logging.getLogger(name), context)


@contextmanager
def log_timing(logger: LoggerAdapter, operation: str, **context) -> Iterator[Dict[str, Any]]:
    """
    Log how long a block took, at DEBUG

    Yields a dict the block can add result fields to; they are logged with
    the duration.
    """
    fields: Dict[str, Any] = {}
    start = time.perf_counter()
    try:
        yield fields
    finally:
        duration_ms = round((time.perf_counter() - start) * 1000, 2)
        logger.debug(
            f"{operation} took {duration_ms}ms",
            extra={"operation": operation, "duration_ms": duration_ms, **context, **fields},
        )


setup_logging()
