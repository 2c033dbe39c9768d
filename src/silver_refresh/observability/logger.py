"""
Structured logging for silver-refresh

Components log through children of the "silver-refresh" logger, which owns
the only handler. Records are JSON by default (python-json-logger) and
plain text when LOG_FORMAT=text.
"""
import logging
import os
import sys
import time

from pythonjsonlogger import jsonlogger

ROOT_LOGGER_NAME = "silver-refresh"

JSON_FIELDS = "%(timestamp)s %(level)s %(logger)s %(module)s %(function)s %(message)s"
TEXT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s [%(module)s:%(funcName)s] %(message)s"


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter with stable timestamp, level, logger and call-site fields"""

    def add_fields(self, log_record: dict, record: logging.LogRecord, message_dict: dict) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record.setdefault("timestamp", self.formatTime(record, self.datefmt))
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["module"] = record.module
        log_record["function"] = record.funcName
        log_record["process_id"] = record.process


def build_formatter(format_type: str) -> logging.Formatter:
    if format_type == "text":
        return logging.Formatter(TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    return CustomJsonFormatter(JSON_FIELDS, datefmt="%Y-%m-%dT%H:%M:%S")


def setup_logger(
    name: str = ROOT_LOGGER_NAME,
    level: str | None = None,
    format_type: str | None = None,
) -> logging.Logger:
    """
    Attach a single stdout handler to ``name``, replacing any previous one.

    Args:
        name: Logger name
        level: Level name; LOG_LEVEL, then INFO when not given
        format_type: "json" or "text"; LOG_FORMAT, then json when not given

    Returns:
        The configured logger
    """
    level_name = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    resolved = logging.getLevelName(level_name)
    if not isinstance(resolved, int):
        resolved = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(build_formatter((format_type or os.getenv("LOG_FORMAT") or "json").lower()))

    logger = logging.getLogger(name)
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(resolved)
    logger.propagate = False
    return logger


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """
    Return a logger, configuring the application logger on first use.

    "silver-refresh.*" loggers carry no handler of their own and propagate
    to "silver-refresh"; other names get their own handler.
    """
    if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
        if not logging.getLogger(ROOT_LOGGER_NAME).handlers:
            setup_logger(ROOT_LOGGER_NAME)
        return logging.getLogger(name)

    logger = logging.getLogger(name)
    return logger if logger.handlers else setup_logger(name)


class log_operation:
    """
    Time a block and log its start, completion or failure.

    Failures are logged with the error's structured fields (``to_dict``)
    and re-raised.

    Usage:
        with log_operation("Refresh entity", logger=logger, entity="customer") as op:
            rows = load()
            op.add_fields(rows_written=rows)
    """

    def __init__(self, operation_name: str, logger: logging.Logger | None = None, **extra_fields):
        self.operation_name = operation_name
        self.logger = logger or get_logger()
        self.extra_fields = extra_fields
        self.started: float | None = None
        self.duration_seconds: float = 0.0

    def add_fields(self, **fields) -> None:
        """Attach fields known only once the work is done"""
        self.extra_fields.update(fields)

    def _fields(self, **fields) -> dict:
        return {"operation": self.operation_name, **fields, **self.extra_fields}

    def __enter__(self):
        self.started = time.perf_counter()
        self.logger.info(f"Starting: {self.operation_name}", extra=self._fields())
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration_seconds = time.perf_counter() - self.started
        elapsed = round(self.duration_seconds, 3)

        if exc_type is None:
            self.logger.info(
                f"Completed: {self.operation_name}",
                extra=self._fields(duration_seconds=elapsed, status="success"),
            )
            return False

        details = exc_val.to_dict() if hasattr(exc_val, "to_dict") else {}
        details = {k: v for k, v in details.items() if k not in ("error_type", "message")}
        self.logger.error(
            f"Failed: {self.operation_name}",
            extra=self._fields(
                duration_seconds=elapsed,
                status="error",
                error_type=exc_type.__name__,
                error_message=str(exc_val),
                **details,
            ),
            exc_info=True,
        )
        return False
