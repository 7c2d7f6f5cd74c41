# logging_config.py
import json
import logging
import logging.handlers
import os
from datetime import datetime
from pathlib import Path
from typing import Any, cast

NOISY_LOGGERS = ("aiohttp", "aiohttp.access", "asyncio", "aiosqlite", "databases")


class CustomJsonFormatter(logging.Formatter):
    """JSON formatter for the rotating log files"""

    def format(self, record: logging.LogRecord) -> str:
        log_record = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if hasattr(record, "extra"):
            log_record.update(record.extra)  # type: ignore

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_record, default=str)


class StructuredLoggerProtocol(logging.Logger):
    """Protocol for a logger with a with_context method"""

    def with_context(self, **context: Any) -> logging.LoggerAdapter: ...  # noqa: ANN401


def setup_logging(
    log_dir: str = "logs", console_level: int = logging.INFO
) -> logging.Logger:
    """Configure console output plus JSON log files under ``log_dir``.

    Calling it again replaces the handlers installed by the previous call
    instead of stacking duplicates.
    """
    Path(log_dir).mkdir(parents=True, exist_ok=True)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(console_level)
    console_handler.setFormatter(
        logging.Formatter("[%(asctime)s %(levelname)s]: %(message)s", datefmt="%x %X")
    )

    # Rotate at midnight, two weeks kept
    file_handler = logging.handlers.TimedRotatingFileHandler(
        filename=os.path.join(log_dir, "pricewatch.log"),
        when="midnight",
        backupCount=14,
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(CustomJsonFormatter())

    error_handler = logging.handlers.RotatingFileHandler(
        filename=os.path.join(log_dir, "error.log"),
        maxBytes=10_485_760,  # 10MB
        backupCount=5,
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(CustomJsonFormatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    for handler in list(root_logger.handlers):
        if getattr(handler, "_pricewatch", False):
            root_logger.removeHandler(handler)
            handler.close()

    for handler in (console_handler, file_handler, error_handler):
        handler._pricewatch = True  # type: ignore[attr-defined]
        root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root_logger


def get_logger(name: str) -> StructuredLoggerProtocol:
    """Get a logger with a `with_context` method for structured logging."""
    logger = logging.getLogger(name)

    def with_context(**context: Any) -> logging.LoggerAdapter:  # noqa: ANN401
        return logging.LoggerAdapter(logger, {"extra": context})

    logger.with_context = with_context  # type: ignore[attr-defined]

    return cast(StructuredLoggerProtocol, logger)
