"""
Loguru configuration for the application.

This module configures loguru with:
- Automatic Trace ID in each log
- Configurable format from settings
- Redirection of standard library logs to loguru
"""

import logging
import sys
from typing import Any

from loguru import logger

from fleetprov.config import settings
from fleetprov.core.trace_context import account_id_context, trace_id_context


def add_trace_id(record: dict[str, Any]) -> bool:
    """
    Adds the request trace_id and account_id to the log record.

    Both are obtained from the current request context, allowing tracking
    of logs from the same request and the same caller.

    Args:
        record: Loguru record

    Returns:
        True to indicate that the filter passed
    """
    record["extra"]["trace_id"] = trace_id_context.get() or "N/A"
    record["extra"]["account_id"] = account_id_context.get() or "-"
    return True


def configure_logger() -> None:
    """
    Configures loguru with application settings.

    Removes the default loguru handler and adds a stderr handler using the
    configured level and format.
    """
    logger.remove()

    logger.add(
        sink=sys.stderr,
        level=settings.log_level.upper(),
        format=settings.log_format,
        filter=add_trace_id,
        colorize=True,
        serialize=False,
        backtrace=True,
        diagnose=settings.debug,
        enqueue=settings.logger_enqueue,
    )


# Configure logger when importing the module
configure_logger()


class InterceptHandler(logging.Handler):
    """
    Handler to redirect standard logging logs to loguru.

    Captures logs from libraries that use standard logging
    (uvicorn, botocore, pynamodb) and processes them with loguru.
    """

    def emit(self, record: logging.LogRecord) -> None:
        """
        Redirects a standard logging record to loguru.

        Args:
            record: logging.LogRecord record
        """
        loguru_logger = logger.opt(depth=6, exception=record.exc_info)
        loguru_logger.log(record.levelname, record.getMessage())


def intercept_standard_logging() -> None:
    """
    Configures redirection of standard logging to loguru.

    Call this function in main.py when initializing the app.
    """
    logging.basicConfig(handlers=[InterceptHandler()], level=logging.INFO)

    for logger_name in [
        "uvicorn",
        "uvicorn.access",
        "uvicorn.error",
        "fastapi",
        "pynamodb",
    ]:
        logging_logger = logging.getLogger(logger_name)
        logging_logger.handlers = [InterceptHandler()]
        logging_logger.propagate = False


__all__ = ["logger", "InterceptHandler", "intercept_standard_logging"]
