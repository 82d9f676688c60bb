"""Logging configuration module for the ERP sync services."""

import sys
from typing import Optional

from loguru import logger as loguru_logger

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<magenta>{extra[service]}</magenta> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[service]} | "
    "{name}:{function}:{line} - {message}"
)


def configure_logging(
    service_name: str,
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    json_logs: bool = False,
) -> None:
    """Install the process-wide log sinks.

    Must be called once at startup, before any message is consumed. Loggers
    obtained from :func:`get_service_logger` before this call pick up the new
    sinks automatically since they share the global loguru logger.

    Args:
        service_name: Default service name for records without one
        log_level: Minimum level written to every sink
        log_file: Optional path to a rotating log file
        json_logs: Serialize records as JSON lines instead of colored text
    """
    loguru_logger.remove()
    loguru_logger.configure(extra={"service": service_name})

    if json_logs:
        loguru_logger.add(
            sys.stderr,
            level=log_level,
            serialize=True,
            enqueue=True,
            backtrace=True,
            diagnose=False,
        )
    else:
        loguru_logger.add(
            sys.stderr,
            level=log_level,
            format=CONSOLE_FORMAT,
            colorize=True,
            enqueue=True,
            backtrace=True,
            diagnose=True,
        )

    if log_file:
        loguru_logger.add(
            log_file,
            level=log_level,
            format=FILE_FORMAT,
            serialize=json_logs,
            rotation="10 MB",
            retention="1 week",
            compression="gz",
            enqueue=True,
        )


def get_service_logger(service_name: str):
    """Get a logger bound to a service name.

    Args:
        service_name: Name of the service (e.g., 'erp-sync')

    Returns:
        logger: loguru logger carrying ``service`` in its extra fields
    """
    return loguru_logger.bind(service=service_name)


def get_kafka_logger(service_name: str):
    """Get a logger for Kafka consumer operations.

    Args:
        service_name: Name of the service

    Returns:
        logger: Logger bound to ``<service_name>.kafka``
    """
    return get_service_logger(f"{service_name}.kafka")
