"""Logging utilities shared by the ERP sync services."""

from .config import configure_logging, get_kafka_logger, get_service_logger

__all__ = [
    "configure_logging",
    "get_service_logger",
    "get_kafka_logger",
]
