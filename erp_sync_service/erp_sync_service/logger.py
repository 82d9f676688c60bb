"""Logger module for logging messages."""

from logging_utils.config import get_kafka_logger, get_service_logger

SERVICE_NAME = "erp-sync"

logger = get_service_logger(SERVICE_NAME)
kafka_logger = get_kafka_logger(SERVICE_NAME)

__all__ = ["SERVICE_NAME", "logger", "kafka_logger"]
