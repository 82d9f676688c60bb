"""Error taxonomy for ERP message processing.

Malformed inbound events surface as pydantic's ``ValidationError``; every
other per-message failure is one of the catalog errors below. Only
``ConsumerFatalError`` is allowed to stop the worker.
"""

from typing import Optional


class ErpSyncError(Exception):
    """Base class for all ERP sync errors."""


class CatalogError(ErpSyncError):
    """Base class for errors returned by the catalog service."""

    retriable = False

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ProductNotFoundError(CatalogError):
    """The referenced product does not exist in the catalog."""


class CatalogUnavailableError(CatalogError):
    """Timeout, connection failure or 5xx from the catalog service."""

    retriable = True


class CatalogRejectedError(CatalogError):
    """The catalog service refused the request (4xx validation response)."""


class CatalogResponseError(CatalogError):
    """The catalog answered successfully but with an unexpected body."""


class ConsumerFatalError(ErpSyncError):
    """Unrecoverable Kafka consumer fault; the process must restart."""
