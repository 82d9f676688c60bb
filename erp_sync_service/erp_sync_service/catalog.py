"""HTTP client for the catalog service."""

import asyncio
from typing import Any, Optional
from urllib.parse import quote

import requests
from pydantic import ValidationError

from .exceptions import (
    CatalogRejectedError,
    CatalogResponseError,
    CatalogUnavailableError,
    ProductNotFoundError,
)
from .logger import logger
from .schemas import CatalogProduct

# Client errors that are worth asking again
TRANSIENT_STATUS_CODES = {408, 425, 429}


class CatalogClient:
    """Typed façade over the catalog REST API.

    Requests are made with a blocking ``requests.Session`` in a worker thread,
    so the coroutine methods never block the event loop.
    """

    def __init__(self, base_url: str, timeout: float = 30.0, session: Optional[requests.Session] = None):
        """Initialize the catalog client.

        Args:
            base_url: Catalog API root, e.g. ``http://backend:5000/api``
            timeout: Per-request timeout in seconds
            session: Optional pre-configured session (mainly for tests)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json", "Accept": "application/json"})
        logger.info(f"Initializing catalog client | base_url={self.base_url} | timeout={timeout}")

    async def get_by_sku(self, sku: str) -> CatalogProduct:
        """Look up a product by SKU.

        Raises:
            ProductNotFoundError: No product has this SKU
            CatalogUnavailableError: Timeout, connection error or 5xx
            CatalogRejectedError: Other 4xx answer
            CatalogResponseError: 2xx answer without ``data.product.id``
        """
        body = await asyncio.to_thread(self._request, "GET", f"products/sku/{quote(sku, safe='')}")
        try:
            return CatalogProduct.model_validate(body["data"]["product"])
        except (KeyError, TypeError, ValidationError) as e:
            raise CatalogResponseError(f"Unexpected lookup response for SKU {sku}: {e}") from e

    async def update_product(self, product_id: str, fields: dict[str, Any]) -> None:
        """Apply a partial update to a product.

        Only the keys in ``fields`` are sent; the catalog keeps every other
        attribute unchanged.
        """
        await asyncio.to_thread(self._request, "PUT", f"products/{quote(product_id, safe='')}", fields)

    def _request(self, method: str, path: str, payload: Optional[dict] = None) -> Any:
        """Send one request and map failures onto the catalog error taxonomy."""
        url = f"{self.base_url}/{path}"
        logger.debug(f"Catalog request | method={method} | url={url} | body={payload}")

        try:
            response = self.session.request(method, url, json=payload, timeout=self.timeout)
        except requests.Timeout as e:
            raise CatalogUnavailableError(f"{method} {url} timed out after {self.timeout}s") from e
        except requests.ConnectionError as e:
            raise CatalogUnavailableError(f"{method} {url} failed to connect: {e}") from e
        except requests.RequestException as e:
            raise CatalogUnavailableError(f"{method} {url} failed: {e}") from e

        status = response.status_code
        if status == 404:
            raise ProductNotFoundError(f"{method} {url} returned 404", status_code=status, body=response.text)
        if status >= 500 or status in TRANSIENT_STATUS_CODES:
            raise CatalogUnavailableError(
                f"{method} {url} returned {status}", status_code=status, body=response.text
            )
        if status >= 400:
            raise CatalogRejectedError(
                f"{method} {url} rejected with {status}: {response.text[:500]}",
                status_code=status,
                body=response.text,
            )

        if status == 204 or not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            if method == "GET":
                raise CatalogResponseError(f"{method} {url} returned a non-JSON body", status_code=status) from e
            return {}

    def close(self) -> None:
        """Close the underlying HTTP session."""
        self.session.close()
        logger.info("Catalog client closed")
