"""Resolve ERP events to catalog product identifiers."""

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Optional

from .catalog import CatalogClient
from .logger import logger
from .retry import DEFAULT_RETRY_POLICY, RetryPolicy, retry_async
from .schemas import AnyErpEvent


class SkuResolver:
    """Maps an event to the id of the product it targets.

    Events that already carry a product id are resolved without any network
    call. Otherwise the SKU is looked up in the catalog. Successful lookups
    can be cached for ``cache_ttl`` seconds; a ttl of 0 disables caching.
    """

    def __init__(
        self,
        catalog: CatalogClient,
        retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
        cache_ttl: float = 0.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.catalog = catalog
        self.retry_policy = retry_policy
        self.cache_ttl = cache_ttl
        self._sleep = sleep
        self._clock = clock
        self._cache: dict[str, tuple[str, float]] = {}

    async def resolve(self, event: AnyErpEvent) -> str:
        """Return the catalog product id targeted by ``event``.

        Raises:
            ProductNotFoundError: No product has the event's SKU
            CatalogUnavailableError: The lookup kept failing after retries
        """
        if event.product_id:
            return event.product_id

        sku = event.sku
        cached = self._cached(sku)
        if cached:
            logger.debug(f"SKU resolved from cache | sku={sku} | product_id={cached}")
            return cached

        product = await retry_async(
            lambda: self.catalog.get_by_sku(sku),
            self.retry_policy,
            description=f"lookup sku={sku}",
            sleep=self._sleep,
        )
        logger.debug(f"SKU resolved | sku={sku} | product_id={product.id}")
        if self.cache_ttl > 0:
            self._cache[sku] = (product.id, self._clock() + self.cache_ttl)
        return product.id

    def _cached(self, sku: str) -> Optional[str]:
        entry = self._cache.get(sku)
        if entry is None:
            return None
        product_id, expires_at = entry
        if self._clock() >= expires_at:
            del self._cache[sku]
            return None
        return product_id

    def invalidate(self, sku: Optional[str]) -> None:
        """Forget a cached resolution, e.g. after the product disappeared."""
        if sku is not None:
            self._cache.pop(sku, None)

    def is_cached(self, sku: str) -> bool:
        return self._cached(sku) is not None
