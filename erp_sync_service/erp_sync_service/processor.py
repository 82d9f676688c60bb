"""Business logic reconciling ERP events into the catalog."""

import asyncio
import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

from pydantic import ValidationError

from .catalog import CatalogClient
from .exceptions import (
    CatalogError,
    CatalogRejectedError,
    CatalogUnavailableError,
    ProductNotFoundError,
)
from .logger import logger
from .resolver import SkuResolver
from .retry import DEFAULT_RETRY_POLICY, RetryPolicy, retry_async
from .schemas import AnyErpEvent, Topic, parse_event


class Outcome(str, Enum):
    """What happened to a single message."""

    APPLIED = "applied"
    IGNORED = "ignored"
    INVALID = "invalid"
    NOT_FOUND = "not_found"
    REJECTED = "rejected"
    UNAVAILABLE = "unavailable"
    FAILED = "failed"


# Outcomes that mean something is wrong with the data or the catalog
ERROR_OUTCOMES = {Outcome.INVALID, Outcome.REJECTED, Outcome.UNAVAILABLE, Outcome.FAILED}


@dataclass
class ProcessingResult:
    """Result of processing one message; errors are values, never raised."""

    outcome: Outcome
    topic: str
    product_id: Optional[str] = None
    sku: Optional[str] = None
    fields: dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.outcome in ERROR_OUTCOMES


def _format_payload(data: Any, limit: int = 1000) -> str:
    try:
        text = json.dumps(data, default=str)
    except (TypeError, ValueError):
        text = repr(data)
    return text[:limit]


def _format_fields(fields: dict[str, Any]) -> str:
    return " | ".join(f"{key}={value}" for key, value in fields.items())


class MessageProcessor:
    """Applies product, price and stock events to the catalog.

    Every entry point validates the payload, resolves the target product,
    and sends a partial update containing only the fields the event carries.
    The catalog error taxonomy is turned into a ``ProcessingResult``; anything
    unexpected propagates to the caller's dispatch boundary.
    """

    def __init__(
        self,
        catalog: CatalogClient,
        resolver: Optional[SkuResolver] = None,
        retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.catalog = catalog
        self.retry_policy = retry_policy
        self._sleep = sleep
        self.resolver = resolver or SkuResolver(catalog, retry_policy=retry_policy, sleep=sleep)

    async def process(self, topic: Union[Topic, str], data: Any) -> ProcessingResult:
        """Process decoded JSON received on ``topic``."""
        kind = Topic.lookup(topic)
        if kind is Topic.PRODUCT_UPDATES:
            return await self.process_product_update(data)
        if kind is Topic.PRICE_UPDATES:
            return await self.process_price_update(data)
        if kind is Topic.STOCK_UPDATES:
            return await self.process_stock_update(data)
        logger.warning(f"Unknown topic, message ignored | topic={topic}")
        return ProcessingResult(Outcome.IGNORED, str(topic), error="unknown topic")

    async def process_product_update(self, data: Any) -> ProcessingResult:
        return await self._reconcile(Topic.PRODUCT_UPDATES, data)

    async def process_price_update(self, data: Any) -> ProcessingResult:
        return await self._reconcile(Topic.PRICE_UPDATES, data)

    async def process_stock_update(self, data: Any) -> ProcessingResult:
        return await self._reconcile(Topic.STOCK_UPDATES, data)

    async def _reconcile(self, topic: Topic, data: Any) -> ProcessingResult:
        try:
            event = parse_event(topic, data)
        except ValidationError as e:
            logger.error(
                f"Invalid message discarded | topic={topic.value} | errors={e.errors(include_url=False)} | "
                f"raw_payload={_format_payload(data)}"
            )
            return ProcessingResult(Outcome.INVALID, topic.value, error=str(e))

        fields = event.update_fields()
        logger.info(
            f"Processing {topic.value} | product_id={event.product_id} | sku={event.sku} | "
            f"timestamp={event.timestamp} | {_format_fields(fields) or 'no fields'}"
        )
        result = ProcessingResult(Outcome.APPLIED, topic.value, product_id=event.product_id, sku=event.sku, fields=fields)

        if not fields:
            logger.info(
                f"No fields to update, message skipped | topic={topic.value} | product_id={event.product_id} | sku={event.sku}"
            )
            result.outcome = Outcome.IGNORED
            return result

        try:
            result.product_id = await self.resolver.resolve(event)
        except ProductNotFoundError:
            logger.warning(f"Product not found, message dropped | topic={topic.value} | sku={event.sku}")
            result.outcome = Outcome.NOT_FOUND
            return result
        except CatalogError as e:
            return self._failed(result, e, "SKU lookup")

        try:
            await self._update(result.product_id, fields)
        except ProductNotFoundError:
            self.resolver.invalidate(event.sku)
            logger.warning(
                f"Product disappeared before update, message dropped | topic={topic.value} | "
                f"product_id={result.product_id} | sku={event.sku}"
            )
            result.outcome = Outcome.NOT_FOUND
            return result
        except CatalogError as e:
            return self._failed(result, e, "update")

        logger.info(
            f"Catalog update applied | topic={topic.value} | product_id={result.product_id} | "
            f"sku={event.sku} | {_format_fields(fields)}"
        )
        return result

    async def _update(self, product_id: str, fields: dict[str, Any]) -> None:
        await retry_async(
            lambda: self.catalog.update_product(product_id, fields),
            self.retry_policy,
            description=f"update product_id={product_id}",
            sleep=self._sleep,
        )

    def _failed(self, result: ProcessingResult, error: CatalogError, step: str) -> ProcessingResult:
        if isinstance(error, CatalogUnavailableError):
            result.outcome = Outcome.UNAVAILABLE
        elif isinstance(error, CatalogRejectedError):
            result.outcome = Outcome.REJECTED
        else:
            result.outcome = Outcome.FAILED
        result.error = str(error)
        logger.error(
            f"Catalog {step} failed, message dropped | topic={result.topic} | outcome={result.outcome.value} | "
            f"product_id={result.product_id} | sku={result.sku} | fields={result.fields} | "
            f"status_code={error.status_code} | error={error}"
        )
        return result
