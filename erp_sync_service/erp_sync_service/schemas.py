"""Pydantic models for ERP update events consumed from Kafka."""

import json
from abc import abstractmethod
from enum import Enum
from typing import Any, ClassVar, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Topic(str, Enum):
    """Kafka topics the ERP publishes catalog updates on."""

    PRODUCT_UPDATES = "product_updates"
    PRICE_UPDATES = "price_updates"
    STOCK_UPDATES = "stock_updates"

    @classmethod
    def lookup(cls, name: str) -> Optional["Topic"]:
        """Return the topic for ``name`` or None when it is not an ERP topic."""
        try:
            return cls(name)
        except ValueError:
            return None


class Envelope(BaseModel):
    """A raw message as delivered by Kafka, before schema validation."""

    topic: str
    partition: int
    offset: int
    raw_payload: Optional[bytes] = None

    @classmethod
    def from_message(cls, msg) -> "Envelope":
        """Build an envelope from a confluent-kafka ``Message``."""
        return cls(
            topic=msg.topic(),
            partition=msg.partition(),
            offset=msg.offset(),
            raw_payload=msg.value(),
        )

    @property
    def kind(self) -> Optional[Topic]:
        return Topic.lookup(self.topic)

    def decode(self) -> Any:
        """Decode the payload as UTF-8 JSON.

        Raises:
            UnicodeDecodeError: If the payload is not valid UTF-8
            json.JSONDecodeError: If the payload is not valid JSON
        """
        return json.loads(self.raw_payload.decode("utf-8"))

    def payload_preview(self, limit: int = 500) -> str:
        """Payload as text for log lines, truncated to ``limit`` characters."""
        if self.raw_payload is None:
            return ""
        return self.raw_payload.decode("utf-8", errors="replace")[:limit]


class ErpEvent(BaseModel):
    """Fields shared by every ERP update event.

    Attributes:
        timestamp: Epoch milliseconds when the ERP emitted the event
    """

    # Fields copied into the catalog update body when present on the event.
    UPDATE_FIELDS: ClassVar[tuple[str, ...]] = ()

    timestamp: float = Field(..., ge=0, strict=True, allow_inf_nan=False)

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @property
    @abstractmethod
    def product_id(self) -> Optional[str]:
        """Catalog product id carried by the event, if any."""

    def update_fields(self) -> dict[str, Any]:
        """Partial update body made of the fields present on the event.

        Absent and null fields are left out so the catalog keeps its current
        values for them.
        """
        return self.model_dump(include=set(self.UPDATE_FIELDS), exclude_none=True, by_alias=True)


class ProductUpdateEvent(ErpEvent):
    """Product attribute changes published on ``product_updates``.

    Attributes:
        id: Catalog product identifier, if the ERP knows it
        sku: Stock Keeping Unit, used when ``id`` is missing
        name: Product display name
        description: Long description
        category: Catalog category
        brand: Brand name
        weight: Net weight, non-negative
        unit: Unit of measure for ``weight``
        is_active: Whether the product is listed in the storefront
    """

    UPDATE_FIELDS: ClassVar[tuple[str, ...]] = (
        "name",
        "description",
        "category",
        "brand",
        "weight",
        "unit",
        "is_active",
    )

    id: Optional[str] = Field(None, min_length=1)
    sku: Optional[str] = Field(None, min_length=1)
    name: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    brand: Optional[str] = None
    weight: Optional[float] = Field(None, ge=0, strict=True, allow_inf_nan=False)
    unit: Optional[str] = None
    is_active: Optional[bool] = Field(None, alias="isActive", strict=True)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "sku": "MILK-1L",
                "name": "Whole Milk 1L",
                "brand": "Dairy Farm",
                "isActive": True,
                "timestamp": 1714470000000,
            }
        }
    )

    @model_validator(mode="after")
    def require_identifier(self) -> "ProductUpdateEvent":
        if not self.id and not self.sku:
            raise ValueError("product update requires an id or a sku")
        return self

    @property
    def product_id(self) -> Optional[str]:
        return self.id


class PriceUpdateEvent(ErpEvent):
    """New unit price published on ``price_updates``."""

    UPDATE_FIELDS: ClassVar[tuple[str, ...]] = ("price",)

    explicit_product_id: Optional[str] = Field(None, alias="productId", min_length=1)
    sku: str = Field(..., min_length=1)
    price: float = Field(..., ge=0, strict=True, allow_inf_nan=False)

    @property
    def product_id(self) -> Optional[str]:
        return self.explicit_product_id


class StockUpdateEvent(ErpEvent):
    """Absolute stock quantity published on ``stock_updates``."""

    UPDATE_FIELDS: ClassVar[tuple[str, ...]] = ("stock",)

    explicit_product_id: Optional[str] = Field(None, alias="productId", min_length=1)
    sku: str = Field(..., min_length=1)
    stock: int = Field(..., ge=0, strict=True)

    @property
    def product_id(self) -> Optional[str]:
        return self.explicit_product_id


AnyErpEvent = Union[ProductUpdateEvent, PriceUpdateEvent, StockUpdateEvent]

EVENT_MODELS: dict[Topic, type[ErpEvent]] = {
    Topic.PRODUCT_UPDATES: ProductUpdateEvent,
    Topic.PRICE_UPDATES: PriceUpdateEvent,
    Topic.STOCK_UPDATES: StockUpdateEvent,
}


def parse_event(topic: Union[Topic, str], data: Any) -> AnyErpEvent:
    """Validate decoded JSON against the schema of ``topic``.

    Raises:
        pydantic.ValidationError: If the payload does not match the schema
        ValueError: If ``topic`` is not an ERP topic
    """
    kind = Topic.lookup(topic) if isinstance(topic, str) else topic
    if kind is None:
        raise ValueError(f"Unknown topic: {topic}")
    return EVENT_MODELS[kind].model_validate(data)


class CatalogProduct(BaseModel):
    """Product document returned by the catalog lookup endpoint."""

    id: str = Field(..., min_length=1)
    sku: Optional[str] = None

    model_config = ConfigDict(extra="allow")
