"""Tests for the ERP event schemas."""

import json

import pytest
from pydantic import ValidationError

from erp_sync_service import __version__
from erp_sync_service.schemas import (
    Envelope,
    ErpEvent,
    PriceUpdateEvent,
    ProductUpdateEvent,
    StockUpdateEvent,
    Topic,
    parse_event,
)

TIMESTAMP = 1714470000000


def test_version():
    """Testing package Version."""
    assert __version__ == "0.1.0"


def test_parse_event_picks_model_by_topic():
    """Each topic parses into its own event type."""
    product = parse_event("product_updates", {"sku": "MILK-1L", "name": "Milk", "timestamp": TIMESTAMP})
    price = parse_event(Topic.PRICE_UPDATES, {"sku": "MILK-1L", "price": 3.49, "timestamp": TIMESTAMP})
    stock = parse_event("stock_updates", {"sku": "MILK-1L", "stock": 12, "timestamp": TIMESTAMP})

    assert isinstance(product, ProductUpdateEvent)
    assert isinstance(price, PriceUpdateEvent)
    assert isinstance(stock, StockUpdateEvent)


def test_parse_event_unknown_topic():
    with pytest.raises(ValueError):
        parse_event("order_events", {"timestamp": TIMESTAMP})


def test_product_update_requires_id_or_sku():
    """A product update without any identifier is rejected."""
    with pytest.raises(ValidationError):
        ProductUpdateEvent.model_validate({"name": "Milk", "timestamp": TIMESTAMP})

    assert ProductUpdateEvent.model_validate({"id": "p1", "timestamp": TIMESTAMP}).product_id == "p1"
    assert ProductUpdateEvent.model_validate({"sku": "ABC123", "timestamp": TIMESTAMP}).product_id is None


@pytest.mark.parametrize(
    "payload",
    [
        {"price": 3.49, "timestamp": TIMESTAMP},
        {"sku": "", "price": 3.49, "timestamp": TIMESTAMP},
        {"sku": "MILK-1L", "price": -0.01, "timestamp": TIMESTAMP},
        {"sku": "MILK-1L", "price": "3.49", "timestamp": TIMESTAMP},
        {"sku": "MILK-1L", "price": True, "timestamp": TIMESTAMP},
        {"sku": "MILK-1L", "price": float("nan"), "timestamp": TIMESTAMP},
        {"sku": "MILK-1L", "price": 3.49},
        {"sku": "MILK-1L", "price": 3.49, "timestamp": "yesterday"},
    ],
)
def test_invalid_price_updates(payload):
    """Missing sku, negative or non-numeric price and bad timestamps fail validation."""
    with pytest.raises(ValidationError):
        PriceUpdateEvent.model_validate(payload)


def test_price_accepts_integers():
    event = PriceUpdateEvent.model_validate({"sku": "MILK-1L", "price": 3, "timestamp": TIMESTAMP})
    assert event.price == 3
    assert event.update_fields() == {"price": 3}


@pytest.mark.parametrize("stock", [-1, 2.5, "10", None])
def test_invalid_stock_updates(stock):
    """Stock must be a non-negative integer."""
    with pytest.raises(ValidationError):
        StockUpdateEvent.model_validate({"sku": "ABC123", "stock": stock, "timestamp": TIMESTAMP})


def test_stock_update_fields_only_stock():
    event = StockUpdateEvent.model_validate(
        {"sku": "ABC123", "stock": 0, "productId": "p1", "timestamp": TIMESTAMP, "warehouse": "north"}
    )
    assert event.product_id == "p1"
    assert event.update_fields() == {"stock": 0}


def test_product_update_fields_are_partial():
    """Only fields present on the event end up in the update body."""
    event = ProductUpdateEvent.model_validate(
        {
            "id": "p7",
            "sku": "BREAD-01",
            "name": "Sourdough",
            "description": None,
            "weight": 0,
            "isActive": False,
            "timestamp": TIMESTAMP,
        }
    )
    assert event.update_fields() == {"name": "Sourdough", "weight": 0, "isActive": False}


def test_timestamp_accepts_float_epoch_millis():
    event = StockUpdateEvent.model_validate({"sku": "ABC123", "stock": 1, "timestamp": 1714470000000.0})
    assert event.timestamp == TIMESTAMP


@pytest.mark.parametrize("timestamp", [-1, "1714470000000", True, float("inf")])
def test_timestamp_rejects_non_numbers(timestamp):
    with pytest.raises(ValidationError):
        StockUpdateEvent.model_validate({"sku": "ABC123", "stock": 1, "timestamp": timestamp})


def test_base_event_cannot_be_instantiated():
    with pytest.raises(TypeError):
        ErpEvent(timestamp=TIMESTAMP)


def test_product_update_with_identifier_only_has_no_fields():
    event = ProductUpdateEvent.model_validate({"sku": "BREAD-01", "timestamp": TIMESTAMP})
    assert event.update_fields() == {}


@pytest.mark.parametrize("field,value", [("weight", -1.0), ("weight", "heavy"), ("isActive", "yes")])
def test_product_update_rejects_bad_types(field, value):
    with pytest.raises(ValidationError):
        ProductUpdateEvent.model_validate({"sku": "BREAD-01", field: value, "timestamp": TIMESTAMP})


def test_envelope_from_message(make_message):
    """An envelope keeps topic, partition, offset and raw bytes."""
    msg = make_message("price_updates", {"sku": "MILK-1L"}, partition=2, offset=41)
    envelope = Envelope.from_message(msg)

    assert envelope.kind is Topic.PRICE_UPDATES
    assert (envelope.partition, envelope.offset) == (2, 41)
    assert envelope.decode() == {"sku": "MILK-1L"}


def test_envelope_decode_errors(make_message):
    envelope = Envelope.from_message(make_message("stock_updates", b"{not json"))
    with pytest.raises(json.JSONDecodeError):
        envelope.decode()

    envelope = Envelope.from_message(make_message("stock_updates", b"\xff\xfe"))
    with pytest.raises(UnicodeDecodeError):
        envelope.decode()
    assert envelope.payload_preview()


def test_envelope_unknown_topic(make_message):
    assert Envelope.from_message(make_message("order_events", {})).kind is None
