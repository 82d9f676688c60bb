"""Test fixtures for the ERP sync service tests."""

import json
from unittest.mock import MagicMock

import pytest
from loguru import logger as loguru_logger

from erp_sync_service.catalog import CatalogClient
from erp_sync_service.processor import MessageProcessor
from erp_sync_service.resolver import SkuResolver
from erp_sync_service.schemas import CatalogProduct


@pytest.fixture
def log_records():
    """Capture loguru records emitted during the test."""
    records = []
    handler_id = loguru_logger.add(lambda message: records.append(message.record), level="DEBUG")
    yield records
    loguru_logger.remove(handler_id)


@pytest.fixture
def sleeps():
    """Delays requested by the retry executor, without actually sleeping."""
    return []


@pytest.fixture
def fake_sleep(sleeps):
    async def _sleep(delay):
        sleeps.append(delay)

    return _sleep


@pytest.fixture
def catalog(mocker):
    """Catalog client double whose coroutine methods are AsyncMocks."""
    client = mocker.MagicMock(spec=CatalogClient)
    client.get_by_sku.return_value = CatalogProduct(id="p42", sku="MILK-1L")
    client.update_product.return_value = None
    return client


@pytest.fixture
def processor(catalog, fake_sleep):
    return MessageProcessor(catalog, resolver=SkuResolver(catalog, sleep=fake_sleep), sleep=fake_sleep)


@pytest.fixture
def make_message():
    """Factory for confluent-kafka ``Message`` doubles."""

    def _make(topic, value, partition=0, offset=0, error=None):
        msg = MagicMock()
        msg.topic.return_value = topic
        msg.partition.return_value = partition
        msg.offset.return_value = offset
        msg.error.return_value = error
        if isinstance(value, (dict, list)):
            value = json.dumps(value).encode("utf-8")
        elif isinstance(value, str):
            value = value.encode("utf-8")
        msg.value.return_value = value
        return msg

    return _make

