"""Tests for the catalog HTTP client."""

import json

import pytest
import requests

from erp_sync_service.catalog import CatalogClient
from erp_sync_service.exceptions import (
    CatalogRejectedError,
    CatalogResponseError,
    CatalogUnavailableError,
    ProductNotFoundError,
)

BASE_URL = "http://backend:5000/api"


def make_response(status_code, body=None):
    """Build a ``requests.Response`` with a JSON body."""
    response = requests.Response()
    response.status_code = status_code
    response.encoding = "utf-8"
    response._content = json.dumps(body).encode("utf-8") if body is not None else b""
    return response


@pytest.fixture
def session(mocker):
    session = requests.Session()
    mocker.patch.object(session, "request")
    return session


@pytest.fixture
def client(session):
    return CatalogClient(BASE_URL + "/", timeout=5, session=session)


@pytest.mark.asyncio
async def test_get_by_sku(client, session):
    """A lookup hits /products/sku/{sku} and returns the product."""
    session.request.return_value = make_response(
        200, {"success": True, "data": {"product": {"id": "p42", "sku": "MILK-1L", "name": "Milk"}}}
    )

    product = await client.get_by_sku("MILK-1L")

    assert product.id == "p42"
    assert product.name == "Milk"
    session.request.assert_called_once_with(
        "GET", f"{BASE_URL}/products/sku/MILK-1L", json=None, timeout=5
    )


@pytest.mark.asyncio
async def test_get_by_sku_quotes_sku(client, session):
    session.request.return_value = make_response(200, {"data": {"product": {"id": "p1"}}})

    await client.get_by_sku("A/B 1")

    assert session.request.call_args.args[1] == f"{BASE_URL}/products/sku/A%2FB%201"


@pytest.mark.asyncio
async def test_update_product_sends_only_given_fields(client, session):
    session.request.return_value = make_response(200, {"success": True})

    await client.update_product("p1", {"stock": 0})

    session.request.assert_called_once_with("PUT", f"{BASE_URL}/products/p1", json={"stock": 0}, timeout=5)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status_code,error",
    [
        (404, ProductNotFoundError),
        (500, CatalogUnavailableError),
        (503, CatalogUnavailableError),
        (429, CatalogUnavailableError),
        (400, CatalogRejectedError),
        (409, CatalogRejectedError),
        (422, CatalogRejectedError),
    ],
)
async def test_status_code_mapping(client, session, status_code, error):
    """HTTP status codes map onto the catalog error taxonomy."""
    session.request.return_value = make_response(status_code, {"message": "nope"})

    with pytest.raises(error) as exc_info:
        await client.update_product("p1", {"price": 1.0})

    assert exc_info.value.status_code == status_code


@pytest.mark.asyncio
@pytest.mark.parametrize("exception", [requests.Timeout("slow"), requests.ConnectionError("refused")])
async def test_network_errors_are_unavailable(client, session, exception):
    session.request.side_effect = exception

    with pytest.raises(CatalogUnavailableError):
        await client.get_by_sku("MILK-1L")


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [{}, {"data": {}}, {"data": {"product": {"name": "no id"}}}, ["p1"]])
async def test_unexpected_lookup_body(client, session, body):
    session.request.return_value = make_response(200, body)

    with pytest.raises(CatalogResponseError):
        await client.get_by_sku("MILK-1L")


@pytest.mark.asyncio
async def test_rejected_error_keeps_body(client, session):
    session.request.return_value = make_response(409, {"message": "SKU already exists"})

    with pytest.raises(CatalogRejectedError) as exc_info:
        await client.update_product("p1", {"name": "Milk"})

    assert "SKU already exists" in exc_info.value.body


def test_close(client, mocker):
    close = mocker.patch.object(client.session, "close")
    client.close()
    close.assert_called_once()
