import json

import pytest
from fastapi.testclient import TestClient

from storefront_sync import http_server
from storefront_sync.auth import AuthManager
from storefront_sync.errors import NetworkError
from storefront_sync.session import StorefrontSession


def serve(monkeypatch, settings, fetcher):
    session = StorefrontSession(
        settings,
        fetcher=fetcher,
        auth_manager=AuthManager(settings.session_file),
        realtime=False,
    )
    monkeypatch.setattr(http_server, "session", session)
    return TestClient(http_server.app)


@pytest.fixture
def client(monkeypatch, settings, make_fetcher, sample_document):
    with serve(monkeypatch, settings, make_fetcher(sample_document)) as test_client:
        yield test_client


def test_health_and_config(client):
    assert client.get("/health").json() == {"status": "healthy", "has_config": True, "connected": False}

    body = client.get("/config").json()
    assert body["config_version"] == 1
    assert body["background_color"] == "#FAFAFA"
    assert [unit["kind"] for unit in body["units"]] == ["header", "search_bar", "product_grid", "empty"]

    assert client.get("/pages/1").json()["units"][0]["kind"] == "store_info"
    assert client.get("/pages/9").status_code == 404


def test_products_and_search(client):
    body = client.get("/products").json()
    assert body["count"] == 3

    body = client.get("/products", params={"query": " socks "}).json()
    assert body["query"] == "socks"
    assert [p["id"] for p in body["products"]] == ["socks"]

    # A GET filter does not change the stored query
    body = client.get("/products").json()
    assert body["query"] == ""
    assert body["count"] == 3

    body = client.post("/products/search", json={"query": "jacket"}).json()
    assert body["query"] == "jacket"
    assert [p["id"] for p in body["products"]] == ["product_2"]

    # The stored query applies to later listings
    assert client.get("/products").json()["count"] == 1
    assert client.post("/products/search", json={"query": ""}).json()["count"] == 3


def test_cart_flow(client):
    response = client.post("/cart/add", json={"product_id": "product_0", "quantity": 1})
    assert response.status_code == 200
    client.post("/cart/add", json={"product_id": "socks", "quantity": 2})

    cart = client.get("/cart").json()
    assert cart["subtotal"] == "35.00"
    assert cart["discount_total"] == "5.00"
    assert cart["tax"] == "6.30"
    assert cart["total"] == "41.30"
    assert cart["shipping"] == "5.99"
    assert cart["total_with_shipping"] == "47.29"

    assert client.post("/cart/add", json={"product_id": "socks", "quantity": 8}).status_code == 409
    assert client.post("/cart/add", json={"product_id": "ghost"}).status_code == 404
    assert client.post("/cart/update", json={"product_id": "ghost", "quantity": 2}).status_code == 404

    assert client.post("/cart/update", json={"product_id": "socks", "quantity": 0}).json()["line"] is None
    assert client.post("/cart/remove", json={"product_id": "socks"}).status_code == 200
    client.post("/cart/clear")
    assert client.get("/cart").json()["lines"] == []


def test_quantity_selector(client):
    response = client.post("/products/select-quantity", json={"product_id": "socks", "quantity": 99})
    assert response.json()["quantity"] == 10
    assert client.post("/cart/add", json={"product_id": "socks"}).json()["total_quantity"] == 10


def test_wishlist(client):
    assert client.post("/wishlist/toggle", json={"product_id": "socks"}).json()["in_wishlist"] is True
    assert client.get("/wishlist").json()["count"] == 1
    assert client.post("/wishlist/toggle", json={"product_id": "socks"}).json()["in_wishlist"] is False


def test_sync_endpoints(client):
    status = client.get("/sync/status").json()
    assert status["has_config"] is True
    assert status["connection_state"] == "disabled"

    refreshed = client.post("/sync/refresh").json()
    assert refreshed["success"] is True
    assert refreshed["config_version"] == 2


def test_no_configuration(monkeypatch, settings, make_fetcher):
    with serve(monkeypatch, settings, make_fetcher(NetworkError("offline"))) as client:
        assert client.get("/health").json()["status"] == "degraded"

        body = client.get("/config").json()
        assert body["units"][0]["kind"] == "error_state"

        assert client.get("/products").status_code == 503
        assert client.get("/pages/0").status_code == 503

        # Local state still works without configuration
        assert client.post("/cart/remove", json={"product_id": "x"}).status_code == 200


class DisconnectingRequest:
    """Reports the client as gone after ``connected_checks`` polls."""

    def __init__(self, connected_checks=1):
        self.connected_checks = connected_checks

    async def is_disconnected(self):
        if self.connected_checks > 0:
            self.connected_checks -= 1
            return False
        return True


def sse_data(chunk):
    event, data = chunk.strip().split("\n")
    return event, json.loads(data[len("data: "):])


@pytest.mark.asyncio
async def test_events_stream(monkeypatch, settings, make_fetcher, sample_document):
    session = StorefrontSession(
        settings,
        fetcher=make_fetcher(sample_document),
        auth_manager=AuthManager(settings.session_file),
        realtime=False,
    )
    monkeypatch.setattr(http_server, "session", session)
    async with session:
        response = await http_server.events(DisconnectingRequest())
        assert response.media_type == "text/event-stream"
        assert len(session.store._listeners) == 1
        stream = response.body_iterator

        event, data = sse_data(await stream.__anext__())
        assert event == "event: status"
        assert data["has_config"] is True
        assert data["config_version"] == 1

        assert await session.refresh() is True
        event, data = sse_data(await stream.__anext__())
        assert event == "event: config"
        assert data["version"] == 2
        assert data["pages"] == 2

        # The client went away: the stream ends and stops listening
        with pytest.raises(StopAsyncIteration):
            await stream.__anext__()
        assert session.store._listeners == []
