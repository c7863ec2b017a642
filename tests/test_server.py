import pytest
from fastapi.testclient import TestClient

import server
from catalog_filter import CatalogFilterAgent, InMemorySessionStore

from conftest import TokenMatchService

PRODUCTS = [
    {"id": "fall-jacket", "title": "Fall Jacket Men", "description": "", "price": 120},
    {"id": "summer-shirt", "title": "Summer Shirt Men", "description": "", "price": 40},
    {"id": "fall-dress", "title": "Fall Dress Women", "description": "", "price": 80},
]


@pytest.fixture
def store(monkeypatch):
    store = InMemorySessionStore()
    monkeypatch.setattr(server, "agent", CatalogFilterAgent(service=TokenMatchService(), store=store))
    return store


@pytest.fixture
def client(store):
    return TestClient(server.app)


def test_filter_narrows_across_requests(client):
    first = client.post("/filter", json={"owner_id": "u1", "products": PRODUCTS, "query": "fall"})
    second = client.post("/filter", json={"owner_id": "u1", "products": PRODUCTS, "query": "men"})

    assert first.status_code == 200
    assert [p["id"] for p in first.json()["products"]] == ["fall-jacket", "fall-dress"]
    body = second.json()
    assert [p["id"] for p in body["products"]] == ["fall-jacket"]
    assert body["source"] == "model"
    assert body["warning"] is None


def test_empty_query_returns_everything(client):
    client.post("/filter", json={"owner_id": "u1", "products": PRODUCTS, "query": "fall"})
    response = client.post("/filter", json={"owner_id": "u1", "products": PRODUCTS, "query": ""})
    assert [p["id"] for p in response.json()["products"]] == ["fall-jacket", "summer-shirt", "fall-dress"]
    assert response.json()["source"] == "reset"


def test_clear_endpoint(client, store):
    client.post("/filter", json={"owner_id": "u1", "products": PRODUCTS, "query": "fall"})
    response = client.delete("/filter/u1")
    assert response.json() == {"status": "cleared", "warning": None}
    assert "u1" not in store


def test_missing_owner_is_rejected(client):
    response = client.post("/filter", json={"owner_id": "", "products": PRODUCTS, "query": "fall"})
    assert response.status_code == 422


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


class ClosingStore(InMemorySessionStore):
    closed = False

    async def close(self):
        self.closed = True


def test_shutdown_closes_session_store(monkeypatch):
    store = ClosingStore()
    monkeypatch.setattr(server, "agent", CatalogFilterAgent(service=TokenMatchService(), store=store))
    with TestClient(server.app) as client:
        client.get("/health")
        assert not store.closed
    assert store.closed
