"""Tests for the FastAPI gateway."""

import pytest
from fastapi.testclient import TestClient

from online_store.config import Settings
from online_store.main import create_app


@pytest.fixture
def api_client(tmp_path, transport):
    settings = Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'api.db'}",
        redis_url="redis://localhost:6379",
        publish_timeout=1.0,
        log_level="WARNING",
        create_schema=True,
    )
    app = create_app(settings, transport=transport)
    with TestClient(app) as client:
        yield client


def create_product(client, price_cents=2999, stock=50):
    response = client.post(
        "/api/products",
        json={
            "name": "Go Programming Book",
            "description": "Learn Go programming from scratch",
            "price_cents": price_cents,
            "stock_quantity": stock,
        },
        headers={"X-User-Id": "1"},
    )
    assert response.status_code == 201
    return response.json()


class TestHealth:
    def test_health(self, api_client):
        response = api_client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestAuth:
    def test_register_and_login(self, api_client, transport):
        credentials = {"email": "john@example.com", "password": "password123"}

        registered = api_client.post("/api/register", json=credentials)
        assert registered.status_code == 201
        assert "password" not in registered.text

        login = api_client.post("/api/login", json=credentials)
        assert login.status_code == 200
        assert login.json()["id"] == registered.json()["id"]
        assert transport.topics == ["user/registered", "user/login"]

    def test_duplicate_registration(self, api_client):
        credentials = {"email": "john@example.com", "password": "password123"}
        api_client.post("/api/register", json=credentials)
        assert api_client.post("/api/register", json=credentials).status_code == 409

    def test_bad_login(self, api_client):
        response = api_client.post(
            "/api/login", json={"email": "nobody@example.com", "password": "password123"}
        )
        assert response.status_code == 401


class TestProducts:
    def test_create_requires_identity(self, api_client):
        response = api_client.post(
            "/api/products", json={"name": "x", "price_cents": 1, "stock_quantity": 1}
        )
        assert response.status_code == 401

    def test_list_and_get(self, api_client):
        product = create_product(api_client)

        listed = api_client.get("/api/products").json()
        assert [p["id"] for p in listed] == [product["id"]]

        fetched = api_client.get(f"/api/products/{product['id']}")
        assert fetched.status_code == 200
        assert fetched.json()["price_cents"] == 2999

    def test_get_missing(self, api_client):
        assert api_client.get("/api/products/999").status_code == 404

    def test_update(self, api_client):
        product = create_product(api_client)
        response = api_client.put(
            f"/api/products/{product['id']}",
            json={"name": "Go Book", "price_cents": 1999, "stock_quantity": 5},
            headers={"X-User-Id": "1"},
        )
        assert response.status_code == 200
        assert response.json()["stock_quantity"] == 5

    def test_invalid_price(self, api_client):
        response = api_client.post(
            "/api/products",
            json={"name": "Free", "price_cents": 0, "stock_quantity": 1},
            headers={"X-User-Id": "1"},
        )
        assert response.status_code == 400


class TestOrders:
    def test_create_order(self, api_client, transport):
        product = create_product(api_client, price_cents=2999, stock=50)

        response = api_client.post(
            "/api/orders",
            json={"product_id": product["id"], "quantity": 2},
            headers={"X-User-Id": "7"},
        )

        assert response.status_code == 201
        order = response.json()
        assert order["total_cents"] == 5998
        assert order["status"] == "pending"
        assert order["user_id"] == 7
        assert order["product_name"] == "Go Programming Book"
        assert api_client.get(f"/api/products/{product['id']}").json()["stock_quantity"] == 48
        assert transport.topics.count("order/created") == 1

    def test_orders_require_identity(self, api_client):
        assert api_client.get("/api/orders").status_code == 401

    def test_insufficient_stock(self, api_client):
        product = create_product(api_client, stock=1)
        response = api_client.post(
            "/api/orders",
            json={"product_id": product["id"], "quantity": 2},
            headers={"X-User-Id": "7"},
        )
        assert response.status_code == 409
        assert "insufficient stock" in response.json()["error"]

    def test_zero_quantity(self, api_client):
        product = create_product(api_client)
        response = api_client.post(
            "/api/orders",
            json={"product_id": product["id"], "quantity": 0},
            headers={"X-User-Id": "7"},
        )
        assert response.status_code == 400

    def test_unknown_product(self, api_client):
        response = api_client.post(
            "/api/orders", json={"product_id": 123, "quantity": 1}, headers={"X-User-Id": "7"}
        )
        assert response.status_code == 404

    def test_orders_are_private(self, api_client):
        product = create_product(api_client)
        order = api_client.post(
            "/api/orders",
            json={"product_id": product["id"], "quantity": 1},
            headers={"X-User-Id": "7"},
        ).json()

        mine = api_client.get(f"/api/orders/{order['id']}", headers={"X-User-Id": "7"})
        theirs = api_client.get(f"/api/orders/{order['id']}", headers={"X-User-Id": "8"})

        assert mine.status_code == 200
        assert theirs.status_code == 404
        assert api_client.get("/api/orders", headers={"X-User-Id": "8"}).json() == []
        assert len(api_client.get("/api/orders", headers={"X-User-Id": "7"}).json()) == 1


class UnreachablePubSub:
    async def subscribe(self, *channels):
        raise ConnectionError("Error 111 connecting to 127.0.0.1:1")

    async def aclose(self):
        pass


class UnreachableRedis:
    def __init__(self):
        self.closed = False

    def pubsub(self):
        return UnreachablePubSub()

    async def publish(self, channel, message):
        raise ConnectionError("Error 111 connecting to 127.0.0.1:1")

    async def aclose(self):
        self.closed = True


class TestBrokerUnavailableAtStartup:
    def test_serves_http_and_shuts_down_cleanly(self, tmp_path, monkeypatch, caplog):
        connections = []

        def from_url(*args, **kwargs):
            connections.append(UnreachableRedis())
            return connections[-1]

        monkeypatch.setattr("redis.asyncio.from_url", from_url)
        settings = Settings(
            database_url=f"sqlite+aiosqlite:///{tmp_path / 'api.db'}",
            redis_url="redis://127.0.0.1:1",
            publish_timeout=0.5,
            log_level="WARNING",
            create_schema=True,
        )

        with TestClient(create_app(settings)) as client:
            assert client.get("/health").status_code == 200
            product = create_product(client, stock=5)
            order = client.post(
                "/api/orders",
                json={"product_id": product["id"], "quantity": 1},
                headers={"X-User-Id": "3"},
            )
            assert order.status_code == 201

        assert len(connections) == 2
        assert all(conn.closed for conn in connections)
        assert "Failed to subscribe" in caplog.text


class TestSampleData:
    def test_seeded_on_startup_when_enabled(self, tmp_path, transport):
        settings = Settings(
            database_url=f"sqlite+aiosqlite:///{tmp_path / 'seed.db'}",
            redis_url="redis://localhost:6379",
            publish_timeout=1.0,
            log_level="WARNING",
            create_schema=True,
            seed_sample_data=True,
        )
        with TestClient(create_app(settings, transport=transport)) as client:
            names = {p["name"] for p in client.get("/api/products").json()}

        assert "Go Programming Book" in names
        assert len(names) == 4
