"""
HTTP surface tests. Startup hooks are not run; the container is wired from test fixtures.
"""
from decimal import Decimal
from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from limit_engine.core.container import Container
from limit_engine.core.deps import get_db
from limit_engine.core.errors import ChainError
from limit_engine.main import app
from limit_engine.models import OrderStatus
from limit_engine.services.chain import ChainClient
from limit_engine.services.orders import OrderService
from limit_engine.services.wallets import WalletService

from factories import PENGU, PRIVATE_KEY, WALLET_ADDRESS, WETH

USER = {"X-User-Id": "77"}


@pytest.fixture
def api_chain():
    chain = Mock(spec=ChainClient)
    chain.is_connected.return_value = True
    return chain


@pytest.fixture
def container(session_factory, vault, api_chain, oracle, planner, broker, store, notifier, executor, monitor):
    wallets = WalletService(session_factory, vault, api_chain)
    return Container(
        vault=vault,
        chain=api_chain,
        oracle=oracle,
        planner=planner,
        broker=broker,
        store=store,
        notifier=notifier,
        wallets=wallets,
        orders=OrderService(store, wallets, notifier),
        executor=executor,
        monitor=monitor,
    )


@pytest.fixture
def client(container, session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.state.container = container
    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()
    del app.state.container


@pytest.fixture
def registered(client):
    response = client.post("/api/v1/wallets", json={"private_key": PRIVATE_KEY}, headers=USER)
    assert response.status_code == 201
    return response.json()


def order_body(**overrides):
    body = {
        "wallet_address": WALLET_ADDRESS,
        "direction": "SELL",
        "token_in": PENGU,
        "token_out": WETH,
        "amount": 10_000 * 10**18,
        "trigger_price": "0.01",
        "slippage": "0.05",
        "expiry": "1h",
    }
    body.update(overrides)
    return body


class TestHealth:
    def test_health(self, client):
        response = client.get("/api/v1/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "monitor_running": False, "chain_connected": True}

    def test_unwired_app_is_unavailable(self, client, container):
        app.state.container = None
        try:
            assert client.get("/api/v1/health").status_code == 503
        finally:
            app.state.container = container


class TestWallets:
    def test_register_and_list(self, client, registered):
        assert registered["address"] == WALLET_ADDRESS
        assert "private_key" not in registered
        assert "encrypted_secret" not in registered

        response = client.get("/api/v1/wallets", headers=USER)
        assert [w["address"] for w in response.json()] == [WALLET_ADDRESS]

    def test_missing_user_header(self, client):
        assert client.get("/api/v1/wallets").status_code == 401

    def test_invalid_key(self, client):
        response = client.post("/api/v1/wallets", json={"private_key": "zz" * 32}, headers=USER)
        assert response.status_code == 400

    def test_balance(self, client, registered, api_chain):
        api_chain.balance_of.return_value = 10**30

        response = client.get(f"/api/v1/wallets/{WALLET_ADDRESS}/balance", params={"token": PENGU}, headers=USER)

        assert response.status_code == 200
        assert response.json()["balance"] == str(10**30)

    def test_balance_unknown_wallet(self, client):
        response = client.get(f"/api/v1/wallets/{WALLET_ADDRESS}/balance", headers=USER)
        assert response.status_code == 404

    def test_balance_rpc_failure(self, client, registered, api_chain):
        api_chain.balance_of.side_effect = ChainError("rpc down")
        response = client.get(f"/api/v1/wallets/{WALLET_ADDRESS}/balance", headers=USER)
        assert response.status_code == 502


class TestOrders:
    def test_create_order(self, client, registered):
        response = client.post("/api/v1/orders", json=order_body(), headers=USER)

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "ACTIVE"
        assert data["direction"] == "SELL"
        assert data["amount"] == str(10_000 * 10**18)
        assert data["owner_id"] == 77
        assert data["expiry_at"] is not None
        assert "wallet_encrypted_secret" not in data

    def test_create_without_expiry(self, client, registered):
        response = client.post("/api/v1/orders", json=order_body(expiry="none"), headers=USER)
        assert response.status_code == 201
        assert response.json()["expiry_at"] is None

    @pytest.mark.parametrize(
        "overrides",
        [{"expiry": "2w"}, {"token_out": PENGU}, {"wallet_address": "0x" + "9" * 40}],
    )
    def test_create_rejected(self, client, registered, overrides):
        response = client.post("/api/v1/orders", json=order_body(**overrides), headers=USER)
        assert response.status_code == 400

    @pytest.mark.parametrize("overrides", [{"direction": "HOLD"}, {"amount": 0}, {"slippage": "1.5"}])
    def test_create_schema_validation(self, client, registered, overrides):
        response = client.post("/api/v1/orders", json=order_body(**overrides), headers=USER)
        assert response.status_code == 422

    def test_get_and_list(self, client, registered):
        order_id = client.post("/api/v1/orders", json=order_body(), headers=USER).json()["id"]

        assert client.get(f"/api/v1/orders/{order_id}", headers=USER).json()["id"] == order_id
        assert client.get(f"/api/v1/orders/{order_id}", headers={"X-User-Id": "78"}).status_code == 404
        assert [o["id"] for o in client.get("/api/v1/orders?status=active", headers=USER).json()] == [order_id]
        assert client.get("/api/v1/orders?status=filled", headers=USER).json() == []
        assert client.get("/api/v1/orders?status=bogus", headers=USER).status_code == 400

    def test_cancel(self, client, registered, broker):
        order_id = client.post("/api/v1/orders", json=order_body(), headers=USER).json()["id"]

        response = client.post(f"/api/v1/orders/{order_id}/cancel", headers=USER)

        assert response.status_code == 200
        assert response.json() == {
            "order_id": order_id,
            "cancelled": True,
            "status": "CANCELLED",
            "detail": "cancelled",
        }
        again = client.post(f"/api/v1/orders/{order_id}/cancel", headers=USER)
        assert again.status_code == 409
        assert again.json()["detail"] == "already finalized"

    def test_cancel_during_execution(self, client, registered, store):
        order_id = client.post("/api/v1/orders", json=order_body(), headers=USER).json()["id"]
        store.claim(order_id)

        response = client.post(f"/api/v1/orders/{order_id}/cancel", headers=USER)

        assert response.status_code == 409
        assert response.json()["detail"] == "execution in progress"
        assert store.get(order_id).status == OrderStatus.ACTIVE

    def test_cancel_with_unsettled_swap(self, client, registered, store):
        order_id = client.post("/api/v1/orders", json=order_body(), headers=USER).json()["id"]
        token = store.claim(order_id)
        store.record_submission(order_id, token, "0x" + "ab" * 32)
        store.release(order_id, token)

        response = client.post(f"/api/v1/orders/{order_id}/cancel", headers=USER)

        assert response.status_code == 409
        assert response.json()["detail"] == "execution in progress"
        assert store.get(order_id).pending_tx_hash == "0x" + "ab" * 32

    def test_cancel_missing(self, client):
        assert client.post("/api/v1/orders/999/cancel", headers=USER).status_code == 404

    def test_filled_order_shows_receipt(self, client, registered, store):
        order_id = client.post("/api/v1/orders", json=order_body(), headers=USER).json()["id"]
        token = store.claim(order_id)
        store.compare_and_transition(
            order_id,
            OrderStatus.ACTIVE,
            OrderStatus.FILLED,
            fields={"tx_hash": "0x01", "executed_price": Decimal("0.0098")},
            lease_token=token,
        )

        data = client.get(f"/api/v1/orders/{order_id}", headers=USER).json()

        assert data["status"] == "FILLED"
        assert data["tx_hash"] == "0x01"
        assert Decimal(data["executed_price"]) == Decimal("0.0098")


class TestNotifications:
    def test_list_and_mark_read(self, client, registered):
        order_id = client.post("/api/v1/orders", json=order_body(), headers=USER).json()["id"]
        client.post(f"/api/v1/orders/{order_id}/cancel", headers=USER)

        listing = client.get("/api/v1/notifications/", headers=USER).json()
        assert listing["unread_count"] == 1
        notification = listing["notifications"][0]
        assert notification["type"] == "ORDER_CANCELLED"
        assert notification["order_id"] == order_id

        response = client.patch(f"/api/v1/notifications/{notification['id']}/read", headers=USER)
        assert response.status_code == 200
        assert response.json()["is_read"] is True
        assert client.get("/api/v1/notifications/", headers=USER).json()["unread_count"] == 0

    def test_mark_other_users_notification(self, client):
        assert client.patch("/api/v1/notifications/1/read", headers=USER).status_code == 404
