import pytest
from fastapi.testclient import TestClient

from hlexchange.adapters.http_dispatcher import NormalizedResult
from hlexchange.errors import (
    IndeterminateOutcomeError,
    UnknownSymbolError,
    VenueRejectionError,
)
from hlexchange.main import app, get_exchange


class StubExchange:
    """Records calls and replays a scripted outcome."""

    def __init__(self, outcome=None):
        self.calls = []
        self.outcome = outcome or NormalizedResult(
            kind="multi",
            response_type="order",
            statuses=[{"resting": {"oid": 7}}],
            raw={"status": "ok"},
        )

    async def _play(self, name, *args, **kwargs):
        self.calls.append((name, args, kwargs))
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome

    async def place_orders(self, orders, **kwargs):
        return await self._play("place_orders", orders, **kwargs)

    async def cancel_orders(self, cancels):
        return await self._play("cancel_orders", cancels)

    async def usd_transfer(self, destination, amount):
        return await self._play("usd_transfer", destination, amount)


@pytest.fixture
def client():
    yield TestClient(app)
    app.dependency_overrides.clear()


def _use(stub):
    app.dependency_overrides[get_exchange] = lambda: stub
    return stub


ORDER_BODY = {
    "orders": [
        {"symbol": "BTC", "side": "buy", "limitPrice": "30000", "size": "1.5"},
    ]
}


def test_health_reports_network(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["network"] in {"mainnet", "testnet"}
    assert "private_key" in body["keys"]


def test_trading_routes_disabled_without_exchange(client):
    app.state.exchange = None
    response = client.post("/api/orders", json=ORDER_BODY)
    assert response.status_code == 503


def test_place_orders_returns_receipt(client):
    stub = _use(StubExchange())
    response = client.post("/api/orders", json={**ORDER_BODY, "vaultAddress": "0x" + "11" * 20})
    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["responseType"] == "order"
    assert body["statuses"] == [{"resting": {"oid": 7}}]
    name, args, kwargs = stub.calls[0]
    assert args[0][0].symbol == "BTC"
    assert kwargs["vault_address"] == "0x" + "11" * 20


def test_invalid_body_is_rejected_before_exchange(client):
    stub = _use(StubExchange())
    response = client.post(
        "/api/orders",
        json={"orders": [{"symbol": "BTC", "side": "buy", "limitPrice": "-1", "size": "1"}]},
    )
    assert response.status_code == 422
    assert stub.calls == []


def test_unknown_symbol_maps_to_404(client):
    _use(StubExchange(UnknownSymbolError("ZZZ")))
    response = client.post("/api/orders/cancel", json={"cancels": [{"symbol": "ZZZ", "oid": 1}]})
    assert response.status_code == 404
    assert response.json()["error"] == "UnknownSymbolError"


def test_venue_rejection_includes_statuses(client):
    statuses = [{"resting": {"oid": 1}}, {"error": "Insufficient margin to place order."}]
    _use(StubExchange(VenueRejectionError("Insufficient margin to place order.", statuses=statuses)))
    response = client.post("/api/orders", json=ORDER_BODY)
    assert response.status_code == 422
    body = response.json()
    assert body["ok"] is False
    assert body["statuses"] == statuses


def test_indeterminate_outcome_reports_nonce(client):
    _use(StubExchange(IndeterminateOutcomeError("timed out after send", nonce=1700000000000)))
    response = client.post(
        "/api/transfers/usd",
        json={"destination": "0x" + "22" * 20, "amount": "5"},
    )
    assert response.status_code == 504
    assert response.json()["nonce"] == 1700000000000
