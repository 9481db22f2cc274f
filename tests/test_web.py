# tests/test_web.py
"""
HTTP and WebSocket surface over a session backed by the in-memory ledger.

TestClient runs the app on its own event loop, so ledger state is seeded
before the app starts and never driven from the test thread afterwards.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from client.base import ConsensusState
from client.memory import InMemoryLedgerClient
from helpers import ADDRESS_A, ADDRESS_B, ADDRESS_C, make_tx, wait_until
from session.session import Session
from web.web import create_app

PEERS = 5


def _path_address(address):
    return address.to_user_friendly(with_spaces=False)


@pytest.fixture
def ledger():
    client = InMemoryLedgerClient(consensus=ConsensusState.ESTABLISHED)
    client.set_account(ADDRESS_A, balance=42)
    client.set_statistics(total_peer_count=PEERS)
    client.add_block([make_tx(sender=ADDRESS_A, recipient=ADDRESS_B)], timestamp=100)
    client.add_block([make_tx(sender=ADDRESS_B, recipient=ADDRESS_C)], timestamp=200)
    client.add_block()
    return client


@pytest.fixture
def http(ledger):
    session = Session(client_factory=lambda configuration: ledger)
    app = create_app(session)

    @app.on_event("startup")
    async def wait_for_stores():
        await session.start()
        await session.settle()
        await wait_until(lambda: session.network.peer_count.value == PEERS, delay=0.005)

    with TestClient(app) as client:
        yield client


# ────────────────────────────────────────────────────────────────────────────
#  Health and metrics
# ────────────────────────────────────────────────────────────────────────────

def test_health_reports_live_session(http):
    resp = http.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "healthy"
    assert body["components"]["chain"]["details"]["height"] == 4
    assert body["components"]["network"]["details"]["total_peers"] == PEERS


def test_health_is_unavailable_when_bootstrap_fails():
    ledger = InMemoryLedgerClient()
    ledger.fail_next("initialize")
    app = create_app(Session(client_factory=lambda configuration: ledger))

    with TestClient(app) as client:
        resp = client.get("/health")

    assert resp.status_code == 503
    assert resp.json()["components"]["session"]["status"] == "unhealthy"


def test_metrics_are_exposed(http):
    resp = http.get("/metrics")
    assert resp.status_code == 200
    assert "ledger_stores_tracked_accounts" in resp.text
    assert "ledger_stores_peer_count" in resp.text


def test_consensus_and_network_snapshots(http):
    consensus = http.get("/consensus").json()
    assert consensus["ready"] is True
    assert consensus["consensus"] == "established"
    assert consensus["established"] is True
    assert consensus["height"] == 4

    network = http.get("/network").json()
    assert network["peerCount"] == PEERS
    assert network["statistics"]["totalPeerCount"] == PEERS


# ────────────────────────────────────────────────────────────────────────────
#  Accounts
# ────────────────────────────────────────────────────────────────────────────

def test_add_account_publishes_immediately(http):
    resp = http.post("/accounts", json={"address": ADDRESS_A.to_user_friendly(), "label": "savings"})
    assert resp.status_code == 200
    account = resp.json()["account"]
    assert account["address"] == ADDRESS_A.to_user_friendly()
    assert account["label"] == "savings"


def test_refresh_returns_remote_balances(http):
    http.post("/accounts", json={"address": ADDRESS_A.to_hex(), "label": "savings"})

    resp = http.post("/accounts/refresh", json={"addresses": [ADDRESS_A.to_hex()]})
    assert resp.status_code == 200
    body = resp.json()
    assert body["completed"] is True
    assert body["accounts"] == [{
        "address": ADDRESS_A.to_user_friendly(),
        "label": "savings",
        "type": "basic",
        "balance": 42,
    }]

    listed = http.get("/accounts").json()
    assert listed["accounts"] == body["accounts"]
    assert listed["refreshing"] is False


def test_remove_account(http):
    http.post("/accounts", json={"address": ADDRESS_B.to_hex()})

    resp = http.delete(f"/accounts/{_path_address(ADDRESS_B)}")
    assert resp.status_code == 200
    assert resp.json() == {"removed": ADDRESS_B.to_user_friendly()}
    assert http.get("/accounts").json()["accounts"] == []


def test_remove_untracked_account_is_404(http):
    resp = http.delete(f"/accounts/{_path_address(ADDRESS_C)}")
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "HTTP_ERROR"


@pytest.mark.parametrize("address", ["NQ00NOTANADDRESS", "NQ07" + "0" * 31 + "!"])
def test_unparseable_address_in_path_is_400(http, address):
    resp = http.delete(f"/accounts/{address}")
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "VALIDATION_ERROR"


@pytest.mark.parametrize("payload", [
    {"address": "not-an-address"},
    {"label": "no address"},
    {"address": ADDRESS_A.to_hex(), "label": "x" * 101},
])
def test_invalid_account_body_is_422(http, payload):
    resp = http.post("/accounts", json=payload)
    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "VALIDATION_ERROR"


# ────────────────────────────────────────────────────────────────────────────
#  Transactions
# ────────────────────────────────────────────────────────────────────────────

def test_transaction_refresh_and_filter(http):
    resp = http.post("/transactions/refresh", json={"addresses": [ADDRESS_B.to_hex()]})
    assert resp.status_code == 200
    transactions = resp.json()["transactions"]
    assert [tx["timestamp"] for tx in transactions] == [200, 100]

    only_a = http.get("/transactions", params={"address": ADDRESS_A.to_hex()}).json()
    assert len(only_a["transactions"]) == 1
    assert only_a["transactions"][0]["sender"] == ADDRESS_A.to_user_friendly()
    assert only_a["refreshing"] is False


# ────────────────────────────────────────────────────────────────────────────
#  WebSocket
# ────────────────────────────────────────────────────────────────────────────

def test_websocket_ping(http):
    with http.websocket_connect("/ws") as ws:
        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}


def test_websocket_subscription_streams_current_value(http):
    with http.websocket_connect("/ws") as ws:
        ws.send_json({"type": "subscribe", "store": "height"})
        assert ws.receive_json() == {"type": "subscribed", "store": "height"}
        assert ws.receive_json() == {"type": "update", "store": "height", "value": 4}

        ws.send_json({"type": "unsubscribe", "store": "height"})
        assert ws.receive_json() == {"type": "unsubscribed", "store": "height"}


def test_websocket_rejects_bad_requests(http):
    with http.websocket_connect("/ws") as ws:
        ws.send_json({"type": "subscribe", "store": "mempool"})
        error = ws.receive_json()
        assert error["type"] == "error"
        assert error["error"] == "validation_error"

        ws.send_json(["subscribe"])
        assert ws.receive_json()["error"] == "validation_error"
