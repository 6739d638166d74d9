"""
API tests for the FastAPI backend, driven through TestClient.
"""

import pytest
from fastapi.testclient import TestClient

from server import app, manager


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        response = test_client.post("/games", json={"seed": 9})
        assert response.status_code == 200
        yield test_client
    manager.economy = None
    manager.commands = None


def found(client):
    market = client.get("/state").json()["markets"][0]["name"]
    response = client.post("/commands/found", json={
        "company_name": "Acme", "market_name": market, "product_name": "Rocket",
    })
    assert response.status_code == 200
    return market


class TestGameLifecycle:
    def test_new_game_state(self, client):
        state = client.get("/state").json()

        assert state["turn"] == 0
        assert (state["year"], state["quarter"]) == (2000, 1)
        assert len(state["markets"]) == 8
        assert len(state["ai_companies"]) == 20
        assert state["game_over"] is False

    def test_step_advances_turns(self, client):
        found(client)

        response = client.post("/step", json={"turns": 3})

        assert response.status_code == 200
        body = response.json()
        assert body["turns_played"] == 3
        assert body["turn"] == 3
        assert body["player"]["name"] == "Acme"

    def test_step_rejects_zero_turns(self, client):
        assert client.post("/step", json={"turns": 0}).status_code == 422

    def test_news_feeds(self, client):
        found(client)
        client.post("/step", json={"turns": 1})

        news = client.get("/news").json()

        assert set(news) == {"public", "competitors", "events"}
        assert any("Acme was founded" in line for line in news["public"])

    def test_campus_catalogue(self, client):
        campuses = client.get("/campuses").json()
        assert campuses[0]["name"] == "Garage"
        assert campuses[-1]["capacity"] is None


class TestCommandsEndpoints:
    def test_hire_and_fire(self, client):
        found(client)

        assert client.post("/commands/hire", json={"count": 2}).status_code == 200
        response = client.post("/commands/fire", json={"count": 1})

        assert response.status_code == 200
        assert client.get("/state").json()["player"]["employees"] == 6

    def test_failed_command_returns_error_code(self, client):
        found(client)

        response = client.post("/commands/hire", json={"count": 6})

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "capacity"

    def test_loan_and_bond(self, client):
        found(client)

        loan = client.post("/commands/loan", json={"amount": 100000, "term_months": 60, "annual_rate": 0.08})
        bond = client.post("/commands/bond", json={"amount": 50000, "term_quarters": 4, "annual_rate": 0.05})

        assert loan.status_code == 200
        assert bond.status_code == 200
        player = client.get("/state").json()["player"]
        assert len(player["loans"]) == 1
        assert len(player["bonds"]) == 1

    def test_quote_unknown_company(self, client):
        assert client.get("/acquisitions/quote/Nobody").status_code == 404

    def test_quote_and_acquire(self, client):
        found(client)
        target = client.get("/state").json()["ai_companies"][0]["name"]

        quote = client.get(f"/acquisitions/quote/{target}").json()
        assert quote["price"] > 0

        response = client.post("/commands/acquire", json={"target_name": target, "price": 1e13})
        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "insufficient_cash"


class TestSnapshotEndpoints:
    def test_export_and_restore(self, client):
        found(client)
        client.post("/step", json={"turns": 2})
        snapshot = client.get("/snapshot").json()

        response = client.post("/snapshot", json=snapshot)

        assert response.status_code == 200
        assert response.json()["turn"] == 2
        assert response.json()["player"]["name"] == "Acme"

    def test_restore_rejects_malformed_snapshot(self, client):
        response = client.post("/snapshot", json={"turn": 1})
        assert response.status_code == 422


class TestWebSocket:
    def test_setup_and_step(self, client):
        with client.websocket_connect("/ws") as websocket:
            websocket.send_json({"command": "SETUP", "seed": 3})
            setup = websocket.receive_json()
            assert setup["type"] == "SETUP_COMPLETE"
            assert setup["state"]["turn"] == 0

            websocket.send_json({"command": "STEP"})
            state = websocket.receive_json()
            assert state["type"] == "STATE"
            assert state["turns_played"] == 1
            assert state["state"]["turn"] == 1

            websocket.send_json({"command": "DANCE"})
            assert websocket.receive_json()["type"] == "ERROR"

    def test_reconnect_after_disconnect(self, client):
        with client.websocket_connect("/ws") as websocket:
            websocket.send_json({"command": "SETUP", "seed": 5})
            websocket.receive_json()

        with client.websocket_connect("/ws") as websocket:
            websocket.send_json({"command": "STATE"})
            state = websocket.receive_json()
            assert state["type"] == "STATE"
            assert state["state"]["turn"] == 0
