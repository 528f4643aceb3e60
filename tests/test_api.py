"""Tests for the dashboard intent routes."""

import json

import pytest
from fastapi.testclient import TestClient

from backend import main
from backend.fetch import PromptReply
from backend.orchestrator import RATE_LIMIT_MESSAGE, ScanOrchestrator

PAYLOAD = {
    "game": {"ne_score": 10, "sea_score": 13, "quarter": "3", "clock": "2:00", "status": "live"},
    "bets": [
        {"type": "moneyline", "confidence": "HIGH", "desc": "NE ML +150", "book": "betmgm", "units": 2},
        {"type": "prop", "confidence": "LOW", "desc": "Maye over 1.5 TD", "book": "underdog"},
    ],
}


class ScriptedFetch:
    def __init__(self, *replies):
        self.replies = list(replies)

    async def send_prompt(self, prompt, kind="full_scan"):
        return self.replies.pop(0)


@pytest.fixture
def orch():
    return ScanOrchestrator(ScriptedFetch(
        PromptReply(text="```json\n" + json.dumps(PAYLOAD) + "\n```", search_count=3),
        PromptReply(error="Anthropic API 429"),
    ))


@pytest.fixture
def client(orch):
    main.app.dependency_overrides[main.get_orchestrator] = lambda: orch
    with TestClient(main.app) as test_client:
        yield test_client
    main.app.dependency_overrides.clear()


def test_scan_then_state(client):
    resp = client.post("/api/scan", json={"aggression": 8, "unit_size": 40})
    body = resp.json()
    assert resp.status_code == 200
    assert body["started"] is True
    assert body["error"] is None
    assert body["state"]["settings"]["aggression"] == 8
    assert body["state"]["settings"]["unit_size"] == 40
    assert body["state"]["game"]["scores"] == {"NE": 10, "SEA": 13}
    assert len(body["state"]["alerts"]) == 2

    state = client.get("/api/state").json()
    assert state["is_scanning"] is False
    assert state["last_updated"] is not None


def test_scan_failure_sets_banner(client):
    client.post("/api/scan")
    body = client.post("/api/scan").json()
    assert body["error"] == "Anthropic API 429"
    assert body["state"]["error"] == RATE_LIMIT_MESSAGE
    assert len(body["state"]["alerts"]) == 2


def test_place_resolve_flow(client):
    state = client.post("/api/scan", json={"unit_size": 25}).json()["state"]
    alert_id = state["alerts"][0]["id"]

    placed = client.post(f"/api/alerts/{alert_id}/place").json()
    assert placed["placed"] is True
    assert placed["entry"]["wager"] == 50
    assert placed["totals"]["pending"] == 50

    again = client.post(f"/api/alerts/{alert_id}/place").json()
    assert again["placed"] is False

    resolved = client.post("/api/bets/0/resolve", json={"result": "won"}).json()
    assert resolved["entry"]["result"] == "won"
    assert resolved["entry"]["net"] == pytest.approx(45)
    assert resolved["totals"]["won"] == pytest.approx(95)

    ledger = client.get("/api/state").json()["ledger"]
    assert ledger[0]["net"] == pytest.approx(45)


def test_resolve_errors(client):
    client.post("/api/scan")
    alert_id = client.get("/api/state").json()["alerts"][0]["id"]
    client.post(f"/api/alerts/{alert_id}/place")
    assert client.post("/api/bets/0/resolve", json={"result": "maybe"}).status_code == 400
    assert client.post("/api/bets/5/resolve", json={"result": "won"}).status_code == 404


def test_dismiss(client):
    client.post("/api/scan")
    alert_id = client.get("/api/state").json()["alerts"][1]["id"]
    assert client.post(f"/api/alerts/{alert_id}/dismiss").json() == {"dismissed": True}
    assert client.post(f"/api/alerts/{alert_id}/dismiss").json() == {"dismissed": False}
    state = client.get("/api/state").json()
    assert alert_id not in [a["id"] for a in state["alerts"]]
    assert state["ledger"] == []


def test_settings_are_clamped(client):
    resp = client.put("/api/settings", json={"aggression": 0, "bankroll": 2000})
    assert resp.json()["settings"] == {"aggression": 1, "unit_size": 25, "bankroll": 2000}


def test_auto_refresh_toggle(client, orch):
    resp = client.put("/api/auto-refresh", json={"enabled": True, "interval": 90})
    assert resp.json() == {"enabled": True, "interval": 90}
    resp = client.put("/api/auto-refresh", json={"enabled": False})
    assert resp.json() == {"enabled": False, "interval": 90}
    assert client.put("/api/auto-refresh", json={"enabled": True, "interval": 7}).status_code == 400
    orch.close()


def test_health(client):
    body = client.get("/health").json()
    assert body["status"] == "ok"
    assert "has_server_key" in body
