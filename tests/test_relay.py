"""Tests for the upstream forwarding step and the /api/claude route."""

import asyncio
import json

import httpx
import pytest
from fastapi.testclient import TestClient

from backend import config, main
from backend.relay import RelayFailure, build_request_body, extract_reply, forward_prompt

MESSAGE = {
    "content": [
        {"type": "server_tool_use", "name": "web_search"},
        {"type": "text", "text": "Searching..."},
        {"type": "web_search_tool_result", "content": []},
        {"type": "text", "text": '{"game": {"ne_score": 7}}'},
    ],
    "stop_reason": "end_turn",
    "usage": {"input_tokens": 900, "server_tool_use": {"web_search_requests": 3}},
}


def forward(handler, prompt="score?", api_key="sk-test"):
    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await forward_prompt(client, prompt, "full_scan", api_key=api_key)
    return asyncio.run(go())


def test_extract_reply_joins_text_blocks():
    reply = extract_reply(MESSAGE)
    assert reply["text"] == 'Searching...\n{"game": {"ne_score": 7}}'
    assert reply["search_count"] == 3
    assert reply["stop_reason"] == "end_turn"


def test_extract_reply_without_usage():
    assert extract_reply({"content": []})["search_count"] == 0


def test_extract_reply_tolerates_malformed_usage():
    reply = extract_reply({
        "content": [{"type": "text", "text": 42}, "junk", {"type": "text", "text": "ok"}],
        "usage": "bogus",
    })
    assert reply["text"] == "ok"
    assert reply["search_count"] == 0
    reply = extract_reply({"content": "nope", "usage": {"server_tool_use": [1, 2]}})
    assert reply["text"] == ""
    assert reply["search_count"] == 0
    assert extract_reply({"usage": {"server_tool_use": {"web_search_requests": "3"}}})["search_count"] == 0


def test_request_body_enables_web_search():
    body = build_request_body("hello")
    assert body["messages"] == [{"role": "user", "content": "hello"}]
    assert body["tools"][0]["name"] == "web_search"
    assert body["tools"][0]["max_uses"] == config.WEB_SEARCH_MAX_USES


def test_forward_sends_key_and_reshapes():
    seen = {}

    def handler(request):
        seen["key"] = request.headers["x-api-key"]
        seen["version"] = request.headers["anthropic-version"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=MESSAGE)

    reply = forward(handler)
    assert seen["key"] == "sk-test"
    assert seen["version"] == config.ANTHROPIC_VERSION
    assert seen["body"]["messages"][0]["content"] == "score?"
    assert reply["search_count"] == 3


def test_forward_mirrors_upstream_status():
    with pytest.raises(RelayFailure) as exc:
        forward(lambda request: httpx.Response(429, text='{"type":"rate_limit_error"}'))
    assert exc.value.status == 429
    assert exc.value.body() == {"error": "Anthropic API 429", "details": '{"type":"rate_limit_error"}'}


def test_forward_rejects_bad_upstream_json():
    with pytest.raises(RelayFailure) as exc:
        forward(lambda request: httpx.Response(200, text="<html>oops</html>"))
    assert exc.value.status == 500
    assert exc.value.body() == {"error": "Invalid JSON from Anthropic"}


def test_forward_malformed_success_body():
    reply = forward(lambda request: httpx.Response(200, json={"content": {"type": "text"}, "usage": "bogus"}))
    assert reply["text"] == ""
    assert reply["search_count"] == 0


def test_forward_transport_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(RelayFailure) as exc:
        forward(handler)
    assert exc.value.status == 500
    assert exc.value.error == "Server error"


def test_forward_requires_key():
    with pytest.raises(RelayFailure) as exc:
        forward(lambda request: httpx.Response(200, json=MESSAGE), api_key="")
    assert exc.value.status == 500


# ── ROUTE ─────────────────────────────────────────────────────────────────────
@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(config, "ANTHROPIC_API_KEY", "sk-test")
    return TestClient(main.app)


def test_route_success(client, monkeypatch):
    async def fake_forward(http, prompt, kind=None, api_key=None):
        return {"text": f"echo {prompt}", "stop_reason": "end_turn", "usage": {}, "search_count": 1}

    monkeypatch.setattr(main, "forward_prompt", fake_forward)
    resp = client.post("/api/claude", json={"prompt": "hi", "type": "full_scan"})
    assert resp.status_code == 200
    assert resp.json()["text"] == "echo hi"
    assert resp.json()["search_count"] == 1


def test_route_missing_prompt(client):
    assert client.post("/api/claude", json={}).status_code == 400
    resp = client.post("/api/claude", content=b"not json", headers={"Content-Type": "application/json"})
    assert resp.status_code == 400
    assert resp.json() == {"error": "Missing prompt"}


def test_route_missing_key(client, monkeypatch):
    monkeypatch.setattr(config, "ANTHROPIC_API_KEY", "")
    resp = client.post("/api/claude", json={"prompt": "hi"})
    assert resp.status_code == 500
    assert "ANTHROPIC_API_KEY" in resp.json()["error"]


def test_route_mirrors_failure(client, monkeypatch):
    async def fake_forward(http, prompt, kind=None, api_key=None):
        raise RelayFailure(529, "Anthropic API 529", "overloaded")

    monkeypatch.setattr(main, "forward_prompt", fake_forward)
    resp = client.post("/api/claude", json={"prompt": "hi"})
    assert resp.status_code == 529
    assert resp.json() == {"error": "Anthropic API 529", "details": "overloaded"}


def test_route_preflight_and_methods(client):
    resp = client.options("/api/claude")
    assert resp.status_code == 200
    assert resp.content == b""
    resp = client.get("/api/claude")
    assert resp.status_code == 405
    assert resp.json() == {"error": "Method not allowed"}


def test_route_cors_wildcard(client):
    resp = client.options(
        "/api/claude",
        headers={"Origin": "https://example.com", "Access-Control-Request-Method": "POST"},
    )
    assert resp.status_code == 200
    assert resp.headers["access-control-allow-origin"] == "*"
    assert resp.content == b""
