"""Tests for the HTTP surface: POST /chat, GET /, /health, /metrics."""

import time

import httpx
import pytest

from app.core.config import settings
from app.gateway.classifier import (
    MSG_ADMISSION_CAP,
    MSG_INVALID_INPUT,
    MSG_NOT_CONFIGURED,
    MSG_RETRIES_EXHAUSTED,
    MSG_UNREACHABLE,
)
from app.gateway.prompt_composer import MODE_DIRECTIVES, TONE_DIRECTIVES
from app.gateway.types import Mode, Tone
from app.main import app
from tests.conftest import ScriptedUpstream, openai_completion, openai_error


def _install(make_gateway, upstream: ScriptedUpstream, **kwargs):
    gateway = make_gateway(upstream, **kwargs)
    app.state.gateway = gateway
    return gateway


@pytest.mark.asyncio
async def test_chat_success(client, make_gateway):
    upstream = ScriptedUpstream(httpx.Response(200, json=openai_completion("  Stay with the vehicle.  ")))
    _install(make_gateway, upstream)

    resp = await client.post(
        "/chat",
        json={
            "userInput": "What do I do at a traffic stop?",
            "mode": "simulation",
            "tone": "field",
            "history": [
                {"role": "user", "content": "Hello", "mode": "quiz", "tone": "field"},
                {"role": "bot", "content": "Hi, officer."},
            ],
        },
    )

    assert resp.status_code == 200
    assert resp.json() == {"content": "Stay with the vehicle."}

    assert upstream.calls == 1
    request = upstream.requests[0]
    assert request.headers["Authorization"] == "Bearer test-key"

    payload = upstream.payload()
    assert payload["model"] == "gpt-4o-mini"
    assert payload["temperature"] == 0.4
    assert payload["max_tokens"] == 350

    messages = payload["messages"]
    assert messages[0]["role"] == "system"
    assert MODE_DIRECTIVES[Mode.SIMULATION] in messages[0]["content"]
    assert TONE_DIRECTIVES[Tone.FIELD] in messages[0]["content"]
    assert messages[1] == {"role": "user", "content": "Hello\n\n[Mode:quiz|Tone:field]"}
    assert messages[2] == {"role": "assistant", "content": "Hi, officer."}
    assert messages[3] == {"role": "user", "content": "What do I do at a traffic stop?"}


@pytest.mark.asyncio
async def test_chat_defaults_to_informational_training(client, make_gateway):
    upstream = ScriptedUpstream()
    _install(make_gateway, upstream)

    resp = await client.post("/chat", json={"userInput": "Explain CJIS."})

    assert resp.status_code == 200
    payload = upstream.payload()
    assert payload["temperature"] == 0.7
    assert MODE_DIRECTIVES[Mode.INFORMATIONAL] in payload["messages"][0]["content"]
    assert len(payload["messages"]) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        {},
        {"userInput": ""},
        {"userInput": 42},
        {"userInput": None},
        {"mode": "quiz"},
    ],
)
async def test_chat_missing_input(client, make_gateway, body):
    upstream = ScriptedUpstream()
    gateway = _install(make_gateway, upstream)

    resp = await client.post("/chat", json=body)

    assert resp.status_code == 400
    assert resp.text == MSG_INVALID_INPUT
    assert upstream.calls == 0
    assert gateway.throttle.get_stats()["total_acquired"] == 0


@pytest.mark.asyncio
async def test_chat_malformed_json(client, make_gateway):
    upstream = ScriptedUpstream()
    _install(make_gateway, upstream)

    resp = await client.post("/chat", content=b"{not json", headers={"Content-Type": "application/json"})

    assert resp.status_code == 400
    assert resp.text == MSG_INVALID_INPUT
    assert upstream.calls == 0


@pytest.mark.asyncio
async def test_chat_unknown_mode(client, make_gateway):
    upstream = ScriptedUpstream()
    _install(make_gateway, upstream)

    resp = await client.post("/chat", json={"userInput": "Hi", "mode": "interrogation"})

    assert resp.status_code == 400
    assert resp.text.startswith("mode must be one of")
    assert upstream.calls == 0


@pytest.mark.asyncio
async def test_chat_unknown_tone(client, make_gateway):
    upstream = ScriptedUpstream()
    _install(make_gateway, upstream)

    resp = await client.post("/chat", json={"userInput": "Hi", "tone": "casual"})

    assert resp.status_code == 400
    assert resp.text.startswith("tone must be one of")


@pytest.mark.asyncio
async def test_chat_missing_credential(client, make_gateway):
    upstream = ScriptedUpstream()
    _install(make_gateway, upstream, api_key="")

    resp = await client.post("/chat", json={"userInput": "Hi"})

    assert resp.status_code == 500
    assert resp.text == MSG_NOT_CONFIGURED
    assert upstream.calls == 0


@pytest.mark.asyncio
async def test_chat_upstream_rejected(client, make_gateway):
    upstream = ScriptedUpstream(openai_error("Incorrect API key provided", 401))
    _install(make_gateway, upstream)

    resp = await client.post("/chat", json={"userInput": "Hi"})

    assert resp.status_code == 401
    assert resp.text == "Incorrect API key provided"
    assert upstream.calls == 1


@pytest.mark.asyncio
async def test_chat_upstream_rejected_without_body(client, make_gateway):
    upstream = ScriptedUpstream(httpx.Response(503, text="<html>Service Unavailable</html>"))
    _install(make_gateway, upstream)

    resp = await client.post("/chat", json={"userInput": "Hi"})

    assert resp.status_code == 503
    assert "html" not in resp.text


@pytest.mark.asyncio
async def test_chat_rate_limit_exhausted(client, make_gateway, fake_clock):
    upstream = ScriptedUpstream(openai_error("Rate limit reached", 429))
    _install(make_gateway, upstream)

    resp = await client.post("/chat", json={"userInput": "Hi"})

    assert resp.status_code == 429
    assert resp.text == MSG_RETRIES_EXHAUSTED
    assert upstream.calls == 4
    assert fake_clock.sleeps == [0.5, 1.0, 1.5]


@pytest.mark.asyncio
async def test_chat_rate_limit_recovers(client, make_gateway):
    upstream = ScriptedUpstream(
        openai_error("Rate limit reached", 429),
        httpx.Response(200, json=openai_completion("Recovered")),
    )
    _install(make_gateway, upstream)

    resp = await client.post("/chat", json={"userInput": "Hi"})

    assert resp.status_code == 200
    assert resp.json()["content"] == "Recovered"
    assert upstream.calls == 2


@pytest.mark.asyncio
async def test_chat_upstream_timeout(client, make_gateway):
    upstream = ScriptedUpstream(httpx.ReadTimeout("timed out"))
    _install(make_gateway, upstream)

    resp = await client.post("/chat", json={"userInput": "Hi"})

    assert resp.status_code == 500
    assert resp.text == MSG_UNREACHABLE
    assert upstream.calls == 1


@pytest.mark.asyncio
async def test_chat_admission_cap(client, make_gateway, monkeypatch):
    monkeypatch.setattr(settings, "chat_rate_limit", "2/minute")
    upstream = ScriptedUpstream()
    _install(make_gateway, upstream)

    first = await client.post("/chat", json={"userInput": "one"})
    second = await client.post("/chat", json={"userInput": "two"})
    third = await client.post("/chat", json={"userInput": "three"})

    assert first.status_code == 200
    assert second.status_code == 200
    assert third.status_code == 429
    assert third.text == MSG_ADMISSION_CAP
    assert upstream.calls == 2


@pytest.mark.asyncio
async def test_chat_oversized_body(client, make_gateway):
    upstream = ScriptedUpstream()
    _install(make_gateway, upstream)

    body = b'{"userInput": "' + b"x" * settings.max_request_bytes + b'"}'
    resp = await client.post("/chat", content=body, headers={"Content-Type": "application/json"})

    assert resp.status_code == 413
    assert upstream.calls == 0


async def _chunks(*parts: bytes):
    for part in parts:
        yield part


@pytest.mark.asyncio
async def test_chat_oversized_chunked_body(client, make_gateway):
    upstream = ScriptedUpstream()
    _install(make_gateway, upstream)

    filler = b"x" * (settings.max_request_bytes // 2)
    body = _chunks(b'{"userInput": "', filler, filler, b'"}')
    resp = await client.post("/chat", content=body, headers={"Content-Type": "application/json"})

    assert resp.status_code == 413
    assert upstream.calls == 0


@pytest.mark.asyncio
async def test_chat_small_chunked_body_passes(client, make_gateway):
    upstream = ScriptedUpstream(httpx.Response(200, json=openai_completion("Chunked ok")))
    _install(make_gateway, upstream)

    body = _chunks(b'{"userInput": ', b'"Hello over chunks"}')
    resp = await client.post("/chat", content=body, headers={"Content-Type": "application/json"})

    assert resp.status_code == 200
    assert resp.json() == {"content": "Chunked ok"}
    assert upstream.payload()["messages"][-1]["content"] == "Hello over chunks"


@pytest.mark.asyncio
async def test_chat_admission_cap_window_slides(client, make_gateway, monkeypatch):
    monkeypatch.setattr(settings, "chat_rate_limit", "2/minute")
    now = [1_700_000_000.0]
    monkeypatch.setattr(time, "time", lambda: now[0])
    upstream = ScriptedUpstream()
    _install(make_gateway, upstream)

    async def post_at(offset: float) -> int:
        now[0] = 1_700_000_000.0 + offset
        resp = await client.post("/chat", json={"userInput": f"at {offset}"})
        return resp.status_code

    assert await post_at(0) == 200
    assert await post_at(30) == 200
    assert await post_at(59) == 429
    # The first request has left the window; the one at 30s has not
    assert await post_at(61) == 200
    assert await post_at(62) == 429
    assert await post_at(91) == 200
    assert upstream.calls == 4


@pytest.mark.asyncio
async def test_root(client):
    resp = await client.get("/")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "message": "TEXAI backend is running."}


@pytest.mark.asyncio
async def test_health(client, make_gateway):
    _install(make_gateway, ScriptedUpstream())

    resp = await client.get("/health")

    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert data["upstream_configured"] is True
    assert data["throttle"]["total_acquired"] == 0


@pytest.mark.asyncio
async def test_metrics(client, make_gateway):
    _install(make_gateway, ScriptedUpstream())
    await client.post("/chat", json={"userInput": "Hi"})

    resp = await client.get("/metrics")

    assert resp.status_code == 200
    assert "upstream_calls_total" in resp.text
    assert "http_requests_total" in resp.text
