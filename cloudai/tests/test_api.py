"""Tests for the Flask relay endpoint: validation responses, SSE streaming, health."""

import json
from unittest.mock import MagicMock

import httpx
import pytest

from cloudai.api import app as app_module
from cloudai.config.loader import Config
from cloudai.relay.connector import UpstreamConnector


def _upstream_ok(request):
    body = (
        'data: {"choices":[{"delta":{"content":"Hi"}}]}\n\n'
        'data: {"choices":[{"delta":{"content":" there"}}]}\n\n'
        "data: [DONE]\n\n"
    )
    return httpx.Response(200, content=body.encode("utf-8"))


@pytest.fixture
def config(monkeypatch):
    cfg = Config.load()
    cfg.provider.api_key = "sk-test"
    monkeypatch.setattr(app_module, "get_config", lambda: cfg)
    return cfg


@pytest.fixture
def upstream_calls(monkeypatch, config):
    calls = []

    def handler(request):
        calls.append(json.loads(request.content))
        return _upstream_ok(request)

    def connector(cfg):
        return UpstreamConnector.from_config(cfg, transport=httpx.MockTransport(handler))

    monkeypatch.setattr(app_module, "get_connector", connector)
    return calls


@pytest.fixture
def client():
    app_module.app.config["TESTING"] = True
    return app_module.app.test_client()


def test_missing_prompt_is_400(client, config):
    r = client.get("/api/cloud-ai-stream")
    assert r.status_code == 400
    assert r.get_json() == {"error": "missing prompt"}


def test_blocked_prompt_is_400_and_never_connects(client, config, monkeypatch):
    get_connector = MagicMock()
    monkeypatch.setattr(app_module, "get_connector", get_connector)
    r = client.get("/api/cloud-ai-stream", query_string={"prompt": "how to ddos a site"})
    assert r.status_code == 400
    assert r.get_json() == {"error": "disallowed content"}
    get_connector.assert_not_called()


def test_invalid_temperature_is_400(client, config):
    r = client.get("/api/cloud-ai-stream", query_string={"prompt": "Hi", "temperature": "hot"})
    assert r.status_code == 400
    assert r.get_json()["error"] == "invalid temperature"


def test_missing_key_is_500(client, config):
    config.provider.api_key = ""
    r = client.get("/api/cloud-ai-stream", query_string={"prompt": "Hi"})
    assert r.status_code == 500
    assert "API key" in r.get_json()["error"]


def test_stream_get(client, upstream_calls):
    r = client.get("/api/cloud-ai-stream", query_string={"prompt": "Hello"})
    assert r.status_code == 200
    assert r.mimetype == "text/event-stream"
    assert r.headers["Cache-Control"] == "no-cache, no-transform"
    assert r.headers["X-Accel-Buffering"] == "no"
    assert r.headers["Access-Control-Allow-Origin"] == "*"
    assert r.get_data(as_text=True) == (
        ": connected\n\n"
        'data: {"chunk": "Hi"}\n\n'
        'data: {"chunk": " there"}\n\n'
        'event: done\ndata: {"done": true}\n\n'
    )
    assert upstream_calls[0]["messages"][-1] == {"role": "user", "content": "Hello"}
    assert upstream_calls[0]["model"] == "gpt-4o"
    assert upstream_calls[0]["temperature"] == 0.2


def test_stream_post_json_body(client, upstream_calls):
    r = client.post(
        "/api/cloud-ai-stream",
        json={"prompt": "Hello", "model": "gpt-4o-mini", "temperature": 0.9, "sophistication": "low"},
    )
    assert r.status_code == 200
    assert 'event: done' in r.get_data(as_text=True)
    assert upstream_calls[0]["model"] == "gpt-4o-mini"
    assert upstream_calls[0]["temperature"] == 0.9


def test_query_string_overrides_body(client, upstream_calls):
    r = client.post(
        "/api/cloud-ai-stream?model=from-query",
        json={"prompt": "Hello", "model": "from-body"},
    )
    r.get_data()
    assert upstream_calls[0]["model"] == "from-query"


def test_upstream_failure_arrives_as_error_frame(client, config, monkeypatch):
    def handler(request):
        return httpx.Response(503, text="overloaded")

    monkeypatch.setattr(
        app_module,
        "get_connector",
        lambda cfg: UpstreamConnector.from_config(cfg, transport=httpx.MockTransport(handler)),
    )
    r = client.get("/api/cloud-ai-stream", query_string={"prompt": "Hello"})
    assert r.status_code == 200
    frames = r.get_data(as_text=True).split("\n\n")
    assert json.loads(frames[1][len("data: ") :]) == {
        "error": "Upstream error (503)",
        "details": "overloaded",
    }


def test_configured_cors_origin(client, upstream_calls, config):
    config.server.cors_origin = "http://localhost:5173"
    r = client.get("/api/cloud-ai-stream", query_string={"prompt": "Hello"})
    assert r.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"


def test_unsupported_method(client, config):
    assert client.put("/api/cloud-ai-stream").status_code == 405


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.get_json() == {"ok": True}
