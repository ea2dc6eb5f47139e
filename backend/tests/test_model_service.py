"""Tests for the model caller: mock mode, sentinels and the HTTP path."""

import json
import random

import httpx
import pytest

from model_service import (
    MOCK_RESPONSES,
    ModelConfig,
    ModelService,
    _model_error,
    is_model_error,
    parse_model_error,
)

_REAL_ASYNC_CLIENT = httpx.AsyncClient


def _service(tmp_path, **config):
    svc = ModelService(ModelConfig(**config), rng=random.Random(5))
    svc.call_log_path = str(tmp_path / "calls.txt")
    return svc


def _route_http(monkeypatch, handler):
    def factory(*args, **kwargs):
        kwargs["transport"] = httpx.MockTransport(handler)
        return _REAL_ASYNC_CLIENT(*args, **kwargs)

    monkeypatch.setattr(httpx, "AsyncClient", factory)


class TestSentinels:
    def test_round_trip(self):
        raw = _model_error("http_error", "http=500")
        assert is_model_error(raw)
        assert parse_model_error(raw) == {"type": "http_error", "detail": "http=500"}

    def test_plain_text_is_not_an_error(self):
        assert not is_model_error("Fine.")
        assert not is_model_error(None)
        assert parse_model_error("Fine.") == {}


class TestMockMode:
    @pytest.mark.asyncio
    async def test_no_key_returns_canned_reply(self, tmp_path):
        svc = _service(tmp_path, api_key=None)
        assert svc.is_mock
        reply = await svc.complete([{"role": "user", "content": "hi"}], "prompt")
        assert reply in MOCK_RESPONSES
        assert "status=mock" in (tmp_path / "calls.txt").read_text(encoding="utf-8")


class TestHttpPath:
    @pytest.mark.asyncio
    async def test_success(self, tmp_path, monkeypatch):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"choices": [{"message": {"content": "  Sure.  "}}]})

        _route_http(monkeypatch, handler)
        svc = _service(tmp_path, api_key="k-test", model_name="base-model")
        reply = await svc.complete([{"role": "user", "content": "hi"}], "system text", model_name="override")

        assert reply == "Sure."
        assert seen["auth"] == "Bearer k-test"
        assert seen["body"]["model"] == "override"
        assert seen["body"]["messages"][0] == {"role": "system", "content": "system text"}
        assert "status=ok" in (tmp_path / "calls.txt").read_text(encoding="utf-8")

    @pytest.mark.asyncio
    async def test_http_error_status(self, tmp_path, monkeypatch):
        _route_http(monkeypatch, lambda request: httpx.Response(503, json={}))
        reply = await _service(tmp_path, api_key="k").complete([], "p")
        assert parse_model_error(reply)["type"] == "http_error"

    @pytest.mark.asyncio
    async def test_timeout(self, tmp_path, monkeypatch):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        _route_http(monkeypatch, handler)
        reply = await _service(tmp_path, api_key="k").complete([], "p")
        assert parse_model_error(reply)["type"] == "timeout"

    @pytest.mark.asyncio
    async def test_network_error(self, tmp_path, monkeypatch):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        _route_http(monkeypatch, handler)
        reply = await _service(tmp_path, api_key="k").complete([], "p")
        assert parse_model_error(reply)["type"] == "network"

    @pytest.mark.asyncio
    async def test_empty_content(self, tmp_path, monkeypatch):
        _route_http(monkeypatch, lambda request: httpx.Response(200, json={"choices": [{"message": {"content": ""}}]}))
        reply = await _service(tmp_path, api_key="k").complete([], "p")
        assert parse_model_error(reply)["type"] == "empty"

    @pytest.mark.asyncio
    async def test_bad_json(self, tmp_path, monkeypatch):
        _route_http(monkeypatch, lambda request: httpx.Response(200, content=b"<html>"))
        reply = await _service(tmp_path, api_key="k").complete([], "p")
        assert parse_model_error(reply)["type"] == "bad_response"
