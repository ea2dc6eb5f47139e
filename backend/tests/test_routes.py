"""HTTP tests: auth, chat envelope, settings, memories and diagnostics."""

import json
import random
import uuid

import pytest
from fastapi.testclient import TestClient

from main import app, configure_state
from model_service import ModelConfig, ModelService
from policy import greeting_pool
from telemetry import DecisionRecorder
from voice_modes import VoiceMode


@pytest.fixture
def client(tmp_path):
    configure_state(
        app,
        recorder=DecisionRecorder(log_path=tmp_path / "gate-decisions.jsonl", durable=True),
        model_service=ModelService(ModelConfig(api_key=None), rng=random.Random(3)),
        rng=random.Random(3),
    )
    app.state.model_service.call_log_path = str(tmp_path / "calls.txt")
    with TestClient(app) as c:
        yield c


@pytest.fixture
def auth(client):
    res = client.post("/api/users/register", json={"username": f"user-{uuid.uuid4().hex[:10]}"})
    assert res.status_code == 201
    return {"Authorization": f"Bearer {res.json()['access_token']}"}


def _chat(client, auth, text, conversation_id="conv-1", **extra):
    body = {"messages": [{"role": "user", "content": text}], "conversationId": conversation_id, **extra}
    return client.post("/api/chat/completions", json=body, headers=auth)


class TestUsers:
    def test_register_login_me(self, client):
        name = f"nova-{uuid.uuid4().hex[:8]}"
        assert client.post("/api/users/register", json={"username": name}).status_code == 201
        assert client.post("/api/users/register", json={"username": name}).status_code == 400

        login = client.post("/api/users/login", json={"username": name})
        assert login.status_code == 200
        token = login.json()["access_token"]

        me = client.get("/api/users/me", headers={"Authorization": f"Bearer {token}"})
        assert me.json()["username"] == name

    def test_unknown_login(self, client):
        assert client.post("/api/users/login", json={"username": "ghost-" + uuid.uuid4().hex}).status_code == 401

    def test_bad_token(self, client):
        res = client.get("/api/users/me", headers={"Authorization": "Bearer not-a-token"})
        assert res.status_code == 401


class TestChat:
    def test_requires_auth(self, client):
        res = client.post("/api/chat/completions", json={"messages": [{"role": "user", "content": "hey"}]})
        assert res.status_code in (401, 403)

    def test_greeting_envelope(self, client, auth):
        res = _chat(client, auth, "hey")
        assert res.status_code == 200
        assert "charset=utf-8" in res.headers["content-type"]
        body = res.json()
        assert body["mock"] is True
        assert body["voiceEngine"] == {"shortCircuited": True, "rewritten": False, "mode": "quiet"}
        assert body["choices"][0]["message"]["role"] == "assistant"
        assert body["choices"][0]["message"]["content"] in greeting_pool(VoiceMode.QUIET)

    def test_model_path_in_mock_mode(self, client, auth):
        body = _chat(client, auth, "tell me a story").json()
        assert body["voiceEngine"]["shortCircuited"] is False
        content = body["choices"][0]["message"]["content"]
        assert content
        assert "thoughtful observation" not in content.lower()

    @pytest.mark.parametrize(
        "payload",
        [
            {"messages": []},
            {"messages": [{"role": "user"}]},
            {"messages": [{"role": "wizard", "content": "hi"}]},
            {"conversationId": "x"},
            [],
        ],
    )
    def test_invalid_body(self, client, auth, payload):
        res = client.post("/api/chat/completions", json=payload, headers=auth)
        assert res.status_code == 400
        assert res.json()["error"] == "Invalid request"

    def test_non_json_body(self, client, auth):
        res = client.post(
            "/api/chat/completions",
            content=b"not json",
            headers={**auth, "Content-Type": "application/json"},
        )
        assert res.status_code == 400

    def test_engaged_mode_greeting_asks(self, client, auth):
        assert client.patch("/api/settings", json={"voice_mode": "engaged"}, headers=auth).status_code == 200
        body = _chat(client, auth, "hey").json()
        assert body["voiceEngine"]["mode"] == "engaged"
        assert "?" in body["choices"][0]["message"]["content"]


class TestSettingsAndMemories:
    def test_settings_defaults_and_update(self, client, auth):
        settings = client.get("/api/settings", headers=auth).json()
        assert settings["voice_mode"] == "quiet"
        assert settings["allow_memory_references"] is False

        updated = client.patch(
            "/api/settings",
            json={"voice_mode": "mythic", "allow_memory_references": True, "system_prompt": "  Be brief.  "},
            headers=auth,
        ).json()
        assert updated["voice_mode"] == "mythic"
        assert updated["allow_memory_references"] is True
        assert updated["system_prompt"] == "Be brief."

    def test_unknown_voice_mode_rejected(self, client, auth):
        assert client.patch("/api/settings", json={"voice_mode": "loud"}, headers=auth).status_code == 422

    def test_voice_modes_listed(self, client):
        assert client.get("/api/settings/voice-modes").json()["voice_modes"] == ["quiet", "engaged", "mythic", "blunt"]

    def test_memory_crud(self, client, auth):
        created = client.post("/api/memories", json={"content": "Moving house in May", "tags": ["Home "]}, headers=auth)
        assert created.status_code == 201
        memory = created.json()
        assert memory["tags"] == ["home"]

        listed = client.get("/api/memories", headers=auth).json()
        assert [m["id"] for m in listed] == [memory["id"]]

        assert client.delete(f"/api/memories/{memory['id']}", headers=auth).status_code == 200
        assert client.delete(f"/api/memories/{memory['id']}", headers=auth).status_code == 404
        assert client.get("/api/memories", headers=auth).json() == []

    def test_memories_are_private(self, client, auth):
        client.post("/api/memories", json={"content": "mine"}, headers=auth)
        other = client.post("/api/users/register", json={"username": f"other-{uuid.uuid4().hex[:8]}"}).json()
        other_auth = {"Authorization": f"Bearer {other['access_token']}"}
        assert client.get("/api/memories", headers=other_auth).json() == []

    def test_continuity_only_after_opt_in(self, client, auth):
        client.post("/api/memories", json={"content": "Stressed about moving house"}, headers=auth)

        plain = _chat(client, auth, "I'm so stressed about work today", conversation_id="a").json()
        assert not plain["choices"][0]["message"]["content"].startswith("You mentioned")

        client.patch("/api/settings", json={"allow_memory_references": True}, headers=auth)
        linked = _chat(client, auth, "I'm so stressed about work today", conversation_id="b").json()
        assert linked["choices"][0]["message"]["content"].startswith("You mentioned stressed about moving house before.")

        last = client.get("/api/diagnostics", headers=auth).json()["decisionLog"]["last"]
        assert last["stage"] == "reflection"
        assert last["memoryReadCount"] == 1
        assert last["continuity"] is True


class TestDiagnostics:
    def test_policy_and_no_content_leak(self, client, auth):
        secret = "pineapple-" + uuid.uuid4().hex[:6]
        _chat(client, auth, f"my code word is {secret} ok so")
        _chat(client, auth, "I'm so stressed about work today")

        res = client.get("/api/diagnostics", headers=auth)
        assert res.status_code == 200
        body = res.json()
        assert body["ok"] is True
        assert body["uptimeSec"] >= 0
        assert body["build"]["version"] == app.version
        assert body["policy"]["noHiddenBackgroundCognition"] is True
        assert body["policy"]["reflection"]["mode"] == "user-invoked-only"
        assert body["policy"]["memory"]["mode"] == "opt-in-only"
        assert body["policy"]["artifacts"]["mode"] == "off"
        assert body["policy"]["gateOrder"][-1] == "model_call"
        assert body["decisionLog"]["count"] == 2
        assert body["decisionLog"]["file"] == "gate-decisions.jsonl"
        assert [c["kind"] for c in body["cooldowns"]] == ["reflection"]

        dumped = json.dumps(body).lower()
        assert secret not in dumped
        assert "stressed about work" not in dumped
        assert "you are nova" not in dumped

    def test_decisions_list_summary_and_clear(self, client, auth):
        for text in ("...", "hey", "tell me a story"):
            _chat(client, auth, text)

        decisions = client.get("/api/diagnostics/decisions?limit=2", headers=auth).json()["decisions"]
        assert [d["stage"] for d in decisions] == ["greeting", "model_call"]
        assert decisions[-1]["modelCallCount"] == 1

        summary = client.get("/api/diagnostics/decisions/summary?hours=1", headers=auth).json()
        assert summary["total"] == 3
        assert summary["stage_counts"]["ellipsis"] == 1

        assert client.delete("/api/diagnostics/decisions", headers=auth).json()["cleared"] is True
        assert client.get("/api/diagnostics/decisions", headers=auth).json()["decisions"] == []
        assert client.get("/api/diagnostics/decisions/summary", headers=auth).json()["total"] == 0

    def test_decisions_are_per_user(self, client, auth):
        _chat(client, auth, "hey")
        other = client.post("/api/users/register", json={"username": f"other-{uuid.uuid4().hex[:8]}"}).json()
        other_auth = {"Authorization": f"Bearer {other['access_token']}"}
        assert client.get("/api/diagnostics/decisions", headers=other_auth).json()["decisions"] == []
