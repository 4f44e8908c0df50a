from __future__ import annotations

from urllib.parse import quote

from fastapi.testclient import TestClient

from writingresearch.identity import pair_room_id, solo_room_id
from writingresearch.storage import StorageError


def _path(session_key: str, suffix: str = "") -> str:
    return f"/api/session/{quote(session_key, safe='')}{suffix}"


def _start(client: TestClient, group: str, participant_id: str, name: str) -> dict:
    response = client.post(
        "/api/session/start",
        json={"group": group, "participant_id": participant_id, "participant_name": name},
    )
    assert response.status_code == 200
    return response.json()


def test_start_session_returns_composed_view(client: TestClient) -> None:
    view = _start(client, "a", "S1", "Kim")

    assert view["session_key"] == "A|S1"
    assert view["group"] == "A"
    assert view["participant"] == {"id": "S1", "name": "Kim"}
    assert view["room_id"] == solo_room_id("A", "S1")
    assert view["stage"] == 1
    assert view["prewriting"] == {"text": "", "timestamp": 0}
    assert view["steps"]["peer"]["enabled"] is True
    assert view["ai_session_id"] == "ai:A|S1"
    assert view["peer_session_id"] == f"peer:{view['room_id']}"
    assert view["partner"] is None
    assert view["presence"]["self"]["online"] is False
    assert "partner_participant_id" not in view


def test_start_session_requires_all_fields(client: TestClient) -> None:
    response = client.post("/api/session/start", json={"group": "A", "participant_id": "S1"})
    assert response.status_code == 422


def test_full_peer_group_workflow(client: TestClient) -> None:
    _start(client, "A", "S1", "Kim")

    response = client.post(_path("A|S1", "/advance-final"))
    assert response.status_code == 409
    assert response.json()["missing"] == "draft"

    response = client.post(_path("A|S1", "/prewriting"), json={"text": "ideas about rivers"})
    assert response.status_code == 200
    assert response.json()["stage"] == 2
    assert response.json()["steps"]["prewriting"]["completed"] is True

    response = client.post(_path("A|S1", "/prewriting"), json={"text": "changed my mind"})
    assert response.status_code == 409
    assert response.json()["error"] == "conflict"

    response = client.post(_path("A|S1", "/advance"))
    assert response.status_code == 409
    assert response.json()["missing"] == "draft"

    assert client.post(_path("A|S1", "/draft"), json={"text": "Rivers shape cities."}).status_code == 200
    response = client.post(_path("A|S1", "/advance"))
    assert response.json()["stage"] == 3

    response = client.post(_path("A|S1", "/advance-final"))
    assert response.status_code == 409
    assert response.json()["missing"] == "notes"

    assert client.post(_path("A|S1", "/notes"), json={"text": "Partner liked the intro."}).status_code == 200
    response = client.post(_path("A|S1", "/advance-final"))
    assert response.json()["stage"] == 4

    response = client.post(_path("A|S1", "/final"), json={"text": "Rivers shape cities and people."})
    assert response.status_code == 200
    assert response.json()["final"]["text"] == "Rivers shape cities and people."

    response = client.post(_path("A|S1", "/regress"))
    assert response.json()["stage"] == 3

    fetched = client.get(_path("A|S1")).json()
    assert fetched["stage"] == 3
    assert fetched["draft"]["text"] == "Rivers shape cities."


def test_group_without_peer_stage_skips_notes(client: TestClient) -> None:
    view = _start(client, "C", "S1", "Kim")
    assert view["steps"]["peer"]["enabled"] is False
    assert view["peer_session_id"] == ""

    client.post(_path("C|S1", "/prewriting"), json={"text": "ideas"})
    client.post(_path("C|S1", "/draft"), json={"text": "draft"})
    response = client.post(_path("C|S1", "/advance"))
    assert response.json()["stage"] == 4

    response = client.post(_path("C|S1", "/jump"), json={"stage": 3})
    assert response.status_code == 400

    response = client.post(_path("C|S1", "/regress"))
    assert response.json()["stage"] == 2


def test_jump_clamps_and_rejects_headroom_stage(client: TestClient) -> None:
    _start(client, "A", "S1", "Kim")
    client.post(_path("A|S1", "/prewriting"), json={"text": "ideas"})

    response = client.post(_path("A|S1", "/jump"), json={"stage": 9})
    assert response.status_code == 400
    assert client.get(_path("A|S1")).json()["stage"] == 2

    response = client.post(_path("A|S1", "/jump"), json={"stage": None})
    assert response.status_code == 200
    assert response.json()["stage"] == 1

    response = client.post(_path("A|S1", "/jump"), json={"stage": 2})
    assert response.json()["stage"] == 2

    response = client.post(_path("A|S1", "/jump"), json={"stage": 3})
    assert response.status_code == 409
    assert response.json()["missing"] == "draft"


def test_blank_text_is_rejected(client: TestClient) -> None:
    _start(client, "A", "S1", "Kim")
    assert client.post(_path("A|S1", "/draft"), json={"text": ""}).status_code == 422
    assert client.post(_path("A|S1", "/draft"), json={"text": "   "}).status_code == 400


def test_unknown_session_returns_404(client: TestClient) -> None:
    assert client.get(_path("A|nobody")).status_code == 404
    assert client.post(_path("A|nobody", "/draft"), json={"text": "x"}).status_code == 404
    assert client.post(_path("A|nobody", "/presence/touch")).status_code == 404
    response = client.post(_path("A|nobody", "/presence/leave"))
    assert response.status_code == 200
    assert response.json() == {"ok": True}


def test_paired_participants_see_each_other(client: TestClient) -> None:
    client.app.state.service.roster.replace(
        {"pairings": [{"primary": {"id": "S1", "name": "Kim"}, "partner": {"id": "S2", "name": "Lee"}}]}
    )
    first = _start(client, "A", "S1", "Kim")
    second = _start(client, "A", "S2", "Lee")
    assert first["room_id"] == second["room_id"] == pair_room_id("A|S1", "A|S2")

    client.post(_path("A|S2", "/prewriting"), json={"text": "lee ideas"})
    assert client.post(_path("A|S2", "/presence/touch")).json()["ok"] is True

    view = client.get(_path("A|S1")).json()
    assert view["partner"]["id"] == "S2"
    assert view["partner"]["name"] == "Lee"
    assert view["partner"]["stage"] == 2
    assert view["partner"]["prewriting"]["text"] == "lee ideas"
    assert view["partner"]["presence"]["online"] is True
    assert view["presence"]["self"]["online"] is False

    client.post(_path("A|S2", "/presence/leave"))
    assert client.get(_path("A|S1")).json()["partner"]["presence"]["online"] is False


def test_chat_send_and_list(client: TestClient) -> None:
    view = _start(client, "A", "S1", "Kim")
    conversation = view["ai_session_id"]

    response = client.post(
        "/api/chat/ai/send",
        json={"session_id": conversation, "text": "How should I start?", "user_id": "S1", "user_name": "Kim"},
    )
    assert response.status_code == 200
    assert response.json()["ok"] is True
    sent_at = response.json()["ts"]

    messages = client.get("/api/chat/ai/messages", params={"session_id": conversation}).json()
    assert [item["text"] for item in messages] == ["How should I start?"]
    assert messages[0]["sender_id"] == "S1"

    later = client.get("/api/chat/ai/messages", params={"session_id": conversation, "since": sent_at}).json()
    assert later == []

    assert client.post("/api/chat/sms/send", json={"session_id": conversation, "text": "hi"}).status_code == 400
    assert client.get("/api/chat/ai/messages").status_code == 422


def test_storage_failures_map_to_503(client: TestClient, monkeypatch) -> None:
    _start(client, "A", "S1", "Kim")
    backend = client.app.state.service.backend

    def failing_write(key: str, value: object) -> None:
        raise StorageError("disk full")

    monkeypatch.setattr(backend, "write", failing_write)
    response = client.post(_path("A|S1", "/draft"), json={"text": "draft"})
    assert response.status_code == 503
    assert response.json()["error"] == "storage_error"


def test_api_key_is_enforced_when_configured(client: TestClient, monkeypatch) -> None:
    monkeypatch.setattr(client.app.state.settings, "api_key", "participant-key")
    payload = {"group": "A", "participant_id": "S1", "participant_name": "Kim"}

    assert client.post("/api/session/start", json=payload).status_code == 401
    response = client.post("/api/session/start", json=payload, headers={"X-API-Key": "participant-key"})
    assert response.status_code == 200
