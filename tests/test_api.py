from fastapi.testclient import TestClient

from app.main import app
from island_fleet import storage
from tests.utils import CANNONS, LAND, SHIPS, _room, _use_file_store


def _client(monkeypatch, tmp_path):
    _use_file_store(monkeypatch, tmp_path)
    storage.save_room(_room(2))
    return TestClient(app)


def _setup_body(user_id):
    return {"userId": user_id, "ships": SHIPS, "land": LAND, "cannons": CANNONS}


def test_healthz():
    with TestClient(app) as client:
        assert client.get("/healthz").json() == {"status": "ok"}
        assert client.get("/").json() == {"status": "running"}
        assert client.head("/").status_code == 200


def test_unknown_room(monkeypatch, tmp_path):
    with _client(monkeypatch, tmp_path) as client:
        response = client.get("/rooms/NOPE/state", params={"user_id": "u1"})
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "no_room"
        # room exists but nothing was started yet
        assert client.get("/rooms/ROOM1/state", params={"user_id": "u1"}).status_code == 404


def test_match_over_http(monkeypatch, tmp_path):
    with _client(monkeypatch, tmp_path) as client:
        response = client.post("/rooms/ROOM1/start", json={"userId": "u1"})
        assert response.status_code == 200
        assert response.json()["view"] == "setup"

        body = client.post("/rooms/ROOM1/setup", json=_setup_body("u1")).json()
        assert body["view"] == "setup"
        body = client.post("/rooms/ROOM1/setup", json=_setup_body("u2")).json()
        assert body["view"] == "battle"
        assert body["state"]["phase"] == "battle"

        state = client.get("/rooms/ROOM1/state", params={"user_id": "u1"}).json()
        assert state["isMyTurn"] is True
        assert state["playerId"] == 1

        response = client.post(
            "/rooms/ROOM1/attack", json={"userId": "u1", "targetId": 2, "position": "A1"}
        )
        assert response.status_code == 200
        assert response.json()["outcome"]["type"] == "hit"
        assert response.json()["outcome"]["message"] == "hit (ship)"

        response = client.post(
            "/rooms/ROOM1/attack", json={"userId": "u2", "targetId": 1, "position": "A1"}
        )
        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "not_your_turn"

        assert client.post("/rooms/ROOM1/end-turn", json={"userId": "u1"}).status_code == 200
        state = client.get("/rooms/ROOM1/state", params={"user_id": "u2"}).json()
        assert state["isMyTurn"] is True
        assert state["state"]["currentTurnUserId"] == "u2"


def test_invalid_layout_is_rejected(monkeypatch, tmp_path):
    with _client(monkeypatch, tmp_path) as client:
        client.post("/rooms/ROOM1/start", json={"userId": "u1"})
        body = _setup_body("u1")
        body["cannons"] = ["H8"]
        response = client.post("/rooms/ROOM1/setup", json=body)
        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "invalid"


def test_storage_failure_maps_to_503(monkeypatch):
    def broken(room_id):
        raise storage.StorageError("store offline")

    monkeypatch.setattr(storage, "get_room", broken)
    with TestClient(app) as client:
        response = client.get("/rooms/ROOM1/state", params={"user_id": "u1"})
    assert response.status_code == 503
    assert response.json() == {"error": "store offline", "code": "storage"}
