import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from app import app
from backend import InMemoryBackend
from exceptions import StoreError
from routers.rooms import get_store
from schemas.rooms import RoomStateUpdate


@pytest.fixture
def store():
    return InMemoryBackend()


@pytest.fixture
def client(store):
    app.dependency_overrides[get_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def room(client):
    response = client.post("/rooms/", json={"media_url": "https://www.youtube.com/watch?v=LXb3EKWsInQ"})
    assert response.status_code == 201
    return response.json()


def test_create_room(room):
    assert room["state"]["videoId"] == "LXb3EKWsInQ"
    assert room["state"]["isPlaying"] is False
    assert room["state"]["hostId"] == room["host_id"]
    assert room["room_url"].endswith(f"/room/{room['room_id']}")
    assert room["ws_url"].startswith("ws://")


def test_create_room_with_empty_media_uses_demo_video(client):
    response = client.post("/rooms/", json={})
    assert response.status_code == 201
    assert response.json()["state"]["videoId"] == "LXb3EKWsInQ"


def test_create_room_rejects_invalid_media(client, store):
    response = client.post("/rooms/", json={"media_url": "https://vimeo.com/12345"})
    assert response.status_code == 400
    assert store._rooms == {}


def test_join_resolves_role(client, room):
    as_host = client.post(f"/rooms/{room['room_id']}/join", json={"participant_id": room["host_id"]})
    as_listener = client.post(f"/rooms/{room['room_id']}/join", json={})
    assert as_host.json()["role"] == "host"
    assert as_listener.json()["role"] == "listener"
    assert as_listener.json()["state"]["roomId"] == room["room_id"]


def test_join_missing_room(client):
    response = client.post("/rooms/nope/join", json={})
    assert response.status_code == 404


def test_host_update_then_details(client, room):
    response = client.patch(f"/rooms/{room['room_id']}/state",
                            json={"host_id": room["host_id"], "is_playing": True, "timestamp": 42})
    assert response.status_code == 200
    assert response.json()["isPlaying"] is True
    assert response.json()["timestamp"] == 42

    details = client.get(f"/rooms/{room['room_id']}").json()
    assert details["state"]["timestamp"] == 42
    assert details["position"] >= 42


def test_non_host_update_is_forbidden(client, room, store):
    response = client.patch(f"/rooms/{room['room_id']}/state", json={"host_id": "someone", "timestamp": 5})
    assert response.status_code == 403
    assert store.read(room["room_id"]).timestamp == 0


def test_empty_update_is_rejected(client, room):
    response = client.patch(f"/rooms/{room['room_id']}/state", json={"host_id": room["host_id"]})
    assert response.status_code == 422


def test_store_failure_maps_to_503(client, room, store, monkeypatch):
    def broken(*args, **kwargs):
        raise StoreError("redis down")

    monkeypatch.setattr(store, "merge", broken)
    response = client.patch(f"/rooms/{room['room_id']}/state", json={"host_id": room["host_id"], "timestamp": 1})
    assert response.status_code == 503


def test_details_missing_room(client):
    assert client.get("/rooms/nope").status_code == 404


def test_websocket_pushes_state_changes(client, room):
    with client.websocket_connect(f"/rooms/{room['room_id']}/ws") as ws:
        first = ws.receive_json()
        assert first["type"] == "state"
        assert first["state"]["roomId"] == room["room_id"]

        client.patch(f"/rooms/{room['room_id']}/state", json={"host_id": room["host_id"], "is_playing": True})
        update = ws.receive_json()
        assert update["state"]["isPlaying"] is True


def test_websocket_rejects_missing_room(client):
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/rooms/nope/ws") as ws:
            ws.receive_json()


def test_websocket_delivers_write_landing_during_connect(client, store, room, monkeypatch):
    read = store.read

    def read_then_write(room_id):
        snapshot = read(room_id)
        # a host write lands after the snapshot was taken but before the first push
        store.merge(room_id, RoomStateUpdate(is_playing=True, timestamp=12))
        return snapshot

    monkeypatch.setattr(store, "read", read_then_write)
    with client.websocket_connect(f"/rooms/{room['room_id']}/ws") as ws:
        first = ws.receive_json()
    assert first["state"]["isPlaying"] is True
    assert first["state"]["timestamp"] == 12


def test_websocket_rejection_releases_subscription(client, store):
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/rooms/nope/ws") as ws:
            ws.receive_json()
    assert store._subscribers == {}
