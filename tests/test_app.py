"""Integration tests for the HTTP routes and the signaling WebSocket."""

import json
from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from duet.main import app, coordinator, settings


@pytest.fixture(scope="module")
def client() -> Iterator[TestClient]:
    with TestClient(app) as c:
        yield c


def join(ws, room_id: str, name: str, avatar: str = "") -> dict:
    ws.send_json({"type": "join-room", "roomId": room_id, "userName": name, "avatar": avatar})
    return ws.receive_json()


def test_health(client: TestClient) -> None:
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_create_room_returns_link(client: TestClient) -> None:
    body = client.get("/api/create-room").json()

    assert body["roomId"]
    assert body["link"] == f"/room/{body['roomId']}"
    assert body["roomId"] != client.get("/api/create-room").json()["roomId"]


def test_unknown_room_is_404(client: TestClient) -> None:
    assert client.get("/api/rooms/nope").status_code == 404


def test_rtc_config_lists_stun(client: TestClient) -> None:
    servers = client.get("/rtc/config").json()["iceServers"]
    assert {"urls": "stun:stun.l.google.com:19302"} in servers


def test_pages_missing_without_static_dir(client: TestClient) -> None:
    assert client.get("/room/abcd").status_code == 404


def test_invalid_frame_answered_with_error(client: TestClient) -> None:
    with client.websocket_connect("/ws") as ws:
        ws.send_text("not json")
        assert ws.receive_json() == {"type": "error", "message": "unknown message"}
        ws.send_json({"type": "self-destruct"})
        assert ws.receive_json() == {"type": "error", "message": "unknown message"}


def test_pair_chat_and_departure(client: TestClient) -> None:
    with client.websocket_connect("/ws") as x:
        joined = join(x, "ws-pair", "Alice", "cat")
        assert joined["type"] == "joined-room"
        assert joined["isAlone"] is True

        with client.websocket_connect("/ws") as y:
            joined = join(y, "ws-pair", "Bob", "dog")
            assert joined["isAlone"] is False
            assert joined["userCount"] == 2
            assert y.receive_json() == {"type": "partner-already-here", "name": "Alice", "avatar": "cat"}
            assert x.receive_json() == {"type": "partner-joined", "name": "Bob", "avatar": "dog", "userCount": 2}

            x.send_json({"type": "send-message", "roomId": "ws-pair", "message": "hi", "timestamp": 1, "msgId": "m1"})
            msg = y.receive_json()
            assert msg["type"] == "receive-message"
            assert msg["from"] == "Alice"
            assert msg["message"] == "hi"
            assert msg["msgId"] == "m1"

            y.send_json({"type": "message-seen", "msgId": "m1"})
            assert x.receive_json() == {"type": "message-seen", "msgId": "m1"}

            assert client.get("/api/rooms/ws-pair").json() == {"roomId": "ws-pair", "userCount": 2}

        assert x.receive_json() == {"type": "partner-left", "name": "Bob"}
        assert x.receive_json() == {"type": "call-ended", "reason": "partner-left"}
        assert coordinator.occupancy("ws-pair") == 1


def test_third_connection_gets_room_full(client: TestClient) -> None:
    with client.websocket_connect("/ws") as a, client.websocket_connect("/ws") as b:
        join(a, "ws-full", "A")
        join(b, "ws-full", "B")
        with client.websocket_connect("/ws") as c:
            assert join(c, "ws-full", "C") == {"type": "room-full", "roomId": "ws-full"}
        assert coordinator.occupancy("ws-full") == 2


def test_leaving_event_frees_the_slot(client: TestClient) -> None:
    with client.websocket_connect("/ws") as a, client.websocket_connect("/ws") as b:
        join(a, "ws-leaving", "A")
        join(b, "ws-leaving", "B")
        b.receive_json()  # partner-already-here
        a.receive_json()  # partner-joined

        b.send_json({"type": "leaving"})
        assert a.receive_json() == {"type": "partner-left", "name": "B"}
        assert a.receive_json()["type"] == "call-ended"

        rejoined = join(b, "ws-leaving", "B2")
        assert rejoined["type"] == "joined-room"
        assert rejoined["userCount"] == 2
        assert a.receive_json() == {"type": "partner-joined", "name": "B2", "avatar": "", "userCount": 2}


def test_binary_frame_answered_and_socket_kept(client: TestClient) -> None:
    with client.websocket_connect("/ws") as ws:
        ws.send_bytes(b'{"type": "leaving"}')
        assert ws.receive_json() == {"type": "error", "message": "text frames only"}

        joined = join(ws, "ws-binary", "Alice")
        assert joined["type"] == "joined-room"


def test_frame_limit_counts_bytes(client: TestClient) -> None:
    # 22000 three-byte characters: under the limit in characters, over it in bytes
    frame = json.dumps({"type": "typing", "isTyping": True, "pad": "€" * 22000}, ensure_ascii=False)
    assert len(frame) < 65536 < len(frame.encode())

    with client.websocket_connect("/ws") as ws:
        ws.send_text(frame)
        assert ws.receive_json() == {"type": "error", "message": "frame too large"}


def test_forwarded_for_ignored_unless_trusted(client: TestClient) -> None:
    with client.websocket_connect("/ws", headers={"x-forwarded-for": "203.0.113.7"}) as ws:
        join(ws, "ws-untrusted", "Alice")
        assert coordinator.rooms.get("ws-untrusted").origins == {"testclient"}


def test_origin_dedup_over_forwarded_address(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "trust_forwarded_for", True)
    monkeypatch.setattr(coordinator, "origin_dedup", True)
    same = {"x-forwarded-for": "203.0.113.7, 10.0.0.1"}

    with client.websocket_connect("/ws", headers=same) as a, client.websocket_connect("/ws", headers=same) as b:
        assert join(a, "ws-dedup", "Alice")["type"] == "joined-room"
        assert coordinator.rooms.get("ws-dedup").origins == {"203.0.113.7"}

        assert join(b, "ws-dedup", "Bob") == {"type": "origin-already-connected", "roomId": "ws-dedup"}
        assert coordinator.occupancy("ws-dedup") == 1

        with client.websocket_connect("/ws", headers={"x-forwarded-for": "198.51.100.2"}) as c:
            assert join(c, "ws-dedup", "Carol")["userCount"] == 2
            assert c.receive_json()["type"] == "partner-already-here"
            assert a.receive_json()["type"] == "partner-joined"

            a.send_json({"type": "leaving"})
            assert c.receive_json() == {"type": "partner-left", "name": "Alice"}
            assert c.receive_json()["type"] == "call-ended"

            # the address is free again once its member has left
            rejoined = join(b, "ws-dedup", "Bob")
            assert rejoined["type"] == "joined-room"
            assert rejoined["userCount"] == 2
