"""The /ws endpoint driven through TestClient."""

from __future__ import annotations

import time

import pytest
from starlette.websockets import WebSocketDisconnect

from app.api import ws as ws_module
from app.api.ws import SEND_MESSAGE_DEPRECATED


def open_dm(client, user, other) -> int:
    return client.post("/api/chats/dm", json={"user_id": other.id}, headers=user.headers).json()["id"]


def receive_event(ws) -> dict:
    """Next frame that is not a server keepalive ping."""

    while True:
        frame = ws.receive_json()
        if frame != {"type": "ping"}:
            return frame


def test_handshake_without_valid_token_is_refused(client):
    with pytest.raises(WebSocketDisconnect) as missing:
        with client.websocket_connect("/ws"):
            pass
    assert missing.value.code == 1008

    with pytest.raises(WebSocketDisconnect) as invalid:
        with client.websocket_connect("/ws?token=garbage"):
            pass
    assert invalid.value.code == 1008


def test_bearer_header_is_accepted(client, register):
    alice = register("alice")
    with client.websocket_connect("/ws", headers=alice.headers) as ws:
        assert ws.receive_json() == {"type": "presence:initial_state", "user_ids": [alice.id]}


def test_protocol_errors_do_not_close_the_socket(client, register):
    alice = register("alice")
    with client.websocket_connect(f"/ws?token={alice.token}") as ws:
        ws.receive_json()

        ws.send_text("{not json")
        assert ws.receive_json() == {"type": "error", "message": "Invalid message format", "chat_id": None}

        ws.send_json(["join_chat", 1])
        assert ws.receive_json()["message"] == "Message payload must be a JSON object"

        ws.send_json({"type": "dance", "chat_id": 1})
        assert ws.receive_json() == {"type": "error", "message": "Unknown event type: dance", "chat_id": 1}

        ws.send_json({"type": "join_chat", "chat_id": "abc"})
        assert ws.receive_json()["message"] == "chat_id must be an integer"

        ws.send_json({"type": "join_chat", "chat_id": 5000})
        assert ws.receive_json() == {"type": "error", "message": "Chat not found", "chat_id": 5000}

        ws.send_json({"type": "send_message", "chat_id": 5000, "content": "hi"})
        assert ws.receive_json() == {"type": "error", "message": SEND_MESSAGE_DEPRECATED, "chat_id": 5000}

        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}
        ws.send_text("ping")
        assert ws.receive_json() == {"type": "pong"}


def test_presence_and_typing_between_two_users(client, register):
    alice = register("alice", display_name="Alice")
    bob = register("bob")
    eve = register("eve")
    chat_id = open_dm(client, alice, bob)

    with client.websocket_connect(f"/ws?token={bob.token}") as bob_ws:
        assert bob_ws.receive_json()["user_ids"] == [bob.id]

        with client.websocket_connect(f"/ws?token={alice.token}") as alice_ws:
            assert alice_ws.receive_json()["user_ids"] == sorted([alice.id, bob.id])
            assert bob_ws.receive_json() == {"type": "presence:update", "user_id": alice.id, "status": "online"}

            for ws in (alice_ws, bob_ws):
                ws.send_json({"type": "join_chat", "chat_id": chat_id})
                assert ws.receive_json() == {"type": "joined_chat", "chat_id": chat_id}

            alice_ws.send_json({"type": "typing", "chat_id": chat_id})
            assert bob_ws.receive_json() == {
                "type": "user_typing",
                "chat_id": chat_id,
                "user_id": alice.id,
                "login": "alice",
                "display_name": "Alice",
            }
            alice_ws.send_json({"type": "stop_typing", "chat_id": str(chat_id)})
            assert bob_ws.receive_json() == {"type": "user_stop_typing", "chat_id": chat_id, "user_id": alice.id}

            alice_ws.send_json({"type": "leave_chat", "chat_id": chat_id})
            assert alice_ws.receive_json() == {"type": "left_chat", "chat_id": chat_id}

        assert receive_event(bob_ws) == {"type": "presence:update", "user_id": alice.id, "status": "offline"}

        with client.websocket_connect(f"/ws?token={eve.token}") as eve_ws:
            eve_ws.receive_json()
            eve_ws.send_json({"type": "join_chat", "chat_id": chat_id})
            assert eve_ws.receive_json() == {
                "type": "error",
                "message": "Not a member of this chat",
                "chat_id": chat_id,
            }


def test_keepalive_pings_idle_connections(client, register):
    user = register("keepalive")
    settings = ws_module.settings
    original_timeout = settings.websocket_keepalive_timeout_seconds
    original_interval = settings.websocket_keepalive_ping_interval_seconds
    settings.websocket_keepalive_timeout_seconds = 0.1
    settings.websocket_keepalive_ping_interval_seconds = 0.05

    try:
        with client.websocket_connect(f"/ws?token={user.token}") as ws:
            assert ws.receive_json()["type"] == "presence:initial_state"

            time.sleep(0.15)
            assert ws.receive_json() == {"type": "ping"}
            ws.send_json({"type": "pong"})

            time.sleep(0.12)
            assert ws.receive_json() == {"type": "ping"}

            ws.send_json({"type": "ping"})
            assert ws.receive_json() == {"type": "pong"}
    finally:
        settings.websocket_keepalive_timeout_seconds = original_timeout
        settings.websocket_keepalive_ping_interval_seconds = original_interval


def test_members_removed_from_a_community_stop_receiving_its_channels(client, register, realtime_state):
    owner = register("owner")
    member = register("member")
    quitter = register("quitter")
    community = client.post("/api/communities", json={"name": "Guild"}, headers=owner.headers).json()
    community_id = community["id"]
    channel_id = community["channels"][0]["id"]
    for user in (member, quitter):
        code = client.post(f"/api/invites/community/{community_id}", json={}, headers=owner.headers).json()["code"]
        client.post(f"/api/invites/{code}/join", headers=user.headers)

    with client.websocket_connect(f"/ws?token={member.token}") as member_ws, client.websocket_connect(
        f"/ws?token={quitter.token}"
    ) as quitter_ws:
        assert receive_event(member_ws)["type"] == "presence:initial_state"
        assert receive_event(member_ws)["type"] == "presence:update"
        assert receive_event(quitter_ws)["type"] == "presence:initial_state"
        for ws in (member_ws, quitter_ws):
            ws.send_json({"type": "join_chat", "chat_id": channel_id})
            assert receive_event(ws) == {"type": "joined_chat", "chat_id": channel_id}

        client.post(f"/api/messages/{channel_id}", json={"content": "before"}, headers=owner.headers)
        for ws in (member_ws, quitter_ws):
            assert receive_event(ws)["message"]["content"] == "before"

        kicked = client.delete(f"/api/communities/{community_id}/members/{member.id}", headers=owner.headers)
        assert kicked.status_code == 200
        assert receive_event(member_ws) == {"type": "left_chat", "chat_id": channel_id}
        left = client.post(f"/api/communities/{community_id}/leave", headers=quitter.headers)
        assert left.status_code == 200
        assert receive_event(quitter_ws) == {"type": "left_chat", "chat_id": channel_id}
        assert realtime_state.connected_user_ids(channel_id) == set()

        client.post(f"/api/messages/{channel_id}", json={"content": "after the kick"}, headers=owner.headers)
        for ws in (member_ws, quitter_ws):
            ws.send_json({"type": "ping"})
            assert receive_event(ws) == {"type": "pong"}

        member_ws.send_json({"type": "join_chat", "chat_id": channel_id})
        assert receive_event(member_ws) == {
            "type": "error",
            "message": "Not a member of this chat",
            "chat_id": channel_id,
        }
