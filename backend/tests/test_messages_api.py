"""Message endpoints end to end: persistence, room broadcasts and push fan-out."""

from __future__ import annotations

import time
from urllib.parse import quote

import pytest
from sqlalchemy import select

from app.models import MessageReceipt
from app.services.notifications import NotificationDispatcher, set_notification_dispatcher


class RecordingSender:
    def __init__(self) -> None:
        self.calls: list[tuple[list[int], str, str, dict]] = []

    async def send(self, user_ids, title, body, data):
        self.calls.append((list(user_ids), title, body, data))


def wait_for(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def open_dm(client, user, other) -> int:
    response = client.post("/api/chats/dm", json={"user_id": other.id}, headers=user.headers)
    assert response.status_code in (200, 201), response.text
    return response.json()["id"]


def join(ws, chat_id: int) -> None:
    ws.send_json({"type": "join_chat", "chat_id": chat_id})
    assert ws.receive_json() == {"type": "joined_chat", "chat_id": chat_id}


def connect(client, user):
    ws = client.websocket_connect(f"/ws?token={user.token}")
    return ws


@pytest.fixture()
def sender() -> RecordingSender:
    recorder = RecordingSender()
    set_notification_dispatcher(NotificationDispatcher(recorder, enabled=True, preview_length=10))
    return recorder


def test_send_broadcasts_to_room_and_pushes_to_absent_members(client, register, sender):
    alice = register("alice", display_name="Alice")
    bob = register("bob")
    carol = register("carol")
    response = client.post(
        "/api/chats/group",
        json={"name": "Trip", "member_ids": [bob.id, carol.id]},
        headers=alice.headers,
    )
    chat_id = response.json()["id"]

    with connect(client, bob) as ws:
        assert ws.receive_json()["type"] == "presence:initial_state"
        join(ws, chat_id)

        response = client.post(
            f"/api/messages/{chat_id}",
            json={"content": "Who brings the tent this weekend?"},
            headers=alice.headers,
        )
        assert response.status_code == 201
        message = response.json()

        event = ws.receive_json()
        assert event["type"] == "new_message"
        assert event["chat_id"] == chat_id
        assert event["message"]["id"] == message["id"]
        assert event["message"]["sender"]["login"] == "alice"

    assert wait_for(lambda: len(sender.calls) == 1)
    recipients, title, body, data = sender.calls[0]
    assert recipients == [carol.id]
    assert title == "Alice in Trip"
    assert body == "Who brings..."
    assert data == {"type": "new_message", "chat_id": chat_id, "message_id": message["id"]}


def test_push_is_skipped_when_everyone_is_watching(client, register, sender):
    alice = register("alice")
    bob = register("bob")
    chat_id = open_dm(client, alice, bob)

    with connect(client, bob) as ws:
        ws.receive_json()
        join(ws, chat_id)
        client.post(f"/api/messages/{chat_id}", json={"content": "hi"}, headers=alice.headers)
        assert ws.receive_json()["type"] == "new_message"

    client.post(f"/api/messages/{chat_id}", json={"content": "image", "type": "image"}, headers=alice.headers)
    assert wait_for(lambda: len(sender.calls) == 1)
    assert sender.calls[0][0] == [bob.id]
    assert sender.calls[0][1] == "alice"
    assert sender.calls[0][2] == "Sent a image"


def test_edit_delete_sequence_reaches_room_in_order(client, register):
    alice = register("alice")
    bob = register("bob")
    chat_id = open_dm(client, alice, bob)

    with connect(client, bob) as ws:
        ws.receive_json()
        join(ws, chat_id)

        message_id = client.post(
            f"/api/messages/{chat_id}", json={"content": "draft"}, headers=alice.headers
        ).json()["id"]
        edited = client.put(f"/api/messages/{message_id}", json={"content": "final"}, headers=alice.headers)
        assert edited.status_code == 200
        assert edited.json()["content"] == "final"

        deleted = client.delete(f"/api/messages/{message_id}", headers=alice.headers)
        assert deleted.json() == {"success": True}
        again = client.delete(f"/api/messages/{message_id}", headers=alice.headers)
        assert again.status_code == 200

        late_edit = client.put(f"/api/messages/{message_id}", json={"content": "oops"}, headers=alice.headers)
        assert late_edit.status_code == 400
        assert late_edit.json()["detail"] == "Cannot edit a deleted message"

        client.post(f"/api/messages/{chat_id}", json={"content": "next"}, headers=alice.headers)

        events = [ws.receive_json() for _ in range(4)]
        assert [event["type"] for event in events] == [
            "new_message",
            "message_edited",
            "message_deleted",
            "new_message",
        ]
        assert events[1]["message"]["content"] == "final"
        assert events[2]["message_id"] == message_id
        assert events[2]["deleted_at"]

    history = client.get(f"/api/messages/{chat_id}", headers=bob.headers).json()
    assert [item["content"] for item in history] == ["", "next"]
    assert history[0]["deleted_at"] is not None


def test_reactions_reads_and_pins_over_http(client, register):
    alice = register("alice")
    bob = register("bob")
    chat_id = open_dm(client, alice, bob)
    message_id = client.post(f"/api/messages/{chat_id}", json={"content": "pin me"}, headers=alice.headers).json()["id"]

    with connect(client, alice) as ws:
        ws.receive_json()
        join(ws, chat_id)

        response = client.post(f"/api/messages/{message_id}/react", json={"emoji": "👍"}, headers=bob.headers)
        assert response.status_code == 200
        assert [r["emoji"] for r in response.json()["reactions"]] == ["👍"]
        event = ws.receive_json()
        assert event["type"] == "reaction_update"
        assert event["reactions"][0]["user_id"] == bob.id

        response = client.delete(f"/api/messages/{message_id}/react/{quote('👍')}", headers=bob.headers)
        assert response.json() == {"reactions": []}
        assert ws.receive_json()["reactions"] == []

        assert client.post(f"/api/messages/{message_id}/read", headers=bob.headers).status_code == 200
        assert client.post(f"/api/messages/{message_id}/read", headers=bob.headers).status_code == 200
        read_event = ws.receive_json()
        assert read_event["type"] == "message_read"
        assert read_event["user_id"] == bob.id

        pin = client.post(f"/api/messages/{message_id}/pin", headers=bob.headers)
        assert pin.status_code == 200
        assert pin.json()["pinned_by"]["id"] == bob.id
        assert client.post(f"/api/messages/{message_id}/pin", headers=alice.headers).status_code == 200
        pinned_event = ws.receive_json()
        assert pinned_event["type"] == "message_pinned"
        assert pinned_event["pin"]["message"]["content"] == "pin me"

        pins = client.get(f"/api/messages/pins/{chat_id}", headers=alice.headers).json()
        assert [item["message_id"] for item in pins] == [message_id]

        assert client.delete(f"/api/messages/{message_id}/pin", headers=alice.headers).json() == {"success": True}
        assert ws.receive_json() == {"type": "message_unpinned", "chat_id": chat_id, "message_id": message_id}


def test_authorization_gates(client, register):
    alice = register("alice")
    bob = register("bob")
    eve = register("eve")
    chat_id = open_dm(client, alice, bob)
    message_id = client.post(f"/api/messages/{chat_id}", json={"content": "private"}, headers=alice.headers).json()["id"]

    assert client.get(f"/api/messages/{chat_id}", headers=eve.headers).status_code == 403
    assert client.post(f"/api/messages/{chat_id}", json={"content": "hi"}, headers=eve.headers).status_code == 403
    assert client.post(f"/api/messages/{message_id}/react", json={"emoji": "x"}, headers=eve.headers).status_code == 403
    assert client.post(f"/api/messages/{message_id}/pin", headers=eve.headers).status_code == 403
    assert client.get(f"/api/messages/pins/{chat_id}", headers=eve.headers).status_code == 403

    assert client.get("/api/messages/987654", headers=alice.headers).status_code == 404
    assert client.put("/api/messages/987654", json={"content": "x"}, headers=alice.headers).status_code == 404
    assert client.put(f"/api/messages/{message_id}", json={"content": "x"}, headers=bob.headers).status_code == 403
    assert client.delete(f"/api/messages/{message_id}", headers=bob.headers).status_code == 403
    assert client.post(f"/api/messages/{message_id}/react", headers=bob.headers).status_code == 400

    assert client.get(f"/api/messages/{chat_id}?limit=101", headers=alice.headers).status_code == 422
    assert client.get(f"/api/messages/{chat_id}?limit=0", headers=alice.headers).status_code == 422


def test_outsider_cannot_touch_existing_messages(client, register, db_session):
    alice = register("alice")
    bob = register("bob")
    eve = register("eve")
    chat_id = open_dm(client, alice, bob)
    message_id = client.post(f"/api/messages/{chat_id}", json={"content": "private"}, headers=alice.headers).json()["id"]
    client.post(f"/api/messages/{message_id}/react", json={"emoji": "👍"}, headers=bob.headers)
    client.post(f"/api/messages/{message_id}/pin", headers=bob.headers)

    attempts = [
        client.put(f"/api/messages/{message_id}", json={"content": "defaced"}, headers=eve.headers),
        client.delete(f"/api/messages/{message_id}", headers=eve.headers),
        client.delete(f"/api/messages/{message_id}/react/{quote('👍')}", headers=eve.headers),
        client.post(f"/api/messages/{message_id}/read", headers=eve.headers),
        client.delete(f"/api/messages/{message_id}/pin", headers=eve.headers),
    ]
    assert [response.status_code for response in attempts] == [403] * 5
    assert {response.json()["detail"] for response in attempts} == {"Not a member of this chat"}

    [stored] = client.get(f"/api/messages/{chat_id}", headers=alice.headers).json()
    assert stored["content"] == "private"
    assert stored["edited_at"] is None
    assert stored["deleted_at"] is None
    assert [(reaction["emoji"], reaction["user_id"]) for reaction in stored["reactions"]] == [("👍", bob.id)]
    pins = client.get(f"/api/messages/pins/{chat_id}", headers=alice.headers).json()
    assert [pin["message_id"] for pin in pins] == [message_id]
    receipts = db_session.execute(select(MessageReceipt).where(MessageReceipt.user_id == eve.id)).scalars().all()
    assert receipts == []


def test_channel_access_follows_community_membership(client, register):
    owner = register("owner")
    newcomer = register("newcomer")
    community = client.post("/api/communities", json={"name": "Guild"}, headers=owner.headers).json()
    channel_id = community["channels"][0]["id"]

    client.post(f"/api/messages/{channel_id}", json={"content": "welcome"}, headers=owner.headers)
    assert client.get(f"/api/messages/{channel_id}", headers=newcomer.headers).status_code == 403

    code = client.post(f"/api/invites/community/{community['id']}", json={}, headers=owner.headers).json()["code"]
    joined = client.post(f"/api/invites/{code}/join", headers=newcomer.headers)
    assert joined.json()["channel_id"] == channel_id

    history = client.get(f"/api/messages/{channel_id}", headers=newcomer.headers)
    assert history.status_code == 200
    assert [item["content"] for item in history.json()] == ["welcome"]
    assert client.post(f"/api/messages/{channel_id}", json={"content": "hello!"}, headers=newcomer.headers).status_code == 201


def test_message_to_unknown_chat_is_not_found(client, register):
    alice = register("alice")
    response = client.post("/api/messages/31337", json={"content": "hello?"}, headers=alice.headers)
    assert response.status_code == 404
    assert response.json()["detail"] == "Chat not found"
