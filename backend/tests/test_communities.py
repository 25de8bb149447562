"""Communities, channels and invite redemption."""

from __future__ import annotations

from sqlalchemy import select

from app.models import CommunityInvite, CommunityMember


def create_community(client, owner, name="Guild"):
    response = client.post("/api/communities", json={"name": name}, headers=owner.headers)
    assert response.status_code == 201, response.text
    return response.json()


def invite_code(client, owner, community_id, max_uses=None):
    payload = {} if max_uses is None else {"max_uses": max_uses}
    response = client.post(f"/api/invites/community/{community_id}", json=payload, headers=owner.headers)
    assert response.status_code == 201, response.text
    return response.json()["code"]


def test_create_community_with_owner_and_general_channel(client, register):
    owner = register("owner")
    community = create_community(client, owner)

    assert community["owner_id"] == owner.id
    assert community["member_count"] == 1
    assert [channel["name"] for channel in community["channels"]] == ["general"]
    assert community["members"][0]["is_owner"] is True

    listing = client.get("/api/communities", headers=owner.headers).json()
    assert [item["id"] for item in listing] == [community["id"]]


def test_details_require_membership(client, register):
    owner = register("owner")
    outsider = register("outsider")
    community = create_community(client, owner)

    assert client.get(f"/api/communities/{community['id']}", headers=outsider.headers).status_code == 403
    assert client.get("/api/communities/999", headers=owner.headers).status_code == 404


def test_channel_management_is_owner_only_for_rename_and_delete(client, register):
    owner = register("owner")
    member = register("member")
    community = create_community(client, owner)
    code = invite_code(client, owner, community["id"])
    client.post(f"/api/invites/{code}/join", headers=member.headers)
    general_id = community["channels"][0]["id"]

    created = client.post(
        f"/api/communities/{community['id']}/channels", json={"name": "random"}, headers=member.headers
    )
    assert created.status_code == 201
    channel_id = created.json()["id"]

    rename = client.put(
        f"/api/communities/{community['id']}/channels/{channel_id}", json={"name": "off-topic"}, headers=member.headers
    )
    assert rename.status_code == 403
    rename = client.put(f"/api/channels/{channel_id}", json={"name": "off-topic"}, headers=owner.headers)
    assert rename.json()["name"] == "off-topic"

    general = client.delete(f"/api/communities/{community['id']}/channels/{general_id}", headers=owner.headers)
    assert general.status_code == 400
    assert general.json()["detail"] == "Cannot delete the general channel"

    assert client.delete(f"/api/channels/{channel_id}", headers=member.headers).status_code == 403
    assert client.delete(f"/api/channels/{channel_id}", headers=owner.headers).json() == {"success": True}
    detail = client.get(f"/api/communities/{community['id']}", headers=owner.headers).json()
    assert [channel["id"] for channel in detail["channels"]] == [general_id]


def test_leave_kick_and_transfer(client, register, realtime_state):
    owner = register("owner")
    member = register("member")
    other = register("other")
    community = create_community(client, owner)
    community_id = community["id"]
    for user in (member, other):
        client.post(f"/api/invites/{invite_code(client, owner, community_id)}/join", headers=user.headers)

    leave = client.post(f"/api/communities/{community_id}/leave", headers=owner.headers)
    assert leave.status_code == 400
    assert leave.json()["detail"] == "Owner must transfer ownership before leaving"

    realtime_state.membership_cache.put(other.id, community["channels"][0]["id"], True)
    assert client.delete(f"/api/communities/{community_id}/members/{owner.id}", headers=owner.headers).status_code == 400
    assert client.delete(f"/api/communities/{community_id}/members/{other.id}", headers=member.headers).status_code == 403
    assert client.delete(f"/api/communities/{community_id}/members/{other.id}", headers=owner.headers).status_code == 200
    assert realtime_state.membership_cache.get(other.id, community["channels"][0]["id"]) is None
    assert client.get(f"/api/communities/{community_id}", headers=other.headers).status_code == 403

    assert client.post(f"/api/communities/{community_id}/transfer/{other.id}", headers=owner.headers).status_code == 400
    transfer = client.post(f"/api/communities/{community_id}/transfer/{member.id}", headers=owner.headers)
    assert transfer.json() == {"success": True, "owner_id": member.id}

    assert client.post(f"/api/communities/{community_id}/leave", headers=owner.headers).json() == {"success": True}
    detail = client.get(f"/api/communities/{community_id}", headers=member.headers).json()
    assert detail["owner_id"] == member.id
    assert [m["user"]["id"] for m in detail["members"]] == [member.id]


def test_invite_info_is_public(client, register):
    owner = register("owner")
    community = create_community(client, owner, name="Readers")
    code = invite_code(client, owner, community["id"], max_uses=3)

    info = client.get(f"/api/invites/{code}")
    assert info.status_code == 200
    assert info.json()["community_name"] == "Readers"
    assert info.json()["member_count"] == 1
    assert info.json()["max_uses"] == 3
    assert client.get("/api/invites/nope").status_code == 404


def test_invite_exhaustion_is_all_or_nothing(client, register, db_session):
    owner = register("owner")
    first = register("first")
    second = register("second")
    community = create_community(client, owner)
    code = invite_code(client, owner, community["id"], max_uses=1)

    joined = client.post(f"/api/invites/{code}/join", headers=first.headers)
    assert joined.status_code == 200
    assert joined.json()["already_member"] is False

    again = client.post(f"/api/invites/{code}/join", headers=first.headers)
    assert again.json()["already_member"] is True

    refused = client.post(f"/api/invites/{code}/join", headers=second.headers)
    assert refused.status_code == 410
    assert refused.json()["detail"] == "Invite has reached max uses"

    invite = db_session.execute(select(CommunityInvite).where(CommunityInvite.code == code)).scalar_one()
    assert invite.uses == 1
    members = db_session.execute(
        select(CommunityMember.user_id).where(CommunityMember.community_id == community["id"])
    ).scalars().all()
    assert sorted(members) == sorted([owner.id, first.id])


def test_invite_creation_requires_membership(client, register):
    owner = register("owner")
    outsider = register("outsider")
    community = create_community(client, owner)
    response = client.post(f"/api/invites/community/{community['id']}", json={}, headers=outsider.headers)
    assert response.status_code == 403
    assert client.post(f"/api/invites/community/{community['id']}", json={"max_uses": 0}, headers=owner.headers).status_code == 422
