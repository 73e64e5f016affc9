"""Integration tests exercising API endpoints via FastAPI's TestClient."""

from __future__ import annotations

from typing import Any

from fastapi.testclient import TestClient
from sqlalchemy import func, select

from app.models import Group, GroupMember, MemberStatus


def register_user(
    client: TestClient,
    login: str,
    password: str,
    display_name: str = "Test",
) -> dict[str, Any]:
    response = client.post(
        "/api/auth/register",
        json={"login": login, "password": password, "display_name": display_name},
    )
    assert response.status_code == 201, response.text
    return response.json()


def login_user(client: TestClient, login: str, password: str) -> str:
    response = client.post(
        "/api/auth/login",
        json={"login": login, "password": password},
    )
    assert response.status_code == 200, response.text
    body = response.json()
    return body["access_token"]


def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def signup(client: TestClient, login: str) -> tuple[dict[str, Any], dict[str, str]]:
    user = register_user(client, login, f"{login}-password", login.title())
    return user, auth_headers(login_user(client, login, f"{login}-password"))


def create_group(client: TestClient, headers: dict[str, str], **overrides: Any) -> dict[str, Any]:
    payload = {"title": "Organic Chemistry", "category": "NEET", "capacity": 10}
    payload.update(overrides)
    response = client.post("/api/groups", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


def test_health_endpoint(client: TestClient):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_register_and_login_flow(client: TestClient):
    """End-to-end flow for registering and logging in a user."""

    payload = {"login": "alice", "password": "wonderland", "display_name": "Alice"}
    response = client.post("/api/auth/register", json=payload)
    assert response.status_code == 201
    data = response.json()
    assert data["login"] == "alice"

    response = client.post("/api/auth/register", json=payload)
    assert response.status_code == 409
    assert response.json()["error"] == "conflict"

    login_response = client.post(
        "/api/auth/login", json={"login": "alice", "password": "wonderland"}
    )
    assert login_response.status_code == 200
    token_data = login_response.json()
    assert token_data["token_type"] == "bearer"
    assert isinstance(token_data["access_token"], str)

    me = client.get("/api/auth/me", headers=auth_headers(token_data["access_token"]))
    assert me.status_code == 200
    assert me.json()["id"] == data["id"]

    bad_login = client.post("/api/auth/login", json={"login": "alice", "password": "wrongpass"})
    assert bad_login.status_code == 401


def test_protected_endpoints_require_token(client: TestClient):
    response = client.post("/api/groups", json={"title": "Nope", "category": "JEE"})
    assert response.status_code == 401
    assert response.json() == {"detail": "Not authenticated", "error": "unauthorized"}
    assert response.headers["www-authenticate"] == "Bearer"

    response = client.get("/api/groups/mine", headers=auth_headers("not-a-token"))
    assert response.status_code == 401
    assert response.json()["error"] == "unauthorized"


def test_unknown_routes_carry_error_kind(client: TestClient):
    response = client.get("/api/nowhere")

    assert response.status_code == 404
    assert response.json() == {"detail": "Not Found", "error": "not_found"}


def test_validation_errors_use_bad_request_shape(client: TestClient):
    _, headers = signup(client, "leader")

    response = client.post(
        "/api/groups", json={"title": "ab", "category": "JEE", "capacity": 1}, headers=headers
    )

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "bad_request"
    assert body["detail"] == "Invalid request"
    assert {tuple(error["loc"]) for error in body["errors"]} == {
        ("body", "title"),
        ("body", "capacity"),
    }


def test_group_membership_flow(client: TestClient):
    """Join, capacity, leave and rejoin through the HTTP surface."""

    leader, leader_headers = signup(client, "leader")
    first, first_headers = signup(client, "first")
    _, second_headers = signup(client, "second")

    group = create_group(client, leader_headers, capacity=2, tags=["chem", "bio"])
    assert group["current_member_count"] == 1
    assert group["member_role"] == "leader"
    assert group["tags"] == ["chem", "bio"]
    group_id = group["id"]

    response = client.post(f"/api/groups/{group_id}/join", headers=first_headers)
    assert response.status_code == 200, response.text
    assert response.json()["role"] == "member"

    # capacity is checked before membership, so a full group rejects members too
    response = client.post(f"/api/groups/{group_id}/join", headers=first_headers)
    assert response.status_code == 403
    assert response.json()["detail"] == "Group has reached maximum capacity"

    roomy = create_group(client, leader_headers, title="Open Lab")
    assert client.post(f"/api/groups/{roomy['id']}/join", headers=first_headers).status_code == 200
    response = client.post(f"/api/groups/{roomy['id']}/join", headers=first_headers)
    assert response.status_code == 409
    assert response.json() == {
        "detail": "You are already a member of this group",
        "error": "conflict",
    }

    response = client.post(f"/api/groups/{group_id}/join", headers=second_headers)
    assert response.status_code == 403
    assert response.json() == {
        "detail": "Group has reached maximum capacity",
        "error": "forbidden",
    }

    count = client.get(f"/api/groups/{group_id}/member-count").json()
    assert count == {"count": 2, "capacity": 2, "available_slots": 0}

    members = client.get(f"/api/groups/{group_id}/members").json()
    assert [member["user_id"] for member in members] == [leader["id"], first["id"]]

    assert client.post(f"/api/groups/{group_id}/leave", headers=first_headers).status_code == 204
    assert client.post(f"/api/groups/{group_id}/leave", headers=leader_headers).status_code == 400

    response = client.post(f"/api/groups/{group_id}/join", headers=second_headers)
    assert response.status_code == 200

    mine = client.get("/api/groups/mine", headers=second_headers).json()
    assert [item["id"] for item in mine] == [group_id]


def test_private_group_join_code_visibility(client: TestClient):
    _, leader_headers = signup(client, "leader")
    _, member_headers = signup(client, "member")
    _, outsider_headers = signup(client, "outsider")

    group = create_group(client, leader_headers, visibility="private")
    group_id = group["id"]
    code = group["join_code"]
    assert code is not None and len(code) == 8

    listing = client.get("/api/groups", headers=outsider_headers).json()
    assert [item["id"] for item in listing["items"]] == [group_id]
    assert listing["items"][0]["join_code"] is None
    assert client.get("/api/groups").json()["total"] == 0

    assert client.get(f"/api/groups/{group_id}", headers=outsider_headers).status_code == 403

    response = client.post(
        f"/api/groups/{group_id}/join", json={"join_code": "WRONG000"}, headers=member_headers
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid join code"

    response = client.post(
        f"/api/groups/{group_id}/join", json={"join_code": code.lower()}, headers=member_headers
    )
    assert response.status_code == 200

    detail = client.get(f"/api/groups/{group_id}", headers=member_headers).json()
    assert detail["join_code"] == code
    assert detail["is_member"] is True

    rotated = client.post(f"/api/groups/{group_id}/join-code", headers=leader_headers)
    assert rotated.status_code == 200
    assert rotated.json()["join_code"] != code
    assert client.post(f"/api/groups/{group_id}/join-code", headers=member_headers).status_code == 403


def test_member_management_endpoints(client: TestClient, session_factory):
    _, leader_headers = signup(client, "leader")
    admin, admin_headers = signup(client, "admin")
    target, _ = signup(client, "target")

    group_id = create_group(client, leader_headers)["id"]

    response = client.post(
        f"/api/groups/{group_id}/members", json={"user_id": admin["id"]}, headers=leader_headers
    )
    assert response.status_code == 201
    response = client.patch(
        f"/api/groups/{group_id}/members/{admin['id']}", json={"role": "admin"}, headers=leader_headers
    )
    assert response.status_code == 200
    assert response.json()["role"] == "admin"

    response = client.post(
        f"/api/groups/{group_id}/members", json={"user_id": target["id"]}, headers=admin_headers
    )
    assert response.status_code == 201

    response = client.post(f"/api/groups/{group_id}/bans/{target['id']}", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "banned"

    with session_factory() as session:
        counter = session.get(Group, group_id).current_member_count
        active = session.execute(
            select(func.count(GroupMember.id)).where(
                GroupMember.group_id == group_id,
                GroupMember.status == MemberStatus.ACTIVE,
            )
        ).scalar_one()
    assert counter == active == 2

    response = client.delete(f"/api/groups/{group_id}/bans/{target['id']}", headers=admin_headers)
    assert response.status_code == 204
    response = client.delete(f"/api/groups/{group_id}/members/{admin['id']}", headers=leader_headers)
    assert response.status_code == 204
    assert client.get(f"/api/groups/{group_id}/member-count").json()["count"] == 1


def test_chat_flow(client: TestClient):
    """Messages, reactions, pins, receipts and search over HTTP."""

    leader, leader_headers = signup(client, "leader")
    member, member_headers = signup(client, "member")
    _, outsider_headers = signup(client, "outsider")
    group_id = create_group(client, leader_headers)["id"]
    client.post(f"/api/groups/{group_id}/join", headers=member_headers)

    response = client.post(
        f"/api/chat/{group_id}/messages", json={"content": "draft"}, headers=member_headers
    )
    assert response.status_code == 201, response.text
    message = response.json()
    assert message["sender"]["login"] == "member"

    response = client.post(
        f"/api/chat/{group_id}/messages", json={"content": "hi"}, headers=outsider_headers
    )
    assert response.status_code == 403

    response = client.post(
        f"/api/chat/{group_id}/messages", json={"content": "   "}, headers=member_headers
    )
    assert response.status_code == 400

    response = client.patch(
        f"/api/chat/messages/{message['id']}", json={"content": "final"}, headers=member_headers
    )
    assert response.status_code == 200
    edited = response.json()
    assert edited["content"] == "final"
    assert edited["is_edited"] is True
    assert [entry["content"] for entry in edited["edit_history"]] == ["draft"]

    response = client.patch(
        f"/api/chat/messages/{message['id']}", json={"content": "hijack"}, headers=leader_headers
    )
    assert response.status_code == 403

    response = client.post(
        f"/api/chat/messages/{message['id']}/reactions", json={"emoji": "👍"}, headers=leader_headers
    )
    assert response.status_code == 200
    assert response.json()["reactions"] == [
        {"emoji": "👍", "count": 1, "reacted": True, "user_ids": [leader["id"]]}
    ]

    pinned = client.post(f"/api/chat/messages/{message['id']}/pin", headers=leader_headers)
    assert pinned.json()["is_pinned"] is True
    assert client.post(f"/api/chat/messages/{message['id']}/pin", headers=member_headers).status_code == 403
    assert len(client.get(f"/api/chat/{group_id}/pinned", headers=member_headers).json()) == 1

    assert client.post(f"/api/chat/messages/{message['id']}/read", headers=leader_headers).status_code == 204
    assert client.post(f"/api/chat/messages/{message['id']}/read", headers=leader_headers).status_code == 204
    status_body = client.get(
        f"/api/chat/messages/{message['id']}/read-status", headers=member_headers
    ).json()
    assert status_body["read_count"] == 1
    assert status_body["readers"][0]["login"] == "leader"

    history = client.get(f"/api/chat/{group_id}/messages", headers=member_headers).json()
    assert [item["id"] for item in history["items"]] == [message["id"]]
    assert history["has_more"] is False

    found = client.get(
        f"/api/chat/{group_id}/search", params={"q": "FIN"}, headers=member_headers
    ).json()
    assert [item["id"] for item in found["items"]] == [message["id"]]
    blank = client.get(f"/api/chat/{group_id}/search", params={"q": "  "}, headers=member_headers)
    assert blank.status_code == 400
    assert blank.json()["detail"] == "Search query is required"

    deleted = client.delete(f"/api/chat/messages/{message['id']}", headers=member_headers)
    assert deleted.status_code == 200
    assert deleted.json()["is_deleted"] is True
    assert deleted.json()["deleted_by_id"] == member["id"]
    history = client.get(f"/api/chat/{group_id}/messages", headers=member_headers).json()
    assert history["items"] == []


def test_deleted_group_keeps_messages_for_sender_and_leader(client: TestClient):
    _, leader_headers = signup(client, "leader")
    _, member_headers = signup(client, "member")
    _, other_headers = signup(client, "other")
    group_id = create_group(client, leader_headers)["id"]
    client.post(f"/api/groups/{group_id}/join", headers=member_headers)
    client.post(f"/api/groups/{group_id}/join", headers=other_headers)
    message_id = client.post(
        f"/api/chat/{group_id}/messages", json={"content": "notes"}, headers=member_headers
    ).json()["id"]

    assert client.delete(f"/api/groups/{group_id}", headers=member_headers).status_code == 403
    assert client.delete(f"/api/groups/{group_id}", headers=leader_headers).status_code == 204

    assert client.get(f"/api/groups/{group_id}", headers=leader_headers).status_code == 404
    assert client.get("/api/groups/mine", headers=member_headers).json() == []

    assert client.get(f"/api/chat/messages/{message_id}", headers=member_headers).status_code == 200
    assert client.get(f"/api/chat/messages/{message_id}", headers=leader_headers).status_code == 200
    assert client.get(f"/api/chat/messages/{message_id}", headers=other_headers).status_code == 404


def test_trending_groups_endpoint(client: TestClient):
    _, headers = signup(client, "leader")
    public = create_group(client, headers, title="Trending Physics")
    create_group(client, headers, title="Secret Physics", visibility="private")

    response = client.get("/api/groups/trending")
    assert response.status_code == 200
    assert [item["id"] for item in response.json()] == [public["id"]]

    assert client.get("/api/groups/trending", params={"limit": 51}).status_code == 400
