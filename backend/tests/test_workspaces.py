"""
Tests for workspace CRUD, invite codes and joining.
"""

import logging

import pytest
from sqlalchemy.exc import IntegrityError

import invites
import models
from errors import NotFoundError, ValidationError
from invites import INVITE_CODE_LENGTH, generate_invite_code, join_workspace
from storage import DATA_URL_PREFIX

logger = logging.getLogger(__name__)

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def member_count(test_db, workspace_id, user_id=None):
    query = test_db.query(models.Member).filter(models.Member.workspace_id == workspace_id)
    if user_id is not None:
        query = query.filter(models.Member.user_id == user_id)
    return query.count()


# ============== Invite codes ==============


def test_generate_invite_code():
    code = generate_invite_code()
    assert len(code) == INVITE_CODE_LENGTH == 10
    assert code.isalnum()
    assert len({generate_invite_code() for _ in range(20)}) == 20


def test_join_with_valid_code(client, test_db, member_headers, other_user, workspace):
    response = client.post(
        f"/api/workspaces/{workspace.id}/join",
        json={"code": workspace.invite_code},
        headers=member_headers,
    )

    assert response.status_code == 200, response.json()
    assert response.json()["data"]["$id"] == workspace.id
    member = (
        test_db.query(models.Member)
        .filter(models.Member.workspace_id == workspace.id, models.Member.user_id == other_user.id)
        .one()
    )
    assert member.role == models.MemberRole.MEMBER
    logger.info("✓ valid invite code creates a MEMBER membership")


def test_joining_twice_fails_with_already_a_member(client, test_db, member_headers, other_user, workspace):
    first = client.post(
        f"/api/workspaces/{workspace.id}/join", json={"code": workspace.invite_code}, headers=member_headers
    )
    second = client.post(
        f"/api/workspaces/{workspace.id}/join", json={"code": workspace.invite_code}, headers=member_headers
    )

    assert first.status_code == 200
    assert second.status_code == 400
    assert second.json() == {"error": "Already a member"}
    assert member_count(test_db, workspace.id, other_user.id) == 1


def test_wrong_code_never_creates_membership(client, test_db, member_headers, other_user, workspace):
    response = client.post(
        f"/api/workspaces/{workspace.id}/join", json={"code": "wrong-code"}, headers=member_headers
    )

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid invite code"}
    assert member_count(test_db, workspace.id, other_user.id) == 0


def test_invite_code_is_case_sensitive(repo, test_db, other_user, workspace):
    workspace.invite_code = "AbCdEf1234"
    test_db.commit()

    with pytest.raises(ValidationError):
        join_workspace(repo, workspace.id, other_user.id, "abcdef1234")
    assert member_count(test_db, workspace.id, other_user.id) == 0

    join_workspace(repo, workspace.id, other_user.id, "AbCdEf1234")
    assert member_count(test_db, workspace.id, other_user.id) == 1


def test_join_unknown_workspace_is_not_found(repo, other_user):
    with pytest.raises(NotFoundError):
        join_workspace(repo, "missing", other_user.id, "whatever")


def test_concurrent_duplicate_join_is_reported_as_already_a_member(repo, test_db, workspace, other_user, monkeypatch):
    join_workspace(repo, workspace.id, other_user.id, workspace.invite_code)
    # Simulate the race: the membership check ran before the other join committed
    monkeypatch.setattr(invites, "get_member", lambda *args: None)

    with pytest.raises(ValidationError) as exc_info:
        join_workspace(repo, workspace.id, other_user.id, workspace.invite_code)

    assert exc_info.value.message == "Already a member"
    assert member_count(test_db, workspace.id, other_user.id) == 1


def test_unique_membership_is_enforced_by_the_database(test_db, workspace, user):
    test_db.add(models.Member(workspace_id=workspace.id, user_id=user.id, role=models.MemberRole.MEMBER))
    with pytest.raises(IntegrityError):
        test_db.commit()
    test_db.rollback()


def test_reset_invite_code(client, test_db, auth_headers, member_headers, workspace):
    old_code = workspace.invite_code

    response = client.post(f"/api/workspaces/{workspace.id}/reset-invite-code", headers=auth_headers)

    assert response.status_code == 200, response.json()
    new_code = response.json()["data"]["inviteCode"]
    assert new_code != old_code
    assert len(new_code) == INVITE_CODE_LENGTH

    stale = client.post(f"/api/workspaces/{workspace.id}/join", json={"code": old_code}, headers=member_headers)
    assert stale.status_code == 400


def test_reset_invite_code_requires_admin(client, member_headers, workspace, member):
    response = client.post(f"/api/workspaces/{workspace.id}/reset-invite-code", headers=member_headers)
    assert response.status_code == 401


# ============== CRUD ==============


def test_create_workspace_makes_creator_admin(client, test_db, auth_headers, user):
    response = client.post("/api/workspaces", data={"name": "New Workspace"}, headers=auth_headers)

    assert response.status_code == 200, response.json()
    data = response.json()["data"]
    assert data["name"] == "New Workspace"
    assert data["userId"] == user.id
    assert data["imageUrl"] is None
    assert len(data["inviteCode"]) == INVITE_CODE_LENGTH
    assert "$createdAt" in data

    member = test_db.query(models.Member).filter(models.Member.workspace_id == data["$id"]).one()
    assert member.user_id == user.id
    assert member.role == models.MemberRole.ADMIN
    logger.info("✓ workspace creator becomes ADMIN")


def test_create_workspace_with_image(client, auth_headers):
    response = client.post(
        "/api/workspaces",
        data={"name": "With image"},
        files={"image": ("logo.png", PNG_BYTES, "image/png")},
        headers=auth_headers,
    )

    assert response.status_code == 200, response.json()
    assert response.json()["data"]["imageUrl"].startswith(DATA_URL_PREFIX)


def test_create_workspace_rejects_bad_images(client, auth_headers):
    too_big = client.post(
        "/api/workspaces",
        data={"name": "Too big"},
        files={"image": ("logo.png", b"\x00" * (1024 * 1024 + 1), "image/png")},
        headers=auth_headers,
    )
    assert too_big.status_code == 413

    wrong_type = client.post(
        "/api/workspaces",
        data={"name": "Script"},
        files={"image": ("logo.svg", b"<svg/>", "image/svg+xml")},
        headers=auth_headers,
    )
    assert wrong_type.status_code == 400


def test_create_workspace_requires_name(client, auth_headers):
    response = client.post("/api/workspaces", data={"name": ""}, headers=auth_headers)
    assert response.status_code == 400


def test_list_workspaces_only_returns_memberships(client, test_db, auth_headers, outsider, workspace):
    foreign = models.Workspace(name="Foreign", user_id=outsider.id, invite_code="ForeignAbc")
    test_db.add(foreign)
    test_db.commit()
    test_db.add(models.Member(workspace_id=foreign.id, user_id=outsider.id, role=models.MemberRole.ADMIN))
    test_db.commit()

    response = client.get("/api/workspaces", headers=auth_headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["total"] == 1
    assert [doc["$id"] for doc in data["documents"]] == [workspace.id]


def test_list_workspaces_without_memberships(client, outsider_headers):
    response = client.get("/api/workspaces", headers=outsider_headers)
    assert response.json() == {"data": {"total": 0, "documents": []}}


def test_get_workspace_requires_membership(client, auth_headers, outsider_headers, workspace):
    assert client.get(f"/api/workspaces/{workspace.id}", headers=auth_headers).status_code == 200
    assert client.get(f"/api/workspaces/{workspace.id}", headers=outsider_headers).status_code == 401
    assert client.get("/api/workspaces/missing", headers=auth_headers).status_code == 404


def test_workspace_info_is_public_to_authenticated_users(client, outsider_headers, workspace):
    response = client.get(f"/api/workspaces/{workspace.id}/info", headers=outsider_headers)

    assert response.status_code == 200
    assert response.json()["data"] == {"$id": workspace.id, "name": "Test Workspace", "imageUrl": None}


def test_requests_without_token_are_rejected(client, workspace):
    response = client.get(f"/api/workspaces/{workspace.id}/info")
    assert response.status_code == 401
    assert "error" in response.json()


def test_update_workspace(client, test_db, auth_headers, workspace):
    response = client.patch(
        f"/api/workspaces/{workspace.id}",
        data={"name": "Renamed"},
        files={"image": ("logo.png", PNG_BYTES, "image/png")},
        headers=auth_headers,
    )
    assert response.status_code == 200, response.json()
    assert response.json()["data"]["name"] == "Renamed"
    assert response.json()["data"]["imageUrl"].startswith(DATA_URL_PREFIX)

    cleared = client.patch(f"/api/workspaces/{workspace.id}", data={"imageUrl": ""}, headers=auth_headers)
    assert cleared.status_code == 200, cleared.json()
    assert cleared.json()["data"]["imageUrl"] is None
    assert cleared.json()["data"]["name"] == "Renamed"


def test_update_workspace_requires_admin(client, member_headers, workspace, member):
    response = client.patch(f"/api/workspaces/{workspace.id}", data={"name": "Hijacked"}, headers=member_headers)
    assert response.status_code == 401


def test_delete_workspace_requires_admin(client, member_headers, workspace, member):
    response = client.delete(f"/api/workspaces/{workspace.id}", headers=member_headers)
    assert response.status_code == 401
