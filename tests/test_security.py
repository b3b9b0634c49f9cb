from datetime import timedelta

import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from app.api import deps
from app.core.permissions import Actor, ActorRole, PermissionCode, has_permission
from app.core.security import create_access_token, decode_token
from app.core.settings import settings
from app.services import proposal_store


def _credentials(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


def test_access_token_round_trip_carries_role(monkeypatch):
    monkeypatch.setattr(settings, "secret_key", "placeholder-secret-for-settings")
    monkeypatch.setattr(settings, "access_token_expire_minutes", 1)

    token = create_access_token("user-xyz", "reviewer")
    decoded = decode_token(token, expected_type="access")

    assert decoded["sub"] == "user-xyz"
    assert decoded["role"] == "reviewer"
    assert decoded["type"] == "access"


def test_decode_rejects_foreign_signature(monkeypatch):
    monkeypatch.setattr(settings, "secret_key", "first-secret")
    token = create_access_token("user-xyz", ActorRole.ADMIN)
    monkeypatch.setattr(settings, "secret_key", "second-secret")

    with pytest.raises(ValueError):
        decode_token(token)


def test_decode_rejects_expired_token():
    token = create_access_token("user-xyz", ActorRole.SUBMITTER, expires_delta=timedelta(seconds=-5))

    with pytest.raises(ValueError):
        decode_token(token)


def test_role_aliases_map_to_actor_roles():
    assert ActorRole("student") is ActorRole.SUBMITTER
    assert ActorRole("Head Admin") is ActorRole.ADMIN
    with pytest.raises(ValueError):
        ActorRole("janitor")


def test_permission_matrix():
    assert has_permission(ActorRole.SUBMITTER, PermissionCode.PROPOSAL_CREATE)
    assert not has_permission(ActorRole.SUBMITTER, PermissionCode.PROPOSAL_REVIEW)
    assert has_permission(ActorRole.REVIEWER, PermissionCode.PROPOSAL_REVIEW)
    assert not has_permission(ActorRole.REVIEWER, PermissionCode.PROPOSAL_DELETE)
    assert has_permission(ActorRole.ADMIN, PermissionCode.COMPLIANCE_SWEEP)


@pytest.mark.asyncio
async def test_get_current_actor_reads_subject_and_role():
    token = create_access_token("reviewer-7", ActorRole.REVIEWER)

    actor = await deps.get_current_actor(_credentials(token))

    assert actor.id == "reviewer-7"
    assert actor.role is ActorRole.REVIEWER


@pytest.mark.asyncio
async def test_get_current_actor_requires_credentials():
    with pytest.raises(HTTPException) as exc:
        await deps.get_current_actor(None)
    assert exc.value.status_code == 401


@pytest.mark.asyncio
async def test_get_current_actor_rejects_garbage_token():
    with pytest.raises(HTTPException) as exc:
        await deps.get_current_actor(_credentials("not-a-jwt"))
    assert exc.value.status_code == 401


@pytest.mark.asyncio
async def test_require_permission_blocks_missing_permission(submitter):
    dependency = deps.require_permission(PermissionCode.PROPOSAL_REVIEW)

    with pytest.raises(HTTPException) as exc:
        await dependency(actor=submitter)

    assert exc.value.status_code == 403
    assert exc.value.detail == "Missing permission: proposal.review"


@pytest.mark.asyncio
async def test_require_permission_passes_actor_through(reviewer):
    dependency = deps.require_permission(PermissionCode.PROPOSAL_REVIEW)

    assert await dependency(actor=reviewer) is reviewer


def test_actor_is_shared_between_services_and_api():
    assert deps.Actor is Actor
    assert not hasattr(proposal_store, "deps")
