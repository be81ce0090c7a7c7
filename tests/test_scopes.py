"""Scope enforcement and API key lifecycle."""
from datetime import timedelta
from uuid import uuid4

import pytest
from sqlalchemy import select

from milestone_escrow.models.audit import AuditLog
from milestone_escrow.utils.time import utcnow

from conftest import random_address

pytestmark = pytest.mark.anyio


async def test_user_key_cannot_manage_apikeys(client, make_user, headers_for):
    response = await client.get("/apikeys/1", headers=headers_for(make_user()))
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "INSUFFICIENT_SCOPE"


async def test_revoked_key_is_rejected(client, admin_headers, make_user, make_api_key):
    user = make_user()
    token = f"revokable-{uuid4().hex}"
    api_key = make_api_key(name=f"revokable-{uuid4().hex}", key=token, user_id=user.id)
    headers = {"Authorization": f"Bearer {token}"}
    assert (await client.get("/users/me", headers=headers)).status_code == 200

    response = await client.delete(f"/apikeys/{api_key.id}", headers=admin_headers)
    assert response.status_code == 204

    response = await client.get("/users/me", headers=headers)
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "UNAUTHORIZED"


async def test_expired_key_is_rejected(client, db_session, make_user, make_api_key):
    token = f"expired-{uuid4().hex}"
    api_key = make_api_key(name=f"expired-{uuid4().hex}", key=token, user_id=make_user().id)
    api_key.expires_at = utcnow() - timedelta(minutes=1)
    db_session.commit()

    response = await client.get("/users/me", headers={"X-API-Key": token})
    assert response.status_code == 401


async def test_user_scope_keys_must_be_bound(client, admin_headers):
    response = await client.post(
        "/apikeys", headers=admin_headers, json={"name": "orphan", "scope": "user"}
    )
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "USER_REQUIRED"


async def test_user_creation_audit_has_api_actor(client, admin_headers, db_session):
    response = await client.post(
        "/users",
        headers=admin_headers,
        json={"stxAddress": random_address(), "role": "freelancer"},
    )
    assert response.status_code == 201

    db_session.expire_all()
    audit = db_session.scalars(
        select(AuditLog).where(AuditLog.action == "CREATE_USER").order_by(AuditLog.id.desc())
    ).first()
    assert audit is not None
    assert audit.actor.startswith("apikey:")
    assert audit.entity_id == response.json()["id"]
