import pytest

from milestone_escrow.models.user import UserRole

from conftest import random_address

pytestmark = pytest.mark.anyio


async def _register(client, admin_headers, role: str) -> int:
    response = await client.post(
        "/users",
        headers=admin_headers,
        json={"stxAddress": random_address(), "username": f"{role}-user", "role": role},
    )
    response.raise_for_status()
    return response.json()["id"]


async def _user_key(client, admin_headers, user_id: int) -> dict[str, str]:
    response = await client.post(
        "/apikeys",
        headers=admin_headers,
        json={"name": f"key-{user_id}", "scope": "user", "user_id": user_id},
    )
    assert response.status_code == 201
    return {"Authorization": f"Bearer {response.json()['key']}"}


async def test_full_milestone_lifecycle_over_http(client, admin_headers):
    client_id = await _register(client, admin_headers, "client")
    freelancer_id = await _register(client, admin_headers, "freelancer")
    client_headers = await _user_key(client, admin_headers, client_id)
    freelancer_headers = await _user_key(client, admin_headers, freelancer_id)

    created = await client.post(
        "/projects",
        headers=client_headers,
        json={
            "title": "Mobile app",
            "description": "Build an MVP.",
            "category": "development",
            "tokenType": "STX",
            "milestones": [
                {"title": "Design", "amount": "100"},
                {"title": "Build", "amount": "250.5"},
            ],
        },
    )
    assert created.status_code == 201
    project = created.json()
    assert project["totalBudget"] == 350_500_000
    assert project["status"] == "open"
    project_id = project["id"]

    proposal = await client.post(
        "/proposals",
        headers=freelancer_headers,
        json={"projectId": project_id, "coverLetter": "Five years of Flutter."},
    )
    assert proposal.status_code == 201
    accepted = await client.patch(f"/proposals/{proposal.json()['id']}/accept", headers=client_headers)
    assert accepted.json()["status"] == "accepted"

    activated = await client.patch(
        f"/projects/{project_id}/activate",
        headers=client_headers,
        json={"escrowTxId": "0xescrow", "onChainId": 11},
    )
    assert activated.status_code == 200
    detail = activated.json()
    assert detail["status"] == "active"
    assert detail["onChainId"] == 11
    assert [m["status"] for m in detail["milestones"]] == ["pending", "locked"]
    assert detail["milestones"][1]["amountDisplay"] == "250.500000 STX"

    # Replaying the same activation is answered from the store.
    replayed = await client.patch(
        f"/projects/{project_id}/activate",
        headers=client_headers,
        json={"escrowTxId": "0xescrow", "onChainId": 11},
    )
    assert replayed.status_code == 200

    submitted = await client.post(
        "/milestones/submit",
        headers=freelancer_headers,
        json={"projectId": project_id, "milestoneNum": 1, "deliverableUrl": "https://figma.com/file"},
    )
    assert submitted.status_code == 201
    submission_id = submitted.json()["id"]

    approved = await client.patch(
        f"/milestones/{submission_id}/approve",
        headers=client_headers,
        json={"releaseTxId": "0xrelease1"},
    )
    assert approved.status_code == 200
    assert approved.json()["releaseTxId"] == "0xrelease1"

    again = await client.patch(
        f"/milestones/{submission_id}/approve",
        headers=client_headers,
        json={"releaseTxId": "0xrelease1"},
    )
    assert again.status_code == 200

    detail = (await client.get(f"/projects/{project_id}", headers=client_headers)).json()
    assert [m["status"] for m in detail["milestones"]] == ["approved", "pending"]
    assert detail["progress"] == {
        "total": 2,
        "approved": 1,
        "refunded": 0,
        "releasedAmount": 100_000_000,
        "percent": 50,
    }

    me = (await client.get("/users/me", headers=freelancer_headers)).json()
    assert me["totalEarnedStx"] == 100_000_000

    inbox = (await client.get("/notifications", headers=freelancer_headers)).json()
    assert inbox["unread"] == 2
    assert {item["type"] for item in inbox["items"]} == {"proposal_accepted", "milestone_approved"}


async def test_dispute_and_admin_resolution_over_http(
    client, admin_headers, headers_for, make_coordinator, make_active_project
):
    project, client_user, freelancer = make_active_project()
    freelancer_headers = headers_for(freelancer)
    client_headers = headers_for(client_user)
    await make_coordinator(user=freelancer).submit_milestone(project.id, 1, "https://example.com/work")

    filed = await client.post(
        "/disputes",
        headers=client_headers,
        json={"projectId": project.id, "milestoneNum": 1, "reason": "Missing screens"},
    )
    assert filed.status_code == 201
    dispute_id = filed.json()["id"]

    duplicate = await client.post(
        "/disputes",
        headers=freelancer_headers,
        json={"projectId": project.id, "milestoneNum": 1, "reason": "Counter claim"},
    )
    assert duplicate.status_code == 409
    assert duplicate.json()["error"]["code"] == "CONFLICT"

    detail = (await client.get(f"/projects/{project.id}", headers=client_headers)).json()
    assert detail["milestones"][0]["displayStatus"] == "disputed"
    assert detail["milestones"][0]["status"] == "submitted"

    listed = (await client.get("/admin/disputes?status=open", headers=admin_headers)).json()
    assert [d["id"] for d in listed] == [dispute_id]

    forbidden = await client.patch(
        f"/admin/disputes/{dispute_id}/resolve",
        headers=client_headers,
        json={"resolution": "mine", "resolutionTxId": "0xr", "favorFreelancer": False},
    )
    assert forbidden.status_code == 403

    resolved = await client.patch(
        f"/admin/disputes/{dispute_id}/resolve",
        headers=admin_headers,
        json={"resolution": "Delivered as agreed", "resolutionTxId": "0xresolve", "favorFreelancer": True},
    )
    assert resolved.status_code == 200
    assert resolved.json()["status"] == "resolved"

    stats = (await client.get("/admin/dashboard", headers=admin_headers)).json()
    assert stats["openDisputes"] == 0
    assert stats["releasedStx"] == 10_000_000


async def test_cancelled_signing_maps_to_conflict(client, headers_for, make_active_project, make_coordinator):
    from milestone_escrow.main import app
    from milestone_escrow.routers.deps import get_bridge_factory
    from milestone_escrow.services.ledger import Cancelled

    from conftest import ScriptedBridge

    project, client_user, freelancer = make_active_project()
    submission = await make_coordinator(user=freelancer).submit_milestone(project.id, 1, "https://example.com/a")
    app.dependency_overrides[get_bridge_factory] = lambda: (
        lambda tx_id=None, *, value=None: ScriptedBridge(Cancelled(reason="closed"))
    )
    try:
        response = await client.patch(
            f"/milestones/{submission.id}/approve",
            headers=headers_for(client_user),
            json={"releaseTxId": "0xnever"},
        )
    finally:
        app.dependency_overrides.pop(get_bridge_factory, None)

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "SIGNING_CANCELLED"


async def test_user_endpoints_require_bound_user(client, admin_headers, make_user, headers_for):
    response = await client.post(
        "/projects",
        headers=admin_headers,
        json={"title": "x", "description": "y", "category": "z", "milestones": [{"title": "a", "amount": "1"}]},
    )
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "USER_NOT_FOUND"

    freelancer = make_user(UserRole.FREELANCER)
    response = await client.post(
        "/projects",
        headers=headers_for(freelancer),
        json={"title": "x", "description": "y", "category": "z", "milestones": [{"title": "a", "amount": "1"}]},
    )
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "FORBIDDEN"


async def test_missing_or_bad_key_is_unauthorized(client):
    assert (await client.get("/projects")).status_code == 401
    response = await client.get("/projects", headers={"Authorization": "Bearer nope"})
    assert response.status_code == 401


async def test_user_key_cannot_reach_admin_routes(client, make_user, headers_for):
    response = await client.get("/admin/dashboard", headers=headers_for(make_user()))
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "INSUFFICIENT_SCOPE"


async def test_duplicate_wallet_is_rejected(client, admin_headers):
    address = random_address()
    body = {"stxAddress": address, "role": "client"}
    assert (await client.post("/users", headers=admin_headers, json=body)).status_code == 201
    response = await client.post("/users", headers=admin_headers, json=body)
    assert response.status_code == 409
    invalid = await client.post(
        "/users", headers=admin_headers, json={"stxAddress": "0x" + "a" * 40, "role": "client"}
    )
    assert invalid.status_code == 400
