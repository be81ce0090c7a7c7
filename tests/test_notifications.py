import pytest

from milestone_escrow.models.notification import NotificationType
from milestone_escrow.models.user import UserRole
from milestone_escrow.services import notifications as notification_service

pytestmark = pytest.mark.anyio


def _seed(db_session, user, count):
    for i in range(count):
        notification_service.notify(
            db_session,
            user_id=user.id,
            type=NotificationType.MILESTONE_SUBMITTED,
            title=f"Milestone {i + 1} submitted",
            message="Review the deliverable.",
        )
    db_session.commit()


async def test_inbox_lists_newest_first_and_counts_unread(client, db_session, make_user, headers_for):
    user = make_user()
    _seed(db_session, user, 3)

    response = await client.get("/notifications", headers=headers_for(user))
    assert response.status_code == 200
    body = response.json()
    assert body["unread"] == 3
    assert [item["title"] for item in body["items"]] == [
        "Milestone 3 submitted",
        "Milestone 2 submitted",
        "Milestone 1 submitted",
    ]
    assert body["items"][0]["isRead"] is False


async def test_mark_read_and_read_all(client, db_session, make_user, headers_for):
    user = make_user()
    _seed(db_session, user, 3)
    headers = headers_for(user)
    first = (await client.get("/notifications", headers=headers)).json()["items"][0]

    response = await client.patch(f"/notifications/{first['id']}/read", headers=headers)
    assert response.status_code == 200
    assert response.json()["isRead"] is True

    unread = (await client.get("/notifications?unreadOnly=true", headers=headers)).json()
    assert len(unread["items"]) == 2
    assert unread["unread"] == 2

    response = await client.patch("/notifications/read-all", headers=headers)
    assert response.json() == {"updated": 2}
    assert (await client.get("/notifications", headers=headers)).json()["unread"] == 0


async def test_cannot_read_someone_elses_notification(client, db_session, make_user, headers_for):
    owner = make_user()
    other = make_user(UserRole.FREELANCER)
    _seed(db_session, owner, 1)
    notification_id = notification_service.list_for_user(db_session, owner.id)[0].id

    response = await client.patch(f"/notifications/{notification_id}/read", headers=headers_for(other))
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NOT_FOUND"
