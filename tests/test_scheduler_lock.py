from datetime import datetime, timedelta, timezone

from sqlalchemy import select

from milestone_escrow.models.scheduler_lock import SchedulerLock
from milestone_escrow.services.scheduler_lock import (
    LOCK_NAME,
    describe_scheduler_lock,
    refresh_scheduler_lock,
    release_scheduler_lock,
    try_acquire_scheduler_lock,
)

OWNER = "milestone_escrow.services.scheduler_lock._owner_id"


def test_scheduler_lock_is_reentrant_for_its_owner(db_session):
    assert try_acquire_scheduler_lock(db_session=db_session) is True
    assert try_acquire_scheduler_lock(db_session=db_session) is True

    release_scheduler_lock(db_session=db_session)
    assert describe_scheduler_lock(db_session=db_session)["present"] is False


def test_lock_cannot_be_taken_if_not_expired(monkeypatch, db_session):
    monkeypatch.setattr(OWNER, lambda: "node-A")
    assert try_acquire_scheduler_lock(db_session=db_session, ttl_seconds=300)

    monkeypatch.setattr(OWNER, lambda: "node-B")
    assert try_acquire_scheduler_lock(db_session=db_session, ttl_seconds=300) is False

    # node-B cannot release a lease it does not hold.
    release_scheduler_lock(db_session=db_session)
    info = describe_scheduler_lock(db_session=db_session)
    assert info["owner"] == "node-A"
    assert info["status"] == "owned_by_other"


def test_lock_can_be_reacquired_after_expiry(monkeypatch, db_session):
    monkeypatch.setattr(OWNER, lambda: "node-A")
    assert try_acquire_scheduler_lock(db_session=db_session, ttl_seconds=60)

    lock = db_session.execute(select(SchedulerLock).where(SchedulerLock.name == LOCK_NAME)).scalar_one()
    lock.expires_at = datetime.now(timezone.utc) - timedelta(seconds=1)
    db_session.commit()

    monkeypatch.setattr(OWNER, lambda: "node-B")
    assert try_acquire_scheduler_lock(db_session=db_session, ttl_seconds=300)
    assert describe_scheduler_lock(db_session=db_session)["status"] == "owned_by_self"


def test_refresh_extends_only_own_lease(monkeypatch, db_session):
    monkeypatch.setattr(OWNER, lambda: "node-A")
    assert try_acquire_scheduler_lock(db_session=db_session, ttl_seconds=10)
    before = describe_scheduler_lock(db_session=db_session)["expires_in_seconds"]

    refresh_scheduler_lock(db_session=db_session, ttl_seconds=600)
    after = describe_scheduler_lock(db_session=db_session)["expires_in_seconds"]
    assert after > before

    monkeypatch.setattr(OWNER, lambda: "node-B")
    refresh_scheduler_lock(db_session=db_session, ttl_seconds=5)
    assert describe_scheduler_lock(db_session=db_session)["expires_in_seconds"] > 60


def test_describe_scheduler_lock_contains_expiry(db_session, monkeypatch):
    monkeypatch.setattr(OWNER, lambda: "node-A")
    assert try_acquire_scheduler_lock(db_session=db_session, ttl_seconds=60)

    info = describe_scheduler_lock(db_session=db_session)
    assert info["present"] is True
    assert info["stale"] is False
    assert 0 < info["expires_in_seconds"] <= 60
