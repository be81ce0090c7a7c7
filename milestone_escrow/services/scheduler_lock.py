"""DB-backed lease so only one process runs the periodic scans."""
from __future__ import annotations

import os
import socket
from datetime import timedelta

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from milestone_escrow import db
from milestone_escrow.models.scheduler_lock import SchedulerLock
from milestone_escrow.utils.time import as_utc, utcnow

LOCK_NAME = "stalled-work-scan"
LOCK_TTL_SECONDS = 300


def _owner_id() -> str:
    return f"{socket.gethostname()}-{os.getpid()}"[:64]


def _open_session(db_session: Session | None) -> tuple[Session, bool]:
    if db_session is not None:
        return db_session, False
    return db.get_sessionmaker()(), True


def try_acquire_scheduler_lock(
    name: str = LOCK_NAME,
    *,
    ttl_seconds: int = LOCK_TTL_SECONDS,
    db_session: Session | None = None,
) -> bool:
    """Take or renew the lease; an expired lease held by another runner is taken over."""

    session, owns_session = _open_session(db_session)
    owner = _owner_id()
    now = utcnow()
    try:
        lock = session.scalars(
            select(SchedulerLock).where(SchedulerLock.name == name).with_for_update()
        ).first()
        if lock is None:
            session.add(
                SchedulerLock(
                    name=name,
                    owner=owner,
                    acquired_at=now,
                    expires_at=now + timedelta(seconds=ttl_seconds),
                )
            )
        else:
            expires_at = as_utc(lock.expires_at)
            held_by_other = lock.owner != owner and expires_at is not None and expires_at > now
            if held_by_other:
                session.rollback()
                return False
            if lock.owner != owner:
                lock.owner = owner
                lock.acquired_at = now
            lock.expires_at = now + timedelta(seconds=ttl_seconds)
        session.commit()
        return True
    except IntegrityError:
        # Another runner inserted the row first.
        session.rollback()
        return False
    finally:
        if owns_session:
            session.close()


def refresh_scheduler_lock(
    name: str = LOCK_NAME, *, ttl_seconds: int = LOCK_TTL_SECONDS, db_session: Session | None = None
) -> None:
    session, owns_session = _open_session(db_session)
    try:
        lock = session.scalars(select(SchedulerLock).where(SchedulerLock.name == name)).first()
        if lock is not None and lock.owner == _owner_id():
            lock.expires_at = utcnow() + timedelta(seconds=ttl_seconds)
            session.commit()
    finally:
        if owns_session:
            session.close()


def release_scheduler_lock(name: str = LOCK_NAME, *, db_session: Session | None = None) -> None:
    session, owns_session = _open_session(db_session)
    try:
        session.execute(
            delete(SchedulerLock).where(SchedulerLock.name == name, SchedulerLock.owner == _owner_id())
        )
        session.commit()
    finally:
        if owns_session:
            session.close()


def describe_scheduler_lock(name: str = LOCK_NAME, *, db_session: Session | None = None) -> dict[str, object]:
    """Summarise the lease for the health endpoint."""

    session, owns_session = _open_session(db_session)
    try:
        lock = session.scalars(select(SchedulerLock).where(SchedulerLock.name == name)).first()
        if lock is None:
            return {"status": "none", "owner": None, "present": False}
        expires_at = as_utc(lock.expires_at)
        expires_in = (expires_at - utcnow()).total_seconds() if expires_at else None
        return {
            "status": "owned_by_self" if lock.owner == _owner_id() else "owned_by_other",
            "owner": lock.owner,
            "present": True,
            "expires_in_seconds": expires_in,
            "stale": expires_in is not None and expires_in < 0,
        }
    finally:
        if owns_session:
            session.close()


__all__ = [
    "LOCK_NAME",
    "describe_scheduler_lock",
    "refresh_scheduler_lock",
    "release_scheduler_lock",
    "try_acquire_scheduler_lock",
]
