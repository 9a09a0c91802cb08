"""
Lease-based mutual exclusion for batch jobs

Only one worker process may run a given job at a time. A lease row in job_leases
names the holder and an expiry; a run that outlives its lease is treated as
abandoned, so the next tick can take the lease over instead of staying stuck.
"""

import logging
import os
import socket
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .models import JobLease

logger = logging.getLogger(__name__)


def default_owner() -> str:
    """Fresh token per run so overlapping ticks in one process never share a lease"""
    return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex}"


def _utc_naive(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def acquire_lease(
    db: Session, name: str, owner: str, lease_seconds: int, now: Optional[datetime] = None
) -> bool:
    """Take the lease if it is free or expired. Commits on success."""
    now = _utc_naive(now or datetime.now(timezone.utc))
    until = now + timedelta(seconds=lease_seconds)

    taken = (
        db.query(JobLease)
        .filter(JobLease.name == name, JobLease.locked_until <= now)
        .update(
            {JobLease.locked_until: until, JobLease.locked_at: now, JobLease.locked_by: owner},
            synchronize_session=False,
        )
    )
    if taken:
        db.commit()
        return True

    try:
        db.add(JobLease(name=name, locked_until=until, locked_at=now, locked_by=owner))
        db.commit()
        return True
    except IntegrityError:
        # Someone else holds an unexpired lease
        db.rollback()
        return False


def release_lease(db: Session, name: str, owner: str, now: Optional[datetime] = None) -> None:
    """Expire our lease immediately so the next tick can run"""
    now = _utc_naive(now or datetime.now(timezone.utc))
    db.query(JobLease).filter(JobLease.name == name, JobLease.locked_by == owner).update(
        {JobLease.locked_until: now}, synchronize_session=False
    )
    db.commit()


@contextmanager
def job_lease(
    session_factory: Callable[[], Session], name: str, lease_seconds: int, owner: Optional[str] = None
):
    """
    Context manager yielding True if this process holds the lease for the block.

    The lease is taken and released on its own session so the job body's
    transactions never hold it.
    """
    owner = owner or default_owner()
    db = session_factory()
    try:
        acquired = acquire_lease(db, name, owner, lease_seconds)
        if not acquired:
            logger.info(f"⏭️ Skipping {name}: lease held by another worker")
            yield False
            return
        try:
            yield True
        finally:
            release_lease(db, name, owner)
    finally:
        db.close()
