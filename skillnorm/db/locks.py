# skillnorm/db/locks.py
import os
import socket
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Iterator

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from skillnorm.core.config import settings
from skillnorm.core.errors import PipelineLockedError
from skillnorm.core.logging_config import get_logger
from skillnorm.db.models import PipelineLock

logger = get_logger(__name__)

# held by every stage that creates, links or deletes canonical skills
SKILLS_LOCK = "skills"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def default_owner() -> str:
    return f"{socket.gethostname()}:{os.getpid()}"


def acquire_lock(session_factory: sessionmaker, name: str, owner: str, ttl_seconds: int) -> None:
    with session_factory() as s:
        current = s.execute(select(PipelineLock).where(PipelineLock.name == name)).scalar_one_or_none()
        if current is not None:
            if _utcnow() - current.acquired_at < timedelta(seconds=ttl_seconds):
                raise PipelineLockedError(name, current.owner)
            logger.warning(f"Taking over stale lock '{name}' held by {current.owner} since {current.acquired_at}")
            s.delete(current)
            s.flush()
        s.add(PipelineLock(name=name, owner=owner, acquired_at=_utcnow()))
        try:
            s.commit()
        except IntegrityError as e:
            s.rollback()
            raise PipelineLockedError(name) from e


def release_lock(session_factory: sessionmaker, name: str, owner: str) -> None:
    with session_factory() as s:
        s.execute(delete(PipelineLock).where(PipelineLock.name == name, PipelineLock.owner == owner))
        s.commit()


@contextmanager
def single_runner(
    session_factory: sessionmaker,
    name: str,
    owner: str | None = None,
    ttl_seconds: int | None = None,
) -> Iterator[str]:
    """
    Hold the named pipeline lock for the duration of the block.

    Delta computation and the fold-and-upsert that follows are not one
    transaction, so two runners over the same corpus must never overlap.
    Raises PipelineLockedError when another fresh holder exists.
    """
    owner = owner or default_owner()
    ttl = settings.LOCK_TTL_SECONDS if ttl_seconds is None else ttl_seconds
    acquire_lock(session_factory, name, owner, ttl)
    logger.debug(f"Acquired lock '{name}' as {owner}")
    try:
        yield owner
    finally:
        release_lock(session_factory, name, owner)
        logger.debug(f"Released lock '{name}'")
