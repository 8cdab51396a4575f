"""
Tests for the single-runner pipeline lock.
"""
from datetime import timedelta

import pytest
from sqlalchemy import select

from skillnorm.core.errors import PipelineLockedError
from skillnorm.db.locks import _utcnow, single_runner
from skillnorm.db.models import PipelineLock


def test_second_runner_is_refused(session_factory):
    with single_runner(session_factory, "normalization", owner="a"):
        with pytest.raises(PipelineLockedError) as exc:
            with single_runner(session_factory, "normalization", owner="b"):
                pass
    assert exc.value.owner == "a"


def test_different_names_do_not_conflict(session_factory):
    with single_runner(session_factory, "normalization"):
        with single_runner(session_factory, "clustering"):
            pass


def test_lock_released_on_error(session_factory):
    with pytest.raises(RuntimeError):
        with single_runner(session_factory, "extraction"):
            raise RuntimeError("boom")
    with session_factory() as s:
        assert s.execute(select(PipelineLock)).first() is None


def test_stale_lock_is_taken_over(session_factory):
    with session_factory() as s:
        s.add(PipelineLock(name="normalization", owner="dead:1", acquired_at=_utcnow() - timedelta(hours=5)))
        s.commit()

    with single_runner(session_factory, "normalization", owner="live:2", ttl_seconds=3600) as owner:
        with session_factory() as s:
            assert s.get(PipelineLock, "normalization").owner == owner == "live:2"
