"""
Pytest configuration and shared fixtures for the skill pipeline tests.
"""
import json
import os

# keep the module-level engine off the developer's database file
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("APP_ENV", "test")

import pytest
from sqlalchemy.pool import StaticPool

from skillnorm.core.config import settings
from skillnorm.db.base import Base
from skillnorm.db.models import Description, ExtractedDocument, SkillMention, SkillVector
from skillnorm.db.repository import encode_vector
from skillnorm.db.session import make_engine, make_session_factory
from skillnorm.llm.client import Completion
from skillnorm.nlp.normalizer import normalize


class FakeLLMClient:
    """
    Stands in for LLMClient. Replies come from ``handler(system, user)``
    when given, otherwise from the ``responses`` queue. A reply that is an
    exception instance is raised instead of returned.
    """

    def __init__(self, handler=None, responses=None, prompt_tokens=100, completion_tokens=20):
        self.handler = handler
        self.responses = list(responses or [])
        self.prompt_tokens = prompt_tokens
        self.completion_tokens = completion_tokens
        self.calls = []

    async def complete_json(self, model, system, user, max_tokens=None):
        self.calls.append({"model": model, "system": system, "user": user, "max_tokens": max_tokens})
        reply = self.handler(system, user) if self.handler else self.responses.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if not isinstance(reply, str):
            reply = json.dumps(reply)
        return Completion(
            content=reply,
            model=model,
            prompt_tokens=self.prompt_tokens,
            completion_tokens=self.completion_tokens,
        )


def tasks_from_prompt(user: str) -> list[dict]:
    """The task list embedded in a normalization prompt."""
    return json.loads(user.split("Here are the tasks:", 1)[1])


def description_from_prompt(user: str) -> str:
    return user.split('"""', 2)[1]


@pytest.fixture(autouse=True)
def fast_settings(monkeypatch):
    """No sleeping between batches in tests."""
    monkeypatch.setattr(settings, "LLM_BATCH_DELAY_SECONDS", 0.0)
    monkeypatch.setattr(settings, "LOCK_TTL_SECONDS", 3600)
    return settings


@pytest.fixture
def engine():
    eng = make_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def session(session_factory):
    with session_factory() as s:
        yield s


@pytest.fixture
def seed_extracted(session_factory):
    """
    Insert extracted documents with their mentions.

    Takes {processing_id: [(raw_text, required), ...]} and returns
    {processing_id: [mention ids]}.
    """

    def _seed(docs: dict) -> dict:
        ids = {}
        with session_factory() as s:
            for pid, mentions in docs.items():
                s.add(ExtractedDocument(processing_id=pid, mention_count=len(mentions),
                                        skills_csv=", ".join(m for m, _ in mentions)))
                rows = [
                    SkillMention(processing_id=pid, raw_text=raw, canonical_key=normalize(raw), required=req)
                    for raw, req in mentions
                ]
                s.add_all(rows)
                s.flush()
                ids[pid] = [r.id for r in rows]
            s.commit()
        return ids

    return _seed


@pytest.fixture
def seed_descriptions(session_factory):
    def _seed(docs: dict) -> None:
        with session_factory() as s:
            s.add_all([Description(processing_id=pid, description=text) for pid, text in docs.items()])
            s.commit()

    return _seed


@pytest.fixture
def seed_vectors(session_factory):
    """Store one vector per mention id, in the given order."""

    def _seed(pairs) -> None:
        with session_factory() as s:
            for mention_id, vec in pairs:
                s.add(SkillVector(mention_id=mention_id, model="test", dim=len(vec), vector=encode_vector(vec)))
            s.commit()

    return _seed
