# skillnorm/db/repository.py
"""
Data-access helpers shared by the pipeline stages.

Reads of a required corpus wrap SQLAlchemy failures in CorpusFetchError so
callers can treat them as fatal; writes use upsert-by-unique-key semantics
so re-runs stay idempotent without explicit locking.
"""
from typing import Iterable

import numpy as np
from sqlalchemy import Select, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from skillnorm.core.config import settings
from skillnorm.core.errors import CorpusFetchError
from skillnorm.core.logging_config import get_logger
from skillnorm.db.models import Skill, SkillJob, SkillMention, SkillVector, UserSkill
from skillnorm.nlp.normalizer import display_name, normalize
from skillnorm.schemas.skills import VectorRecord

logger = get_logger(__name__)


# ---------- Pagination ----------
def fetch_all(s: Session, stmt: Select, page_size: int | None = None, scalars: bool = False) -> list:
    """Read an ordered statement page by page until a short page comes back."""
    page_size = page_size or settings.PAGE_SIZE
    out: list = []
    offset = 0
    while True:
        res = s.execute(stmt.limit(page_size).offset(offset))
        page = list(res.scalars().all() if scalars else res.all())
        out.extend(page)
        logger.debug(f"Fetched {len(page)} rows (total: {len(out)})")
        if len(page) < page_size:
            return out
        offset += page_size


# ---------- Vectors ----------
def encode_vector(vec: np.ndarray) -> bytes:
    return np.asarray(vec, dtype=np.float32).tobytes()


def decode_vector(blob: bytes) -> np.ndarray:
    return np.frombuffer(blob, dtype=np.float32)


def load_vectors(s: Session, page_size: int | None = None) -> list[VectorRecord]:
    """All stored vectors in id order; the order fixes cluster representatives."""
    try:
        rows = fetch_all(
            s,
            select(SkillVector.id, SkillVector.mention_id, SkillVector.vector).order_by(SkillVector.id),
            page_size=page_size,
        )
    except SQLAlchemyError as e:
        raise CorpusFetchError("skill vectors", e) from e
    return [
        VectorRecord(id=vid, mention_id=mid, embedding=decode_vector(blob).tolist())
        for vid, mid, blob in rows
    ]


# ---------- Canonical skill dictionary ----------
def fetch_canonical_keys(s: Session) -> list[str]:
    """Current dictionary keys, id order. Fatal if unreadable."""
    try:
        return list(s.execute(select(Skill.canonical_key).order_by(Skill.id)).scalars().all())
    except SQLAlchemyError as e:
        raise CorpusFetchError("skills", e) from e


def fetch_skills_by_key(s: Session, keys: Iterable[str]) -> dict[str, Skill]:
    keys = list(set(keys))
    out: dict[str, Skill] = {}
    # stay well under SQLite's bound-parameter limit
    for i in range(0, len(keys), 500):
        part = keys[i:i + 500]
        for sk in s.execute(select(Skill).where(Skill.canonical_key.in_(part))).scalars():
            out[sk.canonical_key] = sk
    return out


def get_or_create_skill(s: Session, name: str, total_references: int = 0) -> tuple[Skill, bool]:
    """
    Insert a canonical skill or reuse the row that already owns its key.

    The insert runs in a savepoint; a uniqueness conflict (a concurrent or
    earlier run created the key) rolls back only the savepoint and the
    existing row is fetched instead. Returns (skill, created).
    """
    key = normalize(name)
    if not key:
        raise ValueError("skill name normalizes to an empty key")

    existing = s.execute(select(Skill).where(Skill.canonical_key == key)).scalar_one_or_none()
    if existing is not None:
        return existing, False
    return insert_skill_or_fetch(s, name, total_references)


def insert_skill_or_fetch(s: Session, name: str, total_references: int = 0) -> tuple[Skill, bool]:
    key = normalize(name)
    skill = Skill(skill_name=display_name(name), canonical_key=key, total_references=total_references)
    try:
        with s.begin_nested():
            s.add(skill)
    except IntegrityError:
        logger.info(f"Skill '{key}' already exists, reusing it")
        skill = s.execute(select(Skill).where(Skill.canonical_key == key)).scalar_one()
        return skill, False
    return skill, True


def link_documents(s: Session, skill_id: int, processing_ids: Iterable[str]) -> int:
    """Insert missing (processing_id, skill_id) pairs. Returns how many were new."""
    wanted = set(pid for pid in processing_ids if pid)
    if not wanted:
        return 0
    have = set(
        s.execute(
            select(SkillJob.processing_id).where(
                SkillJob.skill_id == skill_id, SkillJob.processing_id.in_(wanted)
            )
        ).scalars()
    )
    new = sorted(wanted - have)
    s.add_all([SkillJob(processing_id=pid, skill_id=skill_id) for pid in new])
    s.flush()
    return len(new)


def link_user(s: Session, user_id: str, skill_ids: Iterable[int]) -> int:
    wanted = set(skill_ids)
    if not wanted:
        return 0
    have = set(
        s.execute(
            select(UserSkill.skill_id).where(UserSkill.user_id == user_id, UserSkill.skill_id.in_(wanted))
        ).scalars()
    )
    new = sorted(wanted - have)
    s.add_all([UserSkill(user_id=user_id, skill_id=sid) for sid in new])
    s.flush()
    return len(new)


def mention_documents(s: Session, mention_ids: Iterable[int]) -> dict[int, SkillMention]:
    ids = list(set(mention_ids))
    if not ids:
        return {}
    rows = s.execute(select(SkillMention).where(SkillMention.id.in_(ids))).scalars().all()
    return {m.id: m for m in rows}
