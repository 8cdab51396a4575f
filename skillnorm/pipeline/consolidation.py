# skillnorm/pipeline/consolidation.py
from typing import Iterable

from rapidfuzz import process
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from skillnorm.core.config import settings
from skillnorm.core.errors import CorpusFetchError
from skillnorm.core.logging_config import get_logger
from skillnorm.db.locks import SKILLS_LOCK, single_runner
from skillnorm.db.models import ConsolidatedDocument, Skill, SkillJob, UserSkill
from skillnorm.nlp.similarity import dice_coefficient
from skillnorm.schemas.skills import ConsolidationSummary

logger = get_logger(__name__)


def _repoint(s: Session, model, owner_col: str, loser_id: int, survivor_id: int) -> int:
    """Move links from loser to survivor; links the survivor already has are dropped."""
    owner = getattr(model, owner_col)
    have = set(s.execute(select(owner).where(model.skill_id == survivor_id)).scalars())
    moved = 0
    for link in s.execute(select(model).where(model.skill_id == loser_id)).scalars().all():
        key = getattr(link, owner_col)
        if key in have:
            s.delete(link)
        else:
            link.skill_id = survivor_id
            have.add(key)
            moved += 1
    # the next loser folding into this survivor must see these links
    s.flush()
    return moved


def _dedupe(names: Iterable[str]) -> list[str]:
    out: list[str] = []
    for n in names:
        if n not in out:
            out.append(n)
    return out


def _rename_in_documents(s: Session, renames: dict[str, str], processing_ids: set[str]) -> int:
    """Replace merged display names in consolidated documents. Returns documents changed."""
    changed = 0
    pids = sorted(processing_ids)
    for i in range(0, len(pids), 500):
        docs = s.execute(
            select(ConsolidatedDocument).where(ConsolidatedDocument.processing_id.in_(pids[i:i + 500]))
        ).scalars().all()
        for doc in docs:
            required = _dedupe(renames.get(n, n) for n in doc.required_skills)
            to_learn = [n for n in _dedupe(renames.get(n, n) for n in doc.skills_to_learn) if n not in required]
            if required == doc.required_skills and to_learn == doc.skills_to_learn:
                continue
            doc.required_skills = required
            doc.skills_to_learn = to_learn
            doc.skills_csv = ", ".join(required + to_learn)
            changed += 1
    return changed


def consolidate_similar_skills(s: Session, threshold: float | None = None) -> ConsolidationSummary:
    """
    Merge near-identical dictionary entries in one transaction.

    Skills are walked in id order; each one either survives or folds into
    the best-scoring earlier survivor whose key similarity is above
    ``threshold``. Merged references are added to the survivor, links
    follow it, consolidated documents are renamed to the survivor's
    display name, and the merged rows are deleted, so the sum of
    total_references is unchanged.

    Callers outside a normalization run should use ``run_consolidation``,
    which holds the skills lock.
    """
    threshold = settings.CONSOLIDATION_THRESHOLD if threshold is None else threshold
    try:
        rows = list(s.execute(select(Skill).order_by(Skill.id)).scalars().all())
    except SQLAlchemyError as e:
        raise CorpusFetchError("skills", e) from e

    summary = ConsolidationSummary(before=len(rows))
    survivors: list[Skill] = []
    survivor_keys: list[str] = []
    merged: list[tuple[Skill, Skill]] = []

    for row in rows:
        hit = None
        if survivor_keys:
            hit = process.extractOne(row.canonical_key, survivor_keys, scorer=dice_coefficient,
                                     score_cutoff=threshold)
        if hit is None or hit[1] <= threshold:
            survivors.append(row)
            survivor_keys.append(row.canonical_key)
            continue
        target = survivors[hit[2]]
        target.total_references += row.total_references
        merged.append((row, target))
        logger.info(f"Merging '{row.canonical_key}' into '{target.canonical_key}' ({hit[1]:.3f})")

    try:
        affected: set[str] = set()
        renames: dict[str, str] = {}
        for loser, target in merged:
            affected.update(s.execute(select(SkillJob.processing_id).where(SkillJob.skill_id == loser.id)).scalars())
            if loser.skill_name != target.skill_name:
                renames[loser.skill_name] = target.skill_name
            _repoint(s, SkillJob, "processing_id", loser.id, target.id)
            _repoint(s, UserSkill, "user_id", loser.id, target.id)
        if renames:
            summary.documents_rewritten = _rename_in_documents(s, renames, affected)
        for loser, _ in merged:
            s.delete(loser)
        s.commit()
    except SQLAlchemyError:
        s.rollback()
        raise

    summary.merged = len(merged)
    summary.after = len(survivors)
    summary.total_references = sum(sk.total_references for sk in survivors)
    logger.info(f"Consolidated skills: {summary.before} -> {summary.after} ({summary.merged} merged, "
                f"{summary.documents_rewritten} document(s) rewritten)")
    return summary


def run_consolidation(session_factory: sessionmaker, threshold: float | None = None) -> ConsolidationSummary:
    with single_runner(session_factory, SKILLS_LOCK):
        with session_factory() as s:
            return consolidate_similar_skills(s, threshold=threshold)
