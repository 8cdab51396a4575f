# skillnorm/pipeline/user_skills.py
import asyncio

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from skillnorm.core.config import settings
from skillnorm.core.errors import CorpusFetchError, LLMResponseError
from skillnorm.core.logging_config import get_logger
from skillnorm.db.locks import SKILLS_LOCK, single_runner
from skillnorm.db.models import SKILL_TEXT_LENGTH, UserProfile
from skillnorm.db.repository import fetch_all, fetch_canonical_keys, get_or_create_skill, link_user
from skillnorm.llm.client import LLMClient, parse_json_response
from skillnorm.llm.prompts import USER_SKILLS_SYSTEM, user_skills_prompt
from skillnorm.llm.usage import UsageAccumulator
from skillnorm.nlp.normalizer import normalize
from skillnorm.nlp.similarity import closest_match
from skillnorm.pipeline.extractor import TRANSIENT_ERRORS
from skillnorm.schemas.llm import SkillListResponse
from skillnorm.schemas.skills import UserSkillsSummary

logger = get_logger(__name__)

PROFILE_FIELDS = ("technical_skills", "soft_skills", "extra_curriculars", "personal_projects")


def profile_text(profile: UserProfile) -> str:
    parts = [getattr(profile, f) for f in PROFILE_FIELDS]
    return "\n".join(p.strip() for p in parts if isinstance(p, str) and p.strip())


async def extract_user_skills(
    llm: LLMClient, text: str, usage: UsageAccumulator, batch_number: int, model: str | None = None
) -> list[str]:
    completion = await llm.complete_json(
        model or settings.USER_SKILLS_MODEL, USER_SKILLS_SYSTEM, user_skills_prompt(text),
        max_tokens=settings.EXTRACT_MAX_TOKENS,
    )
    usage.record(completion, batch_number)
    try:
        return parse_json_response(completion.content, SkillListResponse).skills
    except LLMResponseError as e:
        logger.warning(f"Invalid JSON for user skills | preview: {e.preview!r}")
        return []


def link_user_skills(
    s: Session,
    user_id: str,
    skills: list[str],
    corpus: list[str],
    threshold: float | None = None,
) -> tuple[int, int]:
    """
    Resolve extracted names against the dictionary and link them to a user.

    Each name maps to its closest dictionary key when that scores at least
    ``threshold``; otherwise it is added as a new skill with no references.
    ``corpus`` is extended in place with new keys. Returns
    (new skills, new links). The caller commits.
    """
    threshold = settings.USER_MATCH_THRESHOLD if threshold is None else threshold
    skill_ids: list[int] = []
    created_count = 0
    seen: set[str] = set()
    for name in skills:
        key = normalize(name)
        if not key or key in seen:
            continue
        if len(name) > SKILL_TEXT_LENGTH:
            logger.warning(f"Skipping overlong skill for user {user_id}: {name[:50]!r}...")
            continue
        seen.add(key)
        match = closest_match(key, corpus, threshold=threshold)
        skill, created = get_or_create_skill(s, match or name)
        if created:
            created_count += 1
            corpus.append(skill.canonical_key)
        skill_ids.append(skill.id)
    links = link_user(s, user_id, skill_ids)
    logger.info(f"Linked {links} new skill(s) to user {user_id}")
    return created_count, links


async def run_user_skills(
    session_factory: sessionmaker,
    llm: LLMClient,
    batch_size: int | None = None,
    threshold: float | None = None,
    batch_delay: float | None = None,
) -> UserSkillsSummary:
    batch_size = batch_size or settings.USER_BATCH_SIZE
    batch_delay = settings.LLM_BATCH_DELAY_SECONDS if batch_delay is None else batch_delay
    summary = UserSkillsSummary()
    usage = UsageAccumulator("user_skills")

    with single_runner(session_factory, SKILLS_LOCK):
        with session_factory() as s:
            try:
                profiles = fetch_all(s, select(UserProfile).order_by(UserProfile.user_id), scalars=True)
            except SQLAlchemyError as e:
                raise CorpusFetchError("user profiles", e) from e
        summary.users = len(profiles)

        try:
            for start in range(0, len(profiles), batch_size):
                batch_number = start // batch_size + 1
                batch = [(p.user_id, profile_text(p)) for p in profiles[start:start + batch_size]]
                with session_factory() as s:
                    corpus = fetch_canonical_keys(s)

                results = await asyncio.gather(
                    *(extract_user_skills(llm, text, usage, batch_number) for _, text in batch if text),
                    return_exceptions=True,
                )
                answers = iter(results)
                for user_id, text in batch:
                    if not text:
                        logger.info(f"User {user_id} has no profile text, skipping")
                        summary.skipped += 1
                        continue
                    skills = next(answers)
                    if isinstance(skills, BaseException):
                        if not isinstance(skills, TRANSIENT_ERRORS):
                            raise skills
                        logger.error(f"Skill extraction failed for user {user_id}: {skills}")
                        summary.skipped += 1
                        continue
                    with session_factory() as s:
                        new_skills, links = link_user_skills(s, user_id, skills, corpus, threshold=threshold)
                        s.commit()
                    summary.new_skills += new_skills
                    summary.links_created += links
                    if links:
                        summary.linked_users += 1

                usage.flush(session_factory)
                if start + batch_size < len(profiles) and batch_delay > 0:
                    await asyncio.sleep(batch_delay)
        finally:
            usage.flush(session_factory)

    summary.usage = usage.totals()
    usage.log_summary()
    return summary
