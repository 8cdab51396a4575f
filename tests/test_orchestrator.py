"""
Tests for incremental normalization into the canonical skill dictionary.
"""
import json

import httpx
import openai
import pytest
from sqlalchemy import func, select

from conftest import FakeLLMClient, tasks_from_prompt
from skillnorm.core.errors import PipelineLockedError
from skillnorm.db.locks import SKILLS_LOCK, single_runner
from skillnorm.db.models import ConsolidatedDocument, Skill, SkillJob, UsageLedgerEntry
from skillnorm.pipeline.extractor import run_extraction
from skillnorm.pipeline.orchestrator import SkillNormalizer, compute_delta
from test_extractor import keyword_extractor

PREFERRED = {"python": "Python", "sql": "SQL", "js": "JavaScript", "javascript": "JavaScript"}


def preferred_names(system, user):
    """Map every task to a preferred spelling, or leave it unchanged."""
    return json.dumps({"mappings": {t["skill"]: PREFERRED.get(t["skill"], t["skill"]) for t in tasks_from_prompt(user)}})


def _skills(s):
    return {sk.canonical_key: sk for sk in s.execute(select(Skill)).scalars()}


async def test_scenario_a_end_to_end(session_factory, seed_descriptions):
    seed_descriptions({"job-1": "Must know Python and SQL", "job-2": "Requires python, sql"})
    await run_extraction(session_factory, FakeLLMClient(handler=keyword_extractor))

    llm = FakeLLMClient(handler=preferred_names)
    summary = await SkillNormalizer(session_factory, llm, min_batch=1).normalize()

    assert summary.delta == 2
    assert summary.unique_skills == 2
    assert len(llm.calls) == 1
    with session_factory() as s:
        skills = _skills(s)
        assert set(skills) == {"python", "sql"}
        assert skills["python"].total_references == 2
        assert skills["sql"].total_references == 2
        assert skills["sql"].skill_name == "SQL"
        pairs = s.execute(select(SkillJob.processing_id, SkillJob.skill_id)).all()
        assert len(pairs) == 4
        for sk in skills.values():
            assert sorted(p for p, sid in pairs if sid == sk.id) == ["job-1", "job-2"]
        doc = s.get(ConsolidatedDocument, "job-2")
        assert doc.required_skills == ["Python", "SQL"]
        assert doc.skills_csv == "Python, SQL"


async def test_scenario_c_malformed_chunk_keeps_names(session_factory, seed_extracted):
    seed_extracted({"job-1": [("React", True), ("Figma", False)], "job-2": [("react", False)]})
    llm = FakeLLMClient(responses=["not valid json{"])

    summary = await SkillNormalizer(session_factory, llm, min_batch=1).normalize()

    assert summary.renamed == 0
    assert summary.documents_written == 2
    with session_factory() as s:
        skills = _skills(s)
        assert set(skills) == {"react", "figma"}
        assert skills["react"].skill_name == "React"
        assert skills["react"].total_references == 2
        doc = s.get(ConsolidatedDocument, "job-1")
        assert doc.required_skills == ["React"]
        assert doc.skills_to_learn == ["Figma"]


async def test_second_run_makes_no_llm_calls(session_factory, seed_extracted):
    seed_extracted({f"job-{i}": [("Python", True)] for i in range(5)})
    llm = FakeLLMClient(handler=preferred_names)
    normalizer = SkillNormalizer(session_factory, llm)

    await normalizer.normalize()
    calls = len(llm.calls)
    summary = await normalizer.normalize()

    assert calls == 1
    assert len(llm.calls) == calls
    assert summary.delta == 0
    with session_factory() as s:
        assert s.execute(select(Skill.total_references)).scalar_one() == 5


async def test_small_delta_is_deferred(session_factory, seed_extracted):
    seed_extracted({"job-1": [("Python", True)], "job-2": [("SQL", True)]})
    llm = FakeLLMClient(handler=preferred_names)

    summary = await SkillNormalizer(session_factory, llm, min_batch=5).normalize()

    assert summary.deferred
    assert llm.calls == []
    with session_factory() as s:
        assert compute_delta(s) == ["job-1", "job-2"]


async def test_mapping_resolves_to_existing_skill(session_factory, seed_extracted):
    with session_factory() as s:
        s.add(Skill(skill_name="JavaScript", canonical_key="javascript", total_references=4))
        s.commit()
    seed_extracted({"job-1": [("JS", True)], "job-2": [("javascript", False)]})
    llm = FakeLLMClient(handler=preferred_names)

    summary = await SkillNormalizer(session_factory, llm, min_batch=1, consolidate=False).normalize()

    assert summary.renamed == 1
    tasks = tasks_from_prompt(llm.calls[0]["user"])
    assert tasks[1] == {"skill": "javascript", "possible_matches": ["javascript"]}
    with session_factory() as s:
        skills = _skills(s)
        assert "js" not in skills
        assert skills["javascript"].total_references == 6
        assert s.get(ConsolidatedDocument, "job-1").required_skills == ["JavaScript"]


async def test_later_chunks_see_earlier_chunk_names(session_factory, seed_extracted):
    seed_extracted({"job-1": [("Machine Learning", True)], "job-2": [("Machine Learning Ops", True)]})
    llm = FakeLLMClient(handler=preferred_names)

    summary = await SkillNormalizer(session_factory, llm, min_batch=1, chunk_size=1).normalize()

    assert summary.batches == 2
    first, second = (tasks_from_prompt(c["user"]) for c in llm.calls)
    assert first[0]["possible_matches"] == []
    assert "machine learning" in second[0]["possible_matches"]
    with session_factory() as s:
        ledger = s.execute(select(UsageLedgerEntry.batch_number).order_by(UsageLedgerEntry.id)).scalars().all()
        assert ledger == [1, 2]


async def test_transient_error_leaves_chunk_unchanged(session_factory, seed_extracted):
    seed_extracted({"job-1": [("Python", True)]})
    error = openai.APITimeoutError(request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions"))
    llm = FakeLLMClient(responses=[error])

    summary = await SkillNormalizer(session_factory, llm, min_batch=1).normalize()

    assert summary.documents_written == 1
    assert summary.usage.calls == 0
    with session_factory() as s:
        assert s.execute(select(func.count(Skill.id))).scalar_one() == 1


async def test_normalize_refuses_to_run_concurrently(session_factory, seed_extracted):
    seed_extracted({"job-1": [("Python", True)]})
    llm = FakeLLMClient(handler=preferred_names)

    with single_runner(session_factory, SKILLS_LOCK, owner="other-host:1"):
        with pytest.raises(PipelineLockedError):
            await SkillNormalizer(session_factory, llm, min_batch=1).normalize()
    assert llm.calls == []


async def test_overlong_canonical_name_is_ignored(session_factory, seed_extracted):
    seed_extracted({"job-1": [("Python", True)]})
    llm = FakeLLMClient(responses=[{"mappings": {"python": "Python " + "and more " * 40}}])

    summary = await SkillNormalizer(session_factory, llm, min_batch=1).normalize()

    assert summary.renamed == 0
    with session_factory() as s:
        assert {k: sk.skill_name for k, sk in _skills(s).items()} == {"python": "Python"}
