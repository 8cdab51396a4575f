"""
Tests for LLM skill extraction over job descriptions.
"""
import json
import re

import httpx
import openai
import pytest
from sqlalchemy import func, select

from conftest import FakeLLMClient, description_from_prompt
from skillnorm.db.models import ExtractedDocument, SkillMention, UsageLedgerEntry
from skillnorm.llm.usage import UsageAccumulator
from skillnorm.pipeline.extractor import SkillExtractor, merge_mentions, pending_documents, run_extraction
from skillnorm.schemas.llm import ExtractedSkill
from skillnorm.schemas.skills import SourceDocument

KNOWN = ["Python", "SQL", "Docker", "Excel"]


def keyword_extractor(system, user):
    """Reply with every known skill named in the chunk, as spelled there."""
    text = description_from_prompt(user)
    if "EXPLODE" in text:
        return openai.APIConnectionError(request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions"))
    if "GARBLED" in text:
        return "Sure! Here are the skills: Python"
    skills = []
    for name in KNOWN:
        m = re.search(re.escape(name), text, re.I)
        if m:
            skills.append({"skill": m.group(0), "required": "must" in text.lower() or "requires" in text.lower()})
    return json.dumps({"skills": skills})


def test_merge_mentions_dedupes_case_insensitively():
    chunks = [
        [ExtractedSkill(skill="Python", required=False), ExtractedSkill(skill="SQL", required=True)],
        [ExtractedSkill(skill="python ", required=True), ExtractedSkill(skill="  ", required=True)],
    ]
    mentions = merge_mentions("doc-1", chunks)

    assert [(m.raw_text, m.canonical_key, m.required) for m in mentions] == [
        ("Python", "python", True),
        ("SQL", "sql", True),
    ]
    assert all(m.source_document_id == "doc-1" for m in mentions)


async def test_extract_merges_chunks_in_order():
    llm = FakeLLMClient(handler=keyword_extractor)
    extractor = SkillExtractor(llm, chunk_chars=40, chunk_batch_size=2)
    doc = SourceDocument(
        id="doc-1",
        text="Nice to have Docker experience. We use python daily. Must know PYTHON and Excel.",
    )
    usage = UsageAccumulator("extract")

    mentions = await extractor.extract(doc, usage)

    assert len(llm.calls) == 3
    assert usage.totals().calls == 3
    assert [m.canonical_key for m in mentions] == ["docker", "python", "excel"]
    python = mentions[1]
    assert python.raw_text == "python"
    assert python.required


async def test_malformed_chunk_contributes_nothing():
    llm = FakeLLMClient(handler=keyword_extractor)
    extractor = SkillExtractor(llm, chunk_chars=30)
    doc = SourceDocument(id="doc-1", text="GARBLED output incoming. Must know SQL.")

    mentions = await extractor.extract(doc)

    assert [m.canonical_key for m in mentions] == ["sql"]


async def test_api_error_fails_the_document():
    llm = FakeLLMClient(handler=keyword_extractor)
    with pytest.raises(openai.APIError):
        await SkillExtractor(llm).extract(SourceDocument(id="doc-1", text="EXPLODE"))


async def test_empty_description_makes_no_calls():
    llm = FakeLLMClient(handler=keyword_extractor)
    assert await SkillExtractor(llm).extract(SourceDocument(id="doc-1", text="   ")) == []
    assert llm.calls == []


def test_pending_documents_skips_null_and_extracted(session, seed_descriptions, seed_extracted):
    seed_descriptions({"a": "Must know Python", "b": None, "c": "Excel"})
    seed_extracted({"c": [("Excel", False)]})
    assert [d.id for d in pending_documents(session)] == ["a"]


async def test_run_extraction_skips_failed_documents(session_factory, seed_descriptions):
    seed_descriptions({
        "job-1": "Must know Python and SQL.",
        "job-2": "EXPLODE",
        "job-3": "Docker is nice to have.",
    })
    llm = FakeLLMClient(handler=keyword_extractor)

    summary = await run_extraction(session_factory, llm, doc_batch_size=2, flush_every=1)

    assert summary.pending == 3
    assert summary.processed == 2
    assert summary.skipped == 1
    assert summary.mentions == 3
    with session_factory() as s:
        done = s.execute(select(ExtractedDocument.processing_id).order_by(ExtractedDocument.processing_id)).scalars().all()
        assert done == ["job-1", "job-3"]
        keys = s.execute(
            select(SkillMention.canonical_key).where(SkillMention.processing_id == "job-1").order_by(SkillMention.id)
        ).scalars().all()
        assert keys == ["python", "sql"]
        # one ledger row per successful call, flushed as documents complete
        assert s.execute(select(func.count(UsageLedgerEntry.id))).scalar_one() == 2


async def test_rerun_only_processes_remaining_documents(session_factory, seed_descriptions):
    seed_descriptions({"job-1": "Must know Python.", "job-2": "Excel please."})
    llm = FakeLLMClient(handler=keyword_extractor)
    await run_extraction(session_factory, llm)
    calls = len(llm.calls)

    summary = await run_extraction(session_factory, llm)

    assert summary.pending == 0
    assert len(llm.calls) == calls


def test_merge_mentions_drops_overlong_strings():
    rambling = "experience with " + "distributed systems " * 20
    chunks = [[ExtractedSkill(skill=rambling, required=True), ExtractedSkill(skill="Docker", required=False)]]

    assert [m.canonical_key for m in merge_mentions("doc-1", chunks)] == ["docker"]


async def test_ledger_is_written_while_the_run_is_in_progress(session_factory, seed_descriptions):
    seed_descriptions({f"job-{i}": "Must know Python." for i in range(1, 5)})
    seen = []

    def counting_extractor(system, user):
        with session_factory() as s:
            seen.append(s.execute(select(func.count(UsageLedgerEntry.id))).scalar_one())
        return keyword_extractor(system, user)

    llm = FakeLLMClient(handler=counting_extractor)
    await run_extraction(session_factory, llm, doc_batch_size=1, flush_every=2)

    # rows appear every two completed documents, before the run finishes
    assert seen == [0, 0, 2, 2]
    with session_factory() as s:
        assert s.execute(select(func.count(UsageLedgerEntry.id))).scalar_one() == 4


async def test_crash_keeps_ledger_rows_for_finished_documents(session_factory, seed_descriptions):
    seed_descriptions({"job-1": "Must know Python.", "job-2": "Excel please.", "job-3": "CRASH now."})
    at_crash = []

    def crashing_extractor(system, user):
        if "CRASH" in description_from_prompt(user):
            with session_factory() as s:
                at_crash.append(s.execute(select(func.count(UsageLedgerEntry.id))).scalar_one())
            raise RuntimeError("worker died")
        return keyword_extractor(system, user)

    with pytest.raises(RuntimeError):
        await run_extraction(session_factory, FakeLLMClient(handler=crashing_extractor),
                             doc_batch_size=1, flush_every=1)

    assert at_crash == [2]
    with session_factory() as s:
        done = s.execute(select(ExtractedDocument.processing_id).order_by(ExtractedDocument.processing_id)).scalars().all()
        assert done == ["job-1", "job-2"]
