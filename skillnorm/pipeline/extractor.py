# skillnorm/pipeline/extractor.py
"""
LLM-driven skill extraction over job descriptions.

A description is split into sentence-aligned chunks, chunks are sent to
the model in concurrent batches, and the per-chunk results are merged into
one de-duplicated list of mentions for the document. A chunk whose answer
is not valid JSON contributes nothing; an API failure fails the whole
document so it stays pending for the next run.
"""
import asyncio
from typing import Iterable

import openai
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from skillnorm.core.config import settings
from skillnorm.core.errors import CorpusFetchError, LLMResponseError
from skillnorm.core.logging_config import get_logger
from skillnorm.db import models
from skillnorm.db.locks import single_runner
from skillnorm.db.repository import fetch_all
from skillnorm.llm.client import LLMClient, parse_json_response
from skillnorm.llm.prompts import EXTRACT_SYSTEM, extraction_prompt
from skillnorm.llm.usage import UsageAccumulator
from skillnorm.nlp.chunking import chunk_text
from skillnorm.nlp.normalizer import normalize
from skillnorm.schemas.llm import ExtractedSkill, ExtractionResponse
from skillnorm.schemas.skills import ExtractionSummary, SkillMention, SourceDocument

logger = get_logger(__name__)

# failures that skip one unit of work instead of aborting the run
TRANSIENT_ERRORS = (openai.APIError, asyncio.TimeoutError)


def merge_mentions(document_id: str, chunk_results: Iterable[list[ExtractedSkill]]) -> list[SkillMention]:
    """
    Fold per-chunk answers into one mention per canonical key.

    First spelling wins; a skill is required if any chunk said so. Strings
    longer than the mention column are dropped.
    """
    merged: dict[str, SkillMention] = {}
    for skills in chunk_results:
        for item in skills:
            key = normalize(item.skill)
            if not key:
                continue
            raw = " ".join(item.skill.split())
            if len(raw) > models.SKILL_TEXT_LENGTH:
                logger.warning(f"Dropping overlong skill in {document_id}: {raw[:50]!r}...")
                continue
            if key in merged:
                merged[key].required = merged[key].required or item.required
            else:
                merged[key] = SkillMention(
                    source_document_id=document_id,
                    raw_text=raw,
                    canonical_key=key,
                    required=item.required,
                )
    return list(merged.values())


class SkillExtractor:
    def __init__(
        self,
        llm: LLMClient,
        model: str | None = None,
        chunk_chars: int | None = None,
        chunk_batch_size: int | None = None,
        max_tokens: int | None = None,
    ):
        self.llm = llm
        self.model = model or settings.EXTRACT_MODEL
        self.chunk_chars = chunk_chars or settings.EXTRACT_CHUNK_CHARS
        self.chunk_batch_size = chunk_batch_size or settings.EXTRACT_CHUNK_BATCH_SIZE
        self.max_tokens = max_tokens or settings.EXTRACT_MAX_TOKENS

    async def _extract_chunk(
        self, document_id: str, chunk: str, usage: UsageAccumulator, batch_number: int
    ) -> list[ExtractedSkill]:
        completion = await self.llm.complete_json(
            self.model, EXTRACT_SYSTEM, extraction_prompt(chunk), max_tokens=self.max_tokens
        )
        usage.record(completion, batch_number)
        try:
            return parse_json_response(completion.content, ExtractionResponse).skills
        except LLMResponseError as e:
            logger.warning(f"JSON parse failed for {document_id}: {e} | preview: {e.preview!r}")
            return []

    async def extract(
        self,
        document: SourceDocument,
        usage: UsageAccumulator | None = None,
        batch_number: int = 0,
    ) -> list[SkillMention]:
        usage = usage if usage is not None else UsageAccumulator("extract")
        chunks = chunk_text(document.text, self.chunk_chars)
        if not chunks:
            return []

        results: list[list[ExtractedSkill]] = []
        for i in range(0, len(chunks), self.chunk_batch_size):
            batch = chunks[i:i + self.chunk_batch_size]
            # gather keeps chunk order, so "first spelling wins" is stable
            results.extend(await asyncio.gather(
                *(self._extract_chunk(document.id, c, usage, batch_number) for c in batch)
            ))

        mentions = merge_mentions(document.id, results)
        logger.debug(f"{document.id}: {len(chunks)} chunk(s) -> {len(mentions)} skill(s)")
        return mentions


# ---------- Persistence ----------
def pending_documents(s: Session, page_size: int | None = None) -> list[SourceDocument]:
    """Descriptions with text that have never been extracted, by processing_id."""
    stmt = (
        select(models.Description.processing_id, models.Description.description)
        .where(
            models.Description.description.is_not(None),
            models.Description.processing_id.not_in(select(models.ExtractedDocument.processing_id)),
        )
        .order_by(models.Description.processing_id)
    )
    try:
        rows = fetch_all(s, stmt, page_size=page_size)
    except SQLAlchemyError as e:
        raise CorpusFetchError("descriptions", e) from e
    return [SourceDocument(id=pid, text=text) for pid, text in rows]


def save_mentions(s: Session, document_id: str, mentions: list[SkillMention]) -> None:
    s.add(models.ExtractedDocument(
        processing_id=document_id,
        mention_count=len(mentions),
        skills_csv=", ".join(m.raw_text for m in mentions),
    ))
    s.add_all([
        models.SkillMention(
            processing_id=document_id,
            raw_text=m.raw_text,
            canonical_key=m.canonical_key,
            required=m.required,
        )
        for m in mentions
    ])


async def run_extraction(
    session_factory: sessionmaker,
    llm: LLMClient,
    extractor: SkillExtractor | None = None,
    doc_batch_size: int | None = None,
    flush_every: int | None = None,
    batch_delay: float | None = None,
    page_size: int | None = None,
) -> ExtractionSummary:
    extractor = extractor or SkillExtractor(llm)
    doc_batch_size = doc_batch_size or settings.EXTRACT_DOC_BATCH_SIZE
    flush_every = flush_every or settings.LEDGER_FLUSH_EVERY
    batch_delay = settings.LLM_BATCH_DELAY_SECONDS if batch_delay is None else batch_delay
    summary = ExtractionSummary()

    with single_runner(session_factory, "extraction"):
        with session_factory() as s:
            pending = pending_documents(s, page_size=page_size)
        summary.pending = len(pending)
        logger.info(f"{len(pending)} description(s) pending extraction")

        usage = UsageAccumulator("extract")
        since_flush = 0
        try:
            for start in range(0, len(pending), doc_batch_size):
                batch_number = start // doc_batch_size + 1
                batch = pending[start:start + doc_batch_size]
                results = await asyncio.gather(
                    *(extractor.extract(doc, usage, batch_number) for doc in batch),
                    return_exceptions=True,
                )

                for doc, result in zip(batch, results):
                    if isinstance(result, BaseException):
                        if not isinstance(result, TRANSIENT_ERRORS):
                            raise result
                        logger.error(f"Extraction failed for {doc.id}, leaving it pending: {result}")
                        summary.skipped += 1
                        continue

                    with session_factory() as s:
                        save_mentions(s, doc.id, result)
                        s.commit()
                    summary.processed += 1
                    summary.mentions += len(result)
                    since_flush += 1
                    logger.info(f"Processed {doc.id}: {len(result)} skill(s)")

                    if since_flush >= flush_every:
                        usage.flush(session_factory)
                        since_flush = 0

                if start + doc_batch_size < len(pending) and batch_delay > 0:
                    await asyncio.sleep(batch_delay)
        finally:
            usage.flush(session_factory)

        summary.usage = usage.totals()
        usage.log_summary()

    logger.info(f"Extraction done: processed={summary.processed}, skipped={summary.skipped}, "
                f"mentions={summary.mentions}")
    return summary
