# skillnorm/pipeline/orchestrator.py
"""
Incremental normalization of extracted skills into the canonical dictionary.

Only documents that were extracted but never normalized are processed, so
a scheduled run over a fully processed corpus makes no LLM calls. Unique
mention keys are sent to the model in sequential chunks; every chunk is
grounded against a freshly read dictionary so names introduced by earlier
chunks are offered as matches to later ones.
"""
import asyncio
from collections import Counter, defaultdict
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from skillnorm.core.config import settings
from skillnorm.core.errors import CorpusFetchError, LLMResponseError
from skillnorm.core.logging_config import get_logger
from skillnorm.db.locks import SKILLS_LOCK, single_runner
from skillnorm.db.models import SKILL_TEXT_LENGTH, ConsolidatedDocument, ExtractedDocument, SkillMention
from skillnorm.db.repository import fetch_all, fetch_canonical_keys, fetch_skills_by_key, get_or_create_skill, link_documents
from skillnorm.llm.client import LLMClient, parse_json_response
from skillnorm.llm.prompts import NORMALIZE_SYSTEM, normalization_prompt
from skillnorm.llm.usage import UsageAccumulator
from skillnorm.nlp.normalizer import normalize
from skillnorm.nlp.similarity import find_similar
from skillnorm.pipeline.consolidation import consolidate_similar_skills
from skillnorm.pipeline.extractor import TRANSIENT_ERRORS
from skillnorm.schemas.llm import NormalizationResponse
from skillnorm.schemas.skills import NormalizationSummary

logger = get_logger(__name__)


@dataclass
class DocMention:
    key: str
    raw_text: str
    required: bool


# ---------- Delta ----------
def compute_delta(s: Session, page_size: int | None = None) -> list[str]:
    """Extracted processing_ids that have no consolidated row yet, sorted."""
    try:
        extracted = fetch_all(
            s, select(ExtractedDocument.processing_id).order_by(ExtractedDocument.processing_id),
            page_size=page_size, scalars=True,
        )
        done = fetch_all(
            s, select(ConsolidatedDocument.processing_id).order_by(ConsolidatedDocument.processing_id),
            page_size=page_size, scalars=True,
        )
    except SQLAlchemyError as e:
        raise CorpusFetchError("extracted documents", e) from e
    return sorted(set(extracted) - set(done))


def load_mentions(s: Session, processing_ids: list[str]) -> dict[str, list[DocMention]]:
    out: dict[str, list[DocMention]] = {pid: [] for pid in processing_ids}
    try:
        for i in range(0, len(processing_ids), 500):
            part = processing_ids[i:i + 500]
            rows = s.execute(
                select(SkillMention).where(SkillMention.processing_id.in_(part)).order_by(SkillMention.id)
            ).scalars()
            for m in rows:
                out[m.processing_id].append(DocMention(m.canonical_key, m.raw_text, m.required))
    except SQLAlchemyError as e:
        raise CorpusFetchError("skill mentions", e) from e
    return out


# ---------- Orchestrator ----------
class SkillNormalizer:
    def __init__(
        self,
        session_factory: sessionmaker,
        llm: LLMClient,
        model: str | None = None,
        chunk_size: int | None = None,
        min_batch: int | None = None,
        grounding_max_results: int | None = None,
        grounding_threshold: float | None = None,
        consolidation_threshold: float | None = None,
        batch_delay: float | None = None,
        consolidate: bool = True,
        page_size: int | None = None,
    ):
        self.session_factory = session_factory
        self.llm = llm
        self.model = model or settings.NORMALIZE_MODEL
        self.chunk_size = chunk_size or settings.NORMALIZE_CHUNK_SIZE
        self.min_batch = settings.NORMALIZE_MIN_BATCH if min_batch is None else min_batch
        self.grounding_max_results = grounding_max_results or settings.GROUNDING_MAX_RESULTS
        self.grounding_threshold = (
            settings.GROUNDING_THRESHOLD if grounding_threshold is None else grounding_threshold
        )
        self.consolidation_threshold = (
            settings.CONSOLIDATION_THRESHOLD if consolidation_threshold is None else consolidation_threshold
        )
        self.batch_delay = settings.LLM_BATCH_DELAY_SECONDS if batch_delay is None else batch_delay
        self.consolidate = consolidate
        self.page_size = page_size

    async def normalize(self) -> NormalizationSummary:
        with single_runner(self.session_factory, SKILLS_LOCK):
            return await self._run()

    async def resolve_chunk(
        self, chunk: list[str], corpus: list[str], usage: UsageAccumulator, batch_number: int
    ) -> dict[str, str]:
        """
        Ask the model to map each key in ``chunk`` to a canonical name.

        Returns {key: canonical display name} for keys the model answered
        for. Missing keys, malformed output and API failures all mean
        "unchanged".
        """
        tasks = [
            {
                "skill": key,
                "possible_matches": find_similar(
                    key, corpus, max_results=self.grounding_max_results, threshold=self.grounding_threshold
                ),
            }
            for key in chunk
        ]
        try:
            completion = await self.llm.complete_json(
                self.model, NORMALIZE_SYSTEM, normalization_prompt(tasks),
                max_tokens=settings.NORMALIZE_MAX_TOKENS,
            )
        except TRANSIENT_ERRORS as e:
            logger.error(f"Batch {batch_number} LLM call failed, leaving its skills unchanged: {e}")
            return {}
        usage.record(completion, batch_number)

        try:
            parsed = parse_json_response(completion.content, NormalizationResponse)
        except LLMResponseError as e:
            logger.warning(f"Batch {batch_number}: JSON parse failed, using identity mapping | "
                           f"preview: {e.preview!r}")
            return {}

        wanted = set(chunk)
        out: dict[str, str] = {}
        for raw, target in parsed.mappings.items():
            key = normalize(raw)
            name = " ".join(target.split())
            if key in wanted and normalize(name) and len(name) <= SKILL_TEXT_LENGTH:
                out[key] = name
        return out

    async def _run(self) -> NormalizationSummary:
        summary = NormalizationSummary()
        sf = self.session_factory

        with sf() as s:
            delta = compute_delta(s, page_size=self.page_size)
        summary.delta = len(delta)
        if not delta:
            logger.info("No new documents to normalize")
            return summary
        if len(delta) < self.min_batch:
            summary.deferred = True
            logger.info(f"Only {len(delta)} new document(s), below the minimum batch of {self.min_batch}; deferring")
            return summary

        with sf() as s:
            doc_mentions = load_mentions(s, delta)

        first_raw: dict[str, str] = {}
        for mentions in doc_mentions.values():
            for m in mentions:
                if m.key:
                    first_raw.setdefault(m.key, m.raw_text)
        unique = list(first_raw)
        summary.unique_skills = len(unique)
        logger.info(f"Normalizing {len(unique)} unique skill(s) across {len(delta)} document(s)")

        usage = UsageAccumulator("normalize")
        mapping: dict[str, str] = {}
        n_batches = (len(unique) + self.chunk_size - 1) // self.chunk_size
        summary.batches = n_batches
        try:
            for b in range(n_batches):
                chunk = unique[b * self.chunk_size:(b + 1) * self.chunk_size]
                with sf() as s:
                    corpus = fetch_canonical_keys(s)
                chunk_map = await self.resolve_chunk(chunk, corpus, usage, b + 1)
                mapping.update(chunk_map)

                # make this chunk's canonical names visible to the next chunk's grounding
                with sf() as s:
                    for key in chunk:
                        get_or_create_skill(s, chunk_map.get(key) or first_raw[key])
                    s.commit()
                usage.flush(sf)
                logger.info(f"Batch {b + 1}/{n_batches} done ({len(chunk_map)} mapping(s))")

                if b + 1 < n_batches and self.batch_delay > 0:
                    await asyncio.sleep(self.batch_delay)
        finally:
            usage.flush(sf)

        summary.renamed = sum(1 for k, v in mapping.items() if normalize(v) != k)

        with sf() as s:
            self._fold_and_upsert(s, doc_mentions, mapping, first_raw, summary)
            s.commit()

        if self.consolidate:
            with sf() as s:
                result = consolidate_similar_skills(s, threshold=self.consolidation_threshold)
            summary.merged_by_consolidation = result.merged

        summary.usage = usage.totals()
        usage.log_summary()
        logger.info(f"Normalization done: documents={summary.documents_written}, "
                    f"skills={summary.skills_touched}, links={summary.links_created}")
        return summary

    def _fold_and_upsert(
        self,
        s: Session,
        doc_mentions: dict[str, list[DocMention]],
        mapping: dict[str, str],
        first_raw: dict[str, str],
        summary: NormalizationSummary,
    ) -> None:
        def target_of(key: str) -> str:
            name = mapping.get(key)
            return normalize(name) if name else key

        targets = {target_of(k) for k in first_raw}
        skills = fetch_skills_by_key(s, targets)
        for key, raw in first_raw.items():
            t = target_of(key)
            if t not in skills:
                skills[t], _ = get_or_create_skill(s, mapping.get(key) or raw)

        freq: Counter = Counter()
        docs_for: dict[str, list[str]] = defaultdict(list)
        for pid, mentions in doc_mentions.items():
            resolved: dict[str, bool] = {}
            for m in mentions:
                if not m.key:
                    continue
                t = target_of(m.key)
                resolved[t] = resolved.get(t, False) or m.required

            required = [skills[t].skill_name for t, req in resolved.items() if req]
            to_learn = [skills[t].skill_name for t, req in resolved.items() if not req]
            s.merge(ConsolidatedDocument(
                processing_id=pid,
                required_skills=required,
                skills_to_learn=to_learn,
                skills_csv=", ".join(required + to_learn),
            ))
            summary.documents_written += 1
            for t in resolved:
                freq[t] += 1
                docs_for[t].append(pid)

        for t, count in freq.items():
            skill = skills[t]
            skill.total_references += count
            summary.links_created += link_documents(s, skill.id, docs_for[t])
        summary.skills_touched = len(freq)
        s.flush()
