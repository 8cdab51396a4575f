# skillnorm/clustering/promoter.py
from dataclasses import dataclass
from typing import Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from skillnorm.clustering.ann import cluster, non_singletons
from skillnorm.core.config import settings
from skillnorm.core.logging_config import get_logger
from skillnorm.db.locks import SKILLS_LOCK, single_runner
from skillnorm.db.repository import get_or_create_skill, link_documents, load_vectors, mention_documents
from skillnorm.schemas.skills import ClusteringSummary, VectorRecord

logger = get_logger(__name__)


@dataclass
class Promotion:
    skill_id: int | None
    processing_ids: list[str]
    links_created: int = 0
    created: bool = False
    reason: str = ""

    @property
    def promoted(self) -> bool:
        return self.skill_id is not None


def promote_cluster(s: Session, members: Sequence[int], vectors: Sequence[VectorRecord]) -> Promotion:
    """
    Commit one cluster as a canonical skill linked to every document its
    members came from.

    The first member is the representative and names the skill. Clusters
    that trace back to fewer than two distinct documents are not promoted:
    they carry no cross-document evidence. The caller owns the transaction.
    """
    if len(members) <= 1:
        return Promotion(None, [], reason="singleton")

    mention_ids = [vectors[i].mention_id for i in members]
    mentions = mention_documents(s, mention_ids)

    rep = mentions.get(vectors[members[0]].mention_id)
    if rep is None:
        logger.error(f"Representative mention {vectors[members[0]].mention_id} not found, skipping cluster")
        return Promotion(None, [], reason="missing representative")

    processing_ids: list[str] = []
    for mid in mention_ids:
        m = mentions.get(mid)
        if m is None:
            logger.warning(f"Mention {mid} not found while walking cluster of '{rep.canonical_key}'")
            continue
        if m.processing_id not in processing_ids:
            processing_ids.append(m.processing_id)

    if len(processing_ids) <= 1:
        return Promotion(None, processing_ids, reason="single document")

    skill, created = get_or_create_skill(s, rep.raw_text)
    links = link_documents(s, skill.id, processing_ids)
    skill.total_references += links
    s.flush()

    logger.info(f"Inserted skill '{skill.canonical_key}' linked to {len(processing_ids)} processing rows "
                f"({links} new)")
    return Promotion(skill.id, processing_ids, links_created=links, created=created)


def run_clustering(
    session_factory: sessionmaker,
    top_k: int | None = None,
    sim_threshold: float | None = None,
    page_size: int | None = None,
) -> ClusteringSummary:
    top_k = top_k or settings.CLUSTER_TOP_K
    sim_threshold = settings.CLUSTER_SIM_THRESHOLD if sim_threshold is None else sim_threshold
    summary = ClusteringSummary()

    with single_runner(session_factory, SKILLS_LOCK):
        with session_factory() as s:
            vectors = load_vectors(s, page_size=page_size)
        summary.vectors = len(vectors)
        logger.info(f"Loaded {len(vectors)} vectors")

        clusters = cluster(vectors, top_k=top_k, sim_threshold=sim_threshold)
        eligible = non_singletons(clusters)
        summary.clusters = len(clusters)
        summary.eligible = len(eligible)

        for n, members in enumerate(eligible, start=1):
            logger.debug(f"Processing cluster {n}/{len(eligible)} (size: {len(members)})")
            with session_factory() as s:
                try:
                    result = promote_cluster(s, members, vectors)
                    s.commit()
                except SQLAlchemyError as e:
                    s.rollback()
                    logger.error(f"Failed to promote cluster {n}: {e}")
                    continue
            if result.promoted:
                summary.promoted += 1
                summary.links_created += result.links_created
            elif result.reason == "single document":
                summary.skipped_single_document += 1

    logger.info(f"Clustering done: {summary.model_dump()}")
    return summary
