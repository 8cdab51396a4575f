# skillnorm/api/pipeline_routes.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import sessionmaker

from skillnorm.api.deps import get_embedder, get_llm_client
from skillnorm.clustering.promoter import run_clustering
from skillnorm.db.session import get_session_factory
from skillnorm.llm.client import LLMClient
from skillnorm.nlp.embeddings import embed_pending_mentions
from skillnorm.pipeline.consolidation import run_consolidation
from skillnorm.pipeline.extractor import run_extraction
from skillnorm.pipeline.orchestrator import SkillNormalizer
from skillnorm.schemas.skills import (
    ClusteringSummary,
    ConsolidationSummary,
    ExtractionSummary,
    NormalizationSummary,
)

# PipelineLockedError -> 409 and CorpusFetchError -> 503 are mapped in main.py
router = APIRouter(prefix="/pipeline", tags=["pipeline"])


@router.post("/extract", response_model=ExtractionSummary)
async def extract(
    session_factory: sessionmaker = Depends(get_session_factory),
    llm: LLMClient = Depends(get_llm_client),
):
    return await run_extraction(session_factory, llm)


@router.post("/embed")
def embed(
    session_factory: sessionmaker = Depends(get_session_factory),
    embedder=Depends(get_embedder),
):
    return {"embedded": embed_pending_mentions(session_factory, embed=embedder)}


@router.post("/normalize", response_model=NormalizationSummary)
async def normalize(
    session_factory: sessionmaker = Depends(get_session_factory),
    llm: LLMClient = Depends(get_llm_client),
):
    return await SkillNormalizer(session_factory, llm).normalize()


@router.post("/cluster", response_model=ClusteringSummary)
def cluster(session_factory: sessionmaker = Depends(get_session_factory)):
    return run_clustering(session_factory)


@router.post("/consolidate", response_model=ConsolidationSummary)
def consolidate(session_factory: sessionmaker = Depends(get_session_factory)):
    return run_consolidation(session_factory)
