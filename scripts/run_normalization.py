# scripts/run_normalization.py
"""Safe to schedule: a run with no new extracted documents makes no LLM calls."""
import asyncio

from skillnorm.core.errors import CorpusFetchError, PipelineLockedError
from skillnorm.core.logging_config import get_logger, setup_logging
from skillnorm.db.session import SessionLocal
from skillnorm.llm.client import LLMClient
from skillnorm.pipeline.orchestrator import SkillNormalizer

logger = get_logger("scripts.run_normalization")


def main():
    setup_logging()
    try:
        summary = asyncio.run(SkillNormalizer(SessionLocal, LLMClient()).normalize())
    except PipelineLockedError as e:
        logger.warning(f"{e}; nothing to do")
        return
    except CorpusFetchError as e:
        logger.error(str(e))
        raise SystemExit(1)

    if summary.deferred:
        print(f"⏸ {summary.delta} new document(s), waiting for a bigger batch")
        return
    print(f"✅ Normalized {summary.documents_written} documents: {summary.unique_skills} unique skills, "
          f"{summary.renamed} renamed, {summary.merged_by_consolidation} merged, "
          f"${summary.usage.cost_usd:.4f}")


if __name__ == "__main__":
    main()
