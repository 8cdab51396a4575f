# scripts/run_extraction.py
import asyncio

from skillnorm.core.errors import CorpusFetchError, PipelineLockedError
from skillnorm.core.logging_config import get_logger, setup_logging
from skillnorm.db.session import SessionLocal
from skillnorm.llm.client import LLMClient
from skillnorm.pipeline.extractor import run_extraction

logger = get_logger("scripts.run_extraction")


def main():
    setup_logging()
    try:
        summary = asyncio.run(run_extraction(SessionLocal, LLMClient()))
    except PipelineLockedError as e:
        logger.warning(f"{e}; nothing to do")
        return
    except CorpusFetchError as e:
        logger.error(str(e))
        raise SystemExit(1)
    print(f"✅ Extracted {summary.processed}/{summary.pending} descriptions "
          f"({summary.skipped} skipped, {summary.mentions} mentions, ${summary.usage.cost_usd:.4f})")


if __name__ == "__main__":
    main()
