# scripts/link_user_skills.py
import asyncio

from skillnorm.core.errors import CorpusFetchError, PipelineLockedError
from skillnorm.core.logging_config import get_logger, setup_logging
from skillnorm.db.session import SessionLocal
from skillnorm.llm.client import LLMClient
from skillnorm.pipeline.user_skills import run_user_skills

logger = get_logger("scripts.link_user_skills")


def main():
    setup_logging()
    try:
        summary = asyncio.run(run_user_skills(SessionLocal, LLMClient()))
    except PipelineLockedError as e:
        logger.warning(f"{e}; nothing to do")
        return
    except CorpusFetchError as e:
        logger.error(str(e))
        raise SystemExit(1)
    print(f"✅ Linked {summary.links_created} skills across {summary.linked_users}/{summary.users} users "
          f"({summary.new_skills} new skills, {summary.skipped} skipped)")


if __name__ == "__main__":
    main()
