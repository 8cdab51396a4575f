# scripts/consolidate_skills.py
from skillnorm.core.errors import CorpusFetchError, PipelineLockedError
from skillnorm.core.logging_config import get_logger, setup_logging
from skillnorm.db.session import SessionLocal
from skillnorm.pipeline.consolidation import run_consolidation

logger = get_logger("scripts.consolidate_skills")


def main():
    setup_logging()
    try:
        summary = run_consolidation(SessionLocal)
    except PipelineLockedError as e:
        logger.warning(f"{e}; nothing to do")
        return
    except CorpusFetchError as e:
        logger.error(str(e))
        raise SystemExit(1)
    print(f"✅ Skills: {summary.before} -> {summary.after} "
          f"({summary.merged} merged, {summary.total_references} references, "
          f"{summary.documents_rewritten} documents rewritten)")


if __name__ == "__main__":
    main()
