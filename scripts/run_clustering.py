# scripts/run_clustering.py
from skillnorm.clustering.promoter import run_clustering
from skillnorm.core.errors import CorpusFetchError, PipelineLockedError
from skillnorm.core.logging_config import get_logger, setup_logging
from skillnorm.db.session import SessionLocal

logger = get_logger("scripts.run_clustering")


def main():
    setup_logging()
    try:
        summary = run_clustering(SessionLocal)
    except PipelineLockedError as e:
        logger.warning(f"{e}; nothing to do")
        return
    except CorpusFetchError as e:
        logger.error(str(e))
        raise SystemExit(1)
    print(f"✅ {summary.clusters} clusters over {summary.vectors} vectors; "
          f"promoted {summary.promoted}/{summary.eligible} "
          f"({summary.skipped_single_document} single-document)")


if __name__ == "__main__":
    main()
