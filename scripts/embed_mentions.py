# scripts/embed_mentions.py
from skillnorm.core.errors import CorpusFetchError
from skillnorm.core.logging_config import get_logger, setup_logging
from skillnorm.db.session import SessionLocal
from skillnorm.nlp.embeddings import embed_pending_mentions

logger = get_logger("scripts.embed_mentions")


def main():
    setup_logging()
    try:
        n = embed_pending_mentions(SessionLocal)
    except CorpusFetchError as e:
        logger.error(str(e))
        raise SystemExit(1)
    print(f"✅ Embedded {n} skill mentions")


if __name__ == "__main__":
    main()
