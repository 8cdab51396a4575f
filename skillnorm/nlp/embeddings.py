# skillnorm/nlp/embeddings.py
import numpy as np
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from sentence_transformers import SentenceTransformer

from skillnorm.core.config import settings
from skillnorm.core.errors import CorpusFetchError
from skillnorm.core.logging_config import get_logger
from skillnorm.db.models import SkillMention, SkillVector
from skillnorm.db.repository import encode_vector, fetch_all

logger = get_logger(__name__)

# ---------- Model cache ----------
_models: dict[str, SentenceTransformer] = {}


def get_model(name: str | None = None) -> SentenceTransformer:
    name = name or settings.EMBED_MODEL
    if name not in _models:
        _models[name] = SentenceTransformer(name)
    return _models[name]


# ---------- Public helpers ----------
def embed_texts(texts: list[str], model_name: str | None = None) -> np.ndarray:
    """
    Returns np.float32 array of shape (N, D), L2-normalized.
    """
    M = get_model(model_name)
    X = M.encode(texts, normalize_embeddings=True)
    return np.asarray(X, dtype=np.float32)


def embed_pending_mentions(
    session_factory: sessionmaker,
    embed=embed_texts,
    model_name: str | None = None,
    batch_size: int | None = None,
    page_size: int | None = None,
) -> int:
    """
    Embed every mention that has no skill_vectors row yet. Returns the
    number of vectors written. ``embed`` maps a list of texts to an
    (N, D) array; tests pass a deterministic stand-in.
    """
    model_name = model_name or settings.EMBED_MODEL
    batch_size = batch_size or settings.EMBED_BATCH_SIZE

    with session_factory() as s:
        embedded = select(SkillVector.mention_id)
        try:
            pending = fetch_all(
                s,
                select(SkillMention.id, SkillMention.canonical_key)
                .where(SkillMention.id.not_in(embedded))
                .order_by(SkillMention.id),
                page_size=page_size,
            )
        except SQLAlchemyError as e:
            raise CorpusFetchError("skill mentions", e) from e

    if not pending:
        logger.info("All mentions already embedded")
        return 0
    logger.info(f"Found {len(pending)} unembedded mentions")

    written = 0
    for i in range(0, len(pending), batch_size):
        batch = pending[i:i + batch_size]
        vecs = embed([key for _, key in batch])
        with session_factory() as s:
            for (mention_id, _), vec in zip(batch, vecs):
                vec = np.asarray(vec, dtype=np.float32)
                s.add(SkillVector(
                    mention_id=mention_id,
                    model=model_name,
                    dim=int(vec.shape[-1]),
                    vector=encode_vector(vec),
                ))
            s.commit()
        written += len(batch)
        logger.info(f"Embedded batch {i // batch_size + 1} ({len(batch)} mentions)")

    return written
