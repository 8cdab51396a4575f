"""
Tests for embedding pending skill mentions (with a stand-in embedder).
"""
import numpy as np
from sqlalchemy import select

from skillnorm.db.models import SkillVector
from skillnorm.db.repository import decode_vector, load_vectors
from skillnorm.nlp.embeddings import embed_pending_mentions


def fake_embed(texts):
    out = np.zeros((len(texts), 4), dtype=np.float32)
    for i, t in enumerate(texts):
        out[i, len(t) % 4] = 1.0
    return out


def test_embeds_only_pending_mentions(session_factory, seed_extracted):
    seed_extracted({"job-1": [("Python", True), ("SQL", True)], "job-2": [("Go", False)]})

    assert embed_pending_mentions(session_factory, embed=fake_embed, batch_size=2) == 3
    assert embed_pending_mentions(session_factory, embed=fake_embed) == 0

    with session_factory() as s:
        rows = s.execute(select(SkillVector).order_by(SkillVector.id)).scalars().all()
        assert [r.dim for r in rows] == [4, 4, 4]
        assert decode_vector(rows[0].vector).tolist() == [0.0, 0.0, 1.0, 0.0]

        vectors = load_vectors(s, page_size=2)
        assert [v.mention_id for v in vectors] == [r.mention_id for r in rows]
