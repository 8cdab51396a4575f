# skillnorm/clustering/ann.py
"""
Greedy near-duplicate clustering over embedding vectors.

Points are visited in input order. Each unvisited point becomes a
representative, claims every unvisited neighbor (among its ``top_k``
nearest) whose cosine similarity is at least ``sim_threshold``, and emits
the cluster. A point claimed by an earlier representative is never
reassigned, so output depends on input order but is deterministic for a
given order. This is a single-pass partition, not a transitive closure.
"""
from __future__ import annotations

from typing import Sequence

import numpy as np
from sklearn.neighbors import NearestNeighbors

from skillnorm.core.logging_config import get_logger
from skillnorm.schemas.skills import VectorRecord

logger = get_logger(__name__)


def to_matrix(vectors: Sequence[VectorRecord] | np.ndarray) -> np.ndarray:
    if isinstance(vectors, np.ndarray):
        X = vectors
    else:
        X = np.asarray([v.embedding for v in vectors], dtype=np.float32)
    if X.ndim != 2:
        raise ValueError(f"expected a 2-d embedding matrix, got shape {X.shape}")
    return X.astype(np.float32, copy=False)


def build_index(X: np.ndarray) -> NearestNeighbors:
    # brute-force cosine keeps neighbor order exact and reproducible
    nn = NearestNeighbors(metric="cosine", algorithm="brute")
    nn.fit(X)
    return nn


def cluster(
    vectors: Sequence[VectorRecord] | np.ndarray,
    top_k: int = 5,
    sim_threshold: float = 0.7,
) -> list[list[int]]:
    """
    Partition indices 0..N-1 into clusters of near-duplicate vectors.

    Every index appears in exactly one cluster; the representative is the
    first element of its cluster. Singletons are returned too and must be
    filtered by callers before promotion.
    """
    if top_k < 1:
        raise ValueError("top_k must be >= 1")
    if len(vectors) == 0:
        return []

    X = to_matrix(vectors)
    n = X.shape[0]
    nn = build_index(X)
    k = min(top_k, n)
    # the index is static, so querying every point up front is equivalent to per-point queries
    dist, idx = nn.kneighbors(X, n_neighbors=k, return_distance=True)

    visited = np.zeros(n, dtype=bool)
    clusters: list[list[int]] = []
    for i in range(n):
        if visited[i]:
            continue
        visited[i] = True
        members = [i]
        for d, j in zip(dist[i], idx[i]):
            j = int(j)
            sim = 1.0 - float(d)
            if sim >= sim_threshold and not visited[j]:
                members.append(j)
                visited[j] = True
        clusters.append(members)

    logger.info(f"Found {len(clusters)} clusters over {n} vectors "
                f"({sum(1 for c in clusters if len(c) > 1)} non-singleton)")
    return clusters


def non_singletons(clusters: list[list[int]]) -> list[list[int]]:
    return [c for c in clusters if len(c) > 1]
