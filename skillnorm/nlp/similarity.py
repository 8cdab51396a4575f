# skillnorm/nlp/similarity.py
"""
Approximate string matching over canonical skill keys.

The score is the Dice coefficient over character bigrams (whitespace
ignored), matching the ``string-similarity`` npm package so thresholds
carry over from dictionaries built with it. rapidfuzz drives the
candidate search.
"""
from collections import Counter
from typing import Sequence

from rapidfuzz import process

from skillnorm.nlp.normalizer import normalize


def _bigrams(s: str) -> Counter:
    return Counter(s[i:i + 2] for i in range(len(s) - 1))


def dice_coefficient(a: str, b: str, **kwargs) -> float:
    """Bigram-overlap similarity in [0, 1].

    Accepts (and ignores) the keyword arguments rapidfuzz passes to
    custom scorers such as ``score_cutoff``.
    """
    a = "".join(a.split())
    b = "".join(b.split())
    if a == b:
        return 1.0
    if len(a) < 2 or len(b) < 2:
        return 0.0
    first, second = _bigrams(a), _bigrams(b)
    overlap = sum((first & second).values())
    return 2.0 * overlap / ((len(a) - 1) + (len(b) - 1))


def find_similar(
    candidate: str,
    corpus: Sequence[str],
    max_results: int = 10,
    threshold: float = 0.4,
) -> list[str]:
    """Up to ``max_results`` corpus entries scoring at least ``threshold``
    against the normalized candidate, best first."""
    key = normalize(candidate)
    if not key or not corpus or max_results <= 0:
        return []
    hits = process.extract(
        key,
        list(corpus),
        scorer=dice_coefficient,
        limit=max_results,
        score_cutoff=threshold,
    )
    return [match for match, score, _ in hits if score >= threshold]


def closest_match(candidate: str, corpus: Sequence[str], threshold: float = 0.85) -> str | None:
    """Best corpus entry if it clears ``threshold``, else None."""
    hit = find_similar(candidate, corpus, max_results=1, threshold=threshold)
    return hit[0] if hit else None
