"""
Tests for the similarity matcher (Dice coefficient over bigrams).
"""
import pytest

from skillnorm.nlp.similarity import closest_match, dice_coefficient, find_similar

CORPUS = ["python", "python programming", "javascript", "java", "sql", "postgresql", "docker", "kubernetes"]


def test_dice_identical_and_whitespace():
    assert dice_coefficient("python", "python") == 1.0
    assert dice_coefficient("java script", "javascript") == 1.0


def test_dice_known_value():
    # ni ig gh ht / na ac ch ht -> one shared bigram out of eight
    assert dice_coefficient("night", "nacht") == pytest.approx(0.25)


def test_dice_short_strings():
    assert dice_coefficient("a", "b") == 0.0
    assert dice_coefficient("r", "r") == 1.0


def test_dice_is_symmetric():
    assert dice_coefficient("postgresql", "sql") == dice_coefficient("sql", "postgresql")


@pytest.mark.parametrize("n", [0, 1, 2, 3, 10])
def test_find_similar_respects_max_results(n):
    assert len(find_similar("python", CORPUS, max_results=n, threshold=0.0)) <= n


@pytest.mark.parametrize("threshold", [0.2, 0.4, 0.6, 0.9])
def test_find_similar_respects_threshold(threshold):
    for hit in find_similar("  Python ", CORPUS, max_results=10, threshold=threshold):
        assert dice_coefficient("python", hit) >= threshold


def test_find_similar_orders_best_first():
    hits = find_similar("python", CORPUS, max_results=3, threshold=0.4)
    assert hits[0] == "python"
    assert "python programming" in hits


def test_find_similar_empty_inputs():
    assert find_similar("", CORPUS) == []
    assert find_similar(None, CORPUS) == []
    assert find_similar("python", []) == []


def test_closest_match():
    assert closest_match("Kubernetes ", CORPUS) == "kubernetes"
    assert closest_match("terraform", CORPUS) is None
