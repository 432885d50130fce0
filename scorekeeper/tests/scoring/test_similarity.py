import pytest

from scorekeeper.app.scoring.similarity import (
    LevenshteinSimilarity,
    TokenJaccardSimilarity,
    build_similarity,
    jaccard,
)


@pytest.mark.parametrize("backend", [TokenJaccardSimilarity(), LevenshteinSimilarity()])
def test_identical_summaries_score_one(backend):
    assert backend.score("missing nonce replay", "missing nonce replay") == 1.0


@pytest.mark.parametrize("backend", [TokenJaccardSimilarity(), LevenshteinSimilarity()])
def test_empty_summary_scores_zero(backend):
    assert backend.score("", "") == 0.0
    assert backend.score("stale price", "") == 0.0


@pytest.mark.parametrize("backend", [TokenJaccardSimilarity(), LevenshteinSimilarity()])
def test_scores_are_symmetric_and_bounded(backend):
    a = "attacker drains vault through callback"
    b = "vault callback allows draining"
    assert backend.score(a, b) == backend.score(b, a)
    assert 0.0 <= backend.score(a, b) <= 1.0


def test_jaccard_counts_shared_tokens():
    assert jaccard({"a", "b"}, {"b", "c"}) == pytest.approx(1 / 3)
    assert jaccard(set(), {"a"}) == 0.0


def test_token_jaccard_ignores_order_and_repetition():
    backend = TokenJaccardSimilarity()
    assert backend.score("stale price oracle", "oracle oracle price stale") == 1.0


def test_levenshtein_is_word_order_insensitive():
    backend = LevenshteinSimilarity()
    assert backend.score("stale oracle price", "price stale oracle") == 1.0


def test_build_similarity_by_name():
    assert build_similarity("token_jaccard").name == "token_jaccard"
    assert build_similarity("levenshtein").name == "levenshtein"

    with pytest.raises(ValueError):
        build_similarity("embeddings")
