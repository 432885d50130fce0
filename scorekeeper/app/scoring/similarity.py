"""
Root-cause text similarity.

Similarity backends are swappable behind the TextSimilarity protocol so a
semantic backend can replace the lexical defaults without touching the
Matcher or Classifier contracts.

Every backend MUST be:
- deterministic
- symmetric: score(a, b) == score(b, a)
- bounded to [0, 1]
"""

from __future__ import annotations

from typing import Callable, Dict, Protocol

from rapidfuzz.distance import Levenshtein

from scorekeeper.app.utils.text import tokenize


class TextSimilarity(Protocol):
    """Interface for root-cause summary similarity."""

    name: str

    def score(self, left: str, right: str) -> float:
        ...


def jaccard(a: set[str], b: set[str]) -> float:
    if not a or not b:
        return 0.0
    inter = len(a & b)
    union = len(a | b)
    return float(inter) / float(union) if union else 0.0


class TokenJaccardSimilarity:
    """
    Token-set Jaccard index.

    Two empty summaries score 0.0: absence of an explanation is never
    evidence of the same mechanism.
    """

    name = "token_jaccard"

    def score(self, left: str, right: str) -> float:
        return jaccard(set(tokenize(left)), set(tokenize(right)))


class LevenshteinSimilarity:
    """
    Normalized edit-distance similarity over token-sorted summaries.

    Sorting tokens first makes the measure insensitive to word order,
    which varies freely between personas and report authors.
    """

    name = "levenshtein"

    def score(self, left: str, right: str) -> float:
        a = " ".join(sorted(tokenize(left)))
        b = " ".join(sorted(tokenize(right)))
        if not a or not b:
            return 0.0
        return float(Levenshtein.normalized_similarity(a, b))


_BACKENDS: Dict[str, Callable[[], TextSimilarity]] = {
    TokenJaccardSimilarity.name: TokenJaccardSimilarity,
    LevenshteinSimilarity.name: LevenshteinSimilarity,
}

SIMILARITY_BACKENDS = frozenset(_BACKENDS)


def build_similarity(name: str) -> TextSimilarity:
    """Construct a similarity backend by its configured identifier."""
    try:
        factory = _BACKENDS[name]
    except KeyError:
        raise ValueError(
            f"Unknown similarity backend '{name}'. "
            f"Allowed values: {sorted(_BACKENDS)}"
        ) from None
    return factory()
