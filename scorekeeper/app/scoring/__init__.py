"""
Finding correspondence and scoring.

Normalizer -> Matcher -> Classifier -> Metrics, each a deterministic,
side-effect-free step. Orchestration and persistence live in the
coordinator and the ledger.
"""

from .normalizer import FindingNormalizer, extract_location_key
from .similarity import (
    LevenshteinSimilarity,
    SIMILARITY_BACKENDS,
    TextSimilarity,
    TokenJaccardSimilarity,
    build_similarity,
)
from .matcher import FindingMatcher, location_score
from .classifier import MatchClassifier
from .metrics import compute_metrics

__all__ = [
    "FindingNormalizer",
    "extract_location_key",
    "TextSimilarity",
    "TokenJaccardSimilarity",
    "LevenshteinSimilarity",
    "build_similarity",
    "SIMILARITY_BACKENDS",
    "FindingMatcher",
    "location_score",
    "MatchClassifier",
    "compute_metrics",
]
