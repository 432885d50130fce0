"""
Deterministic text tokenization shared by the taxonomy, the normalizer and
the similarity backends.
"""

from __future__ import annotations

import re
from typing import List


_TOKEN_RE = re.compile(r"[a-z0-9_]+")

STOPWORDS = frozenset(
    {
        "a", "an", "and", "are", "as", "at", "be", "been", "but", "by",
        "can", "could", "do", "does", "for", "from", "has", "have", "if",
        "in", "into", "is", "it", "its", "may", "might", "not", "of", "on",
        "or", "so", "such", "than", "that", "the", "their", "then", "there",
        "these", "this", "those", "to", "via", "was", "were", "when",
        "where", "which", "while", "who", "will", "with", "would",
    }
)


def tokenize(text: str) -> List[str]:
    """Lowercase alphanumeric tokens in order of appearance."""
    if not text:
        return []
    return _TOKEN_RE.findall(text.lower())


def content_tokens(text: str) -> List[str]:
    """Tokens with stopwords and single characters removed."""
    return [t for t in tokenize(text) if len(t) > 1 and t not in STOPWORDS]
