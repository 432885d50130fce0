"""
Category taxonomy.

The taxonomy is the closed, externally maintained list of vulnerability
classes findings are normalized into. It is consumed as versioned,
read-only configuration: the engine loads it and never writes to it.

Category extraction is longest-match-first over alias phrases; ties are
broken by the order in which categories are declared.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import yaml
from pydantic import BaseModel, ConfigDict, Field

from scorekeeper.app.errors import TaxonomyError
from scorekeeper.app.schemas.findings import UNKNOWN_CATEGORY
from scorekeeper.app.utils.text import tokenize


logger = logging.getLogger(__name__)

DEFAULT_TAXONOMY_PATH = Path(__file__).parent / "default_taxonomy.yaml"


class TaxonomyCategory(BaseModel):
    """One declared vulnerability class and the phrases that denote it."""

    id: str = Field(..., min_length=1)
    aliases: Tuple[str, ...] = ()

    model_config = ConfigDict(frozen=True, extra="forbid")


class CategoryTaxonomy:
    """
    Versioned, ordered set of category identifiers with alias phrases.
    """

    def __init__(self, version: str, categories: Sequence[TaxonomyCategory]) -> None:
        self.version = str(version)
        self._categories: Tuple[TaxonomyCategory, ...] = tuple(categories)

        seen: set[str] = set()
        for category in self._categories:
            if category.id == UNKNOWN_CATEGORY:
                raise TaxonomyError(
                    f"'{UNKNOWN_CATEGORY}' is reserved and cannot be declared"
                )
            if category.id in seen:
                raise TaxonomyError(f"Duplicate taxonomy category '{category.id}'")
            seen.add(category.id)

        # (phrase tokens, declaration index, category id)
        phrases: List[Tuple[Tuple[str, ...], int, str]] = []
        for index, category in enumerate(self._categories):
            for phrase in (category.id, *category.aliases):
                tokens = tuple(tokenize(phrase))
                if tokens:
                    phrases.append((tokens, index, category.id))

        # Longest phrase first, then declaration order.
        phrases.sort(key=lambda p: (-len(p[0]), p[1]))
        self._phrases = tuple(phrases)
        self._exact = {}
        for tokens, _, category_id in self._phrases:
            self._exact.setdefault(tokens, category_id)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_mapping(cls, data: Any) -> "CategoryTaxonomy":
        if not isinstance(data, dict):
            raise TaxonomyError("Taxonomy document must be a mapping")

        raw_categories = data.get("categories")
        if not isinstance(raw_categories, list) or not raw_categories:
            raise TaxonomyError("Taxonomy document needs a non-empty 'categories' list")

        categories = []
        for item in raw_categories:
            if isinstance(item, str):
                item = {"id": item}
            if not isinstance(item, dict):
                raise TaxonomyError(f"Invalid taxonomy category entry: {item!r}")
            try:
                categories.append(
                    TaxonomyCategory(
                        id=str(item.get("id", "")).strip(),
                        aliases=tuple(str(a) for a in item.get("aliases") or ()),
                    )
                )
            except ValueError as exc:
                raise TaxonomyError(f"Invalid taxonomy category entry: {item!r}") from exc

        return cls(version=str(data.get("version", "unversioned")), categories=categories)

    @classmethod
    def load(cls, path: Path) -> "CategoryTaxonomy":
        """Load a YAML or JSON taxonomy document."""
        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise TaxonomyError(f"Cannot read taxonomy file {path}: {exc}") from exc

        try:
            if path.suffix.lower() == ".json":
                data = json.loads(raw)
            else:
                data = yaml.safe_load(raw)
        except (ValueError, yaml.YAMLError) as exc:
            raise TaxonomyError(f"Cannot parse taxonomy file {path}: {exc}") from exc

        taxonomy = cls.from_mapping(data)
        logger.info(
            "taxonomy: loaded %d categories (version %s) from %s",
            len(taxonomy),
            taxonomy.version,
            path,
        )
        return taxonomy

    @classmethod
    def default(cls) -> "CategoryTaxonomy":
        return cls.load(DEFAULT_TAXONOMY_PATH)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def category_ids(self) -> Tuple[str, ...]:
        return tuple(c.id for c in self._categories)

    def __contains__(self, category_id: object) -> bool:
        return category_id in self.category_ids

    def __len__(self) -> int:
        return len(self._categories)

    def resolve(self, label: str) -> Optional[str]:
        """
        Resolve an explicit category label ("Access Control", "reentrancy")
        whose whole text is an id or alias. Returns None when it is not.
        """
        return self._exact.get(tuple(tokenize(label)))

    def extract(self, tokens: Sequence[str]) -> str:
        """
        Find the category denoted by free-text tokens.

        Returns UNKNOWN_CATEGORY when no alias phrase occurs.
        """
        if not tokens:
            return UNKNOWN_CATEGORY

        tokens = tuple(tokens)
        for phrase, _, category_id in self._phrases:
            if _contains_run(tokens, phrase):
                return category_id
        return UNKNOWN_CATEGORY

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "categories": [c.model_dump(mode="json") for c in self._categories],
        }


def _contains_run(tokens: Tuple[str, ...], phrase: Tuple[str, ...]) -> bool:
    width = len(phrase)
    if width > len(tokens):
        return False
    first = phrase[0]
    for i in range(len(tokens) - width + 1):
        if tokens[i] == first and tokens[i:i + width] == phrase:
            return True
    return False
