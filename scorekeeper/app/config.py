"""
Runtime configuration for the scoring engine.

This module centralizes environment-driven configuration: scoring policy
thresholds, the text-similarity backend, the category taxonomy source and
the performance ledger location.

Configuration is read-only at runtime. The thresholds are policy choices
and are therefore configuration rather than constants.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from pydantic import BaseModel, Field, ValidationInfo, field_validator

from scorekeeper.app.scoring.similarity import SIMILARITY_BACKENDS


class ScorekeeperConfig(BaseModel):
    """
    Runtime configuration for the scoring engine.

    Configuration is environment-driven and immutable once loaded.
    """

    # ------------------------------------------------------------------
    # Scoring policy
    # ------------------------------------------------------------------

    EXACT_MATCH_THRESHOLD: float = Field(
        0.7,
        ge=0.0,
        le=1.0,
        description=(
            "Minimum root-cause similarity for full (1.0) credit, together "
            "with category and location agreement"
        ),
    )

    CANDIDATE_FLOOR: float = Field(
        0.35,
        ge=0.0,
        le=1.0,
        description="Pairs below this similarity are never matched",
    )

    SIMILARITY_BACKEND: str = Field(
        "token_jaccard",
        description="Root-cause similarity backend identifier",
    )

    ROOT_CAUSE_MAX_TOKENS: int = Field(
        32,
        ge=1,
        description="Upper bound on tokens kept in a root-cause summary",
    )

    # ------------------------------------------------------------------
    # External inputs and storage
    # ------------------------------------------------------------------

    TAXONOMY_PATH: Path | None = Field(
        None,
        description=(
            "YAML or JSON category taxonomy. The bundled default taxonomy "
            "is used when unset."
        ),
    )

    LEDGER_PATH: Path = Field(
        Path("scorekeeper-ledger.sqlite3"),
        description="SQLite file backing the performance ledger",
    )

    TREND_WINDOW: int = Field(
        5,
        ge=1,
        description="Default number of recent runs for moving averages",
    )

    LOG_LEVEL: str = Field(
        "INFO",
        description="Root log level for CLI and API entrypoints",
    )

    # ------------------------------------------------------------------
    # Validators (Pydantic v2)
    # ------------------------------------------------------------------

    @field_validator("SIMILARITY_BACKEND")
    @classmethod
    def validate_similarity_backend(cls, v: str) -> str:
        if v not in SIMILARITY_BACKENDS:
            raise ValueError(
                f"Unsupported SIMILARITY_BACKEND '{v}'. "
                f"Allowed values: {sorted(SIMILARITY_BACKENDS)}"
            )
        return v

    @field_validator("CANDIDATE_FLOOR")
    @classmethod
    def floor_not_above_exact_threshold(
        cls, v: float, info: ValidationInfo
    ) -> float:
        exact = info.data.get("EXACT_MATCH_THRESHOLD")
        if exact is not None and v > exact:
            raise ValueError(
                "CANDIDATE_FLOOR must not exceed EXACT_MATCH_THRESHOLD."
            )
        return v

    @field_validator("TAXONOMY_PATH")
    @classmethod
    def taxonomy_path_must_exist(cls, v: Path | None) -> Path | None:
        if v is None:
            return v
        if not v.exists():
            raise ValueError(f"Configured TAXONOMY_PATH does not exist: {v}")
        if not v.is_file():
            raise ValueError(f"Configured TAXONOMY_PATH is not a file: {v}")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unsupported LOG_LEVEL '{v}'")
        return level

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_env(cls) -> "ScorekeeperConfig":
        """
        Load configuration from SCOREKEEPER_* environment variables.

        All values are parsed once at startup and must remain immutable.
        """
        taxonomy_env = os.getenv("SCOREKEEPER_TAXONOMY_PATH")

        return cls(
            EXACT_MATCH_THRESHOLD=float(
                os.getenv("SCOREKEEPER_EXACT_MATCH_THRESHOLD", "0.7")
            ),
            CANDIDATE_FLOOR=float(
                os.getenv("SCOREKEEPER_CANDIDATE_FLOOR", "0.35")
            ),
            SIMILARITY_BACKEND=os.getenv(
                "SCOREKEEPER_SIMILARITY_BACKEND", "token_jaccard"
            ),
            ROOT_CAUSE_MAX_TOKENS=int(
                os.getenv("SCOREKEEPER_ROOT_CAUSE_MAX_TOKENS", "32")
            ),
            TAXONOMY_PATH=(
                Path(taxonomy_env)
                if taxonomy_env
                else None
            ),
            LEDGER_PATH=Path(
                os.getenv("SCOREKEEPER_LEDGER_PATH", "scorekeeper-ledger.sqlite3")
            ),
            TREND_WINDOW=int(
                os.getenv("SCOREKEEPER_TREND_WINDOW", "5")
            ),
            LOG_LEVEL=os.getenv("SCOREKEEPER_LOG_LEVEL", "INFO"),
        )

    model_config = {
        "frozen": True,
    }
