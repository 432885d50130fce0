"""
Canonical finding schema.

Defines the structure every predicted and every ground-truth finding is
normalized into before scoring. Records are:

- immutable once normalized
- origin-tagged (predicted vs. actual)
- categorized against a closed taxonomy, never free text
- severity-graded on a fixed ordered scale

Free text only survives as a short root-cause summary used for
similarity scoring. It is never treated as ground truth.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


UNKNOWN_CATEGORY = "unknown"
LOCATION_SEPARATOR = "::"


# ---------------------------------------------------------------------------
# Enumerations (FROZEN CONTRACTS)
# ---------------------------------------------------------------------------


class Severity(str, Enum):
    """
    Severity of a finding.

    Declaration order is the severity order (most severe first) and
    MUST remain stable.
    """

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"
    GAS = "gas"

    @property
    def rank(self) -> int:
        """Sortable rank; higher means more severe."""
        members = list(type(self))
        return len(members) - members.index(self)


class FindingOrigin(str, Enum):
    """Which side of the comparison a finding belongs to."""

    PREDICTED = "predicted"
    ACTUAL = "actual"


# ---------------------------------------------------------------------------
# Raw input (tolerant)
# ---------------------------------------------------------------------------


class RawFinding(BaseModel):
    """
    Loosely structured finding as written in shadow-audit logs and
    published reports.

    Every field is optional. Unknown keys are ignored so that report
    exports with extra columns load without pre-processing.
    """

    id: Optional[str] = None
    title: Optional[str] = None
    text: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    severity: Optional[str] = None
    location: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        # Report exports frequently carry numeric ids.
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
    )


# ---------------------------------------------------------------------------
# Canonical Finding Record (PUBLIC, FROZEN)
# ---------------------------------------------------------------------------


class FindingRecord(BaseModel):
    """
    One normalized predicted or ground-truth finding.

    category and severity are always set; location_key and
    root_cause_summary may be empty when the source text is too vague.
    """

    finding_id: str = Field(
        ...,
        min_length=1,
        description="Identifier, unique per (audit run, origin)",
    )

    origin: FindingOrigin = Field(
        ...,
        description="Predicted (persona output) or actual (ground truth)",
    )

    category: str = Field(
        UNKNOWN_CATEGORY,
        min_length=1,
        description="Taxonomy category identifier, or 'unknown'",
    )

    severity: Severity = Field(
        Severity.INFO,
        description="Normalized severity",
    )

    location_key: Optional[str] = Field(
        None,
        description="Normalized '<component>::<entry-point>' pointer",
    )

    root_cause_summary: str = Field(
        "",
        description="Normalized content tokens used for similarity only",
    )

    title: Optional[str] = Field(
        None,
        description="Original title or first line (reporting only)",
    )

    warnings: Tuple[str, ...] = Field(
        default_factory=tuple,
        description="Normalization warnings recorded for this finding",
    )

    @field_validator("location_key")
    @classmethod
    def validate_location_key(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        component, sep, entry = v.partition(LOCATION_SEPARATOR)
        if not sep or not (component or entry):
            raise ValueError(
                f"location_key must look like '<component>::<entry>', got '{v}'"
            )
        return v

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )


def split_location_key(location_key: Optional[str]) -> Tuple[str, str]:
    """Split a location key into (component, entry); empty strings if absent."""
    if not location_key:
        return "", ""
    component, _, entry = location_key.partition(LOCATION_SEPARATOR)
    return component, entry
