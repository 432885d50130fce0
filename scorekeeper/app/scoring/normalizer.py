"""
Finding normalizer.

Maps loosely structured findings (shadow-audit log entries, published
report rows) into canonical FindingRecords:

- category via the closed taxonomy (longest alias match first)
- severity via a fixed synonym table
- location key via source-file / identifier hints
- root-cause summary via content tokens

Normalization is a pure function and never raises on bad input: a
malformed entry yields a record with default fields and a recorded
warning, so one bad finding never aborts a batch.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Tuple

from scorekeeper.app.schemas.findings import (
    FindingOrigin,
    FindingRecord,
    LOCATION_SEPARATOR,
    RawFinding,
    Severity,
    UNKNOWN_CATEGORY,
)
from scorekeeper.app.taxonomy.taxonomy import CategoryTaxonomy
from scorekeeper.app.utils.text import content_tokens, tokenize


logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Severity synonyms (FROZEN TABLE)
# ---------------------------------------------------------------------------

# Compound labels resolve to their lower bound ("critical-high" -> high).
SEVERITY_SYNONYMS: Dict[str, Severity] = {
    "critical": Severity.CRITICAL,
    "crit": Severity.CRITICAL,
    "c": Severity.CRITICAL,
    "severe": Severity.CRITICAL,
    "high": Severity.HIGH,
    "h": Severity.HIGH,
    "critical-high": Severity.HIGH,
    "high-critical": Severity.HIGH,
    "medium": Severity.MEDIUM,
    "med": Severity.MEDIUM,
    "m": Severity.MEDIUM,
    "moderate": Severity.MEDIUM,
    "medium-high": Severity.MEDIUM,
    "high-medium": Severity.MEDIUM,
    "low": Severity.LOW,
    "l": Severity.LOW,
    "minor": Severity.LOW,
    "low-medium": Severity.LOW,
    "medium-low": Severity.LOW,
    "info": Severity.INFO,
    "informational": Severity.INFO,
    "information": Severity.INFO,
    "note": Severity.INFO,
    "qa": Severity.INFO,
    "q": Severity.INFO,
    "nc": Severity.INFO,
    "non-critical": Severity.INFO,
    "i": Severity.INFO,
    "gas": Severity.GAS,
    "g": Severity.GAS,
    "gas-optimization": Severity.GAS,
    "gas-optimizations": Severity.GAS,
    "optimization": Severity.GAS,
}

# Contest label prefixes such as "[H-01]" or "M-3:".
_SEVERITY_LABEL_RE = re.compile(r"^\s*\[?\s*(QA|NC|[CHMLG])\s*-\s*\d+", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Location patterns
# ---------------------------------------------------------------------------

_SOURCE_FILE_RE = re.compile(
    r"\b([A-Za-z_][A-Za-z0-9_]*)\.(?:sol|vy|rs|move|cairo|go|ts|py)\b"
)
_ANCHOR_RE = re.compile(r"^\s*(?:#|::|:)\s*([A-Za-z_][A-Za-z0-9_]*)")
_LINE_ANCHOR_RE = re.compile(r"L?\d+(?:-L?\d+)?", re.IGNORECASE)
_PATH_SCOPED_RE = re.compile(r"\b([A-Za-z_][A-Za-z0-9_]*)\s*::\s*([A-Za-z_][A-Za-z0-9_]*)")
_DOTTED_CALL_RE = re.compile(r"\b([A-Z][A-Za-z0-9_]*)\.([A-Za-z_][A-Za-z0-9_]*)\(")
_DOTTED_HINT_RE = re.compile(r"^\s*([A-Za-z_][A-Za-z0-9_]*)\s*[.#]\s*([A-Za-z_][A-Za-z0-9_]*)")
_CALL_RE = re.compile(r"\b([A-Za-z_][A-Za-z0-9_]*)\(")
_BARE_IDENTIFIER_RE = re.compile(r"\s*([A-Za-z_][A-Za-z0-9_]*)\s*(?:\(\s*\))?\s*")

_CALL_STOPWORDS = frozenset(
    {
        "require", "assert", "revert", "if", "for", "while", "emit",
        "return", "new", "mapping", "event", "modifier", "function",
        "constructor", "keccak256", "abi", "payable", "address", "uint",
        "uint256", "int", "int256", "bytes", "bytes32", "type", "e", "i",
    }
)


class FindingNormalizer:
    """
    Normalizes raw findings against a category taxonomy.
    """

    def __init__(
        self,
        taxonomy: CategoryTaxonomy,
        *,
        root_cause_max_tokens: int = 32,
    ) -> None:
        self._taxonomy = taxonomy
        self._root_cause_max_tokens = root_cause_max_tokens

    @property
    def taxonomy(self) -> CategoryTaxonomy:
        return self._taxonomy

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def normalize_all(
        self,
        raw_findings: Iterable[Any],
        *,
        origin: FindingOrigin,
    ) -> Tuple[FindingRecord, ...]:
        """
        Normalize a batch.

        Findings without an id get positional ids (P-001, A-001); a
        positional id already given explicitly to another finding of the
        batch is skipped in favour of the next free number.
        """
        prefix = "P" if origin == FindingOrigin.PREDICTED else "A"
        coerced = [_coerce_raw(raw) for raw in raw_findings]
        taken = {_explicit_id(finding) for finding, _ in coerced} - {""}

        records = []
        number = 0
        for index, (finding, warnings) in enumerate(coerced):
            fallback_id = ""
            if not _explicit_id(finding):
                number = max(number, index) + 1
                fallback_id = f"{prefix}-{number:03d}"
                while fallback_id in taken:
                    number += 1
                    fallback_id = f"{prefix}-{number:03d}"
                taken.add(fallback_id)
            records.append(
                self._build(finding, warnings, origin=origin, fallback_id=fallback_id)
            )
        return tuple(records)

    def normalize(
        self,
        raw: Any,
        *,
        origin: FindingOrigin,
        fallback_id: str,
    ) -> FindingRecord:
        finding, warnings = _coerce_raw(raw)
        return self._build(finding, warnings, origin=origin, fallback_id=fallback_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _build(
        self,
        finding: RawFinding,
        warnings: List[str],
        *,
        origin: FindingOrigin,
        fallback_id: str,
    ) -> FindingRecord:
        finding_id = _explicit_id(finding) or fallback_id

        text = _finding_text(finding)
        if not text and not finding.category:
            warnings.append("empty finding text")

        category = self._category(finding.category, text, warnings)
        severity = _severity(finding.severity, finding_id, text, warnings)

        location_key = extract_location_key(finding.location, text)
        summary = self._root_cause_summary(text, location_key)

        for message in warnings:
            logger.warning(
                "normalizer: %s finding %s: %s",
                origin.value,
                finding_id,
                message,
            )

        return FindingRecord(
            finding_id=finding_id,
            origin=origin,
            category=category,
            severity=severity,
            location_key=location_key,
            root_cause_summary=summary,
            title=_title(finding, text),
            warnings=tuple(warnings),
        )

    def _category(
        self,
        hint: Optional[str],
        text: str,
        warnings: List[str],
    ) -> str:
        if hint and hint.strip():
            resolved = self._taxonomy.resolve(hint)
            if resolved is not None:
                return resolved
            extracted = self._taxonomy.extract(tokenize(hint))
            if extracted != UNKNOWN_CATEGORY:
                return extracted
            warnings.append(f"unrecognized category '{hint}', extracting from text")

        return self._taxonomy.extract(tokenize(text))

    def _root_cause_summary(self, text: str, location_key: Optional[str]) -> str:
        excluded = {"sol", "vy", "rs"}
        if location_key:
            excluded.update(p for p in location_key.split(LOCATION_SEPARATOR) if p)

        summary: List[str] = []
        seen: set[str] = set()
        for token in content_tokens(text):
            if token in excluded or token in seen:
                continue
            seen.add(token)
            summary.append(token)
            if len(summary) >= self._root_cause_max_tokens:
                break
        return " ".join(summary)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _coerce_raw(raw: Any) -> Tuple[RawFinding, List[str]]:
    """Salvage whatever string fields a raw entry carries."""
    if isinstance(raw, RawFinding):
        return raw, []
    if isinstance(raw, str):
        return RawFinding(text=raw), []
    if not isinstance(raw, dict):
        return RawFinding(), [f"malformed finding of type {type(raw).__name__}"]

    warnings: List[str] = []
    fields: Dict[str, str] = {}
    for name in RawFinding.model_fields:
        value = raw.get(name)
        if value is None:
            continue
        if name == "id" and isinstance(value, (int, float)) and not isinstance(value, bool):
            value = str(value)
        if not isinstance(value, str):
            warnings.append(f"ignored non-text field '{name}'")
            continue
        fields[name] = value
    return RawFinding(**fields), warnings


def _explicit_id(finding: RawFinding) -> str:
    return (finding.id or "").strip()


def _finding_text(finding: RawFinding) -> str:
    if finding.text and finding.text.strip():
        return finding.text.strip()
    parts = [p.strip() for p in (finding.title, finding.description) if p and p.strip()]
    return "\n".join(parts)


def _title(finding: RawFinding, text: str) -> Optional[str]:
    if finding.title and finding.title.strip():
        return finding.title.strip()
    first_line = text.splitlines()[0].strip() if text else ""
    return first_line[:120] or None


def _severity(
    hint: Optional[str],
    finding_id: str,
    text: str,
    warnings: List[str],
) -> Severity:
    if hint is not None and hint.strip():
        key = re.sub(r"[\s_]+", "-", hint.strip().casefold())
        severity = SEVERITY_SYNONYMS.get(key)
        if severity is None:
            warnings.append(f"unrecognized severity '{hint}', defaulting to info")
            return Severity.INFO
        return severity

    for source in (finding_id, text):
        match = _SEVERITY_LABEL_RE.match(source)
        if match:
            return SEVERITY_SYNONYMS[match.group(1).casefold()]
    return Severity.INFO


def extract_location_key(hint: Optional[str], text: str) -> Optional[str]:
    """
    Build a '<component>::<entry>' key from a location hint, falling back to
    the finding text. Returns None when neither localizes the finding.
    """
    if hint and hint.strip():
        key = _parse_location(hint, from_hint=True)
        if key is not None:
            return key
    return _parse_location(text or "", from_hint=False)


def _parse_location(source: str, *, from_hint: bool) -> Optional[str]:
    component = ""
    entry = ""
    remainder = source

    file_match = _SOURCE_FILE_RE.search(source)
    if file_match:
        component = file_match.group(1)
        anchor = _ANCHOR_RE.match(source[file_match.end():])
        if anchor and not _LINE_ANCHOR_RE.fullmatch(anchor.group(1)):
            entry = anchor.group(1)
        remainder = source[:file_match.start()] + " " + source[file_match.end():]

    qualified = _PATH_SCOPED_RE.search(remainder) or _DOTTED_CALL_RE.search(remainder)
    if qualified is None and from_hint:
        qualified = _DOTTED_HINT_RE.match(remainder)
    if qualified is not None:
        component = component or qualified.group(1)
        entry = entry or qualified.group(2)

    if not entry:
        for call in _CALL_RE.finditer(remainder):
            name = call.group(1)
            if name.lower() not in _CALL_STOPWORDS and name != component:
                entry = name
                break

    if from_hint and not component and not entry:
        bare = _BARE_IDENTIFIER_RE.fullmatch(source)
        if bare:
            component = bare.group(1)

    if not component and not entry:
        return None
    return f"{component.lower()}{LOCATION_SEPARATOR}{entry.lower()}"
