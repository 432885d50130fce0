"""
Canonical JSON serialization and hashing.

Used to derive the content digest of an AuditRun, which must be identical
for identical scoring inputs regardless of run id or timestamp.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Union


def canonical_json_bytes(data: Any) -> bytes:
    """
    Serialize JSON-compatible data deterministically.

    Keys are sorted, separators are compact, NaN is rejected.
    """
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    ).encode("utf-8")


def compute_digest(canonical_bytes: Union[bytes, bytearray]) -> str:
    """
    Compute a human-readable SHA-256 digest with an explicit algorithm
    prefix, e.g. ``SHA-256:3b7c0e4c...``.

    Input MUST already be canonicalized.
    """
    if not isinstance(canonical_bytes, (bytes, bytearray)):
        raise TypeError(
            "compute_digest expects canonical bytes, "
            f"got {type(canonical_bytes).__name__}"
        )

    digest = hashlib.sha256(canonical_bytes).hexdigest()
    return f"SHA-256:{digest}"
