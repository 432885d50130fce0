"""
Findings file loading.

Accepts JSON or YAML documents holding either a top-level list of findings
or a mapping with a `findings` list. Individual entries are returned as-is:
tolerating malformed entries is the normalizer's job, not the loader's.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, List

import yaml

from scorekeeper.app.errors import FindingsFileError


def load_findings(path: Path) -> List[Any]:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise FindingsFileError(f"Cannot read findings file {path}: {exc}") from exc

    try:
        if path.suffix.lower() == ".json":
            data = json.loads(raw)
        else:
            data = yaml.safe_load(raw)
    except (ValueError, yaml.YAMLError) as exc:
        raise FindingsFileError(f"Cannot parse findings file {path}: {exc}") from exc

    if data is None:
        return []
    if isinstance(data, dict):
        data = data.get("findings")
    if not isinstance(data, list):
        raise FindingsFileError(
            f"Findings file {path} must hold a list or a 'findings' list"
        )
    return data
