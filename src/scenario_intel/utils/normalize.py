"""Canonical JSON and content hashing.

The same canonical form backs three things: the determinism contract
(identical input gives byte-identical output), the snapshot_hash attached to
tool results, and the narrative-service cache keys.

The normalization contract:
1. Key ordering: sorted at every level
2. NaN/inf sanitization: replaced with null for JSON safety
3. -0.0 collapsed to 0.0
4. numpy scalars unwrapped to plain Python numbers
5. Enums reduced to their values, tuples to lists
"""

from __future__ import annotations

import hashlib
import json
import math
from dataclasses import asdict, is_dataclass
from enum import Enum
from typing import Any

import numpy as np

# Snapshot format version - bump when normalization logic changes
SNAPSHOT_VERSION = "1.0.0"


def canonical_dumps(obj: Any) -> str:
    """Produce canonical JSON string with sorted keys and minimal separators.

    Uses allow_nan=False to fail fast if NaN/inf values slip through
    sanitization. This ensures JSON validity across all parsers.
    """
    return json.dumps(
        obj,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )


def content_hash(obj: Any, length: int = 16) -> str:
    """First `length` hex chars of sha256 over the canonical JSON of obj."""
    canonical_json = canonical_dumps(sanitize_for_json(obj))
    return hashlib.sha256(canonical_json.encode("utf-8")).hexdigest()[:length]


def _is_nan_or_inf(x: Any) -> bool:
    """Check if value is NaN or inf, handling numpy types safely."""
    try:
        return math.isnan(x) or math.isinf(x)
    except (TypeError, ValueError):
        return False


def _is_negative_zero(x: Any) -> bool:
    """Check if value is -0.0 (which creates diff noise)."""
    try:
        return x == 0.0 and math.copysign(1.0, x) < 0
    except (TypeError, ValueError):
        return False


def sanitize_for_json(obj: Any) -> Any:
    """Recursively make obj canonical-JSON safe.

    NaN/inf become None (unknown ARR growth is carried as NaN internally),
    -0.0 becomes 0.0, and dataclasses, enums, tuples and numpy scalars are
    reduced to plain JSON types.
    """
    if is_dataclass(obj) and not isinstance(obj, type):
        return sanitize_for_json(asdict(obj))
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, np.generic):
        obj = obj.item()
    if isinstance(obj, dict):
        return {str(k): sanitize_for_json(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [sanitize_for_json(item) for item in obj]
    if isinstance(obj, bool) or obj is None:
        return obj
    if _is_nan_or_inf(obj):
        return None
    if _is_negative_zero(obj):
        return 0.0
    return obj


def build_intelligence_snapshot(
    current: dict[str, Any],
    baseline: dict[str, Any],
    intelligence: dict[str, Any],
) -> dict[str, Any]:
    """
    Attach version and change-detection hash to a classification result.

    The hash covers the inputs and the full record, so any change to either
    (or to SNAPSHOT_VERSION) changes it.

    Returns:
        Dict with snapshot_version and snapshot_hash
    """
    hashed = {
        "snapshot_version": SNAPSHOT_VERSION,
        "current": current,
        "baseline": baseline,
        "intelligence": intelligence,
    }
    return {
        "snapshot_version": SNAPSHOT_VERSION,
        "snapshot_hash": content_hash(hashed),
    }
