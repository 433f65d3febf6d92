"""Generic category-deduplicated top-K selection."""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Candidate:
    """
    A scored, selection-only item.

    key is the stable identity, priority the declared tie-break (lower wins).
    payload carries family-specific extras (question answers, risk detail).
    """

    key: str
    category: str
    score: int
    priority: int
    text: str
    payload: dict[str, Any] = field(default_factory=dict)


def select_by_category(
    candidates: Iterable[Candidate],
    limit: int,
    min_score: int = 0,
) -> list[Candidate]:
    """
    Rank by (score desc, priority asc), keep one winner per category.

    Args:
        candidates: Candidate pool for one family
        limit: Maximum number of winners
        min_score: Candidates scoring below this are dropped before ranking

    Returns:
        At most `limit` candidates, no two sharing a category
    """
    ranked = sorted(
        (c for c in candidates if c.score >= min_score),
        key=lambda c: (-c.score, c.priority, c.key),
    )

    picked: list[Candidate] = []
    seen: set[str] = set()
    for candidate in ranked:
        if len(picked) >= limit:
            break
        if candidate.category in seen:
            continue
        picked.append(candidate)
        seen.add(candidate.category)
    return picked


def pad_to_minimum(items: Sequence[str], minimum: int, fillers: Sequence[str]) -> list[str]:
    """Append fillers not already present until `minimum` items exist."""
    out = list(items)
    for filler in fillers:
        if len(out) >= minimum:
            break
        if filler not in out:
            out.append(filler)
    return out
