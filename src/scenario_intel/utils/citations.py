"""Number formatting and citation tracking for quantified findings.

Every number that appears in a finding's narrative goes through a formatter
and is recorded by the finding's CitationBuilder with the same string, so
narrative and citations can never disagree.
"""

import math
import re
from collections.abc import Mapping
from typing import Any

# Formatted-number token: optional sign and $, grouped or plain digits,
# optional decimals, optional unit suffix, optional "/100" style denominator.
NUMERIC_TOKEN_RE = re.compile(
    r"(?<![\w.])[+-]?\$?(?:\d{1,3}(?:,\d{3})+|\d+)(?:\.\d+)?(?:[KMB%]|mo)?(?:/\d+)?"
)

# Double-quoted names (sensitivity labels, classifications) are not numbers
QUOTED_RE = re.compile(r'"[^"]*"')


# ---------------- Formatters ----------------

def _signed(body: str, negative: bool) -> str:
    """Prefix '-' unless the rendered magnitude is zero."""
    digits = re.sub(r"[^\d]", "", body)
    if negative and digits.strip("0"):
        return "-" + body
    return body


def fmt_usd(value: float) -> str:
    """Abbreviated currency: $1.2B, $3.4M, $250K, $950. Negatives as -$1.2M."""
    magnitude = abs(value)
    # Tiers switch where rounding would carry into the next unit (999_999 -> $1.0M)
    if magnitude >= 999_950_000:
        body = f"${magnitude / 1_000_000_000:.1f}B"
    elif magnitude >= 999_500:
        body = f"${magnitude / 1_000_000:.1f}M"
    elif magnitude >= 999.5:
        body = f"${magnitude / 1_000:.0f}K"
    else:
        body = f"${round(magnitude):,}"
    return _signed(body, value < 0)


def fmt_pct(ratio: float, decimals: int = 0) -> str:
    """0-1 ratio to percent string: 0.45 -> '45%'."""
    return f"{ratio * 100:.{decimals}f}%"


def fmt_signed_pct(ratio: float, decimals: int = 1) -> str:
    """Ratio to explicitly signed percent: 0.015 -> '+1.5%'."""
    body = f"{abs(ratio) * 100:.{decimals}f}%"
    if ratio < 0 and body.strip("0.%"):
        return "-" + body
    return "+" + body


def fmt_months(months: float) -> str:
    """Whole months with unit suffix, half-up: 17.5 -> '18mo'."""
    return f"{math.floor(months + 0.5)}mo"


def fmt_count(count: float) -> str:
    return f"{int(round(count)):,}"


def fmt_decimal(value: float, decimals: int = 0) -> str:
    return f"{value:.{decimals}f}"


def fmt_score(score: float) -> str:
    """0-100 score: 72.4 -> '72/100'."""
    return f"{score:.0f}/100"


# ---------------- Citations ----------------

class CitationBuilder:
    """
    Collects {label, value} pairs for one finding.

    cite() returns the value unchanged so it can be interpolated directly,
    and records each label/value pair exactly once, in first-use order.
    """

    def __init__(self) -> None:
        self._citations: list[dict[str, str]] = []
        self._seen: set[tuple[str, str]] = set()

    def cite(self, label: str, value: str) -> str:
        pair = (label, value)
        if pair not in self._seen:
            self._seen.add(pair)
            self._citations.append({"label": label, "value": value})
        return value

    @property
    def citations(self) -> list[dict[str, str]]:
        return [dict(c) for c in self._citations]


def numeric_tokens(text: str) -> list[str]:
    """Extract formatted-number tokens, ignoring double-quoted names."""
    return NUMERIC_TOKEN_RE.findall(QUOTED_RE.sub(" ", text or ""))


def cited_tokens(citations: list[Mapping[str, Any]]) -> set[str]:
    """All numeric tokens present in a finding's citation values."""
    tokens: set[str] = set()
    for citation in citations:
        tokens.update(numeric_tokens(str(citation.get("value", ""))))
    return tokens


def check_citation_integrity(finding: Mapping[str, Any]) -> list[str]:
    """
    Return narrative tokens that are missing from the finding's citations.

    An empty list means every number in the narrative is backed by a citation.
    """
    allowed = cited_tokens(finding.get("citations") or [])
    return [
        token
        for token in numeric_tokens(str(finding.get("narrative", "")))
        if token not in allowed
    ]
