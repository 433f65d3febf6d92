"""Utility modules."""

from scenario_intel.utils.bands import (
    FindingSeverity,
    StateLevel,
    arr_growth_band,
    burn_pressure_band,
    gross_margin_band,
    max_level,
    max_severity,
    risk_band,
    runway_band,
)
from scenario_intel.utils.citations import (
    CitationBuilder,
    check_citation_integrity,
    fmt_count,
    fmt_months,
    fmt_pct,
    fmt_usd,
    numeric_tokens,
)
from scenario_intel.utils.normalize import canonical_dumps, content_hash
from scenario_intel.utils.provenance import build_error_response, build_meta
from scenario_intel.utils.sanitize import has_digits, sanitize_text, strip_digits
from scenario_intel.utils.selection import Candidate, pad_to_minimum, select_by_category

__all__ = [
    "FindingSeverity",
    "StateLevel",
    "arr_growth_band",
    "burn_pressure_band",
    "gross_margin_band",
    "max_level",
    "max_severity",
    "risk_band",
    "runway_band",
    "CitationBuilder",
    "check_citation_integrity",
    "fmt_count",
    "fmt_months",
    "fmt_pct",
    "fmt_usd",
    "numeric_tokens",
    "canonical_dumps",
    "content_hash",
    "build_error_response",
    "build_meta",
    "has_digits",
    "sanitize_text",
    "strip_digits",
    "Candidate",
    "pad_to_minimum",
    "select_by_category",
]
