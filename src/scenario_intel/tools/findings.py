"""Quantified findings extraction (citation-backed mode).

Up to nine category slots from a SystemAnalysisSnapshot. Every number in a
narrative is produced by a formatter and cited in the same call, so each
finding's citations cover its narrative exactly. Missing optional sections
omit their finding; nothing is ever a placeholder.
"""

import logging
import re
from time import perf_counter
from typing import Any

from scenario_intel.data.cache import get_narrative_cache
from scenario_intel.data.narrative_client import narrative_service_configured
from scenario_intel.data.snapshots import (
    SnapshotParseError,
    SystemAnalysisSnapshot,
    parse_analysis_snapshot,
)
from scenario_intel.tools.narrative import generate_narrative, generate_narrative_async
from scenario_intel.utils.bands import FindingSeverity, max_severity
from scenario_intel.utils.citations import (
    CitationBuilder,
    check_citation_integrity,
    fmt_count,
    fmt_decimal,
    fmt_months,
    fmt_pct,
    fmt_score,
    fmt_signed_pct,
    fmt_usd,
)
from scenario_intel.utils.provenance import build_error_response, build_meta

logger = logging.getLogger(__name__)

# Survival rate (0-1) -> severity, checked top-down
SURVIVAL_THRESHOLDS = {
    "positive": 0.8,
    "neutral": 0.5,
    "warning": 0.3,
}

# ARR spread (p90-p10)/p50
REVENUE_SPREAD_THRESHOLDS = {
    "positive": 0.5,
    "neutral": 1.0,
}

CASH_COMFORT_P50 = 500_000

# Median runway months
RUNWAY_FINDING_THRESHOLDS = {
    "positive": 24.0,
    "neutral": 12.0,
    "warning": 6.0,
}

SENSITIVITY_WARNING_ELASTICITY = 0.6
RISK_DRIVER_WARNING_SHARE = 0.35
TOP_DRIVERS = 3

RISK_CLASS_SEVERITY = {
    "Robust": FindingSeverity.POSITIVE,
    "Stable": FindingSeverity.NEUTRAL,
    "Fragile": FindingSeverity.WARNING,
}

CONFIDENCE_SEVERITY = {
    "High": FindingSeverity.POSITIVE,
    "Moderate": FindingSeverity.NEUTRAL,
}

# Declared order doubles as the tie-break for equal contributions
DRIVER_LABELS: dict[str, str] = {
    "marketVolatilityImpact": "Market Volatility",
    "burnRateImpact": "Burn Rate Exposure",
    "churnImpact": "Churn / Retention",
    "growthVarianceImpact": "Growth Variance",
    "capitalStructureImpact": "Capital Structure",
}
_DRIVER_ORDER = {key: i for i, key in enumerate(DRIVER_LABELS)}


def _finding(
    finding_id: str,
    category: str,
    severity: FindingSeverity,
    narrative: str,
    cites: CitationBuilder,
) -> dict[str, Any]:
    return {
        "id": finding_id,
        "category": category,
        "severity": severity.value,
        "narrative": narrative,
        "citations": cites.citations,
    }


def _quote(label: str) -> str:
    """Wrap a name in double quotes so it is never read as a number."""
    return '"' + label.replace('"', "'") + '"'


def _humanize_driver(key: str) -> str:
    words = re.sub(r"([a-z0-9])([A-Z])", r"\1 \2", key).replace("_", " ").split()
    if words and words[-1].lower() == "impact":
        words = words[:-1]
    return " ".join(w[:1].upper() + w[1:] for w in words) or key


# ---------------- Slots ----------------

def _survival_finding(snapshot: SystemAnalysisSnapshot) -> dict[str, Any]:
    sim = snapshot.simulation
    rate = sim.survival_rate
    cites = CitationBuilder()
    survival = cites.cite("Survival", fmt_pct(rate))
    iterations = cites.cite("Iterations", fmt_count(sim.iterations))
    horizon = cites.cite("Horizon", fmt_months(sim.time_horizon_months))

    if rate >= SURVIVAL_THRESHOLDS["positive"]:
        severity = FindingSeverity.POSITIVE
        narrative = (
            f"Structural survival probability is strong at {survival}. The business sustains "
            f"across {survival} of {iterations} simulated paths over a {horizon} horizon."
        )
    elif rate >= SURVIVAL_THRESHOLDS["neutral"]:
        severity = FindingSeverity.NEUTRAL
        failure = cites.cite("Failure", fmt_pct(1 - rate))
        narrative = (
            f"Survival probability is moderate at {survival}. Approximately {failure} of "
            f"{iterations} simulated paths reach failure within {horizon}."
        )
    elif rate >= SURVIVAL_THRESHOLDS["warning"]:
        severity = FindingSeverity.WARNING
        failure = cites.cite("Failure", fmt_pct(1 - rate))
        narrative = (
            f"Survival probability is weak at {survival}. {failure} of simulated paths reach "
            f"failure within {horizon}, leaving little room for adverse execution."
        )
    else:
        severity = FindingSeverity.CRITICAL
        failure = cites.cite("Failure", fmt_pct(1 - rate))
        narrative = (
            f"Survival probability is critically low at {survival}. {failure} of {iterations} "
            f"simulated futures end in business failure within {horizon}."
        )
    return _finding("survival", "survival", severity, narrative, cites)


def _revenue_finding(snapshot: SystemAnalysisSnapshot) -> dict[str, Any]:
    arr = snapshot.simulation.arr_percentiles
    spread = (arr.p90 - arr.p10) / arr.p50 if arr.p50 > 0 else 0.0
    cites = CitationBuilder()
    p10 = cites.cite("ARR P10", fmt_usd(arr.p10))
    p50 = cites.cite("ARR P50", fmt_usd(arr.p50))
    p90 = cites.cite("ARR P90", fmt_usd(arr.p90))
    spread_str = cites.cite("ARR Spread", fmt_pct(spread))

    if spread < REVENUE_SPREAD_THRESHOLDS["positive"]:
        severity = FindingSeverity.POSITIVE
        narrative = (
            f"Revenue outcomes are tightly distributed around a {p50} median ARR. "
            f"Low dispersion (spread {spread_str}) indicates a predictable growth trajectory."
        )
    elif spread < REVENUE_SPREAD_THRESHOLDS["neutral"]:
        severity = FindingSeverity.NEUTRAL
        narrative = (
            f"Revenue ranges from {p10} in the downside case to {p90} in the upside case, "
            f"with a median of {p50}. A spread of {spread_str} reflects moderate uncertainty "
            f"in the growth path."
        )
    else:
        severity = FindingSeverity.WARNING
        narrative = (
            f"Wide revenue dispersion: downside ARR of {p10} against upside ARR of {p90}. "
            f"A spread of {spread_str} indicates high sensitivity to execution and market factors."
        )
    return _finding("revenue", "revenue", severity, narrative, cites)


def _capital_finding(snapshot: SystemAnalysisSnapshot) -> dict[str, Any]:
    sim = snapshot.simulation
    cash = sim.cash_percentiles
    cites = CitationBuilder()
    p10 = cites.cite("Cash P10", fmt_usd(cash.p10))
    p50 = cites.cite("Cash P50", fmt_usd(cash.p50))
    cites.cite("Cash P90", fmt_usd(cash.p90))

    if cash.p10 > 0:
        severity = FindingSeverity.POSITIVE if cash.p50 > CASH_COMFORT_P50 else FindingSeverity.NEUTRAL
        narrative = (
            f"Median terminal cash is {p50}. Even under stress, the business retains "
            f"{p10} in reserves."
        )
    else:
        severity = FindingSeverity.CRITICAL
        stress_runway = cites.cite("Runway P10", fmt_months(sim.runway_percentiles.p10))
        narrative = (
            f"Stress scenarios end with a cash position of {p10}. Capital injection or burn "
            f"reduction is likely needed before {stress_runway}."
        )
    return _finding("capital", "capital", severity, narrative, cites)


def _runway_finding(snapshot: SystemAnalysisSnapshot) -> dict[str, Any]:
    runway = snapshot.simulation.runway_percentiles
    cites = CitationBuilder()
    p10 = cites.cite("Runway P10", fmt_months(runway.p10))
    p50 = cites.cite("Runway P50", fmt_months(runway.p50))
    cites.cite("Runway P90", fmt_months(runway.p90))

    if runway.p50 >= RUNWAY_FINDING_THRESHOLDS["positive"]:
        severity = FindingSeverity.POSITIVE
        narrative = (
            f"Median runway of {p50} provides strategic flexibility. Stress runway of {p10} "
            f"remains clear of the critical zone."
        )
    elif runway.p50 >= RUNWAY_FINDING_THRESHOLDS["neutral"]:
        severity = FindingSeverity.NEUTRAL
        narrative = (
            f"Median runway of {p50} is adequate. Stress runway of {p10} puts the next "
            f"funding decision on the near-term agenda."
        )
    else:
        if runway.p50 >= RUNWAY_FINDING_THRESHOLDS["warning"]:
            severity = FindingSeverity.WARNING
        else:
            severity = FindingSeverity.CRITICAL
        narrative = (
            f"Runway compression: median {p50}, stress case {p10}. Capital action or burn "
            f"reduction is needed to extend the horizon."
        )
    return _finding("runway", "runway", severity, narrative, cites)


def _risk_class_finding(snapshot: SystemAnalysisSnapshot) -> dict[str, Any]:
    risk = snapshot.risk_profile
    severity = RISK_CLASS_SEVERITY.get(risk.classification, FindingSeverity.CRITICAL)
    cites = CitationBuilder()
    classification = cites.cite("Classification", risk.classification)
    var = cites.cite("VaR 95%", fmt_usd(risk.value_at_risk_95))
    tail = cites.cite("Tail Risk", fmt_decimal(risk.tail_risk_score * 100, 1))
    fragility = cites.cite("Burn Fragility", fmt_pct(risk.burn_fragility_index))
    volatility = cites.cite("Volatility", fmt_decimal(risk.volatility_index, 3))

    if severity in (FindingSeverity.POSITIVE, FindingSeverity.NEUTRAL):
        narrative = (
            f"Risk classification is {_quote(classification)}. Value at risk sits at {var}, "
            f"with tail risk score {tail}, burn fragility {fragility} and volatility index "
            f"{volatility}."
        )
    else:
        narrative = (
            f"Risk classification is {_quote(classification)}, leaving the plan exposed to "
            f"adverse paths. Value at risk reaches {var}; tail risk score {tail}, burn "
            f"fragility {fragility}, volatility index {volatility}."
        )
    return _finding("risk-class", "risk", severity, narrative, cites)


def _sensitivity_finding(snapshot: SystemAnalysisSnapshot) -> dict[str, Any] | None:
    top = snapshot.sensitivity_map[:TOP_DRIVERS]
    if not top:
        return None

    cites = CitationBuilder()
    elasticities = []
    for entry in top:
        elasticity = fmt_pct(entry.elasticity_score)
        shift = fmt_signed_pct(entry.delta_survival)
        cites.cite(entry.label, f"{elasticity} | ΔS {shift}")
        elasticities.append(elasticity)

    lead = top[0]
    sentences = [
        f"{_quote(lead.label)} is the dominant sensitivity driver (elasticity "
        f"{elasticities[0]}, survival shift {fmt_signed_pct(lead.delta_survival)})."
    ]
    followers = [f"{_quote(entry.label)} ({e})" for entry, e in zip(top[1:], elasticities[1:])]
    if followers:
        sentences.append("Followed by " + " and ".join(followers) + ".")
    narrative = " ".join(sentences)

    severity = (
        FindingSeverity.WARNING
        if lead.elasticity_score > SENSITIVITY_WARNING_ELASTICITY
        else FindingSeverity.NEUTRAL
    )
    return _finding("sensitivity", "sensitivity", severity, narrative, cites)


def _risk_driver_finding(snapshot: SystemAnalysisSnapshot) -> dict[str, Any] | None:
    drivers = sorted(
        snapshot.risk_profile.risk_drivers.items(),
        key=lambda kv: (-kv[1], _DRIVER_ORDER.get(kv[0], len(_DRIVER_ORDER)), kv[0]),
    )[:TOP_DRIVERS]
    if not drivers or not drivers[0][1] > 0:
        return None

    cites = CitationBuilder()
    parts = []
    for key, share in drivers:
        label = DRIVER_LABELS.get(key) or _humanize_driver(key)
        value = cites.cite(label, fmt_pct(share, 1))
        parts.append(f"{_quote(label)} ({value})")

    severity = (
        FindingSeverity.WARNING
        if drivers[0][1] > RISK_DRIVER_WARNING_SHARE
        else FindingSeverity.NEUTRAL
    )
    narrative = "Top risk contributors: " + ", ".join(parts) + "."
    return _finding("risk-drivers", "risk", severity, narrative, cites)


def _valuation_finding(snapshot: SystemAnalysisSnapshot) -> dict[str, Any] | None:
    valuation = snapshot.valuation
    if valuation is None:
        return None

    cites = CitationBuilder()
    p10 = cites.cite("EV P10", fmt_usd(valuation.p10))
    p25 = cites.cite("EV P25", fmt_usd(valuation.p25))
    p50 = cites.cite("EV P50", fmt_usd(valuation.p50))
    p75 = cites.cite("EV P75", fmt_usd(valuation.p75))
    p90 = cites.cite("EV P90", fmt_usd(valuation.p90))

    if valuation.p50 > 0:
        severity = FindingSeverity.NEUTRAL
        narrative = (
            f"Median enterprise value is {p50}. The operating range runs from {p25} to {p75}, "
            f"and the stress range from {p10} to {p90}."
        )
    else:
        severity = FindingSeverity.WARNING
        narrative = (
            f"Median enterprise value is {p50}, so the central case carries no positive "
            f"valuation. The stress range runs from {p10} to {p90}."
        )
    return _finding("valuation", "valuation", severity, narrative, cites)


def _confidence_finding(snapshot: SystemAnalysisSnapshot) -> dict[str, Any]:
    conf = snapshot.confidence
    severity = CONFIDENCE_SEVERITY.get(conf.classification, FindingSeverity.WARNING)
    cites = CitationBuilder()
    score = cites.cite("Score", fmt_score(conf.score))
    classification = cites.cite("Classification", conf.classification)
    sample = cites.cite("Sample", fmt_decimal(conf.drivers.sample_adequacy))
    dispersion = cites.cite("Dispersion", fmt_decimal(conf.drivers.dispersion_risk))
    integrity = cites.cite("Integrity", fmt_decimal(conf.drivers.input_integrity))
    alignment = cites.cite("Alignment", fmt_decimal(conf.drivers.cross_method_alignment))

    narrative = (
        f"Model confidence is {score} ({_quote(classification)}). Sample adequacy {sample}, "
        f"dispersion risk {dispersion}, input integrity {integrity}, cross-method "
        f"alignment {alignment}."
    )
    return _finding("confidence", "confidence", severity, narrative, cites)


_SLOTS = (
    _survival_finding,
    _revenue_finding,
    _capital_finding,
    _runway_finding,
    _risk_class_finding,
    _sensitivity_finding,
    _risk_driver_finding,
    _valuation_finding,
    _confidence_finding,
)


def extract_quantified_findings(snapshot: SystemAnalysisSnapshot) -> list[dict[str, Any]]:
    """
    Extract citation-backed findings in fixed slot order.

    Args:
        snapshot: Parsed analysis snapshot

    Returns:
        Ordered list of finding dicts {id, category, severity, narrative, citations}
    """
    findings: list[dict[str, Any]] = []
    for slot in _SLOTS:
        finding = slot(snapshot)
        if finding is None:
            continue
        missing = check_citation_integrity(finding)
        if missing:
            logger.warning(f"Finding {finding['id']} cites no value for {missing}")
        findings.append(finding)
    return findings


async def quantified_findings(
    snapshot: dict[str, Any],
    enhance: bool = True,
) -> dict[str, Any]:
    """
    Extract findings and render them as narrative blocks.

    Args:
        snapshot: Raw analysis snapshot dict
        enhance: Try the external narrative service when it is configured

    Returns:
        Dict with findings, narrative and meta, or an error response
    """
    start_time = perf_counter()
    try:
        parsed = parse_analysis_snapshot(snapshot)
    except SnapshotParseError as e:
        return build_error_response("invalid_input", str(e), tool="get_quantified_findings")

    findings = extract_quantified_findings(parsed)
    if enhance and narrative_service_configured():
        narrative = await generate_narrative_async(findings, cache=get_narrative_cache())
    else:
        narrative = generate_narrative(findings)

    duration_ms = (perf_counter() - start_time) * 1000
    return {
        "findings": findings,
        "narrative": narrative,
        "meta": build_meta(
            "get_quantified_findings",
            duration_ms,
            narrative_source=narrative["source"],
            overall_severity=max_severity(*(f["severity"] for f in findings)).value,
        ),
    }
