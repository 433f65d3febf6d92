"""Per-dimension band classifiers and the two severity taxonomies.

Every classifier is a total function: closed-open intervals, boundary values
belong to the better band, and NaN never reaches a comparison.

Cut-points are domain constants kept as configuration. Change them here, not
inline.
"""

from enum import Enum

from scenario_intel.utils.validators import is_finite_number


class StateLevel(str, Enum):
    """Operational taxonomy used by the classification path."""

    STABLE = "STABLE"
    MODERATE = "MODERATE"
    ELEVATED = "ELEVATED"
    HIGH = "HIGH"


class FindingSeverity(str, Enum):
    """Outcome taxonomy used by the quantified-findings path."""

    POSITIVE = "positive"
    NEUTRAL = "neutral"
    WARNING = "warning"
    CRITICAL = "critical"


class ArrGrowthBand(str, Enum):
    CONTRACTING = "CONTRACTING"
    WEAK = "WEAK"
    HEALTHY = "HEALTHY"
    STRONG = "STRONG"
    UNKNOWN = "UNKNOWN"


class MarginBand(str, Enum):
    WEAK = "WEAK"
    ELEVATED = "ELEVATED"
    STABLE = "STABLE"
    STRONG = "STRONG"


class BurnPressureBand(str, Enum):
    DOWN = "DOWN"
    FLAT = "FLAT"
    UP_MODERATE = "UP_MODERATE"
    UP_ELEVATED = "UP_ELEVATED"
    UP_HIGH = "UP_HIGH"


STATE_RANK: dict[StateLevel, int] = {
    StateLevel.STABLE: 0,
    StateLevel.MODERATE: 1,
    StateLevel.ELEVATED: 2,
    StateLevel.HIGH: 3,
}

SEVERITY_RANK: dict[FindingSeverity, int] = {
    FindingSeverity.POSITIVE: 0,
    FindingSeverity.NEUTRAL: 1,
    FindingSeverity.WARNING: 2,
    FindingSeverity.CRITICAL: 3,
}

# Runway thresholds (months): below key -> band
RUNWAY_THRESHOLDS = {
    "high": 6.0,
    "elevated": 12.0,
    "moderate": 18.0,
}

# Risk score thresholds (0-100, higher is worse)
RISK_THRESHOLDS = {
    "moderate": 30.0,
    "elevated": 55.0,
    "high": 75.0,
}

# Burn change vs baseline, as a ratio
BURN_PRESSURE_THRESHOLDS = {
    "down": -0.08,
    "up_moderate": 0.03,
    "up_elevated": 0.08,
    "up_high": 0.15,
}

# ARR growth thresholds (percent points)
ARR_GROWTH_THRESHOLDS = {
    "weak": 0.0,
    "healthy": 10.0,
    "strong": 25.0,
}

# Gross margin thresholds (percent points)
GROSS_MARGIN_THRESHOLDS = {
    "elevated": 50.0,
    "stable": 65.0,
    "strong": 80.0,
}


def runway_band(months: float) -> StateLevel:
    """Classify runway months. Unknown runway is treated as the worst band."""
    if not is_finite_number(months):
        return StateLevel.HIGH
    if months < RUNWAY_THRESHOLDS["high"]:
        return StateLevel.HIGH
    if months < RUNWAY_THRESHOLDS["elevated"]:
        return StateLevel.ELEVATED
    if months < RUNWAY_THRESHOLDS["moderate"]:
        return StateLevel.MODERATE
    return StateLevel.STABLE


def risk_band(score: float) -> StateLevel:
    """Classify a 0-100 risk score. Unknown risk is treated as the worst band."""
    if not is_finite_number(score):
        return StateLevel.HIGH
    if score < RISK_THRESHOLDS["moderate"]:
        return StateLevel.STABLE
    if score < RISK_THRESHOLDS["elevated"]:
        return StateLevel.MODERATE
    if score < RISK_THRESHOLDS["high"]:
        return StateLevel.ELEVATED
    return StateLevel.HIGH


def burn_change_ratio(current: float, baseline: float) -> float | None:
    """Relative burn change vs baseline, or None when it cannot be computed."""
    if not is_finite_number(current) or not is_finite_number(baseline):
        return None
    if not baseline > 0:
        return None
    return (current - baseline) / baseline


def burn_pressure_band(current: float, baseline: float) -> BurnPressureBand:
    """
    Classify burn pressure relative to baseline.

    Non-positive baseline or non-finite inputs return FLAT, the neutral band.
    """
    ratio = burn_change_ratio(current, baseline)
    if ratio is None:
        return BurnPressureBand.FLAT
    if ratio <= BURN_PRESSURE_THRESHOLDS["down"]:
        return BurnPressureBand.DOWN
    if ratio < BURN_PRESSURE_THRESHOLDS["up_moderate"]:
        return BurnPressureBand.FLAT
    if ratio < BURN_PRESSURE_THRESHOLDS["up_elevated"]:
        return BurnPressureBand.UP_MODERATE
    if ratio < BURN_PRESSURE_THRESHOLDS["up_high"]:
        return BurnPressureBand.UP_ELEVATED
    return BurnPressureBand.UP_HIGH


def arr_growth_band(pct: float) -> ArrGrowthBand:
    """Classify ARR growth percent. Non-finite growth is UNKNOWN."""
    if not is_finite_number(pct):
        return ArrGrowthBand.UNKNOWN
    if pct < ARR_GROWTH_THRESHOLDS["weak"]:
        return ArrGrowthBand.CONTRACTING
    if pct < ARR_GROWTH_THRESHOLDS["healthy"]:
        return ArrGrowthBand.WEAK
    if pct < ARR_GROWTH_THRESHOLDS["strong"]:
        return ArrGrowthBand.HEALTHY
    return ArrGrowthBand.STRONG


def gross_margin_band(pct: float) -> MarginBand:
    """Classify gross margin percent. Unknown margin is treated as WEAK."""
    if not is_finite_number(pct) or pct < GROSS_MARGIN_THRESHOLDS["elevated"]:
        return MarginBand.WEAK
    if pct < GROSS_MARGIN_THRESHOLDS["stable"]:
        return MarginBand.ELEVATED
    if pct < GROSS_MARGIN_THRESHOLDS["strong"]:
        return MarginBand.STABLE
    return MarginBand.STRONG


def state_rank(level: StateLevel) -> int:
    return STATE_RANK[StateLevel(level)]


def max_level(*levels: StateLevel) -> StateLevel:
    """Worst-case composition over the state rank table. Empty input is STABLE."""
    worst = StateLevel.STABLE
    for level in levels:
        if STATE_RANK[StateLevel(level)] > STATE_RANK[worst]:
            worst = StateLevel(level)
    return worst


def max_severity(*severities: FindingSeverity) -> FindingSeverity:
    """Worst-case composition over the outcome rank table. Empty input is POSITIVE."""
    worst = FindingSeverity.POSITIVE
    for severity in severities:
        if SEVERITY_RANK[FindingSeverity(severity)] > SEVERITY_RANK[worst]:
            worst = FindingSeverity(severity)
    return worst
