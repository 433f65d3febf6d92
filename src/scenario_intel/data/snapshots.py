"""Immutable input snapshots and their parsing from plain dicts.

Snapshots arrive from the simulation engine as JSON-like dicts (camelCase or
snake_case keys, numpy scalars allowed). Parsing never propagates NaN into
band comparisons except for ARR growth, where NaN is the explicit "unknown"
marker.
"""

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from scenario_intel.utils.validators import is_finite_number


class SnapshotParseError(ValueError):
    """Raised when a required snapshot section is not a mapping."""

    pass


@dataclass(frozen=True)
class MetricSnapshot:
    """Point-in-time metrics for one scenario (current or baseline)."""

    runway_months: float
    cash_position: float
    burn_rate_monthly: float
    arr: float
    arr_growth_pct: float
    gross_margin_pct: float
    risk_score: float
    enterprise_value: float

    def __post_init__(self) -> None:
        # Coerce to plain floats. Unknown growth and risk stay NaN so the bands
        # can see them; everything else falls back to a neutral zero. Known
        # risk is clamped to its 0-100 scale.
        for name in (
            "runway_months",
            "cash_position",
            "burn_rate_monthly",
            "arr",
            "gross_margin_pct",
            "enterprise_value",
        ):
            object.__setattr__(self, name, _coerce_float(getattr(self, name), 0.0))

        object.__setattr__(
            self, "arr_growth_pct", _coerce_float(self.arr_growth_pct, math.nan)
        )
        risk = _coerce_float(self.risk_score, math.nan)
        if math.isfinite(risk):
            risk = min(100.0, max(0.0, risk))
        object.__setattr__(self, "risk_score", risk)

    def to_dict(self) -> dict[str, Any]:
        """Plain dict view (unknown growth and risk become None for JSON safety)."""
        return {
            "runway_months": self.runway_months,
            "cash_position": self.cash_position,
            "burn_rate_monthly": self.burn_rate_monthly,
            "arr": self.arr,
            "arr_growth_pct": self.arr_growth_pct if math.isfinite(self.arr_growth_pct) else None,
            "gross_margin_pct": self.gross_margin_pct,
            "risk_score": self.risk_score if math.isfinite(self.risk_score) else None,
            "enterprise_value": self.enterprise_value,
        }


@dataclass(frozen=True)
class Percentiles:
    p10: float
    p50: float
    p90: float


@dataclass(frozen=True)
class SimulationSummary:
    iterations: int
    time_horizon_months: float
    survival_rate: float
    arr_percentiles: Percentiles
    cash_percentiles: Percentiles
    runway_percentiles: Percentiles


@dataclass(frozen=True)
class RiskProfile:
    classification: str
    value_at_risk_95: float
    tail_risk_score: float
    burn_fragility_index: float
    volatility_index: float
    risk_drivers: Mapping[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class SensitivityEntry:
    label: str
    elasticity_score: float
    delta_survival: float


@dataclass(frozen=True)
class ValuationSummary:
    p10: float
    p25: float
    p50: float
    p75: float
    p90: float


@dataclass(frozen=True)
class ConfidenceDrivers:
    sample_adequacy: float
    dispersion_risk: float
    input_integrity: float
    cross_method_alignment: float


@dataclass(frozen=True)
class ConfidenceScore:
    score: float
    classification: str
    drivers: ConfidenceDrivers


@dataclass(frozen=True)
class SystemAnalysisSnapshot:
    """Richer input for the quantified-findings path."""

    simulation: SimulationSummary
    risk_profile: RiskProfile
    sensitivity_map: tuple[SensitivityEntry, ...]
    confidence: ConfidenceScore
    valuation: ValuationSummary | None = None


# ---------------- Coercion helpers ----------------

def _coerce_float(value: Any, default: float) -> float:
    """Coerce numpy scalars, numeric strings and plain numbers to float."""
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return default
    if not is_finite_number(value):
        return default
    return float(value)


def _pick(data: Mapping[str, Any], *keys: str) -> Any:
    """Return the first present key (camelCase or snake_case aliases)."""
    for key in keys:
        if key in data:
            return data[key]
    return None


def _require_mapping(value: Any, section: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise SnapshotParseError(f"'{section}' must be an object, got {type(value).__name__}")
    return value


def _optional_mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _optional_list(value: Any) -> list[Any]:
    return list(value) if isinstance(value, (list, tuple)) else []


def _percentiles(data: Any) -> Percentiles:
    data = _optional_mapping(data)
    return Percentiles(
        p10=_coerce_float(data.get("p10"), 0.0),
        p50=_coerce_float(data.get("p50"), 0.0),
        p90=_coerce_float(data.get("p90"), 0.0),
    )


# ---------------- Public parsers ----------------

def parse_metric_snapshot(data: Any, section: str = "snapshot") -> MetricSnapshot:
    """
    Build a MetricSnapshot from a dict.

    Args:
        data: Mapping with camelCase or snake_case metric keys
        section: Name used in error messages

    Returns:
        Immutable MetricSnapshot with neutral defaults for missing fields

    Raises:
        SnapshotParseError: If data is not a mapping
    """
    data = _require_mapping(data, section)
    return MetricSnapshot(
        runway_months=_pick(data, "runwayMonths", "runway_months"),
        cash_position=_pick(data, "cashPosition", "cash_position"),
        burn_rate_monthly=_pick(data, "burnRateMonthly", "burn_rate_monthly"),
        arr=_pick(data, "arr", "ARR"),
        arr_growth_pct=_pick(data, "arrGrowthPct", "arr_growth_pct"),
        gross_margin_pct=_pick(data, "grossMarginPct", "gross_margin_pct"),
        risk_score=_pick(data, "riskScore", "risk_score"),
        enterprise_value=_pick(data, "enterpriseValue", "enterprise_value"),
    )


def parse_analysis_snapshot(data: Any) -> SystemAnalysisSnapshot:
    """
    Build a SystemAnalysisSnapshot from a dict.

    The simulation, risk profile and confidence sections are required to be
    objects; sensitivity and valuation are optional. A missing valuation
    stays None so the valuation finding is omitted, never fabricated.

    Raises:
        SnapshotParseError: If a required section is not a mapping
    """
    data = _require_mapping(data, "snapshot")

    sim_raw = _require_mapping(
        _pick(data, "simulationSummary", "simulation_summary", "simulation"),
        "simulationSummary",
    )
    risk_raw = _require_mapping(_pick(data, "riskProfile", "risk_profile"), "riskProfile")
    conf_raw = _require_mapping(
        _pick(data, "confidenceScore", "confidence_score", "confidence"),
        "confidenceScore",
    )

    simulation = SimulationSummary(
        iterations=int(_coerce_float(_pick(sim_raw, "iterations"), 0.0)),
        time_horizon_months=_coerce_float(
            _pick(sim_raw, "timeHorizonMonths", "time_horizon_months"), 0.0
        ),
        survival_rate=min(
            1.0, max(0.0, _coerce_float(_pick(sim_raw, "survivalRate", "survival_rate"), 0.0))
        ),
        arr_percentiles=_percentiles(_pick(sim_raw, "arrPercentiles", "arr_percentiles")),
        cash_percentiles=_percentiles(_pick(sim_raw, "cashPercentiles", "cash_percentiles")),
        runway_percentiles=_percentiles(
            _pick(sim_raw, "runwayPercentiles", "runway_percentiles")
        ),
    )

    drivers_raw = _optional_mapping(_pick(risk_raw, "riskDrivers", "risk_drivers"))
    risk_profile = RiskProfile(
        classification=str(_pick(risk_raw, "classification") or "Critical"),
        value_at_risk_95=_coerce_float(_pick(risk_raw, "valueAtRisk95", "value_at_risk_95"), 0.0),
        tail_risk_score=_coerce_float(_pick(risk_raw, "tailRiskScore", "tail_risk_score"), 0.0),
        burn_fragility_index=_coerce_float(
            _pick(risk_raw, "burnFragilityIndex", "burn_fragility_index"), 0.0
        ),
        volatility_index=_coerce_float(_pick(risk_raw, "volatilityIndex", "volatility_index"), 0.0),
        risk_drivers={str(k): _coerce_float(v, 0.0) for k, v in drivers_raw.items()},
    )

    sensitivity_raw = _optional_list(_pick(data, "sensitivityMap", "sensitivity_map"))
    sensitivity_map = tuple(
        SensitivityEntry(
            label=str(_pick(entry, "label") or "Unnamed lever"),
            elasticity_score=_coerce_float(_pick(entry, "elasticityScore", "elasticity_score"), 0.0),
            delta_survival=_coerce_float(_pick(entry, "deltaSurvival", "delta_survival"), 0.0),
        )
        for entry in sensitivity_raw
        if isinstance(entry, Mapping)
    )

    valuation_raw = _pick(data, "valuationSummary", "valuation_summary", "valuation")
    valuation = None
    if isinstance(valuation_raw, Mapping):
        valuation = ValuationSummary(
            p10=_coerce_float(valuation_raw.get("p10"), 0.0),
            p25=_coerce_float(valuation_raw.get("p25"), 0.0),
            p50=_coerce_float(valuation_raw.get("p50"), 0.0),
            p75=_coerce_float(valuation_raw.get("p75"), 0.0),
            p90=_coerce_float(valuation_raw.get("p90"), 0.0),
        )

    conf_drivers = _optional_mapping(_pick(conf_raw, "drivers"))
    confidence = ConfidenceScore(
        score=min(100.0, max(0.0, _coerce_float(_pick(conf_raw, "confidenceScore", "score"), 0.0))),
        classification=str(_pick(conf_raw, "classification") or "Low"),
        drivers=ConfidenceDrivers(
            sample_adequacy=_coerce_float(
                _pick(conf_drivers, "sampleAdequacy", "sample_adequacy"), 0.0
            ),
            dispersion_risk=_coerce_float(
                _pick(conf_drivers, "dispersionRisk", "dispersion_risk"), 0.0
            ),
            input_integrity=_coerce_float(
                _pick(conf_drivers, "inputIntegrity", "input_integrity"), 0.0
            ),
            cross_method_alignment=_coerce_float(
                _pick(conf_drivers, "crossMethodAlignment", "cross_method_alignment"), 0.0
            ),
        ),
    )

    return SystemAnalysisSnapshot(
        simulation=simulation,
        risk_profile=risk_profile,
        sensitivity_map=sensitivity_map,
        confidence=confidence,
        valuation=valuation,
    )
