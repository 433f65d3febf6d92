"""Pytest configuration and fixtures."""

from collections.abc import Callable
from typing import Any

import pytest

from scenario_intel.data.snapshots import MetricSnapshot

# Mid-band metrics: runway at the stable edge, healthy growth, stable margin,
# moderate risk
SNAP_DEFAULTS: dict[str, float] = {
    "runway_months": 18.0,
    "cash_position": 5_000_000.0,
    "burn_rate_monthly": 200_000.0,
    "arr": 3_000_000.0,
    "arr_growth_pct": 18.0,
    "gross_margin_pct": 70.0,
    "risk_score": 40.0,
    "enterprise_value": 20_000_000.0,
}


def make_snap(**overrides: Any) -> MetricSnapshot:
    """MetricSnapshot from SNAP_DEFAULTS with overrides."""
    return MetricSnapshot(**{**SNAP_DEFAULTS, **overrides})


@pytest.fixture
def snap() -> Callable[..., MetricSnapshot]:
    """Factory for MetricSnapshot with mid-band defaults."""
    return make_snap


@pytest.fixture
def stable_pair() -> tuple[MetricSnapshot, MetricSnapshot]:
    """Identical current/baseline with every axis STABLE."""
    return make_snap(risk_score=20.0), make_snap(risk_score=20.0)


@pytest.fixture
def mixed_pair() -> tuple[MetricSnapshot, MetricSnapshot]:
    """Growth drops from healthy to weak; everything else unchanged."""
    return make_snap(arr_growth_pct=5.0), make_snap()


@pytest.fixture
def stress_pair() -> tuple[MetricSnapshot, MetricSnapshot]:
    """Runway, burn, margin, growth and risk all deteriorate vs baseline."""
    current = make_snap(
        runway_months=8.0,
        burn_rate_monthly=260_000.0,
        gross_margin_pct=55.0,
        arr_growth_pct=5.0,
        risk_score=80.0,
    )
    baseline = make_snap(risk_score=20.0)
    return current, baseline


@pytest.fixture
def analysis_snapshot() -> dict[str, Any]:
    """Healthy analysis snapshot in the simulation engine's camelCase shape."""
    return {
        "simulationSummary": {
            "iterations": 10000,
            "timeHorizonMonths": 36,
            "survivalRate": 0.85,
            "arrPercentiles": {"p10": 2_400_000, "p50": 3_000_000, "p90": 3_900_000},
            "cashPercentiles": {"p10": 800_000, "p50": 2_100_000, "p90": 3_500_000},
            "runwayPercentiles": {"p10": 20, "p50": 30, "p90": 42},
        },
        "riskProfile": {
            "classification": "Stable",
            "valueAtRisk95": 1_250_000,
            "tailRiskScore": 0.42,
            "burnFragilityIndex": 0.35,
            "volatilityIndex": 0.218,
            "riskDrivers": {
                "marketVolatilityImpact": 0.20,
                "burnRateImpact": 0.30,
                "churnImpact": 0.25,
                "growthVarianceImpact": 0.15,
                "capitalStructureImpact": 0.10,
            },
        },
        "sensitivityMap": [
            {"label": "Monthly Burn", "elasticityScore": 0.72, "deltaSurvival": -0.12},
            {"label": "ARR Growth", "elasticityScore": 0.55, "deltaSurvival": 0.08},
            {"label": "Gross Margin", "elasticityScore": 0.31, "deltaSurvival": 0.03},
        ],
        "valuationSummary": {
            "p10": 12_000_000,
            "p25": 16_000_000,
            "p50": 20_000_000,
            "p75": 25_000_000,
            "p90": 31_000_000,
        },
        "confidenceScore": {
            "confidenceScore": 78,
            "classification": "High",
            "drivers": {
                "sampleAdequacy": 90,
                "dispersionRisk": 65,
                "inputIntegrity": 85,
                "crossMethodAlignment": 72,
            },
        },
    }
