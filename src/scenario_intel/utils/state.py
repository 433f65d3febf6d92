"""Composite system state and baseline deltas."""

import math
from dataclasses import dataclass

from scenario_intel.data.snapshots import MetricSnapshot
from scenario_intel.utils.bands import (
    ArrGrowthBand,
    BurnPressureBand,
    MarginBand,
    StateLevel,
    arr_growth_band,
    burn_change_ratio,
    burn_pressure_band,
    gross_margin_band,
    max_level,
    risk_band,
    runway_band,
)

# Family band -> state lookups (fixed tables, not reused thresholds)
BURN_TO_STATE: dict[BurnPressureBand, StateLevel] = {
    BurnPressureBand.UP_HIGH: StateLevel.HIGH,
    BurnPressureBand.UP_ELEVATED: StateLevel.ELEVATED,
    BurnPressureBand.UP_MODERATE: StateLevel.MODERATE,
    BurnPressureBand.FLAT: StateLevel.STABLE,
    BurnPressureBand.DOWN: StateLevel.STABLE,
}

MARGIN_TO_STATE: dict[MarginBand, StateLevel] = {
    MarginBand.WEAK: StateLevel.ELEVATED,
    MarginBand.ELEVATED: StateLevel.MODERATE,
    MarginBand.STABLE: StateLevel.STABLE,
    MarginBand.STRONG: StateLevel.STABLE,
}

# Burn alone never pushes operations past ELEVATED
OPERATIONAL_BURN_CAP: dict[StateLevel, StateLevel] = {
    StateLevel.HIGH: StateLevel.ELEVATED,
}


@dataclass(frozen=True)
class SystemState:
    financial: StateLevel
    operational: StateLevel
    execution: StateLevel

    def levels(self) -> tuple[StateLevel, StateLevel, StateLevel]:
        return (self.financial, self.operational, self.execution)

    def to_dict(self) -> dict[str, str]:
        return {
            "financial": self.financial.value,
            "operational": self.operational.value,
            "execution": self.execution.value,
        }


@dataclass(frozen=True)
class Deltas:
    """Current minus baseline, per dimension. Growth and risk are NaN when unknown."""

    runway: float
    arr_growth: float
    margin: float
    risk: float
    burn_change_pct: float

    @property
    def runway_declining(self) -> bool:
        return self.runway <= -1

    @property
    def growth_declining(self) -> bool:
        return math.isfinite(self.arr_growth) and self.arr_growth <= -3

    @property
    def risk_rising(self) -> bool:
        return self.risk >= 5


@dataclass(frozen=True)
class BandContext:
    """Everything a candidate generator is allowed to look at."""

    current: MetricSnapshot
    baseline: MetricSnapshot
    deltas: Deltas
    state: SystemState
    runway: StateLevel
    risk: StateLevel
    burn: BurnPressureBand
    burn_state: StateLevel
    growth: ArrGrowthBand
    margin: MarginBand


def compute_deltas(current: MetricSnapshot, baseline: MetricSnapshot) -> Deltas:
    if math.isfinite(current.arr_growth_pct) and math.isfinite(baseline.arr_growth_pct):
        growth_delta = current.arr_growth_pct - baseline.arr_growth_pct
    else:
        growth_delta = math.nan

    ratio = burn_change_ratio(current.burn_rate_monthly, baseline.burn_rate_monthly)

    return Deltas(
        runway=current.runway_months - baseline.runway_months,
        arr_growth=growth_delta,
        margin=current.gross_margin_pct - baseline.gross_margin_pct,
        risk=current.risk_score - baseline.risk_score,
        burn_change_pct=ratio if ratio is not None else 0.0,
    )


def compute_system_state(current: MetricSnapshot, baseline: MetricSnapshot) -> SystemState:
    """
    Compose the three-axis system state.

    financial = max(runway, burn)
    operational = max(margin, burn capped at ELEVATED)
    execution = risk
    """
    burn_state = BURN_TO_STATE[burn_pressure_band(current.burn_rate_monthly, baseline.burn_rate_monthly)]
    margin_state = MARGIN_TO_STATE[gross_margin_band(current.gross_margin_pct)]

    return SystemState(
        financial=max_level(runway_band(current.runway_months), burn_state),
        operational=max_level(margin_state, OPERATIONAL_BURN_CAP.get(burn_state, burn_state)),
        execution=risk_band(current.risk_score),
    )


def is_fully_stable(state: SystemState) -> bool:
    return all(level == StateLevel.STABLE for level in state.levels())


def build_band_context(current: MetricSnapshot, baseline: MetricSnapshot) -> BandContext:
    burn = burn_pressure_band(current.burn_rate_monthly, baseline.burn_rate_monthly)
    return BandContext(
        current=current,
        baseline=baseline,
        deltas=compute_deltas(current, baseline),
        state=compute_system_state(current, baseline),
        runway=runway_band(current.runway_months),
        risk=risk_band(current.risk_score),
        burn=burn,
        burn_state=BURN_TO_STATE[burn],
        growth=arr_growth_band(current.arr_growth_pct),
        margin=gross_margin_band(current.gross_margin_pct),
    )
