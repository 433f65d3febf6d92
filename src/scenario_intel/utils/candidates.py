"""Candidate generators, one per concern family.

Each generator evaluates trigger predicates over a BandContext and emits
scored Candidates. Scores are graduated 0-3, taking the max across every
contributing sub-condition. Template text is fixed and digit-free; numbers
never reach qualitative prose.
"""

import math
from collections.abc import Sequence

from scenario_intel.utils.bands import (
    ArrGrowthBand,
    BurnPressureBand,
    MarginBand,
    StateLevel,
    state_rank,
)
from scenario_intel.utils.selection import Candidate
from scenario_intel.utils.state import BandContext

# ---------------- Assumption flags ----------------

FLAG_TEXT = {
    "A": "Outcome is sensitive to revenue momentum holding.",
    "B": "Stability depends on runway buffer not compressing.",
    "C": "Scenario assumes cost load remains contained.",
    "D": "Result depends on maintaining efficiency under scale.",
    "E": "Execution tolerance is low under this risk profile.",
}


def flag_candidates(ctx: BandContext) -> list[Candidate]:
    """Assumption flags A-E (growth, runway, cost, efficiency, execution)."""
    cur = ctx.current
    d = ctx.deltas
    growth_known = math.isfinite(cur.arr_growth_pct)
    growth_delta_known = math.isfinite(d.arr_growth)
    out: list[Candidate] = []

    # A: growth dependency
    if (growth_known and cur.arr_growth_pct < 10) or (growth_delta_known and d.arr_growth <= -3):
        score = 0
        if growth_known:
            if cur.arr_growth_pct < 0:
                score = 3
            elif cur.arr_growth_pct < 10:
                score = 2
        if growth_delta_known and d.arr_growth <= -10:
            score = max(score, 3)
        elif growth_delta_known and d.arr_growth <= -3:
            score = max(score, 1)
        out.append(Candidate("A", "growth", score, 1, FLAG_TEXT["A"]))

    # B: runway dependency
    if cur.runway_months < 12 or d.runway <= -1:
        score = 0
        if cur.runway_months < 6:
            score = 3
        elif cur.runway_months < 12:
            score = 2
        if d.runway <= -3:
            score = max(score, 2)
        elif d.runway <= -1:
            score = max(score, 1)
        out.append(Candidate("B", "runway", score, 2, FLAG_TEXT["B"]))

    # C: cost discipline
    if d.burn_change_pct >= 0.10:
        score = 1
        if d.burn_change_pct >= 0.20:
            score = 3
        elif d.burn_change_pct >= 0.15:
            score = 2
        out.append(Candidate("C", "cost", score, 3, FLAG_TEXT["C"]))

    # D: efficiency
    if cur.gross_margin_pct < 65 or d.margin <= -2:
        score = 0
        if cur.gross_margin_pct < 50:
            score = 3
        elif cur.gross_margin_pct < 65:
            score = 2
        if d.margin <= -5:
            score = max(score, 2)
        elif d.margin <= -2:
            score = max(score, 1)
        out.append(Candidate("D", "efficiency", score, 4, FLAG_TEXT["D"]))

    # E: execution tolerance
    if cur.risk_score >= 55 or d.risk >= 5:
        score = 0
        if cur.risk_score >= 75:
            score = 3
        elif cur.risk_score >= 55:
            score = 2
        if d.risk >= 10:
            score = max(score, 2)
        elif d.risk >= 5:
            score = max(score, 1)
        out.append(Candidate("E", "execution", score, 5, FLAG_TEXT["E"]))

    return out


# ---------------- Strategic questions ----------------

QUESTION_TEXT = {
    "capital_timing": "What signals would indicate capital timing sensitivity?",
    "growth_sustainability": "How sustainable is current growth under this scenario?",
    "risk_concentration": "Where is risk most concentrated in this scenario?",
    "assumption_fragility": "Which assumptions does this scenario rely on most?",
}


def question_candidates(ctx: BandContext, selected_flags: Sequence[str]) -> list[Candidate]:
    """
    Strategic questions Q1-Q4.

    Q4 only triggers when at least one assumption flag was selected, and its
    answer lists those flags.
    """
    d = ctx.deltas
    financial = ctx.state.financial
    out: list[Candidate] = []

    # Q1: capital timing
    if financial in (StateLevel.ELEVATED, StateLevel.HIGH) or d.runway_declining:
        if financial == StateLevel.HIGH or d.runway <= -3 or d.burn_change_pct >= 0.15:
            score = 3
        elif financial == StateLevel.ELEVATED or d.runway_declining or d.burn_change_pct >= 0.10:
            score = 2
        else:
            score = 1
        if ctx.burn in (BurnPressureBand.UP_HIGH, BurnPressureBand.UP_ELEVATED) or d.runway_declining:
            answer = (
                "Sensitivity appears tied to runway compression and burn pressure "
                "increasing relative to baseline."
            )
        else:
            answer = "Sensitivity appears tied to stability narrowing under the current financial posture."
        out.append(
            Candidate(
                "Q1", "capital_timing", score, 1, QUESTION_TEXT["capital_timing"],
                {"answer": answer},
            )
        )

    # Q2: growth sustainability
    if ctx.growth in (ArrGrowthBand.CONTRACTING, ArrGrowthBand.WEAK) or d.growth_declining:
        steep_drop = math.isfinite(d.arr_growth) and d.arr_growth <= -10
        if ctx.growth == ArrGrowthBand.CONTRACTING or steep_drop:
            score = 3
        elif ctx.growth == ArrGrowthBand.WEAK or d.growth_declining:
            score = 2
        else:
            score = 1
        if ctx.margin in (MarginBand.WEAK, MarginBand.ELEVATED):
            answer = (
                "Sustainability appears sensitive to momentum holding while "
                "efficiency tolerance remains intact."
            )
        else:
            answer = (
                "Sustainability appears driven by momentum holding without "
                "increasing execution variance."
            )
        out.append(
            Candidate(
                "Q2", "growth_sustainability", score, 2, QUESTION_TEXT["growth_sustainability"],
                {"answer": answer},
            )
        )

    # Q3: risk concentration
    if ctx.current.risk_score >= 55 or d.risk_rising:
        if ctx.risk == StateLevel.HIGH or d.risk >= 10:
            score = 3
        elif ctx.risk == StateLevel.ELEVATED or d.risk_rising:
            score = 2
        else:
            score = 1
        if financial in (StateLevel.HIGH, StateLevel.ELEVATED):
            answer = "Risk appears concentrated in liquidity optionality and execution variance."
        elif ctx.margin == MarginBand.WEAK:
            answer = "Risk appears concentrated in efficiency tolerance and execution variance."
        else:
            answer = "Risk appears concentrated in execution variance under the current posture."
        out.append(
            Candidate(
                "Q3", "risk_concentration", score, 3, QUESTION_TEXT["risk_concentration"],
                {"answer": answer},
            )
        )

    # Q4: assumption fragility
    if selected_flags:
        score = max(1, *(state_rank(level) for level in ctx.state.levels()))
        answer = "The scenario relies most on: " + " · ".join(selected_flags)
        out.append(
            Candidate(
                "Q4", "assumption_fragility", score, 4, QUESTION_TEXT["assumption_fragility"],
                {"answer": answer},
            )
        )

    return out


# ---------------- Risk findings ----------------

STABLE_RISK = {
    "severity": StateLevel.STABLE.value,
    "title": "No structural risks detected",
    "driver": "Inputs are within stable operating bands.",
    "impact": "Continue monitoring for drift.",
}


def _risk(
    key: str, severity: StateLevel, priority: int, title: str, driver: str, impact: str
) -> Candidate:
    return Candidate(
        key=key,
        category=key,
        score=state_rank(severity),
        priority=priority,
        text=title,
        payload={"severity": severity.value, "title": title, "driver": driver, "impact": impact},
    )


def risk_candidates(ctx: BandContext) -> list[Candidate]:
    """Risk findings; score is the severity rank, priority breaks ties."""
    out: list[Candidate] = []

    if ctx.runway != StateLevel.STABLE:
        out.append(
            _risk(
                "runway", ctx.runway, 1,
                "Runway constraint",
                "Runway posture is constrained under the current burn and funding sensitivity.",
                "Optionality narrows and timing risk increases.",
            )
        )

    if ctx.risk != StateLevel.STABLE:
        out.append(
            _risk(
                "execution", ctx.risk, 2,
                "Execution variance",
                "Risk posture is elevated relative to baseline conditions.",
                "Outcome variance widens and forecast reliability decreases.",
            )
        )

    if ctx.growth in (ArrGrowthBand.CONTRACTING, ArrGrowthBand.WEAK):
        severity = StateLevel.ELEVATED if ctx.growth == ArrGrowthBand.CONTRACTING else StateLevel.MODERATE
        out.append(
            _risk(
                "growth", severity, 3,
                "ARR growth fragility",
                "ARR growth signal is below baseline expectations.",
                "Revenue momentum weakens and recovery requires tighter execution.",
            )
        )

    if ctx.margin in (MarginBand.WEAK, MarginBand.ELEVATED):
        severity = StateLevel.ELEVATED if ctx.margin == MarginBand.WEAK else StateLevel.MODERATE
        out.append(
            _risk(
                "margin", severity, 4,
                "Margin pressure",
                "Gross margin posture is under pressure relative to the stable band.",
                "Unit economics tighten and growth becomes less efficient.",
            )
        )

    if ctx.burn_state != StateLevel.STABLE:
        out.append(
            _risk(
                "burn", ctx.burn_state, 5,
                "Burn pressure shift",
                "Burn pressure has increased versus baseline posture.",
                "Resilience decreases and tradeoffs become sharper.",
            )
        )

    return out


# ---------------- Observations ----------------

RUNWAY_OBSERVATIONS = {
    StateLevel.HIGH: "Runway is critically constrained under the current posture.",
    StateLevel.ELEVATED: "Runway constraint is elevated and reduces optionality.",
    StateLevel.MODERATE: "Runway remains workable but requires discipline.",
    StateLevel.STABLE: "Runway posture remains stable under the current assumptions.",
}

GROWTH_OBSERVATIONS = {
    ArrGrowthBand.CONTRACTING: "ARR growth signal indicates contraction versus the baseline posture.",
    ArrGrowthBand.WEAK: "ARR growth signal is weak relative to baseline expectations.",
    ArrGrowthBand.HEALTHY: "ARR growth signal is healthy under the current scenario.",
    ArrGrowthBand.STRONG: "ARR growth signal is strong and supports forward momentum.",
    ArrGrowthBand.UNKNOWN: "ARR growth signal is not available from current inputs.",
}

RISK_OBSERVATIONS = {
    StateLevel.HIGH: "Execution risk is high and dominates the decision surface.",
    StateLevel.ELEVATED: "Execution risk is elevated and increases outcome variance.",
    StateLevel.MODERATE: "Execution risk is moderate and requires active monitoring.",
    StateLevel.STABLE: "Execution risk remains stable under current conditions.",
}

BURN_UP_OBSERVATION = "Burn pressure has increased versus baseline and tightens the operating envelope."
BURN_DOWN_OBSERVATION = "Burn pressure has eased versus baseline, improving resilience."


def observation_lines(ctx: BandContext) -> list[str]:
    """One declarative line per dimension, in fixed order."""
    lines = [
        RUNWAY_OBSERVATIONS[ctx.runway],
        GROWTH_OBSERVATIONS[ctx.growth],
        RISK_OBSERVATIONS[ctx.risk],
    ]
    if ctx.burn in (BurnPressureBand.UP_HIGH, BurnPressureBand.UP_ELEVATED):
        lines.append(BURN_UP_OBSERVATION)
    elif ctx.burn == BurnPressureBand.DOWN:
        lines.append(BURN_DOWN_OBSERVATION)
    return lines


# ---------------- Attention ----------------

ATTENTION_FILLERS = (
    "Attention on forecast stability and operating discipline.",
    "Attention on maintaining the current operating cadence.",
)


def attention_lines(ctx: BandContext) -> list[str]:
    lines: list[str] = []
    if ctx.state.financial != StateLevel.STABLE:
        lines.append("Attention on runway resilience versus burn posture.")
    if ctx.growth in (ArrGrowthBand.CONTRACTING, ArrGrowthBand.WEAK):
        lines.append("Attention on retention quality and pipeline health.")
    if ctx.margin in (MarginBand.WEAK, MarginBand.ELEVATED):
        lines.append("Attention on pricing power and cost of service assumptions.")
    if ctx.state.execution != StateLevel.STABLE:
        lines.append("Attention on execution sequencing and dependency risk.")
    return lines


# ---------------- Position brief ----------------

STRENGTH_FILLERS = (
    "No further structural strengths stand out under current inputs.",
    "Remaining dimensions hold close to the baseline posture.",
    "Further strengths depend on sustaining the current operating cadence.",
)

VULNERABILITY_FILLERS = (
    "No further structural vulnerabilities stand out under current inputs.",
    "Residual exposure sits in ordinary forecast variance.",
    "Further vulnerabilities would surface as drift against the baseline.",
)

PRIORITY_FILLERS = (
    "Priority on maintaining forecast discipline.",
    "Priority on monitoring drift against the baseline posture.",
    "Priority on sustaining the current operating cadence.",
)


def strength_candidates(ctx: BandContext) -> list[Candidate]:
    d = ctx.deltas
    out: list[Candidate] = []

    if ctx.runway == StateLevel.STABLE:
        score = 3 if d.runway >= 1 else 2
        out.append(Candidate("runway", "runway", score, 1, "Runway buffer leaves room to sequence decisions."))
    elif ctx.runway == StateLevel.MODERATE:
        out.append(Candidate("runway", "runway", 1, 1, "Runway remains workable under the current burn posture."))

    if ctx.growth == ArrGrowthBand.STRONG:
        out.append(Candidate("growth", "growth", 3, 2, "Revenue momentum is strong and supports forward planning."))
    elif ctx.growth == ArrGrowthBand.HEALTHY:
        out.append(Candidate("growth", "growth", 2, 2, "Revenue momentum is healthy under the current scenario."))

    if ctx.margin == MarginBand.STRONG:
        out.append(Candidate("margin", "margin", 3, 3, "Unit economics are strong and absorb cost variance."))
    elif ctx.margin == MarginBand.STABLE:
        out.append(Candidate("margin", "margin", 2, 3, "Unit economics hold within a healthy efficiency band."))

    if ctx.risk == StateLevel.STABLE:
        score = 3 if d.risk <= -5 else 2
        out.append(Candidate("execution", "execution", score, 4, "Execution risk is contained under current conditions."))

    if ctx.burn == BurnPressureBand.DOWN:
        out.append(Candidate("burn", "burn", 2, 5, "Cost load has eased versus baseline, adding resilience."))

    return out


def vulnerability_candidates(ctx: BandContext) -> list[Candidate]:
    out: list[Candidate] = []

    if ctx.runway != StateLevel.STABLE:
        out.append(
            Candidate("runway", "runway", state_rank(ctx.runway), 1, "Runway buffer limits capital timing flexibility.")
        )
    if ctx.risk != StateLevel.STABLE:
        out.append(
            Candidate("execution", "execution", state_rank(ctx.risk), 2, "Execution variance widens the range of outcomes.")
        )
    if ctx.growth == ArrGrowthBand.CONTRACTING:
        out.append(Candidate("growth", "growth", 3, 3, "Revenue is contracting and erodes forward momentum."))
    elif ctx.growth == ArrGrowthBand.WEAK:
        out.append(Candidate("growth", "growth", 2, 3, "Revenue momentum is weak relative to baseline expectations."))
    elif ctx.growth == ArrGrowthBand.UNKNOWN:
        out.append(Candidate("growth", "growth", 1, 3, "Growth signal is unavailable, which limits forward visibility."))
    if ctx.margin in (MarginBand.WEAK, MarginBand.ELEVATED):
        score = 2 if ctx.margin == MarginBand.WEAK else 1
        out.append(Candidate("margin", "margin", score, 4, "Margin pressure reduces efficiency headroom."))
    if ctx.burn_state != StateLevel.STABLE:
        out.append(
            Candidate("burn", "burn", state_rank(ctx.burn_state), 5, "Rising burn narrows the operating envelope.")
        )

    return out


def priority_candidates(ctx: BandContext) -> list[Candidate]:
    out: list[Candidate] = []

    if ctx.state.financial != StateLevel.STABLE:
        out.append(
            Candidate(
                "financial", "financial", state_rank(ctx.state.financial), 1,
                "Priority on preserving runway optionality.",
            )
        )
    if ctx.state.execution != StateLevel.STABLE:
        out.append(
            Candidate(
                "execution", "execution", state_rank(ctx.state.execution), 2,
                "Priority on execution sequencing and dependency control.",
            )
        )
    if ctx.growth in (ArrGrowthBand.CONTRACTING, ArrGrowthBand.WEAK):
        score = 3 if ctx.growth == ArrGrowthBand.CONTRACTING else 2
        out.append(Candidate("growth", "growth", score, 3, "Priority on retention quality and pipeline health."))
    if ctx.state.operational != StateLevel.STABLE:
        out.append(
            Candidate(
                "operational", "operational", state_rank(ctx.state.operational), 4,
                "Priority on pricing power and cost of service.",
            )
        )

    return out
