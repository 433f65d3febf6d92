"""Deterministic scenario classification (qualitative mode).

Pure function of a (current, baseline) MetricSnapshot pair. No digits ever
reach the prose, every collection is bounded, and the invariant enforcer runs
last on every result. The async tool wrapper may swap in validated
strategic answers from the narrative service.
"""

import logging
from time import perf_counter
from typing import Any

from scenario_intel.data.cache import get_narrative_cache
from scenario_intel.data.narrative_client import narrative_service_configured
from scenario_intel.data.snapshots import MetricSnapshot, SnapshotParseError, parse_metric_snapshot
from scenario_intel.tools.strategic_qa import (
    SCENARIO_LABELS,
    apply_strategic_answers,
    ask_strategic_questions,
    build_strategic_qa_input,
    qa_deltas,
)
from scenario_intel.utils.candidates import (
    ATTENTION_FILLERS,
    PRIORITY_FILLERS,
    STABLE_RISK,
    STRENGTH_FILLERS,
    VULNERABILITY_FILLERS,
    attention_lines,
    flag_candidates,
    observation_lines,
    priority_candidates,
    question_candidates,
    risk_candidates,
    strength_candidates,
    vulnerability_candidates,
)
from scenario_intel.utils.enforcer import OUTPUT_BOUNDS, enforce_intelligence_output
from scenario_intel.utils.normalize import build_intelligence_snapshot, sanitize_for_json
from scenario_intel.utils.provenance import build_error_response, build_meta
from scenario_intel.utils.selection import pad_to_minimum, select_by_category
from scenario_intel.utils.state import build_band_context, is_fully_stable

logger = logging.getLogger(__name__)

# Questions scoring below this are too weak to surface
MIN_QUESTION_SCORE = 2

BRIEF_SIZE = 3


def map_scenario_intelligence(current: MetricSnapshot, baseline: MetricSnapshot) -> dict[str, Any]:
    """
    Classify a scenario against its baseline.

    Args:
        current: Scenario metrics
        baseline: Baseline metrics the scenario is compared to

    Returns:
        Classification record: system_state, observations, risks, attention,
        assumption_flags, strategic_questions, position_brief
    """
    ctx = build_band_context(current, baseline)
    stable = is_fully_stable(ctx.state)

    # Flags and questions: stable systems get none at all, not fillers
    if stable:
        flags: list[str] = []
        questions: list[dict[str, str]] = []
    else:
        flags = [c.text for c in select_by_category(flag_candidates(ctx), OUTPUT_BOUNDS["assumption_flags"][1])]
        questions = [
            {"question": c.text, "answer": c.payload["answer"]}
            for c in select_by_category(
                question_candidates(ctx, flags),
                OUTPUT_BOUNDS["strategic_questions"][1],
                min_score=MIN_QUESTION_SCORE,
            )
        ]

    risks = [
        dict(c.payload)
        for c in select_by_category(risk_candidates(ctx), OUTPUT_BOUNDS["risks"][1])
    ] or [dict(STABLE_RISK)]

    attention_min, attention_max = OUTPUT_BOUNDS["attention"]
    attention = pad_to_minimum(attention_lines(ctx)[:attention_max], attention_min, ATTENTION_FILLERS)

    position_brief = {
        "strengths": pad_to_minimum(
            [c.text for c in select_by_category(strength_candidates(ctx), BRIEF_SIZE)],
            BRIEF_SIZE,
            STRENGTH_FILLERS,
        ),
        "vulnerabilities": pad_to_minimum(
            [c.text for c in select_by_category(vulnerability_candidates(ctx), BRIEF_SIZE)],
            BRIEF_SIZE,
            VULNERABILITY_FILLERS,
        ),
        "priorities": pad_to_minimum(
            [c.text for c in select_by_category(priority_candidates(ctx), BRIEF_SIZE)],
            BRIEF_SIZE,
            PRIORITY_FILLERS,
        ),
    }

    output = {
        "system_state": ctx.state.to_dict(),
        "observations": observation_lines(ctx)[: OUTPUT_BOUNDS["observations"][1]],
        "risks": risks,
        "attention": attention,
        "assumption_flags": flags,
        "strategic_questions": questions,
        "position_brief": position_brief,
    }
    return enforce_intelligence_output(output)


async def scenario_intelligence(
    current: dict[str, Any],
    baseline: dict[str, Any],
    scenario_id: str = "scenario",
    scenario_label: str = "base",
    compare_to_base: bool = True,
    enhance: bool = True,
) -> dict[str, Any]:
    """
    Classify a scenario from raw snapshot dicts.

    When the narrative service is configured, the selected strategic
    questions are answered by the service. Only a fully validated response
    replaces the deterministic answers; the snapshot hash always covers the
    deterministic record.

    Args:
        current: Scenario metrics (camelCase or snake_case keys)
        baseline: Baseline metrics
        scenario_id: Caller's scenario identifier, sent to the service
        scenario_label: One of base, upside, downside, extreme
        compare_to_base: Ask for baseline-relative answers
        enhance: Try the external narrative service when it is configured

    Returns:
        Classification record with snapshot_hash and meta, or an error response
    """
    start_time = perf_counter()
    if scenario_label not in SCENARIO_LABELS:
        return build_error_response(
            "invalid_input",
            f"Unknown scenario label: {scenario_label}",
            tool="get_scenario_intelligence",
        )
    try:
        current_snapshot = parse_metric_snapshot(current, "current")
        baseline_snapshot = parse_metric_snapshot(baseline, "baseline")
    except SnapshotParseError as e:
        return build_error_response("invalid_input", str(e), tool="get_scenario_intelligence")

    intelligence = map_scenario_intelligence(current_snapshot, baseline_snapshot)
    snapshot = build_intelligence_snapshot(
        current_snapshot.to_dict(), baseline_snapshot.to_dict(), intelligence
    )

    qa_source = "deterministic"
    if enhance and intelligence["strategic_questions"] and narrative_service_configured():
        qa_input = build_strategic_qa_input(
            intelligence,
            scenario_id=scenario_id,
            scenario_label=scenario_label,
            compare_to_base=compare_to_base,
            deltas=qa_deltas(current_snapshot, baseline_snapshot),
        )
        qa_response = await ask_strategic_questions(qa_input, cache=get_narrative_cache())
        if qa_response is not None:
            intelligence = enforce_intelligence_output(
                {
                    **intelligence,
                    "strategic_questions": apply_strategic_answers(
                        intelligence["strategic_questions"], qa_input, qa_response
                    ),
                }
            )
            qa_source = "openai"

    duration_ms = (perf_counter() - start_time) * 1000
    return sanitize_for_json(
        {
            **intelligence,
            **snapshot,
            "meta": build_meta("get_scenario_intelligence", duration_ms, strategic_qa_source=qa_source),
        }
    )

