"""Strategic Q&A and scenario questions via the external narrative service.

Both paths are boundary code: the service sees qualitative signals (or a
metric snapshot for free-form questions), and every response is validated in
full before use. Any failure yields None so callers keep the deterministic
answers they already have.
"""

import asyncio
import json
import logging
import re
from collections.abc import Mapping
from time import perf_counter
from typing import Any

from scenario_intel.data.cache import NarrativeCache
from scenario_intel.data.narrative_client import NarrativeServiceClient, get_default_client
from scenario_intel.data.snapshots import MetricSnapshot, SnapshotParseError, parse_metric_snapshot
from scenario_intel.prompts.templates import SCENARIO_QA_SYSTEM_PROMPT, STRATEGIC_QA_SYSTEM_PROMPT
from scenario_intel.utils.bands import burn_change_ratio
from scenario_intel.utils.candidates import QUESTION_TEXT
from scenario_intel.utils.normalize import content_hash
from scenario_intel.utils.provenance import build_error_response, build_meta
from scenario_intel.utils.sanitize import has_digits, has_imperatives, sanitize_text
from scenario_intel.utils.state import compute_deltas
from scenario_intel.utils.validators import finite_or_none

logger = logging.getLogger(__name__)

TIMEOUT_SECONDS = 10.0

QA_VERSION = "1.0"
SCENARIO_LABELS = ("base", "upside", "downside", "extreme")
QUESTION_IDS = (
    "capital_timing",
    "growth_sustainability",
    "risk_concentration",
    "assumption_fragility",
    "custom",
)
CONFIDENCE_LEVELS = ("low", "medium", "high")

# |delta| <= eps reads as flat; natural units per dimension
DELTA_EPS: dict[str, float] = {
    "runway": 0.5,
    "burn": 0.01,
    "growth": 0.01,
    "margin": 0.01,
    "risk": 0.01,
    "valuation": 0.01,
}

MAX_QA_ITEMS = 2
HEADLINE_MAX_WORDS = 12
MAX_LIST_ITEMS = 6

_QUESTION_ID_BY_TEXT = {text: qid for qid, text in QUESTION_TEXT.items()}

_BASELINE_RE = re.compile(r"\b(baseline|base case|base)\b", re.IGNORECASE)


class StrategicQaValidationError(ValueError):
    """Raised when a strategic Q&A response breaks its contract."""

    pass


# ---------------- Input ----------------

def delta_direction(delta: float | None, eps: float) -> str:
    """'up', 'down' or 'flat' (unknown deltas read as flat)."""
    value = finite_or_none(delta)
    if value is None or abs(value) <= eps:
        return "flat"
    return "up" if value > 0 else "down"


def qa_deltas(current: MetricSnapshot, baseline: MetricSnapshot) -> dict[str, float | None]:
    """
    Raw deltas keyed the way build_strategic_qa_input expects.

    Runway, growth, margin and risk are point differences; burn and
    valuation are relative changes vs baseline.
    """
    deltas = compute_deltas(current, baseline)
    return {
        "runway": deltas.runway,
        "burn": burn_change_ratio(current.burn_rate_monthly, baseline.burn_rate_monthly),
        "growth": finite_or_none(deltas.arr_growth),
        "margin": deltas.margin,
        "risk": deltas.risk,
        "valuation": (
            (current.enterprise_value - baseline.enterprise_value) / baseline.enterprise_value
            if baseline.enterprise_value > 0
            else None
        ),
    }


def build_strategic_qa_input(
    intelligence: Mapping[str, Any],
    scenario_id: str,
    scenario_label: str,
    compare_to_base: bool,
    deltas: Mapping[str, float | None] | None = None,
) -> dict[str, Any]:
    """
    Build the qualitative-only prompt input from a classification record.

    Args:
        intelligence: Output of map_scenario_intelligence
        scenario_id: Caller's scenario identifier
        scenario_label: One of base, upside, downside, extreme
        compare_to_base: Whether answers must be baseline-relative
        deltas: Raw deltas keyed runway, burn, growth, margin, risk, valuation

    Returns:
        Prompt input with at most two of each signal and delta directions

    Raises:
        ValueError: If scenario_label is unknown
    """
    if scenario_label not in SCENARIO_LABELS:
        raise ValueError(f"Unknown scenario label: {scenario_label}")

    deltas = deltas or {}
    state = intelligence.get("system_state") or {}
    return {
        "scenario_id": str(scenario_id),
        "scenario_label": scenario_label,
        "compare_to_base": bool(compare_to_base),
        "observations": [str(o) for o in (intelligence.get("observations") or [])[:2]],
        "assumption_flags": [str(f) for f in (intelligence.get("assumption_flags") or [])[:2]],
        "system_state": {
            "financial": str(state.get("financial", "")),
            "operational": str(state.get("operational", "")),
            "execution": str(state.get("execution", "")),
        },
        "top_risks": [
            {
                "severity": str(r.get("severity", "")),
                "title": str(r.get("title", "")),
                "driver": str(r.get("driver", "")),
                "impact": str(r.get("impact", "")),
            }
            for r in (intelligence.get("risks") or [])[:2]
        ],
        "deltas": {key: delta_direction(deltas.get(key), eps) for key, eps in DELTA_EPS.items()},
        "strategic_questions": [
            {
                "id": _QUESTION_ID_BY_TEXT.get(q.get("question", ""), "custom"),
                "question": str(q.get("question", "")),
            }
            for q in (intelligence.get("strategic_questions") or [])[:MAX_QA_ITEMS]
        ],
    }


def compute_scenario_hash(qa_input: Mapping[str, Any]) -> str:
    """Stable 16-hex-char key over the canonical, truncated input."""
    canonical = {
        "scenario_id": str(qa_input.get("scenario_id", "")),
        "scenario_label": qa_input.get("scenario_label"),
        "compare_to_base": bool(qa_input.get("compare_to_base")),
        "observations": [str(o) for o in (qa_input.get("observations") or [])[:2]],
        "assumption_flags": [str(f) for f in (qa_input.get("assumption_flags") or [])[:2]],
        "system_state": dict(qa_input.get("system_state") or {}),
        "top_risks": list(qa_input.get("top_risks") or [])[:2],
        "deltas": dict(qa_input.get("deltas") or {}),
        "strategic_questions": list(qa_input.get("strategic_questions") or [])[:MAX_QA_ITEMS],
    }
    return content_hash(canonical)


# ---------------- Validation ----------------

def _has_baseline_clause(compare_to_base: bool, answer: str) -> bool:
    if not compare_to_base:
        return True
    return bool(_BASELINE_RE.search(answer))


def parse_and_validate_strategic_qa(
    json_text: str,
    expected_scenario_id: str,
    expected_scenario_label: str,
    expected_compare_to_base: bool,
    expected_question_ids: list[str],
) -> dict[str, Any]:
    """
    Parse a strategic Q&A response and enforce its content contract.

    Returns:
        The parsed response

    Raises:
        StrategicQaValidationError: On any contract violation
    """
    try:
        parsed = json.loads(json_text)
    except ValueError as e:
        raise StrategicQaValidationError(f"invalid_json: {e}") from e
    if not isinstance(parsed, dict):
        raise StrategicQaValidationError("invalid")

    if parsed.get("version") != QA_VERSION:
        raise StrategicQaValidationError("invalid_version")
    if str(parsed.get("scenario_id")) != str(expected_scenario_id):
        raise StrategicQaValidationError("scenario_id_mismatch")
    if parsed.get("scenario_label") != expected_scenario_label:
        raise StrategicQaValidationError("scenario_label_mismatch")
    if parsed.get("compare_to_base") is not expected_compare_to_base:
        raise StrategicQaValidationError("compare_to_base_mismatch")

    items = parsed.get("items")
    if not isinstance(items, list):
        raise StrategicQaValidationError("items_missing")
    if len(items) > MAX_QA_ITEMS:
        raise StrategicQaValidationError("too_many_items")

    expected = set(expected_question_ids)
    for item in items:
        if not isinstance(item, dict):
            raise StrategicQaValidationError("bad_item")
        if item.get("id") not in QUESTION_IDS:
            raise StrategicQaValidationError("bad_item_id")
        if item["id"] != "custom" and expected and item["id"] not in expected:
            raise StrategicQaValidationError("unexpected_item_id")
        question, answer = item.get("question"), item.get("answer")
        if not isinstance(question, str) or not isinstance(answer, str):
            raise StrategicQaValidationError("bad_strings")
        if item.get("confidence") not in CONFIDENCE_LEVELS:
            raise StrategicQaValidationError("bad_confidence")
        tags = item.get("tags")
        if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
            raise StrategicQaValidationError("bad_tags")

        if has_digits(question) or has_digits(answer) or any(has_digits(t) for t in tags):
            raise StrategicQaValidationError("digits")
        if has_imperatives(answer):
            raise StrategicQaValidationError("imperative")
        if not _has_baseline_clause(expected_compare_to_base, answer):
            raise StrategicQaValidationError("missing_baseline_clause")

    disclaimers = parsed.get("disclaimers")
    if disclaimers is not None:
        if not isinstance(disclaimers, list) or not all(isinstance(d, str) for d in disclaimers):
            raise StrategicQaValidationError("bad_disclaimers")
        if any(has_digits(d) or has_imperatives(d) for d in disclaimers):
            raise StrategicQaValidationError("bad_disclaimers_content")

    return parsed


STRATEGIC_QA_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "version": {"type": "string", "enum": [QA_VERSION]},
        "scenario_id": {"type": "string"},
        "scenario_label": {"type": "string", "enum": list(SCENARIO_LABELS)},
        "compare_to_base": {"type": "boolean"},
        "items": {
            "type": "array",
            "maxItems": MAX_QA_ITEMS,
            "items": {
                "type": "object",
                "additionalProperties": False,
                "properties": {
                    "id": {"type": "string", "enum": list(QUESTION_IDS)},
                    "question": {"type": "string"},
                    "answer": {"type": "string"},
                    "confidence": {"type": "string", "enum": list(CONFIDENCE_LEVELS)},
                    "tags": {"type": "array", "items": {"type": "string"}},
                },
                "required": ["id", "question", "answer", "confidence", "tags"],
            },
        },
        "disclaimers": {"type": "array", "items": {"type": "string"}},
    },
    "required": ["version", "scenario_id", "scenario_label", "compare_to_base", "items"],
}


async def ask_strategic_questions(
    qa_input: Mapping[str, Any],
    client: NarrativeServiceClient | None = None,
    cache: NarrativeCache | None = None,
    timeout: float = TIMEOUT_SECONDS,
) -> dict[str, Any] | None:
    """
    Ask the narrative service to answer the selected strategic questions.

    Returns:
        Validated response, or None when there is no client, no question,
        a service failure or a validation failure
    """
    if client is None:
        client = get_default_client()
    if client is None or not qa_input.get("strategic_questions"):
        return None

    expected_ids = [q["id"] for q in qa_input["strategic_questions"]]

    async def fetch() -> dict[str, Any]:
        text = await client.respond(
            STRATEGIC_QA_SYSTEM_PROMPT, dict(qa_input), "strategic_questions", STRATEGIC_QA_SCHEMA
        )
        if not text:
            raise StrategicQaValidationError("empty_response")
        return parse_and_validate_strategic_qa(
            text,
            expected_scenario_id=qa_input["scenario_id"],
            expected_scenario_label=qa_input["scenario_label"],
            expected_compare_to_base=qa_input["compare_to_base"],
            expected_question_ids=expected_ids,
        )

    try:
        if cache is not None:
            coro = cache.get_or_fetch("strategic_qa:" + compute_scenario_hash(qa_input), fetch)
        else:
            coro = fetch()
        return await asyncio.wait_for(coro, timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"strategic Q&A exceeded {timeout}s")
        return None
    except Exception as e:
        logger.warning(f"strategic Q&A unavailable ({type(e).__name__}: {e})")
        return None


def apply_strategic_answers(
    questions: list[dict[str, str]],
    qa_input: Mapping[str, Any],
    qa_response: Mapping[str, Any],
) -> list[dict[str, str]]:
    """
    Replace deterministic answers with validated service answers.

    Items are matched to questions by id, in order. A question the service
    did not answer keeps its deterministic answer. Question text never
    changes.
    """
    remaining = list(qa_response.get("items") or [])
    merged = []
    for question, asked in zip(questions, qa_input.get("strategic_questions") or []):
        item = next((i for i in remaining if i.get("id") == asked["id"]), None)
        answer = sanitize_text(item["answer"], max_length=1200) if item is not None else None
        if item is not None:
            remaining.remove(item)
        merged.append({"question": question["question"], "answer": answer or question["answer"]})
    merged.extend(dict(q) for q in questions[len(merged):])
    return merged


# ---------------- Scenario questions ----------------

SCENARIO_QA_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "headline": {"type": "string", "description": "Max 12 words"},
        "answer": {"type": "string", "description": "2-4 short sentences"},
        "key_metrics": {
            "type": "array",
            "items": {
                "type": "object",
                "additionalProperties": False,
                "properties": {
                    "name": {"type": "string"},
                    "value": {"type": "string"},
                },
                "required": ["name", "value"],
            },
        },
        "drivers": {"type": "array", "items": {"type": "string"}},
        "confidence": {"type": "string", "enum": ["high", "medium", "low"]},
    },
    "required": ["headline", "answer", "key_metrics", "drivers", "confidence"],
}


def validate_scenario_answer(resp: Any) -> dict[str, Any] | None:
    """
    Validate and trim a scenario answer. Any shape failure returns None.

    The headline limit is enforced, not advisory: a longer headline rejects
    the whole response.
    """
    if not isinstance(resp, dict):
        return None
    headline, answer = resp.get("headline"), resp.get("answer")
    if not isinstance(headline, str) or not isinstance(answer, str):
        return None
    headline, answer = sanitize_text(headline), sanitize_text(answer, max_length=1200)
    if not headline or not answer or len(headline.split()) > HEADLINE_MAX_WORDS:
        return None

    key_metrics = resp.get("key_metrics")
    drivers = resp.get("drivers")
    if not isinstance(key_metrics, list) or not isinstance(drivers, list):
        return None
    if not all(
        isinstance(m, dict) and isinstance(m.get("name"), str) and isinstance(m.get("value"), str)
        for m in key_metrics
    ):
        return None
    if not all(isinstance(d, str) for d in drivers):
        return None
    if resp.get("confidence") not in ("high", "medium", "low"):
        return None

    return {
        "headline": headline,
        "answer": answer,
        "key_metrics": [
            {"name": m["name"].strip(), "value": m["value"].strip()} for m in key_metrics[:MAX_LIST_ITEMS]
        ],
        "drivers": [d.strip() for d in drivers[:MAX_LIST_ITEMS]],
        "confidence": resp["confidence"],
    }


async def ask_scenario_question(
    question: str,
    current: MetricSnapshot,
    baseline: MetricSnapshot | None = None,
    compare_to_base: bool = False,
    client: NarrativeServiceClient | None = None,
    timeout: float = TIMEOUT_SECONDS,
) -> dict[str, Any] | None:
    """
    Answer one executive question about the current scenario.

    The baseline is only sent when comparing. Returns None when the service
    is unavailable or its response fails validation.
    """
    q = sanitize_text(question or "")
    if not q:
        return None
    if client is None:
        client = get_default_client()
    if client is None:
        return None

    user_payload = {
        "question": q,
        "compare_to_base": bool(compare_to_base),
        "current": current.to_dict(),
        "baseline": baseline.to_dict() if compare_to_base and baseline is not None else None,
    }

    try:
        text = await asyncio.wait_for(
            client.respond(SCENARIO_QA_SYSTEM_PROMPT, user_payload, "scenario_qa", SCENARIO_QA_SCHEMA),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        logger.warning(f"scenario question exceeded {timeout}s")
        return None
    except Exception as e:
        logger.warning(f"scenario question unavailable ({type(e).__name__}: {e})")
        return None

    if not text:
        return None
    try:
        parsed = json.loads(text)
    except ValueError:
        logger.warning("scenario question response was not valid JSON")
        return None

    validated = validate_scenario_answer(parsed)
    if validated is None:
        logger.warning("scenario question response failed validation")
    return validated


async def scenario_question(
    question: str,
    current: dict[str, Any],
    baseline: dict[str, Any] | None = None,
    compare_to_base: bool = False,
) -> dict[str, Any]:
    """
    Tool wrapper for ask_scenario_question.

    Returns:
        {"available": True, ...answer} or {"available": False}, with meta
    """
    start_time = perf_counter()
    try:
        current_snapshot = parse_metric_snapshot(current, "current")
        baseline_snapshot = parse_metric_snapshot(baseline, "baseline") if baseline is not None else None
    except SnapshotParseError as e:
        return build_error_response("invalid_input", str(e), tool="ask_scenario")

    answer = await ask_scenario_question(
        question,
        current_snapshot,
        baseline=baseline_snapshot,
        compare_to_base=compare_to_base,
    )

    duration_ms = (perf_counter() - start_time) * 1000
    result: dict[str, Any] = {"available": answer is not None}
    if answer is not None:
        result.update(answer)
    result["meta"] = build_meta("ask_scenario", duration_ms)
    return result
