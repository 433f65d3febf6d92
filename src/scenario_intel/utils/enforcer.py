"""Final invariant pass over the qualitative classification record.

Templates are digit-free and generators respect their caps, but this pass
runs last regardless: it strips stray digits and re-clamps every collection
to its documented bounds. Violations are logged, never raised.
"""

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from scenario_intel.utils.candidates import (
    ATTENTION_FILLERS,
    PRIORITY_FILLERS,
    STABLE_RISK,
    STRENGTH_FILLERS,
    VULNERABILITY_FILLERS,
)
from scenario_intel.utils.sanitize import has_digits, strip_digits
from scenario_intel.utils.selection import pad_to_minimum

logger = logging.getLogger(__name__)

# (min, max) per collection
OUTPUT_BOUNDS: dict[str, tuple[int, int]] = {
    "observations": (2, 4),
    "risks": (1, 3),
    "attention": (2, 3),
    "assumption_flags": (0, 2),
    "strategic_questions": (0, 2),
}

BRIEF_BOUNDS: dict[str, tuple[int, int]] = {
    "strengths": (3, 3),
    "vulnerabilities": (3, 3),
    "priorities": (3, 3),
}

OBSERVATION_FILLERS = (
    "Posture holds close to the baseline assumptions.",
    "Signal coverage is limited under the current inputs.",
)

BRIEF_FILLERS: dict[str, Sequence[str]] = {
    "strengths": STRENGTH_FILLERS,
    "vulnerabilities": VULNERABILITY_FILLERS,
    "priorities": PRIORITY_FILLERS,
}

RISK_TEXT_FIELDS = ("title", "driver", "impact")


def _iter_strings(output: Mapping[str, Any]) -> list[tuple[str, str]]:
    """(path, text) for every qualitative string in the record."""
    found: list[tuple[str, str]] = []
    for key in ("observations", "attention", "assumption_flags"):
        for i, text in enumerate(output.get(key) or []):
            found.append((f"{key}[{i}]", str(text)))
    for i, risk in enumerate(output.get("risks") or []):
        for field in RISK_TEXT_FIELDS:
            found.append((f"risks[{i}].{field}", str(risk.get(field, ""))))
    for i, item in enumerate(output.get("strategic_questions") or []):
        found.append((f"strategic_questions[{i}].question", str(item.get("question", ""))))
        found.append((f"strategic_questions[{i}].answer", str(item.get("answer", ""))))
    brief = output.get("position_brief") or {}
    for key in BRIEF_BOUNDS:
        for i, text in enumerate(brief.get(key) or []):
            found.append((f"position_brief.{key}[{i}]", str(text)))
    return found


def find_invariant_violations(output: Mapping[str, Any]) -> list[str]:
    """
    List every broken invariant in a classification record.

    Checks digit leakage in all qualitative strings and collection sizes
    against OUTPUT_BOUNDS and BRIEF_BOUNDS.
    """
    violations: list[str] = []

    for path, text in _iter_strings(output):
        if has_digits(text):
            violations.append(f"{path} contains digits: {text!r}")

    for key, (lo, hi) in OUTPUT_BOUNDS.items():
        size = len(output.get(key) or [])
        if not lo <= size <= hi:
            violations.append(f"{key} has {size} items, expected {lo}..{hi}")

    brief = output.get("position_brief") or {}
    for key, (lo, hi) in BRIEF_BOUNDS.items():
        size = len(brief.get(key) or [])
        if not lo <= size <= hi:
            violations.append(f"position_brief.{key} has {size} items, expected {lo}..{hi}")

    return violations


def _clean_lines(lines: Sequence[Any]) -> list[str]:
    cleaned = [strip_digits(str(line)) for line in lines]
    return [line for line in cleaned if line]


def _bounded_lines(
    lines: Sequence[Any], bounds: tuple[int, int], fillers: Sequence[str]
) -> list[str]:
    lo, hi = bounds
    return pad_to_minimum(_clean_lines(lines)[:hi], lo, fillers)


def enforce_intelligence_output(output: Mapping[str, Any]) -> dict[str, Any]:
    """
    Return a copy of the record with all invariants holding.

    Args:
        output: Classification record (possibly violating invariants)

    Returns:
        New record: digit-free strings, every collection within bounds
    """
    violations = find_invariant_violations(output)
    for violation in violations:
        logger.warning(f"Intelligence invariant violated: {violation}")

    risks: list[dict[str, Any]] = []
    for risk in output.get("risks") or []:
        cleaned = {**risk, **{f: strip_digits(str(risk.get(f, ""))) for f in RISK_TEXT_FIELDS}}
        if cleaned["title"]:
            risks.append(cleaned)
    risks = risks[: OUTPUT_BOUNDS["risks"][1]] or [dict(STABLE_RISK)]

    questions: list[dict[str, str]] = []
    for item in output.get("strategic_questions") or []:
        question = strip_digits(str(item.get("question", "")))
        answer = strip_digits(str(item.get("answer", "")))
        if question and answer:
            questions.append({"question": question, "answer": answer})

    brief_in = output.get("position_brief") or {}
    brief = {
        key: _bounded_lines(brief_in.get(key) or [], bounds, BRIEF_FILLERS[key])
        for key, bounds in BRIEF_BOUNDS.items()
    }

    return {
        "system_state": dict(output.get("system_state") or {}),
        "observations": _bounded_lines(
            output.get("observations") or [], OUTPUT_BOUNDS["observations"], OBSERVATION_FILLERS
        ),
        "risks": risks,
        "attention": _bounded_lines(
            output.get("attention") or [], OUTPUT_BOUNDS["attention"], ATTENTION_FILLERS
        ),
        "assumption_flags": _clean_lines(output.get("assumption_flags") or [])[
            : OUTPUT_BOUNDS["assumption_flags"][1]
        ],
        "strategic_questions": questions[: OUTPUT_BOUNDS["strategic_questions"][1]],
        "position_brief": brief,
    }
