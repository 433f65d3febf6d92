"""Scenario Intelligence MCP Server using FastMCP."""

import json
import logging
import os
from typing import Any

from fastmcp import FastMCP

from scenario_intel import SCHEMA_VERSION, SERVER_VERSION
from scenario_intel.prompts.templates import get_prompt
from scenario_intel.tools import (
    quantified_findings,
    scenario_intelligence,
    scenario_question,
)

# Configure logging
log_level = os.environ.get("LOG_LEVEL", "INFO").upper()
logging.basicConfig(level=getattr(logging, log_level, logging.INFO))
logger = logging.getLogger(__name__)

# Create FastMCP server instance
mcp = FastMCP(
    name="scenario-intelligence",
)


# ============================================================================
# TOOLS
# ============================================================================


@mcp.tool
async def get_scenario_intelligence(
    current: dict[str, Any],
    baseline: dict[str, Any],
    scenario_id: str = "scenario",
    scenario_label: str = "base",
    compare_to_base: bool = True,
) -> str:
    """
    Classify a scenario against its baseline in qualitative terms.

    Snapshot keys (camelCase or snake_case): runwayMonths, cashPosition,
    burnRateMonthly, arr, arrGrowthPct, grossMarginPct, riskScore,
    enterpriseValue.

    Args:
        current: Scenario metrics
        baseline: Baseline metrics
        scenario_id: Scenario identifier (default: "scenario")
        scenario_label: base, upside, downside or extreme (default: base)
        compare_to_base: Service answers are baseline-relative (default: true)

    Returns:
        JSON with system_state, observations, risks, attention,
        assumption_flags, strategic_questions, position_brief, snapshot_hash.
        Prose never contains digits.
    """
    result = await scenario_intelligence(
        current=current,
        baseline=baseline,
        scenario_id=scenario_id,
        scenario_label=scenario_label,
        compare_to_base=compare_to_base,
    )
    return json.dumps(result, indent=2, default=str)


@mcp.tool
async def get_quantified_findings(snapshot: dict[str, Any]) -> str:
    """
    Extract cited, quantified findings from a simulation analysis snapshot.

    Every number in a finding's narrative appears in its citations. When the
    narrative service is configured, titles and claims are rewritten and
    validated; otherwise the deterministic narrative is returned.

    Args:
        snapshot: Analysis snapshot with simulation, risk, sensitivity,
            valuation (optional) and confidence sections

    Returns:
        JSON with findings, narrative (source + blocks) and meta
    """
    result = await quantified_findings(snapshot=snapshot)
    return json.dumps(result, indent=2, default=str)


@mcp.tool
async def ask_scenario(
    question: str,
    current: dict[str, Any],
    baseline: dict[str, Any] | None = None,
    compare_to_base: bool = False,
) -> str:
    """
    Ask one executive question about a scenario.

    Requires the narrative service. Answers are schema-validated and never
    partially trusted.

    Args:
        question: The question to answer
        current: Scenario metrics
        baseline: Baseline metrics (only sent when compare_to_base is true)
        compare_to_base: Answer relative to the baseline (default: false)

    Returns:
        JSON with headline, answer, key_metrics, drivers, confidence, or
        {"available": false} when no validated answer exists
    """
    result = await scenario_question(
        question=question,
        current=current,
        baseline=baseline,
        compare_to_base=compare_to_base,
    )
    return json.dumps(result, indent=2, default=str)


# ============================================================================
# PROMPTS
# ============================================================================


@mcp.prompt
def scenario_brief(scenario_name: str, baseline_name: str = "") -> str:
    """Board-ready brief of a scenario against its baseline."""
    result = get_prompt("scenario_brief", {"scenario_name": scenario_name, "baseline_name": baseline_name})
    if result:
        return result["messages"][0]["content"]
    return f"Summarize {scenario_name} using get_scenario_intelligence."


@mcp.prompt
def board_questions(scenario_name: str) -> str:
    """Anticipate board and investor questions for a scenario."""
    result = get_prompt("board_questions", {"scenario_name": scenario_name})
    if result:
        return result["messages"][0]["content"]
    return f"List board questions for {scenario_name} using get_scenario_intelligence."


# ============================================================================
# ENTRY POINT
# ============================================================================


def main() -> None:
    """Run the MCP server."""
    logger.info(f"Starting Scenario Intelligence MCP Server v{SERVER_VERSION} (schema v{SCHEMA_VERSION})")
    mcp.run()


if __name__ == "__main__":
    main()
