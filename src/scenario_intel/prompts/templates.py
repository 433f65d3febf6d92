"""Prompt templates: MCP prompts and narrative-service system prompts."""

from typing import Any

# Prompt definitions
PROMPTS = {
    "scenario_brief": {
        "description": "Board-ready brief of a scenario against its baseline",
        "arguments": [
            {"name": "scenario_name", "required": True},
            {"name": "baseline_name", "required": False},
        ],
    },
    "board_questions": {
        "description": "Anticipate board and investor questions for a scenario",
        "arguments": [{"name": "scenario_name", "required": True}],
    },
}


def list_prompts() -> list[dict[str, Any]]:
    """List available prompts."""
    return [
        {
            "name": name,
            "description": info["description"],
            "arguments": info["arguments"],
        }
        for name, info in PROMPTS.items()
    ]


def get_prompt(name: str, arguments: dict[str, str]) -> dict[str, Any] | None:
    """
    Get a prompt by name with arguments filled in.

    Returns dict with 'messages' key for MCP GetPromptResult.
    """
    if name not in PROMPTS:
        return None

    if name == "scenario_brief":
        scenario = arguments.get("scenario_name", "")
        baseline = arguments.get("baseline_name") or "the base case"
        return {
            "messages": [
                {
                    "role": "user",
                    "content": f"""Prepare a board brief for the scenario "{scenario}" compared to {baseline}.

Execute these tools in order:
1. get_scenario_intelligence(current=<{scenario} metrics>, baseline=<{baseline} metrics>)
2. get_quantified_findings(snapshot=<{scenario} simulation analysis>)

Then write the brief with these sections:
1. **System State**: financial, operational and execution levels
2. **What Stands Out**: the observations, in order
3. **Risks**: each risk with its driver and impact
4. **Evidence**: the quantified findings, quoting every number exactly as cited
5. **Position**: strengths, vulnerabilities and priorities

Rules:
- Only use numbers that appear in a finding's citations
- Do not add numbers to the qualitative sections
- Neutral tone, no recommendations""",
                }
            ]
        }

    if name == "board_questions":
        scenario = arguments.get("scenario_name", "")
        return {
            "messages": [
                {
                    "role": "user",
                    "content": f"""Anticipate the questions a board would ask about the scenario "{scenario}".

Use get_scenario_intelligence for the scenario and its baseline, then:
1. Start from the strategic_questions and assumption_flags in the result
2. Add at most two further questions grounded in the listed risks
3. Answer each question in one or two sentences using only the result's wording

If strategic_questions is empty the scenario is fully stable; say so plainly.
No numbers. No imperatives.""",
                }
            ]
        }

    return None


# ============================================================================
# NARRATIVE SERVICE SYSTEM PROMPTS
# ============================================================================

NARRATIVE_SYSTEM_PROMPT = "\n".join(
    [
        "You are a financial analysis narrator.",
        "You receive quantified findings from a Monte Carlo simulation analysis.",
        "Rewrite each finding into a concise institutional title and claim.",
        "STRICT RULES:",
        "Do NOT alter any numeric value. Use them verbatim, formatted exactly as cited.",
        "Do NOT invent data points not present in the citations.",
        "Return one block per finding, in the same order, with id, category, severity and citations copied unchanged.",
        "Institutional tone. No hype, no emojis, no marketing language.",
        "Return STRICT JSON ONLY that matches the provided JSON schema. No markdown. No extra text.",
    ]
)

STRATEGIC_QA_SYSTEM_PROMPT = "\n".join(
    [
        "You are a strategic Q&A assistant for board and investor-safe scenario assessment.",
        "You will be given qualitative signals only (no KPI values).",
        "Answer neutrally with no imperatives or recommendations.",
        "If compare_to_base is true, each answer MUST include a short baseline-relative clause WITHOUT numbers.",
        "If compare_to_base is false, you MUST NOT mention the base case or baseline.",
        "NO RAW NUMBERS: do not output any digits in any question, answer, tag or disclaimer.",
        "Return STRICT JSON ONLY that matches the provided JSON schema. No markdown. No extra text.",
    ]
)

SCENARIO_QA_SYSTEM_PROMPT = "\n".join(
    [
        "You are a scenario intelligence analyst.",
        "This is NOT chat. Answer one executive question about the CURRENT scenario.",
        "Ground strictly in provided data. No speculation. No generic advice. No filler.",
        "The headline is at most twelve words. The answer is two to four short sentences.",
        "If compare_to_base is true and a baseline is provided, reference differences versus the baseline where relevant.",
        "If compare_to_base is false, do not mention the baseline or any deltas.",
        "Return STRICT JSON ONLY that matches the provided JSON schema. No markdown. No extra text.",
    ]
)
