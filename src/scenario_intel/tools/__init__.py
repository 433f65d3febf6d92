"""Scenario intelligence tools."""

from scenario_intel.tools.findings import quantified_findings
from scenario_intel.tools.intelligence import scenario_intelligence
from scenario_intel.tools.strategic_qa import scenario_question

__all__ = [
    "quantified_findings",
    "scenario_intelligence",
    "scenario_question",
]
