"""Tests for quantified findings extraction."""

import asyncio
import copy
import logging

import pytest

from scenario_intel.data import narrative_client
from scenario_intel.data.snapshots import parse_analysis_snapshot
from scenario_intel.tools.findings import extract_quantified_findings, quantified_findings
from scenario_intel.utils.citations import check_citation_integrity

ALL_SLOTS = [
    "survival",
    "revenue",
    "capital",
    "runway",
    "risk-class",
    "sensitivity",
    "risk-drivers",
    "valuation",
    "confidence",
]


def _extract(raw: dict) -> list[dict]:
    return extract_quantified_findings(parse_analysis_snapshot(raw))


def _by_id(findings: list[dict]) -> dict[str, dict]:
    return {f["id"]: f for f in findings}


def _variant(base: dict, section: str, **fields) -> dict:
    raw = copy.deepcopy(base)
    raw[section].update(fields)
    return raw


class TestSlots:
    """Tests for slot order and optional sections."""

    def test_all_slots_in_order(self, analysis_snapshot) -> None:
        assert [f["id"] for f in _extract(analysis_snapshot)] == ALL_SLOTS

    def test_risk_slots_share_category(self, analysis_snapshot) -> None:
        findings = _by_id(_extract(analysis_snapshot))
        assert findings["risk-class"]["category"] == "risk"
        assert findings["risk-drivers"]["category"] == "risk"

    def test_missing_valuation_is_omitted(self, analysis_snapshot) -> None:
        del analysis_snapshot["valuationSummary"]
        ids = [f["id"] for f in _extract(analysis_snapshot)]
        assert "valuation" not in ids
        assert len(ids) == 8

    def test_empty_sensitivity_is_omitted(self, analysis_snapshot) -> None:
        analysis_snapshot["sensitivityMap"] = []
        assert "sensitivity" not in [f["id"] for f in _extract(analysis_snapshot)]

    def test_zero_risk_drivers_are_omitted(self, analysis_snapshot) -> None:
        analysis_snapshot["riskProfile"]["riskDrivers"] = {"burnRateImpact": 0.0}
        assert "risk-drivers" not in [f["id"] for f in _extract(analysis_snapshot)]

    def test_healthy_severities(self, analysis_snapshot) -> None:
        severities = {f["id"]: f["severity"] for f in _extract(analysis_snapshot)}
        assert severities == {
            "survival": "positive",
            "revenue": "neutral",
            "capital": "positive",
            "runway": "positive",
            "risk-class": "neutral",
            "sensitivity": "warning",
            "risk-drivers": "neutral",
            "valuation": "neutral",
            "confidence": "positive",
        }


class TestNarratives:
    """Tests for specific narrative content."""

    def test_survival_positive(self, analysis_snapshot) -> None:
        survival = _by_id(_extract(analysis_snapshot))["survival"]
        assert "85%" in survival["narrative"]
        assert {"label": "Iterations", "value": "10,000"} in survival["citations"]
        assert {"label": "Horizon", "value": "36mo"} in survival["citations"]

    def test_sensitivity_cites_composite_values(self, analysis_snapshot) -> None:
        sensitivity = _by_id(_extract(analysis_snapshot))["sensitivity"]
        assert sensitivity["citations"][0] == {"label": "Monthly Burn", "value": "72% | ΔS -12.0%"}
        assert '"Monthly Burn"' in sensitivity["narrative"]
        assert '"Gross Margin" (31%)' in sensitivity["narrative"]

    def test_sensitivity_sentences(self, analysis_snapshot) -> None:
        narrative = _by_id(_extract(analysis_snapshot))["sensitivity"]["narrative"]
        assert narrative == (
            '"Monthly Burn" is the dominant sensitivity driver (elasticity 72%, survival shift -12.0%). '
            'Followed by "ARR Growth" (55%) and "Gross Margin" (31%).'
        )

    @pytest.mark.parametrize("count", [1, 2])
    def test_short_sensitivity_maps(self, analysis_snapshot, count: int) -> None:
        analysis_snapshot["sensitivityMap"] = analysis_snapshot["sensitivityMap"][:count]
        narrative = _by_id(_extract(analysis_snapshot))["sensitivity"]["narrative"]
        assert narrative.count("Followed by") == count - 1
        assert narrative.endswith(").")
        assert ".." not in narrative

    def test_risk_drivers_sorted_by_share(self, analysis_snapshot) -> None:
        drivers = _by_id(_extract(analysis_snapshot))["risk-drivers"]
        assert [c["label"] for c in drivers["citations"]] == [
            "Burn Rate Exposure",
            "Churn / Retention",
            "Market Volatility",
        ]

    def test_unknown_driver_is_humanized(self, analysis_snapshot) -> None:
        analysis_snapshot["riskProfile"]["riskDrivers"] = {"regulatoryExposureImpact": 0.5}
        drivers = _by_id(_extract(analysis_snapshot))["risk-drivers"]
        assert drivers["citations"] == [{"label": "Regulatory Exposure", "value": "50.0%"}]
        assert drivers["severity"] == "warning"

    def test_capital_critical_cites_stress_runway(self, analysis_snapshot) -> None:
        raw = _variant(analysis_snapshot, "simulationSummary", cashPercentiles={"p10": -300_000, "p50": 200_000, "p90": 900_000})
        capital = _by_id(_extract(raw))["capital"]
        assert capital["severity"] == "critical"
        assert "-$300K" in capital["narrative"]
        assert {"label": "Runway P10", "value": "20mo"} in capital["citations"]


class TestCitationIntegrity:
    """Every number in a narrative is backed by a citation, in every variant."""

    @pytest.mark.parametrize("survival", [0.95, 0.65, 0.35, 0.05])
    def test_survival_variants(self, analysis_snapshot, survival: float) -> None:
        raw = _variant(analysis_snapshot, "simulationSummary", survivalRate=survival)
        for finding in _extract(raw):
            assert check_citation_integrity(finding) == [], finding

    @pytest.mark.parametrize(
        "arr",
        [
            {"p10": 2_900_000, "p50": 3_000_000, "p90": 3_100_000},
            {"p10": 2_000_000, "p50": 3_000_000, "p90": 4_500_000},
            {"p10": 500_000, "p50": 3_000_000, "p90": 9_000_000},
            {"p10": 0, "p50": 0, "p90": 0},
        ],
    )
    def test_revenue_variants(self, analysis_snapshot, arr: dict) -> None:
        raw = _variant(analysis_snapshot, "simulationSummary", arrPercentiles=arr)
        for finding in _extract(raw):
            assert check_citation_integrity(finding) == [], finding

    @pytest.mark.parametrize("p50", [36, 18, 8, 3])
    def test_runway_variants(self, analysis_snapshot, p50: float) -> None:
        raw = _variant(
            analysis_snapshot,
            "simulationSummary",
            runwayPercentiles={"p10": p50 / 2, "p50": p50, "p90": p50 * 1.5},
            cashPercentiles={"p10": -1_500_000, "p50": 100_000, "p90": 700_000},
        )
        for finding in _extract(raw):
            assert check_citation_integrity(finding) == [], finding

    @pytest.mark.parametrize("classification", ["Robust", "Stable", "Fragile", "Critical"])
    def test_risk_classes(self, analysis_snapshot, classification: str) -> None:
        raw = _variant(analysis_snapshot, "riskProfile", classification=classification)
        risk = _by_id(_extract(raw))["risk-class"]
        assert check_citation_integrity(risk) == []
        assert f'"{classification}"' in risk["narrative"]

    def test_negative_valuation(self, analysis_snapshot) -> None:
        analysis_snapshot["valuationSummary"] = {
            "p10": -4_000_000, "p25": -2_000_000, "p50": -500_000, "p75": 1_000_000, "p90": 3_000_000,
        }
        valuation = _by_id(_extract(analysis_snapshot))["valuation"]
        assert valuation["severity"] == "warning"
        assert check_citation_integrity(valuation) == []

    @pytest.mark.parametrize("classification", ["High", "Moderate", "Low"])
    def test_confidence_variants(self, analysis_snapshot, classification: str) -> None:
        raw = _variant(analysis_snapshot, "confidenceScore", classification=classification)
        confidence = _by_id(_extract(raw))["confidence"]
        assert check_citation_integrity(confidence) == []

    def test_no_integrity_warnings(self, analysis_snapshot, caplog) -> None:
        with caplog.at_level(logging.WARNING):
            _extract(analysis_snapshot)
        assert "cites no value" not in caplog.text


class TestQuantifiedFindingsTool:
    """Tests for the async tool wrapper."""

    def test_deterministic_when_not_enhanced(self, analysis_snapshot) -> None:
        result = asyncio.run(quantified_findings(analysis_snapshot, enhance=False))
        assert [f["id"] for f in result["findings"]] == ALL_SLOTS
        assert result["narrative"]["source"] == "deterministic"
        assert len(result["narrative"]["blocks"]) == len(result["findings"])
        assert result["meta"]["narrative_source"] == "deterministic"
        assert result["meta"]["overall_severity"] == "warning"

    def test_service_disabled_falls_back(self, analysis_snapshot, monkeypatch) -> None:
        monkeypatch.setattr(narrative_client, "NARRATIVE_ENABLED", False)
        result = asyncio.run(quantified_findings(analysis_snapshot))
        assert result["narrative"]["source"] == "deterministic"

    def test_non_list_sensitivity_map_omits_slot(self, analysis_snapshot) -> None:
        analysis_snapshot["sensitivityMap"] = 5
        result = asyncio.run(quantified_findings(analysis_snapshot, enhance=False))
        assert "error" not in result
        assert "sensitivity" not in [f["id"] for f in result["findings"]]

    def test_invalid_input_returns_error(self) -> None:
        result = asyncio.run(quantified_findings({"simulationSummary": 5}))
        assert result["error"] is True
        assert result["error_type"] == "invalid_input"
        assert result["meta"]["tool"] == "get_quantified_findings"
