"""Tests for strategic Q&A and scenario questions."""

import asyncio
import json

import pytest

from scenario_intel.data import narrative_client
from scenario_intel.data.cache import NarrativeCache
from scenario_intel.tools import intelligence as intelligence_tool
from scenario_intel.tools import strategic_qa
from scenario_intel.tools.intelligence import map_scenario_intelligence, scenario_intelligence
from scenario_intel.tools.strategic_qa import (
    StrategicQaValidationError,
    apply_strategic_answers,
    ask_scenario_question,
    ask_strategic_questions,
    build_strategic_qa_input,
    compute_scenario_hash,
    delta_direction,
    parse_and_validate_strategic_qa,
    qa_deltas,
    scenario_question,
    validate_scenario_answer,
)


class FakeClient:
    """Records requests and returns a canned reply."""

    def __init__(self, reply: str | None = None, error: Exception | None = None):
        self.reply = reply
        self.error = error
        self.payloads: list[dict] = []

    async def respond(self, system, user_payload, schema_name, schema):
        self.payloads.append(user_payload)
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture
def qa_input(stress_pair) -> dict:
    intelligence = map_scenario_intelligence(*stress_pair)
    return build_strategic_qa_input(
        intelligence,
        scenario_id="downside-case",
        scenario_label="downside",
        compare_to_base=True,
        deltas=qa_deltas(*stress_pair),
    )


def _response(**overrides) -> dict:
    response = {
        "version": "1.0",
        "scenario_id": "downside-case",
        "scenario_label": "downside",
        "compare_to_base": True,
        "items": [
            {
                "id": "capital_timing",
                "question": "What signals would indicate capital timing sensitivity?",
                "answer": "Relative to base, runway compression and rising burn narrow the timing window.",
                "confidence": "medium",
                "tags": ["runway", "burn"],
            }
        ],
    }
    response.update(overrides)
    return response


def _validate(response: dict, compare_to_base: bool = True) -> dict:
    return parse_and_validate_strategic_qa(
        json.dumps(response),
        expected_scenario_id="downside-case",
        expected_scenario_label="downside",
        expected_compare_to_base=compare_to_base,
        expected_question_ids=["capital_timing", "growth_sustainability"],
    )


def _with_answer(answer: str) -> dict:
    response = _response()
    response["items"][0]["answer"] = answer
    return response


class TestInput:
    """Tests for build_strategic_qa_input and deltas."""

    def test_delta_direction(self) -> None:
        assert delta_direction(0.4, 0.5) == "flat"
        assert delta_direction(-0.6, 0.5) == "down"
        assert delta_direction(0.02, 0.01) == "up"
        assert delta_direction(None, 0.01) == "flat"
        assert delta_direction(float("nan"), 0.01) == "flat"

    def test_stress_input(self, qa_input) -> None:
        assert qa_input["deltas"] == {
            "runway": "down",
            "burn": "up",
            "growth": "down",
            "margin": "down",
            "risk": "up",
            "valuation": "flat",
        }
        assert [q["id"] for q in qa_input["strategic_questions"]] == ["capital_timing", "growth_sustainability"]
        assert len(qa_input["observations"]) == 2
        assert len(qa_input["top_risks"]) == 2
        assert qa_input["system_state"]["financial"] == "HIGH"

    def test_input_is_qualitative_only(self, qa_input) -> None:
        assert not any(ch.isdigit() for ch in json.dumps(qa_input))

    def test_unknown_question_maps_to_custom(self) -> None:
        intelligence = {"strategic_questions": [{"question": "Anything else?", "answer": "Perhaps."}]}
        qa_input = build_strategic_qa_input(intelligence, "s", "base", False)
        assert qa_input["strategic_questions"] == [{"id": "custom", "question": "Anything else?"}]

    def test_invalid_label_raises(self) -> None:
        with pytest.raises(ValueError, match="Unknown scenario label"):
            build_strategic_qa_input({}, "s", "sideways", False)

    def test_scenario_hash(self, qa_input) -> None:
        assert compute_scenario_hash(qa_input) == compute_scenario_hash(dict(qa_input))
        flipped = {**qa_input, "compare_to_base": False}
        assert compute_scenario_hash(flipped) != compute_scenario_hash(qa_input)
        assert len(compute_scenario_hash(qa_input)) == 16


class TestValidation:
    """Tests for parse_and_validate_strategic_qa."""

    def test_valid_response(self) -> None:
        assert _validate(_response())["items"][0]["id"] == "capital_timing"

    def test_rejects_digits(self) -> None:
        with pytest.raises(StrategicQaValidationError, match="digits"):
            _validate(_with_answer("Relative to base, runway is shorter by 10 months."))

    def test_rejects_digits_in_tags(self) -> None:
        response = _response()
        response["items"][0]["tags"] = ["q3"]
        with pytest.raises(StrategicQaValidationError, match="digits"):
            _validate(response)

    def test_rejects_imperatives(self) -> None:
        with pytest.raises(StrategicQaValidationError, match="imperative"):
            _validate(_with_answer("Relative to base, management should raise capital soon."))

    def test_requires_baseline_clause_when_comparing(self) -> None:
        with pytest.raises(StrategicQaValidationError, match="missing_baseline_clause"):
            _validate(_with_answer("Runway compression narrows the timing window."))

    def test_baseline_clause_not_required_without_comparison(self) -> None:
        response = _with_answer("Runway compression narrows the timing window.")
        response["compare_to_base"] = False
        assert _validate(response, compare_to_base=False)

    @pytest.mark.parametrize(
        "overrides,reason",
        [
            ({"version": "2.0"}, "invalid_version"),
            ({"scenario_id": "other"}, "scenario_id_mismatch"),
            ({"scenario_label": "upside"}, "scenario_label_mismatch"),
            ({"compare_to_base": False}, "compare_to_base_mismatch"),
            ({"items": "none"}, "items_missing"),
            ({"disclaimers": ["Figures may change by 5 points."]}, "bad_disclaimers_content"),
            ({"disclaimers": "none"}, "bad_disclaimers"),
        ],
    )
    def test_rejects_envelope_errors(self, overrides: dict, reason: str) -> None:
        with pytest.raises(StrategicQaValidationError, match=reason):
            _validate(_response(**overrides))

    def test_rejects_too_many_items(self) -> None:
        response = _response()
        response["items"] = response["items"] * 3
        with pytest.raises(StrategicQaValidationError, match="too_many_items"):
            _validate(response)

    def test_rejects_unexpected_item_id(self) -> None:
        response = _response()
        response["items"][0]["id"] = "risk_concentration"
        with pytest.raises(StrategicQaValidationError, match="unexpected_item_id"):
            _validate(response)

    def test_custom_item_is_allowed(self) -> None:
        response = _response()
        response["items"][0]["id"] = "custom"
        assert _validate(response)

    def test_rejects_bad_confidence(self) -> None:
        response = _response()
        response["items"][0]["confidence"] = "certain"
        with pytest.raises(StrategicQaValidationError, match="bad_confidence"):
            _validate(response)

    def test_rejects_invalid_json(self) -> None:
        with pytest.raises(StrategicQaValidationError, match="invalid_json"):
            parse_and_validate_strategic_qa("{", "s", "base", False, [])


class TestAskStrategicQuestions:
    """Tests for ask_strategic_questions."""

    def test_valid_reply(self, qa_input) -> None:
        client = FakeClient(reply=json.dumps(_response()))
        result = asyncio.run(ask_strategic_questions(qa_input, client=client))
        assert result is not None
        assert result["items"][0]["id"] == "capital_timing"
        assert client.payloads[0]["scenario_id"] == "downside-case"

    def test_invalid_reply_is_none(self, qa_input) -> None:
        client = FakeClient(reply=json.dumps(_with_answer("Runway is down by 3 months.")))
        assert asyncio.run(ask_strategic_questions(qa_input, client=client)) is None

    def test_service_error_is_none(self, qa_input) -> None:
        client = FakeClient(error=RuntimeError("timeout"))
        assert asyncio.run(ask_strategic_questions(qa_input, client=client)) is None

    def test_no_questions_skips_service(self, qa_input) -> None:
        client = FakeClient(reply=json.dumps(_response()))
        qa_input = {**qa_input, "strategic_questions": []}
        assert asyncio.run(ask_strategic_questions(qa_input, client=client)) is None
        assert client.payloads == []

    def test_no_client_is_none(self, qa_input, monkeypatch) -> None:
        monkeypatch.setattr(narrative_client, "NARRATIVE_ENABLED", False)
        assert asyncio.run(ask_strategic_questions(qa_input)) is None

    def test_cached_by_scenario_hash(self, qa_input, tmp_path) -> None:
        cache = NarrativeCache(cache_dir=str(tmp_path), ttl=60)
        client = FakeClient(reply=json.dumps(_response()))
        first = asyncio.run(ask_strategic_questions(qa_input, client=client, cache=cache))
        second = asyncio.run(ask_strategic_questions(qa_input, client=client, cache=cache))
        assert first == second
        assert len(client.payloads) == 1
        assert cache.has("strategic_qa:" + compute_scenario_hash(qa_input))

    def test_failure_not_cached(self, qa_input, tmp_path) -> None:
        cache = NarrativeCache(cache_dir=str(tmp_path), ttl=60)
        asyncio.run(ask_strategic_questions(qa_input, client=FakeClient(reply="{}"), cache=cache))
        assert not cache.has("strategic_qa:" + compute_scenario_hash(qa_input))


class TestApplyStrategicAnswers:
    """Tests for merging service answers into the classification record."""

    def test_matches_by_id_and_keeps_unanswered(self, qa_input, stress_pair) -> None:
        questions = map_scenario_intelligence(*stress_pair)["strategic_questions"]
        merged = apply_strategic_answers(questions, qa_input, _response())
        assert merged[0] == {
            "question": questions[0]["question"],
            "answer": "Relative to base, runway compression and rising burn narrow the timing window.",
        }
        assert merged[1] == questions[1]

    def test_empty_response_changes_nothing(self, qa_input, stress_pair) -> None:
        questions = map_scenario_intelligence(*stress_pair)["strategic_questions"]
        assert apply_strategic_answers(questions, qa_input, {"items": []}) == questions


class TestScenarioIntelligenceWithService:
    """The intelligence tool answers its strategic questions through the service."""

    @pytest.fixture
    def service(self, monkeypatch, tmp_path):
        def install(client: FakeClient) -> None:
            monkeypatch.setattr(intelligence_tool, "narrative_service_configured", lambda: True)
            monkeypatch.setattr(
                intelligence_tool, "get_narrative_cache", lambda: NarrativeCache(cache_dir=str(tmp_path), ttl=60)
            )
            monkeypatch.setattr(strategic_qa, "get_default_client", lambda: client)

        return install

    def _run(self, stress_pair, **kwargs) -> dict:
        current, baseline = stress_pair
        return asyncio.run(
            scenario_intelligence(
                current.to_dict(),
                baseline.to_dict(),
                scenario_id="downside-case",
                scenario_label="downside",
                compare_to_base=True,
                **kwargs,
            )
        )

    def test_validated_answers_replace_deterministic(self, service, stress_pair) -> None:
        client = FakeClient(reply=json.dumps(_response()))
        service(client)
        result = self._run(stress_pair)
        deterministic = map_scenario_intelligence(*stress_pair)["strategic_questions"]

        assert result["meta"]["strategic_qa_source"] == "openai"
        assert result["strategic_questions"][0]["answer"].startswith("Relative to base")
        assert result["strategic_questions"][1] == deterministic[1]
        assert client.payloads[0]["scenario_label"] == "downside"
        assert [q["id"] for q in client.payloads[0]["strategic_questions"]] == [
            "capital_timing",
            "growth_sustainability",
        ]

    def test_snapshot_hash_ignores_service_answers(self, service, stress_pair) -> None:
        service(FakeClient(reply=json.dumps(_response())))
        enhanced = self._run(stress_pair)
        plain = self._run(stress_pair, enhance=False)
        assert enhanced["snapshot_hash"] == plain["snapshot_hash"]
        assert plain["meta"]["strategic_qa_source"] == "deterministic"

    def test_rejected_reply_keeps_deterministic(self, service, stress_pair) -> None:
        service(FakeClient(reply=json.dumps(_with_answer("Management should raise capital."))))
        result = self._run(stress_pair)
        assert result["meta"]["strategic_qa_source"] == "deterministic"
        assert result["strategic_questions"] == map_scenario_intelligence(*stress_pair)["strategic_questions"]

    def test_stable_scenario_skips_service(self, service, stable_pair) -> None:
        client = FakeClient(reply=json.dumps(_response()))
        service(client)
        result = self._run(stable_pair)
        assert result["strategic_questions"] == []
        assert client.payloads == []

    def test_unknown_label_is_invalid_input(self) -> None:
        result = asyncio.run(scenario_intelligence({}, {}, scenario_label="sideways"))
        assert result["error"] is True
        assert result["error_type"] == "invalid_input"


def _answer(**overrides) -> dict:
    answer = {
        "headline": "Runway compression drives the downside",
        "answer": "Runway shortens as burn rises. Margin pressure compounds the effect.",
        "key_metrics": [{"name": "Runway", "value": "8 months"}],
        "drivers": ["burn increase", "margin pressure"],
        "confidence": "medium",
    }
    answer.update(overrides)
    return answer


class TestValidateScenarioAnswer:
    """Tests for validate_scenario_answer."""

    def test_valid_answer(self) -> None:
        result = validate_scenario_answer(_answer())
        assert result is not None
        assert result["key_metrics"] == [{"name": "Runway", "value": "8 months"}]

    def test_trims_and_caps(self) -> None:
        result = validate_scenario_answer(
            _answer(
                headline="  Burn drives risk  ",
                drivers=[f" driver {c} " for c in "abcdefgh"],
                key_metrics=[{"name": f" m{i} ", "value": " v "} for i in range(9)],
            )
        )
        assert result["headline"] == "Burn drives risk"
        assert len(result["drivers"]) == 6
        assert result["drivers"][0] == "driver a"
        assert len(result["key_metrics"]) == 6
        assert result["key_metrics"][0] == {"name": "m0", "value": "v"}

    @pytest.mark.parametrize(
        "overrides",
        [
            {"headline": " ".join(["word"] * 13)},
            {"headline": ""},
            {"answer": "   "},
            {"confidence": "certain"},
            {"key_metrics": [{"name": "Runway", "value": 8}]},
            {"key_metrics": "none"},
            {"drivers": [1, 2]},
        ],
    )
    def test_shape_failures_are_discarded(self, overrides: dict) -> None:
        assert validate_scenario_answer(_answer(**overrides)) is None

    def test_non_dict(self) -> None:
        assert validate_scenario_answer(["headline"]) is None


class TestAskScenarioQuestion:
    """Tests for ask_scenario_question and its tool wrapper."""

    def test_baseline_only_sent_when_comparing(self, stress_pair) -> None:
        current, baseline = stress_pair
        client = FakeClient(reply=json.dumps(_answer()))
        asyncio.run(ask_scenario_question("Why?", current, baseline, compare_to_base=False, client=client))
        asyncio.run(ask_scenario_question("Why?", current, baseline, compare_to_base=True, client=client))
        assert client.payloads[0]["baseline"] is None
        assert client.payloads[1]["baseline"]["runway_months"] == 18.0
        assert client.payloads[1]["compare_to_base"] is True

    def test_valid_reply(self, stress_pair) -> None:
        client = FakeClient(reply=json.dumps(_answer()))
        result = asyncio.run(ask_scenario_question("What drives risk?", stress_pair[0], client=client))
        assert result["confidence"] == "medium"

    def test_non_json_reply_is_none(self, stress_pair) -> None:
        client = FakeClient(reply="Runway is short.")
        assert asyncio.run(ask_scenario_question("Why?", stress_pair[0], client=client)) is None

    def test_service_error_is_none(self, stress_pair) -> None:
        client = FakeClient(error=RuntimeError("down"))
        assert asyncio.run(ask_scenario_question("Why?", stress_pair[0], client=client)) is None

    def test_blank_question_is_none(self, stress_pair) -> None:
        client = FakeClient(reply=json.dumps(_answer()))
        assert asyncio.run(ask_scenario_question("   ", stress_pair[0], client=client)) is None
        assert client.payloads == []

    def test_tool_unavailable_without_service(self, monkeypatch) -> None:
        monkeypatch.setattr(narrative_client, "NARRATIVE_ENABLED", False)
        result = asyncio.run(scenario_question("Why?", {"runwayMonths": 8}))
        assert result["available"] is False
        assert result["meta"]["tool"] == "ask_scenario"

    def test_tool_invalid_input(self) -> None:
        result = asyncio.run(scenario_question("Why?", "runway 8"))
        assert result["error"] is True
        assert result["error_type"] == "invalid_input"
