"""Tests for parsing raw model output into candidates."""

import json

import pytest

from conftest import conflict_dict, response_dict, signal_dict
from signal_compiler.exceptions import InferenceMalformedResponseError
from signal_compiler.extract import parse_candidate_response, parse_json_strict
from signal_schemas.schemas_signal import ConflictFlag, Severity, SignalType


class TestParseJsonStrict:
    def test_bare_object(self) -> None:
        assert parse_json_strict('{"signals": []}') == {"signals": []}

    def test_fenced_object(self) -> None:
        text = '```json\n{"signals": [], "drops": []}\n```'
        assert parse_json_strict(text) == {"signals": [], "drops": []}

    def test_object_inside_prose(self) -> None:
        text = 'Here is the analysis:\n{"signals": []}\nLet me know if you need more.'
        assert parse_json_strict(text) == {"signals": []}

    @pytest.mark.parametrize("text", ["", "   ", "not json at all", '{"signals": [', "[1, 2, 3]", '"just a string"'])
    def test_rejects_non_objects(self, text: str) -> None:
        with pytest.raises(InferenceMalformedResponseError):
            parse_json_strict(text)


class TestParseCandidateResponse:
    def test_valid_response(self) -> None:
        raw = json.dumps(response_dict([signal_dict("S1"), signal_dict("S2", quotes=[])]))

        resp = parse_candidate_response(raw)

        assert [s.id for s in resp.signals] == ["S1", "S2"]
        assert resp.signals[0].type is SignalType.CASH_DISCREPANCY
        assert resp.signals[1].evidence == []
        assert resp.next_checks[0].slots["internal_value"] == 85240

    def test_enum_tokens_are_case_folded(self) -> None:
        sig = signal_dict("S1", severity=" HIGH ", signal_type="Liquidity.Cash_Discrepancy")
        conflict = {
            "id": "C1",
            "type": "liquidity.cash_definition",
            "topic": "Cash",
            "claims": [{"source": "weekly-pack.pdf", "value": "85,240", "definition": "LEDGER"}],
            "flags": ["blocker", "BLOCKER", "value_date_mismatch"],
        }
        raw = json.dumps({"signals": [sig], "conflicts": [conflict], "drops": [{"id": "D1", "what": "x", "reason": "ambiguous"}]})

        resp = parse_candidate_response(raw)

        assert resp.signals[0].severity is Severity.HIGH
        assert resp.signals[0].type is SignalType.CASH_DISCREPANCY
        assert resp.conflicts[0].flags == [ConflictFlag.BLOCKER, ConflictFlag.VALUE_DATE_MISMATCH]
        assert resp.drops[0].reason.value == "AMBIGUOUS"

    def test_null_collections_become_empty(self) -> None:
        sig = signal_dict("S1", quotes=None)
        sig["evidence"] = None
        raw = json.dumps({"signals": [sig], "conflicts": None, "drops": None, "next_checks": None})

        resp = parse_candidate_response(raw)

        assert resp.signals[0].evidence == []
        assert resp.conflicts == [] and resp.drops == [] and resp.next_checks == []

    def test_unknown_signal_type_is_malformed(self) -> None:
        raw = json.dumps({"signals": [signal_dict("S1", signal_type="liquidity.made_up")]})
        with pytest.raises(InferenceMalformedResponseError):
            parse_candidate_response(raw)

    def test_unknown_severity_is_malformed(self) -> None:
        raw = json.dumps({"signals": [signal_dict("S1", severity="urgent")]})
        with pytest.raises(InferenceMalformedResponseError):
            parse_candidate_response(raw)

    def test_object_without_expected_keys_is_malformed(self) -> None:
        with pytest.raises(InferenceMalformedResponseError):
            parse_candidate_response('{"answer": "the cash is fine"}')

    def test_partial_keys_are_accepted(self) -> None:
        resp = parse_candidate_response('{"signals": []}')
        assert resp.signals == [] and resp.drops == []

    def test_empty_question_is_filled_from_template(self) -> None:
        raw = json.dumps(
            {
                "next_checks": [
                    {
                        "priority": 1,
                        "owner": "QA",
                        "template": "quality_retest",
                        "done_when": "Retest result on file",
                        "slots": {"lot": "Lot 2401", "standard": "moisture <= 12%"},
                    }
                ]
            }
        )

        resp = parse_candidate_response(raw)

        assert resp.next_checks[0].question == "Retest Lot 2401 against moisture <= 12% and confirm pass or fail."


class TestIdCollisions:
    """Ids must be unique across the response; collisions are never repaired."""

    def test_repeated_unevidenced_signal_with_matching_drop(self) -> None:
        raw = json.dumps(
            {
                "signals": [signal_dict("S4", quotes=[]), signal_dict("S4", quotes=[])],
                "drops": [{"id": "D_S4", "what": "x", "reason": "AMBIGUOUS"}],
            }
        )
        with pytest.raises(InferenceMalformedResponseError):
            parse_candidate_response(raw)

    @pytest.mark.parametrize(
        "payload",
        [
            {"signals": [signal_dict("S1"), signal_dict("S1")]},
            {"conflicts": [conflict_dict("C1"), conflict_dict("C1")]},
            {"signals": [signal_dict("C1")], "conflicts": [conflict_dict("C1")]},
            {"signals": [signal_dict("S2")], "drops": [{"id": "D_S2", "what": "x", "reason": "AMBIGUOUS"}]},
            {"drops": [{"id": "D1", "what": "x", "reason": "AMBIGUOUS"}, {"id": "D1", "what": "y", "reason": "AMBIGUOUS"}]},
        ],
        ids=["signal", "conflict", "signal-and-conflict", "reserved-drop-id", "drop"],
    )
    def test_collisions_are_malformed(self, payload) -> None:
        with pytest.raises(InferenceMalformedResponseError):
            parse_candidate_response(json.dumps(payload))

    def test_distinct_ids_are_accepted(self) -> None:
        raw = json.dumps(
            {
                "signals": [signal_dict("S1"), signal_dict("S2", quotes=[])],
                "conflicts": [conflict_dict("C1")],
                "drops": [{"id": "D1", "what": "x", "reason": "AMBIGUOUS"}],
            }
        )

        resp = parse_candidate_response(raw)

        assert [s.id for s in resp.signals] == ["S1", "S2"]
