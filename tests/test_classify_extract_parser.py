"""
Tests for parsing classify-and-extract responses.

The parser gets untrusted model output; every case here must come back
as a well-formed result.
"""

import json

import pytest

from lead_qualifier.classifier.llm.parser import default_result, parse_classify_and_extract_response
from lead_qualifier.classifier.llm.schemas import ClassifyAndExtractResult


def parse(data):
    return parse_classify_and_extract_response(data)


class TestWellFormed:

    def test_full_response(self):
        result = parse({
            "intent": {
                "primary": "multi_answer",
                "objection": None,
                "confidence": 0.92,
                "suggestedTone": "playful",
            },
            "extracted": [
                {"mappingKey": "location", "value": "Halifax", "confidence": 0.95},
                {"mappingKey": "budget", "value": "500000", "confidence": 0.8},
            ],
            "correction": None,
        })
        assert result.intent.primary == "multi_answer"
        assert result.intent.confidence == 0.92
        assert result.intent.suggested_tone == "playful"
        assert [(e.mapping_key, e.value) for e in result.extracted] == [
            ("location", "Halifax"),
            ("budget", "500000"),
        ]
        assert result.correction is None

    def test_json_string(self):
        raw = json.dumps({"intent": {"primary": "objection", "objection": "privacy_refusal"}})
        result = parse(raw)
        assert result.intent.primary == "objection"
        assert result.intent.objection == "privacy_refusal"

    def test_code_fenced_json(self):
        raw = '```json\n{"intent": {"primary": "chitchat", "confidence": 0.4}}\n```'
        result = parse(raw)
        assert result.intent.primary == "chitchat"
        assert result.intent.confidence == 0.4

    def test_prose_around_json(self):
        raw = 'Sure! Here you go: {"intent": {"primary": "off_topic"}} Hope that helps.'
        assert parse(raw).intent.primary == "off_topic"

    def test_correction(self):
        result = parse({
            "intent": {"primary": "change_previous_answer"},
            "correction": {"mappingKey": "budget", "newValue": "600000"},
        })
        assert result.correction.mapping_key == "budget"
        assert result.correction.new_value == "600000"

    def test_snake_case_keys_accepted(self):
        result = parse({
            "extracted": [{"mapping_key": "timeline", "value": "0-3 months"}],
            "correction": {"mapping_key": "budget", "new_value": "1"},
        })
        assert result.extracted[0].mapping_key == "timeline"
        assert result.correction.new_value == "1"

    def test_to_wire_uses_camel_case(self):
        result = parse({"extracted": [{"mappingKey": "a", "value": "b"}]})
        wire = result.to_wire()
        assert wire["extracted"][0]["mappingKey"] == "a"
        assert "suggestedTone" in wire["intent"]


class TestDefaults:

    def test_missing_primary(self):
        assert parse({"intent": {"confidence": 0.9}}).intent.primary == "clarification_question"

    def test_unknown_primary(self):
        assert parse({"intent": {"primary": "buy_now"}}).intent.primary == "clarification_question"

    @pytest.mark.parametrize("confidence", [None, "high", True, float("nan"), [0.9]])
    def test_bad_intent_confidence(self, confidence):
        assert parse({"intent": {"primary": "chitchat", "confidence": confidence}}).intent.confidence == 0.5

    def test_bad_extraction_confidence(self):
        result = parse({"extracted": [{"mappingKey": "a", "value": "b", "confidence": "sure"}]})
        assert result.extracted[0].confidence == 0.7

    def test_missing_extraction_confidence(self):
        result = parse({"extracted": [{"mappingKey": "a", "value": "b"}]})
        assert result.extracted[0].confidence == 0.7

    def test_confidence_clamped(self):
        result = parse({
            "intent": {"confidence": 7},
            "extracted": [{"mappingKey": "a", "value": "b", "confidence": -2}],
        })
        assert result.intent.confidence == 1.0
        assert result.extracted[0].confidence == 0.0

    def test_unknown_objection_and_tone_dropped(self):
        result = parse({"intent": {"primary": "objection", "objection": "rude", "suggestedTone": "loud"}})
        assert result.intent.objection is None
        assert result.intent.suggested_tone is None


class TestDroppedEntries:

    @pytest.mark.parametrize("entry", [
        {"value": "Halifax"},
        {"mappingKey": "", "value": "Halifax"},
        {"mappingKey": "   ", "value": "Halifax"},
        {"mappingKey": "location"},
        {"mappingKey": "location", "value": ""},
        {"mappingKey": "location", "value": None},
        {"mappingKey": "location", "value": {"city": "Halifax"}},
        "location=Halifax",
        None,
    ])
    def test_incomplete_extraction_dropped(self, entry):
        result = parse({"extracted": [entry, {"mappingKey": "budget", "value": "1"}]})
        assert [e.mapping_key for e in result.extracted] == ["budget"]

    def test_numeric_value_kept_as_string(self):
        result = parse({"extracted": [{"mappingKey": "budget", "value": 500000}]})
        assert result.extracted[0].value == "500000"

    @pytest.mark.parametrize("correction", [
        {"newValue": "1"},
        {"mappingKey": "", "newValue": "1"},
        {"mappingKey": 42, "newValue": "1"},
        "budget",
        [],
    ])
    def test_invalid_correction_ignored(self, correction):
        assert parse({"correction": correction}).correction is None

    def test_correction_without_new_value_kept(self):
        result = parse({"correction": {"mappingKey": "budget"}})
        assert result.correction.mapping_key == "budget"
        assert result.correction.new_value == ""

    def test_extracted_not_a_list(self):
        assert parse({"extracted": {"mappingKey": "a", "value": "b"}}).extracted == []


class TestNeverRaises:

    @pytest.mark.parametrize("raw", [
        None,
        "",
        "not json at all",
        "{broken",
        "[1, 2, 3]",
        "null",
        42,
        b'{"intent": {"primary": "chitchat"}}',
        {"intent": "objection"},
        {"intent": None, "extracted": None},
        "[" * 5000,
    ])
    def test_malformed_input(self, raw):
        result = parse(raw)
        assert isinstance(result, ClassifyAndExtractResult)
        assert result.intent.primary in ("clarification_question", "chitchat")

    @pytest.mark.parametrize("raw", [
        '{"intent": {"primary": "direct_answer", "confidence": 1' + "0" * 400 + '}}',
        '{"intent": {"primary": "direct_answer", "confidence": 0.9}, '
        '"extracted": [{"mappingKey": "budget", "value": "500000", "confidence": 1' + "0" * 400 + '}]}',
    ])
    def test_huge_integer_confidence(self, raw):
        result = parse(raw)
        assert result.intent.primary == "direct_answer"
        assert 0.0 <= result.intent.confidence <= 1.0
        assert all(0.0 <= e.confidence <= 1.0 for e in result.extracted)

    def test_default_result(self):
        result = default_result()
        assert result.intent.primary == "clarification_question"
        assert result.intent.confidence == 0.5
        assert result.extracted == []
        assert result.correction is None
