"""
Tests for turn processing (classify -> engine -> reply).
"""

from unittest.mock import MagicMock

import pytest

from lead_qualifier.classifier import LLMClassifier
from lead_qualifier.classifier.llm.schemas import (
    ClassifyAndExtractResult,
    Correction,
    ExtractionItem,
    IntentResult,
)
from lead_qualifier.content import ContentItem
from lead_qualifier.dialogue import (
    CORRECTION_REPLY,
    MOVE_ON_REPLY,
    OBJECTION_FALLBACK_REPLY,
    TurnProcessor,
    start_conversation,
)
from lead_qualifier.state_machine import StateMachineConfig


def classified(primary, extracted=None, objection=None, correction=None):
    return ClassifyAndExtractResult(
        intent=IntentResult(primary=primary, objection=objection, confidence=0.9),
        extracted=[
            ExtractionItem(mapping_key=key, value=value, confidence=confidence)
            for key, value, confidence in (extracted or [])
        ],
        correction=Correction(mapping_key=correction[0], new_value=correction[1]) if correction else None,
    )


@pytest.fixture
def classifier():
    fake = MagicMock()
    fake.return_value = classified("clarification_question")
    return fake


@pytest.fixture
def config(flow_dict):
    data = flow_dict()
    location = data["states"][0]
    location["prompt_variants"] = ["Which city?", "Any area at all?"]
    location["max_attempts"] = 2
    location["objection_counters"] = [{
        "objection_type": "privacy_refusal",
        "response": "Only the city, nothing more.",
        "escalation_response": "Totally fine, a rough area is enough.",
    }]
    location["transitions"].append({
        "target_state_id": "s_budget",
        "priority": 10,
        "condition": {"type": "max_attempts_reached", "max_attempts": 2},
    })
    data["global_objection_counters"] = [
        {"objection_type": "general", "response": "No pressure at all."},
    ]
    return StateMachineConfig.from_dict(data)


@pytest.fixture
def processor(config, classifier):
    return TurnProcessor(config, classifier)


class TestStartConversation:

    def test_initial_context(self, config):
        context = start_conversation(config)
        assert context.current_state_id == "s_location"
        assert context.state_history == ["s_location"]
        assert context.user_input == {}
        assert context.state_attempts == {}

    def test_known_profile_without_empty_values(self, config):
        context = start_conversation(config, {"budget": "500000", "timeline": ""})
        assert context.user_input == {"budget": "500000"}


class TestAnswers:

    def test_direct_answer_advances(self, processor, classifier, config):
        classifier.return_value = classified("direct_answer", [("location", "Halifax", 0.9)])
        context = start_conversation(config)

        outcome = processor.process_turn(context, "Halifax")

        assert outcome.context.current_state_id == "s_budget"
        assert outcome.context.state_history == ["s_location", "s_budget"]
        assert outcome.reply == "Ask s_budget?"
        assert outcome.intent == "direct_answer"
        assert outcome.advancement.advanced
        assert outcome.progress == 33
        assert not outcome.is_complete

    def test_input_context_untouched(self, processor, classifier, config):
        classifier.return_value = classified("direct_answer", [("location", "Halifax", 0.9)])
        context = start_conversation(config)
        before = context.to_dict()

        processor.process_turn(context, "Halifax")

        assert context.to_dict() == before

    def test_multi_answer_reaches_lead_capture(self, processor, classifier, config):
        classifier.return_value = classified("multi_answer", [
            ("location", "Halifax", 0.95),
            ("budget", "500000", 0.9),
            ("timeline", "0-3 months", 0.8),
        ])

        outcome = processor.process_turn(start_conversation(config), "Halifax, 500k, next month")

        assert outcome.context.current_state_id == "contact"
        assert outcome.advancement.skipped_states == ["s_budget", "s_timeline"]
        assert outcome.is_complete
        assert outcome.progress == 100

    def test_answer_without_advance_reasks_with_variant(self, processor, classifier, config):
        classifier.return_value = classified("direct_answer", [("location", "somewhere", 0.4)])
        context = start_conversation(config)

        first = processor.process_turn(context, "somewhere")
        second = processor.process_turn(first.context, "somewhere")

        assert first.reply == "Which city?"
        assert first.context.state_attempts == {"s_location": 1}
        assert first.context.user_input == {}
        assert second.reply == "Any area at all?"
        assert second.context.state_attempts == {"s_location": 2}

    def test_other_field_collected_without_advance(self, processor, classifier, config):
        classifier.return_value = classified("direct_answer", [("budget", "500000", 0.9)])

        outcome = processor.process_turn(start_conversation(config), "about 500k")

        assert outcome.context.current_state_id == "s_location"
        assert outcome.context.user_input == {"budget": "500000"}
        assert outcome.progress == 33


class TestObjections:

    def test_state_counter_then_escalation(self, processor, classifier, config):
        classifier.return_value = classified("objection", objection="privacy_refusal")
        context = start_conversation(config)

        first = processor.process_turn(context, "why do you need that?")

        assert first.reply == "Only the city, nothing more."
        assert first.objection_response == "Only the city, nothing more."
        assert first.context.state_attempts == {"s_location": 1}
        assert first.context.current_state_id == "s_location"

    def test_missing_type_uses_general_counter(self, processor, classifier, config):
        classifier.return_value = classified("objection")

        outcome = processor.process_turn(start_conversation(config), "hmm, not sure")

        assert outcome.reply == "No pressure at all."

    def test_no_counter_falls_back(self, processor, classifier, config):
        classifier.return_value = classified("objection", objection="trust_issue")

        outcome = processor.process_turn(start_conversation(config), "who are you?")

        assert outcome.reply == OBJECTION_FALLBACK_REPLY
        assert outcome.objection_response is None

    def test_gives_up_after_max_attempts(self, processor, classifier, config):
        classifier.return_value = classified("objection", objection="privacy_refusal")

        first = processor.process_turn(start_conversation(config), "no")
        second = processor.process_turn(first.context, "still no")

        assert second.reply == MOVE_ON_REPLY
        assert second.context.current_state_id == "s_budget"
        assert second.context.state_history == ["s_location", "s_budget"]
        assert second.advancement.advanced

    def test_escalation_when_state_cannot_be_left(self, flow_dict, classifier):
        data = flow_dict()
        data["states"][0]["max_attempts"] = 5
        data["states"][0]["objection_counters"] = [{
            "objection_type": "privacy_refusal",
            "response": "first",
            "escalation_response": "again",
        }]
        processor = TurnProcessor(StateMachineConfig.from_dict(data), classifier)
        classifier.return_value = classified("objection", objection="privacy_refusal")

        context = start_conversation(processor.config)
        replies = []
        for _ in range(3):
            outcome = processor.process_turn(context, "no")
            replies.append(outcome.reply)
            context = outcome.context

        assert replies == ["first", "again", "again"]
        assert context.current_state_id == "s_location"


class TestCorrections:

    def test_correction_overwrites_and_advances(self, processor, classifier, config):
        classifier.return_value = classified(
            "change_previous_answer",
            extracted=[("budget", "600000", 0.9)],
            correction=("location", "Bedford"),
        )
        context = start_conversation(config, {"location": "Halifax"})
        context.current_state_id = "s_budget"

        outcome = processor.process_turn(context, "Actually Bedford, and 600k")

        assert outcome.context.user_input == {"location": "Bedford", "budget": "600000"}
        assert outcome.context.current_state_id == "s_timeline"
        assert context.user_input == {"location": "Halifax"}

    def test_correction_without_advance(self, processor, classifier, config):
        classifier.return_value = classified("change_previous_answer", correction=("budget", "450000"))
        context = start_conversation(config, {"budget": "500000"})

        outcome = processor.process_turn(context, "make that 450k")

        assert outcome.reply == CORRECTION_REPLY
        assert outcome.context.user_input["budget"] == "450000"
        assert outcome.context.state_attempts == {}

    def test_empty_correction_keeps_value(self, processor, classifier, config):
        classifier.return_value = classified("change_previous_answer", correction=("budget", ""))
        context = start_conversation(config, {"budget": "500000"})

        outcome = processor.process_turn(context, "scratch the budget")

        assert outcome.context.user_input["budget"] == "500000"


class TestNonAnswers:

    @pytest.mark.parametrize("intent", [
        "clarification_question", "chitchat", "off_topic",
        "escalation_request", "attempted_answer_but_unclear",
    ])
    def test_reask_with_variant(self, processor, classifier, config, intent):
        classifier.return_value = classified(intent)

        outcome = processor.process_turn(start_conversation(config), "hello?")

        assert outcome.reply == "Which city?"
        assert outcome.intent == intent
        assert outcome.context.state_attempts == {"s_location": 1}
        assert outcome.advancement is None

    def test_empty_message_is_noop(self, processor, classifier, config):
        context = start_conversation(config)

        outcome = processor.process_turn(context, "   ")

        classifier.assert_not_called()
        assert outcome.reply == "Ask s_location?"
        assert outcome.context.to_dict() == context.to_dict()
        assert outcome.context is not context

    def test_unknown_state(self, processor, classifier, config):
        context = start_conversation(config)
        context.current_state_id = "ghost"

        outcome = processor.process_turn(context, "hi")

        assert outcome.reply == ""
        assert outcome.context.current_state_id == "ghost"


class TestPipeline:

    def test_classifier_gets_history(self, processor, classifier, config):
        processor.process_turn(start_conversation(config), "hi", history=["assistant: Ask s_location?"])

        request = classifier.call_args[0][0]
        assert request.user_message == "hi"
        assert request.state_id == "s_location"
        assert request.recent_context == ["assistant: Ask s_location?"]

    def test_content_matched_for_flow_and_profile(self, config, classifier):
        catalog = [
            ContentItem.from_dict({"id": "everyone", "priority": 2}),
            ContentItem.from_dict({"id": "sellers", "applicable_when": {"flow": ["sell"]}}),
            ContentItem.from_dict({
                "id": "big_budget",
                "priority": 1,
                "applicable_when": {"rule_groups": [{
                    "logic": "AND",
                    "rules": [{"field": "budget", "operator": "greater_than", "value": "400000"}],
                }]},
            }),
        ]
        processor = TurnProcessor(config, classifier, catalog=catalog, content_limit=3)
        classifier.return_value = classified("multi_answer", [("location", "Halifax", 0.9), ("budget", "500000", 0.9)])

        outcome = processor.process_turn(start_conversation(config), "Halifax, 500k")

        assert [c.id for c in outcome.content] == ["big_budget", "everyone"]
        assert outcome.to_dict()["content"] == ["big_budget", "everyone"]

    def test_no_catalog_no_content(self, processor, config):
        assert processor.process_turn(start_conversation(config), "hi").content == []

    def test_with_llm_classifier(self, config, mock_llm_with_responses, llm_json):
        client = mock_llm_with_responses(
            llm_json("direct_answer", extracted=[{"mappingKey": "location", "value": "Halifax", "confidence": 0.9}]),
            llm_json("objection", objection="privacy_refusal"),
            "not json",
        )
        processor = TurnProcessor(config, LLMClassifier(client))

        context = start_conversation(config)
        first = processor.process_turn(context, "Halifax")
        second = processor.process_turn(first.context, "rather not say")
        third = processor.process_turn(second.context, "???")

        assert first.context.current_state_id == "s_budget"
        assert second.reply == OBJECTION_FALLBACK_REPLY
        assert second.context.state_attempts == {"s_budget": 1}
        assert third.intent == "clarification_question"
        assert third.context.state_attempts == {"s_budget": 2}
