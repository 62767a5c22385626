# tests/test_triage_service.py
import asyncio
import json

import pytest

from conftest import FakeNarrativeModel, FlakyStore, make_turn
from app.models.triage_models import (
    AwaitingField,
    Intent,
    NarrativeSource,
    SystemAction,
    UrgencyLevel,
)
from app.services.citations import ReferenceCatalog
from app.services.intake import QUESTIONS
from app.services.session_store import StaleSessionError
from app.services.triage_service import (
    ASK_MEDICATIONS,
    HELP_MESSAGE,
    handle_chat_turn,
    run_triage_turn,
)


def _turn(store, text, model=None, hook=None, **hints):
    return asyncio.run(run_triage_turn(make_turn(text, **hints), store, narrative_model=model, on_decision=hook))


def _chat(store, text, model=None, **hints):
    return asyncio.run(handle_chat_turn(make_turn(text, **hints), store, narrative_model=model))


# ------------------------------- Intake flow -------------------------------
def test_intake_asks_then_decides_after_skips(store):
    first = _turn(store, "I have a cough")
    assert first.decision is None
    assert first.awaiting == AwaitingField.SEVERITY
    assert first.question == QUESTIONS[AwaitingField.SEVERITY]

    assert _turn(store, "skip").awaiting == AwaitingField.DURATION
    assert _turn(store, "skip").awaiting == AwaitingField.AGE
    final = _turn(store, "skip")

    assert final.question is None
    assert final.decision.urgency_level == UrgencyLevel.SELF_CARE
    assert final.decision.verified
    assert final.decision.clinical_citations
    assert "Viral respiratory infection" in final.decision.possible_causes
    assert store.get("session-1") is None


def test_red_flag_ends_intake_immediately(store):
    result = _turn(store, "I have chest pain")

    assert result.decision.urgency_level == UrgencyLevel.EMERGENCY
    assert result.decision.system_action == SystemAction.EMERGENCY_CIRCUIT_BREAKER
    assert result.decision.possible_causes is None
    assert result.decision.red_flags_detected == ["chest pain"]
    assert store.get("session-1") is None


@pytest.mark.parametrize("text", [
    "I feel like I'm going to pass out and I have chest pain",
    "Not sure what is happening but I have chest pain",
    "crushing chest pain, unknown cause",
])
def test_first_message_with_skip_word_still_reaches_emergency(store, text):
    result = _turn(store, text)

    assert result.question is None
    assert result.decision.urgency_level == UrgencyLevel.EMERGENCY
    assert result.decision.system_action == SystemAction.EMERGENCY_CIRCUIT_BREAKER


def test_hints_complete_the_intake_in_one_turn(store):
    result = _turn(store, "sore throat", severity=9, duration_hours=12, age_years=35)

    assert result.decision.urgency_level == UrgencyLevel.URGENT_CARE


def test_sessions_are_independent(store):
    _turn(store, "I have a cough")
    other = asyncio.run(run_triage_turn(make_turn("fever", session_id="session-2"), store))

    assert other.awaiting == AwaitingField.SEVERITY
    assert store.get("session-1").text == "I have a cough"
    assert store.get("session-2").text == "fever"


# ------------------------------- Narrative model -------------------------------
def test_model_enhances_when_no_identifiers(store):
    model = FakeNarrativeModel()

    result = _turn(store, "I have a cough", model=model, severity=2, duration_hours=24, age_years=30)

    assert result.decision.narrative_source == NarrativeSource.ENHANCED
    assert result.decision.urgency_level == UrgencyLevel.SELF_CARE
    assert len(model.calls) == 1
    assert "I have a cough" not in json.dumps(model.calls[0])


def test_identifier_blocks_model_for_the_whole_session(store):
    model = FakeNarrativeModel()

    first = _turn(store, "My name is John Smith and I have a cough", model=model)
    assert "John Smith" not in store.get("session-1").text
    assert store.get("session-1").identifiers_detected

    final = _turn(store, "skip", model=model, duration_hours=5, age_years=40)

    assert first.decision is None
    assert final.decision.narrative_source == NarrativeSource.DETERMINISTIC
    assert model.calls == []


def test_model_not_called_for_unverified_guidance(store):
    model = FakeNarrativeModel()
    result = asyncio.run(run_triage_turn(
        make_turn("I have a cough", severity=2, duration_hours=1, age_years=30),
        store,
        narrative_model=model,
        catalog=ReferenceCatalog(version="empty", chunks=()),
    ))

    assert not result.decision.verified
    assert model.calls == []


def test_decision_hook_runs_before_model(store):
    model = FakeNarrativeModel()
    seen = []

    def hook(output, features, labels):
        seen.append((output.narrative_source, len(model.calls), features.symptom_keywords, labels))

    _turn(store, "I have a cough", model=model, hook=hook, severity=2, duration_hours=24, age_years=30)

    assert seen == [(NarrativeSource.DETERMINISTIC, 0, ["cough"], [])]


def test_hook_receives_identifier_labels(store):
    seen = []

    _turn(store, "I'm Sarah and I have chest pain", hook=lambda output, features, labels: seen.append(labels))

    assert seen == [["name_intro"]]


# ------------------------------- Concurrency -------------------------------
def test_stale_write_is_retried_once():
    store = FlakyStore(failures=1)

    result = _turn(store, "I have a cough")

    assert result.awaiting == AwaitingField.SEVERITY
    assert store.get("session-1").version == 1


def test_repeated_conflict_is_raised():
    store = FlakyStore(failures=2)

    with pytest.raises(StaleSessionError):
        _turn(store, "I have a cough")


# ------------------------------- Chat routing -------------------------------
def test_chat_routes_medication_question(store):
    reply = _chat(store, "Can you check my medication: warfarin and aspirin")

    assert reply.intent == Intent.RX
    assert [d.canonical_name for d in reply.rx.normalized] == ["Warfarin", "Aspirin"]
    assert reply.rx.issues[0].severity.value == "critical"
    assert reply.message.startswith("💊 Found 1")


def test_chat_asks_for_medications_when_none_named(store):
    reply = _chat(store, "is this dose safe?")

    assert reply.intent == Intent.RX
    assert reply.message == ASK_MEDICATIONS
    assert reply.rx is None


def test_chat_uses_medication_hints(store):
    reply = _chat(store, "please check these", medications=["ibuprofen", "naproxen"])

    assert reply.intent == Intent.RX
    assert reply.rx.issues[0].mechanism == "DeterministicEngine:multiple_nsaids"


def test_chat_routes_lab_report(store):
    reply = _chat(store, "Here are my lab results\nHemoglobin: 9 g/dL (12-16)")

    assert reply.intent == Intent.REPORT
    assert [f.name for f in reply.report.abnormal_values] == ["Hemoglobin"]


def test_chat_unknown_gets_help(store):
    reply = _chat(store, "hello there")

    assert reply.intent == Intent.UNKNOWN
    assert reply.message == HELP_MESSAGE


def test_chat_triage_question_then_answer(store):
    first = _chat(store, "I have a cough")
    assert first.intent == Intent.TRIAGE
    assert first.message == first.question == QUESTIONS[AwaitingField.SEVERITY]

    second = _chat(store, "7")
    assert second.intent == Intent.TRIAGE
    assert second.awaiting == AwaitingField.DURATION
    assert store.get("session-1").severity == 7


def test_chat_final_triage_message_is_humanized(store):
    reply = _chat(store, "I have chest pain")

    assert reply.triage.urgency_level == UrgencyLevel.EMERGENCY
    assert reply.message.startswith("⚠️ High risk")


def test_leaving_intake_clears_session(store):
    _chat(store, "I have a cough")

    reply = _chat(store, "check my medication warfarin")

    assert reply.intent == Intent.RX
    assert store.get("session-1") is None
