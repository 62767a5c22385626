# tests/test_triage_logic.py
from app.models.triage_models import RedFlagResult, StructuredFeatures, SystemAction, UrgencyLevel
from app.services.red_flags import detect_red_flags
from app.services.triage_logic import ACTIONS, suggest_possible_causes, triage_logic


def _decide(keywords=(), severity=None, duration_hours=None):
    features = StructuredFeatures(symptom_keywords=list(keywords), severity=severity, duration_hours=duration_hours)
    return triage_logic(features, detect_red_flags(features.symptom_keywords))


def test_red_flags_override_everything():
    decision = _decide(["chest pain", "cough"], severity=2, duration_hours=1)

    assert decision.urgency_level == UrgencyLevel.EMERGENCY
    assert decision.system_action == SystemAction.EMERGENCY_CIRCUIT_BREAKER
    assert decision.red_flags_detected == ["chest pain"]
    assert decision.possible_causes is None
    assert "chest pain" in decision.risk_rationale


def test_emergency_action_never_waits():
    decision = _decide(["seizure"])

    assert decision.recommended_action == ACTIONS[UrgencyLevel.EMERGENCY]
    assert "IMMEDIATELY" in decision.recommended_action.primary


def test_severity_threshold_is_inclusive():
    assert _decide(["cough"], severity=8).urgency_level == UrgencyLevel.URGENT_CARE
    assert _decide(["cough"], severity=7.9).urgency_level == UrgencyLevel.SELF_CARE


def test_duration_threshold_is_inclusive():
    assert _decide(["cough"], duration_hours=72).urgency_level == UrgencyLevel.PRIMARY_CARE
    assert _decide(["cough"], duration_hours=71).urgency_level == UrgencyLevel.SELF_CARE


def test_severity_checked_before_duration():
    assert _decide(["cough"], severity=9, duration_hours=200).urgency_level == UrgencyLevel.URGENT_CARE


def test_missing_values_count_as_zero():
    decision = _decide([])

    assert decision.urgency_level == UrgencyLevel.SELF_CARE
    assert decision.system_action == SystemAction.NONE
    assert decision.possible_causes is None
    assert decision.risk_rationale.startswith("No specific red-flag symptoms detected")


def test_possible_causes_capped_in_table_order():
    assert suggest_possible_causes(["cough", "fever"]) == ["Viral respiratory infection", "Seasonal allergies", "Bronchitis"]
    # rash row comes before fatigue row in the table
    assert suggest_possible_causes(["fatigue", "rash"]) == ["Contact dermatitis", "Allergic reaction", "Viral rash"]
    assert suggest_possible_causes(["stiff neck"]) is None


def test_non_emergency_decision_carries_causes_and_keywords():
    decision = _decide(["cough", "fever"], duration_hours=96)

    assert decision.urgency_level == UrgencyLevel.PRIMARY_CARE
    assert decision.possible_causes == ["Viral respiratory infection", "Seasonal allergies", "Bronchitis"]
    assert "cough, fever" in decision.risk_rationale
    assert decision.red_flags_detected == []


def test_causes_never_accompany_red_flags():
    features = StructuredFeatures(symptom_keywords=["cough", "fever"])
    decision = triage_logic(features, RedFlagResult(red_flags=["combination: fever + stiff neck"], emergency=True))

    assert decision.urgency_level == UrgencyLevel.EMERGENCY
    assert decision.possible_causes is None
