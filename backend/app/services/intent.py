# app/services/intent.py
from app.models.triage_models import Intent, StructuredFeatures
from app.services.rules import TRIAGE_RULES

RX_KEYWORDS = tuple(TRIAGE_RULES["intent_keywords"]["rx"])
REPORT_KEYWORDS = tuple(TRIAGE_RULES["intent_keywords"]["report"])
TRIAGE_KEYWORDS = tuple(TRIAGE_RULES["intent_keywords"]["triage"])


def classify_intent(sanitized_text: str, features: StructuredFeatures) -> Intent:
    """First match wins: symptoms, medication words, lab words, generic triage words."""
    if features.symptom_keywords:
        # A known symptom always routes to triage, even in a medication question.
        return Intent.TRIAGE

    text_lower = sanitized_text.lower()
    if any(kw in text_lower for kw in RX_KEYWORDS):
        return Intent.RX
    if any(kw in text_lower for kw in REPORT_KEYWORDS):
        return Intent.REPORT
    if any(kw in text_lower for kw in TRIAGE_KEYWORDS):
        return Intent.TRIAGE
    return Intent.UNKNOWN
