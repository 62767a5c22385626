# app/services/features.py
from typing import List, Optional

from app.models.triage_models import AgeBand, StructuredFeatures
from app.services.rules import TRIAGE_RULES

SYMPTOM_VOCABULARY = tuple(term.lower() for term in TRIAGE_RULES["symptom_vocabulary"])


def age_band(age_years: Optional[int]) -> Optional[AgeBand]:
    if age_years is None:
        return None
    if age_years < 18:
        return AgeBand.CHILD
    if age_years >= 65:
        return AgeBand.OLDER
    return AgeBand.ADULT


def extract_symptom_keywords(text: str) -> List[str]:
    """Closed-vocabulary substring match, returned in vocabulary order."""
    text_lower = text.lower()
    return [term for term in SYMPTOM_VOCABULARY if term in text_lower]


def extract_features(
    sanitized_text: str,
    age_years: Optional[int] = None,
    severity: Optional[float] = None,
    duration_hours: Optional[float] = None,
) -> StructuredFeatures:
    return StructuredFeatures(
        age_band=age_band(age_years),
        symptom_keywords=extract_symptom_keywords(sanitized_text),
        severity=severity,
        duration_hours=duration_hours,
    )
