# app/services/red_flags.py
from typing import List, Optional, Sequence

from app.models.triage_models import RedFlagResult
from app.services.rules import TRIAGE_RULES

RED_FLAGS = frozenset(term.lower() for term in TRIAGE_RULES["red_flags"])
EMERGENCY_COMBINATIONS = tuple(tuple(pair) for pair in TRIAGE_RULES["emergency_combinations"])


def detect_red_flags(symptom_keywords: Sequence[str], pregnant: Optional[bool] = None) -> RedFlagResult:
    """Red flags are the keywords in the emergency vocabulary plus any
    dangerous keyword pairs, reported as `combination: a + b`."""
    flags: List[str] = [kw for kw in symptom_keywords if kw in RED_FLAGS]

    present = set(symptom_keywords)
    if pregnant:
        present.add("pregnant")
    for first, second in EMERGENCY_COMBINATIONS:
        if first in present and second in present:
            flags.append(f"combination: {first} + {second}")

    return RedFlagResult(red_flags=flags, emergency=bool(flags))
