# app/services/triage_logic.py
import logging
from typing import List, Optional

from app.config import EMERGENCY_CONTACT
from app.models.triage_models import (
    RecommendedAction,
    RedFlagResult,
    StructuredFeatures,
    SystemAction,
    TriageDecision,
    UrgencyLevel,
)
from app.services.rules import TRIAGE_RULES

logger = logging.getLogger(__name__)

URGENT_SEVERITY_THRESHOLD = 8
PRIMARY_CARE_DURATION_HOURS = 72
MAX_POSSIBLE_CAUSES = 3

POSSIBLE_CAUSES = TRIAGE_RULES["possible_causes"]

ACTIONS = {
    UrgencyLevel.EMERGENCY: RecommendedAction(
        primary=(
            f"CALL EMERGENCY SERVICES IMMEDIATELY: contact {EMERGENCY_CONTACT} "
            "or go to the nearest hospital emergency department NOW."
        ),
        secondary=(
            "If you are alone, contact someone nearby immediately. "
            "Do NOT drive yourself - have someone take you or call an ambulance."
        ),
    ),
    UrgencyLevel.URGENT_CARE: RecommendedAction(
        primary="Seek urgent care or same-day clinical evaluation at a hospital or clinic.",
        secondary=(
            "If symptoms worsen (especially difficulty breathing, chest pain, or confusion), "
            f"contact {EMERGENCY_CONTACT} immediately."
        ),
    ),
    UrgencyLevel.PRIMARY_CARE: RecommendedAction(
        primary="Schedule a visit with your doctor within the next few days.",
        secondary="Track your symptoms and seek urgent care sooner if they worsen significantly.",
    ),
    UrgencyLevel.SELF_CARE: RecommendedAction(
        primary="Self-care and monitoring are reasonable at this time.",
        secondary=(
            "Seek medical care if symptoms worsen or new concerning symptoms appear "
            "(chest pain, difficulty breathing, severe pain, confusion)."
        ),
    ),
}


# -------------------------------
# Helper Functions
# -------------------------------
def _rationale(level: UrgencyLevel, features: StructuredFeatures, red_flags: List[str]) -> str:
    keywords = ", ".join(features.symptom_keywords)
    if level == UrgencyLevel.EMERGENCY:
        return (
            f"Symptoms include {', '.join(red_flags)}; these can signal urgent conditions "
            "that require immediate evaluation."
        )
    if level == UrgencyLevel.URGENT_CARE:
        lead = f"Reported symptoms ({keywords}) appear" if keywords else "Symptoms appear"
        return f"{lead} intense or rapidly worsening, which may benefit from same-day clinical evaluation."
    if level == UrgencyLevel.PRIMARY_CARE:
        lead = f"Reported symptoms ({keywords}) are" if keywords else "Symptoms are"
        return f"{lead} persistent but not clearly emergent; a clinician visit is recommended for assessment."
    if keywords:
        return (
            f"Reported symptoms ({keywords}) appear mild and stable; self-care and monitoring "
            "are appropriate, with escalation if things worsen."
        )
    return "No specific red-flag symptoms detected; monitor for changes and seek care if symptoms evolve."


def suggest_possible_causes(symptom_keywords: List[str]) -> Optional[List[str]]:
    """Causes from every matching table row, de-duplicated in table order, capped at 3."""
    present = set(symptom_keywords)
    matched: List[str] = []
    for entry in POSSIBLE_CAUSES:
        if present.intersection(entry["keywords"]):
            for cause in entry["causes"]:
                if cause not in matched:
                    matched.append(cause)
    return matched[:MAX_POSSIBLE_CAUSES] or None


def _compose_decision(level: UrgencyLevel, features: StructuredFeatures, red_flags: List[str]) -> TriageDecision:
    emergency = level == UrgencyLevel.EMERGENCY
    return TriageDecision(
        urgency_level=level,
        red_flags_detected=list(red_flags),
        risk_rationale=_rationale(level, features, red_flags),
        possible_causes=None if emergency else suggest_possible_causes(features.symptom_keywords),
        recommended_action=ACTIONS[level].model_copy(),
        system_action=SystemAction.EMERGENCY_CIRCUIT_BREAKER if emergency else SystemAction.NONE,
    )


# -------------------------------
# Main Decision Function
# -------------------------------
def triage_logic(features: StructuredFeatures, red_flags: RedFlagResult) -> TriageDecision:
    """Rule-based urgency decision. Red flags always win; then severity, then duration."""
    if red_flags.red_flags:
        level = UrgencyLevel.EMERGENCY
    elif (features.severity or 0) >= URGENT_SEVERITY_THRESHOLD:
        level = UrgencyLevel.URGENT_CARE
    elif (features.duration_hours or 0) >= PRIMARY_CARE_DURATION_HOURS:
        level = UrgencyLevel.PRIMARY_CARE
    else:
        level = UrgencyLevel.SELF_CARE

    decision = _compose_decision(level, features, red_flags.red_flags if level == UrgencyLevel.EMERGENCY else [])
    logger.info(
        f"🩺 Triage decision: {decision.urgency_level.value} "
        f"(red_flags={len(decision.red_flags_detected)}, keywords={len(features.symptom_keywords)})"
    )
    return decision
