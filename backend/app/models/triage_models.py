# app/models/triage_models.py
from enum import Enum
from typing import List, Optional
from datetime import datetime, timezone

from pydantic import BaseModel, Field, field_validator

from app.config import MAX_TEXT_LENGTH


class UrgencyLevel(str, Enum):
    EMERGENCY = "emergency"
    URGENT_CARE = "urgent_care"
    PRIMARY_CARE = "primary_care"
    SELF_CARE = "self_care"

    @property
    def rank(self) -> int:
        """Higher rank = more urgent. Used to break ties between candidate levels."""
        return _URGENCY_RANK[self]


_URGENCY_RANK = {
    UrgencyLevel.SELF_CARE: 0,
    UrgencyLevel.PRIMARY_CARE: 1,
    UrgencyLevel.URGENT_CARE: 2,
    UrgencyLevel.EMERGENCY: 3,
}


class SystemAction(str, Enum):
    EMERGENCY_CIRCUIT_BREAKER = "emergency_circuit_breaker"
    NONE = "none"


class SexAtBirth(str, Enum):
    FEMALE = "female"
    MALE = "male"
    INTERSEX = "intersex"
    UNKNOWN = "unknown"


class AgeBand(str, Enum):
    CHILD = "child"
    ADULT = "adult"
    OLDER = "older"


class AwaitingField(str, Enum):
    SYMPTOMS = "symptoms"
    SEVERITY = "severity"
    DURATION = "duration"
    AGE = "age"


class NarrativeSource(str, Enum):
    DETERMINISTIC = "deterministic"
    ENHANCED = "enhanced"


class Intent(str, Enum):
    TRIAGE = "triage"
    RX = "rx"
    REPORT = "report"
    UNKNOWN = "unknown"


# ------------------------------- Inputs -------------------------------
class TriageInput(BaseModel):
    text: str = Field(min_length=1, max_length=MAX_TEXT_LENGTH)
    age_years: Optional[int] = Field(default=None, ge=0, le=120)
    severity: Optional[float] = Field(default=None, ge=1, le=10)
    duration_hours: Optional[float] = Field(default=None, ge=0, le=8760)
    sex_at_birth: Optional[SexAtBirth] = None
    pregnant: Optional[bool] = None
    known_conditions: List[str] = Field(default_factory=list)
    medications: List[str] = Field(default_factory=list)

    @field_validator("text")
    @classmethod
    def _strip_text(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("text must not be blank")
        return value


class RawTurn(TriageInput):
    """One inbound chat turn. Same hints as TriageInput plus the session key."""
    session_id: str = Field(min_length=1, max_length=128)


# ------------------------------- Pipeline artefacts -------------------------------
class RedactionResult(BaseModel):
    sanitized_text: str
    identifier_labels_found: List[str] = Field(default_factory=list)

    @property
    def blocked_external(self) -> bool:
        return bool(self.identifier_labels_found)


class StructuredFeatures(BaseModel):
    age_band: Optional[AgeBand] = None
    symptom_keywords: List[str] = Field(default_factory=list)
    severity: Optional[float] = None
    duration_hours: Optional[float] = None


class RedFlagResult(BaseModel):
    red_flags: List[str] = Field(default_factory=list)
    emergency: bool = False


class RecommendedAction(BaseModel):
    primary: str
    secondary: Optional[str] = None


class Citation(BaseModel):
    source_id: str
    chunk_id: str
    support_text: str


class TriageDecision(BaseModel):
    urgency_level: UrgencyLevel
    red_flags_detected: List[str] = Field(default_factory=list)
    risk_rationale: str
    possible_causes: Optional[List[str]] = None
    recommended_action: RecommendedAction
    system_action: SystemAction = SystemAction.NONE


class TriageOutput(TriageDecision):
    clinical_citations: List[Citation] = Field(default_factory=list)
    verified: bool = False
    narrative_source: NarrativeSource = NarrativeSource.DETERMINISTIC


# ------------------------------- Intake session -------------------------------
class TriageIntakeState(BaseModel):
    session_id: str
    text: Optional[str] = None
    severity: Optional[float] = None
    duration_hours: Optional[float] = None
    age_years: Optional[int] = None
    sex_at_birth: Optional[SexAtBirth] = None
    pregnant: Optional[bool] = None
    skip_severity: bool = False
    skip_duration: bool = False
    skip_age: bool = False
    awaiting: Optional[AwaitingField] = None
    identifiers_detected: bool = False
    version: int = 0
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class TurnResult(BaseModel):
    """Either a clarifying question or a final decision, never both."""
    session_id: str
    question: Optional[str] = None
    awaiting: Optional[AwaitingField] = None
    decision: Optional[TriageOutput] = None
