# app/models/rx_models.py
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from app.models.triage_models import Citation


class IssueKind(str, Enum):
    INTERACTION = "interaction"
    CONTRAINDICATION = "contraindication"
    DUPLICATION = "duplication"
    DOSE_ERROR = "dose_error"
    MISSING_INFO = "missing_info"


class IssueSeverity(str, Enum):
    INFO = "info"
    CAUTION = "caution"
    SERIOUS = "serious"
    CRITICAL = "critical"


class RxInput(BaseModel):
    current_meds: List[str] = Field(min_length=1, max_length=50)
    new_prescription: Optional[str] = Field(default=None, max_length=200)
    age_years: Optional[int] = Field(default=None, ge=0, le=120)
    pregnant: Optional[bool] = None


class NormalizedDrug(BaseModel):
    canonical_name: str
    code: str


class MedLine(BaseModel):
    """A medication string split into its name and optional dosing parts."""
    raw: str
    name: str
    strength_mg: Optional[float] = None
    frequency_per_day: Optional[int] = None


class RxIssue(BaseModel):
    kind: IssueKind
    severity: IssueSeverity
    drugs_involved: List[NormalizedDrug] = Field(default_factory=list)
    mechanism: str
    management: str
    evidence_source: str


class RxResult(BaseModel):
    issues: List[RxIssue] = Field(default_factory=list)
    normalized: List[NormalizedDrug] = Field(default_factory=list)
    unknown_meds: List[str] = Field(default_factory=list)
    clinical_citations: List[Citation] = Field(default_factory=list)
    verified: bool = False
