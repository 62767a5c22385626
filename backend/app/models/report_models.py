# app/models/report_models.py
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from app.config import MAX_TEXT_LENGTH
from app.models.triage_models import Citation


class ReferenceRange(BaseModel):
    low: Optional[float] = None
    high: Optional[float] = None


class ReportValue(BaseModel):
    name: str = Field(min_length=1)
    value: float
    unit: Optional[str] = None
    reference_range: Optional[ReferenceRange] = None


class ReportInput(BaseModel):
    values: Optional[List[ReportValue]] = None
    raw_text: Optional[str] = Field(default=None, max_length=MAX_TEXT_LENGTH * 4)

    @model_validator(mode="after")
    def _require_values_or_text(self):
        if not self.values and not (self.raw_text and self.raw_text.strip()):
            raise ValueError("either values or raw_text is required")
        return self


class ReportFinding(BaseModel):
    name: str
    value: float
    unit: Optional[str] = None
    interpretation: str


class ReportResult(BaseModel):
    summary: str
    abnormal_values: List[ReportFinding] = Field(default_factory=list)
    uncertainty: List[str] = Field(default_factory=list)
    recommended_questions: List[str] = Field(default_factory=list)
    clinical_citations: List[Citation] = Field(default_factory=list)
    verified: bool = False
