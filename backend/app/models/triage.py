# app/models/triage.py
from sqlalchemy import Boolean, Column, Integer, String, DateTime, JSON
from datetime import datetime, timezone
from app.database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class TriageAudit(Base):
    """De-identified record of one decision. No patient text is stored."""
    __tablename__ = "triage_audit"
    id = Column(Integer, primary_key=True, index=True)
    received_at = Column(DateTime, default=_utcnow, nullable=False)
    intent = Column(String(20), nullable=False)
    urgency_level = Column(String(50), nullable=True)
    red_flags = Column(JSON, nullable=True)
    symptom_keywords = Column(JSON, nullable=True)
    identifier_labels = Column(JSON, nullable=True)
    issue_count = Column(Integer, nullable=True)
    verified = Column(Boolean, nullable=True)
    meta = Column(JSON, nullable=True)
