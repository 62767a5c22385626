# app/services/audit.py
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from app.models.triage import TriageAudit
from app.models.triage_models import Intent, TriageOutput

logger = logging.getLogger(__name__)


def record_decision(
    db: Session,
    intent: Intent,
    triage: Optional[TriageOutput] = None,
    symptom_keywords: Optional[List[str]] = None,
    identifier_labels: Optional[List[str]] = None,
    issue_count: Optional[int] = None,
    verified: Optional[bool] = None,
    meta: Optional[Dict[str, Any]] = None,
) -> TriageAudit:
    """Persist the de-identified outcome of one request."""
    audit = TriageAudit(
        intent=intent.value,
        urgency_level=triage.urgency_level.value if triage else None,
        red_flags=triage.red_flags_detected if triage else None,
        symptom_keywords=symptom_keywords or [],
        identifier_labels=identifier_labels or [],
        issue_count=issue_count,
        verified=triage.verified if triage else verified,
        meta=meta or {},
    )
    db.add(audit)
    db.commit()
    db.refresh(audit)
    logger.info(f"📝 Audit #{audit.id}: intent={audit.intent} level={audit.urgency_level} verified={audit.verified}")
    return audit


def audit_hook(db: Session):
    """Decision hook that writes each final triage decision to the audit table."""
    def _record(output: TriageOutput, features, identifier_labels: List[str]) -> None:
        record_decision(
            db,
            Intent.TRIAGE,
            triage=output,
            symptom_keywords=features.symptom_keywords,
            identifier_labels=identifier_labels,
        )
    return _record


def record_reply(db: Session, reply) -> Optional[TriageAudit]:
    """Audit medication and report replies; triage decisions go through `audit_hook`."""
    if reply.rx is not None:
        return record_decision(
            db, reply.intent, issue_count=len(reply.rx.issues), verified=reply.rx.verified,
            meta={"unknown_meds": len(reply.rx.unknown_meds)},
        )
    if reply.report is not None:
        return record_decision(
            db, reply.intent, issue_count=len(reply.report.abnormal_values), verified=reply.report.verified,
        )
    return None
