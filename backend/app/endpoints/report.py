# app/endpoints/report.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.report_models import ReportInput, ReportResult
from app.models.triage_models import Intent
from app.services.audit import record_decision
from app.services.triage_service import run_report_analysis

router = APIRouter(tags=["Lab reports"])


@router.post("/report", response_model=ReportResult)
def report_analysis(req: ReportInput, db: Session = Depends(get_db)):
    result = run_report_analysis(values=req.values, raw_text=req.raw_text)
    record_decision(db, Intent.REPORT, issue_count=len(result.abnormal_values), verified=result.verified)
    return result
