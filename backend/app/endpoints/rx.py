# app/endpoints/rx.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.rx_models import RxInput, RxResult
from app.models.triage_models import Intent
from app.services.audit import record_decision
from app.services.triage_service import run_medication_check

router = APIRouter(tags=["Medication safety"])


@router.post("/rx", response_model=RxResult)
def rx_check(req: RxInput, db: Session = Depends(get_db)):
    result = run_medication_check(
        req.current_meds,
        new_prescription=req.new_prescription,
        pregnant=req.pregnant,
        age_years=req.age_years,
    )
    record_decision(
        db, Intent.RX, issue_count=len(result.issues), verified=result.verified,
        meta={"unknown_meds": len(result.unknown_meds)},
    )
    return result
