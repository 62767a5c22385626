# app/endpoints/triage.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.triage_models import RawTurn, TurnResult
from app.services.audit import audit_hook, record_reply
from app.services.citations import get_catalog
from app.services.humanizer import NarrativeModel, get_narrative_model
from app.services.rules import DRUG_RULES, TRIAGE_RULES
from app.services.session_store import SessionStore, get_session_store
from app.services.triage_service import ChatReply, handle_chat_turn, run_triage_turn

router = APIRouter(tags=["Triage"])


@router.post("/triage/turn", response_model=TurnResult, response_model_exclude_none=True)
async def triage_turn(
    turn: RawTurn,
    db: Session = Depends(get_db),
    store: SessionStore = Depends(get_session_store),
    narrative_model: NarrativeModel = Depends(get_narrative_model),
):
    return await run_triage_turn(turn, store, narrative_model=narrative_model, on_decision=audit_hook(db))


@router.post("/chat", response_model=ChatReply, response_model_exclude_none=True)
async def chat(
    turn: RawTurn,
    db: Session = Depends(get_db),
    store: SessionStore = Depends(get_session_store),
    narrative_model: NarrativeModel = Depends(get_narrative_model),
):
    reply = await handle_chat_turn(turn, store, narrative_model=narrative_model, on_decision=audit_hook(db))
    record_reply(db, reply)
    return reply


@router.get("/health")
def health():
    return {
        "status": "ok",
        "triage_rules": TRIAGE_RULES["version"],
        "drug_rules": DRUG_RULES["version"],
        "reference_catalog": get_catalog().version,
    }
