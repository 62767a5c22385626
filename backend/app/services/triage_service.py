# app/services/triage_service.py
import logging
from typing import Callable, List, Optional, Tuple

from pydantic import BaseModel

from app.models.report_models import ReportResult, ReportValue
from app.models.rx_models import RxResult
from app.models.triage_models import (
    AwaitingField,
    Intent,
    RawTurn,
    RedactionResult,
    StructuredFeatures,
    TriageDecision,
    TriageIntakeState,
    TriageOutput,
    TurnResult,
)
from app.services.citations import (
    FALLBACK_TEXT,
    REPORT_TOPIC_TAGS,
    RX_TOPIC_TAGS,
    ReferenceCatalog,
    triage_topic_tags,
    verify,
)
from app.services.features import extract_features
from app.services.humanizer import NarrativeModel, enhance_narrative, humanize_report, humanize_rx, humanize_triage
from app.services.intake import advance_intake, answers_pending_field
from app.services.intent import classify_intent
from app.services.red_flags import detect_red_flags
from app.services.redactor import redact
from app.services.report_engine import interpret_report
from app.services.rx_engine import check_medications, find_medication_names
from app.services.session_store import SessionStore, StaleSessionError
from app.services.triage_logic import triage_logic

# ------------------------------- Logging -------------------------------
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Called with the gated decision before any narrative call is made.
DecisionHook = Callable[[TriageOutput, StructuredFeatures, List[str]], None]

ASK_MEDICATIONS = "Which medications are you taking? List each one, for example 'warfarin 5 mg od, aspirin 75 mg'."
HELP_MESSAGE = (
    "I can help with three things: describe your symptoms for a triage recommendation, "
    "list your medications for a safety check, or paste lab results with their reference ranges."
)


class ChatReply(BaseModel):
    session_id: str
    intent: Intent
    message: str
    question: Optional[str] = None
    awaiting: Optional[AwaitingField] = None
    triage: Optional[TriageOutput] = None
    rx: Optional[RxResult] = None
    report: Optional[ReportResult] = None


# ------------------------------- Triage -------------------------------
def gate_triage_decision(decision: TriageDecision, catalog: Optional[ReferenceCatalog] = None) -> TriageOutput:
    """Attach citations; without them the rationale and causes are withheld."""
    citations, verified = verify(
        triage_topic_tags(decision.urgency_level.value, decision.red_flags_detected), catalog
    )
    output = TriageOutput(**decision.model_dump(), clinical_citations=citations, verified=verified)
    if not verified:
        output = output.model_copy(update={"risk_rationale": FALLBACK_TEXT, "possible_causes": None})
    return output


def decide_from_state(state: TriageIntakeState) -> Tuple[StructuredFeatures, TriageDecision]:
    features = extract_features(
        state.text or "",
        age_years=state.age_years,
        severity=state.severity,
        duration_hours=state.duration_hours,
    )
    red_flags = detect_red_flags(features.symptom_keywords, state.pregnant)
    return features, triage_logic(features, red_flags)


def _advance_once(
    turn: RawTurn,
    store: SessionStore,
    redaction: RedactionResult,
    catalog: Optional[ReferenceCatalog],
):
    """One read-modify-write of the session. Raises StaleSessionError on a lost race."""
    state = store.get(turn.session_id)
    step = advance_intake(state, turn, redaction.sanitized_text, identifiers_found=redaction.blocked_external)
    saved = store.put(step.state)
    if not step.ready:
        return step, saved, None, None

    features, decision = decide_from_state(saved)
    output = gate_triage_decision(decision, catalog)
    store.clear(turn.session_id)
    return step, saved, features, output


async def run_triage_turn(
    turn: RawTurn,
    store: SessionStore,
    narrative_model: Optional[NarrativeModel] = None,
    on_decision: Optional[DecisionHook] = None,
    catalog: Optional[ReferenceCatalog] = None,
    redaction: Optional[RedactionResult] = None,
) -> TurnResult:
    """Advance the intake for one turn; returns a question or a final decision."""
    redaction = redaction or redact(turn.text)

    try:
        step, state, features, output = _advance_once(turn, store, redaction, catalog)
    except StaleSessionError as e:
        logger.warning(f"⚠️ {e}; retrying on fresh session state")
        step, state, features, output = _advance_once(turn, store, redaction, catalog)

    if output is None:
        logger.info(f"❓ Intake awaiting {step.awaiting.value if step.awaiting else 'nothing'}")
        return TurnResult(session_id=turn.session_id, question=step.question, awaiting=step.awaiting)

    if on_decision is not None:
        on_decision(output, features, redaction.identifier_labels_found)

    if narrative_model is not None and output.verified and not state.identifiers_detected:
        output = await enhance_narrative(output, features, narrative_model)
    elif narrative_model is not None:
        logger.info("🔒 Narrative model skipped (identifiers detected or guidance unverified)")

    return TurnResult(session_id=turn.session_id, decision=output)


# ------------------------------- Medications -------------------------------
def run_medication_check(
    medications: List[str],
    new_prescription: Optional[str] = None,
    pregnant: Optional[bool] = None,
    age_years: Optional[int] = None,
    catalog: Optional[ReferenceCatalog] = None,
) -> RxResult:
    meds = list(medications) + ([new_prescription] if new_prescription else [])
    issues, normalized, unknown = check_medications(meds, pregnant=pregnant, age_years=age_years)

    citations, verified = verify(RX_TOPIC_TAGS, catalog)
    if not verified:
        issues = [issue.model_copy(update={"management": FALLBACK_TEXT}) for issue in issues]

    return RxResult(
        issues=issues,
        normalized=normalized,
        unknown_meds=unknown,
        clinical_citations=citations,
        verified=verified,
    )


# ------------------------------- Lab reports -------------------------------
def run_report_analysis(
    values: Optional[List[ReportValue]] = None,
    raw_text: Optional[str] = None,
    catalog: Optional[ReferenceCatalog] = None,
) -> ReportResult:
    summary, findings, uncertainty, questions = interpret_report(values, raw_text)

    citations, verified = verify(REPORT_TOPIC_TAGS, catalog)
    if not verified:
        summary = FALLBACK_TEXT

    return ReportResult(
        summary=summary,
        abnormal_values=findings,
        uncertainty=uncertainty,
        recommended_questions=questions,
        clinical_citations=citations,
        verified=verified,
    )


# ------------------------------- Chat dispatcher -------------------------------
async def handle_chat_turn(
    turn: RawTurn,
    store: SessionStore,
    narrative_model: Optional[NarrativeModel] = None,
    on_decision: Optional[DecisionHook] = None,
    catalog: Optional[ReferenceCatalog] = None,
) -> ChatReply:
    """Route one free-text turn to triage, medication check or report analysis."""
    redaction = redact(turn.text)
    sanitized = redaction.sanitized_text
    features = extract_features(sanitized)
    intent = classify_intent(sanitized, features)

    state = store.get(turn.session_id)
    in_intake = state is not None and (intent == Intent.TRIAGE or answers_pending_field(state, sanitized))
    if in_intake or intent == Intent.TRIAGE:
        result = await run_triage_turn(
            turn, store, narrative_model=narrative_model, on_decision=on_decision, catalog=catalog, redaction=redaction
        )
        message = result.question if result.decision is None else humanize_triage(result.decision)
        return ChatReply(
            session_id=turn.session_id,
            intent=Intent.TRIAGE,
            message=message,
            question=result.question,
            awaiting=result.awaiting,
            triage=result.decision,
        )

    if state is not None:
        logger.info("↩️ Leaving unfinished intake for a different request")
        store.clear(turn.session_id)

    mentioned = find_medication_names(sanitized)
    if intent == Intent.UNKNOWN and (turn.medications or mentioned):
        intent = Intent.RX

    if intent == Intent.RX:
        meds = turn.medications or mentioned
        if not meds:
            return ChatReply(session_id=turn.session_id, intent=intent, message=ASK_MEDICATIONS)
        rx = run_medication_check(meds, pregnant=turn.pregnant, age_years=turn.age_years, catalog=catalog)
        return ChatReply(session_id=turn.session_id, intent=intent, message=humanize_rx(rx), rx=rx)

    if intent == Intent.REPORT:
        report = run_report_analysis(raw_text=sanitized, catalog=catalog)
        return ChatReply(session_id=turn.session_id, intent=intent, message=humanize_report(report), report=report)

    return ChatReply(session_id=turn.session_id, intent=intent, message=HELP_MESSAGE)
