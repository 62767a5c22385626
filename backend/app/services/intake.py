# app/services/intake.py
import logging
import re
from typing import Optional

from pydantic import BaseModel

from app.models.triage_models import AwaitingField, RawTurn, SexAtBirth, TriageIntakeState
from app.services.features import extract_symptom_keywords
from app.services.red_flags import detect_red_flags

logger = logging.getLogger(__name__)

# ------------------------------- Questions -------------------------------
QUESTIONS = {
    AwaitingField.SYMPTOMS: "What symptoms are you experiencing?",
    AwaitingField.SEVERITY: (
        "On a scale of 1 to 10, how severe are your symptoms? "
        "You can also answer mild, moderate or severe, or say 'skip'."
    ),
    AwaitingField.DURATION: "How long have you had these symptoms (for example '6 hours' or '3 days')? You can say 'skip'.",
    AwaitingField.AGE: "How old are you? You can say 'skip'.",
}

# ------------------------------- Parsing -------------------------------
SKIP_PHRASES = ("skip", "not sure", "unsure", "unknown", "don't know", "dont know", "no idea", "prefer not to say", "n/a", "pass")
SEVERITY_WORDS = {"severe": 8, "intense": 8, "moderate": 5, "mild": 3}
NUMBER_WORDS = {
    "a": 1, "an": 1, "one": 1, "two": 2, "three": 3, "four": 4, "five": 5,
    "six": 6, "seven": 7, "eight": 8, "nine": 9, "ten": 10,
}
DURATION_UNIT_HOURS = {"h": 1, "hr": 1, "hour": 1, "d": 24, "day": 24, "w": 168, "wk": 168, "week": 168, "month": 720}

_SEVERITY_SCALE = re.compile(r"\b(10|[1-9])\s*(?:/|out of)\s*10\b", re.IGNORECASE)
_DURATION = re.compile(
    r"\b(?:(\d+(?:\.\d+)?)\s*(hours?|hrs?|h|days?|d|weeks?|wks?|w|months?)"
    r"|(a|an|one|two|three|four|five|six|seven|eight|nine|ten)\s+(hours?|hrs?|days?|weeks?|wks?|months?))\b",
    re.IGNORECASE,
)
_AGE = re.compile(
    r"\b(\d{1,3})\s*-?\s*(?:years?|yrs?)\s*-?\s*old\b|\b(\d{1,3})\s*y/?o\b|\bage[d:]?\s*(\d{1,3})\b",
    re.IGNORECASE,
)
_FEMALE = re.compile(r"\b(female|woman|girl)\b", re.IGNORECASE)
_MALE = re.compile(r"\b(male|man|boy)\b", re.IGNORECASE)
_NOT_PREGNANT = re.compile(r"\b(not|never)\s+pregnant\b", re.IGNORECASE)
_PREGNANT = re.compile(r"\bpregnan(t|cy)\b", re.IGNORECASE)
_BARE_NUMBER = re.compile(r"\s*(\d{1,3})\s*(?:years?|yrs?)?\s*[.!]?\s*", re.IGNORECASE)
_REDACTION_TOKEN = re.compile(r"\[REDACTED:[A-Z_]+\]")
_SKIP_ONLY = re.compile(
    r"\s*(?:i(?:'d|'m)?\s+)?(?:" + "|".join(re.escape(phrase) for phrase in SKIP_PHRASES) + r")\s*[.!]?\s*"
)


class IntakeSignals(BaseModel):
    severity: Optional[float] = None
    duration_hours: Optional[float] = None
    age_years: Optional[int] = None
    sex_at_birth: Optional[SexAtBirth] = None
    pregnant: Optional[bool] = None


class IntakeStep(BaseModel):
    """Result of one intake turn: the updated state and either a question or readiness."""
    state: TriageIntakeState
    question: Optional[str] = None
    awaiting: Optional[AwaitingField] = None
    ready: bool = False


def _normalize(text: str) -> str:
    return text.lower().replace("’", "'").strip()


def is_skip_phrase(text: str) -> bool:
    normalized = _normalize(text)
    return any(re.search(rf"(?<!\w){re.escape(phrase)}(?!\w)", normalized) for phrase in SKIP_PHRASES)


def _duration_hours(match) -> float:
    amount = (match.group(1) or match.group(3)).lower()
    unit = (match.group(2) or match.group(4)).lower().rstrip("s")
    number = NUMBER_WORDS[amount] if amount in NUMBER_WORDS else float(amount)
    return min(float(number) * DURATION_UNIT_HOURS[unit], 8760.0)


def parse_signals(text: str) -> IntakeSignals:
    """Signals that count on any turn, whatever the current question is."""
    signals = IntakeSignals()

    severity = _SEVERITY_SCALE.search(text)
    if severity:
        signals.severity = float(severity.group(1))

    duration = _DURATION.search(text)
    if duration:
        signals.duration_hours = _duration_hours(duration)

    age = _AGE.search(text)
    if age:
        years = int(age.group(1) or age.group(2) or age.group(3))
        if 0 <= years <= 120:
            signals.age_years = years

    if _FEMALE.search(text):
        signals.sex_at_birth = SexAtBirth.FEMALE
    elif _MALE.search(text):
        signals.sex_at_birth = SexAtBirth.MALE

    if _NOT_PREGNANT.search(text):
        signals.pregnant = False
    elif _PREGNANT.search(text):
        signals.pregnant = True
    return signals


def parse_field_answer(text: str, awaiting: Optional[AwaitingField]) -> Optional[float]:
    """Bare answers that only make sense as a reply to the pending question."""
    normalized = _normalize(text)
    if awaiting == AwaitingField.SEVERITY:
        for word, value in SEVERITY_WORDS.items():
            if re.search(rf"\b{word}\b", normalized):
                return float(value)
        bare = re.fullmatch(r"\s*(\d{1,2})\s*[.!]?\s*", normalized)
        if bare and 1 <= int(bare.group(1)) <= 10:
            return float(bare.group(1))
    elif awaiting == AwaitingField.AGE:
        bare = _BARE_NUMBER.fullmatch(normalized)
        if bare and 0 <= int(bare.group(1)) <= 120:
            return float(bare.group(1))
    return None


def answers_pending_field(state: TriageIntakeState, sanitized_text: str) -> bool:
    """True when the text looks like a reply to the question the session is waiting on."""
    if state.awaiting is None:
        return False
    if state.awaiting == AwaitingField.SYMPTOMS:
        return bool(extract_symptom_keywords(sanitized_text))
    if parse_field_answer(sanitized_text, state.awaiting) is not None or is_skip_phrase(sanitized_text):
        return True
    signals = parse_signals(sanitized_text)
    return {
        AwaitingField.SEVERITY: signals.severity,
        AwaitingField.DURATION: signals.duration_hours,
        AwaitingField.AGE: signals.age_years,
    }[state.awaiting] is not None


def _has_symptom_text(text: str) -> bool:
    """Any symptom keyword counts; a message that is only a skip phrase does not."""
    if extract_symptom_keywords(text):
        return True
    if _SKIP_ONLY.fullmatch(_normalize(text)):
        return False
    stripped = _REDACTION_TOKEN.sub(" ", text)
    return bool(re.search(r"[A-Za-z]", stripped))


def _merge(state: TriageIntakeState, turn: RawTurn, signals: IntakeSignals) -> None:
    for field in ("severity", "duration_hours", "age_years", "sex_at_birth", "pregnant"):
        hinted = getattr(turn, field)
        if hinted is not None:
            setattr(state, field, hinted)
            continue
        parsed = getattr(signals, field)
        if parsed is not None:
            setattr(state, field, parsed)


def _apply_answer(state: TriageIntakeState, sanitized_text: str) -> None:
    awaiting = state.awaiting
    if awaiting in (None, AwaitingField.SYMPTOMS):
        return

    current = {
        AwaitingField.SEVERITY: state.severity,
        AwaitingField.DURATION: state.duration_hours,
        AwaitingField.AGE: state.age_years,
    }[awaiting]
    if current is not None:
        return

    answer = parse_field_answer(sanitized_text, awaiting)
    if answer is not None:
        if awaiting == AwaitingField.SEVERITY:
            state.severity = answer
        elif awaiting == AwaitingField.AGE:
            state.age_years = int(answer)
        return

    if is_skip_phrase(sanitized_text):
        if awaiting == AwaitingField.SEVERITY:
            state.skip_severity = True
        elif awaiting == AwaitingField.DURATION:
            state.skip_duration = True
        elif awaiting == AwaitingField.AGE:
            state.skip_age = True


def _next_missing_field(state: TriageIntakeState) -> Optional[AwaitingField]:
    if state.severity is None and not state.skip_severity:
        return AwaitingField.SEVERITY
    if state.duration_hours is None and not state.skip_duration:
        return AwaitingField.DURATION
    if state.age_years is None and not state.skip_age:
        return AwaitingField.AGE
    return None


def advance_intake(
    state: Optional[TriageIntakeState],
    turn: RawTurn,
    sanitized_text: str,
    identifiers_found: bool = False,
) -> IntakeStep:
    """Fold one sanitized turn into the intake state and decide what happens next.

    Asks at most one question. Red flags in the collected symptom text end
    the intake at once, whatever optional fields are still missing.
    """
    state = state.model_copy(deep=True) if state else TriageIntakeState(session_id=turn.session_id)
    state.identifiers_detected = state.identifiers_detected or identifiers_found

    _merge(state, turn, parse_signals(sanitized_text))
    _apply_answer(state, sanitized_text)

    if state.text is None:
        if _has_symptom_text(sanitized_text):
            state.text = sanitized_text
    else:
        known = set(extract_symptom_keywords(state.text))
        if set(extract_symptom_keywords(sanitized_text)) - known:
            state.text = f"{state.text}\n{sanitized_text}"

    if state.text is None:
        state.awaiting = AwaitingField.SYMPTOMS
        return IntakeStep(state=state, question=QUESTIONS[AwaitingField.SYMPTOMS], awaiting=AwaitingField.SYMPTOMS)

    red_flags = detect_red_flags(extract_symptom_keywords(state.text), state.pregnant)
    if red_flags.emergency:
        logger.info(f"🚨 Red flags during intake, skipping remaining questions: {red_flags.red_flags}")
        state.awaiting = None
        return IntakeStep(state=state, ready=True)

    missing = _next_missing_field(state)
    state.awaiting = missing
    if missing is None:
        return IntakeStep(state=state, ready=True)
    return IntakeStep(state=state, question=QUESTIONS[missing], awaiting=missing)
