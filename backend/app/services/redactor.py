# app/services/redactor.py
import logging
import re
from typing import List, Pattern, Tuple

from app.models.triage_models import RedactionResult
from app.services.rules import TRIAGE_RULES

logger = logging.getLogger(__name__)

# Words from the symptom tables are never taken as a name ("I am Dizzy", "this is Fever again").
_SYMPTOM_TERMS = (*TRIAGE_RULES["symptom_vocabulary"], *TRIAGE_RULES["intent_keywords"]["triage"])
_SYMPTOM_WORDS = sorted(
    {word for term in _SYMPTOM_TERMS for word in term.lower().split()},
    key=len,
    reverse=True,
)
_NAME_WORD = r"(?!(?i:" + "|".join(map(re.escape, _SYMPTOM_WORDS)) + r")\b)[A-Z][a-z]+"

# ------------------------------- Identifier patterns -------------------------------
# Applied in order; earlier patterns win when spans overlap.
# Phone patterns need a full number (10+ digits or a leading "+") so lab ranges
# like "12-16" and durations like "3 days" are left alone.
IDENTIFIER_PATTERNS: List[Tuple[str, Pattern]] = [
    ("email", re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")),
    ("mrn", re.compile(r"\bMRN[:#\s]*[A-Z0-9-]{5,}\b", re.IGNORECASE)),
    ("ssn", re.compile(r"\b\d{3}-\d{2}-\d{4}\b")),
    ("cnic", re.compile(r"\b\d{5}-?\d{7}-?\d\b")),
    ("phone_pk", re.compile(r"(?:\+92[-.\s]?|\b0)3\d{2}[-.\s]?\d{7}\b")),
    ("phone_intl", re.compile(r"\+\d{1,3}[-.\s]?\(?\d{1,4}\)?(?:[-.\s]?\d{2,4}){2,4}\b")),
    ("phone", re.compile(r"(?<!\w)(?:1[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}\b")),
    (
        "address",
        re.compile(
            r"\b\d{1,5}\s+(?:[A-Z][A-Za-z0-9.]*\s+){1,3}"
            r"(?:Street|St|Avenue|Ave|Road|Rd|Boulevard|Blvd|Lane|Ln|Drive|Dr)\b\.?"
        ),
    ),
    (
        "address_pk",
        re.compile(
            r"\b(?:House|Plot|Flat|Apartment|Block|Sector)\s*(?:No\.?\s*)?#?\s*[\w-]+[,\s]+"
            r"(?:[A-Za-z]+\s*){1,4},?\s*(?:Town|Colony|Society|Phase|Scheme|Road|Street)\b",
            re.IGNORECASE,
        ),
    ),
    (
        "dob",
        re.compile(
            r"\b(?:DOB|date of birth|born on|birthday)[:\s]*"
            r"(?:\d{1,2}[-/.]\d{1,2}[-/.]\d{2,4}|[A-Za-z]+\s+\d{1,2},?\s+\d{4})\b",
            re.IGNORECASE,
        ),
    ),
    (
        "gov_id",
        re.compile(
            r"\b(?:passport|driver'?s licen[cs]e|licen[cs]e|national id|id card)\s*"
            r"(?:number|no\.?|#)?[:\s#]*(?=[A-Z-]*\d)[A-Z0-9-]{6,}\b",
            re.IGNORECASE,
        ),
    ),
    # Only the lead-in is case-insensitive; the name itself must be capitalised.
    (
        "name_intro",
        re.compile(r"\b(?i:my name is|call me|i am|i'm|this is|named)\s+" + _NAME_WORD + r"(?:\s+" + _NAME_WORD + r")?\b"),
    ),
]


def redaction_token(label: str) -> str:
    return f"[REDACTED:{label.upper()}]"


def redact(text: str) -> RedactionResult:
    """Replace direct identifiers with `[REDACTED:<LABEL>]` tokens.

    Runs before anything else looks at the text. Redacting already redacted
    text is a no-op and reports no labels.
    """
    sanitized = text
    labels_found: List[str] = []
    for label, pattern in IDENTIFIER_PATTERNS:
        sanitized, count = pattern.subn(redaction_token(label), sanitized)
        if count and label not in labels_found:
            labels_found.append(label)

    if labels_found:
        logger.info(f"🔒 Redacted identifiers: {', '.join(labels_found)}")
    return RedactionResult(sanitized_text=sanitized, identifier_labels_found=labels_found)
