# app/services/report_engine.py
import logging
import re
from typing import List, Optional, Tuple

from app.models.report_models import ReferenceRange, ReportFinding, ReportValue

logger = logging.getLogger(__name__)

BELOW_RANGE = "below range"
ABOVE_RANGE = "above range"
GENERIC_QUESTION = "Are there any follow-up tests or monitoring you recommend?"

# "<name> : <number> [<unit>] [(<low>-<high>)]", e.g. "Hemoglobin: 9 g/dL (12-16)"
LINE_REGEX = re.compile(
    r"^(?P<name>[A-Za-z][A-Za-z0-9\s\-/]*?)\s*[:\s]\s*(?P<value>-?\d+(?:\.\d+)?)\s*"
    r"(?P<unit>[A-Za-z%/^0-9µ]*[A-Za-z%µ][A-Za-z%/^0-9µ]*)?\s*"
    r"(?:\(\s*(?P<low>-?\d+(?:\.\d+)?)\s*-\s*(?P<high>-?\d+(?:\.\d+)?)\s*\))?\s*$"
)


def parse_raw_text(raw_text: str) -> List[ReportValue]:
    """Parse one value per line; lines that don't fit the grammar are skipped."""
    values = []
    for line in raw_text.splitlines():
        line = line.strip()
        if not line:
            continue
        match = LINE_REGEX.match(line)
        if not match:
            continue
        reference_range = None
        if match.group("low") is not None:
            reference_range = ReferenceRange(low=float(match.group("low")), high=float(match.group("high")))
        values.append(ReportValue(
            name=match.group("name").strip(),
            value=float(match.group("value")),
            unit=match.group("unit") or None,
            reference_range=reference_range,
        ))
    return values


def parse_report_values(values: Optional[List[ReportValue]] = None, raw_text: Optional[str] = None) -> List[ReportValue]:
    if values:
        return list(values)
    if raw_text:
        return parse_raw_text(raw_text)
    return []


def analyze_report_values(values: List[ReportValue]) -> Tuple[List[ReportFinding], List[str]]:
    findings: List[ReportFinding] = []
    uncertainty: List[str] = []
    for item in values:
        ref = item.reference_range
        if ref is None or (ref.low is None and ref.high is None):
            uncertainty.append(f"{item.name}: reference range missing; interpretation may be limited.")
            continue

        interpretation = None
        if ref.low is not None and item.value < ref.low:
            interpretation = BELOW_RANGE
        elif ref.high is not None and item.value > ref.high:
            interpretation = ABOVE_RANGE
        if interpretation:
            findings.append(ReportFinding(name=item.name, value=item.value, unit=item.unit, interpretation=interpretation))
    return findings, uncertainty


def summarize(findings: List[ReportFinding]) -> str:
    if findings:
        return f"Found {len(findings)} value(s) outside the reference range."
    return "No values clearly outside the provided reference ranges."


def recommended_questions(findings: List[ReportFinding]) -> List[str]:
    questions = [f"What could explain {f.name} being {f.interpretation}?" for f in findings]
    return questions or [GENERIC_QUESTION]


def interpret_report(values: Optional[List[ReportValue]] = None, raw_text: Optional[str] = None):
    """Returns (summary, findings, uncertainty, questions) before citation checks."""
    parsed = parse_report_values(values, raw_text)
    findings, uncertainty = analyze_report_values(parsed)
    if not parsed:
        uncertainty.append("No lab values could be read from the report.")
    logger.info(f"🧪 Report analysis: {len(parsed)} value(s), {len(findings)} outside range")
    return summarize(findings), findings, uncertainty, recommended_questions(findings)
