# app/services/humanizer.py
import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel

from app.config import LLM_API_KEY, LLM_API_URL, LLM_MODEL, LLM_TIMEOUT_SECONDS, NARRATIVE_ENABLED
from app.models.report_models import ReportResult
from app.models.rx_models import RxResult
from app.models.triage_models import NarrativeSource, StructuredFeatures, TriageOutput, UrgencyLevel

logger = logging.getLogger(__name__)

MAX_POSSIBLE_CAUSES = 3

# Map urgency level to plain-language messages
LEVEL_MESSAGES = {
    UrgencyLevel.EMERGENCY: "⚠️ High risk: Immediate attention required!",
    UrgencyLevel.URGENT_CARE: "🚨 Moderate risk: Get seen by a healthcare provider today.",
    UrgencyLevel.PRIMARY_CARE: "🏥 Mild risk: Book an appointment with your doctor.",
    UrgencyLevel.SELF_CARE: "✅ Low risk: Monitor symptoms and rest at home.",
}

SYSTEM_PROMPT = (
    "You rewrite triage explanations for patients in plain, calm language. "
    "You never change the urgency level, never diagnose, and never add new advice. "
    "Reply with JSON only: {\"risk_rationale\": string, \"possible_causes\": [string, ...]}. "
    "possible_causes has at most 3 items and must be empty for emergency."
)


# ------------------------------- Plain-language replies -------------------------------
def humanize_triage(output: TriageOutput) -> str:
    """Convert a triage decision into a short human-friendly message."""
    lines = [LEVEL_MESSAGES[output.urgency_level], output.risk_rationale, output.recommended_action.primary]
    if output.recommended_action.secondary:
        lines.append(output.recommended_action.secondary)
    if output.possible_causes:
        lines.append(f"Possible causes to discuss with a clinician: {', '.join(output.possible_causes)}.")
    return "\n".join(lines)


def humanize_rx(result: RxResult) -> str:
    if not result.issues:
        return "✅ No interactions or safety issues were found for these medications."
    lines = [f"💊 Found {len(result.issues)} medication safety issue(s):"]
    for issue in result.issues:
        names = ", ".join(d.canonical_name for d in issue.drugs_involved)
        prefix = f"[{issue.severity.value}] {issue.kind.value}"
        lines.append(f"- {prefix}{f' ({names})' if names else ''}: {issue.management}")
    return "\n".join(lines)


def humanize_report(result: ReportResult) -> str:
    lines = [f"🧪 {result.summary}"]
    for finding in result.abnormal_values:
        unit = f" {finding.unit}" if finding.unit else ""
        lines.append(f"- {finding.name}: {finding.value:g}{unit} ({finding.interpretation})")
    lines.extend(f"- {note}" for note in result.uncertainty)
    return "\n".join(lines)


# ------------------------------- Narrative model -------------------------------
class NarrativeModel(ABC):
    """Anything that can turn a de-identified context into narrative JSON."""

    @abstractmethod
    async def generate(self, context: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError


class HttpNarrativeModel(NarrativeModel):
    """OpenAI-compatible chat-completions client."""

    def __init__(
        self,
        api_url: str = LLM_API_URL,
        api_key: str = LLM_API_KEY,
        model: str = LLM_MODEL,
        timeout: float = LLM_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.transport = transport

    async def generate(self, context: Dict[str, Any]) -> Dict[str, Any]:
        body = {
            "model": self.model,
            "temperature": 0.2,
            "response_format": {"type": "json_object"},
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": json.dumps(context)},
            ],
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            resp = await client.post(f"{self.api_url}/chat/completions", json=body, headers=headers)
            resp.raise_for_status()
            content = resp.json()["choices"][0]["message"]["content"]
        return json.loads(content)


def get_narrative_model() -> Optional[NarrativeModel]:
    if not NARRATIVE_ENABLED or not LLM_API_KEY:
        return None
    return HttpNarrativeModel()


# ------------------------------- Enhancement -------------------------------
class NarrativeResult(BaseModel):
    ok: bool
    risk_rationale: Optional[str] = None
    possible_causes: Optional[List[str]] = None
    error: Optional[str] = None


def build_context(output: TriageOutput, features: StructuredFeatures) -> Dict[str, Any]:
    """Only de-identified fields go to the model; never the patient's text."""
    return {
        "urgency_level": output.urgency_level.value,
        "red_flags": output.red_flags_detected,
        "symptom_keywords": features.symptom_keywords,
        "age_band": features.age_band.value if features.age_band else None,
        "risk_rationale": output.risk_rationale,
        "possible_causes": output.possible_causes or [],
    }


def validate_narrative(payload: Any, output: TriageOutput) -> NarrativeResult:
    if not isinstance(payload, dict):
        return NarrativeResult(ok=False, error="response is not a JSON object")

    rationale = payload.get("risk_rationale")
    if not isinstance(rationale, str) or not rationale.strip():
        return NarrativeResult(ok=False, error="missing risk_rationale")

    echoed = payload.get("urgency_level")
    if echoed is not None and echoed != output.urgency_level.value:
        return NarrativeResult(ok=False, error=f"urgency changed to {echoed}")
    other_levels = [level.value for level in UrgencyLevel if level != output.urgency_level]
    if any(level in rationale.lower() for level in other_levels):
        return NarrativeResult(ok=False, error="rationale names a different urgency level")

    causes = payload.get("possible_causes") or []
    if not isinstance(causes, list) or not all(isinstance(c, str) and c.strip() for c in causes):
        return NarrativeResult(ok=False, error="possible_causes must be a list of strings")
    if len(causes) > MAX_POSSIBLE_CAUSES:
        return NarrativeResult(ok=False, error="too many possible_causes")
    if causes and output.urgency_level == UrgencyLevel.EMERGENCY:
        return NarrativeResult(ok=False, error="possible_causes not allowed for emergency")

    return NarrativeResult(ok=True, risk_rationale=rationale.strip(), possible_causes=[c.strip() for c in causes] or None)


async def enhance_narrative(
    output: TriageOutput,
    features: StructuredFeatures,
    model: NarrativeModel,
    timeout: float = LLM_TIMEOUT_SECONDS,
) -> TriageOutput:
    """Try to rewrite the rationale. Any failure returns `output` unchanged.

    Cancellation is propagated so a disconnected client stops the call.
    """
    try:
        payload = await asyncio.wait_for(model.generate(build_context(output, features)), timeout)
    except asyncio.CancelledError:
        raise
    except asyncio.TimeoutError:
        logger.warning(f"⚠️ Narrative model timed out after {timeout}s, using deterministic text")
        return output
    except Exception as e:
        logger.warning(f"⚠️ Narrative model failed ({type(e).__name__}), using deterministic text")
        return output

    result = validate_narrative(payload, output)
    if not result.ok:
        logger.warning(f"⚠️ Narrative rejected: {result.error}")
        return output

    update = {"risk_rationale": result.risk_rationale, "narrative_source": NarrativeSource.ENHANCED}
    if output.urgency_level != UrgencyLevel.EMERGENCY:
        update["possible_causes"] = result.possible_causes
    return output.model_copy(update=update)
