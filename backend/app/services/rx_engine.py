# app/services/rx_engine.py
import logging
import re
from collections import Counter
from itertools import combinations
from typing import Dict, List, Optional, Tuple

from app.models.rx_models import IssueKind, IssueSeverity, MedLine, NormalizedDrug, RxIssue
from app.services.rules import DRUG_RULES

logger = logging.getLogger(__name__)

# ------------------------------- Rule tables -------------------------------
DRUGS = DRUG_RULES["drugs"]
INTERACTIONS = {frozenset(rule["codes"]): rule for rule in DRUG_RULES["interactions"]}
CLASS_INTERACTIONS = DRUG_RULES["class_interactions"]
PREGNANCY = DRUG_RULES["pregnancy"]
DOSE_LIMITS = DRUG_RULES["dose_limits"]
EVIDENCE_SOURCE = f"DrugEngine:{DRUG_RULES['version']}"
ELDERLY_AGE = 65

# Common prescription abbreviations for dosing frequency
FREQ_ABBREV_MAP = {
    "od": 1,
    "daily": 1,
    "once daily": 1,
    "hs": 1,
    "bd": 2,
    "bid": 2,
    "twice daily": 2,
    "tds": 3,
    "tid": 3,
    "three times daily": 3,
    "qid": 4,
    "four times daily": 4,
    "prn": None,  # as needed
}
UNIT_TO_MG = {"mg": 1.0, "g": 1000.0, "mcg": 0.001}

_MED_LINE = re.compile(
    r"^\s*(?P<name>[A-Za-z][A-Za-z\s\-]*?)\s*"
    r"(?:(?P<strength>\d+(?:\.\d+)?)\s*(?P<unit>mg|mcg|g)\b)?\s*"
    r"(?P<freq>once daily|twice daily|three times daily|four times daily|daily|od|bd|bid|tds|tid|qid|hs|prn|\d+\s*x)?"
    r"\s*\.?\s*$",
    re.IGNORECASE,
)


def _mechanism(name: str) -> str:
    return f"DeterministicEngine:{name}"


# ------------------------------- Parsing & normalization -------------------------------
def parse_med_line(raw: str) -> MedLine:
    """Split `warfarin 5 mg bd` into name, strength in mg and doses per day."""
    match = _MED_LINE.match(raw)
    if not match:
        return MedLine(raw=raw, name=" ".join(raw.split()))

    strength_mg = None
    if match.group("strength"):
        strength_mg = float(match.group("strength")) * UNIT_TO_MG[match.group("unit").lower()]

    frequency = None
    freq_str = " ".join((match.group("freq") or "").lower().split())
    if freq_str in FREQ_ABBREV_MAP:
        frequency = FREQ_ABBREV_MAP[freq_str]
    elif freq_str.endswith("x"):  # e.g. "3x"
        frequency = int(freq_str[:-1].strip())

    return MedLine(
        raw=raw,
        name=" ".join(match.group("name").split()),
        strength_mg=strength_mg,
        frequency_per_day=frequency,
    )


def lookup_drug(name: str) -> Optional[Dict]:
    """Exact, case-insensitive lookup in the name table."""
    return DRUGS.get(" ".join(name.lower().split()))


def normalize_medications(lines: List[MedLine]) -> Tuple[List[Tuple[MedLine, NormalizedDrug]], List[str]]:
    known: List[Tuple[MedLine, NormalizedDrug]] = []
    unknown: List[str] = []
    for line in lines:
        entry = lookup_drug(line.name)
        if entry is None:
            if line.name not in unknown:
                unknown.append(line.name)
            continue
        known.append((line, NormalizedDrug(canonical_name=entry["canonical_name"], code=entry["code"])))
    return known, unknown


# ------------------------------- Checks -------------------------------
def _unique_drugs(drugs: List[NormalizedDrug]) -> List[NormalizedDrug]:
    seen = set()
    unique = []
    for drug in drugs:
        if drug.code not in seen:
            seen.add(drug.code)
            unique.append(drug)
    return unique


def _drug_entry(code: str) -> Dict:
    return next(entry for entry in DRUGS.values() if entry["code"] == code)


def check_pair_interactions(drugs: List[NormalizedDrug]) -> List[RxIssue]:
    issues = []
    for first, second in combinations(_unique_drugs(drugs), 2):
        rule = INTERACTIONS.get(frozenset((first.code, second.code)))
        if rule is None:
            continue
        issues.append(RxIssue(
            kind=IssueKind.INTERACTION,
            severity=IssueSeverity(rule["severity"]),
            drugs_involved=[first, second],
            mechanism=_mechanism(rule["mechanism"]),
            management=rule["management"],
            evidence_source=EVIDENCE_SOURCE,
        ))
    return issues


def check_class_interactions(drugs: List[NormalizedDrug]) -> List[RxIssue]:
    """Two or more distinct drugs sharing a risk class.

    A class hit made of exactly one pair already in the pair table is not
    reported twice.
    """
    unique = _unique_drugs(drugs)
    issues = []
    for rule in CLASS_INTERACTIONS:
        members = [d for d in unique if rule["drug_class"] in _drug_entry(d.code)["classes"]]
        if len(members) < 2:
            continue
        if len(members) == 2 and frozenset(d.code for d in members) in INTERACTIONS:
            continue
        issues.append(RxIssue(
            kind=IssueKind.INTERACTION,
            severity=IssueSeverity(rule["severity"]),
            drugs_involved=members,
            mechanism=_mechanism(rule["mechanism"]),
            management=rule["management"],
            evidence_source=EVIDENCE_SOURCE,
        ))
    return issues


def check_duplications(drugs: List[NormalizedDrug]) -> List[RxIssue]:
    counts = Counter(d.code for d in drugs)
    issues = []
    for drug in _unique_drugs(drugs):
        if counts[drug.code] < 2:
            continue
        issues.append(RxIssue(
            kind=IssueKind.DUPLICATION,
            severity=IssueSeverity.CAUTION,
            drugs_involved=[drug],
            mechanism=_mechanism("duplicate_therapy"),
            management=(
                f"{drug.canonical_name} appears {counts[drug.code]} times in the medication list. "
                "Confirm the intended dose and remove duplicate entries."
            ),
            evidence_source=EVIDENCE_SOURCE,
        ))
    return issues


def check_pregnancy(drugs: List[NormalizedDrug]) -> List[RxIssue]:
    issues = []
    for drug in _unique_drugs(drugs):
        entry = _drug_entry(drug.code)
        category = entry.get("pregnancy_category")
        classes = set(entry["classes"])

        if category in PREGNANCY["contraindicated_categories"] or classes.intersection(PREGNANCY["contraindicated_classes"]):
            severity = IssueSeverity.CRITICAL
            management = (
                f"{drug.canonical_name} is contraindicated in pregnancy and is known to cause fetal harm. "
                "Seek urgent clinician guidance before the next dose."
            )
        elif category in PREGNANCY["risk_categories"] or classes.intersection(PREGNANCY["risk_classes"]):
            severity = IssueSeverity.SERIOUS
            management = (
                f"{drug.canonical_name} has evidence of fetal risk. "
                "Discuss safer alternatives with your doctor urgently."
            )
        else:
            continue

        issues.append(RxIssue(
            kind=IssueKind.CONTRAINDICATION,
            severity=severity,
            drugs_involved=[drug],
            mechanism=_mechanism(f"pregnancy_category_{(category or 'unrated').lower()}"),
            management=management,
            evidence_source=EVIDENCE_SOURCE,
        ))
    return issues


def check_doses(known: List[Tuple[MedLine, NormalizedDrug]], age_years: Optional[int] = None) -> List[RxIssue]:
    issues = []
    elderly = age_years is not None and age_years >= ELDERLY_AGE
    for line, drug in known:
        limits = DOSE_LIMITS.get(drug.code)
        if limits is None or line.strength_mg is None or not line.frequency_per_day:
            continue
        limit = limits["standard_max_mg_per_day"]
        if elderly and "elderly_max_mg_per_day" in limits:
            limit = limits["elderly_max_mg_per_day"]

        daily = line.strength_mg * line.frequency_per_day
        if daily <= limit:
            continue
        limit_label = "elderly maximum" if limit != limits["standard_max_mg_per_day"] else "maximum"
        notes = f" {limits['notes']}" if limits.get("notes") else ""
        issues.append(RxIssue(
            kind=IssueKind.DOSE_ERROR,
            severity=IssueSeverity.SERIOUS,
            drugs_involved=[drug],
            mechanism=_mechanism("max_daily_dose_exceeded"),
            management=(
                f"Estimated daily dose of {drug.canonical_name} is {daily:g} mg, above the "
                f"{limit_label} of {limit:g} mg/day.{notes} Confirm the dose with the prescriber."
            ),
            evidence_source=EVIDENCE_SOURCE,
        ))
    return issues


def missing_info_issue(unknown: List[str]) -> RxIssue:
    return RxIssue(
        kind=IssueKind.MISSING_INFO,
        severity=IssueSeverity.INFO,
        drugs_involved=[],
        mechanism=_mechanism("unrecognized_medication"),
        management=(
            f"Could not identify: {', '.join(unknown)}. Check the spelling or confirm with a pharmacist; "
            "interactions for these medicines were not checked."
        ),
        evidence_source=EVIDENCE_SOURCE,
    )


# ------------------------------- Main Check -------------------------------
def check_medications(
    medications: List[str],
    pregnant: Optional[bool] = None,
    age_years: Optional[int] = None,
) -> Tuple[List[RxIssue], List[NormalizedDrug], List[str]]:
    """Run every medication check. Returns (issues, normalized, unknown_meds)."""
    lines = [parse_med_line(raw) for raw in medications if raw and raw.strip()]
    known, unknown = normalize_medications(lines)
    drugs = [drug for _, drug in known]

    issues: List[RxIssue] = []
    issues.extend(check_pair_interactions(drugs))
    issues.extend(check_class_interactions(drugs))
    issues.extend(check_duplications(drugs))
    if pregnant:
        issues.extend(check_pregnancy(drugs))
    issues.extend(check_doses(known, age_years))
    if unknown:
        issues.append(missing_info_issue(unknown))

    logger.info(f"💊 Medication check: {len(drugs)} recognised, {len(unknown)} unknown, {len(issues)} issue(s)")
    return issues, drugs, unknown


def find_medication_names(text: str) -> List[str]:
    """Known drug names mentioned in free text, in order of first mention."""
    text_lower = text.lower()
    hits = []
    for name in DRUGS:
        match = re.search(rf"\b{re.escape(name)}\b", text_lower)
        if match:
            hits.append((match.start(), -len(name), name))
    found: List[str] = []
    for _, _, name in sorted(hits):
        # "potassium" inside "potassium chloride" is the same mention
        if not any(name in longer for longer in found):
            found.append(name)
    return found
