# app/validate_rules.py
import json
import sys
from pathlib import Path

DATA_DIR = Path(__file__).parent / "data"

REQUIRED_KEYS = {
    "triage_rules.json": {"version", "symptom_vocabulary", "red_flags", "emergency_combinations", "possible_causes", "intent_keywords"},
    "drug_rules.json": {"version", "drugs", "interactions", "class_interactions", "pregnancy", "dose_limits"},
    "clinical_kb.json": {"version", "chunks"},
}


def _load(file_path: Path):
    print(f"🔍 Validating {file_path}...")
    if not file_path.exists():
        return None, [f"{file_path.name}: file not found"]
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            return json.load(f), []
    except json.JSONDecodeError as e:
        return None, [f"{file_path.name}: invalid JSON: {e}"]


def check_triage_rules(data: dict) -> list:
    errors = []
    vocabulary = set(data["symptom_vocabulary"])
    for flag in data["red_flags"]:
        if flag not in vocabulary:
            errors.append(f"triage_rules.json: red flag '{flag}' is not in symptom_vocabulary")
    for i, pair in enumerate(data["emergency_combinations"]):
        if len(pair) != 2 or not set(pair) <= vocabulary:
            errors.append(f"triage_rules.json: emergency_combinations[{i}] must be two vocabulary terms")
    for i, row in enumerate(data["possible_causes"]):
        if not {"keywords", "causes"} <= row.keys():
            errors.append(f"triage_rules.json: possible_causes[{i}] missing keywords/causes")
    for intent in ("rx", "report", "triage"):
        if not isinstance(data["intent_keywords"].get(intent), list):
            errors.append(f"triage_rules.json: intent_keywords.{intent} must be a list")
    return errors


def check_drug_rules(data: dict) -> list:
    errors = []
    codes = set()
    for name, entry in data["drugs"].items():
        missing = {"canonical_name", "code", "classes"} - entry.keys()
        if missing:
            errors.append(f"drug_rules.json: drug '{name}' missing keys {missing}")
            continue
        codes.add(entry["code"])
    for i, rule in enumerate(data["interactions"]):
        if len(rule.get("codes", [])) != 2 or not set(rule["codes"]) <= codes:
            errors.append(f"drug_rules.json: interactions[{i}] must reference two known codes")
        if rule.get("severity") not in ("info", "caution", "serious", "critical"):
            errors.append(f"drug_rules.json: interactions[{i}] has invalid severity")
    for code in data["dose_limits"]:
        if code not in codes:
            errors.append(f"drug_rules.json: dose limit for unknown code {code}")
    return errors


def check_catalog(data: dict) -> list:
    errors = []
    for i, chunk in enumerate(data["chunks"]):
        missing = {"source_id", "chunk_id", "text", "tags"} - chunk.keys()
        if missing:
            errors.append(f"clinical_kb.json: chunk {i} missing keys {missing}")
    return errors


CHECKS = {
    "triage_rules.json": check_triage_rules,
    "drug_rules.json": check_drug_rules,
    "clinical_kb.json": check_catalog,
}


def validate_rule_files(data_dir: Path = DATA_DIR) -> list:
    errors = []
    for filename, required in REQUIRED_KEYS.items():
        data, load_errors = _load(data_dir / filename)
        errors.extend(load_errors)
        if data is None:
            continue
        missing = required - data.keys()
        if missing:
            errors.append(f"{filename}: missing keys {missing}")
            continue
        errors.extend(CHECKS[filename](data))
    return errors


if __name__ == "__main__":
    problems = validate_rule_files()
    if problems:
        for err in problems:
            print(f"❌ {err}")
        sys.exit(1)
    print(f"✅ {len(REQUIRED_KEYS)} rule files validated successfully.")
