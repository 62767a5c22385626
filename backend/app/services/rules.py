# app/services/rules.py
import json
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any

from app.config import DATA_DIR

logger = logging.getLogger(__name__)


def _freeze(value: Any) -> Any:
    if isinstance(value, dict):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, list):
        return tuple(_freeze(v) for v in value)
    return value


def load_rule_table(filename: str, data_dir: Path = DATA_DIR) -> MappingProxyType:
    """Load a JSON rule table from app/data and return it as a read-only mapping.

    The service cannot run without its rule tables, so a missing or broken
    file is a hard error at import time rather than a degraded mode.
    """
    path = data_dir / filename
    if not path.exists():
        raise RuntimeError(
            f"❌ Critical: rule table not found at {path}.\n"
            f"Did you include 'app/data/{filename}' in your build?"
        )
    with open(path, "r", encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise RuntimeError(f"❌ Invalid JSON in {path}: {e}")
    if not isinstance(data, dict):
        raise RuntimeError(f"❌ Rule table {path} must be a JSON object")
    logger.info(f"✅ Loaded rule table {filename} (version {data.get('version', 'unversioned')})")
    return _freeze(data)


TRIAGE_RULES = load_rule_table("triage_rules.json")
DRUG_RULES = load_rule_table("drug_rules.json")
