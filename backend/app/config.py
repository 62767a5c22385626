# app/config.py
import os
from pathlib import Path

# ------------------------------- Paths -------------------------------
DATA_DIR = Path(__file__).parent / "data"
CLINICAL_KB_PATH = Path(os.getenv("CLINICAL_KB_PATH", str(DATA_DIR / "clinical_kb.json")))

# ------------------------------- Storage -------------------------------
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./triage_audit.db")
REDIS_URL = os.getenv("REDIS_URL", "")  # empty -> in-process session store
SESSION_TTL_MINUTES = int(os.getenv("SESSION_TTL_MINUTES", "30"))

# ------------------------------- Input limits -------------------------------
MAX_TEXT_LENGTH = int(os.getenv("MAX_TEXT_LENGTH", "4000"))

# ------------------------------- Citation gate -------------------------------
CITATION_MIN_REQUIRED = int(os.getenv("CITATION_MIN_REQUIRED", "1"))

# ------------------------------- Narrative model -------------------------------
NARRATIVE_ENABLED = os.getenv("NARRATIVE_ENABLED", "0").strip() == "1"
LLM_API_URL = os.getenv("LLM_API_URL", "https://api.openai.com/v1").rstrip("/")
LLM_API_KEY = os.getenv("LLM_API_KEY", "")
LLM_MODEL = os.getenv("LLM_MODEL", "gpt-4o-mini")
LLM_TIMEOUT_SECONDS = float(os.getenv("LLM_TIMEOUT_SECONDS", "8"))

# ------------------------------- Messaging -------------------------------
EMERGENCY_CONTACT = os.getenv("EMERGENCY_CONTACT", "your local emergency number")
