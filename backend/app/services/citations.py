# app/services/citations.py
import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from pydantic import BaseModel, ValidationError

from app.config import CITATION_MIN_REQUIRED, CLINICAL_KB_PATH
from app.models.triage_models import Citation

logger = logging.getLogger(__name__)

FALLBACK_TEXT = "Unable to verify guidance against approved sources; please seek clinician advice."


class ReferenceCatalogError(RuntimeError):
    """The approved reference catalog is missing or unreadable."""


class ReferenceChunk(BaseModel):
    source_id: str
    chunk_id: str
    text: str
    tags: Tuple[str, ...]


class ReferenceCatalog(BaseModel):
    version: str
    chunks: Tuple[ReferenceChunk, ...]

    def select(self, topic_tags: Iterable[str]) -> List[Citation]:
        wanted = {tag.lower() for tag in topic_tags}
        return [
            Citation(source_id=chunk.source_id, chunk_id=chunk.chunk_id, support_text=chunk.text)
            for chunk in self.chunks
            if wanted.intersection(tag.lower() for tag in chunk.tags)
        ]


def load_catalog(path: Path) -> ReferenceCatalog:
    if not path.exists():
        raise ReferenceCatalogError(f"❌ Reference catalog not found at {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            catalog = ReferenceCatalog.model_validate(json.load(f))
    except (json.JSONDecodeError, ValidationError) as e:
        raise ReferenceCatalogError(f"❌ Invalid reference catalog {path}: {e}")
    logger.info(f"✅ Loaded reference catalog {catalog.version} ({len(catalog.chunks)} chunks)")
    return catalog


@lru_cache(maxsize=None)
def get_catalog(path: Path = CLINICAL_KB_PATH) -> ReferenceCatalog:
    return load_catalog(path)


def verify(
    topic_tags: Iterable[str],
    catalog: Optional[ReferenceCatalog] = None,
    min_required: int = CITATION_MIN_REQUIRED,
) -> Tuple[List[Citation], bool]:
    """Pick supporting citations for the topic; verified when enough were found."""
    topic_tags = list(topic_tags)
    catalog = catalog or get_catalog()
    citations = catalog.select(topic_tags)
    verified = len(citations) >= min_required
    if not verified:
        logger.warning(f"⚠️ Citation gate failed for tags {sorted(set(topic_tags))}: {len(citations)} match(es)")
    return citations, verified


# ------------------------------- Topic tags -------------------------------
def triage_topic_tags(urgency_level: str, red_flags: List[str]) -> List[str]:
    return ["triage", urgency_level, *red_flags]


RX_TOPIC_TAGS = ("rx", "interactions")
REPORT_TOPIC_TAGS = ("report", "reference")
