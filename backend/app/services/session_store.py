# app/services/session_store.py
import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from functools import lru_cache
from typing import Callable, Dict, Optional, Tuple

import redis

from app.config import REDIS_URL, SESSION_TTL_MINUTES
from app.models.triage_models import TriageIntakeState

logger = logging.getLogger(__name__)


class StaleSessionError(RuntimeError):
    """The stored session moved on since this turn read it."""


class SessionStore(ABC):
    """Key-value store for intake state with an optimistic version check.

    `put` only succeeds if the stored version still equals `state.version`
    (0 when nothing is stored) and returns the state with the version bumped.
    """

    @abstractmethod
    def get(self, session_id: str) -> Optional[TriageIntakeState]:
        raise NotImplementedError

    @abstractmethod
    def put(self, state: TriageIntakeState) -> TriageIntakeState:
        raise NotImplementedError

    @abstractmethod
    def clear(self, session_id: str) -> None:
        raise NotImplementedError

    @staticmethod
    def _next_version(state: TriageIntakeState) -> TriageIntakeState:
        return state.model_copy(update={"version": state.version + 1, "updated_at": datetime.now(timezone.utc)})


# ------------------------------- In-process store -------------------------------
class InMemorySessionStore(SessionStore):
    def __init__(self, ttl_minutes: int = SESSION_TTL_MINUTES, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_minutes * 60
        self._clock = clock
        self._items: Dict[str, Tuple[float, str]] = {}
        self._lock = threading.Lock()

    def _load(self, session_id: str) -> Optional[TriageIntakeState]:
        item = self._items.get(session_id)
        if item is None:
            return None
        expires_at, raw = item
        if self._clock() >= expires_at:
            del self._items[session_id]
            return None
        return TriageIntakeState.model_validate_json(raw)

    def get(self, session_id: str) -> Optional[TriageIntakeState]:
        with self._lock:
            return self._load(session_id)

    def put(self, state: TriageIntakeState) -> TriageIntakeState:
        with self._lock:
            current = self._load(state.session_id)
            stored_version = current.version if current else 0
            if stored_version != state.version:
                raise StaleSessionError(
                    f"session {state.session_id} is at version {stored_version}, write was based on {state.version}"
                )
            saved = self._next_version(state)
            self._items[state.session_id] = (self._clock() + self.ttl_seconds, saved.model_dump_json())
            return saved

    def clear(self, session_id: str) -> None:
        with self._lock:
            self._items.pop(session_id, None)


# ------------------------------- Redis store -------------------------------
class RedisSessionStore(SessionStore):
    KEY_PREFIX = "triage:session:"

    def __init__(self, client: Optional[redis.Redis] = None, url: str = REDIS_URL, ttl_minutes: int = SESSION_TTL_MINUTES):
        self.client = client or redis.Redis.from_url(url, decode_responses=True)
        self.ttl_seconds = ttl_minutes * 60

    def _key(self, session_id: str) -> str:
        return f"{self.KEY_PREFIX}{session_id}"

    def get(self, session_id: str) -> Optional[TriageIntakeState]:
        raw = self.client.get(self._key(session_id))
        return TriageIntakeState.model_validate_json(raw) if raw else None

    def put(self, state: TriageIntakeState) -> TriageIntakeState:
        key = self._key(state.session_id)
        with self.client.pipeline() as pipe:
            try:
                pipe.watch(key)
                raw = pipe.get(key)
                stored_version = json.loads(raw)["version"] if raw else 0
                if stored_version != state.version:
                    pipe.unwatch()
                    raise StaleSessionError(
                        f"session {state.session_id} is at version {stored_version}, write was based on {state.version}"
                    )
                saved = self._next_version(state)
                pipe.multi()
                pipe.set(key, saved.model_dump_json(), ex=self.ttl_seconds)
                pipe.execute()
            except redis.WatchError:
                raise StaleSessionError(f"session {state.session_id} changed during write")
        return saved

    def clear(self, session_id: str) -> None:
        self.client.delete(self._key(session_id))


@lru_cache(maxsize=1)
def get_session_store() -> SessionStore:
    if REDIS_URL:
        logger.info("✅ Using Redis session store")
        return RedisSessionStore()
    logger.info("⚠️ REDIS_URL not set, using in-process session store")
    return InMemorySessionStore()
