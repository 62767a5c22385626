# tests/test_session_store.py
import fakeredis
import pytest
from app.models.triage_models import AwaitingField, TriageIntakeState
from app.services.session_store import InMemorySessionStore, RedisSessionStore, SessionStore, StaleSessionError


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def redis_store():
    return RedisSessionStore(client=fakeredis.FakeRedis(decode_responses=True), ttl_minutes=30)


@pytest.fixture(params=["memory", "redis"])
def any_store(request, redis_store):
    if request.param == "memory":
        return InMemorySessionStore()
    return redis_store


def test_put_get_clear_roundtrip(any_store):
    saved = any_store.put(TriageIntakeState(session_id="s1", text="cough", awaiting=AwaitingField.SEVERITY))

    loaded = any_store.get("s1")
    assert saved.version == 1
    assert loaded.version == 1
    assert loaded.text == "cough"
    assert loaded.awaiting == AwaitingField.SEVERITY

    any_store.clear("s1")
    assert any_store.get("s1") is None


def test_missing_session_is_none(any_store):
    assert any_store.get("nobody") is None


def test_stale_write_is_rejected(any_store):
    state = TriageIntakeState(session_id="s1", text="cough")
    first_reader = any_store.put(state)
    any_store.put(first_reader.model_copy(update={"severity": 5}))

    with pytest.raises(StaleSessionError):
        any_store.put(first_reader.model_copy(update={"severity": 9}))
    assert any_store.get("s1").severity == 5


def test_sequential_writes_bump_version(any_store):
    state = any_store.put(TriageIntakeState(session_id="s1"))
    state = any_store.put(state)
    state = any_store.put(state)

    assert state.version == 3
    assert any_store.get("s1").version == 3


def test_in_memory_sessions_expire():
    clock = FakeClock()
    store = InMemorySessionStore(ttl_minutes=30, clock=clock)
    store.put(TriageIntakeState(session_id="s1", text="cough"))

    clock.now += 29 * 60
    assert store.get("s1") is not None

    clock.now += 2 * 60
    assert store.get("s1") is None


def test_redis_sessions_have_ttl(redis_store):
    redis_store.put(TriageIntakeState(session_id="s1"))

    ttl = redis_store.client.ttl("triage:session:s1")
    assert 0 < ttl <= 30 * 60


def test_store_missing_a_method_fails_at_creation():
    class ReadOnlyStore(SessionStore):
        def get(self, session_id):
            return None

    with pytest.raises(TypeError):
        ReadOnlyStore()
