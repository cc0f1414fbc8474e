"""Tests for the in-memory and SQL-backed session stores."""
import asyncio

import pytest

from whoopdash.auth.sessions import InMemorySessionStore, SqlSessionStore
from whoopdash.db.engine import build_engine
from whoopdash.models.session import Session

from conftest import make_bundle


@pytest.fixture(params=["memory", "sql"])
def any_store(request):
    """Each test runs against both backends."""
    if request.param == "memory":
        yield InMemorySessionStore()
    else:
        engine = build_engine("sqlite://")
        store = SqlSessionStore(engine)
        yield store
        store._executor.shutdown(wait=True)
        engine.dispose()


class TestSessionStore:
    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, any_store):
        assert await any_store.get("nope") is None

    @pytest.mark.asyncio
    async def test_put_then_get(self, any_store):
        session = Session(session_id="sess-1", token_bundle=make_bundle())
        await any_store.put(session)
        assert await any_store.get("sess-1") == session

    @pytest.mark.asyncio
    async def test_put_session_without_bundle(self, any_store):
        await any_store.put(Session(session_id="sess-1"))
        loaded = await any_store.get("sess-1")
        assert loaded.token_bundle is None

    @pytest.mark.asyncio
    async def test_create_generates_id(self, any_store):
        a = await any_store.create(make_bundle())
        b = await any_store.create(make_bundle())
        assert a.session_id and b.session_id
        assert a.session_id != b.session_id

    @pytest.mark.asyncio
    async def test_create_with_existing_id_overwrites_bundle(self, any_store):
        await any_store.create(make_bundle(access_token="first"), session_id="sess-1")
        await any_store.create(make_bundle(access_token="second"), session_id="sess-1")
        loaded = await any_store.get("sess-1")
        assert loaded.token_bundle.access_token == "second"

    @pytest.mark.asyncio
    async def test_remove(self, any_store):
        await any_store.create(make_bundle(), session_id="sess-1")
        await any_store.remove("sess-1")
        assert await any_store.get("sess-1") is None

    @pytest.mark.asyncio
    async def test_remove_missing_is_safe(self, any_store):
        await any_store.remove("nope")  # should not raise

    @pytest.mark.asyncio
    async def test_replace_tokens(self, any_store):
        await any_store.create(make_bundle(access_token="old"), session_id="sess-1")
        updated = await any_store.replace_tokens("sess-1", make_bundle(access_token="new"))
        assert updated.token_bundle.access_token == "new"
        loaded = await any_store.get("sess-1")
        assert loaded.token_bundle.access_token == "new"

    @pytest.mark.asyncio
    async def test_replace_tokens_does_not_resurrect(self, any_store):
        updated = await any_store.replace_tokens("gone", make_bundle())
        assert updated is None
        assert await any_store.get("gone") is None

    @pytest.mark.asyncio
    async def test_bundle_round_trips_exactly(self, any_store):
        bundle = make_bundle()
        await any_store.create(bundle, session_id="sess-1")
        loaded = await any_store.get("sess-1")
        assert loaded.token_bundle == bundle

    @pytest.mark.asyncio
    async def test_concurrent_writes_to_different_sessions(self, any_store):
        await asyncio.gather(*(
            any_store.create(make_bundle(access_token=f"t{i}"), session_id=f"sess-{i}")
            for i in range(10)
        ))
        for i in range(10):
            loaded = await any_store.get(f"sess-{i}")
            assert loaded.token_bundle.access_token == f"t{i}"


class TestSqlSessionStorePersistence:
    @pytest.mark.asyncio
    async def test_survives_new_store_instance(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'sessions.db'}"
        bundle = make_bundle()

        first = SqlSessionStore(build_engine(url))
        await first.create(bundle, session_id="sess-1")
        await first.close()

        second = SqlSessionStore(build_engine(url))
        loaded = await second.get("sess-1")
        await second.close()

        assert loaded.token_bundle == bundle


# ─── Per-key locking ──────────────────────────────────────────────────────────

class SlowSessionStore(InMemorySessionStore):
    """In-memory store whose writes yield to the loop, tracking overlap per key."""

    def __init__(self, delay: float = 0.02) -> None:
        super().__init__()
        self.delay = delay
        self.active = 0
        self.max_active = 0

    async def _busy(self) -> None:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        await asyncio.sleep(self.delay)
        self.active -= 1

    async def _save(self, session: Session) -> None:
        await self._busy()
        await super()._save(session)

    async def _delete(self, session_id: str) -> bool:
        await self._busy()
        return await super()._delete(session_id)


class TestPerKeyLocking:
    @pytest.mark.asyncio
    async def test_writes_after_remove_stay_serialized(self):
        store = SlowSessionStore()
        removing = asyncio.ensure_future(store.remove("sess-1"))
        await asyncio.sleep(0.005)
        queued = asyncio.ensure_future(store.put(Session(session_id="sess-1")))
        await asyncio.sleep(0.005)

        await removing
        late = asyncio.ensure_future(store.put(Session(session_id="sess-1")))
        await asyncio.gather(queued, late)

        assert store.max_active == 1

    @pytest.mark.asyncio
    async def test_idle_locks_are_released(self):
        store = SlowSessionStore(delay=0)
        await asyncio.gather(*(
            store.put(Session(session_id=f"sess-{i % 3}")) for i in range(9)
        ))
        await store.remove("sess-0")
        assert store._locks == {}
