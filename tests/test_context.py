"""Tests for per-load tracking activation."""

import asyncio

from sitepulse.core.identity import MemoryStorage
from sitepulse.persistence.memory import MemoryStore
from sitepulse.persistence.rest import SupabaseBeacon, SupabaseStore
from sitepulse.tracker.context import TrackingContext
from sitepulse.tracker.environment import ScrollMetrics, SimulatedEnvironment
from sitepulse.tracker.recorder import VisitState

from conftest import CHROME_WINDOWS_UA


def _env() -> SimulatedEnvironment:
    return SimulatedEnvironment(user_agent=CHROME_WINDOWS_UA)


def test_state_before_initialize(beacon):
    ctx = TrackingContext(_env(), MemoryStore(), beacon)
    assert ctx.state is VisitState.UNINITIALIZED
    assert ctx.fingerprint is None


def test_repeated_initialize_opens_one_visit(clock, beacon):
    async def main():
        store = MemoryStore()
        ctx = TrackingContext(_env(), store, beacon, clock=clock)
        first = await ctx.initialize()
        second = await ctx.initialize(user_id="late-login")
        return store, ctx, first, second

    store, ctx, first, second = asyncio.run(main())
    assert first == second
    assert len(store.visits) == 1
    assert store.visits[first].session_id == ctx.session_id
    assert store.visits[first].user_id is None
    assert ctx.state is VisitState.OPEN


def test_failed_initialize_returns_none(beacon):
    async def main():
        store = MemoryStore()
        store.available = False
        ctx = TrackingContext(_env(), store, beacon)
        return ctx, await ctx.initialize()

    ctx, visit_id = asyncio.run(main())
    assert visit_id is None
    assert ctx.state is VisitState.FAILED


def test_each_load_gets_a_new_session(beacon):
    storage = MemoryStorage()
    one = TrackingContext(_env(), MemoryStore(), beacon, storage=storage)
    two = TrackingContext(_env(), MemoryStore(), beacon, storage=storage)
    assert one.session_id != two.session_id
    assert one.fingerprint == two.fingerprint
    assert storage.get("userFingerprint") == one.fingerprint


def test_supabase_wiring():
    ctx = TrackingContext.for_supabase(_env())
    assert isinstance(ctx.store, SupabaseStore)
    assert isinstance(ctx.beacon, SupabaseBeacon)
    assert ctx.store.base_url == "https://project.supabase.test"
    assert ctx.beacon.anon_key == "anon-test-key"


def test_overlapping_initialize_share_the_visit(beacon):
    class GatedStore(MemoryStore):
        def __init__(self):
            super().__init__()
            self.gate = asyncio.Event()

        async def insert_visit(self, record):
            await self.gate.wait()
            return await super().insert_visit(record)

    async def main():
        store = GatedStore()
        ctx = TrackingContext(_env(), store, beacon)
        # Session lookup and the auth listener both fire on load
        on_session = asyncio.create_task(ctx.initialize())
        on_auth_change = asyncio.create_task(ctx.initialize(user_id="u-1"))
        await asyncio.sleep(0)
        store.gate.set()
        return store, await on_session, await on_auth_change

    store, first, second = asyncio.run(main())
    assert first is not None
    assert first == second
    assert list(store.visits) == [first]


def test_in_memory_wiring_records_full_visit(clock):
    async def main():
        env = SimulatedEnvironment(user_agent=CHROME_WINDOWS_UA, scroll=ScrollMetrics(0, 2000, 1000))
        ctx = TrackingContext.in_memory(env, clock=clock)
        visit_id = await ctx.initialize()
        env.scroll_to(500)
        clock.advance(30)
        env.unload()
        await ctx.aclose()
        return ctx, visit_id

    ctx, visit_id = asyncio.run(main())
    assert isinstance(ctx.store, MemoryStore)
    row = ctx.store.visits[visit_id]
    assert row.time_on_page == 30
    assert row.is_bounce is False
    assert [e.scroll_depth for e in ctx.store.events] == [50]
    assert ctx.state is VisitState.CLOSED


def test_aclose_releases_http_clients():
    async def main():
        ctx = TrackingContext.for_supabase(_env())
        await ctx.aclose()
        return ctx

    ctx = asyncio.run(main())
    assert ctx.store._client.is_closed
    assert ctx.beacon._client.is_closed
