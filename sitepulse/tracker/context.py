"""
Tracking context: activates analytics once per page load.

The hosting page builds one TrackingContext when it loads and calls
initialize() (again on every auth-state change if it likes: only the first
call opens a visit, overlapping calls share it). Session id and device
fingerprint are fixed for the lifetime of the context.
"""

import datetime
from typing import Callable

from sitepulse.core.identity import KeyValueStorage, new_session_id, stored_fingerprint
from sitepulse.persistence.base import StoreBeacon
from sitepulse.persistence.memory import MemoryStore
from sitepulse.persistence.rest import SupabaseBeacon, SupabaseStore
from sitepulse.tracker.recorder import VisitRecorder, VisitState, utc_now


class TrackingContext:
    def __init__(
        self,
        env,
        store,
        beacon,
        storage: KeyValueStorage | None = None,
        clock: Callable[[], datetime.datetime] = utc_now,
        settings=None,
    ):
        self.env = env
        self.store = store
        self.beacon = beacon
        self.clock = clock
        self.settings = settings
        self.session_id = new_session_id()
        self.fingerprint = stored_fingerprint(env, storage) if storage is not None else None
        self.recorder: VisitRecorder | None = None

    @classmethod
    def for_supabase(cls, env, storage: KeyValueStorage | None = None) -> "TrackingContext":
        """Production wiring: PostgREST store plus its own unload beacon."""
        return cls(env, SupabaseStore(), SupabaseBeacon(), storage=storage)

    @classmethod
    def in_memory(cls, env, storage: KeyValueStorage | None = None, **kwargs) -> "TrackingContext":
        """Headless wiring: rows stay in a MemoryStore, exits patch it directly."""
        store = MemoryStore()
        return cls(env, store, StoreBeacon(store), storage=storage, **kwargs)

    @property
    def state(self) -> VisitState:
        return self.recorder.state if self.recorder else VisitState.UNINITIALIZED

    async def initialize(self, user_id: str | None = None) -> str | None:
        """Open this load's visit; returns its id, or None once it failed or closed."""
        if self.recorder is None:
            self.recorder = VisitRecorder(
                self.env,
                self.store,
                self.beacon,
                self.session_id,
                user_id=user_id,
                clock=self.clock,
                settings=self.settings,
            )
        handle = await self.recorder.open()
        return handle.visit_id if handle else None

    async def aclose(self) -> None:
        """Finish in-flight writes, then release the store and beacon clients."""
        if self.recorder is not None:
            await self.recorder.drain()
        for resource in (self.beacon, self.store):
            close = getattr(resource, "aclose", None)
            if close is not None:
                await close()
