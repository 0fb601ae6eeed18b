"""
Visit recorder: one page view from open to exit beacon.

  UNINITIALIZED → OPENING → OPEN → CLOSING → CLOSED
                     ↓
                   FAILED

  open()   once per load; awaits insert_visit (bounded by
           visit_create_timeout_seconds), then arms listeners.
           Overlapping and later calls await the same creation write and
           get the current handle (None once FAILED or CLOSED).
  close()  unload signal: time on page, bounce flag, hand the exit patch to
           the beacon, disarm. Repeat unload signals are ignored.

A visit that fails to open stays FAILED: no listeners, no events, no exit.
"""

import asyncio
import datetime
import enum
from typing import Callable

from sitepulse.config import Settings, get_settings
from sitepulse.core.attribution import extract_utm_params
from sitepulse.core.background import BackgroundTasks
from sitepulse.core.device import profile_device
from sitepulse.models.records import ExitFields, VisitRecord
from sitepulse.persistence.base import PersistenceError
from sitepulse.tracker.emitter import EventEmitter, VisitHandle

import structlog

logger = structlog.get_logger()


class VisitState(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    OPENING = "opening"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"
    FAILED = "failed"


def utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def is_bounce(time_on_page: int, threshold: int = 10) -> bool:
    return time_on_page < threshold


def build_visit_record(env, session_id: str, entered_at: datetime.datetime, user_id: str | None = None) -> VisitRecord:
    location = env.get_location()
    profile = profile_device(env)
    return VisitRecord(
        session_id=session_id,
        user_id=user_id,
        page_path=location.path,
        referrer=env.get_referrer() or None,
        **extract_utm_params(location.query_string),
        device_type=profile.device_type,
        browser=profile.browser,
        browser_version=profile.browser_version,
        os=profile.os,
        os_version=profile.os_version,
        screen_width=profile.screen_width,
        screen_height=profile.screen_height,
        entered_at=entered_at,
    )


class VisitRecorder:
    def __init__(
        self,
        env,
        store,
        beacon,
        session_id: str,
        user_id: str | None = None,
        clock: Callable[[], datetime.datetime] = utc_now,
        settings: Settings | None = None,
    ):
        self.env = env
        self.store = store
        self.beacon = beacon
        self.session_id = session_id
        self.user_id = user_id
        self.clock = clock
        self.settings = settings or get_settings()

        self.state = VisitState.UNINITIALIZED
        self.handle: VisitHandle | None = None
        self.emitter: EventEmitter | None = None
        self.tasks = BackgroundTasks()
        self._removers: list[Callable[[], None]] = []
        self._armed = False
        self._opening: asyncio.Future | None = None

    async def open(self) -> VisitHandle | None:
        if self._opening is None:
            self.state = VisitState.OPENING
            self._opening = asyncio.ensure_future(self._open())
        # Overlapping callers share one creation write; cancelling one of
        # them leaves the write running for the others.
        await asyncio.shield(self._opening)
        return self.handle

    async def _open(self) -> None:
        entered_at = self.clock()
        page_path = None
        try:
            record = build_visit_record(self.env, self.session_id, entered_at, self.user_id)
            page_path = record.page_path
            visit_id = await asyncio.wait_for(
                self.store.insert_visit(record),
                timeout=self.settings.visit_create_timeout_seconds,
            )
        except (PersistenceError, asyncio.TimeoutError) as e:
            self._fail(page_path, str(e) or type(e).__name__)
            return
        except Exception as e:
            self._fail(page_path, str(e), error_type=type(e).__name__)
            return

        self.handle = VisitHandle(
            visit_id=visit_id,
            session_id=self.session_id,
            page_path=record.page_path,
            entered_at=entered_at,
        )
        self.state = VisitState.OPEN
        self.arm()

        logger.info("visit_opened",
                    visit_id=visit_id,
                    session_id=self.session_id,
                    page_path=record.page_path,
                    device_type=record.device_type)

    def _fail(self, page_path: str | None, error: str, **context) -> None:
        self.state = VisitState.FAILED
        logger.warning("visit_open_failed",
                       session_id=self.session_id,
                       page_path=page_path,
                       error=error,
                       **context)

    # --- Listener lifecycle ---

    def arm(self) -> None:
        if self._armed or self.state is not VisitState.OPEN:
            return
        self._armed = True
        self.emitter = EventEmitter(
            self.handle,
            self.store,
            self.env,
            self.tasks,
            text_limit=self.settings.element_text_max_length,
        )
        self._removers = [
            self.env.add_listener("click", self.emitter.on_click),
            self.env.add_listener("scroll", self.emitter.on_scroll),
            self.env.add_listener("unload", self.close),
        ]
        if self.settings.exit_on_visibility_hidden:
            self._removers.append(self.env.add_listener("visibility_hidden", self.close))

    def disarm(self) -> None:
        if not self._armed:
            return
        self._armed = False
        for remove in self._removers:
            remove()
        self._removers = []
        if self.emitter is not None:
            self.emitter.deactivate()

    # --- Exit ---

    def exit_fields(self) -> ExitFields:
        now = self.clock()
        seconds = max(0, int((now - self.handle.entered_at).total_seconds()))
        return ExitFields(
            exited_at=now,
            time_on_page=seconds,
            is_bounce=is_bounce(seconds, self.settings.bounce_threshold_seconds),
        )

    def close(self) -> bool:
        """Unload handler. True if an exit patch was handed to the beacon."""
        if self.state is not VisitState.OPEN:
            return False

        self.state = VisitState.CLOSING
        visit_id = self.handle.visit_id
        sent = False
        try:
            fields = self.exit_fields()
            sent = self.beacon.send(visit_id, fields)
            logger.info("visit_closed",
                        visit_id=visit_id,
                        time_on_page=fields.time_on_page,
                        is_bounce=fields.is_bounce,
                        beacon_queued=sent)
        except Exception as e:
            logger.warning("exit_beacon_failed", visit_id=visit_id, error=str(e))
        finally:
            self.disarm()
            self.handle = None
            self.state = VisitState.CLOSED
        return sent

    async def drain(self) -> None:
        """Wait for in-flight event and exit writes."""
        await self.tasks.drain()
        beacon_tasks = getattr(self.beacon, "tasks", None)
        if beacon_tasks is not None:
            await beacon_tasks.drain()
