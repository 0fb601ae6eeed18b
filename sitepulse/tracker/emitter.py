"""
Event emitter: clicks and scroll-depth milestones for the open visit.

Click:  nearest interactive ancestor (button, a, role=button, .clickable)
        or nothing at all.
Scroll: depth = scroll_top / (scroll_height - client_height) * 100, rounded
        half-up and clamped to 0..100. Only a new maximum (the watermark on
        the VisitHandle) produces an event.

Handlers are called from page listeners and must never raise.
"""

import datetime
import math
from dataclasses import dataclass

from sitepulse.core.background import BackgroundTasks
from sitepulse.models.records import EventRecord
from sitepulse.tracker.environment import Element, ScrollMetrics

import structlog

logger = structlog.get_logger()


@dataclass
class VisitHandle:
    """Per-visit context: created at OPEN, dropped at CLOSED."""
    visit_id: str
    session_id: str
    page_path: str
    entered_at: datetime.datetime
    max_scroll_depth: int = 0


def scroll_depth_percent(metrics: ScrollMetrics) -> int | None:
    """None when the page cannot scroll."""
    scrollable = metrics.scroll_height - metrics.client_height
    if scrollable <= 0:
        return None
    pct = math.floor(metrics.scroll_top / scrollable * 100 + 0.5)
    return max(0, min(100, pct))


class EventEmitter:
    def __init__(self, handle: VisitHandle, store, env, tasks: BackgroundTasks, text_limit: int = 100):
        self.handle = handle
        self.store = store
        self.env = env
        self.tasks = tasks
        self.text_limit = text_limit
        self.active = True

    def deactivate(self) -> None:
        self.active = False

    # --- Listeners ---

    def on_click(self, target: Element | None, x: int | None = None, y: int | None = None) -> None:
        if not self.active or target is None:
            return
        try:
            element = target.closest_interactive()
            if element is None:
                return
            text = element.text.strip()[: self.text_limit] if element.text else ""
            self._emit(EventRecord(
                visit_id=self.handle.visit_id,
                session_id=self.handle.session_id,
                event_type="click",
                page_path=self.handle.page_path,
                element_id=element.id or None,
                element_class=element.class_name or None,
                element_text=text or None,
                x_position=x,
                y_position=y,
            ))
        except Exception as e:
            logger.warning("click_handler_error", visit_id=self.handle.visit_id, error=str(e))

    def on_scroll(self) -> None:
        if not self.active:
            return
        try:
            depth = scroll_depth_percent(self.env.get_scroll_metrics())
            if depth is None or depth <= self.handle.max_scroll_depth:
                return
            self.handle.max_scroll_depth = depth
            self._emit(EventRecord(
                visit_id=self.handle.visit_id,
                session_id=self.handle.session_id,
                event_type="scroll",
                page_path=self.handle.page_path,
                scroll_depth=depth,
            ))
        except Exception as e:
            logger.warning("scroll_handler_error", visit_id=self.handle.visit_id, error=str(e))

    # --- Dispatch ---

    def _emit(self, record: EventRecord) -> None:
        self.tasks.spawn(
            self.store.insert_event(record),
            "event_send_failed",
            visit_id=record.visit_id,
            event_type=record.event_type,
        )
