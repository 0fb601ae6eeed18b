"""Tests for click resolution and the scroll-depth watermark."""

import asyncio
import datetime

import pytest

from sitepulse.core.background import BackgroundTasks
from sitepulse.persistence.memory import MemoryStore
from sitepulse.tracker.emitter import EventEmitter, VisitHandle, scroll_depth_percent
from sitepulse.tracker.environment import Element, ScrollMetrics, SimulatedEnvironment


def _handle() -> VisitHandle:
    return VisitHandle(
        visit_id="visit-1",
        session_id="session-1",
        page_path="/tools/lot-size",
        entered_at=datetime.datetime(2024, 3, 1, tzinfo=datetime.timezone.utc),
    )


def _run(scenario):
    """Run scenario(emitter, env, store) inside a loop and drain sends."""
    async def main():
        env = SimulatedEnvironment(scroll=ScrollMetrics(0, 2000, 1000))
        store = MemoryStore()
        tasks = BackgroundTasks()
        emitter = EventEmitter(_handle(), store, env, tasks)
        scenario(emitter, env, store)
        await tasks.drain()
        return emitter, store

    return asyncio.run(main())


class TestScrollDepth:
    @pytest.mark.parametrize("top,expected", [
        (0, 0),
        (100, 10),
        (125, 13),   # half rounds up
        (1000, 100),
        (1500, 100),  # overscroll clamps
    ])
    def test_percent(self, top, expected):
        assert scroll_depth_percent(ScrollMetrics(top, 2000, 1000)) == expected

    def test_unscrollable_page(self):
        assert scroll_depth_percent(ScrollMetrics(0, 800, 800)) is None
        assert scroll_depth_percent(ScrollMetrics(0, 600, 800)) is None


class TestScrollWatermark:
    def test_one_event_per_new_maximum(self):
        def scenario(emitter, env, store):
            for top in [100, 100, 250, 250, 500, 1000]:
                env.scroll = ScrollMetrics(top, 2000, 1000)
                emitter.on_scroll()

        emitter, store = _run(scenario)
        depths = [e.scroll_depth for e in store.events]
        assert depths == [10, 25, 50, 100]
        assert emitter.handle.max_scroll_depth == 100

    def test_scrolling_back_up_emits_nothing(self):
        def scenario(emitter, env, store):
            for top in [600, 300, 0, 599, 600, 610]:
                env.scroll = ScrollMetrics(top, 2000, 1000)
                emitter.on_scroll()

        _, store = _run(scenario)
        assert [e.scroll_depth for e in store.events] == [60, 61]

    def test_top_of_page_emits_nothing(self):
        def scenario(emitter, env, store):
            emitter.on_scroll()

        _, store = _run(scenario)
        assert store.events == []

    def test_events_reference_handle(self):
        def scenario(emitter, env, store):
            env.scroll = ScrollMetrics(400, 2000, 1000)
            emitter.on_scroll()

        _, store = _run(scenario)
        event = store.events[0]
        assert event.event_type == "scroll"
        assert event.visit_id == "visit-1"
        assert event.session_id == "session-1"
        assert event.page_path == "/tools/lot-size"


class TestClicks:
    def test_button_click(self):
        button = Element(tag="button", id="calc", class_name="btn primary", text="  Calculate  ")

        _, store = _run(lambda emitter, env, store: emitter.on_click(button, 120, 340))
        event = store.events[0]
        assert event.event_type == "click"
        assert event.element_id == "calc"
        assert event.element_class == "btn primary"
        assert event.element_text == "Calculate"
        assert (event.x_position, event.y_position) == (120, 340)

    def test_resolves_interactive_ancestor(self):
        link = Element(tag="a", id="nav-home", text="Home")
        icon = Element(tag="svg", parent=Element(tag="span", parent=link))

        _, store = _run(lambda emitter, env, store: emitter.on_click(icon, 1, 1))
        assert store.events[0].element_id == "nav-home"

    @pytest.mark.parametrize("element", [
        Element(tag="div", role="button", id="r"),
        Element(tag="div", class_name="card clickable", id="c"),
    ])
    def test_role_and_clickable_class(self, element):
        _, store = _run(lambda emitter, env, store: emitter.on_click(element, 1, 1))
        assert len(store.events) == 1

    def test_non_interactive_click_ignored(self):
        paragraph = Element(tag="p", parent=Element(tag="div", parent=Element(tag="main")))

        _, store = _run(lambda emitter, env, store: emitter.on_click(paragraph, 5, 5))
        assert store.events == []

    def test_missing_target_ignored(self):
        _, store = _run(lambda emitter, env, store: emitter.on_click(None, 5, 5))
        assert store.events == []

    def test_text_truncated(self):
        button = Element(tag="button", text="x" * 250)

        _, store = _run(lambda emitter, env, store: emitter.on_click(button, 0, 0))
        assert len(store.events[0].element_text) == 100

    def test_empty_attributes_become_none(self):
        _, store = _run(lambda emitter, env, store: emitter.on_click(Element(tag="a"), 0, 0))
        event = store.events[0]
        assert event.element_id is None
        assert event.element_class is None
        assert event.element_text is None


class TestFailureIsolation:
    def test_store_failure_does_not_raise(self):
        def scenario(emitter, env, store):
            store.available = False
            env.scroll = ScrollMetrics(500, 2000, 1000)
            emitter.on_scroll()
            emitter.on_click(Element(tag="button"), 0, 0)

        emitter, store = _run(scenario)
        assert store.events == []
        # Watermark still advanced: the failed event is dropped, not replayed
        assert emitter.handle.max_scroll_depth == 50

    def test_broken_environment_does_not_raise(self):
        class BrokenEnv:
            def get_scroll_metrics(self):
                raise RuntimeError("document detached")

        async def main():
            emitter = EventEmitter(_handle(), MemoryStore(), BrokenEnv(), BackgroundTasks())
            emitter.on_scroll()

        asyncio.run(main())

    def test_inactive_emitter_is_silent(self):
        def scenario(emitter, env, store):
            emitter.deactivate()
            env.scroll = ScrollMetrics(500, 2000, 1000)
            emitter.on_scroll()
            emitter.on_click(Element(tag="button"), 0, 0)

        _, store = _run(scenario)
        assert store.events == []
