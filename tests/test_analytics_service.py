"""Tests for the dashboard query service over the in-memory store."""

import asyncio
import csv
import datetime
import io

import httpx
import pytest

from sitepulse.models.records import DateRange, EventRecord
from sitepulse.persistence.memory import MemoryStore
from sitepulse.persistence.rest import SupabaseStore
from sitepulse.services.analytics import AnalyticsQueryService, QueryFailedError

UTC = datetime.timezone.utc
MARCH = DateRange(start=datetime.date(2024, 3, 1), end=datetime.date(2024, 3, 31))


def _at(day: int, hour: int = 12) -> datetime.datetime:
    return datetime.datetime(2024, 3, day, hour, tzinfo=UTC)


@pytest.fixture
def store(make_visit):
    store = MemoryStore()
    for visit in [
        make_visit(_at(1), id="v1", session_id="s1", page_path="/", device_type="desktop", time_on_page=5, is_bounce=True),
        make_visit(_at(2), id="v2", session_id="s1", page_path="/pricing", device_type="mobile", time_on_page=30, is_bounce=False),
        make_visit(_at(3), id="v3", session_id="s2", page_path="/", device_type="mobile"),
        make_visit(datetime.datetime(2024, 2, 28, tzinfo=UTC), id="old", session_id="s3"),
    ]:
        store.visits[visit.id] = visit
    return store


@pytest.fixture
def service(store):
    return AnalyticsQueryService(store)


class TestProjections:
    def test_summary_scoped_to_range(self, service):
        summary = asyncio.run(service.summary(MARCH))
        assert summary.total_visits == 3
        assert summary.unique_visitors == 2
        assert summary.avg_time_on_page == 17.5
        assert summary.bounce_rate == 50.0

    def test_summary_empty_range(self, service):
        empty = DateRange(start=datetime.date(2025, 1, 1), end=datetime.date(2025, 1, 31))
        summary = asyncio.run(service.summary(empty))
        assert summary.total_visits == 0
        assert summary.bounce_rate == 0

    def test_series(self, service):
        first_week = DateRange(start=datetime.date(2024, 3, 1), end=datetime.date(2024, 3, 7))
        points = asyncio.run(service.visits_series(first_week, "day"))
        assert [p.count for p in points] == [1, 1, 1, 0, 0, 0, 0]

    def test_devices(self, service):
        stats = asyncio.run(service.device_stats(MARCH))
        assert [(s.device_type, s.count) for s in stats] == [("mobile", 2), ("desktop", 1)]

    def test_browsers_and_countries(self, service):
        browsers = asyncio.run(service.browser_stats(MARCH))
        countries = asyncio.run(service.country_stats(MARCH))
        assert [(s.browser, s.count) for s in browsers] == [("Chrome", 3)]
        assert [(s.country, s.count) for s in countries] == [("unknown", 3)]

    def test_top_pages(self, service):
        pages = asyncio.run(service.top_pages(MARCH, limit=1))
        assert [(p.page_path, p.count) for p in pages] == [("/", 2)]


class TestRawRows:
    def test_list_visits_newest_first(self, service):
        page = asyncio.run(service.list_visits(MARCH, page=1, per_page=2))
        assert page.total == 3
        assert [v.id for v in page.visits] == ["v3", "v2"]

        second = asyncio.run(service.list_visits(MARCH, page=2, per_page=2))
        assert [v.id for v in second.visits] == ["v1"]

    def test_page_past_end_is_empty(self, service):
        page = asyncio.run(service.list_visits(MARCH, page=5, per_page=10))
        assert page.total == 3
        assert page.visits == []

    def test_events_for_visit(self, store, service):
        async def main():
            for depth in (25, 50):
                await store.insert_event(EventRecord(
                    visit_id="v2", session_id="s1", event_type="scroll", page_path="/pricing", scroll_depth=depth,
                ))
            await store.insert_event(EventRecord(
                visit_id="v1", session_id="s1", event_type="click", page_path="/", element_id="cta",
            ))
            return await service.events_for_visit("v2")

        events = asyncio.run(main())
        assert [e.scroll_depth for e in events] == [25, 50]

    def test_events_for_unknown_visit(self, service):
        assert asyncio.run(service.events_for_visit("missing")) == []

    def test_csv_export(self, service):
        body = asyncio.run(service.export_visits_csv(MARCH))
        rows = list(csv.DictReader(io.StringIO(body)))
        assert [r["id"] for r in rows] == ["v3", "v2", "v1"]
        assert rows[1]["page_path"] == "/pricing"
        assert rows[1]["time_on_page"] == "30"
        assert rows[0]["exited_at"] == ""


class TestFailures:
    @pytest.mark.parametrize("call", [
        lambda s: s.summary(MARCH),
        lambda s: s.visits_series(MARCH),
        lambda s: s.device_stats(MARCH),
        lambda s: s.top_pages(MARCH),
        lambda s: s.list_visits(MARCH),
        lambda s: s.events_for_visit("v1"),
        lambda s: s.export_visits_csv(MARCH),
    ])
    def test_store_failure_is_distinct_from_no_data(self, store, service, call):
        store.available = False
        with pytest.raises(QueryFailedError):
            asyncio.run(call(service))


def test_malformed_backend_row_is_query_failure():
    bad_row = {"id": "v1", "session_id": "s", "page_path": "/", "entered_at": "not-a-timestamp"}
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200, json=[bad_row])))
    service = AnalyticsQueryService(SupabaseStore("https://project.supabase.test", "anon", client=client))

    with pytest.raises(QueryFailedError):
        asyncio.run(service.summary(MARCH))
