"""
Analytics query service: the read side behind the dashboard.

Every method pulls rows for the requested range from the store and projects
them with sitepulse.core.aggregation. A store failure becomes
QueryFailedError so callers can tell "query failed" from "no data".
"""

import csv
import io

from pydantic import BaseModel

from sitepulse.core import aggregation
from sitepulse.core.aggregation import (
    AnalyticsSummary,
    BrowserStat,
    CountryStat,
    DeviceStat,
    PageViewCount,
    SeriesPoint,
)
from sitepulse.models.records import DateRange, EventRow, Granularity, VisitRow
from sitepulse.persistence.base import PersistenceError

import structlog

logger = structlog.get_logger()

CSV_COLUMNS = list(VisitRow.model_fields)


class QueryFailedError(Exception):
    """The analytics store could not answer a dashboard query."""


class VisitPage(BaseModel):
    total: int
    page: int
    per_page: int
    visits: list[VisitRow]


class AnalyticsQueryService:
    def __init__(self, store):
        self.store = store

    async def _visits(self, date_range: DateRange | None, filters: dict | None = None) -> list[VisitRow]:
        try:
            return await self.store.query_visits(date_range, filters)
        except PersistenceError as e:
            logger.error("analytics_query_failed", table="visits", error=str(e))
            raise QueryFailedError(str(e)) from e

    async def _events(self, date_range: DateRange | None, filters: dict | None = None) -> list[EventRow]:
        try:
            return await self.store.query_events(date_range, filters)
        except PersistenceError as e:
            logger.error("analytics_query_failed", table="events", error=str(e))
            raise QueryFailedError(str(e)) from e

    # --- Projections ---

    async def summary(self, date_range: DateRange) -> AnalyticsSummary:
        return aggregation.summarize(await self._visits(date_range))

    async def visits_series(self, date_range: DateRange, granularity: Granularity = "day") -> list[SeriesPoint]:
        return aggregation.visit_series(await self._visits(date_range), date_range, granularity)

    async def device_stats(self, date_range: DateRange, limit: int | None = None) -> list[DeviceStat]:
        return aggregation.device_stats(await self._visits(date_range), limit)

    async def browser_stats(self, date_range: DateRange, limit: int | None = None) -> list[BrowserStat]:
        return aggregation.browser_stats(await self._visits(date_range), limit)

    async def country_stats(self, date_range: DateRange, limit: int | None = None) -> list[CountryStat]:
        return aggregation.country_stats(await self._visits(date_range), limit)

    async def top_pages(self, date_range: DateRange, limit: int | None = None) -> list[PageViewCount]:
        return aggregation.top_pages(await self._visits(date_range), limit)

    # --- Raw rows ---

    async def list_visits(self, date_range: DateRange, page: int = 1, per_page: int = 10) -> VisitPage:
        """Newest first, paginated."""
        visits = await self._visits(date_range)
        visits.sort(key=lambda v: v.entered_at, reverse=True)
        offset = (page - 1) * per_page
        return VisitPage(
            total=len(visits),
            page=page,
            per_page=per_page,
            visits=visits[offset:offset + per_page],
        )

    async def events_for_visit(self, visit_id: str) -> list[EventRow]:
        """Oldest first, as the stores order them."""
        return await self._events(None, {"visit_id": visit_id})

    async def export_visits_csv(self, date_range: DateRange) -> str:
        visits = await self._visits(date_range)
        visits.sort(key=lambda v: v.entered_at, reverse=True)

        buf = io.StringIO()
        writer = csv.DictWriter(buf, fieldnames=CSV_COLUMNS, lineterminator="\n")
        writer.writeheader()
        for visit in visits:
            writer.writerow(visit.model_dump(mode="json"))
        return buf.getvalue()
