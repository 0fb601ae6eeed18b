"""
Analytics API: read side for the dashboard.

All endpoints take an inclusive calendar-date range (?start=YYYY-MM-DD&end=...),
defaulting to the last 30 days. A failed store query answers 503 so the UI
can render an error state instead of an empty chart.
"""

import datetime
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from pydantic import ValidationError

from sitepulse.config import get_settings
from sitepulse.models.database import get_session_maker
from sitepulse.models.records import DateRange
from sitepulse.persistence.sql import SqlStore
from sitepulse.services.analytics import AnalyticsQueryService, QueryFailedError

router = APIRouter(prefix="/v1/analytics", tags=["analytics"])

DEFAULT_RANGE_DAYS = 30


def get_analytics_service() -> AnalyticsQueryService:
    """FastAPI dependency: query service over the SQL store."""
    return AnalyticsQueryService(SqlStore(get_session_maker()))


def date_range_param(
    start: datetime.date | None = Query(None),
    end: datetime.date | None = Query(None),
) -> DateRange:
    end = end or datetime.datetime.now(datetime.timezone.utc).date()
    start = start or end - datetime.timedelta(days=DEFAULT_RANGE_DAYS - 1)
    try:
        date_range = DateRange(start=start, end=end)
    except ValidationError:
        raise HTTPException(status_code=400, detail="start must not be after end.")
    if date_range.days > get_settings().max_range_days:
        raise HTTPException(status_code=400, detail="Date range too long.")
    return date_range


async def _answer(coro):
    try:
        return await coro
    except QueryFailedError:
        raise HTTPException(status_code=503, detail="Analytics query failed.")


@router.get("/summary")
async def analytics_summary(
    date_range: DateRange = Depends(date_range_param),
    service: AnalyticsQueryService = Depends(get_analytics_service),
):
    """Total visits, unique visitors, avg time on page, bounce rate."""
    summary = await _answer(service.summary(date_range))
    return summary.model_dump()


@router.get("/series")
async def analytics_series(
    interval: Literal["hour", "day", "week", "month"] = Query("day"),
    date_range: DateRange = Depends(date_range_param),
    service: AnalyticsQueryService = Depends(get_analytics_service),
):
    """Visit counts per bucket, zero-filled across the range."""
    points = await _answer(service.visits_series(date_range, interval))
    return [p.model_dump(mode="json") for p in points]


@router.get("/devices")
async def analytics_devices(
    date_range: DateRange = Depends(date_range_param),
    service: AnalyticsQueryService = Depends(get_analytics_service),
):
    return [s.model_dump() for s in await _answer(service.device_stats(date_range))]


@router.get("/browsers")
async def analytics_browsers(
    date_range: DateRange = Depends(date_range_param),
    service: AnalyticsQueryService = Depends(get_analytics_service),
):
    return [s.model_dump() for s in await _answer(service.browser_stats(date_range))]


@router.get("/countries")
async def analytics_countries(
    date_range: DateRange = Depends(date_range_param),
    service: AnalyticsQueryService = Depends(get_analytics_service),
):
    return [s.model_dump() for s in await _answer(service.country_stats(date_range))]


@router.get("/pages")
async def analytics_top_pages(
    limit: int | None = Query(None, ge=1, le=100),
    date_range: DateRange = Depends(date_range_param),
    service: AnalyticsQueryService = Depends(get_analytics_service),
):
    """Raw page paths by visit count; labelling "/" is up to the consumer."""
    limit = limit or get_settings().default_top_pages_limit
    return [p.model_dump() for p in await _answer(service.top_pages(date_range, limit))]


@router.get("/visits")
async def analytics_visits(
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=200),
    date_range: DateRange = Depends(date_range_param),
    service: AnalyticsQueryService = Depends(get_analytics_service),
):
    """Paginated visit table, newest first."""
    result = await _answer(service.list_visits(date_range, page, per_page))
    return result.model_dump(mode="json")


@router.get("/visits/{visit_id}/events")
async def analytics_visit_events(
    visit_id: str,
    service: AnalyticsQueryService = Depends(get_analytics_service),
):
    events = await _answer(service.events_for_visit(visit_id))
    return [e.model_dump(mode="json") for e in events]


@router.get("/export.csv")
async def analytics_export(
    date_range: DateRange = Depends(date_range_param),
    service: AnalyticsQueryService = Depends(get_analytics_service),
):
    """All visits in range as CSV."""
    body = await _answer(service.export_visits_csv(date_range))
    return Response(
        content=body,
        media_type="text/csv",
        headers={
            "Content-Disposition": f'attachment; filename="analytics-export-{date_range.end.isoformat()}.csv"',
        },
    )
