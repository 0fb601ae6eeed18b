"""
Aggregation: turn raw visit rows into dashboard projections.

  summarize()       totals, distinct sessions, avg time on page, bounce rate
  visit_series()    zero-filled time buckets (hour/day/week/month)
  breakdown()       count per distinct value, desc, ties in first-seen order

Edge-case policy: ratios over an empty denominator are 0, never NaN, and a
series always has one point per bucket in the requested range.
"""

import datetime
from typing import Callable, Iterable

from pydantic import BaseModel

from sitepulse.models.records import DateRange, Granularity, VisitRow

UNKNOWN = "unknown"


class AnalyticsSummary(BaseModel):
    total_visits: int
    unique_visitors: int
    avg_time_on_page: float
    bounce_rate: float


class SeriesPoint(BaseModel):
    bucket: datetime.datetime  # bucket start, UTC
    label: str
    count: int


class DeviceStat(BaseModel):
    device_type: str
    count: int


class BrowserStat(BaseModel):
    browser: str
    count: int


class CountryStat(BaseModel):
    country: str
    count: int


class PageViewCount(BaseModel):
    page_path: str
    count: int


# ---------------------------------------------------------------------------
# Summary
# ---------------------------------------------------------------------------

def summarize(visits: list[VisitRow]) -> AnalyticsSummary:
    exited = [v for v in visits if v.has_exit]
    bounces = sum(1 for v in exited if v.is_bounce)

    avg_time = (
        round(sum(v.time_on_page for v in exited) / len(exited), 1)
        if exited
        else 0.0
    )
    bounce_rate = (
        round(bounces / len(exited) * 100, 2)
        if exited
        else 0.0
    )

    return AnalyticsSummary(
        total_visits=len(visits),
        unique_visitors=len({v.session_id for v in visits}),
        avg_time_on_page=avg_time,
        bounce_rate=bounce_rate,
    )


# ---------------------------------------------------------------------------
# Time buckets
# ---------------------------------------------------------------------------

def bucket_start(moment: datetime.datetime, granularity: Granularity) -> datetime.datetime:
    moment = moment.astimezone(datetime.timezone.utc)
    if granularity == "hour":
        return moment.replace(minute=0, second=0, microsecond=0)
    day = moment.replace(hour=0, minute=0, second=0, microsecond=0)
    if granularity == "day":
        return day
    if granularity == "week":
        return day - datetime.timedelta(days=day.weekday())  # ISO weeks start Monday
    if granularity == "month":
        return day.replace(day=1)
    raise ValueError(f"Unknown granularity: {granularity}")


def next_bucket(start: datetime.datetime, granularity: Granularity) -> datetime.datetime:
    if granularity == "hour":
        return start + datetime.timedelta(hours=1)
    if granularity == "day":
        return start + datetime.timedelta(days=1)
    if granularity == "week":
        return start + datetime.timedelta(weeks=1)
    if granularity == "month":
        if start.month == 12:
            return start.replace(year=start.year + 1, month=1)
        return start.replace(month=start.month + 1)
    raise ValueError(f"Unknown granularity: {granularity}")


def bucket_label(start: datetime.datetime, granularity: Granularity) -> str:
    if granularity == "hour":
        return start.strftime("%H:%M")
    if granularity == "day":
        return start.strftime("%m/%d")
    if granularity == "week":
        iso_year, iso_week, _ = start.isocalendar()
        return f"{iso_year}-W{iso_week:02d}"
    if granularity == "month":
        return start.strftime("%b")
    raise ValueError(f"Unknown granularity: {granularity}")


def iter_buckets(date_range: DateRange, granularity: Granularity) -> Iterable[datetime.datetime]:
    current = bucket_start(date_range.lower, granularity)
    while current < date_range.upper:
        yield current
        current = next_bucket(current, granularity)


def visit_series(visits: list[VisitRow], date_range: DateRange, granularity: Granularity) -> list[SeriesPoint]:
    counts = {start: 0 for start in iter_buckets(date_range, granularity)}
    for visit in visits:
        if not date_range.contains(visit.entered_at):
            continue
        key = bucket_start(visit.entered_at, granularity)
        counts[key] = counts.get(key, 0) + 1

    return [
        SeriesPoint(bucket=start, label=bucket_label(start, granularity), count=count)
        for start, count in counts.items()
    ]


# ---------------------------------------------------------------------------
# Breakdowns
# ---------------------------------------------------------------------------

def breakdown(visits: Iterable[VisitRow], key: Callable[[VisitRow], str | None], limit: int | None = None) -> list[tuple[str, int]]:
    """Count per value; dict keeps first-seen order and sorted() is stable."""
    counts: dict[str, int] = {}
    for visit in visits:
        value = key(visit) or UNKNOWN
        counts[value] = counts.get(value, 0) + 1

    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return ranked[:limit] if limit is not None else ranked


def device_stats(visits: list[VisitRow], limit: int | None = None) -> list[DeviceStat]:
    return [DeviceStat(device_type=v, count=c) for v, c in breakdown(visits, lambda r: r.device_type, limit)]


def browser_stats(visits: list[VisitRow], limit: int | None = None) -> list[BrowserStat]:
    return [BrowserStat(browser=v, count=c) for v, c in breakdown(visits, lambda r: r.browser, limit)]


def country_stats(visits: list[VisitRow], limit: int | None = None) -> list[CountryStat]:
    return [CountryStat(country=v, count=c) for v, c in breakdown(visits, lambda r: r.country, limit)]


def top_pages(visits: list[VisitRow], limit: int | None = None) -> list[PageViewCount]:
    return [PageViewCount(page_path=v, count=c) for v, c in breakdown(visits, lambda r: r.page_path, limit)]
