"""
Wire records exchanged with the persistence collaborator.

Write side: VisitRecord (creation), ExitFields (exit patch), EventRecord.
Read side: VisitRow / EventRow as returned by queryVisits / queryEvents.
"""

import datetime
from typing import Literal

from pydantic import BaseModel, field_validator, model_validator

EventType = Literal["click", "scroll"]
Granularity = Literal["hour", "day", "week", "month"]


def as_utc(value: datetime.datetime | None) -> datetime.datetime | None:
    """Treat naive timestamps (e.g. from SQLite) as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value.astimezone(datetime.timezone.utc)


class DateRange(BaseModel):
    """Inclusive range of calendar dates, timezone-naive (read as UTC)."""
    start: datetime.date
    end: datetime.date

    @model_validator(mode="after")
    def _ordered(self):
        if self.end < self.start:
            raise ValueError("end date precedes start date")
        return self

    @property
    def lower(self) -> datetime.datetime:
        return datetime.datetime.combine(self.start, datetime.time.min, tzinfo=datetime.timezone.utc)

    @property
    def upper(self) -> datetime.datetime:
        """Exclusive upper bound: midnight after the end date."""
        return datetime.datetime.combine(
            self.end + datetime.timedelta(days=1), datetime.time.min, tzinfo=datetime.timezone.utc
        )

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    def contains(self, moment: datetime.datetime) -> bool:
        moment = as_utc(moment)
        return self.lower <= moment < self.upper


# ---------------------------------------------------------------------------
# Write side
# ---------------------------------------------------------------------------

class VisitRecord(BaseModel):
    session_id: str
    user_id: str | None = None
    page_path: str
    referrer: str | None = None
    utm_source: str | None = None
    utm_medium: str | None = None
    utm_campaign: str | None = None
    utm_term: str | None = None
    utm_content: str | None = None
    device_type: str | None = None
    browser: str | None = None
    browser_version: str | None = None
    os: str | None = None
    os_version: str | None = None
    screen_width: int | None = None
    screen_height: int | None = None
    entered_at: datetime.datetime


class ExitFields(BaseModel):
    exited_at: datetime.datetime
    time_on_page: int
    is_bounce: bool


class EventRecord(BaseModel):
    visit_id: str
    session_id: str
    event_type: EventType
    page_path: str
    element_id: str | None = None
    element_class: str | None = None
    element_text: str | None = None
    x_position: int | None = None
    y_position: int | None = None
    scroll_depth: int | None = None


# ---------------------------------------------------------------------------
# Read side
# ---------------------------------------------------------------------------

class VisitRow(VisitRecord):
    id: str
    country: str | None = None
    region: str | None = None
    city: str | None = None
    exited_at: datetime.datetime | None = None
    time_on_page: int | None = None
    is_bounce: bool | None = None
    created_at: datetime.datetime | None = None

    @field_validator("entered_at", "exited_at", "created_at")
    @classmethod
    def _utc(cls, v):
        return as_utc(v)

    @property
    def has_exit(self) -> bool:
        return self.time_on_page is not None


class EventRow(BaseModel):
    id: str
    visit_id: str | None = None
    session_id: str
    event_type: str
    page_path: str
    element_id: str | None = None
    element_class: str | None = None
    element_text: str | None = None
    x_position: int | None = None
    y_position: int | None = None
    scroll_depth: int | None = None
    created_at: datetime.datetime | None = None

    @field_validator("created_at")
    @classmethod
    def _utc(cls, v):
        return as_utc(v)
