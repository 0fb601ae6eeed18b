"""In-process analytics store for local runs and tests."""

import datetime
from uuid import uuid4

from sitepulse.models.records import DateRange, EventRecord, EventRow, ExitFields, VisitRecord, VisitRow
from sitepulse.persistence.base import Filters, PersistenceError


def _matches(row, filters: Filters | None) -> bool:
    if not filters:
        return True
    return all(getattr(row, key, None) == value for key, value in filters.items())


class MemoryStore:
    """Keeps rows in lists; `available = False` simulates an unreachable backend."""

    def __init__(self):
        self.visits: dict[str, VisitRow] = {}
        self.events: list[EventRow] = []
        self.available = True

    def _check(self, op: str) -> None:
        if not self.available:
            raise PersistenceError(f"analytics store unreachable during {op}")

    async def insert_visit(self, record: VisitRecord) -> str:
        self._check("insert_visit")
        visit_id = str(uuid4())
        self.visits[visit_id] = VisitRow(
            id=visit_id,
            created_at=datetime.datetime.now(datetime.timezone.utc),
            **record.model_dump(),
        )
        return visit_id

    async def patch_visit(self, visit_id: str, fields: ExitFields) -> None:
        self._check("patch_visit")
        row = self.visits.get(visit_id)
        if row is None:
            raise PersistenceError(f"unknown visit {visit_id}")
        self.visits[visit_id] = row.model_copy(update=fields.model_dump())

    async def insert_event(self, record: EventRecord) -> None:
        self._check("insert_event")
        self.events.append(EventRow(
            id=str(uuid4()),
            created_at=datetime.datetime.now(datetime.timezone.utc),
            **record.model_dump(),
        ))

    async def query_visits(self, date_range: DateRange | None = None, filters: Filters | None = None) -> list[VisitRow]:
        self._check("query_visits")
        rows = [
            row for row in self.visits.values()
            if (date_range is None or date_range.contains(row.entered_at)) and _matches(row, filters)
        ]
        return sorted(rows, key=lambda r: r.entered_at)

    async def query_events(self, date_range: DateRange | None = None, filters: Filters | None = None) -> list[EventRow]:
        self._check("query_events")
        return [
            row for row in self.events
            if (date_range is None or (row.created_at and date_range.contains(row.created_at)))
            and _matches(row, filters)
        ]
