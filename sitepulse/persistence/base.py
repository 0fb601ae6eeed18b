"""
Persistence collaborator contract.

Two capabilities with different failure semantics:

  AnalyticsStore  → request/response writes and reads. insert_visit failing
                    is fatal to the visit; query failures reach the caller.
  ExitBeacon      → best-effort send at page teardown. No confirmation, no
                    retry, never raises.
"""

from typing import Any, Iterable, Mapping, Protocol, TypeVar

from pydantic import BaseModel, ValidationError

from sitepulse.core.background import BackgroundTasks
from sitepulse.models.records import DateRange, EventRecord, EventRow, ExitFields, VisitRecord, VisitRow

Filters = Mapping[str, Any]


class PersistenceError(Exception):
    """Transport or backend failure talking to the analytics store."""


RowT = TypeVar("RowT", bound=BaseModel)


def parse_rows(model: type[RowT], rows: Iterable[Any], source: str) -> list[RowT]:
    """Validate raw rows; a malformed row is a backend failure, not a crash."""
    try:
        return [model.model_validate(row) for row in rows]
    except ValidationError as e:
        raise PersistenceError(f"{source} returned a malformed row: {e.error_count()} error(s)") from e


class AnalyticsStore(Protocol):
    async def insert_visit(self, record: VisitRecord) -> str:
        """Create the visit row and return its id."""
        ...

    async def patch_visit(self, visit_id: str, fields: ExitFields) -> None: ...

    async def insert_event(self, record: EventRecord) -> None: ...

    async def query_visits(self, date_range: DateRange | None = None, filters: Filters | None = None) -> list[VisitRow]: ...

    async def query_events(self, date_range: DateRange | None = None, filters: Filters | None = None) -> list[EventRow]: ...


class ExitBeacon(Protocol):
    def send(self, visit_id: str, fields: ExitFields) -> bool:
        """Queue the exit patch; True if it was handed off."""
        ...


class BackgroundBeacon:
    """Base beacon: delivery runs detached on the event loop."""

    def __init__(self):
        self.tasks = BackgroundTasks()

    def send(self, visit_id: str, fields: ExitFields) -> bool:
        return self.tasks.spawn(self._deliver(visit_id, fields), "exit_beacon_failed", visit_id=visit_id)

    async def _deliver(self, visit_id: str, fields: ExitFields) -> None:
        raise NotImplementedError


class StoreBeacon(BackgroundBeacon):
    """Beacon that patches through an AnalyticsStore (SQL / in-memory backends)."""

    def __init__(self, store: AnalyticsStore):
        super().__init__()
        self.store = store

    async def _deliver(self, visit_id: str, fields: ExitFields) -> None:
        await self.store.patch_visit(visit_id, fields)
