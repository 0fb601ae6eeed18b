"""
SQLAlchemy analytics store: same contract as SupabaseStore, straight
against the analytics_visits / analytics_events tables.
"""

from uuid import uuid4

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sitepulse.models.records import DateRange, EventRecord, EventRow, ExitFields, VisitRecord, VisitRow
from sitepulse.models.tables import AnalyticsEvent, AnalyticsVisit
from sitepulse.persistence.base import Filters, PersistenceError, parse_rows

VISIT_COLUMNS = [c.name for c in AnalyticsVisit.__table__.columns]
EVENT_COLUMNS = [c.name for c in AnalyticsEvent.__table__.columns]


def _apply(stmt, model, date_range: DateRange | None, filters: Filters | None, time_column):
    if date_range is not None:
        stmt = stmt.where(time_column >= date_range.lower, time_column < date_range.upper)
    for key, value in (filters or {}).items():
        column = getattr(model, key, None)
        if column is None:
            raise PersistenceError(f"Unknown filter column: {key}")
        stmt = stmt.where(column == value)
    return stmt.order_by(time_column.asc())


def _as_dict(obj, columns: list[str]) -> dict:
    return {name: getattr(obj, name) for name in columns}


class SqlStore:
    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def insert_visit(self, record: VisitRecord) -> str:
        visit_id = str(uuid4())
        try:
            async with self.session_maker() as db:
                db.add(AnalyticsVisit(id=visit_id, **record.model_dump()))
                await db.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(f"insert_visit failed: {e}") from e
        return visit_id

    async def patch_visit(self, visit_id: str, fields: ExitFields) -> None:
        try:
            async with self.session_maker() as db:
                result = await db.execute(
                    update(AnalyticsVisit)
                    .where(AnalyticsVisit.id == visit_id)
                    .values(**fields.model_dump())
                )
                matched = result.rowcount
                await db.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(f"patch_visit failed: {e}") from e
        if matched == 0:
            raise PersistenceError(f"unknown visit {visit_id}")

    async def insert_event(self, record: EventRecord) -> None:
        try:
            async with self.session_maker() as db:
                db.add(AnalyticsEvent(**record.model_dump()))
                await db.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(f"insert_event failed: {e}") from e

    async def query_visits(self, date_range: DateRange | None = None, filters: Filters | None = None) -> list[VisitRow]:
        stmt = _apply(select(AnalyticsVisit), AnalyticsVisit, date_range, filters, AnalyticsVisit.entered_at)
        try:
            async with self.session_maker() as db:
                result = await db.execute(stmt)
                visits = result.scalars().all()
        except SQLAlchemyError as e:
            raise PersistenceError(f"query_visits failed: {e}") from e
        return parse_rows(VisitRow, (_as_dict(v, VISIT_COLUMNS) for v in visits), "analytics_visits")

    async def query_events(self, date_range: DateRange | None = None, filters: Filters | None = None) -> list[EventRow]:
        stmt = _apply(select(AnalyticsEvent), AnalyticsEvent, date_range, filters, AnalyticsEvent.created_at)
        try:
            async with self.session_maker() as db:
                result = await db.execute(stmt)
                events = result.scalars().all()
        except SQLAlchemyError as e:
            raise PersistenceError(f"query_events failed: {e}") from e
        return parse_rows(EventRow, (_as_dict(ev, EVENT_COLUMNS) for ev in events), "analytics_events")
