"""
Supabase (PostgREST) analytics store: the tracker's write path.

POST  /rest/v1/analytics_visits            → create visit (return=representation)
PATCH /rest/v1/analytics_visits?id=eq.{id} → exit fields, via SupabaseBeacon only
POST  /rest/v1/analytics_events            → append event
GET   /rest/v1/analytics_{visits,events}   → read side, range + eq filters

Every request carries the anon key as both `apikey` and Bearer token.
"""

import httpx

from sitepulse.config import get_settings
from sitepulse.models.records import DateRange, EventRecord, EventRow, ExitFields, VisitRecord, VisitRow
from sitepulse.persistence.base import BackgroundBeacon, Filters, PersistenceError, parse_rows

import structlog

logger = structlog.get_logger()


def _auth_headers(anon_key: str) -> dict[str, str]:
    return {
        "apikey": anon_key,
        "Authorization": f"Bearer {anon_key}",
        "Content-Type": "application/json",
    }


def _query_params(date_range: DateRange | None, filters: Filters | None, time_column: str) -> list[tuple[str, str]]:
    params = [("select", "*")]
    if date_range is not None:
        params.append((time_column, f"gte.{date_range.lower.isoformat()}"))
        params.append((time_column, f"lt.{date_range.upper.isoformat()}"))
    for key, value in (filters or {}).items():
        params.append((key, f"eq.{value}"))
    params.append(("order", f"{time_column}.asc"))
    return params


class SupabaseStore:
    def __init__(
        self,
        base_url: str | None = None,
        anon_key: str | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.supabase_url).rstrip("/")
        self.anon_key = anon_key if anon_key is not None else settings.supabase_anon_key
        self.visits_table = settings.visits_table
        self.events_table = settings.events_table
        self._client = client or httpx.AsyncClient(timeout=settings.request_timeout_seconds)

    def _url(self, table: str) -> str:
        return f"{self.base_url}/rest/v1/{table}"

    async def _request(self, method: str, table: str, **kwargs) -> httpx.Response:
        headers = _auth_headers(self.anon_key)
        headers.update(kwargs.pop("headers", {}))
        try:
            resp = await self._client.request(method, self._url(table), headers=headers, **kwargs)
        except httpx.RequestError as e:
            raise PersistenceError(f"{method} {table} failed: {e}") from e
        if resp.status_code >= 400:
            raise PersistenceError(f"{method} {table} returned {resp.status_code}: {resp.text[:200]}")
        return resp

    async def insert_visit(self, record: VisitRecord) -> str:
        resp = await self._request(
            "POST",
            self.visits_table,
            json=[record.model_dump(mode="json")],
            headers={"Prefer": "return=representation"},
        )
        try:
            rows = resp.json()
            return str(rows[0]["id"])
        except (ValueError, LookupError, TypeError) as e:
            raise PersistenceError("insert_visit returned no row id") from e

    async def patch_visit(self, visit_id: str, fields: ExitFields) -> None:
        await self._request(
            "PATCH",
            self.visits_table,
            params={"id": f"eq.{visit_id}"},
            json=fields.model_dump(mode="json"),
        )

    async def insert_event(self, record: EventRecord) -> None:
        await self._request("POST", self.events_table, json=[record.model_dump(mode="json")])

    async def _select(self, table: str, date_range, filters, time_column: str) -> list[dict]:
        resp = await self._request("GET", table, params=_query_params(date_range, filters, time_column))
        try:
            return resp.json()
        except ValueError as e:
            raise PersistenceError(f"GET {table} returned invalid JSON") from e

    async def query_visits(self, date_range: DateRange | None = None, filters: Filters | None = None) -> list[VisitRow]:
        rows = await self._select(self.visits_table, date_range, filters, "entered_at")
        return parse_rows(VisitRow, rows, self.visits_table)

    async def query_events(self, date_range: DateRange | None = None, filters: Filters | None = None) -> list[EventRow]:
        rows = await self._select(self.events_table, date_range, filters, "created_at")
        return parse_rows(EventRow, rows, self.events_table)

    async def aclose(self) -> None:
        await self._client.aclose()


class SupabaseBeacon(BackgroundBeacon):
    """Unload-time exit patch with its own client and auth header."""

    def __init__(
        self,
        base_url: str | None = None,
        anon_key: str | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        super().__init__()
        settings = get_settings()
        self.base_url = (base_url or settings.supabase_url).rstrip("/")
        self.anon_key = anon_key if anon_key is not None else settings.supabase_anon_key
        self.visits_table = settings.visits_table
        self._client = client or httpx.AsyncClient(timeout=settings.request_timeout_seconds)

    async def _deliver(self, visit_id: str, fields: ExitFields) -> None:
        resp = await self._client.patch(
            f"{self.base_url}/rest/v1/{self.visits_table}",
            params={"id": f"eq.{visit_id}"},
            json=fields.model_dump(mode="json"),
            headers=_auth_headers(self.anon_key),
        )
        if resp.status_code >= 400:
            raise PersistenceError(f"exit patch returned {resp.status_code}")
        logger.debug("exit_beacon_delivered", visit_id=visit_id)

    async def aclose(self) -> None:
        """Let queued exit patches finish, then release the client."""
        await self.tasks.drain()
        await self._client.aclose()
