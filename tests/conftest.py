"""Pytest configuration."""

import datetime
import os
from uuid import uuid4

import pytest

# Ensure test environment
os.environ.setdefault("SP_DATABASE_URL", "sqlite+aiosqlite:///test.db")
os.environ.setdefault("SP_SUPABASE_URL", "https://project.supabase.test")
os.environ.setdefault("SP_SUPABASE_ANON_KEY", "anon-test-key")
os.environ.setdefault("SP_DEBUG", "true")

from sitepulse.models.records import VisitRow  # noqa: E402

CHROME_WINDOWS_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class FakeClock:
    def __init__(self, start: datetime.datetime | None = None):
        self.now = start or datetime.datetime(2024, 3, 1, 12, 0, tzinfo=datetime.timezone.utc)

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += datetime.timedelta(seconds=seconds)


class RecordingBeacon:
    """Captures exit patches instead of sending them."""

    def __init__(self):
        self.sent = []

    def send(self, visit_id, fields) -> bool:
        self.sent.append((visit_id, fields))
        return True


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def beacon():
    return RecordingBeacon()


@pytest.fixture
def make_visit():
    """Build a VisitRow with sensible defaults."""
    def _make(entered_at: datetime.datetime, **overrides) -> VisitRow:
        fields = {
            "id": str(uuid4()),
            "session_id": str(uuid4()),
            "page_path": "/",
            "device_type": "desktop",
            "browser": "Chrome",
            "os": "Windows",
            "entered_at": entered_at,
        }
        fields.update(overrides)
        return VisitRow(**fields)
    return _make
