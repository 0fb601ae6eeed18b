"""
Database models: the "truth layer."

Design principles:
  - Visits get exactly one insert and at most one exit patch
  - Events are append-only (no updates/deletes)
  - Geo columns (country/region/city) are filled by the backend, never the tracker
"""

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, relationship


class Base(DeclarativeBase):
    pass


def _new_id() -> str:
    return str(uuid4())


class AnalyticsVisit(Base):
    __tablename__ = "analytics_visits"

    id = Column(String(36), primary_key=True, default=_new_id)
    session_id = Column(String(100), nullable=False, index=True)
    user_id = Column(String(100), nullable=True)

    # Entry context (immutable)
    page_path = Column(String(500), nullable=False)
    referrer = Column(Text, nullable=True)
    utm_source = Column(String(255), nullable=True)
    utm_medium = Column(String(255), nullable=True)
    utm_campaign = Column(String(255), nullable=True)
    utm_term = Column(String(255), nullable=True)
    utm_content = Column(String(255), nullable=True)

    # Device (immutable)
    device_type = Column(String(20), nullable=True)
    browser = Column(String(50), nullable=True)
    browser_version = Column(String(50), nullable=True)
    os = Column(String(50), nullable=True)
    os_version = Column(String(50), nullable=True)
    screen_width = Column(Integer, nullable=True)
    screen_height = Column(Integer, nullable=True)

    # Geo (backend-populated)
    country = Column(String(100), nullable=True)
    region = Column(String(100), nullable=True)
    city = Column(String(100), nullable=True)

    # Lifecycle
    entered_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    exited_at = Column(DateTime(timezone=True), nullable=True)
    time_on_page = Column(Integer, nullable=True)
    is_bounce = Column(Boolean, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    events = relationship("AnalyticsEvent", back_populates="visit")

    __table_args__ = (
        Index("ix_analytics_visits_entered", "entered_at"),
    )


class AnalyticsEvent(Base):
    __tablename__ = "analytics_events"

    id = Column(String(36), primary_key=True, default=_new_id)
    visit_id = Column(String(36), ForeignKey("analytics_visits.id"), nullable=True, index=True)
    session_id = Column(String(100), nullable=False)
    event_type = Column(String(20), nullable=False)  # click, scroll
    page_path = Column(String(500), nullable=False)

    element_id = Column(String(255), nullable=True)
    element_class = Column(Text, nullable=True)
    element_text = Column(String(255), nullable=True)
    x_position = Column(Integer, nullable=True)
    y_position = Column(Integer, nullable=True)
    scroll_depth = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    visit = relationship("AnalyticsVisit", back_populates="events")

    __table_args__ = (
        Index("ix_analytics_events_created", "created_at"),
    )
