"""Create analytics_visits and analytics_events

Revision ID: analytics_tables_001
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

revision = "analytics_tables_001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "analytics_visits",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("session_id", sa.String(100), nullable=False, index=True),
        sa.Column("user_id", sa.String(100), nullable=True),
        sa.Column("page_path", sa.String(500), nullable=False),
        sa.Column("referrer", sa.Text, nullable=True),
        sa.Column("utm_source", sa.String(255), nullable=True),
        sa.Column("utm_medium", sa.String(255), nullable=True),
        sa.Column("utm_campaign", sa.String(255), nullable=True),
        sa.Column("utm_term", sa.String(255), nullable=True),
        sa.Column("utm_content", sa.String(255), nullable=True),
        sa.Column("device_type", sa.String(20), nullable=True),
        sa.Column("browser", sa.String(50), nullable=True),
        sa.Column("browser_version", sa.String(50), nullable=True),
        sa.Column("os", sa.String(50), nullable=True),
        sa.Column("os_version", sa.String(50), nullable=True),
        sa.Column("screen_width", sa.Integer, nullable=True),
        sa.Column("screen_height", sa.Integer, nullable=True),
        sa.Column("country", sa.String(100), nullable=True),
        sa.Column("region", sa.String(100), nullable=True),
        sa.Column("city", sa.String(100), nullable=True),
        sa.Column("entered_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("exited_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("time_on_page", sa.Integer, nullable=True),
        sa.Column("is_bounce", sa.Boolean, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_analytics_visits_entered", "analytics_visits", ["entered_at"])

    op.create_table(
        "analytics_events",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("visit_id", sa.String(36), sa.ForeignKey("analytics_visits.id"), nullable=True, index=True),
        sa.Column("session_id", sa.String(100), nullable=False),
        sa.Column("event_type", sa.String(20), nullable=False),
        sa.Column("page_path", sa.String(500), nullable=False),
        sa.Column("element_id", sa.String(255), nullable=True),
        sa.Column("element_class", sa.Text, nullable=True),
        sa.Column("element_text", sa.String(255), nullable=True),
        sa.Column("x_position", sa.Integer, nullable=True),
        sa.Column("y_position", sa.Integer, nullable=True),
        sa.Column("scroll_depth", sa.Integer, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_analytics_events_created", "analytics_events", ["created_at"])


def downgrade() -> None:
    op.drop_table("analytics_events")
    op.drop_table("analytics_visits")
