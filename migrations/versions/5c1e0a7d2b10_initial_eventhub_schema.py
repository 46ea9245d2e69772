"""initial eventhub schema

Creates the planning tables:
  - users, venues, venue_areas, venue_default_reviewers
  - events, event_areas, event_versions (unique on event_id + version)
  - notifications, audit_logs
  - ai_publish_queue, scheduled_jobs, email_logs, cron_alert_logs, weekly_digest_logs

Revision ID: 5c1e0a7d2b10
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5c1e0a7d2b10'
down_revision = None
branch_labels = None
depends_on = None


def _ts(name, **kw):
    return sa.Column(name, sa.DateTime(timezone=True), **kw)


def upgrade():
    # ── Venues & users ────────────────────────────────────────────────────
    op.create_table(
        "venues",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=150), nullable=False),
        sa.Column("address", sa.String(length=300), nullable=True),
        _ts("created_at", nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("full_name", sa.String(length=150), nullable=True),
        sa.Column("role", sa.String(length=30), nullable=False),
        sa.Column("venue_id", sa.Integer(), nullable=True),
        _ts("created_at", nullable=True),
        sa.ForeignKeyConstraint(["venue_id"], ["venues.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_email", "users", ["email"])
    op.create_index("ix_users_venue_id", "users", ["venue_id"])

    op.create_table(
        "venue_areas",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("venue_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=150), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["venue_id"], ["venues.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_venue_areas_venue_id", "venue_areas", ["venue_id"])

    op.create_table(
        "venue_default_reviewers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("venue_id", sa.Integer(), nullable=False),
        sa.Column("reviewer_id", sa.Integer(), nullable=False),
        _ts("created_at", nullable=True),
        sa.ForeignKeyConstraint(["venue_id"], ["venues.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["reviewer_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("venue_id", "reviewer_id", name="uq_venue_default_reviewer"),
    )
    op.create_index("ix_venue_default_reviewers_venue_id", "venue_default_reviewers", ["venue_id"])

    # ── Events ────────────────────────────────────────────────────────────
    op.create_table(
        "events",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("title", sa.String(length=150), nullable=False),
        sa.Column("status", sa.String(length=30), nullable=False),
        _ts("start_at", nullable=True),
        _ts("end_at", nullable=True),
        sa.Column("venue_id", sa.Integer(), nullable=True),
        sa.Column("venue_space", sa.String(length=300), nullable=True),
        sa.Column("assigned_reviewer_id", sa.Integer(), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        _ts("created_at", nullable=True),
        _ts("updated_at", nullable=True),
        sa.ForeignKeyConstraint(["venue_id"], ["venues.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["assigned_reviewer_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_events_status_start", "events", ["status", "start_at"])
    op.create_index("ix_events_venue_id", "events", ["venue_id"])
    op.create_index("ix_events_assigned_reviewer_id", "events", ["assigned_reviewer_id"])
    op.create_index("ix_events_created_by", "events", ["created_by"])

    op.create_table(
        "event_areas",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("event_id", sa.String(length=36), nullable=False),
        sa.Column("venue_area_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["event_id"], ["events.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["venue_area_id"], ["venue_areas.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("event_id", "venue_area_id", name="uq_event_area"),
    )
    op.create_index("ix_event_areas_event_id", "event_areas", ["event_id"])

    op.create_table(
        "event_versions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("event_id", sa.String(length=36), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        _ts("submitted_at", nullable=True),
        sa.Column("submitted_by", sa.Integer(), nullable=True),
        _ts("created_at", nullable=True),
        sa.ForeignKeyConstraint(["event_id"], ["events.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["submitted_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("event_id", "version", name="uq_event_version"),
    )
    op.create_index("ix_event_versions_event_id", "event_versions", ["event_id"])

    # ── Notifications & audit ─────────────────────────────────────────────
    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(length=40), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        _ts("sent_at", nullable=True),
        _ts("created_at", nullable=True),
        _ts("updated_at", nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_notifications_type_status", "notifications", ["type", "status"])
    op.create_index("idx_notifications_user_type", "notifications", ["user_id", "type"])
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("entity_type", sa.String(length=30), nullable=False),
        sa.Column("entity_id", sa.String(length=36), nullable=False),
        sa.Column("action", sa.String(length=60), nullable=False),
        sa.Column("actor_user_id", sa.Integer(), nullable=True),
        sa.Column("details_json", sa.Text(), nullable=True),
        _ts("timestamp", nullable=False),
        sa.ForeignKeyConstraint(["actor_user_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_audit_entity", "audit_logs", ["entity_type", "entity_id"])
    op.create_index("idx_audit_actor", "audit_logs", ["actor_user_id"])
    op.create_index("idx_audit_action", "audit_logs", ["action"])
    op.create_index("idx_audit_ts", "audit_logs", ["timestamp"])

    # ── Publishing & scheduling ───────────────────────────────────────────
    op.create_table(
        "ai_publish_queue",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("event_id", sa.String(length=36), nullable=False),
        sa.Column("content_id", sa.String(length=64), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        _ts("dispatched_at", nullable=True),
        _ts("created_at", nullable=True),
        _ts("updated_at", nullable=True),
        sa.ForeignKeyConstraint(["event_id"], ["events.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("content_id"),
    )
    op.create_index("idx_ai_publish_queue_status", "ai_publish_queue", ["status", "created_at"])
    op.create_index("ix_ai_publish_queue_event_id", "ai_publish_queue", ["event_id"])

    op.create_table(
        "scheduled_jobs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("job_name", sa.String(length=100), nullable=False),
        sa.Column("description", sa.String(length=500), nullable=True),
        sa.Column("schedule_config", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=True),
        sa.Column("is_enabled", sa.Boolean(), nullable=True),
        _ts("last_run_at", nullable=True),
        sa.Column("last_run_status", sa.String(length=20), nullable=True),
        sa.Column("last_run_duration_ms", sa.Integer(), nullable=True),
        sa.Column("last_run_result", sa.JSON(), nullable=True),
        sa.Column("run_count", sa.Integer(), nullable=True),
        sa.Column("error_count", sa.Integer(), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        _ts("created_at", nullable=True),
        _ts("updated_at", nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("job_name"),
    )

    op.create_table(
        "email_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("recipient_email", sa.String(length=255), nullable=False),
        sa.Column("recipient_name", sa.String(length=150), nullable=True),
        sa.Column("subject", sa.String(length=500), nullable=False),
        sa.Column("template_name", sa.String(length=100), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("message_id", sa.String(length=255), nullable=True),
        sa.Column("notification_id", sa.Integer(), nullable=True),
        _ts("sent_at", nullable=True),
        _ts("created_at", nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_email_logs_recipient_email", "email_logs", ["recipient_email"])

    op.create_table(
        "cron_alert_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("job", sa.String(length=100), nullable=False),
        sa.Column("severity", sa.String(length=20), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("detail", sa.Text(), nullable=True),
        sa.Column("response_status", sa.Integer(), nullable=True),
        sa.Column("response_body", sa.String(length=500), nullable=True),
        _ts("created_at", nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_cron_alert_logs_job", "cron_alert_logs", ["job"])
    op.create_index("ix_cron_alert_logs_created_at", "cron_alert_logs", ["created_at"])

    op.create_table(
        "weekly_digest_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        _ts("sent_at", nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade():
    for table in (
        "weekly_digest_logs", "cron_alert_logs", "email_logs", "scheduled_jobs",
        "ai_publish_queue", "audit_logs", "notifications", "event_versions",
        "event_areas", "events", "venue_default_reviewers", "venue_areas",
        "users", "venues",
    ):
        op.drop_table(table)
