"""add debriefs

One post-event debrief per event (unique on event_id, removed with the event).

Revision ID: 8e4b2f6c9a31
Revises: 5c1e0a7d2b10
Create Date: 2026-10-19 14:00:00.000000
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '8e4b2f6c9a31'
down_revision = '5c1e0a7d2b10'
branch_labels = None
depends_on = None


def _money(name):
    return sa.Column(name, sa.Numeric(precision=12, scale=2, asdecimal=False), nullable=True)


def upgrade():
    op.create_table(
        "debriefs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("event_id", sa.String(length=36), nullable=False),
        sa.Column("attendance", sa.Integer(), nullable=True),
        sa.Column("baseline_attendance", sa.Integer(), nullable=True),
        _money("wet_takings"),
        _money("food_takings"),
        _money("baseline_wet_takings"),
        _money("baseline_food_takings"),
        sa.Column("promo_effectiveness", sa.Integer(), nullable=True),
        sa.Column("highlights", sa.Text(), nullable=True),
        sa.Column("issues", sa.Text(), nullable=True),
        sa.Column("guest_sentiment_notes", sa.Text(), nullable=True),
        sa.Column("operational_notes", sa.Text(), nullable=True),
        sa.Column("would_book_again", sa.Boolean(), nullable=True),
        sa.Column("next_time_actions", sa.Text(), nullable=True),
        sa.Column("submitted_by", sa.Integer(), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["event_id"], ["events.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["submitted_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("event_id"),
    )


def downgrade():
    op.drop_table("debriefs")
