"""Initial schema: ledger, catalog, streak settings and households.

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "a1b2c3d4e5f6"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    ]


def upgrade() -> None:
    """Create all tables."""
    op.create_table(
        "ledger_rows",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("date", sa.Date(), nullable=False, index=True),
        sa.Column("total_points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("encoded_activities", sa.Text(), nullable=False, server_default=""),
        sa.Column("positive_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("negative_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("week_number", sa.Integer(), nullable=False),
        sa.Column("submitter_identity", sa.String(255), nullable=False),
        sa.Column(
            "identity_key",
            sa.String(255),
            nullable=False,
            index=True,
            comment="Lowercased submitter identity for case-insensitive matching",
        ),
        sa.Column("version_id", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("date", "identity_key", name="uq_ledger_date_identity"),
        comment="Per-day, per-identity activity ledger",
    )

    op.create_table(
        "ledger_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "ledger_row_id",
            sa.Integer(),
            sa.ForeignKey("ledger_rows.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("date", sa.Date(), nullable=False, index=True),
        sa.Column("submitter_identity", sa.String(255), nullable=False),
        sa.Column("activity_name", sa.String(255), nullable=False),
        sa.Column("category", sa.String(100), nullable=False),
        sa.Column("base_points", sa.Integer(), nullable=False),
        sa.Column("bonus_points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("multiplier", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("streak_length", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("final_points", sa.Integer(), nullable=False),
        *_timestamps(),
        comment="Append-only log of scored activities",
    )

    op.create_table(
        "activity_definitions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False, server_default=""),
        sa.Column("points", sa.Integer(), nullable=True),
        sa.Column("category", sa.String(100), nullable=False, server_default=""),
        sa.Column(
            "required",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
            comment="Skipping a required activity costs its points",
        ),
        *_timestamps(),
        comment="Points reference for loggable activities",
    )

    op.create_table(
        "streak_settings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("bonus1_days", sa.Integer(), nullable=False),
        sa.Column("bonus2_days", sa.Integer(), nullable=False),
        sa.Column("multiplier_days", sa.Integer(), nullable=False),
        sa.Column("bonus1_points", sa.Integer(), nullable=False),
        sa.Column("bonus2_points", sa.Integer(), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "households",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "household_members",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "household_id",
            sa.String(36),
            sa.ForeignKey("households.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column(
            "identity",
            sa.String(255),
            nullable=False,
            comment="Lowercased member identity (email)",
        ),
        *_timestamps(),
        sa.UniqueConstraint("identity", name="uq_household_member_identity"),
    )


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table("household_members")
    op.drop_table("households")
    op.drop_table("streak_settings")
    op.drop_table("activity_definitions")
    op.drop_table("ledger_events")
    op.drop_table("ledger_rows")
