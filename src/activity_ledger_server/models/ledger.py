"""Ledger data models."""

from datetime import date
from typing import Any

from sqlalchemy import Date, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from activity_ledger_server.core.dates import format_points, format_short
from activity_ledger_server.models.base import Base, TimestampMixin

# Positional column order of an exported ledger row
LEDGER_COLUMNS = [
    "Date",
    "TotalPoints",
    "EncodedActivities",
    "PositiveCount",
    "NegativeCount",
    "WeekNumber",
    "SubmitterIdentity",
]


class LedgerRow(Base, TimestampMixin):
    """One day of scored activities for one submitter.

    ``encoded_activities`` holds the comma-joined display tokens; counters
    reflect the original (pre-bonus) sign of each activity. ``version_id``
    guards the read-modify-write merge against lost updates.
    """

    __tablename__ = "ledger_rows"
    __table_args__ = (
        UniqueConstraint("date", "identity_key", name="uq_ledger_date_identity"),
        {"comment": "Per-day, per-identity activity ledger"},
    )

    # Primary key (monotonic, so higher id = more recently written)
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    total_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    encoded_activities: Mapped[str] = mapped_column(Text, nullable=False, default="")
    positive_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    negative_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    week_number: Mapped[int] = mapped_column(Integer, nullable=False)
    submitter_identity: Mapped[str] = mapped_column(String(255), nullable=False)
    identity_key: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
        comment="Lowercased submitter identity for case-insensitive matching",
    )

    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<LedgerRow(date={self.date}, identity={self.submitter_identity}, "
            f"points={self.total_points})>"
        )

    def to_row(self) -> list[Any]:
        """Positional values in ``LEDGER_COLUMNS`` order."""
        return [
            self.date,
            self.total_points,
            self.encoded_activities,
            self.positive_count,
            self.negative_count,
            self.week_number,
            self.submitter_identity,
        ]

    def to_display_row(self) -> list[str]:
        """Positional values formatted for display (short date, signed points)."""
        return [
            format_short(self.date),
            format_points(self.total_points),
            self.encoded_activities,
            str(self.positive_count),
            str(self.negative_count),
            str(self.week_number),
            self.submitter_identity,
        ]

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "total_points": self.total_points,
            "encoded_activities": self.encoded_activities,
            "positive_count": self.positive_count,
            "negative_count": self.negative_count,
            "week_number": self.week_number,
            "submitter_identity": self.submitter_identity,
        }


class LedgerEvent(Base, TimestampMixin):
    """Structured record of one scored activity within one submission.

    Append-only. The token string on ``LedgerRow`` is the display projection
    of these events.
    """

    __tablename__ = "ledger_events"
    __table_args__ = ({"comment": "Append-only log of scored activities"},)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ledger_row_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("ledger_rows.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    submitter_identity: Mapped[str] = mapped_column(String(255), nullable=False)
    activity_name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)

    base_points: Mapped[int] = mapped_column(Integer, nullable=False)
    bonus_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    multiplier: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    streak_length: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    final_points: Mapped[int] = mapped_column(Integer, nullable=False)

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<LedgerEvent(date={self.date}, identity={self.submitter_identity}, "
            f"activity={self.activity_name}, points={self.final_points})>"
        )
