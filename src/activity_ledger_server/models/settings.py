"""Streak settings model for DB storage."""

from sqlalchemy import Integer
from sqlalchemy.orm import Mapped, mapped_column

from activity_ledger_server.models.base import Base, TimestampMixin


class StreakSettingsRecord(Base, TimestampMixin):
    """Persisted streak thresholds and bonus points.

    Single row table - only one settings record exists (id=1). Values are
    validated when read; an invalid row falls back to configured defaults.
    """

    __tablename__ = "streak_settings"

    # Primary key (always id=1, singleton pattern)
    id: Mapped[int] = mapped_column(primary_key=True, default=1)

    bonus1_days: Mapped[int] = mapped_column(Integer, nullable=False)
    bonus2_days: Mapped[int] = mapped_column(Integer, nullable=False)
    multiplier_days: Mapped[int] = mapped_column(Integer, nullable=False)
    bonus1_points: Mapped[int] = mapped_column(Integer, nullable=False)
    bonus2_points: Mapped[int] = mapped_column(Integer, nullable=False)

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<StreakSettingsRecord(thresholds={self.bonus1_days}/{self.bonus2_days}/"
            f"{self.multiplier_days}, bonus={self.bonus1_points}/{self.bonus2_points})>"
        )
