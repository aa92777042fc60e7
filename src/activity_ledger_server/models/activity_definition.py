"""Activity catalog model."""

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from activity_ledger_server.models.base import Base, TimestampMixin


class ActivityDefinition(Base, TimestampMixin):
    """Base points and category for a named activity.

    Rows are validated when the catalog is loaded, not on write, so a row
    with a blank name/category or missing points is stored as-is and skipped
    at read time.
    """

    __tablename__ = "activity_definitions"
    __table_args__ = ({"comment": "Points reference for loggable activities"},)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    points: Mapped[int | None] = mapped_column(Integer)
    category: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    required: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Skipping a required activity costs its points",
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<ActivityDefinition(name={self.name}, points={self.points}, "
            f"category={self.category})>"
        )
