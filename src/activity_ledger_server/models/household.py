"""Household membership models.

Households are managed elsewhere; this service only reads them to decide
whose ledger rows are aggregated together.
"""

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from activity_ledger_server.models.base import Base, TimestampMixin


class Household(Base, TimestampMixin):
    """A named group of identities sharing one ledger view."""

    __tablename__ = "households"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    def __repr__(self) -> str:
        """String representation."""
        return f"<Household(id={self.id}, name={self.name})>"


class HouseholdMember(Base, TimestampMixin):
    """Membership of one identity in one household."""

    __tablename__ = "household_members"
    __table_args__ = (UniqueConstraint("identity", name="uq_household_member_identity"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    household_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("households.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    identity: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Lowercased member identity (email)",
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"<HouseholdMember(household_id={self.household_id}, identity={self.identity})>"
