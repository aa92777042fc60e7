"""Database models."""

from activity_ledger_server.models.activity_definition import ActivityDefinition
from activity_ledger_server.models.base import Base
from activity_ledger_server.models.household import Household, HouseholdMember
from activity_ledger_server.models.ledger import LEDGER_COLUMNS, LedgerEvent, LedgerRow
from activity_ledger_server.models.settings import StreakSettingsRecord

__all__ = [
    "Base",
    "ActivityDefinition",
    "Household",
    "HouseholdMember",
    "LEDGER_COLUMNS",
    "LedgerEvent",
    "LedgerRow",
    "StreakSettingsRecord",
]
