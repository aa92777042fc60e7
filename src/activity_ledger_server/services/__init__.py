"""Application services."""

from activity_ledger_server.services.aggregator import Aggregator
from activity_ledger_server.services.catalog import ActivityCatalogService, CatalogData
from activity_ledger_server.services.households import HouseholdDirectory
from activity_ledger_server.services.ledger import LedgerConflictError, LedgerService
from activity_ledger_server.services.points import StreakSettingsService
from activity_ledger_server.services.streaks import StreakReport, StreakService
from activity_ledger_server.services.submission import SubmissionResult, SubmissionService

__all__ = [
    "ActivityCatalogService",
    "Aggregator",
    "CatalogData",
    "HouseholdDirectory",
    "LedgerConflictError",
    "LedgerService",
    "StreakReport",
    "StreakService",
    "StreakSettingsService",
    "SubmissionResult",
    "SubmissionService",
]
