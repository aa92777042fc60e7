"""Pydantic schemas for API payloads."""

from activity_ledger_server.schemas.ledger import (
    ActivityDefinitionPayload,
    BackfillRequest,
    SubmissionRequest,
)
from activity_ledger_server.schemas.settings import (
    StreakBonusPoints,
    StreakSettings,
    StreakThresholds,
)

__all__ = [
    "ActivityDefinitionPayload",
    "BackfillRequest",
    "StreakBonusPoints",
    "StreakSettings",
    "StreakThresholds",
    "SubmissionRequest",
]
