"""Request schemas for submissions and catalog edits."""

import datetime

from pydantic import BaseModel, Field, field_validator


class SubmissionRequest(BaseModel):
    """Activities completed (and required ones skipped) by the current principal."""

    activities: list[str] = Field(default_factory=list, description="Completed activity names")
    skipped: list[str] = Field(
        default_factory=list,
        description="Skipped activity names; required ones cost their points",
    )


class BackfillRequest(SubmissionRequest):
    """A submission recorded against a past day on behalf of an identity."""

    identity: str = Field(description="Submitter identity to record the entry for")
    date: datetime.date = Field(description="Day to record the entry against")

    @field_validator("identity")
    @classmethod
    def identity_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("identity must not be blank")
        return value.strip()


class ActivityDefinitionPayload(BaseModel):
    """One catalog entry as edited by an administrator."""

    name: str = Field(min_length=1, description="Activity name")
    points: int = Field(description="Base points (negative for undesirable activities)")
    category: str = Field(min_length=1, description="Category name")
    required: bool = Field(default=False, description="Skipping costs the activity's points")
