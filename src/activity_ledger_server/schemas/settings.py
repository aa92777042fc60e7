"""Streak settings schema."""

from typing import Any

from pydantic import BaseModel, Field, model_validator

from activity_ledger_server.core.config import settings as app_settings

# Keys written by older clients, mapped to the canonical lowercase names
_LEGACY_KEYS = {
    "BONUS_1": "bonus1",
    "BONUS_2": "bonus2",
    "MULTIPLIER": "multiplier",
}


class StreakThresholds(BaseModel):
    """Consecutive days required for each reward tier."""

    bonus1: int = Field(description="Days for the first flat bonus")
    bonus2: int = Field(description="Days for the second flat bonus")
    multiplier: int = Field(description="Days for double points")

    @model_validator(mode="after")
    def check_increasing(self) -> "StreakThresholds":
        if self.bonus1 < 1:
            raise ValueError("thresholds must be positive")
        if not self.bonus1 < self.bonus2 < self.multiplier:
            raise ValueError("thresholds must satisfy bonus1 < bonus2 < multiplier")
        return self


class StreakBonusPoints(BaseModel):
    """Flat points added at the bonus tiers."""

    bonus1: int = Field(description="Points added at the first tier")
    bonus2: int = Field(description="Points added at the second tier")


class StreakSettings(BaseModel):
    """Thresholds and bonus points applied to streaks.

    The canonical schema is lowercase. ``from_payload`` also accepts the
    uppercase ``BONUS_1``/``BONUS_2``/``MULTIPLIER`` keys and a
    ``bonusPoints`` alias for ``bonus_points``.
    """

    thresholds: StreakThresholds
    bonus_points: StreakBonusPoints = Field(alias="bonusPoints")

    model_config = {"populate_by_name": True}

    @classmethod
    def defaults(cls) -> "StreakSettings":
        """Settings from configuration, used until settings are saved."""
        return cls(
            thresholds=StreakThresholds(
                bonus1=app_settings.streak_bonus1_days,
                bonus2=app_settings.streak_bonus2_days,
                multiplier=app_settings.streak_multiplier_days,
            ),
            bonus_points=StreakBonusPoints(
                bonus1=app_settings.streak_bonus1_points,
                bonus2=app_settings.streak_bonus2_points,
            ),
        )

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "StreakSettings":
        """Build settings from a client payload, normalizing legacy keys.

        Raises:
            pydantic.ValidationError: If values are missing, non-integer or
                thresholds are not strictly increasing
        """
        thresholds = _normalize(payload.get("thresholds"))
        bonus_points = _normalize(payload.get("bonusPoints", payload.get("bonus_points")))
        return cls.model_validate({"thresholds": thresholds, "bonus_points": bonus_points})

    def to_payload(self) -> dict[str, Any]:
        """Serialize in the external payload shape."""
        return {
            "thresholds": self.thresholds.model_dump(),
            "bonusPoints": self.bonus_points.model_dump(),
        }


def _normalize(section: Any) -> Any:
    if not isinstance(section, dict):
        return section
    normalized: dict[str, Any] = {}
    for key, value in section.items():
        canonical = _LEGACY_KEYS.get(key, key)
        # Lowercase wins when a client sends both spellings
        if canonical in normalized and key != canonical:
            continue
        normalized[canonical] = value
    return normalized
