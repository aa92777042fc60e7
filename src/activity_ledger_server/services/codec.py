"""Ledger entry codec.

A scored activity is stored as a display token inside the ledger row:

    ➕ Exercise for 30 minutes (🔥5) (+3)
    ➖ Skipped breakfast (-2)

The sign glyph follows the final points (zero is positive and rendered
``+0``). The streak annotation appears only for streaks of two days or more;
its flame count shows the highest threshold tier reached. Tokens in one row
are joined with ``", "``.

Historical rows are only ever re-read through ``decode_entry`` and
``split_entries``. Every reader must go through this module.
"""

import re
from dataclasses import dataclass

import structlog

logger = structlog.get_logger()

POSITIVE_GLYPH = "➕"
NEGATIVE_GLYPH = "➖"
STREAK_GLYPH = "🔥"
ENTRY_SEPARATOR = ", "

# Separator only counts when the next token starts with a sign glyph, so
# commas inside activity names survive.
_SPLIT_PATTERN = re.compile(rf",\s*(?=[{POSITIVE_GLYPH}{NEGATIVE_GLYPH}])")

_TOKEN_PATTERN = re.compile(
    rf"^(?P<sign>[{POSITIVE_GLYPH}{NEGATIVE_GLYPH}])\s"
    r"(?P<name>.+?)\s*"
    rf"(?:\((?P<flames>{STREAK_GLYPH}+)(?P<streak>\d+)\)\s*)?"
    r"\((?P<points>[+-]?\d+)\)$"
)

_SIGN_PATTERN = re.compile(rf"[{POSITIVE_GLYPH}{NEGATIVE_GLYPH}]\s")


@dataclass(frozen=True)
class DecodedEntry:
    """A token parsed back from a ledger row."""

    name: str
    points: int
    streak_length: int = 0

    @property
    def positive(self) -> bool:
        return self.points >= 0


def streak_flames(streak_length: int, bonus2_days: int, multiplier_days: int) -> str:
    """Flame glyphs for the highest streak tier reached."""
    if streak_length >= multiplier_days:
        return STREAK_GLYPH * 3
    if streak_length >= bonus2_days:
        return STREAK_GLYPH * 2
    return STREAK_GLYPH


def encode_entry(
    name: str,
    points: int,
    streak_length: int = 0,
    bonus2_days: int = 7,
    multiplier_days: int = 14,
) -> str:
    """Render one scored activity as a ledger token.

    Args:
        name: Base activity name (must not end in a parenthesized integer)
        points: Final points awarded, including any streak bonus
        streak_length: Streak length at submission time
        bonus2_days: Second bonus threshold (selects two flames)
        multiplier_days: Multiplier threshold (selects three flames)

    Raises:
        ValueError: If the name is blank
    """
    name = name.strip()
    if not name:
        raise ValueError("Activity name must not be blank")

    glyph = POSITIVE_GLYPH if points >= 0 else NEGATIVE_GLYPH
    signed_points = f"+{points}" if points >= 0 else str(points)

    streak_text = ""
    if streak_length >= 2:
        flames = streak_flames(streak_length, bonus2_days, multiplier_days)
        streak_text = f" ({flames}{streak_length})"

    return f"{glyph} {name}{streak_text} ({signed_points})"


def join_entries(tokens: list[str]) -> str:
    return ENTRY_SEPARATOR.join(t for t in tokens if t)


def append_entries(existing: str, new: str) -> str:
    """Concatenate two encoded strings with the row separator."""
    if not existing:
        return new
    if not new:
        return existing
    return f"{existing}{ENTRY_SEPARATOR}{new}"


def split_entries(encoded: str | None) -> list[str]:
    """Split a ledger cell into its raw tokens."""
    if not encoded or not encoded.strip():
        return []
    return [part.strip() for part in _SPLIT_PATTERN.split(encoded.strip()) if part.strip()]


def decode_entry(token: str) -> DecodedEntry | None:
    """Parse one token.

    Returns:
        The decoded entry, or None (logged) when the token does not match
    """
    match = _TOKEN_PATTERN.match(token.strip())
    if not match:
        logger.warning("Skipping unparseable ledger token", token=token)
        return None

    name = match.group("name").strip()
    if not name:
        logger.warning("Skipping ledger token with blank name", token=token)
        return None

    streak = match.group("streak")
    return DecodedEntry(
        name=name,
        points=int(match.group("points")),
        streak_length=int(streak) if streak else 0,
    )


def decode_name(token: str) -> str | None:
    """Base activity name of a token, or None when it does not parse."""
    entry = decode_entry(token)
    return entry.name if entry else None


def decode_entries(encoded: str | None) -> list[DecodedEntry]:
    """Decode every parseable token in a ledger cell, in order."""
    entries = []
    for token in split_entries(encoded):
        entry = decode_entry(token)
        if entry is not None:
            entries.append(entry)
    return entries


def count_entries(encoded: str | None) -> int:
    """Number of tokens in a ledger cell, counted by sign glyphs."""
    if not encoded:
        return 0
    return len(_SIGN_PATTERN.findall(encoded))
