"""
brigade.constants — Shared Constants & Helpers
===============================================

Single source of truth for presentation constants and the UTC time helpers.
Import from here instead of duplicating in cogs, services, and embeds.
"""

from __future__ import annotations

from datetime import UTC, datetime

# ---------------------------------------------------------------------------
# Point-adjustment presentation (used by embeds and cog replies)
# ---------------------------------------------------------------------------
ACTION_LABELS: dict[str, str] = {
    "add": "\u2795 Add Points",                 # ➕
    "remove": "\u2796 Remove Points",           # ➖
    "set": "\U0001f527 Set Points",             # 🔧
    "remove_all": "\U0001f6a8 REMOVE ALL POINTS",  # 🚨
}

APPROVE_EMOJI = "\u2705"  # ✅
DENY_EMOJI = "\u274c"     # ❌

TIER_LABELS: dict[int, str] = {
    100: "General",
    50: "Commanding Officer",
    10: "Operator",
    0: "No Role",
}

# Embed colours (hex ints)
COLOR_PENDING = 0xFFA500
COLOR_APPROVED = 0x00FF00
COLOR_DENIED = 0xFF0000
COLOR_EXPIRED = 0x808080
COLOR_RATE_LIMIT = 0xFF6600

# Alerts above this many points are shown as high severity
HIGH_SEVERITY_AMOUNT = 100


# ---------------------------------------------------------------------------
# Time helpers
# ---------------------------------------------------------------------------
def utcnow() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    """Normalize a stored datetime to an aware UTC instant.

    SQLite hands back naive datetimes even for ``DateTime(timezone=True)``
    columns; those are treated as UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def action_label(action: str) -> str:
    return ACTION_LABELS.get(str(action), str(action))
