"""
brigade.engine.permissions — Role Set → Capability Tier
========================================================

Pure functions, no Discord or DB I/O.  Callers resolve a member's roles to
a :class:`Tier` once (via the ``role_tiers`` mapping from ``config.yaml``)
and then ask capability questions of the tier.

Tiers:
  GENERAL (100)            — everything, exempt from rate limits and approval
  COMMANDING_OFFICER (50)  — point management, promotions up to level 8
  OPERATOR (10)            — submit events, view own stats and leaderboards
  NONE (0)                 — unknown or missing role data; no capabilities
"""

from __future__ import annotations

import enum
from collections.abc import Iterable, Mapping

__all__ = [
    "CO_MAX_PROMOTION_LEVEL",
    "Tier",
    "bypasses_approval",
    "bypasses_rate_limit",
    "can_approve_requests",
    "can_bypass_rank_lock",
    "can_delete_operators",
    "can_force_promotions",
    "can_manage_points",
    "can_manage_promotions",
    "can_promote_to_rank",
    "can_reset_cycle",
    "can_submit_events",
    "can_view_leaderboard",
    "can_view_other_stats",
    "can_view_own_stats",
    "parse_tier",
    "permission_summary",
    "resolve_tier",
]

# Commanding Officers may promote into levels up to and including this one
CO_MAX_PROMOTION_LEVEL = 8


class Tier(enum.IntEnum):
    NONE = 0
    OPERATOR = 10
    COMMANDING_OFFICER = 50
    GENERAL = 100


_TIER_ALIASES: dict[str, Tier] = {
    "none": Tier.NONE,
    "operator": Tier.OPERATOR,
    "member": Tier.OPERATOR,
    "commanding_officer": Tier.COMMANDING_OFFICER,
    "co": Tier.COMMANDING_OFFICER,
    "hr": Tier.COMMANDING_OFFICER,
    "general": Tier.GENERAL,
    "generals": Tier.GENERAL,
    "admin": Tier.GENERAL,
}


def parse_tier(value: str | int | Tier) -> Tier:
    """Map a config value (``"general"``, ``"co"``, ``50`` …) to a :class:`Tier`."""
    if isinstance(value, Tier):
        return value
    if isinstance(value, int):
        return Tier(value)
    key = str(value).strip().lower().replace(" ", "_").replace("-", "_")
    if key.isdigit():
        return Tier(int(key))
    try:
        return _TIER_ALIASES[key]
    except KeyError:
        raise ValueError(f"Unknown permission tier: {value!r}") from None


def resolve_tier(
    role_ids: Iterable[int] | None, role_tiers: Mapping[int, Tier] | None
) -> Tier:
    """Return the highest tier granted by any of *role_ids*.

    Fails closed: no roles, no mapping, or no mapped role ⇒ ``Tier.NONE``.
    """
    if not role_ids or not role_tiers:
        return Tier.NONE
    best = Tier.NONE
    for role_id in role_ids:
        tier = role_tiers.get(role_id)
        if tier is not None and tier > best:
            best = Tier(tier)
    return best


# ---------------------------------------------------------------------------
# Operator capabilities
# ---------------------------------------------------------------------------
def can_submit_events(tier: Tier) -> bool:
    return tier >= Tier.OPERATOR


def can_view_own_stats(tier: Tier) -> bool:
    return tier >= Tier.OPERATOR


def can_view_leaderboard(tier: Tier) -> bool:
    return tier >= Tier.OPERATOR


# ---------------------------------------------------------------------------
# Commanding Officer capabilities
# ---------------------------------------------------------------------------
def can_manage_points(tier: Tier) -> bool:
    return tier >= Tier.COMMANDING_OFFICER


def can_view_other_stats(tier: Tier) -> bool:
    return tier >= Tier.COMMANDING_OFFICER


def can_manage_promotions(tier: Tier) -> bool:
    return tier >= Tier.COMMANDING_OFFICER


def can_promote_to_rank(tier: Tier, level: int) -> bool:
    """Generals may promote to any level; Commanding Officers up to level 8."""
    if tier >= Tier.GENERAL:
        return True
    if tier >= Tier.COMMANDING_OFFICER:
        return level <= CO_MAX_PROMOTION_LEVEL
    return False


# ---------------------------------------------------------------------------
# General-only capabilities
# ---------------------------------------------------------------------------
def can_force_promotions(tier: Tier) -> bool:
    return tier >= Tier.GENERAL


def can_bypass_rank_lock(tier: Tier) -> bool:
    return tier >= Tier.GENERAL


def can_delete_operators(tier: Tier) -> bool:
    return tier >= Tier.GENERAL


def can_reset_cycle(tier: Tier) -> bool:
    return tier >= Tier.GENERAL


def can_approve_requests(tier: Tier) -> bool:
    return tier >= Tier.GENERAL


def bypasses_rate_limit(tier: Tier) -> bool:
    return tier >= Tier.GENERAL


def bypasses_approval(tier: Tier) -> bool:
    return tier >= Tier.GENERAL


def permission_summary(tier: Tier) -> dict[str, bool]:
    """All capability flags for *tier* (diagnostics, ``/stats`` footer)."""
    return {
        "submit_events": can_submit_events(tier),
        "view_own_stats": can_view_own_stats(tier),
        "view_leaderboard": can_view_leaderboard(tier),
        "manage_points": can_manage_points(tier),
        "view_other_stats": can_view_other_stats(tier),
        "manage_promotions": can_manage_promotions(tier),
        "force_promotions": can_force_promotions(tier),
        "bypass_rank_lock": can_bypass_rank_lock(tier),
        "delete_operators": can_delete_operators(tier),
        "reset_cycle": can_reset_cycle(tier),
        "approve_requests": can_approve_requests(tier),
        "bypass_rate_limit": bypasses_rate_limit(tier),
        "bypass_approval": bypasses_approval(tier),
    }
