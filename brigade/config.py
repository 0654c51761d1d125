"""
brigade.config — YAML Configuration Loader
===========================================

Reads ``config.yaml`` for infrastructure and tuning settings: Discord
identity, the role → tier mapping, alert channel, and the thresholds of the
point-adjustment safeguards.  Secrets (bot token, database URL) stay in
``.env``.

Usage::

    from brigade.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.community_name)    # "Motorized Rifle Brigade"
    print(cfg.approval_threshold)  # 50
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from pathlib import Path

import yaml

from brigade.engine.permissions import Tier, parse_tier


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class BrigadeConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    community_name: str

    # Discord
    guild_id: int

    # Role snowflake → permission tier.  Built once at startup so a role
    # rename on Discord never changes who is authorized.
    role_tiers: dict[int, Tier] = field(default_factory=dict)

    # Where approval requests and audit alerts are posted
    alert_channel_id: int | None = None
    # Where promotions and streak milestones are celebrated
    announce_channel_id: int | None = None

    # Point-adjustment safeguards
    approval_threshold: int = 50
    approval_window_hours: int = 24
    rate_limit_max: int = 10
    rate_limit_window_seconds: int = 3600

    # All rank locks expire at this hour (UTC)
    rank_lock_reference_hour: int = 6

    # Quota cycle calendar
    cycle_anchor: date | None = None
    cycle_length_days: int = 14


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def _optional_int(raw: dict, key: str) -> int | None:
    value = raw.get(key)
    return int(value) if value else None


def _parse_role_tiers(raw: dict | None) -> dict[int, Tier]:
    return {int(role_id): parse_tier(tier) for role_id, tier in (raw or {}).items()}


def _parse_anchor(value) -> date | None:
    if not value:
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


def load_config(path: str | Path = "config.yaml") -> BrigadeConfig:
    """Read *path* and return a :class:`BrigadeConfig` instance.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    ValueError
        If a tier name in ``role_tiers`` is not recognised.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    safeguards: dict = raw.get("safeguards") or {}
    cycle: dict = raw.get("cycle") or {}

    return BrigadeConfig(
        community_name=raw["community_name"],
        guild_id=int(raw["guild_id"]),
        role_tiers=_parse_role_tiers(raw.get("role_tiers")),
        alert_channel_id=_optional_int(raw, "alert_channel_id"),
        announce_channel_id=_optional_int(raw, "announce_channel_id"),
        approval_threshold=int(safeguards.get("approval_threshold", 50)),
        approval_window_hours=int(safeguards.get("approval_window_hours", 24)),
        rate_limit_max=int(safeguards.get("rate_limit_max", 10)),
        rate_limit_window_seconds=int(safeguards.get("rate_limit_window_seconds", 3600)),
        rank_lock_reference_hour=int(raw.get("rank_lock_reference_hour", 6)),
        cycle_anchor=_parse_anchor(cycle.get("anchor")),
        cycle_length_days=int(cycle.get("length_days", 14)),
    )
