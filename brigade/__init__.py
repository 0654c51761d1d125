"""
Brigade — Rank, Quota & Streak Tracking for a Volunteer Organization
=====================================================================
Members submit activity events and earn points, climb a fifteen-level rank
ladder, build consecutive-cycle streak bonuses, and are held to a biweekly
quota.  Large point adjustments by Commanding Officers go through a
rate-limited, time-boxed approval by the Generals.

Package layout::

    brigade/
    ├── config.py          # YAML → typed Python config
    ├── errors.py          # Error taxonomy shared by services and cogs
    ├── constants.py       # Presentation constants + time helpers
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # Operator, PromotionRecord, EventLog
    ├── engine/
    │   ├── permissions.py # Role set → capability tier
    │   ├── points.py      # Event points, streak bonus, adjustments
    │   ├── ranks.py       # 15-level rank table, eligibility, rank locks
    │   ├── quota.py       # Per-rank quota + cycle calendar
    │   ├── streaks.py     # Consecutive-cycle streaks
    │   ├── store.py       # Keyed in-memory store with TTL eviction
    │   ├── rate_limit.py  # Sliding-window limiter
    │   └── approval.py    # Point commands + approval state machine
    ├── services/
    │   ├── operator_service.py  # Persistence + point mutation path
    │   ├── cycle_service.py     # Bulk cycle reset / quota / streak passes
    │   ├── approval_service.py  # Approval workflow orchestration
    │   └── embeds.py            # Discord embed builders
    └── bot/
        ├── core.py        # Bot subclass, cog loader
        ├── adapters.py    # Discord review surface + result sink
        └── cogs/
            ├── points.py  # /manage-points, /submit-event, /stats
            ├── hr.py      # /promote, /reset-cycle, /remove-operator
            └── tasks.py   # Daily sweeps + scheduled cycle reset
"""

__version__ = "0.1.0"
