"""
JoyRewards — Coin Ledger & Collectible Rewards Backend
=======================================================
Keeps the community's virtual-coin economy honest: every coin earned in a
game, chore, streak or leaderboard payout flows through one ledger, is
paid at most once per period, and every sticker drawn from a scratch card
comes out of a weighted, auditable draw.

Package layout::

    joyrewards/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Rarity tiers, tier ladder, period/scope keys
    ├── errors.py          # Domain error taxonomy
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   ├── models.py      # All ORM models
    │   └── seed.py        # Default settings, reward policies, milestones
    ├── engine/
    │   ├── policy.py      # RewardPolicy — reward amounts + settings
    │   ├── drops.py       # Weighted sticker draw
    │   ├── ladder.py      # Leaderboard tier ladder
    │   └── calendar.py    # Local-day / reward-month helpers
    ├── services/
    │   ├── ledger_service.py      # Coin Award Engine (earn / deduct / award)
    │   ├── award_guard.py         # Idempotency guard (award records)
    │   ├── leaderboard_service.py # Monthly batch awarder
    │   ├── collection_service.py  # Draw + collection progress
    │   ├── scratch_service.py     # Scratch card state machine
    │   ├── streak_service.py      # Daily login streaks + milestones
    │   ├── wheel_service.py       # Chore reward wheel
    │   ├── reconciliation_service.py  # Balance vs ledger audit
    │   └── admin_service.py       # Audit-logged admin mutations
    └── api/
        ├── __main__.py    # python -m joyrewards.api (uvicorn)
        ├── main.py        # FastAPI app
        ├── deps.py        # JWT auth, cron secret, engine + policy dependencies
        └── routes/
            ├── coins.py     # Balance, history, policy reward claims
            ├── stickers.py  # Daily/bonus cards, scratch, album
            ├── streaks.py   # Streaks, chore wheel, time trials
            ├── jobs.py      # Scheduled leaderboard + reconciliation jobs
            └── admin.py     # Policies, milestones, settings, audit
"""

__version__ = "0.1.0"
