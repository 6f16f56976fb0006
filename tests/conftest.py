"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os
from datetime import UTC, date, datetime

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of joyrewards.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)
os.environ.setdefault("CRON_SECRET", "test-cron-secret")

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine, event  # noqa: E402

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite doesn't support JSONB natively, but SQLAlchemy's JSON type works.
# We register a custom type compiler so SQLite renders JSONB as TEXT.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from joyrewards.config import JoyRewardsConfig  # noqa: E402
from joyrewards.database.models import (  # noqa: E402
    Base,
    CoinReward,
    Profile,
    Sticker,
    StickerCollection,
)
from joyrewards.database.seed import seed_defaults  # noqa: E402
from joyrewards.engine.policy import RewardPolicy  # noqa: E402

TZ = "America/Denver"
# 12:00 local (MDT) on 2026-03-15
NOW = datetime(2026, 3, 15, 18, 0, tzinfo=UTC)
TODAY = date(2026, 3, 15)

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent)."""
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()


@pytest.fixture
def db_engine() -> Engine:
    """In-memory SQLite engine with all JoyRewards tables and seed data.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used in the job routes).  pysqlite's
    own transaction handling is switched off and BEGIN emitted explicitly,
    so SAVEPOINTs nest inside the session's transaction as on PostgreSQL.
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    seed_defaults(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a transactional session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


@pytest.fixture
def policy(db_engine: Engine) -> RewardPolicy:
    p = RewardPolicy(db_engine)
    p.load_all()
    return p


@pytest.fixture
def config() -> JoyRewardsConfig:
    return JoyRewardsConfig(community_name="Test House", timezone=TZ)


# ---------------------------------------------------------------------------
# Data factories
# ---------------------------------------------------------------------------
def add_profile(engine: Engine, user_id: str, coins: int = 0) -> None:
    """Insert a profile with an opening balance recorded in the ledger."""
    from joyrewards.services.ledger_service import earn_coins

    with Session(engine) as session:
        session.add(Profile(id=user_id, coins=0))
        session.commit()
    if coins:
        earn_coins(engine, user_id, coins, "Opening balance")


def add_collection(
    engine: Engine,
    rates: list[float] | None = None,
    *,
    rarities: list[str] | None = None,
    name: str = "Garden Friends",
    start_date: date = date(2020, 1, 1),
    end_date: date | None = None,
    use_default_rarity: bool = False,
    display_order: int = 0,
) -> tuple[int, list[int]]:
    """Create a collection with one sticker per rate.  Returns (collection_id, sticker_ids)."""
    rates = rates if rates is not None else [1.0, 1.0, 1.0]
    rarities = rarities or ["common"] * len(rates)
    with Session(engine) as session:
        collection = StickerCollection(
            name=name,
            theme="garden",
            is_active=True,
            start_date=start_date,
            end_date=end_date,
            display_order=display_order,
            use_default_rarity=use_default_rarity,
        )
        session.add(collection)
        session.flush()
        stickers = [
            Sticker(
                collection_id=collection.id,
                name=f"{name} #{i + 1}",
                rarity=rarity,
                drop_rate=rate,
                sticker_number=i + 1,
            )
            for i, (rate, rarity) in enumerate(zip(rates, rarities))
        ]
        session.add_all(stickers)
        session.commit()
        return collection.id, [s.id for s in stickers]


def set_reward(engine: Engine, reward_key: str, amount: int, active: bool = True) -> None:
    with Session(engine) as session:
        row = session.get(CoinReward, reward_key)
        if row is None:
            row = CoinReward(reward_key=reward_key, reward_name=reward_key)
            session.add(row)
        row.coin_amount = amount
        row.is_active = active
        session.commit()


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------
def make_token(sub: str = "member-1", *, is_admin: bool = False, name: str = "Tester") -> str:
    """Create a member (or admin) JWT."""
    import jwt

    from joyrewards.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode(
        {"sub": sub, "name": name, "is_admin": is_admin},
        JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )


def make_admin_token(sub: str = "admin-1") -> str:
    return make_token(sub, is_admin=True, name="FixtureAdmin")


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(db_engine, policy, config):
    """FastAPI TestClient wired to the fixture engine, policy and config."""
    from fastapi.testclient import TestClient

    from joyrewards.api.deps import get_config, get_engine, get_policy
    from joyrewards.api.main import app

    app.dependency_overrides[get_engine] = lambda: db_engine
    app.dependency_overrides[get_policy] = lambda: policy
    app.dependency_overrides[get_config] = lambda: config
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()
