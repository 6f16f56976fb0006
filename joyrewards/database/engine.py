"""
joyrewards.database.engine — Connections, Sessions & the Async Bridge
======================================================================

Every balance change in JoyRewards is a short conditional UPDATE plus a
ledger INSERT, so the pool favours many brief connections over a few long
ones.  Pool sizing can be tuned per deployment through ``DB_POOL_SIZE`` and
``DB_MAX_OVERFLOW`` without touching ``config.yaml``.

Routes that only *read* (balance, reconciliation dry-runs) open a
``read_only`` session: on PostgreSQL the transaction is declared
``READ ONLY`` and it is always rolled back, never committed.

The scheduled jobs are ``async`` routes; ``run_db`` moves their synchronous
service call onto a worker thread so the event loop keeps serving members.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine, text
from sqlalchemy.orm import Session

from joyrewards.database.models import Base

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

APPLICATION_NAME = "joyrewards"
DEFAULT_POOL_SIZE = 5
DEFAULT_MAX_OVERFLOW = 10


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("%s=%r is not an integer; using %d", name, raw, default)
        return default
    if value < 0:
        logger.warning("%s=%d is negative; using %d", name, value, default)
        return default
    return value


def pool_settings() -> dict[str, int]:
    """Pool keyword arguments, honouring ``DB_POOL_SIZE`` / ``DB_MAX_OVERFLOW``."""
    return {
        "pool_size": _env_int("DB_POOL_SIZE", DEFAULT_POOL_SIZE),
        "max_overflow": _env_int("DB_MAX_OVERFLOW", DEFAULT_MAX_OVERFLOW),
        "pool_timeout": 10,
        "pool_recycle": 3600,
    }


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine(url: str | None = None) -> Engine:
    """Build the PostgreSQL :class:`Engine` from *url* or ``DATABASE_URL``.

    Connections are tagged with ``application_name=joyrewards`` so payout
    jobs can be told apart in ``pg_stat_activity``.

    Raises
    ------
    RuntimeError
        If neither *url* nor ``DATABASE_URL`` is set.
    """
    url = url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and set a valid PostgreSQL URL."
        )

    engine = create_engine(
        url,
        pool_pre_ping=True,
        connect_args={"application_name": APPLICATION_NAME},
        **pool_settings(),
    )
    logger.info(
        "Database engine created → %s",
        engine.url.render_as_string(hide_password=True),
    )
    return engine


def init_db(engine: Engine) -> None:
    """Create missing tables, then seed settings, policies and milestones.

    Production schemas come from ``alembic upgrade head``; this keeps a
    fresh dev database usable on first start.
    """
    Base.metadata.create_all(engine)
    logger.info("Database tables verified / created.")

    from joyrewards.database.seed import seed_defaults

    seed_defaults(engine)


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine, *, read_only: bool = False) -> Iterator[Session]:
    """Yield a :class:`Session` that commits on success and rolls back on error.

    With ``read_only=True`` nothing is ever committed.
    """
    session = Session(engine, expire_on_commit=False)
    try:
        if read_only and engine.dialect.name == "postgresql":
            session.execute(text("SET TRANSACTION READ ONLY"))
        yield session
        if read_only:
            session.rollback()
        else:
            session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Run a synchronous service call on the default thread pool."""
    return await asyncio.to_thread(func, *args, **kwargs)
