# =============================================================================
# Database Engines — Async for the API, Per-Process Sync for Stage Workers
# =============================================================================
#
# DESIGN DECISION: Two engines over one schema.
# - FastAPI triggers use the async engine (asyncpg). Handlers commit
#   EXPLICITLY because the upload trigger must commit before it enqueues;
#   the dependency only rolls back and closes.
# - Celery stage workers are synchronous and use a sync engine (psycopg2),
#   created lazily so the API process never loads the driver.
#
# DESIGN DECISION: One sync engine PER WORKER PROCESS. Celery's prefork
# pool forks children after the parent may already have touched the
# database; a pooled connection shared across a fork corrupts both ends.
# `reset_sync_engine()` runs on `worker_process_init` and drops anything
# inherited. A prefork child runs one task at a time, so its pool is small.
#
# Each repository call is one short transaction:
#   with get_sync_session() as session:   ← BEGIN
#       ...                               ← COMMIT on exit, ROLLBACK on error
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator, Iterator
from contextlib import contextmanager

from sqlalchemy import Engine, create_engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import Session, sessionmaker

from docpipe.config import settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# API (async)
# ---------------------------------------------------------------------------
# No connection is opened until the first request.

async_engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_size=5,
    max_overflow=10,
)

async_session_factory = async_sessionmaker(async_engine, expire_on_commit=False)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one session per request, rolled back on error."""
    async with async_session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


# ---------------------------------------------------------------------------
# Stage workers (sync)
# ---------------------------------------------------------------------------

_sync_engine: Engine | None = None
_sync_sessions: sessionmaker[Session] | None = None


def _sync_session_factory() -> sessionmaker[Session]:
    global _sync_engine, _sync_sessions
    if _sync_sessions is None:
        _sync_engine = create_engine(
            settings.database_url_sync,
            echo=settings.debug,
            pool_size=1,
            max_overflow=2,
            pool_pre_ping=True,
        )
        _sync_sessions = sessionmaker(_sync_engine, expire_on_commit=False)
    return _sync_sessions


def reset_sync_engine() -> None:
    """Forget any engine inherited from a parent process (call after fork)."""
    global _sync_engine, _sync_sessions
    if _sync_engine is not None:
        # close=False: the parent still owns those sockets
        _sync_engine.dispose(close=False)
        logger.debug("Discarded inherited sync engine")
    _sync_engine = None
    _sync_sessions = None


@contextmanager
def get_sync_session() -> Iterator[Session]:
    with _sync_session_factory()() as session, session.begin():
        yield session
