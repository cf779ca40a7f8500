import time
from typing import AsyncIterator

import structlog
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from costguard.shared.core.config import Settings, get_settings

logger = structlog.get_logger()

SLOW_QUERY_THRESHOLD_SECONDS = 0.2


def _track_slow_queries(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "before_cursor_execute")
    def _start_timer(conn, _cursor, _statement, _parameters, _context, _executemany):
        conn.info.setdefault("query_start_time", []).append(time.perf_counter())

    @event.listens_for(engine.sync_engine, "after_cursor_execute")
    def _log_if_slow(conn, _cursor, statement, _parameters, _context, _executemany):
        elapsed = time.perf_counter() - conn.info["query_start_time"].pop(-1)
        if elapsed > SLOW_QUERY_THRESHOLD_SECONDS:
            logger.warning(
                "slow_query_detected",
                duration_seconds=round(elapsed, 3),
                statement=statement[:200],
            )


def build_engine(settings: Settings) -> AsyncEngine:
    """
    Engine for the budget store.

    SQLite (tests, local runs) gets a NullPool so connections never outlive
    the event loop that opened them; everything else uses a sized pool.
    """
    if settings.TESTING or settings.DATABASE_URL.startswith("sqlite"):
        pool_args = {"poolclass": NullPool}
    else:
        pool_args = {
            "pool_size": settings.DB_POOL_SIZE,
            "max_overflow": settings.DB_MAX_OVERFLOW,
            "pool_pre_ping": True,
            "pool_recycle": 300,
        }

    engine = create_async_engine(settings.DATABASE_URL, echo=settings.DEBUG, **pool_args)
    _track_slow_queries(engine)
    return engine


engine = build_engine(get_settings())

# ORM rows stay readable after commit; the alert pipeline hands them across awaits
async_session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency that provides a database session."""
    async with async_session_maker() as session:
        yield session
