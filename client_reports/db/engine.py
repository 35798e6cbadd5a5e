# =============================================================================
# Database Engine & Session Management
# =============================================================================
#
# DESIGN DECISION: Async SQLAlchemy Engine
# The report endpoints and the store-backed source adapters all run on the
# event loop, so every database call goes through the async engine with the
# `asyncpg` driver:
# - All DB queries use `await` (e.g., `await session.execute(...)`)
# - Sessions are created per-request via FastAPI's dependency injection,
#   or per-call by adapters and background tasks
#
# COMMIT POLICY:
# Two session patterns exist in this codebase:
#
# 1. Dependency-injected (get_async_session via Depends):
#    Auto-commits when the request handler returns, rolls back on error.
#
# 2. Self-managed (async_session_factory() directly):
#    Used by source adapters (read-only, one short session per fetch so a
#    timed-out adapter releases its connection), the ReportRun background
#    task (api/reports.py) and the audit middleware (api/audit.py).
#    Writers MUST commit explicitly.
# =============================================================================

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from client_reports.config import settings

# ---------------------------------------------------------------------------
# Async Engine
# ---------------------------------------------------------------------------
# pool_size covers one report fan-out (13 concurrent adapter reads) without
# queueing; max_overflow absorbs concurrent reports.
# ---------------------------------------------------------------------------
async_engine = create_async_engine(
    settings.database_url,
    echo=settings.database_echo,
    pool_size=15,
    max_overflow=15,
)

# ---------------------------------------------------------------------------
# Session Factory
# ---------------------------------------------------------------------------
# expire_on_commit=False: loaded objects stay readable after commit, which
# matters in async code where lazy refreshes are not allowed.
# ---------------------------------------------------------------------------
async_session_factory = async_sessionmaker(
    bind=async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    The session is committed when the handler returns and rolled back if
    it raises.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
