# =============================================================================
# Database Engine & Session Management
# =============================================================================
#
# Async SQLAlchemy engine over asyncpg. The service is read-only against
# the statement tables, so there is a single engine and no worker-side
# sync session.
#
# SESSION LIFECYCLE:
# 1. Each table-store fetch opens its own session from the factory
# 2. Queries run with `await session.execute(...)`
# 3. The session is closed when the fetch returns
# =============================================================================

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.config import settings

# ---------------------------------------------------------------------------
# Async Engine
# ---------------------------------------------------------------------------
# pool_size mirrors the three statement categories fetched concurrently per
# analysis, with overflow for parallel requests.
# ---------------------------------------------------------------------------
async_engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_size=5,
    max_overflow=10,
)

# expire_on_commit=False keeps loaded rows readable after the session
# closes; table records are handed to the Data Shaper outside the session.
async_session_factory = async_sessionmaker(
    bind=async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

