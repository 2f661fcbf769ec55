"""Database engine, session factory, and declarative base.

All tables (organizations, users, audit_logs) live in one schema.
`get_db()` is the FastAPI session dependency: commit on success,
rollback on any error. Cache keys queued during the request are
invalidated after the commit.
"""

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
)
from sqlalchemy.orm import DeclarativeBase

from app.config import settings
from app.utils.cache import PENDING_INVALIDATIONS, run_pending_invalidations

engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_size=20,
    max_overflow=10,
)

async_session = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncSession:
    """Yield a request-scoped session."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            session.info.pop(PENDING_INVALIDATIONS, None)
            raise
        await run_pending_invalidations(session)
