# app/db/session.py
# -----------------------------------------------------------------------------
# SQLAlchemy async engine / session / Base
# - FastAPI routes take a session via Depends(get_session)
# - SQLite by default; switching to PostgreSQL only needs DATABASE_URL
# -----------------------------------------------------------------------------
from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from app.core.config import settings

engine = create_async_engine(settings.DATABASE_URL, echo=False, future=True)
AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False)
Base = declarative_base()


async def init_models(bind: AsyncEngine = engine) -> None:
    # importing registers the tables on Base.metadata
    from app.db import models  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session."""
    async with AsyncSessionLocal() as session:
        yield session
