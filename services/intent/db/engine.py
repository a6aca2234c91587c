"""
AsyncEngine factory for the lead / draft-order session.

NullPool because the connection pooler in front of Postgres owns pooling;
SA should not keep a second pool on top of it. The asyncpg hot-path pool
is created separately in main.lifespan.
"""

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

from services.intent.config import settings


def create_engine(database_url: str | None = None) -> AsyncEngine:
    url = (database_url or settings.database_url).replace("postgresql://", "postgresql+asyncpg://", 1)
    return create_async_engine(
        url,
        poolclass=NullPool,
        echo=settings.debug and settings.environment == "development",
    )
