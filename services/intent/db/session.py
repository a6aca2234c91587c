"""
FastAPI dependency for SA async sessions.

expire_on_commit=False is set on the factory (in lifespan): with NullPool the
connection is returned after commit, and reading a model attribute afterwards
would otherwise trigger a lazy load on a closed connection.
"""

from collections.abc import AsyncGenerator

from fastapi import HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Yields an SA session from app.state.db_session_factory, 503 if the engine never came up."""
    factory: async_sessionmaker | None = getattr(request.app.state, "db_session_factory", None)
    if factory is None:
        raise HTTPException(
            status_code=503,
            detail={"code": "SERVICE_UNAVAILABLE", "message": "Database unavailable."},
        )
    async with factory() as session:
        yield session
