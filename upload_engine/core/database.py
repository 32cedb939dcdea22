"""
Database connection and session management
"""
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .config import Settings


def build_engine(settings: Settings) -> AsyncEngine:
    """Create the async engine for the configured database URL"""
    if settings.DATABASE_URL.startswith("sqlite"):
        # SQLite serializes writers; give concurrent chunk writes room to wait
        return create_async_engine(
            settings.DATABASE_URL,
            echo=False,
            connect_args={"timeout": 30}
        )

    return create_async_engine(
        settings.DATABASE_URL,
        echo=False,
        pool_size=10,
        max_overflow=20
    )


def build_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session maker bound to ``engine``"""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False
    )


async def get_db(request: Request):
    """Dependency for getting database session"""
    async with request.app.state.session_maker() as session:
        yield session
