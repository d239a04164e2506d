# This project was developed with assistance from AI tools.
"""Async engine, session factory and FastAPI database dependencies."""

import logging
from collections.abc import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import db_settings

logger = logging.getLogger(__name__)

Base = declarative_base()

engine = create_async_engine(
    db_settings.DATABASE_URL,
    echo=db_settings.SQL_ECHO,
    pool_pre_ping=True,
)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class DatabaseService:
    """Thin wrapper around the engine used by health checks."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine

    async def health_check(self) -> dict:
        """Run a trivial query and report the server version."""
        try:
            async with self.engine.connect() as conn:
                version = (await conn.execute(text("SELECT version()"))).scalar()
            return {
                "name": "Database",
                "status": "healthy",
                "message": f"Connected to {str(version).split(' on ')[0]}",
            }
        except Exception as exc:
            logger.warning("Database health check failed: %s", exc)
            return {
                "name": "Database",
                "status": "unhealthy",
                "message": f"Database unreachable: {exc.__class__.__name__}",
            }


db_service = DatabaseService(engine=engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: yield a session, rolling back on error."""
    async with SessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def get_db_service() -> DatabaseService:
    """FastAPI dependency: return the module-level DatabaseService."""
    return db_service
