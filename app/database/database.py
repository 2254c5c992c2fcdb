from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool
from app.core.config import settings
import logging

logger = logging.getLogger(__name__)

_pool_options = (
    {"poolclass": NullPool}
    if settings.ENVIRONMENT == "test"
    else {"pool_size": 10, "max_overflow": 20}
)

# Synchronous engine for migrations and initial setup
sync_engine = create_engine(
    settings.database_url,
    pool_pre_ping=True,
    echo=settings.DEBUG,
    **_pool_options
)

# Async engine for application use
async_engine = create_async_engine(
    settings.async_database_url,
    pool_pre_ping=True,
    echo=settings.DEBUG,
    **_pool_options
)

# Async session for application
AsyncSessionLocal = async_sessionmaker(
    async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False
)

Base = declarative_base()

# Async dependency for application endpoints
async def get_async_db() -> AsyncSession:
    """Genera una sesión de base de datos asíncrona para endpoints."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception as e:
            logger.error(f"Database error: {e}")
            await session.rollback()
            raise
        finally:
            await session.close()
