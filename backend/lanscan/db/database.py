from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool, StaticPool
from sqlalchemy import text
import asyncio
import logging
from functools import wraps

from ..core.config import settings

logger = logging.getLogger(__name__)


def make_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create an async SQLite engine tuned for concurrent readers."""
    if ":memory:" in database_url:
        # A single shared connection, otherwise every checkout sees an empty database
        return create_async_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_async_engine(
        database_url,
        echo=echo,
        connect_args={
            "timeout": 30,  # Increase timeout for locked database
            "check_same_thread": False,
        },
        poolclass=NullPool,  # Disable connection pooling for SQLite
    )


def make_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
        autocommit=False,
    )


engine = make_engine(settings.DATABASE_URL, echo=settings.DEBUG)

# Create async session factory
AsyncSessionLocal = make_session_factory(engine)

# Base class for models
Base = declarative_base()


async def init_db(bind: AsyncEngine = None):
    """Initialize database tables and configure SQLite for WAL mode."""
    bind = bind or engine
    async with bind.begin() as conn:
        if ":memory:" not in str(bind.url):
            # Enable WAL mode for better concurrency
            await conn.execute(text("PRAGMA journal_mode=WAL"))
        # Set busy timeout
        await conn.execute(text("PRAGMA busy_timeout=30000"))  # 30 seconds
        # Create tables
        await conn.run_sync(Base.metadata.create_all)


def with_db_retry(max_retries: int = 3, delay: float = 0.5):
    """Decorator to retry database operations on lock errors."""
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            from sqlalchemy.exc import OperationalError

            last_exception = None
            for attempt in range(max_retries):
                try:
                    return await func(*args, **kwargs)
                except OperationalError as e:
                    if "database is locked" in str(e):
                        last_exception = e
                        if attempt < max_retries - 1:
                            wait_time = delay * (2 ** attempt)  # Exponential backoff
                            logger.warning(
                                "Database locked, retrying in %ss... (attempt %d/%d)",
                                wait_time, attempt + 1, max_retries,
                            )
                            await asyncio.sleep(wait_time)
                        else:
                            logger.error("Database locked after %d attempts", max_retries)
                    else:
                        raise

            # If we exhausted all retries, raise the last exception
            if last_exception:
                raise last_exception

        return wrapper
    return decorator
