import logging

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy import text
from config import settings
from tenacity import retry, stop_after_attempt, wait_fixed, retry_if_exception_type

import asyncpg.exceptions

logger = logging.getLogger(__name__)


def get_database_url():
    # Desktop/local mode always runs against a SQLite file
    if settings.DATABASE_MODE == "local":
        return "sqlite+aiosqlite:///./retail_pos_local.sqlite"

    return settings.database_url_async


def create_engine_for(url: str):
    """Create an async engine, adding the SQLite threading flag when needed."""
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}

    return create_async_engine(
        url,
        echo=settings.DEBUG,
        future=True,
        connect_args=connect_args
    )


DATABASE_URL = get_database_url()
engine = create_engine_for(DATABASE_URL)
async_session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

Base = declarative_base()


async def create_tables(target_engine=None):
    """Create every table declared on Base (no-op for existing tables)."""
    # Import here to register models on Base.metadata
    import models  # noqa: F401

    async with (target_engine or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# Define exception types to retry on
retry_exceptions = (ConnectionRefusedError, OSError, asyncpg.exceptions.PostgresError)


@retry(
    retry=retry_if_exception_type(retry_exceptions),
    stop=stop_after_attempt(12),  # 60 seconds total (12 attempts * 5 seconds)
    wait=wait_fixed(5),
    reraise=True,
    before_sleep=lambda retry_state: logger.warning(
        f"Database connection attempt {retry_state.attempt_number} failed. "
        f"Retrying in 5 seconds... (Error: {retry_state.outcome.exception()})"
    )
)
async def init_db():
    """
    Initialize database tables with retry logic.

    Retries for up to 60 seconds while the database refuses connections, which
    covers managed databases whose proxy comes up after the API container.
    """
    logger.info("Attempting to connect to database...")

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
            logger.info("Database connection successful!")

        await create_tables()
        logger.info("Database initialization complete!")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise
