import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import Request
from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from tenacity import retry, stop_after_attempt, wait_fixed, retry_if_exception_type

from config import settings

logger = logging.getLogger(__name__)

Base = declarative_base()


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # Tenant removal relies on ON DELETE CASCADE
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class LedgerStore:
    """
    Handle to the Ledger Store: owns the async engine and session factory.

    Constructed once at startup and passed explicitly to the Checkout Engine,
    the Notification Scheduler and the API (via ``app.state.store``).
    """

    def __init__(self, database_url: Optional[str] = None, echo: bool = False):
        self.url = database_url or settings.database_url_async

        connect_args = {}
        if self.url.startswith("sqlite"):
            connect_args = {"check_same_thread": False}

        self.engine = create_async_engine(
            self.url,
            echo=echo,
            future=True,
            connect_args=connect_args
        )
        if self.url.startswith("sqlite"):
            event.listen(self.engine.sync_engine, "connect", _enable_sqlite_foreign_keys)

        self.session_maker = async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        async with self.session_maker() as session:
            try:
                yield session
            finally:
                await session.close()

    async def create_all(self):
        # Import here so every model is registered on Base.metadata
        import models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_all(self):
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def dispose(self):
        await self.engine.dispose()


def get_store(request: Request) -> LedgerStore:
    """Dependency returning the store handle the app was built with"""
    return request.app.state.store


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """Dependency for getting async database sessions"""
    async with get_store(request).session() as session:
        yield session


@retry(
    retry=retry_if_exception_type((ConnectionRefusedError, OSError)),
    stop=stop_after_attempt(12),  # 60 seconds total (12 attempts * 5 seconds)
    wait=wait_fixed(5),
    reraise=True,
    before_sleep=lambda retry_state: logger.warning(
        f"Database connection attempt {retry_state.attempt_number} failed. "
        f"Retrying in 5 seconds... (Error: {retry_state.outcome.exception()})"
    )
)
async def init_db(store: LedgerStore):
    """
    Initialize database tables with retry logic.

    Retries while the database refuses connections, e.g. while a managed
    Postgres proxy is still starting next to the app container.
    """
    logger.info("Attempting to connect to database...")

    try:
        async with store.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
            logger.info("Database connection successful!")

        await store.create_all()
        logger.info("Database initialization complete!")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise
