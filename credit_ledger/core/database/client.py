"""
Database client for the credit ledger

Owns the async engine and session factory. Constructed explicitly and
passed to repositories and services; `connect()` / `close()` bound its
lifetime to the process (see main.create_app).
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Awaitable, Callable, Optional, TypeVar

from sqlalchemy import event, text
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from credit_ledger.core.config.settings import BillingSettings, DatabaseSettings
from credit_ledger.core.exceptions import (
    ConflictError,
    DatabaseConnectionError,
    DatabaseError,
    DatabaseTransactionError,
    SerializationFailureError,
)
from credit_ledger.core.logging import get_logger
from credit_ledger.shared.decorators.retry import retry_async_call
from .errors import conflict_field, is_serialization_failure, is_unique_violation
from .models import Base

logger = get_logger(__name__)

T = TypeVar("T")


class DatabaseClient:
    """Async SQLAlchemy engine, sessions and serializable transactions"""

    def __init__(
        self,
        database_settings: Optional[DatabaseSettings] = None,
        billing_settings: Optional[BillingSettings] = None,
        url: Optional[str] = None,
    ):
        self.database_settings = database_settings or DatabaseSettings()
        self.billing_settings = billing_settings or BillingSettings()
        self.url = url or self.database_settings.DATABASE_URL
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None
        self._serializable_factory: Optional[async_sessionmaker[AsyncSession]] = None
        self._lock = asyncio.Lock()

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise DatabaseConnectionError("Database client is not connected")
        return self._engine

    def _create_engine(self) -> AsyncEngine:
        engine = create_async_engine(
            self.url,
            echo=self.database_settings.SQLALCHEMY_ECHO,
            echo_pool=self.database_settings.SQLALCHEMY_ECHO_POOL,
        )

        if self.is_sqlite:
            # pysqlite's implicit BEGIN is deferred; take the write lock up front so
            # concurrent writers queue instead of failing on lock upgrade.
            @event.listens_for(engine.sync_engine, "connect")
            def set_sqlite_pragma(dbapi_connection, connection_record):
                dbapi_connection.isolation_level = None
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()

            @event.listens_for(engine.sync_engine, "begin")
            def do_begin(conn):
                conn.exec_driver_sql("BEGIN IMMEDIATE")

        return engine

    async def connect(self) -> None:
        """Create the engine and verify connectivity"""
        async with self._lock:
            if self._engine is not None:
                return
            try:
                logger.info("Establishing database connection", dialect=self.url.split(":", 1)[0])
                engine = self._create_engine()
                async with engine.connect() as conn:
                    await conn.execute(text("SELECT 1"))
            except (DBAPIError, OSError) as e:
                logger.error("Failed to connect to database", error=str(e))
                raise DatabaseConnectionError(
                    f"Failed to connect to database: {e}",
                    connection_details={"dialect": self.url.split(":", 1)[0]},
                    cause=e,
                )

            self._engine = engine
            self._session_factory = async_sessionmaker(
                bind=engine, class_=AsyncSession, expire_on_commit=False
            )
            serializable_engine = (
                engine
                if self.is_sqlite
                else engine.execution_options(isolation_level="SERIALIZABLE")
            )
            self._serializable_factory = async_sessionmaker(
                bind=serializable_engine, class_=AsyncSession, expire_on_commit=False
            )
            logger.info("Database connection established")

    async def close(self) -> None:
        async with self._lock:
            if self._engine is None:
                return
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            self._serializable_factory = None
            logger.info("Database connection closed")

    async def create_all(self) -> None:
        """Create every ledger table that does not exist yet"""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Read session; anything left uncommitted is rolled back on exit"""
        if self._session_factory is None:
            raise DatabaseConnectionError("Database client is not connected")
        async with self._session_factory() as session:
            yield session

    async def _run_once(
        self, work: Callable[[AsyncSession], Awaitable[T]], operation: str
    ) -> T:
        if self._serializable_factory is None:
            raise DatabaseConnectionError("Database client is not connected")

        async with self._serializable_factory() as session:
            try:
                await asyncio.wait_for(
                    session.connection(),
                    timeout=self.billing_settings.TRANSACTION_MAX_WAIT_SECONDS,
                )
            except asyncio.TimeoutError as e:
                raise DatabaseTransactionError(
                    "Timed out waiting for a database connection",
                    operation=operation,
                    cause=e,
                )
            try:
                result = await work(session)
                await session.commit()
                return result
            except IntegrityError as e:
                await session.rollback()
                if is_unique_violation(e):
                    field = conflict_field(e)
                    logger.warning("Unique constraint failed", operation=operation, field=field)
                    raise ConflictError(field, cause=e)
                raise DatabaseError(
                    f"Integrity constraint failed during {operation}", cause=e
                )
            except Exception:
                await session.rollback()
                raise

    async def run_serializable(
        self,
        work: Callable[[AsyncSession], Awaitable[T]],
        operation: str = "transaction",
    ) -> T:
        """
        Run `work(session)` in one serializable transaction and commit it.

        The whole attempt is bounded by TRANSACTION_TIMEOUT_SECONDS and waiting
        for a connection by TRANSACTION_MAX_WAIT_SECONDS. Serialization
        conflicts, deadlocks and lock timeouts roll back and re-run `work`
        with exponential backoff; once SERIALIZATION_MAX_ATTEMPTS is spent a
        SerializationFailureError is raised. Any other exception rolls back
        and propagates unchanged.
        """
        billing = self.billing_settings

        async def attempt() -> T:
            try:
                return await asyncio.wait_for(
                    self._run_once(work, operation),
                    timeout=billing.TRANSACTION_TIMEOUT_SECONDS,
                )
            except asyncio.TimeoutError as e:
                raise DatabaseTransactionError(
                    f"Transaction {operation} exceeded {billing.TRANSACTION_TIMEOUT_SECONDS}s",
                    operation=operation,
                    cause=e,
                )

        return await retry_async_call(
            attempt,
            max_attempts=billing.SERIALIZATION_MAX_ATTEMPTS,
            delay=billing.SERIALIZATION_RETRY_DELAY,
            backoff=billing.SERIALIZATION_RETRY_BACKOFF,
            exceptions=DBAPIError,
            retry_if=is_serialization_failure,
            on_exhausted=lambda e, attempts: SerializationFailureError(
                operation, attempts, cause=e
            ),
            operation=operation,
        )

    async def health_check(self) -> bool:
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except DBAPIError as e:
            logger.warning("Database health check failed", error=str(e))
            return False
