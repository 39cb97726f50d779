"""
Tests for the database client and driver error classification
"""

import asyncio

import pytest
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError

from credit_ledger.core.config.settings import BillingSettings, DatabaseSettings
from credit_ledger.core.database.client import DatabaseClient
from credit_ledger.core.database.errors import (
    conflict_field,
    is_serialization_failure,
    is_unique_violation,
)
from credit_ledger.core.database.models import Shop
from credit_ledger.core.exceptions import (
    ConflictError,
    DatabaseConnectionError,
    DatabaseTransactionError,
    SerializationFailureError,
)
from ledger_helpers import count_rows


class DriverError(Exception):
    def __init__(self, message, sqlstate=None):
        super().__init__(message)
        self.sqlstate = sqlstate


def dbapi_error(message, sqlstate=None, cls=DBAPIError):
    return cls("UPDATE subscriptions", {}, DriverError(message, sqlstate))


class TestErrorClassification:
    @pytest.mark.parametrize(
        "error",
        [
            dbapi_error("conflict", sqlstate="40001"),
            dbapi_error("deadlock", sqlstate="40P01"),
            dbapi_error("could not serialize access due to concurrent update"),
            dbapi_error("database is locked", cls=OperationalError),
        ],
    )
    def test_retryable(self, error):
        assert is_serialization_failure(error) is True

    @pytest.mark.parametrize(
        "error",
        [
            dbapi_error("syntax error at or near"),
            dbapi_error("duplicate key", sqlstate="23505", cls=IntegrityError),
            ValueError("database is locked"),
        ],
    )
    def test_not_retryable(self, error):
        assert is_serialization_failure(error) is False

    def test_sqlite_unique_field(self):
        error = dbapi_error(
            "UNIQUE constraint failed: credit_purchases.shopify_purchase_id", cls=IntegrityError
        )

        assert is_unique_violation(error) is True
        assert conflict_field(error) == "shopify_purchase_id"

    def test_postgres_unique_field(self):
        error = dbapi_error(
            'duplicate key value violates unique constraint "payments_tx_key"\n'
            "DETAIL:  Key (shopify_transaction_id)=(charge-1) already exists.",
            sqlstate="23505",
            cls=IntegrityError,
        )

        assert is_unique_violation(error) is True
        assert conflict_field(error) == "shopify_transaction_id"

    def test_unknown_field(self):
        error = dbapi_error("unique constraint violated", cls=IntegrityError)

        assert conflict_field(error) == "unknown"


class TestRunSerializable:
    async def test_commits_work(self, db):
        async def work(session):
            session.add(Shop(shop_name="one.myshopify.com"))

        await db.run_serializable(work, "create")

        assert await count_rows(db, Shop) == 1

    async def test_retries_serialization_failures(self, db):
        calls = []

        async def work(session):
            calls.append(1)
            if len(calls) < 3:
                raise dbapi_error("could not serialize access", sqlstate="40001")
            session.add(Shop(shop_name="retried.myshopify.com"))
            return "done"

        assert await db.run_serializable(work, "retried") == "done"
        assert len(calls) == 3
        assert await count_rows(db, Shop) == 1

    async def test_gives_up_after_max_attempts(self, db, billing_settings):
        calls = []

        async def work(session):
            calls.append(1)
            session.add(Shop(shop_name=f"attempt-{len(calls)}.myshopify.com"))
            await session.flush()
            raise dbapi_error("deadlock detected", sqlstate="40P01")

        with pytest.raises(SerializationFailureError) as exc_info:
            await db.run_serializable(work, "doomed")

        assert exc_info.value.attempts == billing_settings.SERIALIZATION_MAX_ATTEMPTS
        assert exc_info.value.operation == "doomed"
        assert len(calls) == billing_settings.SERIALIZATION_MAX_ATTEMPTS
        assert await count_rows(db, Shop) == 0

    async def test_other_errors_roll_back_and_propagate(self, db):
        calls = []

        async def work(session):
            calls.append(1)
            session.add(Shop(shop_name="rolled-back.myshopify.com"))
            await session.flush()
            raise ValueError("bad input")

        with pytest.raises(ValueError):
            await db.run_serializable(work, "invalid")

        assert len(calls) == 1
        assert await count_rows(db, Shop) == 0

    async def test_unique_violation_names_field(self, db):
        async def work(session):
            session.add(Shop(shop_name="twin.myshopify.com"))

        await db.run_serializable(work, "first")

        with pytest.raises(ConflictError) as exc_info:
            await db.run_serializable(work, "second")

        assert exc_info.value.field == "shop_name"

    async def test_transaction_timeout(self, tmp_path):
        client = DatabaseClient(
            DatabaseSettings(),
            BillingSettings(TRANSACTION_TIMEOUT_SECONDS=0.05, TRANSACTION_MAX_WAIT_SECONDS=0.01),
            url=f"sqlite+aiosqlite:///{tmp_path / 'slow.db'}",
        )
        await client.connect()
        await client.create_all()

        async def work(session):
            await asyncio.sleep(1)

        try:
            with pytest.raises(DatabaseTransactionError):
                await client.run_serializable(work, "slow")
        finally:
            await client.close()


class TestConnection:
    async def test_session_requires_connect(self):
        client = DatabaseClient(url="sqlite+aiosqlite:///:memory:")

        with pytest.raises(DatabaseConnectionError):
            async with client.session():
                pass

    async def test_health_check(self, db):
        assert await db.health_check() is True

    def test_sqlite_detection(self):
        assert DatabaseClient(url="sqlite+aiosqlite:///ledger.db").is_sqlite is True
        assert DatabaseClient(url="postgresql+asyncpg://localhost/ledger").is_sqlite is False
