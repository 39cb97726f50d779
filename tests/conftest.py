"""
Shared fixtures: a fresh SQLite ledger per test and the full service graph
"""

import json
from decimal import Decimal

import httpx
import pytest

from credit_ledger.core.config.settings import (
    BillingSettings,
    DatabaseSettings,
    EmailSettings,
    Settings,
)
from credit_ledger.core.database.client import DatabaseClient
from credit_ledger.core.database.models import AIModel, Subscription
from credit_ledger.domains.billing.container import build_ledger_services
from ledger_helpers import SHOP_NAME, STAFF_EMAIL, add_rows


@pytest.fixture
def billing_settings():
    return BillingSettings(
        SERIALIZATION_RETRY_DELAY=0.0,
        TRANSACTION_TIMEOUT_SECONDS=10.0,
        TRANSACTION_MAX_WAIT_SECONDS=5.0,
    )


@pytest.fixture
def email_settings():
    return EmailSettings(
        EMAIL_API_URL="https://email.test/v3/mail/send",
        EMAIL_API_KEY="test-key",
        EMAIL_SENDER_EMAIL="billing@studio.test",
        EMAIL_SENDER_NAME="Content Studio",
        APP_NAME="Content Studio",
        EMAIL_MAX_ATTEMPTS=3,
    )


@pytest.fixture
def app_settings(billing_settings, email_settings):
    return Settings(billing=billing_settings, email=email_settings)


@pytest.fixture
async def db(tmp_path, billing_settings):
    client = DatabaseClient(
        DatabaseSettings(),
        billing_settings,
        url=f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}",
    )
    await client.connect()
    await client.create_all()
    yield client
    await client.close()


@pytest.fixture
def sent_emails():
    return []


@pytest.fixture
def email_transport(sent_emails):
    def handler(request: httpx.Request) -> httpx.Response:
        sent_emails.append(json.loads(request.content))
        return httpx.Response(202)

    return httpx.MockTransport(handler)


@pytest.fixture
def services(db, app_settings, email_transport):
    return build_ledger_services(db, app_settings, email_transport)


@pytest.fixture
async def shop(services):
    return await services.shops.create_shop(SHOP_NAME, STAFF_EMAIL)


@pytest.fixture
async def staff_user(services, shop):
    return await services.shops.upsert_associated_user(
        shop.id,
        "1001",
        first_name="Ada",
        last_name="Lovelace",
        email=STAFF_EMAIL,
        account_owner=True,
    )


@pytest.fixture
async def ai_model(db):
    (model,) = await add_rows(db, AIModel(name="gpt-4o-mini", provider="openai"))
    return model


@pytest.fixture
async def standard_packages(services):
    return await services.catalog.create_standard_credit_packages()


@pytest.fixture
def small_package(standard_packages):
    return next(p for p in standard_packages if p.name == "SMALL")


@pytest.fixture
def medium_package(standard_packages):
    return next(p for p in standard_packages if p.name == "MEDIUM")


@pytest.fixture
async def subscription(db, shop):
    (row,) = await add_rows(
        db,
        Subscription(
            shop_id=shop.id,
            plan_name="Growth",
            status="ACTIVE",
            credit_balance=Decimal("10"),
        ),
    )
    return row
