"""
Tests for request metering against credit packages
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import update

from credit_ledger.core.database.models import AIUsageDetails, PackageStatus
from credit_ledger.core.exceptions import (
    InsufficientCreditsError,
    LedgerValidationError,
    RateLimitExceededError,
    ShopNotFoundError,
)
from credit_ledger.domains.billing.models import CreditPaymentInfo, Money
from credit_ledger.domains.billing.services.usage_service import reset_rate_windows
from credit_ledger.shared.helpers import now_utc
from ledger_helpers import SHOP_NAME, execute


async def buy(services, package_id, charge_id):
    result = await services.credit_manager.purchase_credits_with_promotions(
        SHOP_NAME, package_id, charge_id
    )
    return result.credit_purchase


async def usage_of(services, purchase_id):
    purchase = await services.credit_manager.get_purchase_by_id(purchase_id)
    return purchase, purchase.usages[0]


class TestAIUsage:
    async def test_requests_are_charged_at_ai_rate(self, services, shop, small_package):
        bought = await buy(services, small_package.id, "charge-1")

        result = await services.usage.record_service_usage(
            SHOP_NAME, "AI_API", 3, model_name="gpt-4o-mini", input_tokens=100, output_tokens=20
        )

        assert result.credits_charged == Decimal("0.3")
        assert result.purchases_charged == [bought.id]
        _, usage = await usage_of(services, bought.id)
        ai = usage.service_usage.ai_usage_details
        assert usage.credits_used == Decimal("0.3")
        assert usage.model_name == "gpt-4o-mini"
        assert ai.total_requests_used == 3
        assert ai.total_remaining_requests == 497
        assert ai.remaining_requests_per_minute == 7
        assert ai.remaining_requests_per_day == 197
        assert ai.total_tokens_used == 120
        assert ai.input_tokens_count == 100
        assert ai.total_credits_used + ai.total_remaining_credits == ai.total_credits

    async def test_minute_window_blocks_and_writes_nothing(self, services, shop, small_package):
        bought = await buy(services, small_package.id, "charge-1")
        await services.usage.record_service_usage(SHOP_NAME, "AI_API", 3)

        with pytest.raises(RateLimitExceededError) as exc_info:
            await services.usage.record_service_usage(SHOP_NAME, "AI_API", 8)

        assert exc_info.value.window == "minute"
        assert exc_info.value.limit == 10
        _, usage = await usage_of(services, bought.id)
        assert usage.credits_used == Decimal("0.3")
        assert usage.service_usage.ai_usage_details.remaining_requests_per_minute == 7

    async def test_elapsed_minute_window_is_refilled(self, services, db, shop, small_package):
        bought = await buy(services, small_package.id, "charge-1")
        await services.usage.record_service_usage(SHOP_NAME, "AI_API", 3)
        _, usage = await usage_of(services, bought.id)
        await execute(
            db,
            update(AIUsageDetails)
            .where(AIUsageDetails.id == usage.service_usage.ai_usage_details.id)
            .values(reset_time_for_minute_requests=now_utc() - timedelta(minutes=2)),
        )

        result = await services.usage.record_service_usage(SHOP_NAME, "AI_API", 10)

        assert result.credits_charged == Decimal("1.0")
        _, usage = await usage_of(services, bought.id)
        assert usage.service_usage.ai_usage_details.remaining_requests_per_minute == 0


class TestCrawlUsage:
    async def test_crawl_requests_up_to_the_limit(self, services, shop, small_package):
        bought = await buy(services, small_package.id, "charge-1")

        result = await services.usage.record_service_usage(SHOP_NAME, "CRAWL_API", 50)

        assert result.credits_charged == Decimal("50")
        purchase, usage = await usage_of(services, bought.id)
        assert usage.credits_used == Decimal("50")
        assert usage.service_usage.crawl_usage_details.total_remaining_requests == 0
        assert purchase.status == PackageStatus.ACTIVE.value

        with pytest.raises(InsufficientCreditsError):
            await services.usage.record_service_usage(SHOP_NAME, "CRAWL_API", 1)

    async def test_over_the_limit_is_refused(self, services, shop, small_package):
        bought = await buy(services, small_package.id, "charge-1")

        with pytest.raises(InsufficientCreditsError) as exc_info:
            await services.usage.record_service_usage(SHOP_NAME, "CRAWL_API", 51)

        assert exc_info.value.available == 50
        _, usage = await usage_of(services, bought.id)
        assert usage.credits_used == Decimal("0")

    async def test_oldest_package_is_drawn_first(self, services, shop, small_package):
        first = await buy(services, small_package.id, "charge-1")
        second = await buy(services, small_package.id, "charge-2")

        result = await services.usage.record_service_usage(SHOP_NAME, "CRAWL_API", 60)

        assert result.purchases_charged == [first.id, second.id]
        _, first_usage = await usage_of(services, first.id)
        _, second_usage = await usage_of(services, second.id)
        assert first_usage.credits_used == Decimal("50")
        assert second_usage.credits_used == Decimal("10")


class TestPackageExhaustion:
    async def test_custom_package_expires_when_credits_are_spent(self, services, shop):
        package = await services.catalog.create_custom_credit_package(
            CreditPaymentInfo(price=Money(amount=Decimal("1")), credits=2)
        )
        bought = await buy(services, package.id, "charge-1")

        crawl = await services.usage.record_service_usage(SHOP_NAME, "CRAWL_API", 1)
        assert crawl.expired_purchases == []

        ai = await services.usage.record_service_usage(SHOP_NAME, "AI_API", 10)

        assert ai.expired_purchases == [bought.id]
        purchase, usage = await usage_of(services, bought.id)
        assert purchase.status == PackageStatus.EXPIRED.value
        assert purchase.expired_at is not None
        assert usage.credits_used == Decimal("2")
        assert await services.reporting.get_purchase_details(SHOP_NAME) is None


class TestUsageValidation:
    async def test_unknown_service(self, services, shop):
        with pytest.raises(LedgerValidationError):
            await services.usage.record_service_usage(SHOP_NAME, "EMAIL_API", 1)

    async def test_non_positive_requests(self, services, shop):
        with pytest.raises(LedgerValidationError):
            await services.usage.record_service_usage(SHOP_NAME, "AI_API", 0)

    async def test_unknown_shop(self, services):
        with pytest.raises(ShopNotFoundError):
            await services.usage.record_service_usage("nobody", "AI_API", 1)

    async def test_no_active_packages(self, services, shop):
        with pytest.raises(InsufficientCreditsError):
            await services.usage.record_service_usage(SHOP_NAME, "AI_API", 1)


class TestResetRateWindows:
    def test_elapsed_windows_are_refilled(self):
        now = now_utc()
        details = AIUsageDetails(
            requests_per_minute_limit=10,
            requests_per_day_limit=200,
            remaining_requests_per_minute=0,
            remaining_requests_per_day=0,
            tokens_consumed_per_minute=500,
            tokens_consumed_per_day=900,
            reset_time_for_minute_requests=now - timedelta(seconds=61),
            reset_time_for_day_requests=now - timedelta(hours=25),
        )

        reset_rate_windows(details, now)

        assert details.remaining_requests_per_minute == 10
        assert details.remaining_requests_per_day == 200
        assert details.tokens_consumed_per_minute == 0
        assert details.reset_time_for_day_requests == now

    def test_open_windows_are_kept(self):
        now = now_utc()
        started = now - timedelta(seconds=30)
        details = AIUsageDetails(
            requests_per_minute_limit=10,
            requests_per_day_limit=200,
            remaining_requests_per_minute=4,
            remaining_requests_per_day=150,
            reset_time_for_minute_requests=started,
            reset_time_for_day_requests=started,
        )

        reset_rate_windows(details, now)

        assert details.remaining_requests_per_minute == 4
        assert details.remaining_requests_per_day == 150
        assert details.reset_time_for_minute_requests == started
