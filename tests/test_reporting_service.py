"""
Tests for the credit reporting projections
"""

from decimal import Decimal
from types import SimpleNamespace

import pytest

from credit_ledger.core.exceptions import ShopNotFoundError
from credit_ledger.domains.billing.services import CreditReportingService
from ledger_helpers import SHOP_NAME, set_purchase_credits_used


def event(type_, description, source=None, amount="0"):
    return SimpleNamespace(
        type=type_,
        description=description,
        amount=Decimal(amount),
        promotion=source if type_ == "PROMOTION" else None,
        discount=source if type_ == "DISCOUNT" else None,
    )


class TestBillingAdjustments:
    def test_events_are_split_by_type(self):
        promo = SimpleNamespace(code="SPRING", value=Decimal("15"), type="PERCENTAGE")
        discount = SimpleNamespace(code="LOYAL", value=Decimal("5"), type="FIXED_AMOUNT")

        adjustments = CreditReportingService.calculate_billing_adjustments(
            [
                event("PROMOTION", "Applied promotion: SPRING", promo),
                event("DISCOUNT", "Applied discount: LOYAL", discount),
            ]
        )

        assert adjustments["promotions"] == [
            {
                "code": "SPRING",
                "value": Decimal("15"),
                "description": "Applied promotion: SPRING",
                "unit": "PERCENTAGE",
            }
        ]
        assert adjustments["discounts"][0]["unit"] == "FIXED_AMOUNT"

    def test_missing_source_falls_back_to_event_amount(self):
        adjustments = CreditReportingService.calculate_billing_adjustments(
            [event("DISCOUNT", "Applied discount: GONE", amount="3")]
        )

        assert adjustments["discounts"] == [
            {"code": None, "value": Decimal("3"), "description": "Applied discount: GONE", "unit": None}
        ]

    def test_no_events(self):
        assert CreditReportingService.calculate_billing_adjustments([]) == {
            "promotions": [],
            "discounts": [],
        }


class TestPackageUsageDetails:
    def test_without_usage(self):
        assert CreditReportingService.get_package_usage_details(None) is None
        assert (
            CreditReportingService.get_package_usage_details(
                SimpleNamespace(service_usage=None, credits_used=0)
            )
            is None
        )

    def test_flattens_service_rows(self):
        ai = SimpleNamespace(
            total_requests=500,
            total_remaining_requests=490,
            total_requests_used=10,
            total_tokens_used=2000,
            total_remaining_tokens=498000,
            requests_per_minute_limit=10,
            requests_per_day_limit=200,
            remaining_requests_per_minute=0,
            remaining_requests_per_day=190,
            model_name="gpt-4o-mini",
            last_token_usage_update_time=None,
        )
        usage = SimpleNamespace(
            credits_used=Decimal("1.0"),
            service_usage=SimpleNamespace(ai_usage_details=ai, crawl_usage_details=None),
        )

        details = CreditReportingService.get_package_usage_details(usage)

        assert details["ai"]["requests_used"] == 10
        assert details["ai"]["rate_limit"] == {
            "rpm": 10,
            "rpd": 200,
            "remaining_rpm": 0,
            "remaining_rpd": 190,
        }
        assert details["crawl"] is None
        assert details["credits_used"] == Decimal("1.0")


class TestPurchaseDetails:
    async def test_no_active_packages(self, services, shop):
        assert await services.reporting.get_purchase_details(SHOP_NAME) is None

    async def test_unknown_shop(self, services):
        with pytest.raises(ShopNotFoundError):
            await services.reporting.get_purchase_details("nobody")

    async def test_totals_across_packages(self, services, db, shop, small_package, medium_package):
        small = await services.credit_manager.purchase_credits_with_promotions(
            SHOP_NAME, small_package.id, "charge-1"
        )
        await services.credit_manager.purchase_credits_with_promotions(
            SHOP_NAME, medium_package.id, "charge-2"
        )
        await set_purchase_credits_used(db, small.credit_purchase.id, 25)

        details = await services.reporting.get_purchase_details(SHOP_NAME)

        assert details["total_active_packages"] == 2
        assert details["total_credits_available"] == Decimal("575")
        first = details["packages"][0]
        assert first["package"]["name"] == "SMALL"
        assert first["package"]["total_price"] == Decimal("10.00")
        assert first["features"]["ai"]["request_limits"] == 500
        assert first["features"]["crawl"] == {"request_limits": 50}
        assert first["usage"]["credits_used"] == Decimal("25")
        assert first["payment"]["amount"] == Decimal("10.00")
        assert first["billing_adjustments"] == {"promotions": [], "discounts": []}
