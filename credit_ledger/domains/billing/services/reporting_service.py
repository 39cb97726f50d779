"""
Credit Reporting Service

Read-only projections of a shop's ACTIVE credit packages for dashboards.
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from credit_ledger.core.database.client import DatabaseClient
from credit_ledger.core.database.models import (
    BillingEvent,
    BillingEventType,
    CreditPurchase,
    Usage,
)
from credit_ledger.core.exceptions import ShopNotFoundError
from credit_ledger.core.logging import get_logger
from credit_ledger.repository.ShopRepository import ShopRepository
from credit_ledger.shared.helpers import to_decimal
from ..repositories.credit_repository import CreditRepository

logger = get_logger(__name__)


class CreditReportingService:
    def __init__(self, db: DatabaseClient, shop_repository: Optional[ShopRepository] = None):
        self.db = db
        self.shops = shop_repository or ShopRepository(db)

    async def get_purchase_details(self, shop_name: str) -> Optional[Dict[str, Any]]:
        """
        Summary of every ACTIVE package of a shop.

        Returns None when the shop has no ACTIVE package. Credits available
        are the snapshot credit amounts minus the credits used so far.
        """
        shop = await self.shops.find_shop_by_name(shop_name)
        if shop is None:
            raise ShopNotFoundError(shop_name)

        async with self.db.session() as session:
            purchases = await CreditRepository(session).list_active_purchases(shop.id)
            if not purchases:
                logger.debug("No active packages", shop_name=shop_name)
                return None
            packages = [self._package_entry(purchase) for purchase in purchases]

        total_available = sum(
            (
                Decimal(purchase.snapshot_credit_amount)
                - sum((to_decimal(u.credits_used) for u in purchase.usages), Decimal("0"))
                for purchase in purchases
            ),
            Decimal("0"),
        )
        return {
            "total_active_packages": len(purchases),
            "packages": packages,
            "total_credits_available": total_available,
        }

    def _package_entry(self, purchase: CreditPurchase) -> Dict[str, Any]:
        snapshot = purchase.purchase_snapshot or {}
        package = purchase.credit_package
        feature = package.feature if package is not None else None
        payment = purchase.payment

        return {
            "purchase_id": purchase.id,
            "status": purchase.status,
            "package": {
                "id": purchase.credit_package_id,
                "name": snapshot.get("name"),
                "description": snapshot.get("description"),
                "credit_amount": snapshot.get("credit_amount"),
                "price_per_credit": to_decimal(snapshot.get("price_per_credit")),
                "total_price": to_decimal(snapshot.get("total_price")),
                "currency": snapshot.get("currency"),
                "is_custom": snapshot.get("is_custom", False),
            },
            "features": self._feature_limits(feature),
            "usage": self.get_package_usage_details(
                purchase.usages[0] if purchase.usages else None
            ),
            "payment": {
                "id": payment.id,
                "status": payment.status,
                "amount": payment.amount,
                "adjusted_amount": payment.adjusted_amount,
                "currency": payment.currency,
                "billing_type": payment.billing_type,
                "created_at": payment.created_at,
                "shopify_transaction_id": payment.shopify_transaction_id,
            }
            if payment is not None
            else None,
            "billing_adjustments": self.calculate_billing_adjustments(purchase.billing_events),
            "shopify_purchase_id": purchase.shopify_purchase_id,
            "created_at": purchase.created_at,
            "updated_at": purchase.updated_at,
        }

    @staticmethod
    def _feature_limits(feature) -> Dict[str, Any]:
        ai = feature.ai_api if feature is not None else None
        crawl = feature.crawl_api if feature is not None else None
        return {
            "ai": {
                "request_limits": ai.request_limits,
                "token_limits": ai.token_limits,
                "max_tokens": ai.max_tokens,
                "rate_limit": {"rpm": ai.rpm, "rpd": ai.rpd, "tpm": ai.tpm, "tpd": ai.tpd},
            }
            if ai is not None
            else None,
            "crawl": {"request_limits": crawl.request_limits} if crawl is not None else None,
        }

    @staticmethod
    def get_package_usage_details(usage: Optional[Usage]) -> Optional[Dict[str, Any]]:
        """Flatten a Usage and its per-service rows; None without a ServiceUsage"""
        if usage is None or usage.service_usage is None:
            return None

        ai = usage.service_usage.ai_usage_details
        crawl = usage.service_usage.crawl_usage_details
        return {
            "ai": {
                "total_requests": ai.total_requests,
                "remaining_requests": ai.total_remaining_requests,
                "requests_used": ai.total_requests_used,
                "tokens_used": ai.total_tokens_used,
                "remaining_tokens": ai.total_remaining_tokens,
                "rate_limit": {
                    "rpm": ai.requests_per_minute_limit,
                    "rpd": ai.requests_per_day_limit,
                    "remaining_rpm": ai.remaining_requests_per_minute,
                    "remaining_rpd": ai.remaining_requests_per_day,
                },
                "model_name": ai.model_name,
                "last_updated": ai.last_token_usage_update_time,
            }
            if ai is not None
            else None,
            "crawl": {
                "total_requests": crawl.total_requests,
                "remaining_requests": crawl.total_remaining_requests,
                "requests_used": crawl.total_requests_used,
            }
            if crawl is not None
            else None,
            "credits_used": to_decimal(usage.credits_used),
        }

    @staticmethod
    def calculate_billing_adjustments(
        events: Sequence[BillingEvent],
    ) -> Dict[str, List[Dict[str, Any]]]:
        """Split billing events into promotions and discounts, keeping their order"""
        adjustments: Dict[str, List[Dict[str, Any]]] = {"promotions": [], "discounts": []}
        for event in events or ():
            if event.type == BillingEventType.PROMOTION.value:
                source, bucket = event.promotion, "promotions"
            elif event.type == BillingEventType.DISCOUNT.value:
                source, bucket = event.discount, "discounts"
            else:
                continue
            adjustments[bucket].append(
                {
                    "code": source.code if source is not None else None,
                    "value": to_decimal(source.value if source is not None else event.amount),
                    "description": event.description,
                    "unit": source.type if source is not None else None,
                }
            )
        return adjustments
