"""
Credit Manager

Purchase lifecycle of credit packages: pricing, the atomic purchase
transaction, payment status changes, expiry sweeps and subscription
credit deductions.
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from credit_ledger.core.config.settings import BillingSettings
from credit_ledger.core.database.client import DatabaseClient
from credit_ledger.core.database.models import (
    AssociatedUser,
    BillingEvent,
    BillingEventType,
    BillingType,
    CreditPackage,
    CreditPurchase,
    PackageStatus,
    Payment,
    PaymentStatus,
    Service,
    Shop,
    Usage,
)
from credit_ledger.core.exceptions import (
    AssociatedUserNotFoundError,
    InsufficientCreditsError,
    LedgerValidationError,
    PaymentNotFoundError,
    PurchaseNotFoundError,
    ShopNotFoundError,
)
from credit_ledger.core.logging import get_logger
from credit_ledger.repository.ModelRepository import ModelRepository
from credit_ledger.repository.ShopRepository import ShopRepository
from credit_ledger.shared.constants.billing import CREDIT_CONVERSION
from credit_ledger.shared.helpers import money_str, now_utc, to_decimal, validate_email
from ..models.credit_models import ExpiredPackageFilters, PriceCalculation, PurchaseResult
from ..repositories.credit_repository import CreditRepository
from .billing_operations_service import BillingOperationsService
from .email_service import EmailService
from .notification_service import CreditNotificationService, NotificationDispatcher
from .package_catalog_service import PackageCatalogService

logger = get_logger(__name__)

# Gateway payment status -> purchase status; anything unlisted is PAST_DUE
PAYMENT_TO_PACKAGE_STATUS = {
    PaymentStatus.SUCCEEDED.value: PackageStatus.ACTIVE,
    PaymentStatus.CANCELLED.value: PackageStatus.CANCELLED,
    PaymentStatus.FAILED.value: PackageStatus.FROZEN,
}


def package_status_for_payment(status: str) -> PackageStatus:
    return PAYMENT_TO_PACKAGE_STATUS.get(str(status).upper(), PackageStatus.PAST_DUE)


def build_purchase_snapshot(package: CreditPackage) -> Dict[str, Any]:
    """Package fields frozen onto the purchase; later catalog edits do not touch it"""
    return {
        "credit_package_id": package.id,
        "name": package.name,
        "description": package.description,
        "credit_amount": package.credit_amount,
        "price_per_credit": str(to_decimal(package.price_per_credit)),
        "total_price": money_str(package.total_price),
        "currency": package.currency,
        "is_custom": package.is_custom,
        "is_active": package.is_active,
    }


def initial_usage_details(package: CreditPackage, model_name: Optional[str]):
    """Zeroed AI and Crawl counters seeded from the package feature limits"""
    now = now_utc()
    feature = package.feature
    ai = feature.ai_api if feature is not None else None
    crawl = feature.crawl_api if feature is not None else None
    credits = to_decimal(package.credit_amount)

    ai_requests = ai.request_limits if ai else 0
    ai_tokens = ai.token_limits if ai else 0
    ai_credits = credits * CREDIT_CONVERSION[Service.AI_API.value]
    ai_details = {
        "service": Service.AI_API.value,
        "model_name": model_name,
        "total_requests": ai_requests,
        "total_remaining_requests": ai_requests,
        "requests_per_minute_limit": ai.rpm if ai else 0,
        "requests_per_day_limit": ai.rpd if ai else 0,
        "remaining_requests_per_minute": ai.rpm if ai else 0,
        "remaining_requests_per_day": ai.rpd if ai else 0,
        "reset_time_for_minute_requests": now,
        "reset_time_for_day_requests": now,
        "total_tokens": ai_tokens,
        "total_remaining_tokens": ai_tokens,
        "total_credits": ai_credits,
        "total_remaining_credits": ai_credits,
        "last_token_usage_update_time": now,
    }

    crawl_requests = crawl.request_limits if crawl else 0
    crawl_credits = credits * CREDIT_CONVERSION[Service.CRAWL_API.value]
    crawl_details = {
        "service": Service.CRAWL_API.value,
        "total_requests": crawl_requests,
        "total_remaining_requests": crawl_requests,
        "total_credits": crawl_credits,
        "total_remaining_credits": crawl_credits,
    }
    return ai_details, crawl_details


def purchase_summary(purchase: CreditPurchase, credits_used: Any = None) -> Dict[str, Any]:
    """Flat view of a purchase and its payment for listings"""
    payment = purchase.payment
    summary = {
        "id": purchase.id,
        "credit_package_id": purchase.credit_package_id,
        "status": purchase.status,
        "purchase_snapshot": purchase.purchase_snapshot,
        "shopify_purchase_id": purchase.shopify_purchase_id,
        "expired_at": purchase.expired_at,
        "created_at": purchase.created_at,
        "updated_at": purchase.updated_at,
        "payment": None,
    }
    if credits_used is not None:
        summary["credits_used"] = credits_used
    if payment is not None:
        summary["payment"] = {
            "id": payment.id,
            "status": payment.status,
            "amount": payment.amount,
            "adjusted_amount": payment.adjusted_amount,
            "currency": payment.currency,
            "shopify_transaction_id": payment.shopify_transaction_id,
        }
    return summary


class CreditManager:
    """Entry point for credit purchases and their lifecycle"""

    def __init__(
        self,
        db: DatabaseClient,
        catalog: Optional[PackageCatalogService] = None,
        billing_operations: Optional[BillingOperationsService] = None,
        shop_repository: Optional[ShopRepository] = None,
        model_repository: Optional[ModelRepository] = None,
        notification_service: Optional[CreditNotificationService] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        billing_settings: Optional[BillingSettings] = None,
    ):
        self.db = db
        self.billing_settings = billing_settings or db.billing_settings
        self.catalog = catalog or PackageCatalogService(db, self.billing_settings)
        self.billing_operations = billing_operations or BillingOperationsService(db)
        self.shops = shop_repository or ShopRepository(db)
        self.models = model_repository or ModelRepository(db)
        self.notifications = notification_service or CreditNotificationService(EmailService())
        self.dispatcher = dispatcher or NotificationDispatcher(db, self.notifications)

    async def _require_shop(self, shop_name: str) -> Shop:
        shop = await self.shops.find_shop_by_name(shop_name)
        if shop is None:
            raise ShopNotFoundError(shop_name)
        return shop

    async def _resolve_purchaser(self, email: Optional[str]) -> Optional[AssociatedUser]:
        """
        AssociatedUser to link to a purchase. An invalid address links nobody;
        an unregistered valid address is rejected or skipped per
        UNREGISTERED_EMAIL_POLICY.
        """
        if not validate_email(email):
            return None
        user = await self.shops.find_associated_user_by_email(email)
        if user is not None:
            return user
        if self.billing_settings.UNREGISTERED_EMAIL_POLICY == "reject":
            raise AssociatedUserNotFoundError(email)
        logger.warning("No associated user for purchase email, not linking", email=email)
        return None

    # ============= PRICING =============

    async def calculate_final_price(self, package_id: str, shop_id: str) -> PriceCalculation:
        package = await self.catalog.get_package_by_id(package_id)
        promotions = await self.billing_operations.find_applicable_promotions(
            shop_id=shop_id, package_id=package.id
        )
        discounts = await self.billing_operations.find_applicable_discounts(
            shop_id=shop_id, package_id=package.id
        )
        return self.billing_operations.calculate_adjusted_price(
            package.total_price, promotions, discounts
        )

    # ============= PURCHASE =============

    async def purchase_credits_with_promotions(
        self,
        shop_name: str,
        credit_package_id: str,
        shopify_charge_id: str,
        email: Optional[str] = None,
    ) -> PurchaseResult:
        """
        Buy a credit package for a shop.

        Usage, CreditPurchase, BillingEvents, Payment, the in-app Notification
        and the outbox email row are written in one serializable transaction.
        The confirmation email goes out after commit; its failure is recorded
        on the outbox row and does not fail the purchase.
        """
        shop = await self._require_shop(shop_name)
        package = await self.catalog.get_package_by_id(credit_package_id)
        current_users = await self.shops.find_current_associated_users_by_shop(shop_name)
        purchaser = await self._resolve_purchaser(email)
        model = await self.models.get_latest_model()
        model_name = model.name if model else None

        price = await self.calculate_final_price(package.id, shop.id)
        snapshot = build_purchase_snapshot(package)
        ai_details, crawl_details = initial_usage_details(package, model_name)
        currency = package.currency or self.billing_settings.DEFAULT_CURRENCY

        async def work(session: AsyncSession) -> PurchaseResult:
            repo = CreditRepository(session)
            users = await repo.get_associated_users([u.id for u in current_users])
            linked = await repo.get_associated_users([purchaser.id] if purchaser else [])

            purchase = await repo.add(
                CreditPurchase(
                    shop_id=shop.id,
                    credit_package_id=package.id,
                    purchase_snapshot=snapshot,
                    status=PackageStatus.ACTIVE.value,
                    shopify_purchase_id=shopify_charge_id,
                    associated_users=linked,
                )
            )
            await repo.create_usage(
                shop.id,
                ai_details,
                crawl_details,
                credit_purchase_id=purchase.id,
                associated_users=users,
                credits_used=Decimal("0"),
                total_credits=to_decimal(package.credit_amount),
                total_remaining_credits=to_decimal(package.credit_amount),
                model_name=model_name,
                usage_metadata={},
            )

            for promotion in price.applied_promotions:
                await repo.add(
                    BillingEvent(
                        credit_purchase_id=purchase.id,
                        type=BillingEventType.PROMOTION.value,
                        amount=promotion.value,
                        description=f"Applied promotion: {promotion.code}",
                        promotion_id=promotion.id,
                    )
                )
                await repo.increment_promotion_usage(promotion.id)

            for discount in price.applied_discounts:
                await repo.add(
                    BillingEvent(
                        credit_purchase_id=purchase.id,
                        type=BillingEventType.DISCOUNT.value,
                        amount=discount.value,
                        description=f"Applied discount: {discount.code}",
                        discount_id=discount.id,
                    )
                )
                await repo.increment_discount_usage(discount.id)

            payment = await repo.add(
                Payment(
                    shop_id=shop.id,
                    credit_purchase_id=purchase.id,
                    amount=price.final_price,
                    adjusted_amount=price.adjusted_amount,
                    currency=currency,
                    billing_type=BillingType.ONE_TIME.value,
                    status=PaymentStatus.SUCCEEDED.value,
                    shopify_transaction_id=shopify_charge_id,
                )
            )

            outbox = await self.notifications.enqueue_purchase_notification(
                session,
                shop_id=shop.id,
                shop_name=shop_name,
                purchase=purchase,
                email=email,
                amount=price.final_price,
                currency=currency,
            )
            return PurchaseResult(
                credit_purchase=await repo.get_purchase(purchase.id),
                payment=payment,
                outbox_id=outbox.id if outbox else None,
            )

        result = await self.db.run_serializable(work, "purchase_credits_with_promotions")
        logger.info(
            "Credit package purchased",
            shop_name=shop_name,
            package=package.name,
            purchase_id=result.credit_purchase.id,
            amount=str(price.final_price),
            promotions=len(price.applied_promotions),
            discounts=len(price.applied_discounts),
        )

        if result.outbox_id:
            await self.dispatcher.dispatch(result.outbox_id)
        return result

    # ============= STATUS =============

    async def update_payment_status(self, shopify_transaction_id: str, status: str) -> Payment:
        """Record a gateway status and move the linked purchase accordingly"""
        status = str(status).upper()
        package_status = package_status_for_payment(status)

        async def work(session: AsyncSession) -> Payment:
            repo = CreditRepository(session)
            payment = await repo.get_payment_by_transaction_id(shopify_transaction_id)
            if payment is None:
                raise PaymentNotFoundError(shopify_transaction_id)
            payment.status = status
            if payment.credit_purchase_id:
                await repo.set_purchase_status(payment.credit_purchase_id, package_status)
            await session.flush()
            return payment

        payment = await self.db.run_serializable(work, "update_payment_status")
        logger.info(
            "Payment status updated",
            transaction_id=shopify_transaction_id,
            payment_status=status,
            package_status=package_status.value,
        )
        return payment

    async def check_and_update_package_status(self, shop_name: str) -> List[str]:
        """
        Expire every ACTIVE purchase whose summed usage reached its
        snapshot credit amount. Returns the ids that were expired.
        """
        shop = await self._require_shop(shop_name)
        return await self.expire_exhausted_purchases(shop.id, shop_name)

    async def expire_exhausted_purchases(self, shop_id: str, shop_name: Optional[str] = None) -> List[str]:
        async def work(session: AsyncSession) -> List[str]:
            repo = CreditRepository(session)
            purchases = await repo.list_active_purchases(shop_id)
            used = await repo.credits_used_by_purchase([p.id for p in purchases])
            expired_at = now_utc()
            expired = []
            for purchase in purchases:
                credits_used = used.get(purchase.id, Decimal("0"))
                if credits_used < purchase.snapshot_credit_amount:
                    continue
                if await repo.expire_purchase_if_active(purchase.id, expired_at):
                    expired.append(purchase.id)
            return expired

        expired = await self.db.run_serializable(work, "check_and_update_package_status")
        for purchase_id in expired:
            logger.info("Credit package expired", shop_name=shop_name, purchase_id=purchase_id)
        return expired

    async def activate_purchase(self, purchase_id: str) -> CreditPurchase:
        async def work(session: AsyncSession) -> CreditPurchase:
            repo = CreditRepository(session)
            if not await repo.set_purchase_status(purchase_id, PackageStatus.ACTIVE):
                raise PurchaseNotFoundError(purchase_id)
            return await repo.get_purchase(purchase_id)

        purchase = await self.db.run_serializable(work, "activate_purchase")
        logger.info("Credit package activated", purchase_id=purchase_id)
        return purchase

    # ============= SUBSCRIPTION CREDITS =============

    async def deduct_credits(
        self,
        shop_name: str,
        amount: Any,
        model_name: Optional[str] = None,
        input_tokens: Optional[int] = None,
        output_tokens: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Take `amount` credits from the shop's active subscription.

        The balance check and decrement are a single conditional UPDATE, so
        concurrent deductions can never drive the balance negative.
        """
        amount = to_decimal(amount)
        if not amount.is_finite() or amount <= 0:
            raise LedgerValidationError("Deduction amount must be positive", {"amount": str(amount)})
        shop = await self._require_shop(shop_name)

        async def work(session: AsyncSession) -> Dict[str, Any]:
            repo = CreditRepository(session)
            subscription = await repo.get_active_subscription(shop.id)
            if subscription is None:
                raise InsufficientCreditsError(amount, Decimal("0"))
            balance = to_decimal(subscription.credit_balance)
            if not await repo.debit_subscription(subscription.id, amount):
                raise InsufficientCreditsError(amount, balance)

            usage = await repo.get_subscription_usage(shop.id, subscription.id)
            if usage is None:
                usage = await repo.create_usage(
                    shop.id,
                    {"model_name": model_name},
                    {},
                    subscription_id=subscription.id,
                    credits_used=Decimal("0"),
                    total_credits=balance,
                    total_remaining_credits=balance,
                    model_name=model_name,
                    usage_metadata={},
                )

            await repo.add_usage_credits(
                usage.id,
                amount,
                model_name=model_name,
                input_tokens=Usage.input_tokens + (input_tokens or 0),
                output_tokens=Usage.output_tokens + (output_tokens or 0),
                usage_metadata={"last_usage": now_utc().isoformat(), "model_used": model_name},
            )
            refreshed = await repo.get_active_subscription(shop.id)
            return {
                "subscription_id": subscription.id,
                "usage_id": usage.id,
                "amount": amount,
                "credit_balance": to_decimal(refreshed.credit_balance) if refreshed else balance - amount,
            }

        result = await self.db.run_serializable(work, "deduct_credits")
        logger.info(
            "Credits deducted",
            shop_name=shop_name,
            amount=str(amount),
            model_name=model_name,
            balance=str(result["credit_balance"]),
        )
        return result

    async def get_credits_balance(self, shop_name: str) -> Decimal:
        shop = await self._require_shop(shop_name)
        async with self.db.session() as session:
            subscription = await CreditRepository(session).get_active_subscription(shop.id)
        return to_decimal(subscription.credit_balance) if subscription else Decimal("0")

    # ============= QUERIES =============

    async def get_expired_packages(
        self, shop_name: str, filters: Optional[ExpiredPackageFilters] = None
    ) -> Dict[str, Any]:
        filters = filters or ExpiredPackageFilters()
        shop = await self._require_shop(shop_name)
        async with self.db.session() as session:
            rows, total = await CreditRepository(session).find_expired_purchases(shop.id, filters)
            packages = [purchase_summary(purchase, credits_used) for purchase, credits_used in rows]
        return {"packages": packages, "total": total}

    async def get_credit_history(self, shop_name: str) -> List[Dict[str, Any]]:
        shop = await self._require_shop(shop_name)
        async with self.db.session() as session:
            purchases = await CreditRepository(session).list_purchases(shop.id)
            return [purchase_summary(purchase) for purchase in purchases]

    async def get_next_available_package(self, shop_name: str) -> Optional[CreditPurchase]:
        """Oldest ACTIVE purchase, the next one usage will draw from"""
        shop = await self._require_shop(shop_name)
        async with self.db.session() as session:
            purchases = await CreditRepository(session).list_active_purchases(shop.id)
        return purchases[0] if purchases else None

    async def get_purchase_by_id(self, purchase_id: str) -> CreditPurchase:
        async with self.db.session() as session:
            purchase = await CreditRepository(session).get_purchase(purchase_id)
        if purchase is None:
            raise PurchaseNotFoundError(purchase_id)
        return purchase
