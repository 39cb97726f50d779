"""
Credit Repository for database operations

Session-scoped: every method runs inside the caller's session/transaction,
so a service can compose several calls into one serializable unit.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import select, and_, or_, func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from credit_ledger.core.database.models import (
    AssociatedUser,
    CreditPackage,
    Feature,
    AIFeature,
    CrawlFeature,
    Promotion,
    Discount,
    PackagePromotion,
    PackageDiscount,
    CreditPurchase,
    Payment,
    BillingEvent,
    Subscription,
    Usage,
    ServiceUsage,
    AIUsageDetails,
    CrawlUsageDetails,
    Notification,
    EmailOutbox,
    PackageStatus,
    SubscriptionStatus,
    OutboxStatus,
)
from credit_ledger.core.logging import get_logger
from ..models.credit_models import ExpiredPackageFilters, SortOrder

logger = get_logger(__name__)


def package_load_options(with_purchases: bool = False) -> List[Any]:
    """Eager loads for a package: feature limits, promotions and discounts"""
    options = [
        selectinload(CreditPackage.feature).selectinload(Feature.ai_api),
        selectinload(CreditPackage.feature).selectinload(Feature.crawl_api),
        selectinload(CreditPackage.promotions).selectinload(PackagePromotion.promotion),
        selectinload(CreditPackage.discounts).selectinload(PackageDiscount.discount),
    ]
    if with_purchases:
        options.append(selectinload(CreditPackage.purchases))
    return options


def usage_load_options(parent: Any) -> List[Any]:
    """Eager loads for Usage.service_usage and its two detail rows under parent"""
    service_usage = selectinload(parent).selectinload(Usage.service_usage)
    return [
        service_usage.selectinload(ServiceUsage.ai_usage_details),
        service_usage.selectinload(ServiceUsage.crawl_usage_details),
    ]


def purchase_load_options() -> List[Any]:
    """Everything reporting needs from a purchase"""
    return [
        *usage_load_options(CreditPurchase.usages),
        selectinload(CreditPurchase.payment),
        selectinload(CreditPurchase.billing_events).selectinload(BillingEvent.promotion),
        selectinload(CreditPurchase.billing_events).selectinload(BillingEvent.discount),
        selectinload(CreditPurchase.credit_package)
        .selectinload(CreditPackage.feature)
        .selectinload(Feature.ai_api),
        selectinload(CreditPurchase.credit_package)
        .selectinload(CreditPackage.feature)
        .selectinload(Feature.crawl_api),
        selectinload(CreditPurchase.associated_users),
    ]


class CreditRepository:
    """Repository for credit packages, purchases, usage and notifications"""

    def __init__(self, session: AsyncSession):
        self.session = session

    # ============= PACKAGE OPERATIONS =============

    async def get_package_by_id(
        self, package_id: str, with_purchases: bool = False
    ) -> Optional[CreditPackage]:
        query = (
            select(CreditPackage)
            .where(CreditPackage.id == package_id)
            .options(*package_load_options(with_purchases))
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_package_by_name(
        self, name: str, with_purchases: bool = False
    ) -> Optional[CreditPackage]:
        query = (
            select(CreditPackage)
            .where(CreditPackage.name == name)
            .options(*package_load_options(with_purchases))
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def list_standard_packages(self) -> List[CreditPackage]:
        """Active, non-custom packages, cheapest tier first"""
        query = (
            select(CreditPackage)
            .where(
                and_(
                    CreditPackage.is_custom.is_(False),
                    CreditPackage.is_active.is_(True),
                )
            )
            .options(*package_load_options(with_purchases=True))
            .order_by(CreditPackage.credit_amount.asc())
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def create_package(
        self,
        package_fields: Dict[str, Any],
        ai_limits: Dict[str, Any],
        crawl_limits: Dict[str, Any],
        feature_name: str,
        feature_description: Optional[str] = None,
    ) -> CreditPackage:
        """Insert a package together with its Feature, AIFeature and CrawlFeature"""
        package = CreditPackage(**package_fields)
        ai_feature = AIFeature(**ai_limits)
        crawl_feature = CrawlFeature(**crawl_limits)
        self.session.add_all([package, ai_feature, crawl_feature])
        await self.session.flush()

        self.session.add(
            Feature(
                name=feature_name,
                description=feature_description,
                package_id=package.id,
                ai_feature_id=ai_feature.id,
                crawl_feature_id=crawl_feature.id,
            )
        )
        await self.session.flush()
        return package

    async def update_package(self, package: CreditPackage, fields: Dict[str, Any]) -> CreditPackage:
        for key, value in fields.items():
            setattr(package, key, value)
        await self.session.flush()
        return package

    # ============= PROMOTION / DISCOUNT OPERATIONS =============

    @staticmethod
    def _eligible(model, at: datetime):
        return and_(
            model.is_active.is_(True),
            or_(model.start_date.is_(None), model.start_date <= at),
            or_(model.end_date.is_(None), model.end_date >= at),
            or_(model.usage_limit.is_(None), model.used_count < model.usage_limit),
        )

    async def find_applicable_promotions(
        self, package_id: Optional[str], at: datetime
    ) -> List[Promotion]:
        """Eligible promotions that are global (no package links) or linked to the package"""
        linked = select(PackagePromotion.promotion_id).where(
            PackagePromotion.package_id == package_id
        )
        any_link = select(PackagePromotion.id).where(
            PackagePromotion.promotion_id == Promotion.id
        )
        query = (
            select(Promotion)
            .where(
                self._eligible(Promotion, at),
                or_(~any_link.exists(), Promotion.id.in_(linked)),
            )
            .order_by(Promotion.created_at.asc())
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def find_applicable_discounts(
        self, shop_id: Optional[str], package_id: Optional[str], at: datetime
    ) -> List[Discount]:
        """Eligible discounts for this shop (or any shop) and this package (or any package)"""
        linked = select(PackageDiscount.discount_id).where(
            PackageDiscount.package_id == package_id
        )
        any_link = select(PackageDiscount.id).where(
            PackageDiscount.discount_id == Discount.id
        )
        query = (
            select(Discount)
            .where(
                self._eligible(Discount, at),
                or_(Discount.shop_id.is_(None), Discount.shop_id == shop_id),
                or_(~any_link.exists(), Discount.id.in_(linked)),
            )
            .order_by(Discount.created_at.asc())
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def increment_promotion_usage(self, promotion_id: str) -> None:
        await self.session.execute(
            update(Promotion)
            .where(Promotion.id == promotion_id)
            .values(used_count=Promotion.used_count + 1)
        )

    async def increment_discount_usage(self, discount_id: str) -> None:
        await self.session.execute(
            update(Discount)
            .where(Discount.id == discount_id)
            .values(used_count=Discount.used_count + 1)
        )

    # ============= USAGE OPERATIONS =============

    async def get_associated_users(self, ids: Sequence[str]) -> List[AssociatedUser]:
        if not ids:
            return []
        result = await self.session.execute(
            select(AssociatedUser).where(AssociatedUser.id.in_(list(ids)))
        )
        return list(result.scalars().all())

    async def create_usage(
        self,
        shop_id: str,
        ai_details: Dict[str, Any],
        crawl_details: Dict[str, Any],
        credit_purchase_id: Optional[str] = None,
        subscription_id: Optional[str] = None,
        associated_users: Sequence[Any] = (),
        **usage_fields: Any,
    ) -> Usage:
        """Insert a Usage with its ServiceUsage and both detail rows"""
        usage = Usage(
            shop_id=shop_id,
            credit_purchase_id=credit_purchase_id,
            subscription_id=subscription_id,
            **usage_fields,
        )
        usage.associated_users = list(associated_users)
        service_usage = ServiceUsage(usage=usage)
        service_usage.ai_usage_details = AIUsageDetails(**ai_details)
        service_usage.crawl_usage_details = CrawlUsageDetails(**crawl_details)
        self.session.add_all([usage, service_usage])
        await self.session.flush()
        return usage

    async def get_subscription_usage(
        self, shop_id: str, subscription_id: str
    ) -> Optional[Usage]:
        query = (
            select(Usage)
            .where(Usage.shop_id == shop_id, Usage.subscription_id == subscription_id)
            .order_by(Usage.created_at.asc())
            .limit(1)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def add_usage_credits(
        self,
        usage_id: str,
        credits: Decimal,
        **fields: Any,
    ) -> None:
        """Atomically add to credits_used and shrink total_remaining_credits"""
        values: Dict[Any, Any] = {
            Usage.credits_used: Usage.credits_used + credits,
            Usage.total_remaining_credits: Usage.total_remaining_credits - credits,
        }
        for key, value in fields.items():
            values[getattr(Usage, key)] = value
        await self.session.execute(update(Usage).where(Usage.id == usage_id).values(values))

    async def credits_used_by_purchase(
        self, purchase_ids: Sequence[str]
    ) -> Dict[str, Decimal]:
        """Sum of Usage.credits_used per purchase id (missing ids mean zero)"""
        if not purchase_ids:
            return {}
        query = (
            select(Usage.credit_purchase_id, func.sum(Usage.credits_used))
            .where(Usage.credit_purchase_id.in_(list(purchase_ids)))
            .group_by(Usage.credit_purchase_id)
        )
        result = await self.session.execute(query)
        return {row[0]: Decimal(str(row[1] or 0)) for row in result.all()}

    # ============= PURCHASE OPERATIONS =============

    async def add(self, entity: Any) -> Any:
        self.session.add(entity)
        await self.session.flush()
        return entity

    async def get_purchase(self, purchase_id: str) -> Optional[CreditPurchase]:
        query = (
            select(CreditPurchase)
            .where(CreditPurchase.id == purchase_id)
            .options(*purchase_load_options())
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def list_active_purchases(
        self, shop_id: str, for_update: bool = False
    ) -> List[CreditPurchase]:
        """ACTIVE purchases, oldest first (consumption order)"""
        query = (
            select(CreditPurchase)
            .where(
                CreditPurchase.shop_id == shop_id,
                CreditPurchase.status == PackageStatus.ACTIVE.value,
            )
            .options(*purchase_load_options())
            .order_by(CreditPurchase.created_at.asc(), CreditPurchase.id.asc())
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def list_purchases(self, shop_id: str) -> List[CreditPurchase]:
        """Every purchase of a shop, newest first"""
        query = (
            select(CreditPurchase)
            .where(CreditPurchase.shop_id == shop_id)
            .options(
                selectinload(CreditPurchase.payment),
                selectinload(CreditPurchase.credit_package),
            )
            .order_by(CreditPurchase.created_at.desc(), CreditPurchase.id.desc())
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def set_purchase_status(
        self, purchase_id: str, status: PackageStatus, expired_at: Optional[datetime] = None
    ) -> int:
        values: Dict[str, Any] = {"status": status.value}
        if expired_at is not None:
            values["expired_at"] = expired_at
        result = await self.session.execute(
            update(CreditPurchase).where(CreditPurchase.id == purchase_id).values(**values)
        )
        return result.rowcount

    async def expire_purchase_if_active(self, purchase_id: str, at: datetime) -> bool:
        """ACTIVE -> EXPIRED; False when another transaction already moved it"""
        result = await self.session.execute(
            update(CreditPurchase)
            .where(
                CreditPurchase.id == purchase_id,
                CreditPurchase.status == PackageStatus.ACTIVE.value,
            )
            .values(status=PackageStatus.EXPIRED.value, expired_at=at)
        )
        return result.rowcount == 1

    async def find_expired_purchases(
        self, shop_id: str, filters: ExpiredPackageFilters
    ) -> Tuple[List[Tuple[CreditPurchase, Decimal]], int]:
        """
        Page of EXPIRED purchases matching the filters, with their credits used.

        Returns:
            ([(purchase, credits_used), ...], total matching rows before paging)
        """
        used = (
            select(
                Usage.credit_purchase_id.label("purchase_id"),
                func.sum(Usage.credits_used).label("credits_used"),
            )
            .where(Usage.credit_purchase_id.is_not(None))
            .group_by(Usage.credit_purchase_id)
            .subquery()
        )
        credits_used = func.coalesce(used.c.credits_used, 0)

        conditions = [
            CreditPurchase.shop_id == shop_id,
            CreditPurchase.status == PackageStatus.EXPIRED.value,
        ]
        if filters.start_date is not None:
            conditions.append(CreditPurchase.expired_at >= filters.start_date)
        if filters.end_date is not None:
            conditions.append(CreditPurchase.expired_at <= filters.end_date)
        if filters.min_credits_used is not None:
            conditions.append(credits_used >= filters.min_credits_used)
        if filters.max_credits_used is not None:
            conditions.append(credits_used <= filters.max_credits_used)
        if filters.package_ids:
            conditions.append(CreditPurchase.credit_package_id.in_(filters.package_ids))

        count_query = (
            select(func.count(CreditPurchase.id))
            .select_from(CreditPurchase)
            .outerjoin(used, used.c.purchase_id == CreditPurchase.id)
            .where(*conditions)
        )
        total = int((await self.session.execute(count_query)).scalar_one())

        sort_column = getattr(CreditPurchase, filters.sort_by.value)
        ordering = sort_column.asc() if filters.sort_order == SortOrder.ASC else sort_column.desc()
        query = (
            select(CreditPurchase, credits_used.label("credits_used"))
            .outerjoin(used, used.c.purchase_id == CreditPurchase.id)
            .where(*conditions)
            .options(
                selectinload(CreditPurchase.payment),
                selectinload(CreditPurchase.credit_package),
            )
            .order_by(ordering, CreditPurchase.id.asc())
            .limit(filters.limit)
            .offset(filters.offset)
        )
        result = await self.session.execute(query)
        rows = [(row[0], Decimal(str(row[1] or 0))) for row in result.all()]
        return rows, total

    # ============= PAYMENT OPERATIONS =============

    async def get_payment_by_transaction_id(self, transaction_id: str) -> Optional[Payment]:
        query = (
            select(Payment)
            .where(Payment.shopify_transaction_id == transaction_id)
            .options(selectinload(Payment.credit_purchase))
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    # ============= SUBSCRIPTION OPERATIONS =============

    async def get_active_subscription(self, shop_id: str) -> Optional[Subscription]:
        query = (
            select(Subscription)
            .where(
                Subscription.shop_id == shop_id,
                Subscription.status == SubscriptionStatus.ACTIVE.value,
            )
            .order_by(Subscription.created_at.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def debit_subscription(self, subscription_id: str, amount: Decimal) -> bool:
        """Check-and-decrement in one statement; False when the balance is short"""
        result = await self.session.execute(
            update(Subscription)
            .where(
                Subscription.id == subscription_id,
                Subscription.status == SubscriptionStatus.ACTIVE.value,
                Subscription.credit_balance >= amount,
            )
            .values(credit_balance=Subscription.credit_balance - amount)
        )
        return result.rowcount == 1

    # ============= NOTIFICATION OPERATIONS =============

    async def add_notification(self, **fields: Any) -> Notification:
        return await self.add(Notification(**fields))

    async def add_outbox_email(self, **fields: Any) -> EmailOutbox:
        return await self.add(EmailOutbox(status=OutboxStatus.PENDING.value, attempts=0, **fields))

    async def get_outbox_email(self, outbox_id: str) -> Optional[EmailOutbox]:
        result = await self.session.execute(select(EmailOutbox).where(EmailOutbox.id == outbox_id))
        return result.scalar_one_or_none()

    async def list_dispatchable_outbox(self, max_attempts: int, limit: int = 50) -> List[EmailOutbox]:
        """PENDING or FAILED rows that still have attempts left, oldest first"""
        query = (
            select(EmailOutbox)
            .where(
                EmailOutbox.status.in_([OutboxStatus.PENDING.value, OutboxStatus.FAILED.value]),
                EmailOutbox.attempts < max_attempts,
            )
            .order_by(EmailOutbox.created_at.asc())
            .limit(limit)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def claim_outbox_email(self, outbox_id: str, max_attempts: int, at: datetime) -> bool:
        """
        Move a deliverable row to SENDING and count the attempt.

        Only one caller can win the claim; the loser sees rowcount 0.
        """
        result = await self.session.execute(
            update(EmailOutbox)
            .where(
                EmailOutbox.id == outbox_id,
                EmailOutbox.status.in_([OutboxStatus.PENDING.value, OutboxStatus.FAILED.value]),
                EmailOutbox.attempts < max_attempts,
            )
            .values(
                status=OutboxStatus.SENDING.value,
                attempts=EmailOutbox.attempts + 1,
                claimed_at=at,
            )
        )
        return result.rowcount == 1

    async def requeue_stale_outbox(self, cutoff: datetime) -> int:
        """Return rows stuck in SENDING since before cutoff to FAILED"""
        result = await self.session.execute(
            update(EmailOutbox)
            .where(
                EmailOutbox.status == OutboxStatus.SENDING.value,
                EmailOutbox.claimed_at < cutoff,
            )
            .values(status=OutboxStatus.FAILED.value, last_error="stale_sending_requeued")
        )
        return result.rowcount
