"""
Billing Operations Service

Promotion and discount eligibility plus the price arithmetic applied to a
package purchase.
"""

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Sequence

from credit_ledger.core.database.client import DatabaseClient
from credit_ledger.core.database.models import AdjustmentType, Discount, Promotion
from credit_ledger.core.logging import get_logger
from credit_ledger.shared.helpers import now_utc, to_decimal
from ..models.credit_models import PriceCalculation
from ..repositories.credit_repository import CreditRepository

logger = get_logger(__name__)

_CENT = Decimal("0.01")
_HUNDRED = Decimal("100")


class BillingOperationsService:
    """Database-backed promotion and discount resolution"""

    def __init__(self, db: DatabaseClient):
        self.db = db

    async def find_applicable_promotions(
        self,
        shop_id: Optional[str] = None,
        package_id: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> List[Promotion]:
        """
        Promotions a purchase of `package_id` may consume right now.

        Eligible means active, inside its start/end window, under its usage
        limit, and either global or linked to the package. Promotions are not
        shop specific, so `shop_id` only appears in the log line.
        """
        async with self.db.session() as session:
            promotions = await CreditRepository(session).find_applicable_promotions(
                package_id, at or now_utc()
            )
        logger.debug(
            "Applicable promotions resolved",
            shop_id=shop_id,
            package_id=package_id,
            count=len(promotions),
        )
        return promotions

    async def find_applicable_discounts(
        self,
        shop_id: Optional[str] = None,
        package_id: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> List[Discount]:
        """Same eligibility as promotions, restricted to global or this shop's discounts"""
        async with self.db.session() as session:
            discounts = await CreditRepository(session).find_applicable_discounts(
                shop_id, package_id, at or now_utc()
            )
        logger.debug(
            "Applicable discounts resolved",
            shop_id=shop_id,
            package_id=package_id,
            count=len(discounts),
        )
        return discounts

    @staticmethod
    def calculate_adjusted_price(
        initial_price,
        promotions: Sequence[Promotion] = (),
        discounts: Sequence[Discount] = (),
    ) -> PriceCalculation:
        """
        Apply percentage reductions (compounding, promotions before discounts),
        then fixed-amount reductions. The price never goes below zero.

        Only adjustments that actually lowered the price are reported as
        applied; those are the ones recorded and counted against usage limits.
        """
        base = to_decimal(initial_price)
        price = base
        adjustments = [("promotion", p) for p in promotions] + [
            ("discount", d) for d in discounts
        ]
        applied = {"promotion": [], "discount": []}

        ordered = [a for a in adjustments if a[1].type == AdjustmentType.PERCENTAGE.value] + [
            a for a in adjustments if a[1].type != AdjustmentType.PERCENTAGE.value
        ]
        for kind, adjustment in ordered:
            value = to_decimal(adjustment.value)
            if value <= 0 or price <= 0:
                continue
            if adjustment.type == AdjustmentType.PERCENTAGE.value:
                reduction = price * min(value, _HUNDRED) / _HUNDRED
            else:
                reduction = min(value, price)
            price -= reduction
            applied[kind].append(adjustment)

        final_price = max(price, Decimal("0")).quantize(_CENT, rounding=ROUND_HALF_UP)
        return PriceCalculation(
            final_price=final_price,
            adjusted_amount=(base - final_price).quantize(_CENT, rounding=ROUND_HALF_UP),
            applied_promotions=applied["promotion"],
            applied_discounts=applied["discount"],
        )
