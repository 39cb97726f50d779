"""
Usage Service

Meters AI and Crawl requests against a shop's ACTIVE credit packages.
Requests are drawn from the oldest package first, converted to credits at
a fixed per-service rate, and AI requests are held to each package's
per-minute and per-day windows.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from credit_ledger.core.database.client import DatabaseClient
from credit_ledger.core.database.models import (
    AIUsageDetails,
    CreditPurchase,
    PackageStatus,
    Service,
    Usage,
)
from credit_ledger.core.exceptions import (
    InsufficientCreditsError,
    LedgerValidationError,
    RateLimitExceededError,
    ShopNotFoundError,
)
from credit_ledger.core.logging import get_logger
from credit_ledger.repository.ShopRepository import ShopRepository
from credit_ledger.shared.constants.billing import (
    CREDIT_CONVERSION,
    TIME_DAY_LIMIT,
    TIME_MINUTE_LIMIT,
)
from credit_ledger.shared.helpers import ensure_utc, now_utc, to_decimal
from ..models.credit_models import AIRequestDetails, ServiceUsageResult
from ..repositories.credit_repository import CreditRepository

logger = get_logger(__name__)


def reset_rate_windows(details: AIUsageDetails, now: datetime) -> None:
    """Refill the minute/day allowances whose window has elapsed"""
    minute_reset = ensure_utc(details.reset_time_for_minute_requests)
    if minute_reset is None or now >= minute_reset + timedelta(seconds=TIME_MINUTE_LIMIT):
        details.remaining_requests_per_minute = details.requests_per_minute_limit
        details.tokens_consumed_per_minute = 0
        details.reset_time_for_minute_requests = now

    day_reset = ensure_utc(details.reset_time_for_day_requests)
    if day_reset is None or now >= day_reset + timedelta(seconds=TIME_DAY_LIMIT):
        details.remaining_requests_per_day = details.requests_per_day_limit
        details.tokens_consumed_per_day = 0
        details.reset_time_for_day_requests = now


class UsageService:
    """Request metering over credit packages"""

    def __init__(self, db: DatabaseClient, shop_repository: Optional[ShopRepository] = None):
        self.db = db
        self.shops = shop_repository or ShopRepository(db)

    async def record_service_usage(
        self,
        shop_name: str,
        service: str,
        requests: int = 1,
        model_name: Optional[str] = None,
        input_tokens: int = 0,
        output_tokens: int = 0,
    ) -> ServiceUsageResult:
        """
        Consume `requests` requests of `service` for a shop.

        Raises InsufficientCreditsError when the ACTIVE packages together do
        not have enough remaining requests, and RateLimitExceededError when
        they do but the AI minute/day windows cannot take them now. Either
        way nothing is written.
        """
        try:
            service = Service(service)
        except ValueError:
            raise LedgerValidationError(f"Unknown service: {service}", {"service": service})
        if requests <= 0:
            raise LedgerValidationError("Requests must be positive", {"requests": requests})

        shop = await self.shops.find_shop_by_name(shop_name)
        if shop is None:
            raise ShopNotFoundError(shop_name)

        ai_request = AIRequestDetails(
            model_name=model_name, input_tokens=input_tokens, output_tokens=output_tokens
        )
        rate = CREDIT_CONVERSION[service.value]

        async def work(session: AsyncSession) -> ServiceUsageResult:
            repo = CreditRepository(session)
            purchases = await repo.list_active_purchases(shop.id, for_update=True)
            ledgers = self._service_ledgers(purchases, service)

            available = sum(details.total_remaining_requests for _, _, details in ledgers)
            if available < requests:
                raise InsufficientCreditsError(requests, available)

            now = now_utc()
            needed = requests
            blocked: Optional[RateLimitExceededError] = None
            result = ServiceUsageResult(
                service=service.value, requests=requests, credits_charged=Decimal("0")
            )

            for purchase, usage, details in ledgers:
                if needed == 0:
                    break
                take = min(needed, details.total_remaining_requests)
                if service == Service.AI_API:
                    reset_rate_windows(details, now)
                    take, window_block = self._within_rate_limits(details, take)
                    blocked = blocked or window_block
                if take <= 0:
                    continue

                credits = to_decimal(take) * rate
                details.total_requests_used += take
                details.total_remaining_requests -= take
                details.total_credits_used = to_decimal(details.total_credits_used) + credits
                details.total_remaining_credits = (
                    to_decimal(details.total_remaining_credits) - credits
                )
                if service == Service.AI_API:
                    # token counts are charged to the first package drawn from
                    tokens = 0 if result.purchases_charged else (
                        ai_request.input_tokens + ai_request.output_tokens
                    )
                    self._record_ai_request(details, take, tokens, ai_request, now)

                usage.credits_used = to_decimal(usage.credits_used) + credits
                usage.total_remaining_credits = to_decimal(usage.total_remaining_credits) - credits
                if ai_request.model_name:
                    usage.model_name = ai_request.model_name

                result.credits_charged += credits
                result.purchases_charged.append(purchase.id)
                needed -= take

                if to_decimal(usage.credits_used) >= purchase.snapshot_credit_amount:
                    purchase.status = PackageStatus.EXPIRED.value
                    purchase.expired_at = now
                    result.expired_purchases.append(purchase.id)

            if needed > 0:
                raise blocked or InsufficientCreditsError(requests, requests - needed)

            await session.flush()
            return result

        result = await self.db.run_serializable(work, "record_service_usage")
        logger.info(
            "Service usage recorded",
            shop_name=shop_name,
            service=service.value,
            requests=requests,
            credits=str(result.credits_charged),
            purchases=len(result.purchases_charged),
        )
        for purchase_id in result.expired_purchases:
            logger.info("Credit package expired", shop_name=shop_name, purchase_id=purchase_id)
        return result

    @staticmethod
    def _service_ledgers(
        purchases: List[CreditPurchase], service: Service
    ) -> List[Tuple[CreditPurchase, Usage, object]]:
        """(purchase, usage, per-service details) for every purchase that meters `service`"""
        ledgers = []
        for purchase in purchases:
            for usage in purchase.usages:
                service_usage = usage.service_usage
                if service_usage is None:
                    continue
                details = (
                    service_usage.ai_usage_details
                    if service == Service.AI_API
                    else service_usage.crawl_usage_details
                )
                if details is not None:
                    ledgers.append((purchase, usage, details))
                    break
        return ledgers

    @staticmethod
    def _within_rate_limits(
        details: AIUsageDetails, take: int
    ) -> Tuple[int, Optional[RateLimitExceededError]]:
        """Trim `take` to what the minute and day windows still allow"""
        allowed, blocked = take, None
        if details.remaining_requests_per_day < allowed:
            allowed = details.remaining_requests_per_day
            blocked = RateLimitExceededError(
                "day",
                details.requests_per_day_limit,
                ensure_utc(details.reset_time_for_day_requests)
                + timedelta(seconds=TIME_DAY_LIMIT),
            )
        if details.remaining_requests_per_minute < allowed:
            allowed = details.remaining_requests_per_minute
            blocked = RateLimitExceededError(
                "minute",
                details.requests_per_minute_limit,
                ensure_utc(details.reset_time_for_minute_requests)
                + timedelta(seconds=TIME_MINUTE_LIMIT),
            )
        return max(allowed, 0), blocked

    @staticmethod
    def _record_ai_request(
        details: AIUsageDetails,
        requests: int,
        tokens: int,
        ai_request: AIRequestDetails,
        now: datetime,
    ) -> None:
        details.remaining_requests_per_minute -= requests
        details.remaining_requests_per_day -= requests
        if tokens:
            details.input_tokens_count += ai_request.input_tokens
            details.output_tokens_count += ai_request.output_tokens
            details.tokens_consumed_per_minute += tokens
            details.tokens_consumed_per_day += tokens
            details.total_tokens_used += tokens
            details.total_remaining_tokens = max(
                0, details.total_tokens - details.total_tokens_used
            )
        if ai_request.model_name:
            details.model_name = ai_request.model_name
        details.last_token_usage_update_time = now
