"""
Package Expiry Job

Sweeps every active shop, expiring credit packages whose usage reached
their purchased credit amount, then retries undelivered outbox emails.
"""

from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from credit_ledger.core.exceptions import CreditLedgerException
from credit_ledger.core.logging import get_logger
from credit_ledger.repository.ShopRepository import ShopRepository
from credit_ledger.shared.helpers import now_utc
from ..services.credit_manager import CreditManager
from ..services.notification_service import NotificationDispatcher

logger = get_logger(__name__)


class PackageExpiryJob:
    """
    Periodic expiry sweep over all shops.
    """

    def __init__(
        self,
        credit_manager: CreditManager,
        shop_repository: Optional[ShopRepository] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
    ):
        self.credit_manager = credit_manager
        self.shops = shop_repository or credit_manager.shops
        self.dispatcher = dispatcher or credit_manager.dispatcher

    async def run(self, dispatch_outbox: bool = True) -> Dict[str, Any]:
        """
        Run the sweep.

        A failure for one shop is recorded in the summary and the sweep moves
        on to the next shop.

        Returns:
            Job execution summary
        """
        job_start_time = now_utc()
        logger.info("Starting package expiry job")

        shops = await self.shops.list_active_shops()
        expired: Dict[str, list] = {}
        errors = []

        for shop in shops:
            try:
                purchase_ids = await self.credit_manager.expire_exhausted_purchases(
                    shop.id, shop.shop_name
                )
            except (CreditLedgerException, SQLAlchemyError) as e:
                logger.error(
                    "Expiry sweep failed for shop",
                    shop_name=shop.shop_name,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                errors.append({"shop_name": shop.shop_name, "error": str(e)})
                continue
            if purchase_ids:
                expired[shop.shop_name] = purchase_ids

        outbox = None
        if dispatch_outbox:
            outbox = await self.dispatcher.dispatch_pending()

        job_end_time = now_utc()
        result = {
            "status": "completed" if not errors else "completed_with_errors",
            "processed_shops": len(shops),
            "expired_packages": sum(len(ids) for ids in expired.values()),
            "expired": expired,
            "outbox": outbox,
            "errors": errors,
            "start_time": job_start_time.isoformat(),
            "end_time": job_end_time.isoformat(),
            "duration_seconds": (job_end_time - job_start_time).total_seconds(),
        }

        logger.info(
            "Package expiry job completed",
            processed_shops=result["processed_shops"],
            expired_packages=result["expired_packages"],
            errors=len(errors),
        )
        return result
