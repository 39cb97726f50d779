"""
Credit notification services

CreditNotificationService writes the in-app notification and the email
outbox row inside the purchase transaction and knows how to send the
purchase confirmation. NotificationDispatcher delivers outbox rows after
the transaction has committed.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from credit_ledger.core.config.settings import EmailSettings
from credit_ledger.core.database.client import DatabaseClient
from credit_ledger.core.database.models import (
    CreditPurchase,
    EmailOutbox,
    NotificationType,
    OutboxStatus,
)
from credit_ledger.core.exceptions import PurchaseNotFoundError
from credit_ledger.core.logging import get_logger
from credit_ledger.shared.helpers import (
    ensure_utc,
    format_billing_date,
    money_str,
    now_utc,
    parse_iso_timestamp,
    validate_email,
)
from ..repositories.credit_repository import CreditRepository
from .email_service import EmailService

logger = get_logger(__name__)

CREDITS_PURCHASED_TEMPLATE = "credits_purchased"


class CreditNotificationService:
    """Purchase notifications: in-app rows, outbox rows and the confirmation email"""

    def __init__(
        self,
        email_service: EmailService,
        email_settings: Optional[EmailSettings] = None,
    ):
        self.email_service = email_service
        self.email_settings = email_settings or email_service.settings

    def purchase_notification_content(self, package_name: str) -> Dict[str, str]:
        app_name = self.email_settings.APP_NAME
        return {
            "title": f"Package Purchased: {app_name}'s {package_name} Package",
            "message": (
                f"Thank you for purchasing the {package_name} package! Your package is now "
                "active, and you can start utilizing its features immediately. If you have "
                "any questions or need assistance, feel free to reach out to our support team."
            ),
        }

    async def enqueue_purchase_notification(
        self,
        session: AsyncSession,
        shop_id: str,
        shop_name: str,
        purchase: CreditPurchase,
        email: Optional[str],
        amount: Any,
        currency: str,
    ) -> Optional[EmailOutbox]:
        """
        Add the in-app Notification and, for a valid address, a PENDING
        outbox email to the caller's transaction.
        """
        repo = CreditRepository(session)
        snapshot = purchase.purchase_snapshot or {}
        package_name = snapshot.get("name")

        await repo.add_notification(
            shop_id=shop_id,
            type=NotificationType.BILLING.value,
            **self.purchase_notification_content(package_name),
        )

        if not validate_email(email):
            logger.info("No valid recipient, purchase email not queued", shop_name=shop_name)
            return None

        return await repo.add_outbox_email(
            shop_id=shop_id,
            credit_purchase_id=purchase.id,
            template=CREDITS_PURCHASED_TEMPLATE,
            recipient=email.strip(),
            payload={
                "shop_name": shop_name,
                "package_name": package_name,
                "credits": snapshot.get("credit_amount"),
                "amount": money_str(amount),
                "currency": currency,
                "billing_date": now_utc().isoformat(),
            },
        )

    async def send_credits_purchased(
        self,
        purchase: Optional[CreditPurchase],
        shop_name: str,
        email: Optional[str],
        date: Optional[datetime] = None,
        amount: Any = None,
    ) -> bool:
        """
        Send the purchase confirmation email.

        An invalid address is logged and skipped (returns False). A missing
        purchase raises PurchaseNotFoundError; delivery problems raise
        EmailServiceError from the email service.
        """
        if not validate_email(email):
            logger.warning("Skipping credits purchased email, invalid address", email=email)
            return False
        if purchase is None:
            raise PurchaseNotFoundError()

        snapshot = purchase.purchase_snapshot or {}
        price = amount if amount is not None else snapshot.get("total_price")
        billing_date = ensure_utc(date or purchase.created_at) or now_utc()

        await self.email_service.send_credits_purchased(
            email.strip(),
            {
                "shop_name": shop_name,
                "package_name": snapshot.get("name"),
                "credits": snapshot.get("credit_amount"),
                "amount": money_str(price) if price is not None else None,
                "currency": snapshot.get("currency"),
                "billing_date": format_billing_date(billing_date),
            },
        )
        return True


class NotificationDispatcher:
    """Delivers committed outbox emails and records every attempt"""

    def __init__(
        self,
        db: DatabaseClient,
        notification_service: CreditNotificationService,
        email_settings: Optional[EmailSettings] = None,
    ):
        self.db = db
        self.notification_service = notification_service
        self.email_settings = email_settings or notification_service.email_settings

    async def dispatch(self, outbox_id: str) -> bool:
        """
        Try to deliver one outbox row.

        Returns True when the email is (or already was) sent. A row held by
        another dispatcher is left alone. Failures are recorded on the row
        and logged, never raised.
        """
        _, sent = await self._deliver(outbox_id)
        return sent

    async def _deliver(self, outbox_id: str) -> Tuple[bool, bool]:
        """Returns (attempted, sent)"""
        outbox, purchase, claimed = await self._claim(outbox_id)
        if outbox is None:
            logger.warning("Outbox email not found", outbox_id=outbox_id)
            return False, False
        if not claimed:
            if outbox.status != OutboxStatus.SENT.value:
                logger.info(
                    "Outbox email not claimable",
                    outbox_id=outbox_id,
                    status=outbox.status,
                    attempts=outbox.attempts,
                )
            return False, outbox.status == OutboxStatus.SENT.value

        payload = outbox.payload or {}
        error: Optional[str] = None
        try:
            sent = await self.notification_service.send_credits_purchased(
                purchase,
                payload.get("shop_name"),
                outbox.recipient,
                parse_iso_timestamp(payload.get("billing_date") or ""),
                amount=payload.get("amount"),
            )
            if not sent:
                error = "Invalid recipient email"
        except Exception as e:
            error = str(e)
            logger.error(
                "Outbox email delivery failed",
                outbox_id=outbox_id,
                code=getattr(e, "code", type(e).__name__),
                error=error,
            )

        await self._record_attempt(outbox_id, error)
        if error is None:
            logger.info("Outbox email sent", outbox_id=outbox_id, attempts=outbox.attempts)
        return True, error is None

    async def _claim(
        self, outbox_id: str
    ) -> Tuple[Optional[EmailOutbox], Optional[CreditPurchase], bool]:
        async def work(session: AsyncSession):
            repo = CreditRepository(session)
            claimed = await repo.claim_outbox_email(
                outbox_id, self.email_settings.EMAIL_MAX_ATTEMPTS, now_utc()
            )
            outbox = await repo.get_outbox_email(outbox_id)
            if outbox is None or not claimed:
                return outbox, None, False
            purchase = (
                await repo.get_purchase(outbox.credit_purchase_id)
                if outbox.credit_purchase_id
                else None
            )
            return outbox, purchase, True

        return await self.db.run_serializable(work, "claim_outbox_email")

    async def _record_attempt(self, outbox_id: str, error: Optional[str]) -> None:
        async def work(session: AsyncSession) -> None:
            outbox = await CreditRepository(session).get_outbox_email(outbox_id)
            if error is None:
                outbox.status = OutboxStatus.SENT.value
                outbox.sent_at = now_utc()
                outbox.last_error = None
            else:
                outbox.status = OutboxStatus.FAILED.value
                outbox.last_error = error[:1000]

        await self.db.run_serializable(work, "record_outbox_attempt")

    async def dispatch_pending(self, limit: int = 50) -> Dict[str, int]:
        """Retry PENDING and FAILED rows that still have attempts left"""
        cutoff = now_utc() - timedelta(seconds=self.email_settings.EMAIL_SENDING_STALE_SECONDS)

        async def requeue(session: AsyncSession) -> int:
            return await CreditRepository(session).requeue_stale_outbox(cutoff)

        requeued = await self.db.run_serializable(requeue, "requeue_stale_outbox")
        if requeued:
            logger.warning("Requeued stale outbox emails", count=requeued)

        async with self.db.session() as session:
            rows = await CreditRepository(session).list_dispatchable_outbox(
                self.email_settings.EMAIL_MAX_ATTEMPTS, limit
            )
            outbox_ids = [row.id for row in rows]

        summary = {"sent": 0, "failed": 0}
        for outbox_id in outbox_ids:
            attempted, sent = await self._deliver(outbox_id)
            if not attempted:
                continue
            summary["sent" if sent else "failed"] += 1

        logger.info("Outbox dispatch finished", **summary)
        return summary
