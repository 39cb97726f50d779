"""
Wiring for the billing domain

Builds every billing service around one DatabaseClient so the app, jobs
and tests share the same graph.
"""

from dataclasses import dataclass
from typing import Optional

import httpx

from credit_ledger.core.config.settings import Settings
from credit_ledger.core.database.client import DatabaseClient
from credit_ledger.repository.ModelRepository import ModelRepository
from credit_ledger.repository.ShopRepository import ShopRepository
from .jobs.package_expiry_job import PackageExpiryJob
from .services import (
    BillingOperationsService,
    CreditManager,
    CreditNotificationService,
    CreditReportingService,
    EmailService,
    NotificationDispatcher,
    PackageCatalogService,
    UsageService,
)


@dataclass
class LedgerServices:
    db: DatabaseClient
    shops: ShopRepository
    catalog: PackageCatalogService
    credit_manager: CreditManager
    usage: UsageService
    reporting: CreditReportingService
    dispatcher: NotificationDispatcher
    expiry_job: PackageExpiryJob


def build_ledger_services(
    db: DatabaseClient,
    settings: Settings,
    email_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> LedgerServices:
    shops = ShopRepository(db)
    catalog = PackageCatalogService(db, settings.billing)
    notifications = CreditNotificationService(
        EmailService(settings.email, transport=email_transport), settings.email
    )
    dispatcher = NotificationDispatcher(db, notifications, settings.email)
    credit_manager = CreditManager(
        db,
        catalog=catalog,
        billing_operations=BillingOperationsService(db),
        shop_repository=shops,
        model_repository=ModelRepository(db),
        notification_service=notifications,
        dispatcher=dispatcher,
        billing_settings=settings.billing,
    )
    return LedgerServices(
        db=db,
        shops=shops,
        catalog=catalog,
        credit_manager=credit_manager,
        usage=UsageService(db, shops),
        reporting=CreditReportingService(db, shops),
        dispatcher=dispatcher,
        expiry_job=PackageExpiryJob(credit_manager, shops, dispatcher),
    )
