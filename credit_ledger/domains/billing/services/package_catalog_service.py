"""
Package Catalog Service

Standard credit packages, one-off custom packages and package lookups.
"""

import math
import secrets
import string
import time
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from credit_ledger.core.config.settings import BillingSettings
from credit_ledger.core.database.client import DatabaseClient
from credit_ledger.core.database.models import CreditPackage, Service
from credit_ledger.core.exceptions import LedgerValidationError, PackageNotFoundError
from credit_ledger.core.logging import get_logger
from credit_ledger.shared.constants.billing import (
    AI_MAX_TOKENS,
    AI_RPD_CAP,
    AI_RPM,
    AI_TOKENS_PER_REQUEST,
    AI_TPD_CAP,
    AI_TPM,
    CREDIT_CONVERSION,
    CUSTOM_AI_CREDIT_DIVISOR,
    CUSTOM_AI_REQUEST_RATIO,
    CUSTOM_CRAWL_REQUEST_RATIO,
    STANDARD_CREDIT_PACKAGES,
)
from credit_ledger.shared.helpers import to_decimal
from ..models.credit_models import CreditPaymentInfo
from ..repositories.credit_repository import CreditRepository

logger = get_logger(__name__)

_BASE36 = string.digits + string.ascii_lowercase


def derive_feature_limits(credits: Any) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """
    AI and Crawl limits granted by a package of `credits` credits.

    AI requests follow floor(credits / 0.1) * 0.5 literally; Crawl requests
    are credits * 0.5 (floored to whole requests).
    """
    credits = to_decimal(credits)
    ai_requests = int(math.floor(credits / CUSTOM_AI_CREDIT_DIVISOR) * CUSTOM_AI_REQUEST_RATIO)
    crawl_requests = int(math.floor(credits * CUSTOM_CRAWL_REQUEST_RATIO))
    token_limits = ai_requests * AI_TOKENS_PER_REQUEST

    ai_limits = {
        "service": Service.AI_API.value,
        "request_limits": ai_requests,
        "token_limits": token_limits,
        "max_tokens": AI_MAX_TOKENS,
        "credit_limits": credits * CREDIT_CONVERSION[Service.AI_API.value],
        "rpm": AI_RPM,
        "rpd": min(ai_requests, AI_RPD_CAP),
        "tpm": AI_TPM,
        "tpd": min(token_limits, AI_TPD_CAP),
    }
    crawl_limits = {
        "service": Service.CRAWL_API.value,
        "request_limits": crawl_requests,
        "credit_limits": credits * CREDIT_CONVERSION[Service.CRAWL_API.value],
    }
    return ai_limits, crawl_limits


def generate_custom_package_name() -> str:
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"CUSTOM_{int(time.time() * 1000)}_{suffix}"


class PackageCatalogService:
    """Reads and writes the credit package catalog"""

    def __init__(self, db: DatabaseClient, billing_settings: Optional[BillingSettings] = None):
        self.db = db
        self.billing_settings = billing_settings or db.billing_settings

    async def create_standard_credit_packages(self) -> List[CreditPackage]:
        """
        Upsert the fixed catalog by package name.

        Running it again overwrites the package fields in place; feature
        limits are only derived when a package is first created.
        """

        async def work(session: AsyncSession) -> List[CreditPackage]:
            repo = CreditRepository(session)
            packages = []
            for definition in STANDARD_CREDIT_PACKAGES:
                fields = {
                    **definition,
                    "currency": self.billing_settings.DEFAULT_CURRENCY,
                    "is_custom": False,
                    "is_active": True,
                }
                package = await repo.get_package_by_name(definition["name"])
                if package is None:
                    ai_limits, crawl_limits = derive_feature_limits(definition["credit_amount"])
                    package = await repo.create_package(
                        fields,
                        ai_limits,
                        crawl_limits,
                        feature_name=f"{definition['name']} features",
                        feature_description=definition["description"],
                    )
                    logger.info("Standard package created", name=package.name)
                else:
                    await repo.update_package(package, fields)
                    logger.info("Standard package updated", name=package.name)
                packages.append(package.id)
            return [await repo.get_package_by_id(package_id) for package_id in packages]

        return await self.db.run_serializable(work, "create_standard_credit_packages")

    async def get_all_standard_packages(self) -> List[CreditPackage]:
        async with self.db.session() as session:
            return await CreditRepository(session).list_standard_packages()

    async def get_package_by_id(self, package_id: str) -> CreditPackage:
        async with self.db.session() as session:
            package = await CreditRepository(session).get_package_by_id(
                package_id, with_purchases=True
            )
        if package is None:
            raise PackageNotFoundError(package_id)
        return package

    async def get_package_by_name(self, name: str) -> CreditPackage:
        async with self.db.session() as session:
            package = await CreditRepository(session).get_package_by_name(
                name, with_purchases=True
            )
        if package is None:
            raise PackageNotFoundError(name)
        return package

    async def create_custom_credit_package(self, payment_info: CreditPaymentInfo) -> CreditPackage:
        """
        Create a one-off package for an arbitrary price and credit count.

        The package, its Feature and both limit rows are written in one
        transaction; nothing is written when the payload is invalid.
        """
        amount = payment_info.price.amount if payment_info.price else None
        credits = payment_info.credits
        if amount is None or not credits or credits <= 0 or amount <= 0:
            raise LedgerValidationError(
                "Invalid custom package data",
                {"amount": str(amount), "credits": credits},
            )

        amount = to_decimal(amount)
        currency = (
            payment_info.price.currency_code or self.billing_settings.DEFAULT_CURRENCY
        )
        name = generate_custom_package_name()
        fields = {
            "name": name,
            "description": f"Custom package of {credits} credits",
            "credit_amount": credits,
            "price_per_credit": amount / Decimal(credits),
            "total_price": amount,
            "currency": currency,
            "is_custom": True,
            "is_active": True,
        }
        ai_limits, crawl_limits = derive_feature_limits(credits)

        async def work(session: AsyncSession) -> CreditPackage:
            repo = CreditRepository(session)
            package = await repo.create_package(
                fields,
                ai_limits,
                crawl_limits,
                feature_name=f"{name} features",
                feature_description=fields["description"],
            )
            return await repo.get_package_by_id(package.id, with_purchases=True)

        package = await self.db.run_serializable(work, "create_custom_credit_package")
        logger.info(
            "Custom package created",
            name=package.name,
            credits=credits,
            total_price=str(amount),
        )
        return package
