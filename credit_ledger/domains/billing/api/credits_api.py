"""
Credits API

Thin HTTP surface over the credit ledger. Ledger errors are turned into
HTTP responses by `ledger_exception_handler`, registered in main.create_app.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field, ValidationError

from credit_ledger.core.database.models import CreditPackage
from credit_ledger.core.exceptions import (
    CreditLedgerException,
    EmailServiceError,
    ErrorCode,
    LedgerError,
)
from credit_ledger.core.logging import get_logger
from credit_ledger.shared.helpers import now_utc
from ..container import LedgerServices
from ..models.credit_models import (
    CreditPaymentInfo,
    ExpiredPackageFilters,
    ExpiredPackageSortField,
    SortOrder,
)
from ..services.credit_manager import purchase_summary

router = APIRouter(prefix="/api/credits", tags=["credits"])
logger = get_logger(__name__)

ERROR_STATUS = {
    ErrorCode.SHOP_NOT_FOUND: 404,
    ErrorCode.PACKAGE_NOT_FOUND: 404,
    ErrorCode.PURCHASE_NOT_FOUND: 404,
    ErrorCode.PAYMENT_NOT_FOUND: 404,
    ErrorCode.ASSOCIATED_USER_NOT_FOUND: 404,
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.CONFLICT: 409,
    ErrorCode.INSUFFICIENT_CREDITS: 402,
    ErrorCode.RATE_LIMIT_EXCEEDED: 429,
    ErrorCode.SERIALIZATION_FAILURE: 503,
    ErrorCode.EMAIL_ERROR: 502,
}


def status_for_error(exc: CreditLedgerException) -> int:
    if isinstance(exc, EmailServiceError):
        return 502
    if isinstance(exc, LedgerError):
        return ERROR_STATUS.get(type(exc).code, 500)
    return 500


async def ledger_exception_handler(request: Request, exc: CreditLedgerException):
    status_code = status_for_error(exc)
    if status_code >= 500:
        logger.error(
            "Ledger request failed", path=request.url.path, code=exc.error_code, error=str(exc)
        )
    else:
        logger.warning(
            "Ledger request rejected", path=request.url.path, code=exc.error_code, error=str(exc)
        )

    content = {
        "error": exc.error_code,
        "message": exc.message,
        "details": exc.details,
        "timestamp": now_utc().isoformat(),
    }
    if isinstance(exc, EmailServiceError):
        content["code"] = exc.code
    return JSONResponse(status_code=status_code, content=jsonable_encoder(content))


def get_services(request: Request) -> LedgerServices:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Credit ledger is not ready")
    return services


def serialize_package(package: CreditPackage) -> Dict[str, Any]:
    feature = package.feature
    ai = feature.ai_api if feature is not None else None
    crawl = feature.crawl_api if feature is not None else None
    return {
        "id": package.id,
        "name": package.name,
        "description": package.description,
        "credit_amount": package.credit_amount,
        "price_per_credit": package.price_per_credit,
        "total_price": package.total_price,
        "currency": package.currency,
        "is_custom": package.is_custom,
        "is_active": package.is_active,
        "features": {
            "ai": {
                "request_limits": ai.request_limits,
                "token_limits": ai.token_limits,
                "max_tokens": ai.max_tokens,
                "rpm": ai.rpm,
                "rpd": ai.rpd,
                "tpm": ai.tpm,
                "tpd": ai.tpd,
            }
            if ai is not None
            else None,
            "crawl": {"request_limits": crawl.request_limits} if crawl is not None else None,
        },
    }


# Request Models
class PurchaseRequest(BaseModel):
    shop_name: str
    credit_package_id: str
    shopify_charge_id: str
    email: Optional[str] = None


class PaymentStatusRequest(BaseModel):
    status: str


class DeductRequest(BaseModel):
    amount: Decimal = Field(gt=0)
    model_name: Optional[str] = None
    input_tokens: Optional[int] = Field(default=None, ge=0)
    output_tokens: Optional[int] = Field(default=None, ge=0)


class UsageRequest(BaseModel):
    service: str
    requests: int = Field(default=1, gt=0)
    model_name: Optional[str] = None
    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)


# API Endpoints
@router.get("/packages")
async def list_packages(services: LedgerServices = Depends(get_services)):
    packages = await services.catalog.get_all_standard_packages()
    return {"packages": [serialize_package(p) for p in packages]}


@router.post("/packages/seed")
async def seed_packages(services: LedgerServices = Depends(get_services)):
    packages = await services.catalog.create_standard_credit_packages()
    return {"packages": [serialize_package(p) for p in packages]}


@router.post("/packages/custom", status_code=201)
async def create_custom_package(
    payment_info: CreditPaymentInfo, services: LedgerServices = Depends(get_services)
):
    package = await services.catalog.create_custom_credit_package(payment_info)
    return serialize_package(package)


@router.post("/purchases", status_code=201)
async def purchase_credits(
    request: PurchaseRequest, services: LedgerServices = Depends(get_services)
):
    result = await services.credit_manager.purchase_credits_with_promotions(
        request.shop_name,
        request.credit_package_id,
        request.shopify_charge_id,
        request.email,
    )
    return {
        "credit_purchase": purchase_summary(result.credit_purchase),
        "payment_id": result.payment.id,
        "outbox_id": result.outbox_id,
    }


@router.post("/payments/{transaction_id}/status")
async def update_payment_status(
    transaction_id: str,
    request: PaymentStatusRequest,
    services: LedgerServices = Depends(get_services),
):
    payment = await services.credit_manager.update_payment_status(
        transaction_id, request.status
    )
    return {
        "transaction_id": transaction_id,
        "payment_status": payment.status,
        "credit_purchase_id": payment.credit_purchase_id,
    }


@router.get("/shops/{shop_name}/details")
async def get_purchase_details(
    shop_name: str, services: LedgerServices = Depends(get_services)
):
    details = await services.reporting.get_purchase_details(shop_name)
    return {"shop_name": shop_name, "details": details}


@router.get("/shops/{shop_name}/expired")
async def get_expired_packages(
    shop_name: str,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    min_credits_used: Optional[Decimal] = None,
    max_credits_used: Optional[Decimal] = None,
    package_ids: Optional[List[str]] = Query(default=None),
    limit: int = 10,
    offset: int = 0,
    sort_by: ExpiredPackageSortField = ExpiredPackageSortField.EXPIRED_AT,
    sort_order: SortOrder = SortOrder.DESC,
    services: LedgerServices = Depends(get_services),
):
    try:
        filters = ExpiredPackageFilters(
            start_date=start_date,
            end_date=end_date,
            min_credits_used=min_credits_used,
            max_credits_used=max_credits_used,
            package_ids=package_ids,
            limit=limit,
            offset=offset,
            sort_by=sort_by,
            sort_order=sort_order,
        )
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=jsonable_encoder(e.errors()))
    return await services.credit_manager.get_expired_packages(shop_name, filters)


@router.get("/shops/{shop_name}/history")
async def get_credit_history(
    shop_name: str, services: LedgerServices = Depends(get_services)
):
    purchases = await services.credit_manager.get_credit_history(shop_name)
    return {"shop_name": shop_name, "purchases": purchases}


@router.post("/shops/{shop_name}/deduct")
async def deduct_credits(
    shop_name: str,
    request: DeductRequest,
    services: LedgerServices = Depends(get_services),
):
    return await services.credit_manager.deduct_credits(
        shop_name,
        request.amount,
        request.model_name,
        request.input_tokens,
        request.output_tokens,
    )


@router.post("/shops/{shop_name}/usage")
async def record_usage(
    shop_name: str,
    request: UsageRequest,
    services: LedgerServices = Depends(get_services),
):
    result = await services.usage.record_service_usage(
        shop_name,
        request.service,
        request.requests,
        model_name=request.model_name,
        input_tokens=request.input_tokens,
        output_tokens=request.output_tokens,
    )
    return result.model_dump()


@router.post("/shops/{shop_name}/sweep")
async def sweep_packages(
    shop_name: str, services: LedgerServices = Depends(get_services)
):
    expired = await services.credit_manager.check_and_update_package_status(shop_name)
    return {"shop_name": shop_name, "expired": expired}
