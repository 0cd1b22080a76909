"""
Payment endpoints: initiation, gateway callbacks, refunds and owner earnings
"""

from typing import Any, List, Optional
from uuid import UUID
import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.core.exceptions import ValidationError
from app.core.security import get_current_user, require_owner
from app.models.user import User
from app.schemas.payment import (
    PaymentInitiate,
    PaymentInitiateResponse,
    PaymentResponse,
    VerificationResponse,
    EsewaVerifyRequest,
    KhaltiVerifyRequest,
    RefundRequest,
    RefundResponse,
    EarningsResponse,
)
from app.schemas.response import PaginatedResponse, PaginationMeta
from app.services.gateways import EsewaCallback, KhaltiCallback
from app.services.payment_service import PaymentService, get_payment_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/initiate", response_model=PaymentInitiateResponse)
async def initiate_payment(
    data: PaymentInitiate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    payments: PaymentService = Depends(get_payment_service)
) -> Any:
    """
    Start an ADVANCE, FULL or BALANCE payment. eSewa answers with form
    fields to post; Khalti with a payment URL.
    """
    return await payments.initiate(db, data, current_user)


@router.get("/success", response_model=VerificationResponse)
async def payment_success(
    gateway: str = Query(...),
    data: Optional[str] = Query(None),
    pidx: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_session),
    payments: PaymentService = Depends(get_payment_service)
) -> Any:
    """Redirect target of both gateways"""
    gateway = gateway.lower()
    if gateway == "esewa" and data:
        return await payments.verify(db, EsewaCallback(data=data))
    if gateway == "khalti" and pidx:
        return await payments.verify(db, KhaltiCallback(pidx=pidx))
    raise ValidationError("Invalid payment callback", field="gateway")


@router.get("/failure")
async def payment_failure(gateway: Optional[str] = Query(None)) -> Any:
    logger.info(f"Payment cancelled or failed at gateway {gateway}")
    return {
        "success": False,
        "message": "Payment was cancelled or failed",
        "gateway": gateway,
    }


@router.post("/verify/esewa", response_model=VerificationResponse)
async def verify_esewa(
    body: EsewaVerifyRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    payments: PaymentService = Depends(get_payment_service)
) -> Any:
    """Manual verification when the redirect never reached us"""
    return await payments.verify(db, EsewaCallback(data=body.data))


@router.post("/verify/khalti", response_model=VerificationResponse)
async def verify_khalti(
    body: KhaltiVerifyRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    payments: PaymentService = Depends(get_payment_service)
) -> Any:
    return await payments.verify(db, KhaltiCallback(pidx=body.pidx))


@router.get("/user/history", response_model=List[PaymentResponse])
async def get_payment_history(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    payments: PaymentService = Depends(get_payment_service)
) -> Any:
    return await payments.list_user_payments(db, current_user)


@router.get("/owner/earnings", response_model=EarningsResponse)
async def get_owner_earnings(
    current_user: User = Depends(require_owner),
    db: AsyncSession = Depends(get_session),
    payments: PaymentService = Depends(get_payment_service)
) -> Any:
    return await payments.owner_earnings(db, current_user)


@router.get("/owner/transactions", response_model=PaginatedResponse[PaymentResponse])
async def get_owner_transactions(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    venue_id: Optional[UUID] = Query(None, alias="venueId"),
    current_user: User = Depends(require_owner),
    db: AsyncSession = Depends(get_session),
    payments: PaymentService = Depends(get_payment_service)
) -> Any:
    transactions, total = await payments.owner_transactions(db, current_user, page, limit, venue_id)
    return PaginatedResponse[PaymentResponse](
        data=[PaymentResponse.model_validate(p) for p in transactions],
        pagination=PaginationMeta.build(page, limit, total),
    )


@router.get("/booking/{booking_id}", response_model=List[PaymentResponse])
async def get_booking_payments(
    booking_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    payments: PaymentService = Depends(get_payment_service)
) -> Any:
    return await payments.list_booking_payments(db, booking_id, current_user)


@router.post("/{payment_id}/verify", response_model=VerificationResponse)
async def retry_verification(
    payment_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    payments: PaymentService = Depends(get_payment_service)
) -> Any:
    """Re-check a payment with its gateway, e.g. after an initiation timeout"""
    return await payments.retry_verification(db, payment_id, current_user)


@router.get("/{payment_id}", response_model=PaymentResponse)
async def get_payment(
    payment_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    payments: PaymentService = Depends(get_payment_service)
) -> Any:
    return await payments.get_payment(db, payment_id, current_user)


@router.post("/{payment_id}/refund", response_model=RefundResponse)
async def request_refund(
    payment_id: UUID,
    body: RefundRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    payments: PaymentService = Depends(get_payment_service)
) -> Any:
    return await payments.initiate_refund(db, payment_id, body.reason, current_user)
