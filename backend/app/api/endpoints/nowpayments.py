from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_payment_provider
from app.core.database import get_db
from app.core.security import CurrentUser, get_current_user
from app.core.settings import Settings, get_settings
from app.schemas.nowpayments import (
    CreatePaymentRequest,
    CreatePaymentResponse,
    PaymentStatusRequest,
    PaymentStatusResponse,
)
from app.services.nowpayments import NowPaymentsClient
from app.services.payments import create_payment_intent, list_supported_currencies, poll_payment_status


router = APIRouter(prefix="/nowpayments")


@router.get("/currencies")
async def currencies(
    current_user: CurrentUser = Depends(get_current_user),
    provider: NowPaymentsClient = Depends(get_payment_provider),
) -> dict:
    return {"currencies": list_supported_currencies(provider)}


@router.post("/create-payment", response_model=CreatePaymentResponse)
async def create_payment(
    body: CreatePaymentRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    provider: NowPaymentsClient = Depends(get_payment_provider),
    settings: Settings = Depends(get_settings),
):
    return create_payment_intent(
        db,
        provider,
        user_id=current_user.id,
        amount_eur=body.amount_eur,
        pay_currency=body.pay_currency,
        payment_type=body.payment_type,
        ipn_callback_url=settings.ipn_callback_url,
    )


@router.post("/payment-status", response_model=PaymentStatusResponse)
async def payment_status(
    body: PaymentStatusRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    provider: NowPaymentsClient = Depends(get_payment_provider),
):
    return poll_payment_status(db, provider, user_id=current_user.id, payment_id=body.payment_id)
