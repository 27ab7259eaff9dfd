from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, field_validator


def _coerce_payment_id(value: Any) -> str:
    if isinstance(value, bool) or value is None:
        raise ValueError("payment_id is required")
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str) and value.strip():
        return value.strip()
    raise ValueError("payment_id must be a number or a non-empty string")


class ProviderPayment(BaseModel):
    """Payment object as returned by ``POST /payment`` and ``GET /payment/{id}``."""

    payment_id: str
    payment_status: Optional[str] = None
    pay_address: Optional[str] = None
    pay_amount: Optional[float] = None
    pay_currency: Optional[str] = None
    price_amount: Optional[float] = None
    price_currency: Optional[str] = None
    actually_paid: Optional[float] = None
    network: Optional[str] = None
    order_id: Optional[str] = None
    expiration_estimate_date: Optional[str] = None
    confirmations: Optional[int] = None
    hash: Optional[str] = None

    model_config = ConfigDict(extra="allow")

    @field_validator("payment_id", mode="before")
    @classmethod
    def validate_payment_id(cls, value: Any) -> str:
        return _coerce_payment_id(value)


class IpnPayload(BaseModel):
    """Instant payment notification body posted to the webhook."""

    payment_id: str
    payment_status: str
    pay_address: Optional[str] = None
    pay_amount: Optional[float] = None
    actually_paid: Optional[float] = None
    price_amount: Optional[float] = None
    price_currency: Optional[str] = None
    order_id: Optional[str] = None
    outcome_amount: Optional[float] = None
    outcome_currency: Optional[str] = None
    confirmations: Optional[int] = None
    hash: Optional[str] = None

    model_config = ConfigDict(extra="allow")

    @field_validator("payment_id", mode="before")
    @classmethod
    def validate_payment_id(cls, value: Any) -> str:
        return _coerce_payment_id(value)

    @field_validator("payment_status", mode="before")
    @classmethod
    def normalize_status(cls, value: Any) -> str:
        status = str(value or "").strip().lower()
        if not status:
            raise ValueError("payment_status is required")
        return status


class CreatePaymentRequest(BaseModel):
    amount_eur: Optional[Decimal] = None
    pay_currency: Optional[str] = None
    payment_type: Optional[str] = None


class PaymentStatusRequest(BaseModel):
    payment_id: Optional[Any] = None


class CreatePaymentResponse(BaseModel):
    transaction_id: str
    payment_id: str
    pay_address: Optional[str] = None
    pay_amount: Optional[float] = None
    pay_currency: Optional[str] = None
    payment_status: Optional[str] = None
    expires_at: Optional[str] = None
    amount_eur: float
    net_amount: float
    fee_amount: float


class PaymentStatusResponse(BaseModel):
    payment_id: str
    payment_status: Optional[str] = None
    pay_address: Optional[str] = None
    pay_amount: Optional[float] = None
    actually_paid: Optional[float] = None
    confirmations: Optional[int] = None
