from __future__ import annotations

import logging
import math
import time
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import NotFoundError, PersistenceError, ProviderError, ValidationError
from app.models.transaction import Transaction
from app.schemas.nowpayments import ProviderPayment
from app.services.cache import TTLCache
from app.services.ledger import CENT, STATUS_PENDING, apply_payment_update, find_by_payment_id, utcnow
from app.services.nowpayments import NowPaymentsClient, NowPaymentsError


logger = logging.getLogger(__name__)

MIN_AMOUNT_EUR = Decimal("10")
MAX_AMOUNT_EUR = Decimal("10000")
DEPOSIT_FEE_RATE = Decimal("0.02")
SETTLEMENT_CURRENCY = "EUR"
QUOTE_FALLBACK_TTL = timedelta(hours=1)

PAYMENT_TYPES = {"deposit", "rental"}
SUPPORTED_CURRENCIES: list[str] = ["btc", "eth", "usdttrc20", "usdterc20", "usdtbsc", "usdc"]

CONFIRMATIONS_REQUIRED: dict[str, int] = {
    "btc": 2,
    "eth": 12,
    "usdterc20": 12,
    "usdc": 12,
    "usdttrc20": 20,
    "usdtbsc": 15,
}

_CURRENCY_CACHE = TTLCache(max_items=16, ttl_s=600)


def compute_fee_split(amount_eur: Decimal, payment_type: str) -> tuple[Decimal, Decimal]:
    """Return ``(fee_amount, net_amount)``; rentals are not charged a fee."""
    gross = Decimal(amount_eur).quantize(CENT, rounding=ROUND_HALF_UP)
    if payment_type == "rental":
        fee = Decimal("0.00")
    else:
        fee = (gross * DEPOSIT_FEE_RATE).quantize(CENT, rounding=ROUND_HALF_UP)
    return fee, gross - fee


def validate_payment_request(
    amount_eur: Any,
    pay_currency: str | None,
    payment_type: str | None,
) -> tuple[Decimal, str, str]:
    try:
        amount = Decimal(str(amount_eur)) if amount_eur is not None else None
    except (InvalidOperation, ValueError):
        amount = None
    if amount is None or not amount.is_finite() or amount < MIN_AMOUNT_EUR or amount > MAX_AMOUNT_EUR:
        raise ValidationError("Amount must be between 10 and 10000 EUR")
    amount = amount.quantize(CENT, rounding=ROUND_HALF_UP)

    currency = str(pay_currency or "").strip().lower()
    if not currency:
        raise ValidationError("Currency is required")

    kind = str(payment_type or "deposit").strip().lower() or "deposit"
    if kind not in PAYMENT_TYPES:
        raise ValidationError("payment_type must be 'deposit' or 'rental'")
    return amount, currency, kind


def _parse_iso8601(raw: str | None) -> datetime | None:
    if not raw:
        return None
    v = str(raw).strip()
    if not v:
        return None
    try:
        if v.endswith("Z"):
            v = v[:-1] + "+00:00"
        dt = datetime.fromisoformat(v)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)
    except ValueError:
        return None


def _check_minimum_amount(provider: NowPaymentsClient, amount: Decimal, currency: str) -> None:
    try:
        data = provider.get_min_amount("eur", currency, fiat_equivalent="eur")
    except NowPaymentsError as exc:
        # creation still enforces the provider's own floor
        logger.warning("payments.min_amount.unavailable currency=%s error=%s", currency, exc.message)
        return
    floor = data.get("fiat_equivalent")
    try:
        floor_eur = float(floor) if floor is not None else 0.0
    except (TypeError, ValueError):
        floor_eur = 0.0
    if floor_eur > 0 and float(amount) < floor_eur:
        min_eur = math.ceil(floor_eur)
        logger.info("payments.min_amount.rejected currency=%s amount=%s floor=%s", currency, amount, floor_eur)
        raise ValidationError(f"Minimum amount for {currency.upper()} is {min_eur} EUR")


def _translate_provider_error(exc: NowPaymentsError, currency: str) -> ProviderError:
    if exc.code == "AMOUNT_MINIMAL_ERROR":
        return ProviderError(
            f"Amount too low for {currency.upper()}. Choose a higher amount or another currency.",
            code=exc.code,
        )
    return ProviderError(exc.message or "Payment could not be created", code=exc.code)


def create_payment_intent(
    db: Session,
    provider: NowPaymentsClient,
    *,
    user_id: str,
    amount_eur: Any,
    pay_currency: str | None,
    payment_type: str | None,
    ipn_callback_url: str,
) -> dict[str, Any]:
    amount, currency, kind = validate_payment_request(amount_eur, pay_currency, payment_type)
    logger.info("payments.create.start user_id=%s amount=%s currency=%s type=%s", user_id, amount, currency, kind)

    _check_minimum_amount(provider, amount, currency)

    label = "Agency account rental" if kind == "rental" else "Balance deposit"
    try:
        payment = provider.create_payment(
            price_amount=float(amount),
            price_currency="eur",
            pay_currency=currency,
            order_id=f"{user_id}_{int(time.time() * 1000)}",
            order_description=f"{label} {amount} {SETTLEMENT_CURRENCY}",
            ipn_callback_url=ipn_callback_url,
        )
    except NowPaymentsError as exc:
        raise _translate_provider_error(exc, currency) from exc

    fee, net = compute_fee_split(amount, kind)
    expires_at = _parse_iso8601(payment.expiration_estimate_date) or (utcnow() + QUOTE_FALLBACK_TTL)

    tx = Transaction(
        user_id=user_id,
        type=kind,
        amount=net,
        gross_amount=amount,
        fee_amount=fee,
        currency=SETTLEMENT_CURRENCY,
        status=STATUS_PENDING,
        coin_type=currency.upper(),
        network=payment.network or currency,
        nowpayments_id=payment.payment_id,
        pay_address=payment.pay_address,
        pay_amount=payment.pay_amount,
        pay_currency=payment.pay_currency,
        payment_status=payment.payment_status or "waiting",
        expires_at=expires_at,
        confirmations=0,
        confirmations_required=CONFIRMATIONS_REQUIRED.get(currency),
        description=f"{label} {amount} {SETTLEMENT_CURRENCY} via {currency.upper()}",
    )
    try:
        db.add(tx)
        db.commit()
        db.refresh(tx)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("payments.create.persist_error user_id=%s payment_id=%s", user_id, payment.payment_id)
        raise PersistenceError("Transaction could not be created") from exc

    logger.info(
        "payments.create.done transaction_id=%s payment_id=%s gross=%s fee=%s net=%s",
        tx.id,
        payment.payment_id,
        amount,
        fee,
        net,
    )
    return {
        "transaction_id": tx.id,
        "payment_id": payment.payment_id,
        "pay_address": payment.pay_address,
        "pay_amount": payment.pay_amount,
        "pay_currency": payment.pay_currency,
        "payment_status": payment.payment_status,
        "expires_at": payment.expiration_estimate_date or expires_at.isoformat(),
        "amount_eur": float(amount),
        "net_amount": float(net),
        "fee_amount": float(fee),
    }


def poll_payment_status(
    db: Session,
    provider: NowPaymentsClient,
    *,
    user_id: str,
    payment_id: Any,
) -> dict[str, Any]:
    pid = str(payment_id if payment_id is not None else "").strip()
    if not pid:
        raise ValidationError("payment_id is required")

    transaction = find_by_payment_id(db, pid, user_id=user_id)
    if transaction is None:
        raise NotFoundError("Transaction not found")

    payment: ProviderPayment = provider.get_payment(pid)
    if payment.payment_status:
        apply_payment_update(
            db,
            transaction,
            payment.payment_status,
            tx_hash=payment.hash,
            confirmations=payment.confirmations if payment.confirmations is not None else 0,
        )

    return {
        "payment_id": payment.payment_id,
        "payment_status": payment.payment_status,
        "pay_address": payment.pay_address,
        "pay_amount": payment.pay_amount,
        "actually_paid": payment.actually_paid,
        "confirmations": payment.confirmations,
    }


def list_supported_currencies(provider: NowPaymentsClient) -> list[str]:
    available = _CURRENCY_CACHE.get_or_set("currencies", lambda: provider.get_currencies() or [])
    if not available:
        return list(SUPPORTED_CURRENCIES)
    offered = {str(c).lower() for c in available}
    return [c for c in SUPPORTED_CURRENCIES if c in offered]
