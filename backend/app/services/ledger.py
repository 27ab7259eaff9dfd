from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import PersistenceError
from app.models.account import Account
from app.models.profile import Profile
from app.models.transaction import Transaction


logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"

PROVIDER_STATUS_MAP: dict[str, str] = {
    "waiting": STATUS_PENDING,
    "confirming": STATUS_PENDING,
    "sending": STATUS_PENDING,
    "finished": STATUS_COMPLETED,
    "confirmed": STATUS_COMPLETED,
    "failed": STATUS_FAILED,
    "expired": STATUS_FAILED,
    "refunded": STATUS_FAILED,
}

# target status -> statuses it may be entered from; completed is terminal
ALLOWED_PREVIOUS: dict[str, tuple[str, ...]] = {
    STATUS_PENDING: (STATUS_PENDING,),
    STATUS_FAILED: (STATUS_PENDING, STATUS_FAILED),
    STATUS_COMPLETED: (STATUS_PENDING, STATUS_FAILED),
}

CREDITED_TYPES = {"deposit", "refund"}
DEBITED_TYPES = {"withdrawal"}

CENT = Decimal("0.01")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_money(value: Any) -> Decimal:
    if value is None:
        return Decimal("0.00")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def map_payment_status(payment_status: str | None) -> str | None:
    """Internal status for a provider ``payment_status``; ``None`` leaves the status as is."""
    return PROVIDER_STATUS_MAP.get(str(payment_status or "").strip().lower())


@dataclass(frozen=True)
class PaymentUpdate:
    transaction_id: str
    status: str
    credited: bool


def find_by_payment_id(db: Session, payment_id: str, user_id: str | None = None) -> Transaction | None:
    try:
        q = db.query(Transaction).filter(Transaction.nowpayments_id == str(payment_id))
        if user_id is not None:
            q = q.filter(Transaction.user_id == user_id)
        return q.first()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("ledger.lookup.error payment_id=%s", payment_id)
        raise PersistenceError("Transaction lookup failed") from exc


def wallet_account(db: Session, user_id: str) -> Account | None:
    return (
        db.query(Account)
        .filter(Account.user_id == user_id)
        .order_by(Account.created_at.desc(), Account.id.desc())
        .first()
    )


def get_wallet_balance(db: Session, user_id: str) -> Decimal:
    acct = wallet_account(db, user_id)
    if acct is not None:
        return to_money(acct.balance_eur)
    profile = db.query(Profile).filter(Profile.id == user_id).first()
    return to_money(profile.balance_eur if profile else None)


def recalculate_ledger_balance(db: Session, user_id: str) -> Decimal:
    def _sum(types: set[str]) -> Decimal:
        total = (
            db.query(func.coalesce(func.sum(Transaction.amount), 0))
            .filter(Transaction.user_id == user_id)
            .filter(Transaction.status == STATUS_COMPLETED)
            .filter(Transaction.type.in_(sorted(types)))
            .scalar()
        )
        return to_money(total)

    return to_money(_sum(CREDITED_TYPES) - _sum(DEBITED_TYPES))


def _credit_wallet(db: Session, user_id: str, amount: Decimal) -> None:
    acct = wallet_account(db, user_id)
    if acct is not None:
        db.query(Account).filter(Account.id == acct.id).update(
            {
                Account.balance_eur: func.coalesce(Account.balance_eur, 0) + amount,
                Account.updated_at: utcnow(),
            },
            synchronize_session=False,
        )
        return

    updated = (
        db.query(Profile)
        .filter(Profile.id == user_id)
        .update({Profile.balance_eur: func.coalesce(Profile.balance_eur, 0) + amount}, synchronize_session=False)
    )
    if not updated:
        db.add(Profile(id=user_id, balance_eur=amount))


def apply_payment_update(
    db: Session,
    transaction: Transaction,
    payment_status: str,
    *,
    tx_hash: str | None = None,
    confirmations: int | None = None,
) -> PaymentUpdate:
    """Record a provider status observation and settle the transaction.

    Every status write is a compare-and-swap on the stored status, so the
    webhook and the status poll can both call this for the same payment and
    the balance is credited by whichever claims the completed transition first.
    """
    raw_status = str(payment_status or "").strip().lower()
    target = map_payment_status(raw_status)
    audit: dict[Any, Any] = {
        Transaction.payment_status: raw_status,
        Transaction.updated_at: utcnow(),
    }
    if tx_hash:
        audit[Transaction.tx_hash] = tx_hash
    if confirmations is not None:
        audit[Transaction.confirmations] = int(confirmations)

    credited = False
    try:
        claimed = 0
        if target is not None:
            claimed = (
                db.query(Transaction)
                .filter(Transaction.id == transaction.id)
                .filter(Transaction.status.in_(ALLOWED_PREVIOUS[target]))
                .update({**audit, Transaction.status: target}, synchronize_session=False)
            )
        if not claimed:
            db.query(Transaction).filter(Transaction.id == transaction.id).update(audit, synchronize_session=False)

        if claimed and target == STATUS_COMPLETED and (transaction.type or "") in CREDITED_TYPES:
            amount = to_money(transaction.amount)
            _credit_wallet(db, transaction.user_id, amount)
            credited = True
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("ledger.apply.error transaction_id=%s payment_status=%s", transaction.id, raw_status)
        raise PersistenceError("Transaction update failed") from exc

    db.refresh(transaction)
    if credited:
        logger.info(
            "ledger.credited transaction_id=%s user_id=%s amount=%s",
            transaction.id,
            transaction.user_id,
            transaction.amount,
        )
    elif target is not None and not claimed:
        logger.info(
            "ledger.transition.skipped transaction_id=%s current=%s target=%s payment_status=%s",
            transaction.id,
            transaction.status,
            target,
            raw_status,
        )
    return PaymentUpdate(transaction_id=transaction.id, status=transaction.status, credited=credited)
