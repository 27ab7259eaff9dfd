from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.errors import NotFoundError
from app.core.security import CurrentUser, get_current_user
from app.models.transaction import Transaction
from app.services.ledger import get_wallet_balance, recalculate_ledger_balance


router = APIRouter(dependencies=[Depends(get_current_user)])


class MeResponse(BaseModel):
    id: str
    email: str
    balance_eur: float
    ledger_balance_eur: float


class TransactionOut(BaseModel):
    id: str
    type: str
    amount: float
    gross_amount: Optional[float] = None
    fee_amount: Optional[float] = None
    currency: Optional[str] = None
    coin_type: Optional[str] = None
    network: Optional[str] = None
    status: str
    payment_status: Optional[str] = None
    nowpayments_id: Optional[str] = None
    pay_address: Optional[str] = None
    pay_amount: Optional[float] = None
    pay_currency: Optional[str] = None
    tx_hash: Optional[str] = None
    confirmations: Optional[int] = None
    confirmations_required: Optional[int] = None
    description: Optional[str] = None
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


@router.get("/me", response_model=MeResponse)
async def me(db: Session = Depends(get_db), current_user: CurrentUser = Depends(get_current_user)):
    return MeResponse(
        id=current_user.id,
        email=current_user.email,
        balance_eur=float(get_wallet_balance(db, current_user.id)),
        ledger_balance_eur=float(recalculate_ledger_balance(db, current_user.id)),
    )


@router.get("/transactions", response_model=list[TransactionOut])
async def list_transactions(
    type: str | None = None,
    status: str | None = None,
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    limit = max(1, min(int(limit or 50), 200))
    offset = max(0, int(offset or 0))
    q = db.query(Transaction).filter(Transaction.user_id == current_user.id)
    if type:
        q = q.filter(Transaction.type == type.strip().lower())
    if status:
        q = q.filter(Transaction.status == status.strip().lower())
    return q.order_by(Transaction.created_at.desc(), Transaction.id.desc()).offset(offset).limit(limit).all()


@router.get("/transactions/{transaction_id}", response_model=TransactionOut)
async def get_transaction(
    transaction_id: str,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    tx = (
        db.query(Transaction)
        .filter(Transaction.id == transaction_id, Transaction.user_id == current_user.id)
        .first()
    )
    if tx is None:
        raise NotFoundError("Transaction not found")
    return tx
