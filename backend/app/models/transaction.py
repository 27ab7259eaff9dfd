from uuid import uuid4

from sqlalchemy import Column, DateTime, Integer, Numeric, String, Text
from sqlalchemy.sql import func

from app.core.database import Base


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(String, primary_key=True, index=True, default=lambda: str(uuid4()))
    user_id = Column(String, index=True, nullable=False)
    account_id = Column(String, index=True, nullable=True)
    type = Column(String, index=True, nullable=False, default="deposit")
    amount = Column(Numeric(12, 2), nullable=False)
    gross_amount = Column(Numeric(12, 2), nullable=True)
    fee_amount = Column(Numeric(12, 2), nullable=True)
    currency = Column(String, default="EUR")
    coin_type = Column(String, nullable=True)
    network = Column(String, nullable=True)
    status = Column(String, index=True, nullable=False, default="pending")
    # raw provider state, kept verbatim for audit
    payment_status = Column(String, nullable=True)
    nowpayments_id = Column(String, unique=True, index=True, nullable=True)
    pay_address = Column(String, nullable=True)
    pay_amount = Column(Numeric(28, 12), nullable=True)
    pay_currency = Column(String, nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    tx_hash = Column(String, nullable=True)
    confirmations = Column(Integer, default=0)
    confirmations_required = Column(Integer, nullable=True)
    wallet_address = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
