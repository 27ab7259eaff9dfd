from uuid import uuid4

from sqlalchemy import Column, DateTime, Numeric, String
from sqlalchemy.sql import func

from app.core.database import Base


class Account(Base):
    __tablename__ = "accounts"

    id = Column(String, primary_key=True, index=True, default=lambda: str(uuid4()))
    user_id = Column(String, index=True, nullable=True)
    name = Column(String, nullable=False)
    platform = Column(String, default="meta")
    status = Column(String, index=True, default="active")
    # wallet balance credited by completed crypto deposits
    balance_eur = Column(Numeric(12, 2), default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
