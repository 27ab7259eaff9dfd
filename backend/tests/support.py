from __future__ import annotations

from decimal import Decimal
from typing import Any

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.deps import get_payment_provider
from app.core.database import Base, get_db
from app.core.security import CurrentUser, get_current_user
from app.core.settings import Settings, get_settings
from app.models.account import Account
from app.models.profile import Profile  # noqa: F401
from app.models.transaction import Transaction
from app.schemas.nowpayments import ProviderPayment
from app.services.nowpayments import NowPaymentsError

IPN_SECRET = "test-ipn-secret"
USER = CurrentUser(id="user-1", email="advertiser@example.com")
OTHER_USER = CurrentUser(id="user-2", email="other@example.com")


def make_session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def make_settings(**overrides: Any) -> Settings:
    s = Settings()
    s.nowpayments_api_key = "test-api-key"
    s.nowpayments_ipn_secret = IPN_SECRET
    s.nowpayments_ipn_allow_unsigned = False
    s.public_base_url = "https://ads.example.com"
    s.supabase_jwt_secret = None
    for key, value in overrides.items():
        setattr(s, key, value)
    return s


def add_account(db, user_id: str = USER.id, balance: Decimal = Decimal("0")) -> Account:
    acct = Account(user_id=user_id, name="Meta Agency Account", balance_eur=balance)
    db.add(acct)
    db.commit()
    db.refresh(acct)
    return acct


def add_transaction(db, **fields: Any) -> Transaction:
    values = {
        "user_id": USER.id,
        "type": "deposit",
        "amount": Decimal("98.00"),
        "gross_amount": Decimal("100.00"),
        "fee_amount": Decimal("2.00"),
        "currency": "EUR",
        "status": "pending",
        "payment_status": "waiting",
        "nowpayments_id": "5077125051",
    }
    values.update(fields)
    tx = Transaction(**values)
    db.add(tx)
    db.commit()
    db.refresh(tx)
    return tx


class FakeNowPayments:
    def __init__(self) -> None:
        self.currencies: list[str] | None = ["btc", "eth", "ltc", "USDTTRC20", "doge", "usdc"]
        self.min_fiat: dict[str, float] = {}
        self.min_amount_error: NowPaymentsError | None = None
        self.create_error: NowPaymentsError | None = None
        self.payments: dict[str, dict[str, Any]] = {}
        self.created: list[dict[str, Any]] = []
        self._next_id = 5077125051

    def get_currencies(self) -> list[str] | None:
        return self.currencies

    def get_min_amount(self, currency_from: str, currency_to: str, fiat_equivalent: str = "eur") -> dict[str, Any]:
        if self.min_amount_error is not None:
            raise self.min_amount_error
        return {
            "currency_from": currency_from,
            "currency_to": currency_to,
            "min_amount": 0.0001,
            "fiat_equivalent": self.min_fiat.get(currency_to, 1.5),
        }

    def create_payment(self, **kwargs: Any) -> ProviderPayment:
        if self.create_error is not None:
            raise self.create_error
        self.created.append(kwargs)
        payment_id = self._next_id
        self._next_id += 1
        data = {
            "payment_id": payment_id,
            "payment_status": "waiting",
            "pay_address": "bc1qexampleaddress0000000000000000000000",
            "pay_amount": 0.00153,
            "pay_currency": kwargs["pay_currency"],
            "price_amount": kwargs["price_amount"],
            "price_currency": kwargs["price_currency"],
            "network": kwargs["pay_currency"],
            "order_id": kwargs["order_id"],
            "expiration_estimate_date": "2026-10-19T12:30:00.000Z",
        }
        self.payments[str(payment_id)] = data
        return ProviderPayment.model_validate(data)

    def get_payment(self, payment_id: str) -> ProviderPayment:
        data = self.payments.get(str(payment_id))
        if data is None:
            raise NowPaymentsError("Payment not found", code="NOT_FOUND", http_status=404)
        return ProviderPayment.model_validate(data)

    def set_status(self, payment_id: Any, payment_status: str, **extra: Any) -> None:
        self.payments[str(payment_id)].update({"payment_status": payment_status, **extra})

    def close(self) -> None:
        pass


def make_client(session_factory, provider=None, settings: Settings | None = None, user: CurrentUser | None = USER):
    from main import app

    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides.clear()
    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_settings] = lambda: settings or make_settings()
    if provider is not None:
        app.dependency_overrides[get_payment_provider] = lambda: provider
    if user is not None:
        app.dependency_overrides[get_current_user] = lambda: user
    return TestClient(app)


def reset_overrides() -> None:
    from main import app

    app.dependency_overrides.clear()
