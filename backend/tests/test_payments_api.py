import json
import unittest
from decimal import Decimal

from app.models.account import Account
from app.models.transaction import Transaction
from app.services import payments
from app.services.ipn import sign_ipn_payload
from app.services.nowpayments import NowPaymentsError
from tests.support import (
    IPN_SECRET,
    OTHER_USER,
    USER,
    FakeNowPayments,
    add_account,
    make_client,
    make_session_factory,
    reset_overrides,
)


class PaymentsApiTestCase(unittest.TestCase):
    def setUp(self):
        payments._CURRENCY_CACHE.clear()
        self.SessionLocal = make_session_factory()
        self.db = self.SessionLocal()
        self.account = add_account(self.db)
        self.provider = FakeNowPayments()
        self.client = make_client(self.SessionLocal, provider=self.provider)

    def tearDown(self):
        self.db.close()
        reset_overrides()

    def _create(self, **body):
        payload = {"amount_eur": 100, "pay_currency": "btc", "payment_type": "deposit"}
        payload.update(body)
        return self.client.post("/api/nowpayments/create-payment", json=payload)

    def _webhook(self, payment_id, payment_status):
        payload = {"payment_id": payment_id, "payment_status": payment_status}
        return self.client.post(
            "/api/nowpayments-webhook",
            content=json.dumps(payload),
            headers={"x-nowpayments-sig": sign_ipn_payload(payload, IPN_SECRET), "content-type": "application/json"},
        )

    def _balance(self):
        self.db.expire_all()
        return self.db.query(Account).filter(Account.id == self.account.id).one().balance_eur

    def _transactions(self):
        self.db.expire_all()
        return self.db.query(Transaction).all()


class TestCreatePayment(PaymentsApiTestCase):
    def test_deposit_creates_pending_transaction_with_fee_split(self):
        resp = self._create()

        self.assertEqual(resp.status_code, 200, resp.text)
        data = resp.json()
        self.assertEqual(data["payment_id"], "5077125051")
        self.assertEqual(data["amount_eur"], 100.0)
        self.assertEqual(data["fee_amount"], 2.0)
        self.assertEqual(data["net_amount"], 98.0)
        self.assertEqual(data["pay_currency"], "btc")
        self.assertEqual(data["payment_status"], "waiting")
        self.assertEqual(data["expires_at"], "2026-10-19T12:30:00.000Z")

        rows = self._transactions()
        self.assertEqual(len(rows), 1)
        tx = rows[0]
        self.assertEqual(tx.id, data["transaction_id"])
        self.assertEqual(tx.user_id, USER.id)
        self.assertEqual(tx.type, "deposit")
        self.assertEqual(tx.status, "pending")
        self.assertEqual(tx.payment_status, "waiting")
        self.assertEqual(tx.amount, Decimal("98.00"))
        self.assertEqual(tx.gross_amount, Decimal("100.00"))
        self.assertEqual(tx.fee_amount, Decimal("2.00"))
        self.assertEqual(tx.currency, "EUR")
        self.assertEqual(tx.coin_type, "BTC")
        self.assertEqual(tx.nowpayments_id, "5077125051")
        self.assertEqual(tx.confirmations_required, 2)
        self.assertEqual(self._balance(), Decimal("0"))

    def test_provider_request_carries_order_reference_and_callback(self):
        self._create(pay_currency="ETH")

        sent = self.provider.created[0]
        self.assertEqual(sent["price_amount"], 100.0)
        self.assertEqual(sent["price_currency"], "eur")
        self.assertEqual(sent["pay_currency"], "eth")
        self.assertTrue(sent["order_id"].startswith(f"{USER.id}_"))
        self.assertEqual(sent["ipn_callback_url"], "https://ads.example.com/api/nowpayments-webhook")

    def test_rental_has_no_fee(self):
        resp = self._create(amount_eur=250, payment_type="rental")

        data = resp.json()
        self.assertEqual(data["fee_amount"], 0.0)
        self.assertEqual(data["net_amount"], 250.0)
        self.assertEqual(self._transactions()[0].type, "rental")

    def test_amount_bounds(self):
        self.assertEqual(self._create(amount_eur=9.99).status_code, 400)
        self.assertEqual(self._create(amount_eur=10000.01).status_code, 400)
        self.assertEqual(len(self._transactions()), 0)
        self.assertEqual(self._create(amount_eur=10).status_code, 200)
        self.assertEqual(self._create(amount_eur=10000).status_code, 200)
        self.assertEqual(len(self._transactions()), 2)

    def test_missing_fields_are_400(self):
        self.assertEqual(self._create(amount_eur=None).status_code, 400)
        resp = self._create(pay_currency="")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json(), {"error": "Currency is required"})
        self.assertEqual(self.client.post("/api/nowpayments/create-payment", json={"amount_eur": "lots"}).status_code, 400)

    def test_currency_floor_is_enforced(self):
        self.provider.min_fiat["usdterc20"] = 14.2

        resp = self._create(amount_eur=12, pay_currency="usdterc20")

        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json(), {"error": "Minimum amount for USDTERC20 is 15 EUR"})
        self.assertEqual(self.provider.created, [])
        self.assertEqual(len(self._transactions()), 0)

    def test_floor_lookup_failure_does_not_block_creation(self):
        self.provider.min_amount_error = NowPaymentsError("Payment provider is unreachable")

        self.assertEqual(self._create().status_code, 200)

    def test_amount_minimal_error_is_translated(self):
        self.provider.create_error = NowPaymentsError("Crypto amount is less than minimal", code="AMOUNT_MINIMAL_ERROR")

        resp = self._create(pay_currency="eth")

        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json(), {"error": "Amount too low for ETH. Choose a higher amount or another currency."})
        self.assertEqual(len(self._transactions()), 0)

    def test_other_provider_errors_surface_provider_message(self):
        self.provider.create_error = NowPaymentsError("Currency btc is unavailable", code="INVALID_REQUEST_PARAMS")
        resp = self._create()
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json(), {"error": "Currency btc is unavailable"})

        self.provider.create_error = NowPaymentsError("")
        resp = self._create()
        self.assertEqual(resp.json(), {"error": "Payment could not be created"})

    def test_requires_authentication(self):
        client = make_client(self.SessionLocal, provider=self.provider, user=None)

        resp = client.post("/api/nowpayments/create-payment", json={"amount_eur": 100, "pay_currency": "btc"})

        self.assertEqual(resp.status_code, 401)
        self.assertEqual(len(self._transactions()), 0)


class TestCurrencies(PaymentsApiTestCase):
    def test_filtered_to_supported_currencies(self):
        resp = self.client.get("/api/nowpayments/currencies")

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"currencies": ["btc", "eth", "usdttrc20", "usdc"]})

    def test_falls_back_to_full_allow_list(self):
        self.provider.currencies = None

        resp = self.client.get("/api/nowpayments/currencies")

        self.assertEqual(resp.json()["currencies"], payments.SUPPORTED_CURRENCIES)


class TestPaymentStatus(PaymentsApiTestCase):
    def _poll(self, payment_id):
        return self.client.post("/api/nowpayments/payment-status", json={"payment_id": payment_id})

    def test_reports_provider_status_and_records_progress(self):
        payment_id = self._create().json()["payment_id"]
        self.provider.set_status(payment_id, "confirming", confirmations=1, actually_paid=0.00153)

        resp = self._poll(int(payment_id))

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(
            resp.json(),
            {
                "payment_id": payment_id,
                "payment_status": "confirming",
                "pay_address": "bc1qexampleaddress0000000000000000000000",
                "pay_amount": 0.00153,
                "actually_paid": 0.00153,
                "confirmations": 1,
            },
        )
        tx = self._transactions()[0]
        self.assertEqual(tx.status, "pending")
        self.assertEqual(tx.payment_status, "confirming")
        self.assertEqual(tx.confirmations, 1)

    def test_poll_and_webhook_together_credit_once(self):
        payment_id = self._create().json()["payment_id"]
        self.provider.set_status(payment_id, "finished", hash="0xbeef")

        self.assertEqual(self._poll(payment_id).status_code, 200)
        self.assertEqual(self._transactions()[0].status, "completed")
        self.assertEqual(self._balance(), Decimal("98.00"))

        self.assertEqual(self._webhook(int(payment_id), "finished").status_code, 200)
        self.assertEqual(self._poll(payment_id).status_code, 200)
        self.assertEqual(self._balance(), Decimal("98.00"))
        self.assertEqual(self._transactions()[0].tx_hash, "0xbeef")

    def test_other_users_payment_is_not_found(self):
        payment_id = self._create().json()["payment_id"]
        other = make_client(self.SessionLocal, provider=self.provider, user=OTHER_USER)

        resp = other.post("/api/nowpayments/payment-status", json={"payment_id": payment_id})

        self.assertEqual(resp.status_code, 404)

    def test_payment_id_is_required(self):
        self.assertEqual(self.client.post("/api/nowpayments/payment-status", json={}).status_code, 400)


class TestDepositScenario(PaymentsApiTestCase):
    def test_create_then_webhook_then_redelivery(self):
        created = self._create(amount_eur=100, pay_currency="btc", payment_type="deposit").json()
        self.assertEqual(created["fee_amount"], 2.0)
        self.assertEqual(created["net_amount"], 98.0)
        self.assertEqual(self._transactions()[0].status, "pending")

        resp = self._webhook(int(created["payment_id"]), "finished")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(self._transactions()[0].status, "completed")
        self.assertEqual(self._balance(), Decimal("98.00"))

        resp = self._webhook(int(created["payment_id"]), "finished")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(self._balance(), Decimal("98.00"))

        me = self.client.get("/api/me").json()
        self.assertEqual(me["balance_eur"], 98.0)
        self.assertEqual(me["ledger_balance_eur"], 98.0)

        history = self.client.get("/api/transactions", params={"status": "completed"}).json()
        self.assertEqual([t["id"] for t in history], [created["transaction_id"]])
        detail = self.client.get(f"/api/transactions/{created['transaction_id']}").json()
        self.assertEqual(detail["nowpayments_id"], created["payment_id"])
        self.assertEqual(self.client.get("/api/transactions/does-not-exist").status_code, 404)


if __name__ == "__main__":
    unittest.main()
