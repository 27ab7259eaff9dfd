from __future__ import annotations

import logging
from typing import Any

import pydantic
import requests

from app.core.errors import ProviderError
from app.schemas.nowpayments import ProviderPayment


logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.nowpayments.io/v1"


class NowPaymentsError(ProviderError):
    def __init__(self, message: str, *, code: str | None = None, http_status: int | None = None) -> None:
        super().__init__(message, code=code)
        self.http_status = http_status


class NowPaymentsClient:
    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = DEFAULT_API_URL,
        timeout_s: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        self._api_key = (api_key or "").strip()
        self._base_url = (base_url or DEFAULT_API_URL).strip().rstrip("/")
        self._timeout_s = float(timeout_s or 30.0)
        self._session = session or requests.Session()

    def close(self) -> None:
        self._session.close()

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> Any:
        headers = {"x-api-key": self._api_key, "accept": "application/json"}
        if json is not None:
            headers["content-type"] = "application/json"
        try:
            resp = self._session.request(
                method,
                f"{self._base_url}{path}",
                headers=headers,
                params=params,
                json=json,
                timeout=self._timeout_s,
            )
        except requests.RequestException as exc:
            logger.warning("nowpayments.request.unreachable method=%s path=%s error=%s", method, path, exc)
            raise NowPaymentsError("Payment provider is unreachable") from exc

        try:
            data = resp.json()
        except ValueError:
            data = None

        status = int(resp.status_code)
        failed = status >= 400 or (isinstance(data, dict) and bool(data.get("error")))
        if failed:
            body = data if isinstance(data, dict) else {}
            code = str(body.get("code") or "").strip() or None
            message = str(body.get("message") or body.get("error") or "").strip()
            logger.warning(
                "nowpayments.request.failed method=%s path=%s status=%s code=%s message=%s",
                method,
                path,
                status,
                code,
                message,
            )
            raise NowPaymentsError(message or f"Payment provider error ({status})", code=code, http_status=status)
        if data is None:
            raise NowPaymentsError("Payment provider returned an invalid response", http_status=status)
        return data

    def get_currencies(self) -> list[str] | None:
        data = self._request("GET", "/currencies")
        currencies = data.get("currencies") if isinstance(data, dict) else None
        if not isinstance(currencies, list):
            return None
        return [str(c) for c in currencies if c]

    def get_min_amount(self, currency_from: str, currency_to: str, fiat_equivalent: str = "eur") -> dict[str, Any]:
        data = self._request(
            "GET",
            "/min-amount",
            params={
                "currency_from": currency_from.lower(),
                "currency_to": currency_to.lower(),
                "fiat_equivalent": fiat_equivalent.lower(),
            },
        )
        return data if isinstance(data, dict) else {}

    def create_payment(
        self,
        *,
        price_amount: float,
        price_currency: str,
        pay_currency: str,
        order_id: str,
        order_description: str,
        ipn_callback_url: str,
    ) -> ProviderPayment:
        data = self._request(
            "POST",
            "/payment",
            json={
                "price_amount": price_amount,
                "price_currency": price_currency.lower(),
                "pay_currency": pay_currency.lower(),
                "order_id": order_id,
                "order_description": order_description,
                "ipn_callback_url": ipn_callback_url,
            },
        )
        return self._parse_payment(data)

    def get_payment(self, payment_id: str) -> ProviderPayment:
        data = self._request("GET", f"/payment/{payment_id}")
        return self._parse_payment(data)

    @staticmethod
    def _parse_payment(data: Any) -> ProviderPayment:
        try:
            return ProviderPayment.model_validate(data)
        except pydantic.ValidationError as exc:
            logger.warning("nowpayments.response.malformed errors=%s", exc.error_count())
            raise NowPaymentsError("Payment provider returned an invalid payment") from exc
