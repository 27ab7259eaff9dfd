"""NOWPayments instant payment notifications (IPN).

The provider signs each callback with HMAC-SHA512, using the IPN secret
configured in the merchant dashboard, over ``JSON.stringify`` of the payload
with its object keys sorted (objects inside arrays keep their order), and
sends the hex digest in ``x-nowpayments-sig``. The serialization below
reproduces that byte for byte, including JavaScript number formatting.
The provider retries on any non-2xx answer, so failures here are raised
rather than acknowledged.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import math
import re
from decimal import Decimal
from typing import Any

import pydantic
from sqlalchemy.orm import Session

from app.core.errors import AuthenticityError, ConfigurationError, NotFoundError, ValidationError
from app.schemas.nowpayments import IpnPayload
from app.services.ledger import PaymentUpdate, apply_payment_update, find_by_payment_id


logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-nowpayments-sig"

_HEX_SIGNATURE = re.compile(r"[0-9a-f]+")
_LONE_SURROGATE = re.compile("[\ud800-\udfff]")
_ARRAY_INDEX = re.compile(r"0|[1-9][0-9]*")


def _js_number(value: int | float) -> str:
    try:
        number = float(value)
    except OverflowError:
        return "null"
    if not math.isfinite(number):
        return "null"
    if number == 0:
        return "0"

    sign, digit_tuple, exponent = Decimal(repr(number)).normalize().as_tuple()
    digits = "".join(str(d) for d in digit_tuple)
    k = len(digits)
    n = k + exponent
    if k <= n <= 21:
        text = digits + "0" * (n - k)
    elif 0 < n <= 21:
        text = f"{digits[:n]}.{digits[n:]}"
    elif -6 < n <= 0:
        text = "0." + "0" * (-n) + digits
    else:
        mantissa = digits[0] + (f".{digits[1:]}" if k > 1 else "")
        text = f"{mantissa}e{'+' if n > 0 else '-'}{abs(n - 1)}"
    return f"-{text}" if sign else text


def _js_string(value: str) -> str:
    text = json.dumps(value, ensure_ascii=False)
    return _LONE_SURROGATE.sub(lambda m: f"\\u{ord(m.group()):04x}", text)


def _js_key_order(keys: list[str]) -> list[str]:
    # integer-like keys come first in ascending order on a JS object
    indexes = [k for k in keys if _ARRAY_INDEX.fullmatch(k) and int(k) < 2**32 - 1]
    index_set = set(indexes)
    return sorted(indexes, key=int) + [k for k in keys if k not in index_set]


def _dumps(obj: Any, sort_keys: bool) -> str:
    if obj is None:
        return "null"
    if isinstance(obj, bool):
        return "true" if obj else "false"
    if isinstance(obj, (int, float, Decimal)):
        return _js_number(obj)
    if isinstance(obj, str):
        return _js_string(obj)
    if isinstance(obj, (list, tuple)):
        return "[" + ",".join(_dumps(v, False) for v in obj) + "]"
    if isinstance(obj, dict):
        keys = [str(k) for k in obj]
        ordered = _js_key_order(sorted(keys) if sort_keys else keys)
        values = {str(k): v for k, v in obj.items()}
        return "{" + ",".join(f"{_js_string(k)}:{_dumps(values[k], sort_keys)}" for k in ordered) + "}"
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def stable_json_dumps(obj: Any) -> str:
    """Serialize ``obj`` the way the provider's ``JSON.stringify`` of a key-sorted payload does."""
    return _dumps(obj, True)


def sign_ipn_payload(payload: dict[str, Any], secret: str) -> str:
    return hmac.new(
        key=secret.encode("utf-8"),
        msg=stable_json_dumps(payload).encode("utf-8"),
        digestmod=hashlib.sha512,
    ).hexdigest()


def verify_ipn_signature(
    payload: dict[str, Any],
    signature: str | None,
    *,
    secret: str | None,
    allow_unsigned: bool = False,
) -> None:
    sig = (signature or "").strip().lower()
    if not sig:
        if allow_unsigned:
            logger.warning("nowpayments.webhook.unsigned_accepted payment_id=%s", payload.get("payment_id"))
            return
        raise AuthenticityError("Missing signature")
    if not secret:
        raise ConfigurationError("NOWPAYMENTS_IPN_SECRET is not configured")
    if not _HEX_SIGNATURE.fullmatch(sig):
        logger.warning("nowpayments.webhook.malformed_signature payment_id=%s", payload.get("payment_id"))
        raise AuthenticityError("Invalid signature")
    expected = sign_ipn_payload(payload, secret)
    if not hmac.compare_digest(expected.encode("ascii"), sig.encode("ascii")):
        logger.warning("nowpayments.webhook.invalid_signature payment_id=%s", payload.get("payment_id"))
        raise AuthenticityError("Invalid signature")


def _reject_constant(name: str) -> Any:
    raise ValueError(f"{name} is not valid JSON")


def parse_ipn_body(raw_body: bytes) -> dict[str, Any]:
    try:
        payload = json.loads(raw_body or b"", parse_constant=_reject_constant)
    except ValueError:
        raise ValidationError("Invalid JSON")
    if not isinstance(payload, dict):
        raise ValidationError("Invalid payload")
    return payload


def parse_ipn_payload(payload: dict[str, Any]) -> IpnPayload:
    try:
        return IpnPayload.model_validate(payload)
    except pydantic.ValidationError as exc:
        fields = ", ".join(sorted({str(e["loc"][0]) for e in exc.errors() if e.get("loc")}))
        raise ValidationError(f"Invalid payment notification: {fields or 'payload'}")


def process_ipn(db: Session, ipn: IpnPayload) -> PaymentUpdate:
    logger.info("nowpayments.webhook.received payment_id=%s payment_status=%s", ipn.payment_id, ipn.payment_status)

    transaction = find_by_payment_id(db, ipn.payment_id)
    if transaction is None:
        logger.warning("nowpayments.webhook.unknown_payment payment_id=%s", ipn.payment_id)
        raise NotFoundError("Transaction not found")

    result = apply_payment_update(
        db,
        transaction,
        ipn.payment_status,
        tx_hash=ipn.hash,
        confirmations=ipn.confirmations,
    )
    logger.info(
        "nowpayments.webhook.applied transaction_id=%s status=%s credited=%s",
        result.transaction_id,
        result.status,
        result.credited,
    )
    return result
