from __future__ import annotations

from typing import Iterator

from fastapi import Depends

from app.core.errors import ConfigurationError
from app.core.settings import Settings, get_settings
from app.services.nowpayments import NowPaymentsClient


def get_payment_provider(settings: Settings = Depends(get_settings)) -> Iterator[NowPaymentsClient]:
    if not settings.nowpayments_api_key:
        raise ConfigurationError("NOWPAYMENTS_API_KEY is not configured")
    client = NowPaymentsClient(
        api_key=settings.nowpayments_api_key,
        base_url=settings.nowpayments_api_url,
        timeout_s=settings.nowpayments_timeout_s,
    )
    try:
        yield client
    finally:
        client.close()
