from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.settings import Settings, get_settings
from app.services.ipn import SIGNATURE_HEADER, parse_ipn_body, parse_ipn_payload, process_ipn, verify_ipn_signature


router = APIRouter()


@router.post("/nowpayments-webhook")
async def nowpayments_webhook(
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> dict:
    payload = parse_ipn_body(await request.body())
    verify_ipn_signature(
        payload,
        request.headers.get(SIGNATURE_HEADER),
        secret=settings.nowpayments_ipn_secret,
        allow_unsigned=settings.nowpayments_ipn_allow_unsigned,
    )
    process_ipn(db, parse_ipn_payload(payload))
    return {"success": True}
