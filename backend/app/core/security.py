from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

import jwt
from fastapi import Depends, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.errors import AuthError, ConfigurationError
from app.core.settings import Settings, get_settings
from app.models.profile import Profile


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CurrentUser:
    id: str
    email: str


def _get_bearer_token(request: Request) -> str:
    auth = request.headers.get("authorization") or ""
    if not auth.lower().startswith("bearer "):
        raise AuthError("Unauthorized")
    token = auth.split(" ", 1)[1].strip()
    if not token:
        raise AuthError("Unauthorized")
    return token


@lru_cache(maxsize=8)
def _jwks_client(jwks_url: str) -> jwt.PyJWKClient:
    return jwt.PyJWKClient(jwks_url)


def decode_supabase_jwt(token: str, settings: Settings) -> dict[str, Any]:
    audience = settings.supabase_jwt_audience or "authenticated"
    options = {"require": ["exp", "sub"]}

    try:
        if settings.supabase_jwt_secret:
            payload = jwt.decode(
                token,
                settings.supabase_jwt_secret,
                algorithms=["HS256"],
                audience=audience,
                issuer=settings.supabase_jwt_issuer,
                options=options,
            )
            return dict(payload)

        if not settings.supabase_url:
            raise ConfigurationError("SUPABASE_URL is not configured")
        supabase_url = settings.supabase_url.rstrip("/")
        issuer = settings.supabase_jwt_issuer or f"{supabase_url}/auth/v1"
        signing_key = _jwks_client(f"{supabase_url}/auth/v1/.well-known/jwks.json").get_signing_key_from_jwt(token).key
        payload = jwt.decode(
            token,
            signing_key,
            algorithms=["ES256", "RS256"],
            audience=audience,
            issuer=issuer,
            options=options,
        )
        return dict(payload)
    except jwt.PyJWTError as exc:
        logger.info("auth.token.rejected reason=%s", type(exc).__name__)
        raise AuthError("Unauthorized")


def _ensure_profile(db: Session, user_id: str, email: str) -> None:
    try:
        profile = db.query(Profile).filter(Profile.id == user_id).first()
        if profile is None:
            db.add(Profile(id=user_id, email=email, balance_eur=0))
            db.commit()
        elif email and (profile.email or "") != email:
            profile.email = email
            db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("auth.profile.sync_error user_id=%s", user_id)


def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> CurrentUser:
    token = _get_bearer_token(request)
    claims = decode_supabase_jwt(token, settings)
    user_id = str(claims.get("sub") or "").strip()
    email = str(claims.get("email") or "").strip()
    if not user_id:
        raise AuthError("Unauthorized")

    _ensure_profile(db, user_id, email)
    return CurrentUser(id=user_id, email=email)
