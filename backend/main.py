import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.endpoints import account, nowpayments, webhook
from app.core.database import Base, engine
from app.core.errors import AuthError, PaymentServiceError
from app.core.settings import settings

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Ad Accounts Payments API")

origins = settings.resolved_cors_origins()
if origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.on_event("startup")
def startup() -> None:
    if settings.is_production and not settings.nowpayments_ipn_secret:
        raise RuntimeError("NOWPAYMENTS_IPN_SECRET must be set in production")
    if settings.nowpayments_ipn_allow_unsigned:
        logger.warning("startup.unsigned_webhooks_enabled")
    if settings.db_auto_create:
        Base.metadata.create_all(bind=engine)


@app.exception_handler(PaymentServiceError)
async def payment_service_error_handler(request: Request, exc: PaymentServiceError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthError) else None
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message}, headers=headers)


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = sorted({str(e["loc"][-1]) for e in exc.errors() if e.get("loc")})
    message = f"Invalid request: {', '.join(fields)}" if fields else "Invalid request"
    return JSONResponse(status_code=400, content={"error": message})


app.include_router(nowpayments.router, prefix="/api", tags=["nowpayments"])
app.include_router(webhook.router, prefix="/api", tags=["webhooks"])
app.include_router(account.router, prefix="/api", tags=["account"])


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
