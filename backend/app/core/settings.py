import os


def _getenv(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None:
        return default
    value = value.strip()
    return value if value else default


def _getenv_bool(name: str, default: bool = False) -> bool:
    raw = _getenv(name)
    if raw is None:
        return default
    return raw.lower() in {"1", "true", "yes", "y", "on"}


def _getenv_float(name: str, default: float) -> float:
    raw = _getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


class Settings:
    def __init__(self) -> None:
        self.environment = (_getenv("ENVIRONMENT", "development") or "development").lower()
        self.log_level = (_getenv("LOG_LEVEL", "INFO") or "INFO").upper()
        self.database_url = _getenv("DATABASE_URL", "sqlite:///./sql_app.db") or "sqlite:///./sql_app.db"
        self.db_auto_create = _getenv_bool("DB_AUTO_CREATE", default=True)
        self.supabase_url = _getenv("SUPABASE_URL") or _getenv("VITE_SUPABASE_URL")
        self.supabase_jwt_secret = _getenv("SUPABASE_JWT_SECRET")
        self.supabase_jwt_audience = _getenv("SUPABASE_JWT_AUD", "authenticated")
        self.supabase_jwt_issuer = _getenv("SUPABASE_JWT_ISSUER")
        self.cors_allow_origins = _getenv("CORS_ALLOW_ORIGINS")
        self.public_base_url = _getenv("PUBLIC_BASE_URL", "http://localhost:8000") or "http://localhost:8000"

        self.nowpayments_api_key = _getenv("NOWPAYMENTS_API_KEY")
        self.nowpayments_api_url = (
            _getenv("NOWPAYMENTS_API_URL", "https://api.nowpayments.io/v1") or "https://api.nowpayments.io/v1"
        )
        self.nowpayments_ipn_secret = _getenv("NOWPAYMENTS_IPN_SECRET")
        self.nowpayments_ipn_allow_unsigned = _getenv_bool("NOWPAYMENTS_IPN_ALLOW_UNSIGNED", default=False)
        self.nowpayments_timeout_s = _getenv_float("NOWPAYMENTS_TIMEOUT_S", 30.0)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def ipn_callback_url(self) -> str:
        return f"{self.public_base_url.rstrip('/')}/api/nowpayments-webhook"

    def resolved_cors_origins(self) -> list[str]:
        raw = self.cors_allow_origins
        if raw is None:
            return ["http://localhost:5173", "http://localhost:8080"]
        if raw.strip() == "*":
            return ["*"]
        origins = [o.strip() for o in raw.split(",") if o.strip()]
        return origins


settings = Settings()


def get_settings() -> Settings:
    return settings
