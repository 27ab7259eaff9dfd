from __future__ import annotations


class PaymentServiceError(Exception):
    """Base error; ``status_code`` is the HTTP status the API answers with."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(PaymentServiceError):
    status_code = 400


class AuthError(PaymentServiceError):
    status_code = 401


class AuthenticityError(PaymentServiceError):
    """Webhook callback whose signature could not be verified."""

    status_code = 401


class NotFoundError(PaymentServiceError):
    status_code = 404


class ProviderError(PaymentServiceError):
    status_code = 400

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


class PersistenceError(PaymentServiceError):
    status_code = 500


class ConfigurationError(PaymentServiceError):
    status_code = 500
