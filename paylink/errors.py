"""
Error taxonomy for the gateway.

Every error the client can fix carries a precise message and the HTTP status
it maps to. Anything else surfaces as a generic 500 from the exception
handlers in ``paylink.api.errors``.
"""


class PaylinkError(Exception):
    """Base exception for all gateway errors."""

    status_code: int = 500
    retriable: bool = False

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class InvalidArgumentError(PaylinkError):
    """Request or adapter input failed validation."""

    status_code = 400


class UnknownProviderError(PaylinkError):
    """No adapter is registered under the requested provider name."""

    status_code = 404

    def __init__(self, provider: str):
        super().__init__(f"unknown provider: {provider}")
        self.provider = provider


class MalformedPayloadError(PaylinkError):
    """Webhook body could not be parsed or is missing required fields."""

    status_code = 400


class InvalidSignatureError(PaylinkError):
    status_code = 401


class ProviderUnavailableError(PaylinkError):
    """Outbound provider call failed or timed out. Safe to retry."""

    status_code = 500
    retriable = True


class NotFoundError(PaylinkError):
    status_code = 404


class BrokerUnavailableError(PaylinkError):
    """Queue transport failed on push or pop."""

    status_code = 500
    retriable = True


class AuthenticationError(PaylinkError):
    status_code = 401


class PermissionDeniedError(PaylinkError):
    status_code = 403
