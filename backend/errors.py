from typing import Any, Dict, Optional


class AppError(Exception):
    status_code = 400
    default_message = "Request failed"

    def __init__(self, message: Optional[str] = None, extra: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.extra = dict(extra or {})
        super().__init__(self.message)

    def to_payload(self) -> Dict[str, Any]:
        return {"success": False, "error": self.message, **self.extra}


class AuthenticationRequired(AppError):
    status_code = 401
    default_message = "Not authenticated"


class AuthorizationDenied(AppError):
    status_code = 403
    default_message = "Not authorized"


class ValidationFailed(AppError):
    status_code = 400
    default_message = "Invalid request"


class RateLimited(AppError):
    status_code = 429
    default_message = "Too many requests"


class CapacityExceeded(AppError):
    status_code = 400
    default_message = "Event is full"


class RegistrationFailed(AppError):
    status_code = 400
    default_message = "Registration failed"


class NotFound(AppError):
    status_code = 404
    default_message = "Not found"


class PaymentGatewayError(AppError):
    status_code = 502
    default_message = "Unable to create payment order"


class InternalError(AppError):
    status_code = 500
    default_message = "Internal server error"
