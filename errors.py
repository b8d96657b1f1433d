"""
Error taxonomy for the API. Route handlers and services raise these; the
handlers registered in main translate them into the response envelope.
"""
from typing import Any, List, Optional


class AppError(Exception):
    status_code = 500
    default_message = "Server Error"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[Any]] = None):
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)


class ValidationFailed(AppError):
    status_code = 400
    default_message = "Validation errors"


class Unauthorized(AppError):
    status_code = 401
    default_message = "Access denied. No token provided."


class Forbidden(AppError):
    status_code = 403
    default_message = "Access denied"


class NotFound(AppError):
    status_code = 404
    default_message = "Not found"


class Conflict(AppError):
    status_code = 400
    default_message = "Duplicate field value entered"


class InsufficientStock(AppError):
    status_code = 400
    default_message = "Insufficient stock"


class AmountMismatch(AppError):
    status_code = 400
    default_message = "Amount mismatch. Please refresh and try again."


class InvalidState(AppError):
    status_code = 400
    default_message = "Order cannot be updated at this stage"


class PaymentVerificationFailed(AppError):
    status_code = 400
    default_message = "Payment verification failed"


class TooManyRequests(AppError):
    status_code = 429
    default_message = "Too many requests from this IP, please try again later."


class ServiceUnavailable(AppError):
    status_code = 503
    default_message = "Payment service temporarily unavailable. Please try again later."
