"""
Error taxonomy for the API.

Services raise these; the handlers registered in ``main`` turn them into
the ``{success: false, message, errors?}`` envelope with the status code
carried by the class.
"""
from typing import Any, Optional


class ApiError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, errors: Optional[list[dict[str, Any]]] = None):
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)


class ValidationError(ApiError):
    status_code = 400
    default_message = "Validation failed"


class AuthError(ApiError):
    status_code = 401
    default_message = "Invalid token"


class ForbiddenError(ApiError):
    status_code = 403
    default_message = "You are not authorized to perform this action"


class NotFoundError(ApiError):
    status_code = 404
    default_message = "Resource not found"


class ConflictError(ApiError):
    status_code = 409
    default_message = "Resource already exists"


class SelfFollowError(ConflictError):
    status_code = 400
    default_message = "You cannot follow yourself"


class AlreadyFollowingError(ConflictError):
    status_code = 400
    default_message = "You are already following this user"


class RateLimitError(ApiError):
    status_code = 429
    default_message = "Too many requests from this IP, please try again later."


class ExternalServiceError(ApiError):
    status_code = 502
    default_message = "An upstream service failed"


class UnknownTemplateError(ApiError):
    default_message = "Invalid email template type"
