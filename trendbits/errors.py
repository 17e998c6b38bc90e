from __future__ import annotations

from werkzeug.exceptions import HTTPException


class ApiError(HTTPException):
    """Base class for errors rendered into the JSON response envelope.

    ``description`` carries the user-safe message; ``data`` is an optional
    payload returned alongside it (for example per-field validation errors).
    """

    code = 500
    title = "Internal Server Error"
    default_message = "Unexpected server error."

    def __init__(
        self,
        message: str | None = None,
        *,
        title: str | None = None,
        data: dict | None = None,
    ) -> None:
        super().__init__(description=message or self.default_message)
        if title is not None:
            self.title = title
        self.data = data


class RequestValidationError(ApiError):
    code = 400
    title = "Validation Error"
    default_message = "The request is invalid."


class AuthenticationError(ApiError):
    code = 401
    title = "Authentication Required"
    default_message = "Please sign in to access this feature."


class NotFoundError(ApiError):
    code = 404
    title = "Not Found"
    default_message = "The requested resource was not found."


class ConflictError(ApiError):
    code = 409
    title = "Conflict"
    default_message = "The resource already exists."


class AuthorizationQuotaError(ApiError):
    code = 429
    title = "Request Limit Reached"
    default_message = "Free request limit reached. Please sign up to continue."


class UpstreamAIError(ApiError):
    code = 500
    title = "AI Summary Error"
    default_message = (
        "Sorry, we couldn't generate a summary at this time. "
        "Please try again later or contact support."
    )

    def __init__(self, message: str | None = None, *, detail: str | None = None, **kwargs) -> None:
        super().__init__(message, **kwargs)
        # Logged server-side only.
        self.detail = detail


class ConnectivityError(ApiError):
    code = 500
    title = "Database Unavailable"
    default_message = "The service is temporarily unavailable. Please try again shortly."

    def __init__(self, message: str | None = None, *, attempts: int = 0, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.attempts = attempts


class EmailDeliveryError(ApiError):
    code = 500
    title = "Email Delivery Failed"
    default_message = "We couldn't send the email right now. Please try again later."


class ServiceNotConfiguredError(ApiError):
    code = 503
    title = "Service Unavailable"
    default_message = "This feature is not configured."
