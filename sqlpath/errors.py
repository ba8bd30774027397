"""
sqlpath/errors.py
Uniform API error bodies

Every error leaving the API has the same shape:
{
    "success": false,
    "error": "ErrorType",
    "message": "Human-readable description",
    "code": "UNIQUE_ERROR_CODE",
    "details": {} (optional)
}

Services raise SQLPathException subclasses (sqlpath/exceptions.py); main.py
maps them onto the classes below.

STATUS CODES:
- 400: malformed request, including pasted challenge JSON
- 401: token missing, invalid or expired
- 402: lesson limit reached / feature not in plan (upgrade prompt)
- 403: admin only, or a module submitted before it was entered
- 404: unknown or unpublished resource
- 409: resource not usable yet (content not generated, not completed)
- 422: request validation
- 429: rate limited
- 503: content generation or certificate rendering unavailable
- 500: internal only, never caused by user input
"""
import logging
from typing import Optional, Dict, Any

from fastapi import status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ErrorCode:
    """Machine-readable error codes"""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_CHALLENGE_PAYLOAD = "INVALID_CHALLENGE_PAYLOAD"

    AUTH_INVALID = "AUTH_INVALID"
    ADMIN_REQUIRED = "ADMIN_REQUIRED"
    FORBIDDEN = "FORBIDDEN"
    MODULE_NOT_STARTED = "MODULE_NOT_STARTED"

    LESSON_LIMIT_REACHED = "LESSON_LIMIT_REACHED"
    FEATURE_NOT_IN_PLAN = "FEATURE_NOT_IN_PLAN"

    NOT_FOUND = "NOT_FOUND"

    INVALID_STATE = "INVALID_STATE"
    CONTENT_NOT_READY = "CONTENT_NOT_READY"
    NOT_COMPLETED = "NOT_COMPLETED"

    RATE_LIMITED = "RATE_LIMITED"

    INTERNAL_ERROR = "INTERNAL_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    AI_SERVICE_ERROR = "AI_SERVICE_ERROR"
    CERTIFICATE_SERVICE_ERROR = "CERTIFICATE_SERVICE_ERROR"


class APIError(Exception):
    """Base API exception with consistent structure"""

    def __init__(
        self,
        status_code: int,
        error: str,
        message: str,
        code: str,
        details: Optional[Dict[str, Any]] = None
    ):
        self.status_code = status_code
        self.error = error
        self.message = message
        self.code = code
        self.details = details
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        body = {
            "success": False,
            "error": self.error,
            "message": self.message,
            "code": self.code
        }
        if self.details:
            body["details"] = self.details
        return body

    def to_response(self, headers: Optional[Dict[str, str]] = None) -> JSONResponse:
        return JSONResponse(status_code=self.status_code, content=self.to_dict(), headers=headers)


class BadRequestError(APIError):
    def __init__(self, message: str, code: str = ErrorCode.INVALID_INPUT, details: Optional[Dict] = None):
        super().__init__(status.HTTP_400_BAD_REQUEST, "Bad Request", message, code, details)


class PaymentRequiredError(APIError):
    """402 - the learner's plan does not cover this; the client shows an upgrade prompt"""
    def __init__(self, message: str, code: str = ErrorCode.LESSON_LIMIT_REACHED, details: Optional[Dict] = None):
        super().__init__(status.HTTP_402_PAYMENT_REQUIRED, "Upgrade Required", message, code, details)


class ForbiddenError(APIError):
    def __init__(self, message: str, code: str = ErrorCode.FORBIDDEN, details: Optional[Dict] = None):
        super().__init__(status.HTTP_403_FORBIDDEN, "Forbidden", message, code, details)


class NotFoundError(APIError):
    def __init__(self, resource: str, identifier: Any = None):
        message = f"{resource} not found"
        if identifier is not None:
            message = f"{resource} with id '{identifier}' not found"
        super().__init__(status.HTTP_404_NOT_FOUND, "Not Found", message, ErrorCode.NOT_FOUND)


class InvalidStateError(APIError):
    """409 - resource exists but is not usable yet"""
    def __init__(self, message: str, code: str = ErrorCode.INVALID_STATE, details: Optional[Dict] = None):
        super().__init__(status.HTTP_409_CONFLICT, "Invalid State", message, code, details)


class RateLimitError(APIError):
    def __init__(self, limit: str):
        super().__init__(
            status.HTTP_429_TOO_MANY_REQUESTS,
            "Rate Limited",
            "Too many requests. Please try again later.",
            ErrorCode.RATE_LIMITED,
            {"limit": limit}
        )


class ServiceUnavailableError(APIError):
    """503 - content generation, rendering or storage failed"""
    def __init__(self, message: str, code: str = ErrorCode.SERVICE_UNAVAILABLE, details: Optional[Dict] = None):
        super().__init__(status.HTTP_503_SERVICE_UNAVAILABLE, "Service Unavailable", message, code, details)


class InternalError(APIError):
    def __init__(self, message: str = "An internal error occurred", log_id: Optional[str] = None):
        details = {"log_id": log_id} if log_id else None
        super().__init__(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal Error", message, ErrorCode.INTERNAL_ERROR, details)


def get_error_summary() -> Dict[str, Any]:
    """Error contract, served at /api/errors/health"""
    return {
        "service": "api-error-handler",
        "response_structure": {
            "success": "boolean (always false for errors)",
            "error": "string (error type)",
            "message": "string (human-readable)",
            "code": "string (machine-readable)",
            "details": "object (optional)"
        },
        "error_codes": sorted(attr for attr in vars(ErrorCode) if attr.isupper())
    }
