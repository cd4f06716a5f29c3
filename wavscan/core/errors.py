"""Error taxonomy and normalized error handlers."""

import logging
from typing import Optional
from uuid import uuid4

from fastapi import HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.requests import Request

from wavscan.core.logging import get_request_id


class AppError(Exception):
    code = "app_error"
    status_code = 500

    def __init__(self, message: str, *, code: Optional[str] = None, status_code: Optional[int] = None, request_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.request_id = request_id


class UnauthenticatedError(AppError):
    """Missing, invalid or expired session."""
    code = "unauthenticated"
    status_code = 401

    def __init__(self, message: str = "Not authenticated", **kwargs):
        super().__init__(message, **kwargs)


class InvalidCredentialsError(AppError):
    """Login failure; never says whether the email or the password was wrong."""
    code = "invalid_credentials"
    status_code = 401

    def __init__(self, message: str = "Invalid email or password", **kwargs):
        super().__init__(message, **kwargs)


class EmailNotVerifiedError(AppError):
    code = "email_not_verified"
    status_code = 403


class ValidationError(AppError, ValueError):
    code = "validation_error"
    status_code = 400


class ConflictError(AppError):
    """Duplicate email or username at signup."""
    code = "conflict"
    status_code = 400


class NotFoundOrExpiredError(AppError):
    code = "invalid_or_expired_token"
    status_code = 400

    def __init__(self, message: str = "Invalid or expired token", **kwargs):
        super().__init__(message, **kwargs)


class InvalidCurrentPasswordError(AppError):
    code = "invalid_current_password"
    status_code = 400

    def __init__(self, message: str = "Current password is invalid", **kwargs):
        super().__init__(message, **kwargs)


class NotFoundError(AppError, LookupError):
    code = "not_found"
    status_code = 404


class WebhookSignatureError(AppError):
    code = "invalid_signature"
    status_code = 400


class BillingDisabledError(AppError):
    code = "billing_disabled"
    status_code = 503

    def __init__(self, message: str = "Billing is not configured", **kwargs):
        super().__init__(message, **kwargs)


class BillingProviderError(AppError):
    code = "billing_provider_error"
    status_code = 502


class MailDeliveryError(AppError):
    code = "mail_delivery_failed"
    status_code = 502


def _extract_request_id(request: Request, fallback: Optional[str] = None) -> str:
    return (
        getattr(request.state, "request_id", None)
        or get_request_id()
        or fallback
        or str(uuid4())
    )


def _error_payload(code: str, message: str, request_id: str) -> dict:
    return {
        "error": {"code": code, "message": message, "request_id": request_id},
        "detail": message,
    }


def _json_error(status_code: int, code: str, message: str, rid: str) -> JSONResponse:
    response = JSONResponse(status_code=status_code, content=_error_payload(code, message, rid))
    response.headers["x-request-id"] = rid
    return response


async def app_error_handler(request: Request, exc: AppError):
    rid = exc.request_id or _extract_request_id(request)
    logger = logging.getLogger("wavscan")
    log_level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(
        log_level,
        "app.error",
        extra={"request_id": rid, "error_code": exc.code, "error_message": exc.message, "status": exc.status_code},
    )
    return _json_error(exc.status_code, exc.code, exc.message, rid)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Normalize body/query validation failures to a 400 with the first field message."""
    rid = _extract_request_id(request)
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query"))
        detail = first.get("msg", "invalid value")
        message = f"{field}: {detail}" if field else detail
    logging.getLogger("wavscan").warning(
        "validation.error", extra={"request_id": rid, "error_code": "validation_error", "status": 400}
    )
    return _json_error(400, "validation_error", message, rid)


async def http_error_handler(request: Request, exc: HTTPException):
    rid = _extract_request_id(request)
    code = "not_found" if exc.status_code == 404 else "http_error"
    message = exc.detail if exc.detail else "HTTP error"
    logger = logging.getLogger("wavscan")
    logger.warning("http.error", extra={"request_id": rid, "error_code": code, "status": exc.status_code})
    return _json_error(exc.status_code, code, message, rid)


async def unhandled_exception_handler(request: Request, exc: Exception):
    rid = _extract_request_id(request)
    logger = logging.getLogger("wavscan")
    logger.error("unhandled.exception", exc_info=True, extra={"request_id": rid, "error_code": "internal_error"})
    return _json_error(500, "internal_error", "Unexpected error", rid)
