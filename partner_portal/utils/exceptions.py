import logging
from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from datetime import datetime
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "An unexpected error occurred"


class PortalException(HTTPException):
    """Base exception for the partner portal"""
    def __init__(
        self,
        status_code: int,
        detail: Any = None,
        error_code: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        extra: Optional[Dict[str, Any]] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code or str(status_code)
        self.extra = extra or {}


class ValidationFailed(PortalException):
    def __init__(self, detail: str = "Invalid request", **extra):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            error_code="VALIDATION_FAILED",
            extra=extra
        )


class AuthenticationFailed(PortalException):
    def __init__(self, detail: str = "Unauthorized. Please login."):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            error_code="UNAUTHENTICATED",
            headers={"WWW-Authenticate": "Bearer"}
        )


class PermissionDenied(PortalException):
    def __init__(self, detail: str = "Access denied", **extra):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
            error_code="FORBIDDEN",
            extra=extra
        )


class NotFound(PortalException):
    def __init__(self, detail: str = "Not found", **extra):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
            error_code="NOT_FOUND",
            extra=extra
        )


class Conflict(PortalException):
    def __init__(self, detail: str = "Conflict"):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            error_code="CONFLICT"
        )


class QuotaExceeded(PortalException):
    """The caller's team has fewer free seats than the batch needs"""
    def __init__(self, available: int, requested: int):
        if available <= 0:
            detail = "No available licenses. Please purchase more licenses."
        else:
            detail = (
                f"Only {available} license(s) available. "
                f"You're trying to add {requested}."
            )
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            error_code="QUOTA_EXCEEDED",
            extra={"available": available, "requested": requested}
        )
        self.available = available
        self.requested = requested


class DuplicateGlobalLicense(PortalException):
    """At least one email already holds a license outside the caller's scope"""
    def __init__(self, emails: List[str], contact_email: str):
        detail = (
            f"The following email(s) already have licenses allocated: {', '.join(emails)}. "
            f"If this is a mistake, please contact {contact_email}"
        )
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            error_code="DUPLICATE_GLOBAL_LICENSE",
            extra={"emailsWithLicenses": list(emails)}
        )
        self.emails = list(emails)


class AllocationFailed(PortalException):
    def __init__(self, reason: str):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to insert licenses",
            error_code="ALLOCATION_FAILED"
        )
        self.reason = reason


class EmailDeliveryFailed(PortalException):
    def __init__(self, detail: str = "Failed to send email"):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
            error_code="EMAIL_DELIVERY_FAILED"
        )


def _error_body(request: Request, status_code: int, message: Any, error_code: Optional[str] = None) -> dict:
    body = {
        "timestamp": datetime.utcnow().isoformat(),
        "path": str(request.url.path),
        "error": message,
        "status_code": status_code
    }
    if error_code:
        body["error_code"] = error_code
    return body


async def portal_exception_handler(request: Request, exc: PortalException):
    """Handler for portal exceptions"""
    content = _error_body(request, exc.status_code, exc.detail, exc.error_code)
    content.update(exc.extra)
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


async def http_exception_handler(request: Request, exc: HTTPException):
    """Handler for standard HTTP exceptions"""
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(request, exc.status_code, exc.detail),
        headers=getattr(exc, "headers", None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies are reported as 400, not 422"""
    content = _error_body(request, status.HTTP_400_BAD_REQUEST, "Invalid request body", "VALIDATION_FAILED")
    content["fields"] = [".".join(str(p) for p in err.get("loc", ())) for err in exc.errors()]
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=content)


async def unhandled_exception_handler(request: Request, exc: Exception):
    """Last-resort handler: log everything, leak nothing"""
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body(request, status.HTTP_500_INTERNAL_SERVER_ERROR, GENERIC_ERROR_MESSAGE, "INTERNAL_ERROR")
    )
