"""
Error handling middleware: turns exceptions into structured JSON responses.
"""

import logging
import traceback
from datetime import datetime, timezone
from uuid import uuid4

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from sqlalchemy.exc import IntegrityError, OperationalError, TimeoutError as SQLTimeoutError

from ..utils.exceptions import (
    RegisterPathError,
    ErrorCode,
    AlreadyCheckedInError,
    AuthenticationError,
    ConflictingStateError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
    WebhookSignatureError,
)

logger = logging.getLogger(__name__)

STATUS_BY_ERROR_CODE = {
    ErrorCode.VALIDATION_ERROR: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.CAPACITY_EXCEEDED: status.HTTP_409_CONFLICT,
    ErrorCode.ALREADY_CHECKED_IN: status.HTTP_409_CONFLICT,
    ErrorCode.CONFLICTING_STATE: status.HTTP_409_CONFLICT,
    ErrorCode.PAYMENT_PROVIDER_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.WEBHOOK_SIGNATURE_INVALID: status.HTTP_400_BAD_REQUEST,
    ErrorCode.EXTERNAL_SERVICE_ERROR: status.HTTP_502_BAD_GATEWAY,
    ErrorCode.NOTIFICATION_FAILED: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def error_response(exc: RegisterPathError, error_id: str) -> JSONResponse:
    headers = {}
    if exc.retry_after:
        headers["Retry-After"] = str(exc.retry_after)
    if isinstance(exc, AuthenticationError):
        headers["WWW-Authenticate"] = "Bearer"

    return JSONResponse(
        status_code=STATUS_BY_ERROR_CODE.get(exc.error_code, status.HTTP_500_INTERNAL_SERVER_ERROR),
        content={
            "error": exc.to_dict(),
            "error_id": error_id,
            "timestamp": _timestamp(),
        },
        headers=headers,
    )


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Middleware for error handling and response formatting."""

    def __init__(self, app, debug: bool = False):
        super().__init__(app)
        self.debug = debug

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as exc:
            error_id = str(uuid4())
            self._log_error(request, exc, error_id)
            return self._handle_exception(exc, error_id)

    def _handle_exception(self, exc: Exception, error_id: str) -> JSONResponse:
        if isinstance(exc, RegisterPathError):
            return error_response(exc, error_id)

        if isinstance(exc, IntegrityError):
            return error_response(
                ConflictingStateError(
                    "Data integrity constraint violation",
                    details={"error_type": type(exc.orig).__name__ if exc.orig else "IntegrityError"},
                ),
                error_id,
            )

        if isinstance(exc, (OperationalError, SQLTimeoutError)):
            response = error_response(
                ExternalServiceError("database", "Database service temporarily unavailable", retry_after=30),
                error_id,
            )
            response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
            return response

        content = {
            "error": RegisterPathError(
                "An unexpected error occurred",
                details={"error_type": type(exc).__name__} if self.debug else None,
            ).to_dict(),
            "error_id": error_id,
            "timestamp": _timestamp(),
        }
        if self.debug:
            content["debug"] = {"exception": str(exc), "traceback": traceback.format_exc()}

        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)

    def _log_error(self, request: Request, exc: Exception, error_id: str):
        context = {
            "error_id": error_id,
            "method": request.method,
            "path": request.url.path,
            "client_ip": request.client.host if request.client else None,
        }

        if isinstance(exc, AlreadyCheckedInError):
            # A second scan at the door is routine
            logger.info(f"Duplicate check-in [{error_id}]: {exc.message}", extra=context)
        elif isinstance(exc, (ValidationError, NotFoundError, AuthenticationError, WebhookSignatureError)):
            logger.warning(f"Client error [{error_id}]: {exc.message}", extra=context)
        elif isinstance(exc, ExternalServiceError):
            logger.error(f"External service error [{error_id}]: {exc.message}", extra={**context, "details": exc.details})
        elif isinstance(exc, RegisterPathError):
            logger.warning(f"Business error [{error_id}]: {exc.message}", extra={**context, "details": exc.details})
        else:
            logger.error(
                f"Unexpected error [{error_id}]: {exc}",
                exc_info=exc,
                extra={**context, "error_type": type(exc).__name__},
            )
