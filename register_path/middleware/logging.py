"""
Request logging middleware with request-id propagation.
"""

import contextvars
import logging
import time
from typing import Dict, Optional
from uuid import uuid4

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

# Context variable for request ID
request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar('request_id', default='no-request-id')

QUIET_PATHS = {"/health", "/", "/docs", "/redoc", "/openapi.json"}
SLOW_REQUEST_SECONDS = 2.0


class LoggingMiddleware(BaseHTTPMiddleware):
    """Logs each request and response and tags every log line with the request id."""

    def __init__(self, app, log_requests: bool = True, sensitive_headers: Optional[list] = None):
        super().__init__(app)
        self.log_requests = log_requests
        self.sensitive_headers = sensitive_headers or [
            "authorization", "cookie", "stripe-signature"
        ]

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("x-request-id") or str(uuid4())
        request.state.request_id = request_id
        token = request_id_var.set(request_id)
        start_time = time.perf_counter()

        try:
            if self.log_requests:
                self._log_request(request)

            response = await call_next(request)

            process_time = time.perf_counter() - start_time
            response.headers["X-Request-ID"] = request_id
            response.headers["X-Process-Time"] = f"{process_time:.4f}"

            if self.log_requests:
                self._log_response(request, response, process_time)
            return response
        except Exception as exc:
            logger.error(
                f"Request exception: {type(exc).__name__}",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "process_time": time.perf_counter() - start_time,
                },
            )
            raise
        finally:
            request_id_var.reset(token)

    def _log_request(self, request: Request):
        request_info = {
            "method": request.method,
            "path": request.url.path,
            "query_params": dict(request.query_params),
            "client_ip": self._get_client_ip(request),
            "headers": self._sanitize_headers(dict(request.headers)),
        }

        if request.url.path in QUIET_PATHS:
            logger.debug(f"Request: {request.method} {request.url.path}", extra=request_info)
        else:
            logger.info(f"Request: {request.method} {request.url.path}", extra=request_info)

    def _log_response(self, request: Request, response: Response, process_time: float):
        response_info = {"status_code": response.status_code, "process_time": process_time}
        message = f"{request.method} {request.url.path} -> {response.status_code} ({process_time:.4f}s)"

        if response.status_code >= 500:
            logger.error(message, extra=response_info)
        elif response.status_code >= 400:
            logger.warning(message, extra=response_info)
        elif request.url.path in QUIET_PATHS:
            logger.debug(message, extra=response_info)
        else:
            logger.info(message, extra=response_info)

        if process_time > SLOW_REQUEST_SECONDS:
            logger.warning(
                f"Slow request: {request.method} {request.url.path} took {process_time:.4f}s",
                extra={"slow_request": True, "process_time": process_time},
            )

    def _get_client_ip(self, request: Request) -> str:
        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()
        return request.client.host if request.client else "unknown"

    def _sanitize_headers(self, headers: Dict[str, str]) -> Dict[str, str]:
        return {
            key: "***MASKED***" if key.lower() in self.sensitive_headers else value
            for key, value in headers.items()
        }
