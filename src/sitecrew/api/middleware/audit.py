"""Request logging middleware."""

from __future__ import annotations

import time

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from sitecrew.utils.logging import clear_request_context, generate_request_id, set_request_context

logger = structlog.get_logger()


class AuditMiddleware(BaseHTTPMiddleware):
    """
    Log every API request with a request id.

    Only the path is logged; query strings may carry invitation tokens.
    """

    async def dispatch(self, request: Request, call_next):
        if request.url.path.endswith("/health"):
            return await call_next(request)

        request_id = request.headers.get("X-Request-ID") or generate_request_id()
        set_request_context(request_id=request_id)
        start_time = time.perf_counter()
        client_ip = request.client.host if request.client else "unknown"

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "API request failed",
                method=request.method,
                path=request.url.path,
                error=str(exc),
                duration=round(time.perf_counter() - start_time, 4),
                client_ip=client_ip,
            )
            raise
        finally:
            clear_request_context()

        logger.info(
            "API request",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration=round(time.perf_counter() - start_time, 4),
            user_id=getattr(request.state, "user_id", None),
            client_ip=client_ip,
            request_id=request_id,
        )
        response.headers["X-Request-ID"] = request_id
        return response
