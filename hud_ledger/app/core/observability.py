"""
Request observability middleware.

Tags every request with a correlation id (propagated to audit records through
`request.state`) and emits one structured log line per request.
"""

import time
import uuid
import logging
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("hud_ledger.http")

CORRELATION_HEADER = "X-Correlation-ID"


def get_correlation_id(request: Request) -> str:
    """Correlation id assigned by the middleware, or a fresh one outside it."""
    return getattr(request.state, "correlation_id", None) or str(uuid.uuid4())


class ObservabilityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        started = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - started) * 1000

        response.headers[CORRELATION_HEADER] = correlation_id
        response.headers["X-Process-Time"] = f"{duration_ms:.2f}"

        log_data = {
            "correlation_id": correlation_id,
            "method": request.method,
            "path": request.url.path,
            "organization_id": request.query_params.get("organizationId"),
            "status_code": response.status_code,
            "duration_ms": round(duration_ms, 2),
            "ip": request.client.host if request.client else "unknown"
        }

        if response.status_code >= 500:
            logger.error("Ledger request failed", extra=log_data)
        elif response.status_code >= 400:
            logger.warning("Ledger request rejected", extra=log_data)
        else:
            logger.info("Ledger request served", extra=log_data)

        return response
