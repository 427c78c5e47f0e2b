# app/core/middleware.py
import logging
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.logging import request_id_ctx

logger = logging.getLogger("app.requests")


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Binds ``x-request-id`` (incoming or generated) to the log context and echoes it back."""

    async def dispatch(self, request: Request, call_next):
        rid = request.headers.get("x-request-id") or uuid.uuid4().hex
        token = request_id_ctx.set(rid)
        started = time.monotonic()
        logger.info(f"➡️  {request.method} {request.url.path}")
        try:
            response = await call_next(request)
            elapsed_ms = int((time.monotonic() - started) * 1000)
            logger.info(f"⬅️  {request.method} {request.url.path} → {response.status_code} ({elapsed_ms}ms)")
            response.headers["x-request-id"] = rid
            return response
        finally:
            request_id_ctx.reset(token)
