# app/core/error_handlers.py
"""
Every failure leaves the API as ``{"error": {"code", "message"[, "details"]}}``.
"""
import logging
from typing import Any, Mapping, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.exceptions import FunnelError, TransientStoreError, UpstreamError

logger = logging.getLogger(__name__)


def error_response(
        status_code: int,
        code: str,
        message: str,
        details: Any = None,
        headers: Optional[Mapping[str, str]] = None
) -> JSONResponse:
    body = {"code": code, "message": message}
    if details is not None:
        body["details"] = details
    return JSONResponse(status_code=status_code, content={"error": body}, headers=dict(headers or {}) or None)


async def _on_http_error(_: Request, exc: HTTPException) -> JSONResponse:
    # auth and rate limit rejections keep their WWW-Authenticate / Retry-After headers
    return error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail), headers=exc.headers)


async def _on_invalid_request(_: Request, exc: RequestValidationError) -> JSONResponse:
    return error_response(
        422, "validation_error", "Requête invalide", details=jsonable_encoder(exc.errors())
    )


async def _on_funnel_error(request: Request, exc: FunnelError) -> JSONResponse:
    where = f"{request.method} {request.url.path}"
    if isinstance(exc, (UpstreamError, TransientStoreError)):
        # internal detail goes to the log only, the client sees the public message
        logger.error(f"❌ {exc.code} on {where}: {exc.message}")
    else:
        logger.info(f"↩️ {exc.code} on {where}")
    return error_response(exc.status_code, exc.code, exc.client_message)


async def _on_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"💥 Unhandled error on {request.method} {request.url.path}")
    return error_response(500, "internal_error", "Erreur interne du serveur")


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(HTTPException, _on_http_error)
    app.add_exception_handler(RequestValidationError, _on_invalid_request)
    app.add_exception_handler(FunnelError, _on_funnel_error)
    app.add_exception_handler(Exception, _on_unexpected)
