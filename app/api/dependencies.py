# app/api/dependencies.py
import logging
from typing import Optional

from fastapi import Depends, Header, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import security
from app.core.config import settings
from app.core.exceptions import ForbiddenException, RateLimitException, UnauthorizedException
from app.crud.user import crud_user
from app.db.models import User
from app.db.session import get_db
from app.services.container import ServiceContainer
from app.services.ratelimit import get_client_ip

logger = logging.getLogger(__name__)

ACCESS_TOKEN_COOKIE = "access_token"

# Security scheme
security_bearer = HTTPBearer(auto_error=False)


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services


async def enforce_rate_limit(services: ServiceContainer, limiter_id: str, identifier: str) -> None:
    """Raise a 429 with the limiter headers once the window is full"""
    result = await services.rate_limiter.check(limiter_id, identifier)
    if not result.allowed:
        logger.warning(f"🚦 Rate limit '{limiter_id}' exceeded")
        raise RateLimitException(headers=result.headers())


async def get_current_user_optional(
        request: Request,
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_bearer),
        db: AsyncSession = Depends(get_db)
) -> Optional[User]:
    """
    Registered visitor from the access_token cookie or a Bearer header,
    None for anonymous visitors or a stale token
    """
    token = request.cookies.get(ACCESS_TOKEN_COOKIE)
    if not token and credentials:
        token = credentials.credentials
    if not token:
        return None

    payload = security.decode_access_token(token)
    if not payload or not payload.get("sub"):
        return None

    return await crud_user.get_by_email(db, email=payload["sub"])


async def get_current_user(
        current_user: Optional[User] = Depends(get_current_user_optional)
) -> User:
    """
    Get current authenticated user (required authentication)
    """
    if current_user is None:
        raise UnauthorizedException()
    return current_user


async def require_admin_key(
        request: Request,
        x_admin_key: Optional[str] = Header(None, alias="X-Admin-Key"),
        services: ServiceContainer = Depends(get_services)
) -> None:
    """Admin API key check, then the admin rate limit per IP"""
    if not x_admin_key:
        raise UnauthorizedException("Clé admin requise")
    if not security.api_key_matches(x_admin_key, settings.ADMIN_API_KEY):
        logger.warning(f"🚨 Invalid admin key from {get_client_ip(request)}")
        raise ForbiddenException("Clé admin invalide")
    await enforce_rate_limit(services, "admin", get_client_ip(request))
