# app/api/v1/endpoints/auth.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import (
    ACCESS_TOKEN_COOKIE,
    enforce_rate_limit,
    get_current_user_optional,
    get_services,
)
from app.core import security
from app.core.config import settings
from app.core.logging import mask_email
from app.crud import crud_user
from app.db.models import User
from app.db.session import get_db
from app.schemas import AuthResponse, SessionCheck, SuccessResponse, UserCreate, UserLogin, UserResponse
from app.services.container import ServiceContainer
from app.services.ratelimit import get_client_ip

logger = logging.getLogger(__name__)

router = APIRouter()

ONE_YEAR = 60 * 60 * 24 * 365
QUOTA_COOKIE = "q_used"
NAME_COOKIE = "user_name"


def _start_session(response: Response, user: User) -> str:
    """Issue the JWT cookie and reset the anonymous quota counter"""
    token = security.create_access_token(subject=user.email)
    secure = settings.is_production
    response.set_cookie(
        ACCESS_TOKEN_COOKIE, token, max_age=ONE_YEAR, httponly=True, secure=secure, samesite="lax"
    )
    response.set_cookie(QUOTA_COOKIE, "0", max_age=ONE_YEAR, secure=secure, samesite="lax")
    response.set_cookie(NAME_COOKIE, user.name, max_age=ONE_YEAR, secure=secure, samesite="lax")
    return token


@router.post("/register", response_model=AuthResponse)
async def register(
        user_in: UserCreate,
        request: Request,
        response: Response,
        db: AsyncSession = Depends(get_db),
        services: ServiceContainer = Depends(get_services)
):
    """Register new user"""
    await enforce_rate_limit(services, "signup", get_client_ip(request))
    user = await crud_user.register(db, name=user_in.name, email=user_in.email, password=user_in.password)
    token = _start_session(response, user)
    return AuthResponse(user=UserResponse.model_validate(user), access_token=token)


@router.post("/login", response_model=AuthResponse)
async def login(
        form_data: UserLogin,
        request: Request,
        response: Response,
        db: AsyncSession = Depends(get_db),
        services: ServiceContainer = Depends(get_services)
):
    """Login and get access token"""
    await enforce_rate_limit(services, "login", get_client_ip(request))
    user = await crud_user.authenticate(db, email=form_data.email, password=form_data.password)
    token = _start_session(response, user)
    logger.info(f"🔑 Login: {mask_email(user.email)}")
    return AuthResponse(user=UserResponse.model_validate(user), access_token=token)


@router.post("/logout", response_model=SuccessResponse)
async def logout(response: Response):
    response.delete_cookie(ACCESS_TOKEN_COOKIE)
    response.delete_cookie(NAME_COOKIE)
    return SuccessResponse(message="Déconnecté")


@router.get("/me", response_model=SessionCheck)
async def read_users_me(current_user: Optional[User] = Depends(get_current_user_optional)):
    """Get current user info"""
    if current_user is None:
        return SessionCheck(registered=False)
    return SessionCheck(registered=True, user=UserResponse.model_validate(current_user))
