# app/api/v1/endpoints/chat.py
import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import enforce_rate_limit, get_current_user_optional, get_services
from app.core.config import settings
from app.db.models import User
from app.db.session import get_db
from app.schemas import ChatMessage, ChatResponse
from app.services.chat import Visitor
from app.services.container import ServiceContainer
from app.services.ratelimit import get_client_ip

router = APIRouter()
logger = logging.getLogger(__name__)

QUOTA_COOKIE = "q_used"
ANON_COOKIE = "anon_id"
QUOTA_COOKIE_MAX_AGE = 60 * 60 * 24
ANON_COOKIE_MAX_AGE = 60 * 60 * 24 * 365


def _questions_used(request: Request) -> int:
    try:
        return max(0, int(request.cookies.get(QUOTA_COOKIE, "0")))
    except ValueError:
        return 0


@router.post("", response_model=ChatResponse)
async def chat(
        chat_data: ChatMessage,
        request: Request,
        response: Response,
        db: AsyncSession = Depends(get_db),
        current_user: Optional[User] = Depends(get_current_user_optional),
        services: ServiceContainer = Depends(get_services)
):
    """
    Free-tier question: anonymous visitors get a small quota tracked in a
    cookie, registered visitors are counted in the identity store
    """
    ip_address = get_client_ip(request)
    if current_user is not None:
        await enforce_rate_limit(services, "chat_registered", current_user.email)
        visitor = Visitor(
            user=current_user,
            questions_used=current_user.questions_used,
            ip_address=ip_address,
            user_agent=request.headers.get("user-agent"),
        )
    else:
        await enforce_rate_limit(services, "chat", ip_address)
        anonymous_id = request.cookies.get(ANON_COOKIE) or str(uuid.uuid4())
        visitor = Visitor(
            questions_used=_questions_used(request),
            anonymous_id=anonymous_id,
            ip_address=ip_address,
            user_agent=request.headers.get("user-agent"),
        )
        response.set_cookie(
            ANON_COOKIE, anonymous_id, max_age=ANON_COOKIE_MAX_AGE, httponly=True,
            secure=settings.is_production, samesite="lax"
        )

    reply = await services.chat.answer(
        db, question=chat_data.message, visitor=visitor, session_id=chat_data.session_id
    )

    if reply.success and not visitor.registered:
        response.set_cookie(
            QUOTA_COOKIE, str(reply.questions_used), max_age=QUOTA_COOKIE_MAX_AGE,
            secure=settings.is_production, samesite="lax"
        )

    return ChatResponse(
        success=reply.success,
        response=reply.response,
        cached=reply.cached,
        need_signup=reply.need_signup,
        message=reply.message,
        q_used=reply.questions_used,
        remaining=reply.remaining,
        session_id=reply.session_id,
    )
