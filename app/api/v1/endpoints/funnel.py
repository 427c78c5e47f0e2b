# app/api/v1/endpoints/funnel.py
import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_services
from app.core.logging import mask_email
from app.db.session import get_db
from app.schemas import (
    CommentsIn,
    FunnelMessage,
    FunnelReplyResponse,
    FunnelSessionCreated,
    FunnelStatus,
    OfferChoice,
)
from app.services.container import ServiceContainer
from app.services.funnel import PHASE_QUESTIONNAIRE, FunnelReply

logger = logging.getLogger(__name__)

router = APIRouter()


def _reply_response(reply: FunnelReply) -> FunnelReplyResponse:
    return FunnelReplyResponse(
        session_id=reply.session_id,
        reply=reply.reply,
        stage=reply.stage.value,
        phase=reply.phase,
        step=reply.step,
        email_captured=reply.email_captured,
        questionnaire_complete=reply.questionnaire_complete,
        ready_for_payment=reply.ready_for_payment,
    )


@router.post("/sessions", response_model=FunnelSessionCreated, status_code=status.HTTP_201_CREATED)
async def create_session(
        db: AsyncSession = Depends(get_db),
        services: ServiceContainer = Depends(get_services)
):
    """Open a funnel session backed by a new assistant thread"""
    session_uuid = await services.funnel.start_session(db)
    logger.info(f"🆕 Funnel session {session_uuid}")
    return FunnelSessionCreated(session_id=session_uuid)


@router.get("/sessions/{session_uuid}", response_model=FunnelStatus)
async def get_session(
        session_uuid: str,
        db: AsyncSession = Depends(get_db),
        services: ServiceContainer = Depends(get_services)
):
    resolved = await services.funnel.status(db, session_uuid)
    progress = resolved.questionnaire
    return FunnelStatus(
        session_id=resolved.session_uuid,
        stage=resolved.stage.value,
        phase=progress.get("phase", PHASE_QUESTIONNAIRE),
        step=progress.get("step", 0),
        paid=resolved.paid,
        tier=resolved.tier,
        amount=resolved.amount,
        email=mask_email(resolved.email) if resolved.email else None,
    )


@router.post("/sessions/{session_uuid}/messages", response_model=FunnelReplyResponse)
async def post_message(
        session_uuid: str,
        message_in: FunnelMessage,
        db: AsyncSession = Depends(get_db),
        services: ServiceContainer = Depends(get_services)
):
    reply = await services.funnel.handle_message(db, session_uuid=session_uuid, message=message_in.message)
    return _reply_response(reply)


@router.post("/sessions/{session_uuid}/offer", response_model=FunnelReplyResponse)
async def choose_offer(
        session_uuid: str,
        choice: OfferChoice,
        db: AsyncSession = Depends(get_db),
        services: ServiceContainer = Depends(get_services)
):
    reply = await services.funnel.select_offer(db, session_uuid=session_uuid, tier=choice.tier)
    return _reply_response(reply)


@router.post("/sessions/{session_uuid}/comments", response_model=FunnelReplyResponse)
async def submit_comments(
        session_uuid: str,
        comments_in: CommentsIn,
        db: AsyncSession = Depends(get_db),
        services: ServiceContainer = Depends(get_services)
):
    """Personal comments before payment; skip or empty text records a skip"""
    comments = None if comments_in.skip else comments_in.comments
    reply = await services.funnel.submit_comments(db, session_uuid=session_uuid, comments=comments)
    return _reply_response(reply)
