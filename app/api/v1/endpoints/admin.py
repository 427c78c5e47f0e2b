# app/api/v1/endpoints/admin.py
import logging
from typing import Any, Dict, List
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_services, require_admin_key
from app.core.exceptions import NotFoundError
from app.crud import crud_cache, crud_conversation, crud_user
from app.db.session import get_db
from app.schemas import (
    AdminUserResponse,
    ConversationList,
    ConversationMessageOut,
    ConversationSummary,
    PaidSessionSummary,
    PaymentsResponse,
    PurgeResponse,
    StatisticsResponse,
    SuccessResponse,
    TranscriptMessage,
    UnpaidSessionDetail,
    UnpaidSessionsResponse,
    UnpaidSessionSummary,
)
from app.services.container import ServiceContainer
from app.services.stats import stats_manager

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_admin_key)])


def _summary(schema, row, message_count: int):
    item = schema.model_validate(row)
    item.message_count = message_count
    return item


@router.get("/statistics", response_model=StatisticsResponse)
async def get_statistics(
        days: int = Query(30, ge=1, le=365),
        db: AsyncSession = Depends(get_db)
):
    """Funnel conversion: all time, last 7 days and one row per day"""
    return StatisticsResponse(
        global_=await stats_manager.global_totals(db),
        last_7_days=await stats_manager.last_n_days(db, 7),
        daily=await stats_manager.daily(db, days),
    )


@router.get("/payments", response_model=PaymentsResponse)
async def get_payments(
        paid_only: bool = False,
        limit: int = Query(100, ge=1, le=500),
        offset: int = Query(0, ge=0),
        db: AsyncSession = Depends(get_db),
        services: ServiceContainer = Depends(get_services)
):
    rows = await services.ledger.list_paid_sessions(db, paid_only=paid_only, limit=limit, offset=offset)
    return PaymentsResponse(
        sessions=[_summary(PaidSessionSummary, row, count) for row, count in rows],
        stats=await services.ledger.payment_stats(db),
    )


@router.get("/unpaid-sessions", response_model=UnpaidSessionsResponse)
async def get_unpaid_sessions(
        include_moved: bool = False,
        limit: int = Query(100, ge=1, le=500),
        offset: int = Query(0, ge=0),
        db: AsyncSession = Depends(get_db),
        services: ServiceContainer = Depends(get_services)
):
    rows = await services.ledger.list_unpaid_sessions(
        db, include_moved=include_moved, limit=limit, offset=offset
    )
    return UnpaidSessionsResponse(
        sessions=[_summary(UnpaidSessionSummary, row, count) for row, count in rows],
        stats=await services.ledger.unpaid_stats(db),
    )


@router.get("/unpaid-sessions/{session_uuid}", response_model=UnpaidSessionDetail)
async def get_unpaid_session(
        session_uuid: str,
        db: AsyncSession = Depends(get_db),
        services: ServiceContainer = Depends(get_services)
):
    row, messages = await services.ledger.get_unpaid_session(db, session_uuid=session_uuid)
    return UnpaidSessionDetail(
        session=_summary(UnpaidSessionSummary, row, len(messages)),
        messages=[TranscriptMessage.model_validate(m) for m in messages],
    )


@router.get("/cache", response_model=Dict[str, Any])
async def get_cache_stats(db: AsyncSession = Depends(get_db)):
    return await crud_cache.stats(db)


@router.post("/cache/purge", response_model=PurgeResponse)
async def purge_cache(db: AsyncSession = Depends(get_db)):
    deleted = await crud_cache.purge_expired(db)
    logger.info(f"🧹 Admin purged {deleted} expired cache entries")
    return PurgeResponse(deleted=deleted)


@router.get("/conversations", response_model=ConversationList)
async def get_conversations(
        anonymous: bool = False,
        limit: int = Query(50, ge=1, le=200),
        offset: int = Query(0, ge=0),
        db: AsyncSession = Depends(get_db)
):
    sessions = await crud_conversation.list_sessions(db, anonymous=anonymous, limit=limit, offset=offset)
    return ConversationList(
        conversations=[ConversationSummary.model_validate(s) for s in sessions],
        total=await crud_conversation.count_sessions(db, anonymous=anonymous),
    )


@router.get("/conversations/{conversation_id}/messages", response_model=List[ConversationMessageOut])
async def get_conversation_messages(
        conversation_id: UUID,
        db: AsyncSession = Depends(get_db)
):
    conversation = await crud_conversation.get(db, id=conversation_id)
    if not conversation:
        raise NotFoundError("Conversation introuvable")
    return await crud_conversation.get_messages(db, session_id=conversation_id)


@router.delete("/conversations/{conversation_id}", response_model=SuccessResponse)
async def delete_conversation(
        conversation_id: UUID,
        db: AsyncSession = Depends(get_db)
):
    if not await crud_conversation.delete_session(db, session_id=conversation_id):
        raise NotFoundError("Conversation introuvable")
    logger.info(f"🗑️ Conversation {conversation_id} deleted")
    return SuccessResponse(message="Conversation supprimée")


@router.get("/users", response_model=Dict[str, Any])
async def get_users(
        limit: int = Query(100, ge=1, le=500),
        offset: int = Query(0, ge=0),
        db: AsyncSession = Depends(get_db)
):
    users = await crud_user.list_users(db, limit=limit, offset=offset)
    return {
        "users": [AdminUserResponse.model_validate(u).model_dump(mode="json") for u in users],
        "stats": await crud_user.user_stats(db),
    }
