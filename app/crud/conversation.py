# app/crud/conversation.py
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.crud.base import CRUDBase, store_transaction
from app.db.models.conversation import ConversationMessage, ConversationSession

TITLE_LENGTH = 50


def make_title(first_message: str) -> str:
    text = first_message.strip()
    if len(text) > TITLE_LENGTH:
        return text[:TITLE_LENGTH] + "..."
    return text


class CRUDConversation(CRUDBase[ConversationSession, dict, dict]):
    async def create_session(
            self,
            db: AsyncSession,
            *,
            first_message: str,
            user_id: Optional[UUID] = None,
            anonymous_identifier: Optional[str] = None,
            ip_address: Optional[str] = None,
            user_agent: Optional[str] = None
    ) -> ConversationSession:
        """Create a free-tier session owned by a user or, failing that, by an anonymous id"""
        db_obj = ConversationSession(
            user_id=user_id,
            anonymous_identifier=None if user_id else anonymous_identifier,
            is_anonymous=user_id is None,
            ip_address=ip_address,
            user_agent=user_agent,
            title=make_title(first_message),
        )
        async with store_transaction(db):
            db.add(db_obj)
        return db_obj

    async def get_owned_session(
            self,
            db: AsyncSession,
            *,
            session_id: UUID,
            user_id: Optional[UUID] = None,
            anonymous_identifier: Optional[str] = None
    ) -> Optional[ConversationSession]:
        query = select(ConversationSession).where(ConversationSession.id == session_id)
        if user_id:
            query = query.where(ConversationSession.user_id == user_id)
        elif anonymous_identifier:
            query = query.where(ConversationSession.anonymous_identifier == anonymous_identifier)
        else:
            return None
        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def add_message(
            self,
            db: AsyncSession,
            *,
            session_id: UUID,
            role: str,
            content: str,
            tokens_used: Optional[int] = None,
            response_time_ms: Optional[int] = None,
            was_cached: bool = False
    ) -> ConversationMessage:
        """Append a message; only visitor messages count towards message_count"""
        now = datetime.utcnow()
        db_obj = ConversationMessage(
            session_id=session_id,
            role=role,
            content=content,
            created_at=now,
            tokens_used=tokens_used,
            response_time_ms=response_time_ms,
            was_cached=was_cached,
        )
        values = {"last_message_at": now}
        if role == "user":
            values["message_count"] = ConversationSession.message_count + 1
        async with store_transaction(db):
            db.add(db_obj)
            await db.execute(
                update(ConversationSession)
                .where(ConversationSession.id == session_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
        return db_obj

    async def get_messages(self, db: AsyncSession, *, session_id: UUID) -> List[ConversationMessage]:
        result = await db.execute(
            select(ConversationMessage)
            .where(ConversationMessage.session_id == session_id)
            .order_by(ConversationMessage.id)
        )
        return list(result.scalars().all())

    async def list_for_user(
            self,
            db: AsyncSession,
            *,
            user_id: UUID,
            limit: int = 50,
            offset: int = 0
    ) -> List[ConversationSession]:
        result = await db.execute(
            select(ConversationSession)
            .where(ConversationSession.user_id == user_id)
            .order_by(ConversationSession.last_message_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_sessions(
            self,
            db: AsyncSession,
            *,
            anonymous: bool,
            limit: int = 50,
            offset: int = 0
    ) -> List[ConversationSession]:
        result = await db.execute(
            select(ConversationSession)
            .where(ConversationSession.is_anonymous == anonymous)
            .order_by(ConversationSession.started_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_anonymous(self, db: AsyncSession, *, limit: int = 50, offset: int = 0) -> List[ConversationSession]:
        return await self.list_sessions(db, anonymous=True, limit=limit, offset=offset)

    async def delete_session(self, db: AsyncSession, *, session_id: UUID) -> bool:
        async with store_transaction(db):
            await db.execute(
                delete(ConversationMessage).where(ConversationMessage.session_id == session_id)
            )
            result = await db.execute(
                delete(ConversationSession).where(ConversationSession.id == session_id)
            )
        return bool(result.rowcount)

    async def count_sessions(self, db: AsyncSession, *, anonymous: bool) -> int:
        result = await db.execute(
            select(func.count(ConversationSession.id)).where(ConversationSession.is_anonymous == anonymous)
        )
        return int(result.scalar() or 0)


# Create instance
crud_conversation = CRUDConversation(ConversationSession)
