# app/services/chat.py
"""
Free-tier chat: quota, shared answer cache, assistant fallback.
"""
import logging
import math
import time
from dataclasses import dataclass
from typing import Optional, Tuple
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError, TransientStoreError, ValidationError
from app.core.logging import mask_email
from app.crud.cache import CRUDCache, crud_cache
from app.crud.conversation import CRUDConversation, crud_conversation
from app.crud.user import CRUDUser, crud_user
from app.db.models.user import User
from app.services.assistant import BaseAssistant
from app.utils.retry import retry_store

logger = logging.getLogger(__name__)

QUOTA_MESSAGE = "Vous avez utilisé vos {quota} questions gratuites. Inscrivez-vous pour continuer."

FREE_TIER_INSTRUCTIONS = (
    "Réponds en français, de façon factuelle et structurée, en rappelant que la réponse "
    "ne remplace pas la consultation d'un avocat."
)


@dataclass
class Visitor:
    user: Optional[User] = None
    questions_used: int = 0
    anonymous_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @property
    def registered(self) -> bool:
        return self.user is not None


@dataclass
class FreeTierReply:
    success: bool
    questions_used: int
    remaining: Optional[int]
    response: Optional[str] = None
    cached: bool = False
    need_signup: bool = False
    message: Optional[str] = None
    session_id: Optional[UUID] = None


def estimate_tokens(question: str, answer: str) -> int:
    return math.ceil((len(question) + len(answer)) / 4)


class ChatManager:
    def __init__(
            self,
            assistant: BaseAssistant,
            quota: int = 2,
            store_retries: int = 2,
            cache: CRUDCache = crud_cache,
            conversations: CRUDConversation = crud_conversation,
            users: CRUDUser = crud_user,
    ):
        self.assistant = assistant
        self.quota = quota
        self.store_retries = store_retries
        self.cache = cache
        self.conversations = conversations
        self.users = users

    async def _cached_answer(self, db: AsyncSession, question: str) -> Optional[str]:
        try:
            entry = await self.cache.lookup(db, question=question)
        except (SQLAlchemyError, TransientStoreError) as e:
            logger.warning(f"⚠️ Cache lookup failed, treating as miss: {e.__class__.__name__}")
            return None
        return entry.answer_text if entry else None

    async def _remember(self, db: AsyncSession, question: str, answer: str) -> None:
        try:
            await self.cache.store(db, question=question, answer=answer)
        except (SQLAlchemyError, TransientStoreError) as e:
            logger.warning(f"⚠️ Cache store failed: {e.__class__.__name__}")

    async def _answer(self, db: AsyncSession, question: str) -> Tuple[str, bool]:
        cached = await self._cached_answer(db, question)
        if cached is not None:
            return cached, True

        thread_id = await self.assistant.create_thread()
        answer = await self.assistant.ask(thread_id, question, FREE_TIER_INSTRUCTIONS)
        await self._remember(db, question, answer)
        return answer, False

    async def answer(
            self,
            db: AsyncSession,
            *,
            question: str,
            visitor: Visitor,
            session_id: Optional[UUID] = None
    ) -> FreeTierReply:
        question = question.strip()
        if not question:
            raise ValidationError("Message requis")

        if not visitor.registered and visitor.questions_used >= self.quota:
            logger.info(f"🔒 Free quota reached ({visitor.questions_used}/{self.quota})")
            return FreeTierReply(
                success=False,
                need_signup=True,
                message=QUOTA_MESSAGE.format(quota=self.quota),
                questions_used=visitor.questions_used,
                remaining=0,
            )

        user_id = visitor.user.id if visitor.user else None
        conversation = None
        if session_id is not None:
            conversation = await retry_store(
                lambda: self.conversations.get_owned_session(
                    db, session_id=session_id, user_id=user_id, anonymous_identifier=visitor.anonymous_id
                ),
                retries=self.store_retries,
            )
            if conversation is None:
                raise NotFoundError("Conversation introuvable")

        started = time.monotonic()
        answer, cached = await self._answer(db, question)
        elapsed_ms = int((time.monotonic() - started) * 1000)

        if visitor.registered:
            await retry_store(
                lambda: self.users.increment_question_usage(db, email=visitor.user.email),
                retries=self.store_retries,
            )

        if conversation is None:
            conversation = await retry_store(
                lambda: self.conversations.create_session(
                    db,
                    first_message=question,
                    user_id=user_id,
                    anonymous_identifier=visitor.anonymous_id,
                    ip_address=visitor.ip_address,
                    user_agent=visitor.user_agent,
                ),
                retries=self.store_retries,
            )
        await retry_store(
            lambda: self.conversations.add_message(db, session_id=conversation.id, role="user", content=question),
            retries=self.store_retries,
        )
        await retry_store(
            lambda: self.conversations.add_message(
                db,
                session_id=conversation.id,
                role="assistant",
                content=answer,
                tokens_used=estimate_tokens(question, answer),
                response_time_ms=elapsed_ms,
                was_cached=cached,
            ),
            retries=self.store_retries,
        )

        if visitor.registered:
            used, remaining = visitor.questions_used + 1, None
            who = mask_email(visitor.user.email)
        else:
            used = visitor.questions_used + 1
            remaining = max(0, self.quota - used)
            who = "anonymous"
        logger.info(f"💬 Free-tier answer for {who} (cached={cached}, {elapsed_ms}ms)")

        return FreeTierReply(
            success=True,
            response=answer,
            cached=cached,
            questions_used=used,
            remaining=remaining,
            session_id=conversation.id,
        )
