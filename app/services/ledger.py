# app/services/ledger.py
"""
Session ledger for the paid questionnaire funnel.

A funnel session is addressed by an external ``session_uuid`` and is stored
in one of two tables (see app/db/models/funnel.py). Every migration copies
the row and its messages first and flags the source as moved last, inside a
single transaction. The flag flip is a conditional UPDATE on the
"not yet moved" flag, so of two concurrent migrations only one can commit.

When both tables hold a live row for the same uuid, the unpaid row wins.
"""
import enum
import logging
from dataclasses import dataclass
from datetime import datetime, time
from typing import Any, Dict, List, Optional, Tuple, Type, Union

from sqlalchemy import func, select, update, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AlreadyPaid, ConflictError, SessionNotFound
from app.core.logging import mask_email
from app.crud.base import store_transaction
from app.crud.user import normalize_email
from app.db.models.funnel import PaidMessage, PaidSession, UnpaidMessage, UnpaidSession
from app.services.stats import (
    EMAIL_COLLECTED,
    FIRST_MESSAGE,
    PAYMENT_COMPLETED,
    StatsManager,
    rate,
    stats_manager,
)

logger = logging.getLogger(__name__)

ROLE_VISITOR = "user"
ROLE_ASSISTANT = "assistant"
ROLES = (ROLE_VISITOR, ROLE_ASSISTANT)

SessionRow = Union[PaidSession, UnpaidSession]
MessageRow = Union[PaidMessage, UnpaidMessage]


class FunnelStage(str, enum.Enum):
    CREATED = "created"
    EMAIL_CAPTURED = "email_captured"
    PAID = "paid"


class MigrationConflict(ConflictError):
    """Another request moved the session between our read and our flag flip."""
    code = "migration_conflict"


@dataclass
class ResolvedSession:
    row: SessionRow

    @property
    def location(self) -> str:
        return "unpaid" if isinstance(self.row, UnpaidSession) else "paid"

    @property
    def paid(self) -> bool:
        return isinstance(self.row, PaidSession) and bool(self.row.paid)

    @property
    def stage(self) -> FunnelStage:
        if self.paid:
            return FunnelStage.PAID
        if self.row.email:
            return FunnelStage.EMAIL_CAPTURED
        return FunnelStage.CREATED

    @property
    def questionnaire(self) -> Dict[str, Any]:
        return dict(self.row.questionnaire_data or {})

    @property
    def session_uuid(self) -> str:
        return self.row.session_uuid

    @property
    def email(self) -> Optional[str]:
        return self.row.email

    @property
    def tier(self) -> Optional[str]:
        return self.row.expertise

    @property
    def amount(self) -> Optional[int]:
        return self.row.amount

    @property
    def payment_ref(self) -> Optional[str]:
        return self.row.payment_intent_id

    @property
    def thread_id(self) -> str:
        return self.row.thread_id


def _message_model(row: SessionRow) -> Type[MessageRow]:
    return UnpaidMessage if isinstance(row, UnpaidSession) else PaidMessage


class SessionLedger:
    def __init__(self, stats: StatsManager = stats_manager):
        self.stats = stats

    # ---- lookups -------------------------------------------------------

    async def _active_unpaid(
            self, db: AsyncSession, session_uuid: str, for_update: bool = False
    ) -> Optional[UnpaidSession]:
        query = select(UnpaidSession).where(
            UnpaidSession.session_uuid == session_uuid,
            UnpaidSession.moved_to_paid.is_(False),
        ).execution_options(populate_existing=True)
        if for_update:
            query = query.with_for_update()
        return (await db.execute(query)).scalar_one_or_none()

    async def _active_paid(
            self, db: AsyncSession, session_uuid: str, for_update: bool = False
    ) -> Optional[PaidSession]:
        query = select(PaidSession).where(
            PaidSession.session_uuid == session_uuid,
            PaidSession.moved_to_unpaid.is_(False),
        ).execution_options(populate_existing=True)
        if for_update:
            query = query.with_for_update()
        return (await db.execute(query)).scalar_one_or_none()

    async def _any_row(self, db: AsyncSession, model: Type[SessionRow], session_uuid: str) -> Optional[SessionRow]:
        query = (
            select(model)
            .where(model.session_uuid == session_uuid)
            .execution_options(populate_existing=True)
            .with_for_update()
        )
        return (await db.execute(query)).scalar_one_or_none()

    async def _resolve(self, db: AsyncSession, session_uuid: str, for_update: bool = False) -> ResolvedSession:
        row = await self._active_unpaid(db, session_uuid, for_update)
        if row is None:
            row = await self._active_paid(db, session_uuid, for_update)
        if row is None:
            raise SessionNotFound(session_uuid)
        return ResolvedSession(row)

    async def resolve(self, db: AsyncSession, *, session_uuid: str) -> ResolvedSession:
        """Find the authoritative row for ``session_uuid`` or raise SessionNotFound"""
        async with store_transaction(db):
            return await self._resolve(db, session_uuid)

    async def _messages(self, db: AsyncSession, row: SessionRow) -> List[MessageRow]:
        model = _message_model(row)
        result = await db.execute(
            select(model).where(model.session_id == row.id).order_by(model.id)
        )
        return list(result.scalars().all())

    async def _copy_messages(self, db: AsyncSession, source: SessionRow, target: SessionRow) -> int:
        target_model = _message_model(target)
        messages = await self._messages(db, source)
        for message in messages:
            db.add(target_model(
                session_id=target.id,
                role=message.role,
                content=message.content,
                created_at=message.created_at,
            ))
        await db.flush()
        return len(messages)

    async def _clear_messages(self, db: AsyncSession, row: SessionRow) -> None:
        model = _message_model(row)
        await db.execute(
            delete(model).where(model.session_id == row.id).execution_options(synchronize_session=False)
        )

    # ---- lifecycle -----------------------------------------------------

    async def create_funnel_session(self, db: AsyncSession, *, session_uuid: str, thread_id: str) -> PaidSession:
        """New sessions start in paid_sessions with paid=False and no identity"""
        row = PaidSession(session_uuid=session_uuid, thread_id=thread_id, paid=False)
        async with store_transaction(db):
            db.add(row)
        logger.info(f"🆕 Funnel session created: {session_uuid}")
        return row

    async def record_payment_setup(
            self,
            db: AsyncSession,
            *,
            session_uuid: str,
            tier: str,
            amount: int,
            payment_ref: str
    ) -> ResolvedSession:
        async with store_transaction(db):
            resolved = await self._resolve(db, session_uuid, for_update=True)
            if resolved.paid:
                raise AlreadyPaid(session_uuid)
            row = resolved.row
            row.expertise = tier
            row.amount = amount
            row.payment_intent_id = payment_ref
            if isinstance(row, UnpaidSession):
                now = datetime.utcnow()
                row.payment_attempts = (row.payment_attempts or 0) + 1
                row.last_payment_attempt_at = now
                row.last_activity_at = now
        logger.info(f"💳 Payment setup recorded: {session_uuid} tier={tier} amount={amount}")
        return resolved

    async def _migrate_to_paid(
            self, db: AsyncSession, session_uuid: str, email: Optional[str]
    ) -> Optional[PaidSession]:
        unpaid = await self._active_unpaid(db, session_uuid, for_update=True)
        if unpaid is None:
            return None

        fields = dict(
            email=unpaid.email or email,
            expertise=unpaid.expertise,
            amount=unpaid.amount,
            payment_intent_id=unpaid.payment_intent_id,
            thread_id=unpaid.thread_id,
            questionnaire_data=unpaid.questionnaire_data,
            first_message_sent=unpaid.first_message_sent,
        )
        paid = await self._any_row(db, PaidSession, session_uuid)
        if paid is None:
            paid = PaidSession(session_uuid=session_uuid, paid=False, **fields)
            db.add(paid)
        else:
            for key, value in fields.items():
                setattr(paid, key, value)
            paid.moved_to_unpaid = False
            paid.moved_at = None
            await db.flush()
            await self._clear_messages(db, paid)
        await db.flush()
        copied = await self._copy_messages(db, unpaid, paid)

        result = await db.execute(
            update(UnpaidSession)
            .where(UnpaidSession.id == unpaid.id, UnpaidSession.moved_to_paid.is_(False))
            .values(moved_to_paid=True, moved_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise MigrationConflict(session_uuid)
        logger.info(f"🔀 Session {session_uuid} moved unpaid → paid ({copied} messages)")
        return paid

    async def migrate_unpaid_to_paid(
            self, db: AsyncSession, *, session_uuid: str, email: Optional[str] = None
    ) -> bool:
        """Copy the live unpaid row back into paid_sessions (still unpaid); False if there is none"""
        try:
            async with store_transaction(db):
                paid = await self._migrate_to_paid(
                    db, session_uuid, normalize_email(email) if email else None
                )
        except (MigrationConflict, IntegrityError):
            logger.info(f"🔀 Session {session_uuid} already moved by a concurrent request")
            return False
        return paid is not None

    async def confirm_payment(
            self, db: AsyncSession, *, session_uuid: str, email: Optional[str] = None
    ) -> Tuple[PaidSession, bool]:
        """
        Mark the session paid. Returns ``(row, newly_paid)``.

        A session still living in the unpaid table is moved back first; an
        email already on record is kept. Confirming an already paid session
        is a no-op, so the payment counter moves exactly once per session.
        """
        email = normalize_email(email) if email else None
        try:
            return await self._confirm(db, session_uuid, email)
        except (MigrationConflict, IntegrityError):
            # a concurrent request moved the row first; resolve again from its result
            logger.info(f"🔀 Session {session_uuid} moved during confirmation, retrying")
            return await self._confirm(db, session_uuid, email)

    async def _confirm(
            self, db: AsyncSession, session_uuid: str, email: Optional[str]
    ) -> Tuple[PaidSession, bool]:
        async with store_transaction(db):
            paid = await self._migrate_to_paid(db, session_uuid, email)
            if paid is None:
                paid = await self._active_paid(db, session_uuid, for_update=True)
            if paid is None:
                raise SessionNotFound(session_uuid)
            if paid.paid:
                return paid, False

            values: Dict[str, Any] = {"paid": True, "paid_at": datetime.utcnow()}
            if email and not paid.email:
                values["email"] = email
            await db.flush()
            result = await db.execute(
                update(PaidSession)
                .where(
                    PaidSession.id == paid.id,
                    PaidSession.paid.is_(False),
                    PaidSession.moved_to_unpaid.is_(False),
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            newly_paid = result.rowcount == 1
            if newly_paid:
                await self.stats.increment(db, PAYMENT_COMPLETED)
            await db.refresh(paid)
        if newly_paid:
            logger.info(f"✅ Payment confirmed: {session_uuid} ({mask_email(paid.email)})")
        return paid, newly_paid

    async def _capture(self, db: AsyncSession, session_uuid: str, email: str) -> UnpaidSession:
        now = datetime.utcnow()
        async with store_transaction(db):
            unpaid = await self._active_unpaid(db, session_uuid, for_update=True)
            if unpaid is not None:
                unpaid.email = email
                unpaid.last_activity_at = now
                return unpaid

            paid = await self._active_paid(db, session_uuid, for_update=True)
            if paid is None:
                raise SessionNotFound(session_uuid)
            if paid.paid:
                raise AlreadyPaid(session_uuid)

            fields = dict(
                email=email,
                expertise=paid.expertise,
                amount=paid.amount,
                payment_intent_id=paid.payment_intent_id,
                thread_id=paid.thread_id,
                questionnaire_data=paid.questionnaire_data,
                first_message_sent=paid.first_message_sent,
                created_at=paid.created_at,
                email_collected_at=now,
                last_activity_at=now,
            )
            target = await self._any_row(db, UnpaidSession, session_uuid)
            first_capture = target is None
            if target is None:
                target = UnpaidSession(session_uuid=session_uuid, **fields)
                db.add(target)
            else:
                # the session went unpaid → paid → unpaid again, reuse its old row
                for key, value in fields.items():
                    setattr(target, key, value)
                target.moved_to_paid = False
                target.moved_at = None
                await db.flush()
                await self._clear_messages(db, target)
            await db.flush()
            copied = await self._copy_messages(db, paid, target)

            result = await db.execute(
                update(PaidSession)
                .where(PaidSession.id == paid.id, PaidSession.moved_to_unpaid.is_(False))
                .values(moved_to_unpaid=True, moved_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise MigrationConflict(session_uuid)
            if first_capture:
                await self.stats.increment(db, EMAIL_COLLECTED)

        logger.info(
            f"📧 Email captured for {session_uuid}: {mask_email(email)} "
            f"(moved paid → unpaid, {copied} messages)"
        )
        return target

    async def capture_email_unpaid(self, db: AsyncSession, *, session_uuid: str, email: str) -> UnpaidSession:
        """
        Move an unpaid session into unpaid_sessions_with_email, or update the
        email in place if it is already there. The email-collected counter
        moves only when the uuid gets its first unpaid row.
        """
        email = normalize_email(email)
        try:
            return await self._capture(db, session_uuid, email)
        except (MigrationConflict, IntegrityError):
            # lost the race to a concurrent capture; its row is authoritative now
            return await self._capture(db, session_uuid, email)

    # ---- messages and flags ------------------------------------------

    async def append_message(self, db: AsyncSession, *, session_uuid: str, role: str, content: str) -> MessageRow:
        """Resolve and append under one row lock so a migration cannot slip in between"""
        if role not in ROLES:
            raise ValueError(f"Unknown role: {role}")
        async with store_transaction(db):
            resolved = await self._resolve(db, session_uuid, for_update=True)
            row = resolved.row
            message = _message_model(row)(
                session_id=row.id, role=role, content=content, created_at=datetime.utcnow()
            )
            db.add(message)
            if isinstance(row, UnpaidSession):
                row.last_activity_at = message.created_at
        return message

    async def mark_first_message(self, db: AsyncSession, *, session_uuid: str) -> bool:
        async with store_transaction(db):
            row = (await self._resolve(db, session_uuid, for_update=True)).row
            model = type(row)
            result = await db.execute(
                update(model)
                .where(model.id == row.id, model.first_message_sent.is_(False))
                .values(first_message_sent=True)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                return False
            await self.stats.increment(db, FIRST_MESSAGE)
        logger.info(f"👋 First message for {session_uuid}")
        return True

    async def update_questionnaire(
            self, db: AsyncSession, *, session_uuid: str, updates: Dict[str, Any]
    ) -> Dict[str, Any]:
        async with store_transaction(db):
            row = (await self._resolve(db, session_uuid, for_update=True)).row
            data = dict(row.questionnaire_data or {})
            data.update(updates)
            row.questionnaire_data = data
        return data

    async def get_transcript(self, db: AsyncSession, *, session_uuid: str) -> List[MessageRow]:
        async with store_transaction(db):
            row = (await self._resolve(db, session_uuid)).row
            return await self._messages(db, row)

    async def mark_analysis_email_sent(self, db: AsyncSession, *, session_uuid: str) -> bool:
        async with store_transaction(db):
            result = await db.execute(
                update(PaidSession)
                .where(
                    PaidSession.session_uuid == session_uuid,
                    PaidSession.moved_to_unpaid.is_(False),
                    PaidSession.email_sent.is_(False),
                )
                .values(email_sent=True, email_sent_at=datetime.utcnow())
                .execution_options(synchronize_session=False)
            )
        return result.rowcount == 1

    # ---- reporting -----------------------------------------------------

    async def list_paid_sessions(
            self, db: AsyncSession, *, paid_only: bool = False, limit: int = 100, offset: int = 0
    ) -> List[Tuple[PaidSession, int]]:
        query = (
            select(PaidSession, func.count(PaidMessage.id))
            .outerjoin(PaidMessage, PaidMessage.session_id == PaidSession.id)
            .where(PaidSession.moved_to_unpaid.is_(False))
            .group_by(PaidSession.id)
            .order_by(PaidSession.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        if paid_only:
            query = query.where(PaidSession.paid.is_(True))
        return [(row, int(count)) for row, count in (await db.execute(query)).all()]

    async def list_unpaid_sessions(
            self, db: AsyncSession, *, include_moved: bool = False, limit: int = 100, offset: int = 0
    ) -> List[Tuple[UnpaidSession, int]]:
        query = (
            select(UnpaidSession, func.count(UnpaidMessage.id))
            .outerjoin(UnpaidMessage, UnpaidMessage.session_id == UnpaidSession.id)
            .group_by(UnpaidSession.id)
            .order_by(UnpaidSession.last_activity_at.desc())
            .offset(offset)
            .limit(limit)
        )
        if not include_moved:
            query = query.where(UnpaidSession.moved_to_paid.is_(False))
        return [(row, int(count)) for row, count in (await db.execute(query)).all()]

    async def get_unpaid_session(
            self, db: AsyncSession, *, session_uuid: str
    ) -> Tuple[UnpaidSession, List[UnpaidMessage]]:
        """Unpaid row with its transcript, including rows already moved back to paid"""
        row = (await db.execute(
            select(UnpaidSession).where(UnpaidSession.session_uuid == session_uuid)
        )).scalar_one_or_none()
        if row is None:
            raise SessionNotFound(session_uuid)
        return row, await self._messages(db, row)

    async def payment_stats(self, db: AsyncSession) -> Dict[str, Any]:
        today_start = datetime.combine(datetime.utcnow().date(), time.min)
        is_paid = PaidSession.paid.is_(True)
        row = (await db.execute(
            select(
                func.count(PaidSession.id),
                func.count(PaidSession.id).filter(is_paid),
                func.count(PaidSession.id).filter(is_paid, PaidSession.expertise == "classique"),
                func.count(PaidSession.id).filter(is_paid, PaidSession.expertise == "premium"),
                func.coalesce(func.sum(PaidSession.amount).filter(is_paid), 0),
                func.count(PaidSession.id).filter(is_paid, PaidSession.paid_at >= today_start),
                func.coalesce(func.sum(PaidSession.amount).filter(is_paid, PaidSession.paid_at >= today_start), 0),
            ).where(PaidSession.moved_to_unpaid.is_(False))
        )).one()
        return {
            "total_sessions": int(row[0]),
            "paid_sessions": int(row[1]),
            "classique_count": int(row[2]),
            "premium_count": int(row[3]),
            "total_revenue": int(row[4]),
            "today_paid": int(row[5]),
            "today_revenue": int(row[6]),
        }

    async def unpaid_stats(self, db: AsyncSession) -> Dict[str, Any]:
        row = (await db.execute(
            select(
                func.count(UnpaidSession.id),
                func.count(UnpaidSession.id).filter(UnpaidSession.moved_to_paid.is_(True)),
                func.coalesce(func.sum(UnpaidSession.payment_attempts), 0),
            )
        )).one()
        total, moved = int(row[0]), int(row[1])
        return {
            "total": total,
            "moved_to_paid": moved,
            "pending": total - moved,
            "payment_attempts": int(row[2]),
            "conversion_rate": rate(moved, total),
        }


session_ledger = SessionLedger()
