# app/services/funnel.py
"""
Paid questionnaire funnel.

Phases, kept in ``questionnaire_data["phase"]``:

    questionnaire → awaiting_offer → awaiting_comments → ready_for_payment

Assistant calls happen between ledger transactions, never inside one.
"""
import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AlreadyPaid, ValidationError
from app.crud.user import normalize_email
from app.services.assistant import BaseAssistant
from app.services.ledger import (
    ROLE_ASSISTANT,
    ROLE_VISITOR,
    FunnelStage,
    ResolvedSession,
    SessionLedger,
    session_ledger,
)
from app.services.offers import get_offer
from app.services.questionnaire import (
    QUESTIONNAIRE_STEPS,
    SKIP_COMMENTS_MARKER,
    find_email,
    offer_marker,
    strip_completion_marker,
)
from app.utils.retry import retry_store

logger = logging.getLogger(__name__)

PHASE_QUESTIONNAIRE = "questionnaire"
PHASE_AWAITING_OFFER = "awaiting_offer"
PHASE_AWAITING_COMMENTS = "awaiting_comments"
PHASE_READY = "ready_for_payment"

QUESTIONNAIRE_INSTRUCTIONS = (
    "Tu mènes un questionnaire de {total} étapes sur la situation de divorce du client. "
    "Nous sommes à l'étape {step}/{total}. Pose une seule question à la fois. "
    "Lorsque toutes les étapes sont terminées, termine ta réponse par [QUESTIONNAIRE_COMPLETE]."
)
COMMENTS_PROMPT = (
    "Merci pour votre choix. Souhaitez-vous ajouter des commentaires personnels sur votre "
    "situation avant de finaliser ? Vous pouvez aussi passer cette étape."
)
READY_MESSAGE = "Merci, votre dossier est complet. Vous pouvez maintenant procéder au paiement."


@dataclass
class FunnelReply:
    session_id: str
    reply: str
    stage: FunnelStage
    phase: str
    step: int
    email_captured: bool = False
    questionnaire_complete: bool = False
    ready_for_payment: bool = False


class FunnelOrchestrator:
    def __init__(
            self,
            assistant: BaseAssistant,
            ledger: SessionLedger = session_ledger,
            store_retries: int = 2,
    ):
        self.assistant = assistant
        self.ledger = ledger
        self.store_retries = store_retries

    async def _store(self, fn):
        return await retry_store(fn, retries=self.store_retries)

    async def start_session(self, db: AsyncSession) -> str:
        thread_id = await self.assistant.create_thread()
        session_uuid = str(uuid.uuid4())
        await self._store(
            lambda: self.ledger.create_funnel_session(db, session_uuid=session_uuid, thread_id=thread_id)
        )
        return session_uuid

    async def status(self, db: AsyncSession, session_uuid: str) -> ResolvedSession:
        return await self._store(lambda: self.ledger.resolve(db, session_uuid=session_uuid))

    async def _open(self, db: AsyncSession, session_uuid: str) -> ResolvedSession:
        resolved = await self.status(db, session_uuid)
        if resolved.paid:
            raise AlreadyPaid(session_uuid)
        return resolved

    async def _scan_for_email(self, db: AsyncSession, resolved: ResolvedSession, text: str) -> bool:
        email = find_email(text)
        if email is None or normalize_email(email) == (resolved.email or ""):
            return False
        await self._store(
            lambda: self.ledger.capture_email_unpaid(db, session_uuid=resolved.session_uuid, email=email)
        )
        return True

    async def _append_exchange(self, db: AsyncSession, session_uuid: str, visitor_text: str, reply: str) -> None:
        await self._store(lambda: self.ledger.append_message(
            db, session_uuid=session_uuid, role=ROLE_VISITOR, content=visitor_text
        ))
        await self._store(lambda: self.ledger.append_message(
            db, session_uuid=session_uuid, role=ROLE_ASSISTANT, content=reply
        ))

    async def _reply(self, db: AsyncSession, session_uuid: str, reply: str, **flags) -> FunnelReply:
        resolved = await self.status(db, session_uuid)
        progress = resolved.questionnaire
        return FunnelReply(
            session_id=session_uuid,
            reply=reply,
            stage=resolved.stage,
            phase=progress.get("phase", PHASE_QUESTIONNAIRE),
            step=progress.get("step", 0),
            **flags,
        )

    async def handle_message(self, db: AsyncSession, *, session_uuid: str, message: str) -> FunnelReply:
        """One questionnaire exchange with the assistant"""
        message = message.strip()
        if not message:
            raise ValidationError("Message requis")

        resolved = await self._open(db, session_uuid)
        progress = resolved.questionnaire
        phase = progress.get("phase", PHASE_QUESTIONNAIRE)
        if phase == PHASE_AWAITING_COMMENTS:
            return await self.submit_comments(db, session_uuid=session_uuid, comments=message)
        if phase != PHASE_QUESTIONNAIRE:
            raise ValidationError("Le questionnaire est terminé, veuillez choisir une offre")

        await self._store(lambda: self.ledger.mark_first_message(db, session_uuid=session_uuid))
        email_captured = await self._scan_for_email(db, resolved, message)

        step = min(progress.get("step", 0) + 1, QUESTIONNAIRE_STEPS)
        instructions = QUESTIONNAIRE_INSTRUCTIONS.format(step=step, total=QUESTIONNAIRE_STEPS)
        # an assistant failure propagates before anything of the exchange is stored
        raw_reply = await self.assistant.ask(resolved.thread_id, message, instructions)
        reply, complete = strip_completion_marker(raw_reply)
        complete = complete or step >= QUESTIONNAIRE_STEPS

        await self._append_exchange(db, session_uuid, message, reply)
        await self._store(lambda: self.ledger.update_questionnaire(
            db,
            session_uuid=session_uuid,
            updates={"step": step, "phase": PHASE_AWAITING_OFFER if complete else PHASE_QUESTIONNAIRE},
        ))
        if complete:
            logger.info(f"📝 Questionnaire complete for {session_uuid}")

        return await self._reply(
            db, session_uuid, reply, email_captured=email_captured, questionnaire_complete=complete
        )

    async def select_offer(self, db: AsyncSession, *, session_uuid: str, tier: str) -> FunnelReply:
        """Client-signalled offer choice; the visitor is then asked for comments"""
        offer = get_offer(tier)
        resolved = await self._open(db, session_uuid)
        if resolved.questionnaire.get("phase", PHASE_QUESTIONNAIRE) == PHASE_QUESTIONNAIRE:
            raise ValidationError("Le questionnaire n'est pas terminé")

        await self._append_exchange(db, session_uuid, offer_marker(offer.tier), COMMENTS_PROMPT)
        await self._store(lambda: self.ledger.update_questionnaire(
            db, session_uuid=session_uuid, updates={"phase": PHASE_AWAITING_COMMENTS, "offer": offer.tier}
        ))
        logger.info(f"🛒 Offer {offer.tier} chosen for {session_uuid}")
        return await self._reply(db, session_uuid, COMMENTS_PROMPT)

    async def submit_comments(
            self, db: AsyncSession, *, session_uuid: str, comments: Optional[str] = None
    ) -> FunnelReply:
        """Personal comments, or a skip when empty, unlock the payment step"""
        resolved = await self._open(db, session_uuid)
        if resolved.questionnaire.get("phase") != PHASE_AWAITING_COMMENTS:
            raise ValidationError("Veuillez d'abord choisir une offre")

        text = (comments or "").strip() or SKIP_COMMENTS_MARKER
        email_captured = False
        if text != SKIP_COMMENTS_MARKER:
            email_captured = await self._scan_for_email(db, resolved, text)

        await self._append_exchange(db, session_uuid, text, READY_MESSAGE)
        await self._store(lambda: self.ledger.update_questionnaire(
            db,
            session_uuid=session_uuid,
            updates={"phase": PHASE_READY, "comments_provided": text != SKIP_COMMENTS_MARKER},
        ))
        return await self._reply(
            db, session_uuid, READY_MESSAGE, email_captured=email_captured, ready_for_payment=True
        )
