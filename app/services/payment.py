# app/services/payment.py
import hmac
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AlreadyPaid, EmailDeliveryError, PaymentMismatch, UpstreamError, ValidationError
from app.core.logging import mask_email
from app.db.models.funnel import PaidSession
from app.services.ledger import SessionLedger, session_ledger
from app.services.mailer import BaseEmailSender
from app.services.offers import get_offer
from app.services.payment_gateway import STATUS_SUCCEEDED, BasePaymentGateway
from app.utils.retry import retry_store

logger = logging.getLogger(__name__)


@dataclass
class PaymentSetup:
    session_id: str
    client_secret: str
    payment_intent_id: str
    tier: str
    amount: int


@dataclass
class PaymentVerification:
    session_id: str
    status: str
    already_paid: bool
    tier: Optional[str]
    amount: Optional[int]
    email_sent: bool


class PaymentNotCompleted(ValidationError):
    code = "payment_not_completed"

    def __init__(self, status: str):
        super().__init__(f"Paiement non confirmé (statut: {status})")
        self.status = status


class PaymentService:
    """
    Payment intents and their verification.

    A client-reported payment is never trusted: the intent is re-read from
    the processor before the ledger marks the session paid.
    """

    def __init__(
            self,
            gateway: BasePaymentGateway,
            mailer: BaseEmailSender,
            ledger: SessionLedger = session_ledger,
            currency: str = "eur",
            store_retries: int = 2,
    ):
        self.gateway = gateway
        self.mailer = mailer
        self.ledger = ledger
        self.currency = currency
        self.store_retries = store_retries

    async def _store(self, fn):
        return await retry_store(fn, retries=self.store_retries)

    async def create_intent(self, db: AsyncSession, *, session_uuid: str, tier: str, amount: int) -> PaymentSetup:
        offer = get_offer(tier)
        if amount != offer.amount:
            raise ValidationError("Montant invalide pour cette offre")

        resolved = await self._store(lambda: self.ledger.resolve(db, session_uuid=session_uuid))
        if resolved.paid:
            raise AlreadyPaid(session_uuid)

        intent = await self.gateway.create_intent(
            amount=offer.amount,
            currency=self.currency,
            metadata={
                "expertise": offer.tier,
                "sessionId": session_uuid,
                "sessionEmail": resolved.email or "non_collecte",
            },
            description=f"{offer.name} - Consultation SOS Divorce",
        )
        await self._store(lambda: self.ledger.record_payment_setup(
            db, session_uuid=session_uuid, tier=offer.tier, amount=offer.amount, payment_ref=intent.id
        ))
        return PaymentSetup(
            session_id=session_uuid,
            client_secret=intent.client_secret,
            payment_intent_id=intent.id,
            tier=offer.tier,
            amount=offer.amount,
        )

    async def verify(self, db: AsyncSession, *, session_uuid: str, payment_intent_id: str) -> PaymentVerification:
        resolved = await self._store(lambda: self.ledger.resolve(db, session_uuid=session_uuid))
        expected = resolved.payment_ref or ""
        if not expected or not hmac.compare_digest(expected, payment_intent_id):
            logger.warning(f"🚨 Payment reference mismatch for session {session_uuid}")
            raise PaymentMismatch(session_uuid)

        if resolved.paid:
            return PaymentVerification(
                session_id=session_uuid,
                status=STATUS_SUCCEEDED,
                already_paid=True,
                tier=resolved.tier,
                amount=resolved.amount,
                email_sent=bool(resolved.row.email_sent),
            )

        intent = await self.gateway.retrieve_intent(payment_intent_id)
        if intent.status != STATUS_SUCCEEDED:
            logger.info(f"💳 Payment {session_uuid} not completed: {intent.status}")
            raise PaymentNotCompleted(intent.status)
        if intent.amount is not None and resolved.amount is not None and intent.amount != resolved.amount:
            logger.warning(f"🚨 Paid amount differs from the recorded offer for session {session_uuid}")
            raise PaymentMismatch(session_uuid)

        row, newly_paid = await self._store(
            lambda: self.ledger.confirm_payment(db, session_uuid=session_uuid, email=resolved.email)
        )
        email_sent = bool(row.email_sent)
        if newly_paid:
            email_sent = await self.deliver_analysis(db, row)

        return PaymentVerification(
            session_id=session_uuid,
            status=intent.status,
            already_paid=not newly_paid,
            tier=row.expertise,
            amount=row.amount,
            email_sent=email_sent,
        )

    async def deliver_analysis(self, db: AsyncSession, row: PaidSession) -> bool:
        """Send the transcript to the reviewer; a delivery failure is logged, not raised"""
        try:
            transcript = await self._store(lambda: self.ledger.get_transcript(db, session_uuid=row.session_uuid))
        except UpstreamError as e:
            # the payment is already committed, report the email as not sent
            logger.error(f"❌ Payment confirmed but transcript unavailable for {row.session_uuid}: {e.message}")
            return False
        try:
            await self.mailer.send_analysis(
                session_uuid=row.session_uuid,
                client_email=row.email,
                tier=row.expertise,
                amount=row.amount,
                payment_ref=row.payment_intent_id,
                transcript=transcript,
            )
        except EmailDeliveryError as e:
            logger.error(f"❌ Payment confirmed but analysis email not sent for {row.session_uuid}: {e.message}")
            return False

        await self._store(lambda: self.ledger.mark_analysis_email_sent(db, session_uuid=row.session_uuid))

        if row.email:
            try:
                await self.mailer.send_payment_confirmation(to=row.email, tier=row.expertise, amount=row.amount)
            except EmailDeliveryError as e:
                logger.warning(f"⚠️ Confirmation email to {mask_email(row.email)} failed: {e.message}")
        return True
