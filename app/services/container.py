# app/services/container.py
"""
Collaborator wiring.

Built once in the application lifespan, stored on ``app.state.services``
and closed at shutdown; endpoints receive it through ``get_services``.
"""
import logging
from dataclasses import dataclass, field

from app.core.config import Settings
from app.services.assistant import BaseAssistant, OpenAIAssistant
from app.services.chat import ChatManager
from app.services.funnel import FunnelOrchestrator
from app.services.ledger import SessionLedger, session_ledger
from app.services.mailer import BaseEmailSender, ResendEmailSender
from app.services.payment import PaymentService
from app.services.payment_gateway import BasePaymentGateway, StripeGateway
from app.services.ratelimit import RateLimiter, create_redis_client

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    assistant: BaseAssistant
    payments: BasePaymentGateway
    mailer: BaseEmailSender
    rate_limiter: RateLimiter
    ledger: SessionLedger = session_ledger
    free_question_quota: int = 2
    store_retries: int = 2
    currency: str = "eur"
    chat: ChatManager = field(init=False)
    funnel: FunnelOrchestrator = field(init=False)
    payment_service: PaymentService = field(init=False)

    def __post_init__(self):
        self.chat = ChatManager(
            self.assistant, quota=self.free_question_quota, store_retries=self.store_retries
        )
        self.funnel = FunnelOrchestrator(
            self.assistant, ledger=self.ledger, store_retries=self.store_retries
        )
        self.payment_service = PaymentService(
            self.payments,
            self.mailer,
            ledger=self.ledger,
            currency=self.currency,
            store_retries=self.store_retries,
        )

    async def aclose(self) -> None:
        await self.assistant.aclose()
        await self.mailer.aclose()
        await self.rate_limiter.aclose()
        logger.info("🔌 Service clients closed")


def build_services(settings: Settings) -> ServiceContainer:
    container = ServiceContainer(
        assistant=OpenAIAssistant(
            api_key=settings.OPENAI_API_KEY,
            assistant_id=settings.OPENAI_ASSISTANT_ID,
            base_url=settings.OPENAI_BASE_URL,
            poll_interval=settings.ASSISTANT_POLL_INTERVAL,
            max_poll_attempts=settings.ASSISTANT_MAX_POLL_ATTEMPTS,
        ),
        payments=StripeGateway(settings.STRIPE_SECRET_KEY),
        mailer=ResendEmailSender(
            api_key=settings.RESEND_API_KEY,
            from_email=settings.RESEND_FROM_EMAIL,
            from_name=settings.EMAIL_FROM_NAME,
            ops_email=settings.OPS_EMAIL,
            base_url=settings.RESEND_API_URL,
        ),
        rate_limiter=RateLimiter(create_redis_client(settings.REDIS_URL)),
        free_question_quota=settings.FREE_QUESTION_QUOTA,
        store_retries=settings.STORE_RETRY_ATTEMPTS,
        currency=settings.PAYMENT_CURRENCY,
    )
    if not container.rate_limiter.enabled:
        logger.warning("⚠️ REDIS_URL not set, rate limiting disabled")
    return container
