"""
Payment processor client (Stripe PaymentIntents)
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional

import stripe

from app.core.exceptions import PaymentProcessorError

logger = logging.getLogger(__name__)

STATUS_SUCCEEDED = "succeeded"


@dataclass
class PaymentIntent:
    id: str
    status: str
    client_secret: Optional[str] = None
    amount: Optional[int] = None


class BasePaymentGateway(ABC):
    @abstractmethod
    async def create_intent(
            self,
            amount: int,
            currency: str,
            metadata: Dict[str, str],
            description: str
    ) -> PaymentIntent:
        """Create a payment intent; the client secret is handed to the browser"""

    @abstractmethod
    async def retrieve_intent(self, intent_id: str) -> PaymentIntent:
        """Fetch the processor-side view of an intent"""


class StripeGateway(BasePaymentGateway):
    """The Stripe SDK is synchronous, calls run in a worker thread."""

    def __init__(self, secret_key: str):
        self.secret_key = secret_key
        logger.info("🚀 StripeGateway initialized")

    def _check_configured(self) -> None:
        if not self.secret_key:
            raise PaymentProcessorError("Stripe secret key is not configured")

    async def create_intent(
            self,
            amount: int,
            currency: str,
            metadata: Dict[str, str],
            description: str
    ) -> PaymentIntent:
        self._check_configured()
        try:
            intent = await asyncio.to_thread(
                stripe.PaymentIntent.create,
                api_key=self.secret_key,
                amount=amount,
                currency=currency,
                metadata=metadata,
                description=description,
                automatic_payment_methods={"enabled": True},
            )
        except stripe.StripeError as e:
            logger.error(f"❌ Stripe create_intent failed: {e.__class__.__name__}")
            raise PaymentProcessorError(f"create_intent: {e.__class__.__name__}") from e

        logger.info(f"💳 PaymentIntent created: {intent.id} amount={amount} {currency}")
        return PaymentIntent(
            id=intent.id, status=intent.status, client_secret=intent.client_secret, amount=intent.amount
        )

    async def retrieve_intent(self, intent_id: str) -> PaymentIntent:
        self._check_configured()
        try:
            intent = await asyncio.to_thread(
                stripe.PaymentIntent.retrieve, intent_id, api_key=self.secret_key
            )
        except stripe.StripeError as e:
            logger.error(f"❌ Stripe retrieve_intent failed: {e.__class__.__name__}")
            raise PaymentProcessorError(f"retrieve_intent: {e.__class__.__name__}") from e

        return PaymentIntent(id=intent.id, status=intent.status, amount=intent.amount)
