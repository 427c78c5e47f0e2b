"""
Outbound email (Resend HTTP API)

Analysis emails always go to the operations reviewer, never to the
customer directly; the customer only receives a payment confirmation.
"""
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import httpx
from jinja2 import Environment, FileSystemLoader, select_autoescape

from app.core.exceptions import EmailDeliveryError
from app.core.logging import mask_email
from app.services.offers import OFFERS
from app.services.questionnaire import CATEGORY_LABELS, TranscriptMessage, extract_questionnaire

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates" / "email"

templates = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(enabled_extensions=("html",), default_for_string=False),
    trim_blocks=False,
)


class BaseEmailSender(ABC):
    ops_email: str
    from_name: str = ""

    @abstractmethod
    async def send(self, to: List[str], subject: str, text: str, html: Optional[str] = None) -> str:
        """Send one email, return the provider message id"""

    async def send_analysis(
            self,
            *,
            session_uuid: str,
            client_email: Optional[str],
            tier: Optional[str],
            amount: Optional[int],
            payment_ref: Optional[str],
            transcript: Sequence[TranscriptMessage],
    ) -> str:
        offer = OFFERS.get(tier or "")
        context: Dict[str, Any] = {
            "session_uuid": session_uuid,
            "client_email": client_email or "Non renseigné",
            "payment_ref": payment_ref or "Non disponible",
            "tier_name": offer.name if offer else "Analyse",
            "is_premium": tier == "premium",
            "amount_euros": f"{(amount or 0) / 100:.2f}",
            "questionnaire": extract_questionnaire(transcript),
            "labels": CATEGORY_LABELS,
            "transcript": list(transcript),
        }
        subject = f"[À VÉRIFIER] {context['tier_name']} - Client: {context['client_email']}"
        message_id = await self.send(
            [self.ops_email],
            subject,
            text=templates.get_template("analysis.txt").render(**context),
            html=templates.get_template("analysis.html").render(**context),
        )
        logger.info(
            f"📨 Analysis email queued for review (session {session_uuid}, client {mask_email(client_email)})"
        )
        return message_id

    async def send_payment_confirmation(self, *, to: str, tier: Optional[str], amount: Optional[int]) -> str:
        offer = OFFERS.get(tier or "")
        text = templates.get_template("confirmation.txt").render(
            tier_name=offer.name if offer else "Analyse",
            amount_euros=f"{(amount or 0) / 100:.2f}",
            from_name=self.from_name,
        )
        return await self.send([to], "Confirmation de votre paiement", text=text)

    async def aclose(self) -> None:
        return None


class ResendEmailSender(BaseEmailSender):
    def __init__(
            self,
            api_key: str,
            from_email: str,
            from_name: str,
            ops_email: str,
            base_url: str = "https://api.resend.com",
            client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.from_email = from_email
        self.from_name = from_name
        self.ops_email = ops_email
        self._client = client or httpx.AsyncClient(
            base_url=base_url, timeout=httpx.Timeout(15.0, connect=5.0)
        )

    async def send(self, to: List[str], subject: str, text: str, html: Optional[str] = None) -> str:
        if not self.api_key:
            raise EmailDeliveryError("Resend API key is not configured")

        payload: Dict[str, Any] = {
            "from": f"{self.from_name} <{self.from_email}>",
            "to": to,
            "subject": subject,
            "text": text,
        }
        if html:
            payload["html"] = html

        try:
            response = await self._client.post(
                "/emails",
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        except httpx.HTTPError as e:
            raise EmailDeliveryError(f"Resend request failed: {e.__class__.__name__}") from e

        if response.status_code >= 400:
            raise EmailDeliveryError(f"Resend returned HTTP {response.status_code}: {response.text[:200]}")
        return response.json().get("id", "")

    async def aclose(self) -> None:
        await self._client.aclose()
