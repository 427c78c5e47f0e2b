import json
from types import SimpleNamespace

import httpx
import pytest

from app.core.exceptions import EmailDeliveryError
from app.services.mailer import ResendEmailSender


def make_sender(handler, api_key="re_test"):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="https://resend.test")
    return ResendEmailSender(
        api_key=api_key,
        from_email="noreply@sos-divorce.test",
        from_name="SOS Divorce",
        ops_email="ops@sos-divorce.test",
        client=client,
    )


async def test_send_analysis_goes_to_operations():
    captured = []

    def handler(request):
        captured.append(json.loads(request.content))
        assert request.headers["Authorization"] == "Bearer re_test"
        return httpx.Response(200, json={"id": "email_1"})

    sender = make_sender(handler)
    transcript = [
        SimpleNamespace(role="assistant", content="Avez-vous des enfants ?"),
        SimpleNamespace(role="user", content="Oui, un enfant"),
    ]

    message_id = await sender.send_analysis(
        session_uuid="sess-1",
        client_email="jean@example.com",
        tier="classique",
        amount=2900,
        payment_ref="pi_1",
        transcript=transcript,
    )

    assert message_id == "email_1"
    payload = captured[0]
    assert payload["to"] == ["ops@sos-divorce.test"]
    assert payload["from"] == "SOS Divorce <noreply@sos-divorce.test>"
    assert payload["subject"] == "[À VÉRIFIER] Analyse Express - Client: jean@example.com"
    assert "Oui, un enfant" in payload["text"]
    assert "29.00" in payload["text"]
    assert "sess-1" in payload["html"]
    await sender.aclose()


async def test_send_payment_confirmation():
    captured = []

    def handler(request):
        captured.append(json.loads(request.content))
        return httpx.Response(200, json={"id": "email_2"})

    sender = make_sender(handler)
    await sender.send_payment_confirmation(to="jean@example.com", tier="premium", amount=4900)

    assert captured[0]["to"] == ["jean@example.com"]
    assert "49.00" in captured[0]["text"]
    assert "html" not in captured[0]


async def test_provider_error():
    sender = make_sender(lambda request: httpx.Response(422, json={"message": "invalid"}))

    with pytest.raises(EmailDeliveryError):
        await sender.send(["a@b.fr"], "s", "t")


async def test_missing_api_key():
    sender = make_sender(lambda request: httpx.Response(200, json={"id": "x"}), api_key="")

    with pytest.raises(EmailDeliveryError):
        await sender.send(["a@b.fr"], "s", "t")
