ADMIN = {"X-Admin-Key": "test-admin-key"}


async def start(client) -> str:
    response = await client.post("/api/v1/funnel/sessions")
    assert response.status_code == 201
    return response.json()["session_id"]


async def test_questionnaire_to_paid_analysis(client, assistant, gateway, mailer):
    sid = await start(client)

    first = await client.post(f"/api/v1/funnel/sessions/{sid}/messages", json={"message": "j'ai un enfant"})
    assert first.status_code == 200
    assert first.json()["stage"] == "created"

    captured = await client.post(
        f"/api/v1/funnel/sessions/{sid}/messages", json={"message": "jean@example.com"}
    )
    assert captured.json()["email_captured"] is True
    assert captured.json()["stage"] == "email_captured"

    status = (await client.get(f"/api/v1/funnel/sessions/{sid}")).json()
    assert status["email"] == "j***@example.com"
    assert status["paid"] is False

    intent = await client.post(
        "/api/v1/payments/intents", json={"session_id": sid, "tier": "classique", "amount": 2900}
    )
    assert intent.status_code == 200
    assert intent.json()["client_secret"] == "pi_test_1_secret"
    assert gateway.created[0]["metadata"]["sessionEmail"] == "jean@example.com"

    gateway.succeed("pi_test_1")
    verify = await client.post(
        "/api/v1/payments/verify", json={"session_id": sid, "payment_intent_id": "pi_test_1"}
    )
    assert verify.status_code == 200
    assert verify.json() == {
        "success": True,
        "status": "succeeded",
        "already_paid": False,
        "tier": "classique",
        "amount": 2900,
        "email_sent": True,
    }
    assert mailer.sent[0]["to"] == ["ops@example.com"]
    assert "j'ai un enfant" in mailer.sent[0]["text"]

    again = await client.post(
        "/api/v1/payments/verify", json={"session_id": sid, "payment_intent_id": "pi_test_1"}
    )
    assert again.json()["already_paid"] is True
    assert len(mailer.sent) == 2  # reviewer copy + payer confirmation, not repeated

    status = (await client.get(f"/api/v1/funnel/sessions/{sid}")).json()
    assert status["stage"] == "paid"
    assert status["paid"] is True

    rejected = await client.post(f"/api/v1/funnel/sessions/{sid}/messages", json={"message": "encore"})
    assert rejected.status_code == 409
    assert rejected.json()["error"]["code"] == "already_paid"

    stats = (await client.get("/api/v1/admin/statistics", headers=ADMIN)).json()
    assert stats["global"]["first_messages"] == 1
    assert stats["global"]["emails_collected"] == 1
    assert stats["global"]["payments_completed"] == 1
    assert stats["global"]["total_conversion_rate"] == 100.0


async def test_offer_and_comments(client, assistant):
    sid = await start(client)
    assistant.replies = ["Merci ! [QUESTIONNAIRE_COMPLETE]"]
    done = await client.post(f"/api/v1/funnel/sessions/{sid}/messages", json={"message": "Voilà tout"})
    assert done.json()["questionnaire_complete"] is True
    assert done.json()["reply"] == "Merci !"

    offer = await client.post(f"/api/v1/funnel/sessions/{sid}/offer", json={"tier": "premium"})
    assert offer.status_code == 200
    assert offer.json()["phase"] == "awaiting_comments"

    ready = await client.post(f"/api/v1/funnel/sessions/{sid}/comments", json={"skip": True})
    assert ready.json()["ready_for_payment"] is True


async def test_invalid_offer_tier(client):
    sid = await start(client)
    response = await client.post(f"/api/v1/funnel/sessions/{sid}/offer", json={"tier": "gold"})
    assert response.status_code == 422


async def test_unknown_session(client):
    response = await client.get("/api/v1/funnel/sessions/does-not-exist")

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "session_not_found"


async def test_payment_amount_must_match_offer(client, gateway):
    sid = await start(client)

    response = await client.post(
        "/api/v1/payments/intents", json={"session_id": sid, "tier": "premium", "amount": 2900}
    )

    assert response.status_code == 400
    assert gateway.created == []


async def test_verify_with_foreign_reference(client, gateway):
    sid = await start(client)
    await client.post("/api/v1/payments/intents", json={"session_id": sid, "tier": "classique", "amount": 2900})

    response = await client.post(
        "/api/v1/payments/verify", json={"session_id": sid, "payment_intent_id": "pi_other"}
    )

    assert response.status_code == 400
    assert response.json()["error"] == {"code": "payment_mismatch", "message": "Paiement invalide"}


async def test_verify_pending_payment(client):
    sid = await start(client)
    await client.post("/api/v1/payments/intents", json={"session_id": sid, "tier": "classique", "amount": 2900})

    response = await client.post(
        "/api/v1/payments/verify", json={"session_id": sid, "payment_intent_id": "pi_test_1"}
    )

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "payment_not_completed"
    assert "requires_payment_method" in response.json()["error"]["message"]
