import pytest

from app.core.exceptions import AlreadyPaid, AssistantError, SessionNotFound, ValidationError
from app.services.funnel import (
    COMMENTS_PROMPT,
    PHASE_AWAITING_COMMENTS,
    PHASE_AWAITING_OFFER,
    PHASE_QUESTIONNAIRE,
    PHASE_READY,
    READY_MESSAGE,
    FunnelOrchestrator,
)
from app.services.ledger import FunnelStage
from app.services.questionnaire import QUESTIONNAIRE_STEPS


@pytest.fixture
def funnel(assistant, ledger):
    return FunnelOrchestrator(assistant, ledger=ledger, store_retries=0)


async def transcript(ledger, db, sid):
    return [(m.role, m.content) for m in await ledger.get_transcript(db, session_uuid=sid)]


async def complete_questionnaire(funnel, assistant, db, sid):
    assistant.replies = ["Merci, c'est noté. [QUESTIONNAIRE_COMPLETE]"]
    return await funnel.handle_message(db, session_uuid=sid, message="Je veux divorcer")


async def test_first_exchange(db, funnel, assistant, ledger):
    sid = await funnel.start_session(db)
    assistant.replies = ["Quel âge ont vos enfants ?"]

    reply = await funnel.handle_message(db, session_uuid=sid, message="  j'ai un enfant ")

    assert reply.reply == "Quel âge ont vos enfants ?"
    assert reply.stage == FunnelStage.CREATED
    assert (reply.phase, reply.step) == (PHASE_QUESTIONNAIRE, 1)
    assert assistant.asked[0]["thread_id"] == "thread_1"
    assert "1/7" in assistant.asked[0]["instructions"]
    assert await transcript(ledger, db, sid) == [
        ("user", "j'ai un enfant"),
        ("assistant", "Quel âge ont vos enfants ?"),
    ]
    resolved = await ledger.resolve(db, session_uuid=sid)
    assert resolved.row.first_message_sent is True


async def test_email_in_message_is_captured(db, funnel, ledger):
    sid = await funnel.start_session(db)
    await funnel.handle_message(db, session_uuid=sid, message="j'ai un enfant")

    reply = await funnel.handle_message(db, session_uuid=sid, message="mon email: Jean@Example.com")

    assert reply.email_captured is True
    assert reply.stage == FunnelStage.EMAIL_CAPTURED
    resolved = await ledger.resolve(db, session_uuid=sid)
    assert resolved.location == "unpaid"
    assert resolved.email == "jean@example.com"
    assert len(await transcript(ledger, db, sid)) == 4

    again = await funnel.handle_message(db, session_uuid=sid, message="c'est jean@example.com")
    assert again.email_captured is False


async def test_completion_marker_is_stripped(db, funnel, assistant):
    sid = await funnel.start_session(db)

    reply = await complete_questionnaire(funnel, assistant, db, sid)

    assert reply.reply == "Merci, c'est noté."
    assert reply.questionnaire_complete is True
    assert reply.phase == PHASE_AWAITING_OFFER


async def test_step_count_completes_questionnaire(db, funnel):
    sid = await funnel.start_session(db)
    for _ in range(QUESTIONNAIRE_STEPS - 1):
        reply = await funnel.handle_message(db, session_uuid=sid, message="réponse")
        assert reply.questionnaire_complete is False

    reply = await funnel.handle_message(db, session_uuid=sid, message="dernière réponse")

    assert reply.questionnaire_complete is True
    assert reply.step == QUESTIONNAIRE_STEPS

    with pytest.raises(ValidationError):
        await funnel.handle_message(db, session_uuid=sid, message="encore")


async def test_offer_then_comments(db, funnel, assistant, ledger):
    sid = await funnel.start_session(db)
    with pytest.raises(ValidationError):
        await funnel.select_offer(db, session_uuid=sid, tier="classique")
    await complete_questionnaire(funnel, assistant, db, sid)

    offer = await funnel.select_offer(db, session_uuid=sid, tier="classique")
    assert offer.reply == COMMENTS_PROMPT
    assert offer.phase == PHASE_AWAITING_COMMENTS

    # a plain message in this phase is taken as the comments
    ready = await funnel.handle_message(db, session_uuid=sid, message="Mon ex refuse tout dialogue")
    assert ready.reply == READY_MESSAGE
    assert ready.ready_for_payment is True
    assert ready.phase == PHASE_READY

    messages = await transcript(ledger, db, sid)
    assert messages[-4:] == [
        ("user", "[CHOIX_OFFRE:classique]"),
        ("assistant", COMMENTS_PROMPT),
        ("user", "Mon ex refuse tout dialogue"),
        ("assistant", READY_MESSAGE),
    ]
    resolved = await ledger.resolve(db, session_uuid=sid)
    assert resolved.questionnaire["offer"] == "classique"
    assert resolved.questionnaire["comments_provided"] is True


async def test_skipped_comments(db, funnel, assistant, ledger):
    sid = await funnel.start_session(db)
    await complete_questionnaire(funnel, assistant, db, sid)
    await funnel.select_offer(db, session_uuid=sid, tier="premium")

    ready = await funnel.submit_comments(db, session_uuid=sid, comments=None)

    assert ready.ready_for_payment is True
    assert (await transcript(ledger, db, sid))[-2] == ("user", "[SANS_COMMENTAIRE]")
    with pytest.raises(ValidationError):
        await funnel.submit_comments(db, session_uuid=sid, comments="trop tard")


async def test_unknown_offer(db, funnel, assistant):
    sid = await funnel.start_session(db)
    await complete_questionnaire(funnel, assistant, db, sid)

    with pytest.raises(ValidationError):
        await funnel.select_offer(db, session_uuid=sid, tier="gold")


async def test_assistant_failure_keeps_transcript_clean(db, funnel, assistant, ledger):
    sid = await funnel.start_session(db)
    assistant.fail_with = AssistantError("run failed")

    with pytest.raises(AssistantError):
        await funnel.handle_message(db, session_uuid=sid, message="j'ai un enfant")

    assert await transcript(ledger, db, sid) == []


async def test_paid_session_rejects_messages(db, funnel, ledger):
    sid = await funnel.start_session(db)
    await ledger.confirm_payment(db, session_uuid=sid)

    with pytest.raises(AlreadyPaid):
        await funnel.handle_message(db, session_uuid=sid, message="bonjour")


async def test_unknown_session(db, funnel):
    with pytest.raises(SessionNotFound):
        await funnel.handle_message(db, session_uuid="missing", message="bonjour")
