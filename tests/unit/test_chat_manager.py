import uuid

import pytest
from sqlalchemy import select

from app.core.exceptions import AssistantError, NotFoundError, ValidationError
from app.crud.cache import crud_cache
from app.crud.conversation import crud_conversation, make_title
from app.crud.user import crud_user
from app.db.models import ChatCache
from app.services.chat import ChatManager, Visitor, estimate_tokens


@pytest.fixture
def chat(assistant):
    return ChatManager(assistant, quota=2, store_retries=0)


def test_make_title():
    assert make_title("Court") == "Court"
    long_question = "x" * 60
    assert make_title(long_question) == "x" * 50 + "..."


def test_estimate_tokens():
    assert estimate_tokens("abcd", "efgh") == 2
    assert estimate_tokens("abc", "") == 1


async def test_anonymous_question_is_answered_and_recorded(db, chat, assistant):
    assistant.default = "Un divorce amiable coûte entre 1000 et 3000 €."
    visitor = Visitor(anonymous_id="anon-1", ip_address="1.2.3.4")

    reply = await chat.answer(db, question="Combien coûte un divorce ?", visitor=visitor)

    assert reply.success
    assert reply.cached is False
    assert reply.questions_used == 1
    assert reply.remaining == 1
    messages = await crud_conversation.get_messages(db, session_id=reply.session_id)
    assert [m.role for m in messages] == ["user", "assistant"]
    assert messages[1].tokens_used == estimate_tokens("Combien coûte un divorce ?", assistant.default)
    session = await crud_conversation.get(db, reply.session_id)
    await db.refresh(session)
    assert session.is_anonymous is True
    assert session.message_count == 1
    assert session.title == "Combien coûte un divorce ?"


async def test_second_identical_question_hits_cache(db, chat, assistant):
    visitor = Visitor(anonymous_id="anon-1")
    await chat.answer(db, question="Qui garde les enfants ?", visitor=visitor)

    other = Visitor(anonymous_id="anon-2")
    reply = await chat.answer(db, question="qui garde LES enfants ?", visitor=other)

    assert reply.cached is True
    assert len(assistant.asked) == 1
    entry = (await db.execute(select(ChatCache))).scalar_one()
    assert entry.hit_count == 2


async def test_quota_exhausted(db, chat, assistant):
    visitor = Visitor(anonymous_id="anon-1", questions_used=2)

    reply = await chat.answer(db, question="Encore une question", visitor=visitor)

    assert reply.success is False
    assert reply.need_signup is True
    assert reply.remaining == 0
    assert "2 questions gratuites" in reply.message
    assert assistant.asked == []


async def test_registered_visitor_has_no_quota(db, chat):
    user = await crud_user.register(db, name="Jean", email="jean@example.com", password="secret123")
    visitor = Visitor(user=user, questions_used=5)

    reply = await chat.answer(db, question="Question", visitor=visitor)

    assert reply.success
    assert reply.remaining is None
    assert reply.questions_used == 6
    await db.refresh(user)
    assert user.questions_used == 1
    assert (await crud_conversation.list_for_user(db, user_id=user.id))[0].id == reply.session_id


async def test_follow_up_in_owned_session(db, chat):
    visitor = Visitor(anonymous_id="anon-1")
    first = await chat.answer(db, question="Première question", visitor=visitor)

    second = await chat.answer(db, question="Deuxième question", visitor=visitor, session_id=first.session_id)

    assert second.session_id == first.session_id
    session = await crud_conversation.get(db, first.session_id)
    await db.refresh(session)
    assert session.message_count == 2


async def test_foreign_session_is_not_found(db, chat):
    first = await chat.answer(db, question="Question", visitor=Visitor(anonymous_id="anon-1"))

    with pytest.raises(NotFoundError):
        await chat.answer(
            db, question="Intrus", visitor=Visitor(anonymous_id="anon-2"), session_id=first.session_id
        )
    with pytest.raises(NotFoundError):
        await chat.answer(db, question="Intrus", visitor=Visitor(anonymous_id="anon-1"), session_id=uuid.uuid4())


async def test_assistant_failure_stores_nothing(db, chat, assistant):
    assistant.fail_with = AssistantError("run failed")

    with pytest.raises(AssistantError):
        await chat.answer(db, question="Question", visitor=Visitor(anonymous_id="anon-1"))

    assert await crud_conversation.list_anonymous(db) == []
    assert await crud_cache.lookup(db, question="Question") is None


async def test_blank_question(db, chat):
    with pytest.raises(ValidationError):
        await chat.answer(db, question="   ", visitor=Visitor(anonymous_id="anon-1"))
