import pytest

from app.core import security
from app.core.exceptions import AuthFailure, DuplicateEmail, ValidationError
from app.crud.user import crud_user, normalize_email


def test_normalize_email():
    assert normalize_email("  Jean.Dupont@Example.COM ") == "jean.dupont@example.com"


def test_password_hash_roundtrip():
    hashed = security.get_password_hash("secret123")
    assert hashed != "secret123"
    assert security.verify_password("secret123", hashed)
    assert not security.verify_password("wrong", hashed)
    assert not security.verify_password("secret123", "not-a-hash")


def test_access_token():
    token = security.create_access_token(subject="jean@example.com")
    assert security.decode_access_token(token)["sub"] == "jean@example.com"
    assert security.decode_access_token(token + "x") is None


def test_api_key_matches():
    assert security.api_key_matches("k", "k")
    assert not security.api_key_matches("k", "other")
    assert not security.api_key_matches(None, "k")
    assert not security.api_key_matches("k", "")


async def test_register_lowercases_email(db):
    user = await crud_user.register(db, name="Jean", email="Jean@Example.com", password="secret123")

    assert user.email == "jean@example.com"
    assert user.questions_used == 0
    assert user.subscription_status == "free"
    assert user.password_hash != "secret123"


async def test_register_rejects_duplicate_email(db):
    await crud_user.register(db, name="Jean", email="jean@example.com", password="secret123")

    with pytest.raises(DuplicateEmail):
        await crud_user.register(db, name="Autre", email="JEAN@example.com", password="secret456")


async def test_register_rejects_short_password(db):
    with pytest.raises(ValidationError):
        await crud_user.register(db, name="Jean", email="jean@example.com", password="abc")


async def test_authenticate(db):
    await crud_user.register(db, name="Jean", email="jean@example.com", password="secret123")

    user = await crud_user.authenticate(db, email="JEAN@example.com", password="secret123")
    assert user.name == "Jean"

    with pytest.raises(AuthFailure):
        await crud_user.authenticate(db, email="jean@example.com", password="wrong-password")
    with pytest.raises(AuthFailure):
        await crud_user.authenticate(db, email="nobody@example.com", password="secret123")


async def test_question_usage(db):
    await crud_user.register(db, name="Jean", email="jean@example.com", password="secret123")

    await crud_user.increment_question_usage(db, email="jean@example.com")
    await crud_user.increment_question_usage(db, email="jean@example.com")
    user = await crud_user.get_by_email(db, email="jean@example.com")
    await db.refresh(user)
    assert user.questions_used == 2
    assert user.last_question_at is not None

    await crud_user.reset_question_usage(db, email="jean@example.com")
    await db.refresh(user)
    assert user.questions_used == 0

    # unknown users are ignored
    await crud_user.increment_question_usage(db, email="ghost@example.com")


async def test_user_stats(db):
    await crud_user.register(db, name="A", email="a@example.com", password="secret123")
    await crud_user.register(db, name="B", email="b@example.com", password="secret123")
    await crud_user.increment_question_usage(db, email="a@example.com")

    stats = await crud_user.user_stats(db)

    assert stats == {"total_users": 2, "today_signups": 2, "premium_users": 0, "total_questions": 1}
