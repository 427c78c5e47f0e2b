import os

# settings are read once at import, test values must be in place first
os.environ["APP_ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["ADMIN_API_KEY"] = "test-admin-key"
os.environ["JWT_SECRET_KEY"] = "test-secret"
os.environ["REDIS_URL"] = ""

import time
from typing import Dict, List, Optional

import httpx
import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.exceptions import EmailDeliveryError
from app.db.base import Base
from app.db.session import create_session_factory, get_db
from app.main import create_app
from app.services.assistant import BaseAssistant
from app.services.container import ServiceContainer
from app.services.ledger import SessionLedger
from app.services.mailer import BaseEmailSender
from app.services.payment_gateway import BasePaymentGateway, PaymentIntent
from app.services.ratelimit import RateLimiter
import app.db.models  # noqa: F401


class FakeAssistant(BaseAssistant):
    def __init__(self, replies: Optional[List[str]] = None, default: str = "Réponse de l'assistant"):
        self.replies = list(replies or [])
        self.default = default
        self.threads = 0
        self.asked: List[Dict[str, Optional[str]]] = []
        self.fail_with: Optional[Exception] = None

    async def create_thread(self) -> str:
        self.threads += 1
        return f"thread_{self.threads}"

    async def ask(self, thread_id: str, message: str, instructions: Optional[str] = None) -> str:
        if self.fail_with is not None:
            raise self.fail_with
        self.asked.append({"thread_id": thread_id, "message": message, "instructions": instructions})
        return self.replies.pop(0) if self.replies else self.default


class FakeGateway(BasePaymentGateway):
    def __init__(self):
        self.intents: Dict[str, PaymentIntent] = {}
        self.created: List[Dict] = []

    async def create_intent(self, amount, currency, metadata, description) -> PaymentIntent:
        intent_id = f"pi_test_{len(self.intents) + 1}"
        intent = PaymentIntent(
            id=intent_id, status="requires_payment_method", client_secret=f"{intent_id}_secret", amount=amount
        )
        self.intents[intent_id] = intent
        self.created.append(
            {"amount": amount, "currency": currency, "metadata": metadata, "description": description}
        )
        return intent

    async def retrieve_intent(self, intent_id: str) -> PaymentIntent:
        return self.intents[intent_id]

    def succeed(self, intent_id: str) -> None:
        self.intents[intent_id].status = "succeeded"


class FakeMailer(BaseEmailSender):
    def __init__(self, ops_email: str = "ops@example.com"):
        self.ops_email = ops_email
        self.from_name = "SOS Divorce"
        self.sent: List[Dict] = []
        self.fail = False

    async def send(self, to, subject, text, html=None) -> str:
        if self.fail:
            raise EmailDeliveryError("smtp down")
        self.sent.append({"to": to, "subject": subject, "text": text, "html": html})
        return f"msg_{len(self.sent)}"


class FakePipeline:
    def __init__(self, redis):
        self.redis = redis
        self.ops = []

    def __getattr__(self, name):
        def queue(*args, **kwargs):
            self.ops.append((name, args, kwargs))
            return self
        return queue

    async def execute(self):
        if self.redis.broken:
            raise ConnectionError("redis down")
        return [getattr(self.redis, name)(*args, **kwargs) for name, args, kwargs in self.ops]


class FakeRedis:
    """In-memory sorted sets, enough for the sliding-window limiter"""

    def __init__(self, broken: bool = False):
        self.sets: Dict[str, Dict[str, float]] = {}
        self.expiries: Dict[str, int] = {}
        self.broken = broken
        self.closed = False

    def pipeline(self):
        return FakePipeline(self)

    def zremrangebyscore(self, key, low, high):
        members = self.sets.get(key, {})
        stale = [m for m, score in members.items() if low <= score <= high]
        for member in stale:
            del members[member]
        return len(stale)

    def zadd(self, key, mapping):
        self.sets.setdefault(key, {}).update(mapping)
        return len(mapping)

    def zcard(self, key):
        return len(self.sets.get(key, {}))

    def zrange(self, key, start, stop, withscores=False):
        items = sorted(self.sets.get(key, {}).items(), key=lambda item: item[1])
        items = items[start:stop + 1]
        return items if withscores else [m for m, _ in items]

    def expire(self, key, seconds):
        self.expiries[key] = int(time.time()) + seconds
        return True

    async def aclose(self):
        self.closed = True


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def assistant():
    return FakeAssistant()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def ledger():
    return SessionLedger()


@pytest.fixture
def services(assistant, gateway, mailer, ledger):
    return ServiceContainer(
        assistant=assistant,
        payments=gateway,
        mailer=mailer,
        rate_limiter=RateLimiter(None),
        ledger=ledger,
        free_question_quota=2,
        store_retries=0,
    )


@pytest.fixture
async def client(services, session_factory):
    app = create_app(services=services)

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def broken_redis():
    return FakeRedis(broken=True)
