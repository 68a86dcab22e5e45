import fnmatch
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["OPERATOR_API_KEYS"] = "alice:alice-key,bob:bob-key"
os.environ.pop("TELEGRAM_BOT_TOKEN", None)
os.environ.pop("OPENAI_API_KEY", None)

import pytest
from fastapi.testclient import TestClient

from livechat.api.deps import get_bot_responder
from livechat.config import get_settings
from livechat.database import Base, SessionLocal, engine
from livechat.main import app
from livechat.services import presence
from livechat.services.bot import BotResponder

CANNED_REPLY = (
    "Sorry to hear that! First check that you can open websites, then restart your mail app. "
    "If it still fails, a technician can take a look."
)


class FakeRedis:
    """Just enough of the redis client for typing/presence keys (TTLs are ignored)."""

    def __init__(self):
        self.store = {}

    def setex(self, key, ttl, value):
        self.store[key] = value
        return True

    def delete(self, *keys):
        return sum(1 for key in keys if self.store.pop(key, None) is not None)

    def exists(self, key):
        return int(key in self.store)

    def get(self, key):
        return self.store.get(key)

    def keys(self, pattern="*"):
        return [key for key in self.store if fnmatch.fnmatch(key, pattern)]


class StubBot(BotResponder):
    def __init__(self, reply=CANNED_REPLY, error=None, on_call=None):
        super().__init__(settings=get_settings())
        self.reply = reply
        self.error = error
        self.on_call = on_call
        self.calls = []

    async def _complete(self, customer_text):
        self.calls.append(customer_text)
        if self.on_call is not None:
            self.on_call()
        if self.error is not None:
            raise self.error
        return self.reply


class FakeSocket:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    async def send_json(self, data):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(data)

    def types(self):
        return [event["type"] for event in self.sent]


@pytest.fixture(autouse=True)
def fresh_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture(autouse=True)
def fake_redis(monkeypatch):
    fake = FakeRedis()
    monkeypatch.setattr(presence, "redis_client", fake)
    return fake


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def stub_bot():
    return StubBot()


@pytest.fixture
def make_socket():
    return FakeSocket


@pytest.fixture
def client(stub_bot):
    app.dependency_overrides[get_bot_responder] = lambda: stub_bot
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def alice():
    return {"X-API-Key": "alice-key"}


@pytest.fixture
def bob():
    return {"X-API-Key": "bob-key"}
