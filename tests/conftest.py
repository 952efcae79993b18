import os
import threading
import time

os.environ.setdefault("DB_BACKEND", "sqlite")
os.environ.setdefault("AUTH_SECRET", "test-secret")
os.environ.setdefault("LLM_PROVIDER", "echo")
os.environ.setdefault("PASSWORD_HASH_ITERATIONS", "1000")
os.environ.setdefault("BREVO_API_KEY", "")

import pytest
from fastapi.testclient import TestClient

from core.db import DB, create_db_engine, make_session_factory
from core.models import Base
from core.services import accounts, credential_store
from core.services.model_client import ModelClient
from core.services.notifier import Notifier, NotifyResult
from core.services.reply_orchestrator import ReplyOrchestrator
from core.tokens import issue_token


TEST_PASSWORD = "Secret123"


class FakeModelClient(ModelClient):
    """Scripted provider: a fixed reply, a callable, or an exception to raise."""

    provider = "fake"

    def __init__(self, reply="Hi there!", error=None, delay=0.0):
        super().__init__("fake-model")
        self.reply = reply
        self.error = error
        self.delay = delay
        self.calls = []
        self._lock = threading.Lock()

    def _generate(self, turns):
        with self._lock:
            self.calls.append(list(turns))
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if callable(self.reply):
            return self.reply(turns)
        return self.reply


class RecordingNotifier(Notifier):
    def __init__(self, ok=True):
        self.ok = ok
        self.events = []

    def _deliver(self, event):
        self.events.append(event)
        if not self.ok:
            raise RuntimeError("mail relay down")
        return NotifyResult(ok=True, message_id=f"msg-{len(self.events)}")

    def last_code(self):
        return self.events[-1].code if self.events else None


@pytest.fixture
def engine(tmp_path):
    db_path = tmp_path / "chatline.sqlite"
    engine = create_db_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def model_client():
    return FakeModelClient()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def orchestrator(session_factory, model_client):
    return ReplyOrchestrator(
        session_factory,
        model_client,
        system_instruction="You are a test assistant.",
    )


@pytest.fixture
def make_user(db_session):
    counter = {"n": 0}

    def _make(email=None, name="Test User", verified=True):
        counter["n"] += 1
        user = credential_store.create_user(
            db_session,
            email=email or f"user{counter['n']}@example.com",
            name=name,
            password_hash=accounts.hash_password(TEST_PASSWORD),
            verification_code="123456",
            code_expires_at=accounts._code_expiry(),
        )
        if verified:
            credential_store.mark_verified(db_session, user)
        return user

    return _make


@pytest.fixture
def auth_headers():
    def _headers(user):
        return {"Authorization": f"Bearer {issue_token(user.id, user.email)}"}

    return _headers


@pytest.fixture
def client(engine, session_factory, orchestrator, model_client, notifier):
    from app.main import app

    previous_engine = DB.engine
    previous_session = DB.SessionLocal
    DB.engine = engine
    DB.SessionLocal = session_factory
    app.state.model_client = model_client
    app.state.notifier = notifier
    app.state.orchestrator = orchestrator
    try:
        yield TestClient(app)
    finally:
        DB.engine = previous_engine
        DB.SessionLocal = previous_session
