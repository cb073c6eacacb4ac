import json
import pathlib
import sys
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
import pytest
from fastapi import FastAPI, Request
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))
from voicedesk.app_logging import init_logging
from voicedesk.clients import StorageError, UpstreamError
from voicedesk.models import (
    AgentConfig,
    Base,
    Location,
    Organization,
    PhoneNumberConfig,
    User,
    UserLocationAccess,
)

SIGNING_SECRET = "voicedesk-test-signing-secret-0123456789"
ORG_ID = "org_acme"
OTHER_ORG_ID = "org_other"


class FakeResponse:
    """Stand-in for :class:`requests.Response`."""

    def __init__(self, status_code: int = 200, payload: Any = None, text: str | None = None):
        self.status_code = status_code
        self._payload = payload
        if text is not None:
            self.text = text
        elif payload is None:
            self.text = ""
        else:
            self.text = json.dumps(payload)
        self.content = self.text.encode("utf-8")

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("no JSON body")
        return self._payload


class FakeHttpSession:
    """Records requests and replays queued responses (or raises queued errors)."""

    def __init__(self, responses: list[Any] | None = None):
        self.responses = list(responses or [])
        self.requests: list[dict[str, Any]] = []

    def queue(self, response: Any) -> None:
        self.responses.append(response)

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        self.requests.append({"method": method, "url": url, **kwargs})
        if not self.responses:
            raise AssertionError(f"no response queued for {method} {url}")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class FakeClerk:
    def __init__(self, roles: dict[tuple[str, str], str] | None = None):
        self.roles = dict(roles or {})
        self.calls: list[tuple[str, str]] = []

    def get_organization_role(self, user_id: str, organization_id: str) -> str | None:
        self.calls.append((user_id, organization_id))
        return self.roles.get((user_id, organization_id))


class FakeVoice:
    """In-memory voice platform exposing the client methods the API uses."""

    fanout_workers = 4

    def __init__(self):
        self.agent_names: dict[str, str] = {}
        self.conversations: list[dict[str, Any]] = []
        self.conversation_details: dict[str, dict[str, Any]] = {}
        self.caller_numbers: dict[str, str] = {}
        self.list_calls: list[dict[str, Any]] = []
        self.documents: dict[str, dict[str, str]] = {}
        self.agent_knowledge: dict[str, list[dict[str, str]]] = {}
        self.deleted_documents: list[str] = []
        self.fail_document_create = False
        self.fail_agent_updates: set[str] = set()
        self.list_error: UpstreamError | None = None
        self._next_document = 1

    def get_agent_name(self, agent_id: str) -> str | None:
        return self.agent_names.get(agent_id)

    def list_conversations(self, *, call_start_after_unix, agent_id=None, page_size=100):
        self.list_calls.append(
            {"call_start_after_unix": call_start_after_unix, "agent_id": agent_id, "page_size": page_size}
        )
        if self.list_error is not None:
            raise self.list_error
        return [c for c in self.conversations if agent_id is None or c["agent_id"] == agent_id]

    def get_conversation(self, conversation_id: str) -> dict[str, Any]:
        if conversation_id not in self.conversation_details:
            raise UpstreamError("elevenlabs", "not found", status_code=404)
        return self.conversation_details[conversation_id]

    def get_caller_number(self, conversation_id: str) -> str | None:
        return self.caller_numbers.get(conversation_id)

    def create_document_from_markdown(self, name: str, content: str) -> str:
        if self.fail_document_create:
            raise UpstreamError("elevenlabs", "upload rejected", status_code=422)
        document_id = f"doc_{self._next_document}"
        self._next_document += 1
        self.documents[document_id] = {"name": name, "content": content}
        return document_id

    def set_agent_knowledge_base(self, agent_id: str, documents: list[dict[str, str]]) -> None:
        if agent_id in self.fail_agent_updates:
            raise UpstreamError("elevenlabs", "agent update failed", status_code=500)
        self.agent_knowledge[agent_id] = documents

    def delete_document(self, document_id: str) -> None:
        self.deleted_documents.append(document_id)
        self.documents.pop(document_id, None)


class FakeStorage:
    def __init__(self):
        self.objects: dict[str, str] = {}
        self.fail_upload = False
        self.fail_download = False
        self.removed: list[str] = []

    def upload(self, path: str, content: str) -> None:
        if self.fail_upload:
            raise StorageError("bucket unavailable")
        self.objects[path] = content

    def download(self, path: str) -> str:
        if self.fail_download or path not in self.objects:
            raise StorageError(f"{path} missing")
        return self.objects[path]

    def remove(self, paths) -> None:
        for path in paths:
            self.removed.append(path)
            self.objects.pop(path, None)


class FakeCrawler:
    def __init__(self):
        self.started: list[str] = []
        self.statuses: dict[str, dict[str, Any]] = {}
        self.error: UpstreamError | None = None

    def start_crawl(self, url: str) -> str:
        if self.error is not None:
            raise self.error
        self.started.append(url)
        return f"crawl_{len(self.started)}"

    def get_crawl_status(self, crawl_id: str) -> dict[str, Any]:
        if self.error is not None:
            raise self.error
        return self.statuses[crawl_id]


class FakeGenerator:
    def __init__(self, reply: str = ""):
        self.reply = reply
        self.prompts: list[str] = []

    def generate_text(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self.reply


def issue_session_token(user_id: str, *, secret: str = SIGNING_SECRET, **claims: Any) -> str:
    payload: dict[str, Any] = {
        "sub": user_id,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=5),
    }
    payload.update(claims)
    return jwt.encode(payload, secret, algorithm="HS256")


@dataclass
class Dashboard:
    """Test harness bundling the app client, database and fake vendors."""

    client: Any
    app: FastAPI
    session_factory: sessionmaker[Session]
    clerk: FakeClerk
    voice: FakeVoice
    storage: FakeStorage
    square_http: FakeHttpSession
    crawler: FakeCrawler
    generator: FakeGenerator
    ids: dict[str, int] = field(default_factory=dict)

    def headers(self, user_id: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {issue_session_token(user_id)}"}

    def session(self) -> Session:
        return self.session_factory()


@pytest.fixture
def app_factory(monkeypatch):
    def _create_app(log_dir: str, log_request_bodies: bool = False):
        """Create a FastAPI app with logging initialised."""
        monkeypatch.setenv("LOG_DIR", str(log_dir))
        if log_request_bodies:
            monkeypatch.setenv("LOG_REQUEST_BODIES", "true")
        app = FastAPI()

        @app.post("/echo")
        async def echo(request: Request):
            return await request.json()

        init_logging(app)
        return app

    return _create_app


@pytest.fixture
def dashboard_env(monkeypatch: pytest.MonkeyPatch, tmp_path: pathlib.Path) -> str:
    """Configure environment variables for an isolated dashboard instance."""

    db_url = f"sqlite+pysqlite:///{tmp_path / 'dashboard.db'}"
    monkeypatch.setenv("DATABASE_URL", db_url)
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("CLERK_JWT_KEY", SIGNING_SECRET)
    monkeypatch.setenv("CLERK_JWT_ALGORITHM", "HS256")
    monkeypatch.delenv("CLERK_JWKS_URL", raising=False)
    monkeypatch.delenv("CLERK_ISSUER", raising=False)
    monkeypatch.delenv("CLERK_AUTHORIZED_PARTIES", raising=False)
    monkeypatch.setenv("ENCRYPTION_KEY", "test-encryption-master-key")
    monkeypatch.setenv("SQUARE_ENVIRONMENT", "sandbox")
    monkeypatch.setenv("SQUARE_SANDBOX_APPLICATION_ID", "sq0idp-sandbox")
    monkeypatch.setenv("SQUARE_SANDBOX_APPLICATION_SECRET", "sq0csp-sandbox-secret")
    monkeypatch.setenv("APP_URL", "https://dash.example.com")

    from voicedesk.core.config import reset_settings_cache
    from voicedesk.security.auth import reset_session_factory

    reset_settings_cache()
    reset_session_factory()
    yield db_url
    reset_settings_cache()
    reset_session_factory()


def _seed(factory: sessionmaker[Session]) -> dict[str, int]:
    with factory.begin() as session:
        session.add_all(
            [
                Organization(clerk_organization_id=ORG_ID, name="Acme Spa"),
                Organization(clerk_organization_id=OTHER_ORG_ID, name="Other Salon"),
            ]
        )
        session.flush()
        session.add_all(
            [
                User(clerk_user_id="user_admin", clerk_organization_id=ORG_ID, email="admin@acme.test"),
                User(clerk_user_id="user_member", clerk_organization_id=ORG_ID, email="member@acme.test"),
                User(clerk_user_id="user_nogrant", clerk_organization_id=ORG_ID, email="new@acme.test"),
                User(clerk_user_id="user_other", clerk_organization_id=OTHER_ORG_ID, email="x@other.test"),
            ]
        )
        downtown = Location(clerk_organization_id=ORG_ID, name="Downtown")
        uptown = Location(clerk_organization_id=ORG_ID, name="Uptown")
        session.add_all([downtown, uptown])
        session.flush()
        downtown_line = PhoneNumberConfig(location_id=downtown.id, phone_number="+15550000001")
        uptown_line = PhoneNumberConfig(location_id=uptown.id, phone_number="+15550000002")
        session.add_all([downtown_line, uptown_line])
        session.flush()
        session.add_all(
            [
                AgentConfig(
                    agent_id="agent_front",
                    clerk_organization_id=ORG_ID,
                    phone_number_config_id=downtown_line.id,
                ),
                AgentConfig(
                    agent_id="agent_back",
                    clerk_organization_id=ORG_ID,
                    phone_number_config_id=uptown_line.id,
                ),
                UserLocationAccess(
                    clerk_organization_id=ORG_ID,
                    clerk_user_id="user_member",
                    location_id=downtown.id,
                ),
            ]
        )
        return {"downtown": downtown.id, "uptown": uptown.id}


@pytest.fixture
def dashboard(dashboard_env: str) -> Dashboard:
    from fastapi.testclient import TestClient

    from voicedesk.clients import SquareOAuthClient
    from voicedesk.core.config import get_square_settings
    from voicedesk.dependencies import (
        get_clerk_client,
        get_crawl_client,
        get_square_client,
        get_storage,
        get_text_client,
        get_voice_client,
    )
    from voicedesk.core.rate_limit import limiter
    from voicedesk.main import app
    from voicedesk.security.auth import get_db_session

    engine = create_engine(dashboard_env, future=True)

    @event.listens_for(engine, "connect")
    def _foreign_keys(dbapi_connection, _record) -> None:  # pragma: no cover - SQLite helper
        dbapi_connection.execute("PRAGMA foreign_keys=ON")

    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, expire_on_commit=False, future=True)
    ids = _seed(factory)

    clerk = FakeClerk(
        {
            ("user_admin", ORG_ID): "admin",
            ("user_member", ORG_ID): "member",
            ("user_nogrant", ORG_ID): "member",
            ("user_other", OTHER_ORG_ID): "admin",
        }
    )
    voice = FakeVoice()
    storage = FakeStorage()
    square_http = FakeHttpSession()
    crawler = FakeCrawler()
    generator = FakeGenerator()

    def _db_session():
        session = factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db_session] = _db_session
    app.dependency_overrides[get_clerk_client] = lambda: clerk
    app.dependency_overrides[get_voice_client] = lambda: voice
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_crawl_client] = lambda: crawler
    app.dependency_overrides[get_text_client] = lambda: generator
    app.dependency_overrides[get_square_client] = lambda: SquareOAuthClient(
        get_square_settings(), session=square_http
    )

    limiter.reset()
    client = TestClient(app, raise_server_exceptions=False)
    harness = Dashboard(
        client=client,
        app=app,
        session_factory=factory,
        clerk=clerk,
        voice=voice,
        storage=storage,
        square_http=square_http,
        crawler=crawler,
        generator=generator,
        ids=ids,
    )
    yield harness

    app.dependency_overrides.clear()
    Base.metadata.drop_all(engine)
    engine.dispose()
