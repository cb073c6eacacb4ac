"""Integration-style tests for the seeding helpers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator

import pytest
from seed import SeedConfig, _load_config, _provision_tenant, _safe_url
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker

from voicedesk.agents import resolve_agent_access
from voicedesk.models import AgentConfig, Base, Location, Organization, PhoneNumberConfig, User


@dataclass(slots=True)
class SeedTestContext:
    """Holds the resources required to exercise the seed helpers."""

    session_factory: sessionmaker[Session]
    config: SeedConfig


@pytest.fixture()
def seed_test_context(
    tmp_path_factory: pytest.TempPathFactory,
) -> Iterator[SeedTestContext]:
    """Create a temporary SQLite database and ``SeedConfig`` for tests."""

    db_path = tmp_path_factory.mktemp("seed-tests") / "seed.db"
    db_url = f"sqlite+pysqlite:///{db_path}"
    engine = create_engine(db_url, future=True)
    Base.metadata.create_all(engine)
    session_factory = sessionmaker(bind=engine, expire_on_commit=False, future=True)

    config = SeedConfig(
        db_url=db_url,
        organization_id="org_seed",
        organization_name="Seed Spa",
        admin_user_id="user_seed_admin",
        admin_email="admin@seed.example",
        admin_name="Seed Admin",
        location_name="Main Street",
        location_address="1 Main Street",
        phone_number="+15555550100",
        agent_ids=["agent_a", "agent_b"],
    )

    try:
        yield SeedTestContext(session_factory=session_factory, config=config)
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


def test_seed_first_run_creates_tenant(seed_test_context: SeedTestContext) -> None:
    """Seeding creates the organization, admin, location, phone line and agents."""

    org_id = _provision_tenant(seed_test_context.session_factory, seed_test_context.config)

    with seed_test_context.session_factory() as session:
        organization = session.execute(select(Organization)).scalar_one()
        user = session.execute(select(User)).scalar_one()
        location = session.execute(select(Location)).scalar_one()
        phone = session.execute(select(PhoneNumberConfig)).scalar_one()
        agents = session.execute(select(AgentConfig.agent_id)).scalars().all()
        access = resolve_agent_access(
            session, organization_id=org_id, user_id=user.clerk_user_id, is_admin=True
        )

    assert org_id == organization.clerk_organization_id == "org_seed"
    assert user.clerk_organization_id == org_id
    assert user.email == "admin@seed.example"
    assert location.address == "1 Main Street"
    assert phone.location_id == location.id
    assert sorted(agents) == ["agent_a", "agent_b"]
    assert access.agent_ids == ("agent_a", "agent_b")


def test_seed_second_run_is_idempotent(seed_test_context: SeedTestContext) -> None:
    """Running the seed twice should not create duplicates."""

    first = _provision_tenant(seed_test_context.session_factory, seed_test_context.config)
    second = _provision_tenant(seed_test_context.session_factory, seed_test_context.config)

    assert first == second
    with seed_test_context.session_factory() as session:
        assert len(session.execute(select(Organization)).scalars().all()) == 1
        assert len(session.execute(select(User)).scalars().all()) == 1
        assert len(session.execute(select(Location)).scalars().all()) == 1
        assert len(session.execute(select(AgentConfig)).scalars().all()) == 2


def test_load_config_reads_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "postgresql://user:pass@db:5432/voicedesk")
    monkeypatch.setenv("SEED_ORGANIZATION_ID", "org_live")
    monkeypatch.setenv("SEED_ADMIN_EMAIL", " Owner@Example.COM ")
    monkeypatch.setenv("SEED_AGENT_IDS", "agent_1, ,agent_2")

    config = _load_config()

    assert config.db_url == "postgresql+psycopg://user:pass@db:5432/voicedesk"
    assert config.organization_id == "org_live"
    assert config.admin_email == "owner@example.com"
    assert config.agent_ids == ["agent_1", "agent_2"]


def test_load_config_requires_database_url(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("DATABASE_URL", raising=False)

    with pytest.raises(RuntimeError, match="DATABASE_URL"):
        _load_config()


def test_safe_url_masks_password() -> None:
    assert "pass" not in _safe_url("postgresql+psycopg://user:pass@db:5432/voicedesk")
    assert _safe_url("sqlite+pysqlite:///tmp.db") == "sqlite+pysqlite:///tmp.db"
