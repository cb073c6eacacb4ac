"""Utility script to bootstrap the database with a demo organization."""

from __future__ import annotations

import asyncio
import logging
import os
import time
from dataclasses import dataclass, field

from dotenv import load_dotenv
from sqlalchemy import select, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from voicedesk.models import (
    AgentConfig,
    Base,
    Location,
    Organization,
    PhoneNumberConfig,
    User,
)
from voicedesk.models.session import as_sqlalchemy_url, get_engine, get_sessionmaker

logger = logging.getLogger("seed")


@dataclass(slots=True)
class SeedConfig:
    """Configuration derived from the environment for the seed process."""

    db_url: str
    organization_id: str
    organization_name: str
    admin_user_id: str
    admin_email: str
    admin_name: str
    location_name: str
    location_address: str | None
    phone_number: str
    agent_ids: list[str] = field(default_factory=list)


def _safe_url(db_url: str) -> str:
    """Return a version of ``db_url`` with any password redacted."""

    try:
        parsed = make_url(db_url)
    except ArgumentError:
        return db_url
    if parsed.password is None:
        return db_url
    return parsed.set(password="***").render_as_string(hide_password=False)


def _load_config() -> SeedConfig:
    """Load seed configuration from environment variables."""

    db_url = os.getenv("DATABASE_URL")
    if not db_url:
        raise RuntimeError("DATABASE_URL is not configured.")

    agent_ids = [
        item.strip() for item in os.getenv("SEED_AGENT_IDS", "").split(",") if item.strip()
    ]
    return SeedConfig(
        db_url=as_sqlalchemy_url(db_url),
        organization_id=os.getenv("SEED_ORGANIZATION_ID", "org_demo").strip(),
        organization_name=os.getenv("SEED_ORGANIZATION_NAME", "Demo Spa").strip(),
        admin_user_id=os.getenv("SEED_ADMIN_USER_ID", "user_demo_admin").strip(),
        admin_email=os.getenv("SEED_ADMIN_EMAIL", "admin@demo.local").strip().lower(),
        admin_name=os.getenv("SEED_ADMIN_NAME", "Demo Admin").strip(),
        location_name=os.getenv("SEED_LOCATION_NAME", "Main Street").strip(),
        location_address=os.getenv("SEED_LOCATION_ADDRESS") or None,
        phone_number=os.getenv("SEED_PHONE_NUMBER", "+15555550100").strip(),
        agent_ids=agent_ids,
    )


def wait_for_database(db_url: str, max_attempts: int = 10, delay: float = 3.0) -> None:
    """Attempt to establish a database connection, retrying if necessary."""

    engine = get_engine(db_url)
    try:
        for attempt in range(1, max_attempts + 1):
            try:
                with engine.connect() as connection:
                    connection.execute(text("SELECT 1"))
            except OperationalError as exc:  # pragma: no cover - depends on external DB
                logger.info(
                    "Database not ready (attempt %d/%d): %s; retrying in %.1fs",
                    attempt,
                    max_attempts,
                    exc,
                    delay,
                )
                if attempt >= max_attempts:
                    raise RuntimeError("Database did not become ready in time") from exc
                time.sleep(delay)
                continue
            logger.info(
                "Database connection established after %d attempt(s): %s",
                attempt,
                _safe_url(db_url),
            )
            return
    finally:
        engine.dispose()


def _create_schema(db_url: str) -> None:
    """Create any missing tables; existing tables are left untouched."""

    engine = get_engine(db_url)
    try:
        Base.metadata.create_all(engine)
    finally:
        engine.dispose()
    logger.info("Schema ensured successfully.")


def _provision_tenant(factory: sessionmaker[Session], config: SeedConfig) -> str:
    """Create or reuse the demo organization, admin, location, phone line and agents."""

    with factory() as session:
        org = session.get(Organization, config.organization_id)
        if org is None:
            org = Organization(
                clerk_organization_id=config.organization_id,
                name=config.organization_name,
            )
            session.add(org)
            session.flush()
            logger.info("Created organization %s", org.clerk_organization_id)
        else:
            logger.info("Organization %s already exists; reusing.", org.clerk_organization_id)

        user = session.scalars(
            select(User).where(User.clerk_user_id == config.admin_user_id)
        ).first()
        if user is None:
            session.add(
                User(
                    clerk_user_id=config.admin_user_id,
                    clerk_organization_id=org.clerk_organization_id,
                    email=config.admin_email,
                    name=config.admin_name,
                )
            )
            logger.info("Created user %s", config.admin_user_id)
        else:
            logger.info("User %s already exists; reusing.", config.admin_user_id)

        location = session.scalars(
            select(Location).where(
                Location.clerk_organization_id == org.clerk_organization_id,
                Location.name == config.location_name,
            )
        ).first()
        if location is None:
            location = Location(
                clerk_organization_id=org.clerk_organization_id,
                name=config.location_name,
                address=config.location_address,
            )
            session.add(location)
            session.flush()
            logger.info("Created location %s", location.name)

        phone = session.scalars(
            select(PhoneNumberConfig).where(
                PhoneNumberConfig.location_id == location.id,
                PhoneNumberConfig.phone_number == config.phone_number,
            )
        ).first()
        if phone is None:
            phone = PhoneNumberConfig(location_id=location.id, phone_number=config.phone_number)
            session.add(phone)
            session.flush()
            logger.info("Created phone line %s", phone.phone_number)

        existing = set(
            session.scalars(
                select(AgentConfig.agent_id).where(
                    AgentConfig.clerk_organization_id == org.clerk_organization_id
                )
            )
        )
        for agent_id in config.agent_ids:
            if agent_id in existing:
                continue
            session.add(
                AgentConfig(
                    agent_id=agent_id,
                    clerk_organization_id=org.clerk_organization_id,
                    phone_number_config_id=phone.id,
                )
            )
            logger.info("Registered agent %s on %s", agent_id, phone.phone_number)
        if not config.agent_ids:
            logger.warning("SEED_AGENT_IDS is empty; the organization has no agents yet.")

        session.commit()
        return org.clerk_organization_id


async def main() -> None:
    """Entrypoint for the seeding workflow."""

    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")

    config = _load_config()
    logger.info("Starting seed process using %s", _safe_url(config.db_url))

    await asyncio.to_thread(wait_for_database, config.db_url)
    await asyncio.to_thread(_create_schema, config.db_url)

    session_factory = get_sessionmaker(database_url=config.db_url)
    organization_id = await asyncio.to_thread(_provision_tenant, session_factory, config)

    logger.info("Seed process completed. Organization: %s", organization_id)


if __name__ == "__main__":
    asyncio.run(main())
