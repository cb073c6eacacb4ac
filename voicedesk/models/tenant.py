"""Tenant-related SQLAlchemy models.

Organizations are keyed by the identity provider's organization id and own
users, locations, phone lines and voice agent configurations.  A user's role
is not stored here; it is resolved through the identity provider's membership
API on each request (see :mod:`voicedesk.security.auth`).
"""

from __future__ import annotations

import datetime as dt
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import (
    BigInteger,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from . import Base

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .merchant import Merchant

# SQLite only autoincrements ``INTEGER PRIMARY KEY`` columns.
BigId = BigInteger().with_variant(Integer(), "sqlite")


def _utcnow() -> dt.datetime:
    """Return the current UTC timestamp with timezone awareness."""

    return dt.datetime.now(dt.timezone.utc)


class Organization(Base):
    """Represents a tenant organization.

    Attributes:
        clerk_organization_id: Identity provider organization id (primary key).
        name: Display name of the organization.
        users: Users that belong to this organization.
        locations: Physical or business locations of the organization.
        merchant: Optional payments-platform connection.
    """

    __tablename__ = "organizations"

    clerk_organization_id: Mapped[str] = mapped_column(
        String(length=64), primary_key=True
    )
    name: Mapped[str] = mapped_column(String(length=255), nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    users: Mapped[List["User"]] = relationship(
        back_populates="organization",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    locations: Mapped[List["Location"]] = relationship(
        back_populates="organization",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    merchant: Mapped[Optional["Merchant"]] = relationship(
        back_populates="organization",
        uselist=False,
    )


class User(Base):
    """A dashboard user mapped to exactly one organization."""

    __tablename__ = "users"
    __table_args__ = (
        Index("ix_users_clerk_user_id_unique", "clerk_user_id", unique=True),
        Index("ix_users_organization_id", "clerk_organization_id"),
    )

    id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    clerk_user_id: Mapped[str] = mapped_column(String(length=64), nullable=False)
    clerk_organization_id: Mapped[str] = mapped_column(
        String(length=64),
        ForeignKey("organizations.clerk_organization_id", ondelete="CASCADE"),
        nullable=False,
    )
    email: Mapped[str | None] = mapped_column(String(length=320))
    name: Mapped[str | None] = mapped_column(String(length=255))
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    organization: Mapped[Organization] = relationship(
        back_populates="users",
        lazy="joined",
    )


class Location(Base):
    """A tenant-scoped business location."""

    __tablename__ = "locations"
    __table_args__ = (Index("ix_locations_organization_id", "clerk_organization_id"),)

    id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    clerk_organization_id: Mapped[str] = mapped_column(
        String(length=64),
        ForeignKey("organizations.clerk_organization_id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(length=255), nullable=False)
    address: Mapped[str | None] = mapped_column(Text())
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    organization: Mapped[Organization] = relationship(back_populates="locations")
    phone_numbers: Mapped[List["PhoneNumberConfig"]] = relationship(
        back_populates="location",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class PhoneNumberConfig(Base):
    """Phone line assigned to a location."""

    __tablename__ = "phone_number_configs"
    __table_args__ = (Index("ix_phone_number_configs_location_id", "location_id"),)

    id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    location_id: Mapped[int] = mapped_column(
        BigId,
        ForeignKey("locations.id", ondelete="CASCADE"),
        nullable=False,
    )
    phone_number: Mapped[str] = mapped_column(String(length=32), nullable=False)

    location: Mapped[Location] = relationship(back_populates="phone_numbers")
    agents: Mapped[List["AgentConfig"]] = relationship(back_populates="phone_number_config")


class AgentConfig(Base):
    """Maps an external voice agent id to an organization's phone line."""

    __tablename__ = "agents_config"
    __table_args__ = (
        Index("ix_agents_config_organization_id", "clerk_organization_id"),
        Index("ix_agents_config_agent_id", "agent_id"),
    )

    id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    agent_id: Mapped[str] = mapped_column(String(length=128), nullable=False)
    clerk_organization_id: Mapped[str] = mapped_column(
        String(length=64),
        ForeignKey("organizations.clerk_organization_id", ondelete="CASCADE"),
        nullable=False,
    )
    phone_number_config_id: Mapped[int | None] = mapped_column(
        BigId,
        ForeignKey("phone_number_configs.id", ondelete="SET NULL"),
        nullable=True,
    )

    phone_number_config: Mapped[PhoneNumberConfig | None] = relationship(
        back_populates="agents"
    )


class UserLocationAccess(Base):
    """Explicit grant restricting a member to the listed locations."""

    __tablename__ = "user_location_access"
    __table_args__ = (
        Index(
            "ix_user_location_access_unique",
            "clerk_organization_id",
            "clerk_user_id",
            "location_id",
            unique=True,
        ),
    )

    id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    clerk_organization_id: Mapped[str] = mapped_column(
        String(length=64),
        ForeignKey("organizations.clerk_organization_id", ondelete="CASCADE"),
        nullable=False,
    )
    clerk_user_id: Mapped[str] = mapped_column(String(length=64), nullable=False)
    location_id: Mapped[int] = mapped_column(
        BigId,
        ForeignKey("locations.id", ondelete="CASCADE"),
        nullable=False,
    )
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )


__all__ = [
    "AgentConfig",
    "BigId",
    "Location",
    "Organization",
    "PhoneNumberConfig",
    "User",
    "UserLocationAccess",
]
