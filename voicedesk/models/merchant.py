"""Payments-platform connection stored per organization."""

from __future__ import annotations

import datetime as dt

from sqlalchemy import DateTime, ForeignKey, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from . import Base
from .tenant import BigId, Organization, _utcnow


class Merchant(Base):
    """OAuth credentials for an organization's Square account.

    Attributes:
        merchant_id: Square merchant identifier returned by the token exchange.
        access_token_encrypted: Fernet ciphertext of the access token.
        refresh_token_encrypted: Fernet ciphertext of the refresh token.
        is_sandbox: Whether the credentials belong to the sandbox environment.
    """

    __tablename__ = "merchants"
    __table_args__ = (
        Index("ix_merchants_organization_id_unique", "clerk_organization_id", unique=True),
    )

    id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    merchant_id: Mapped[str] = mapped_column(String(length=128), nullable=False)
    clerk_organization_id: Mapped[str] = mapped_column(
        String(length=64),
        ForeignKey("organizations.clerk_organization_id", ondelete="CASCADE"),
        nullable=False,
    )
    access_token_encrypted: Mapped[str] = mapped_column(Text(), nullable=False)
    refresh_token_encrypted: Mapped[str] = mapped_column(Text(), nullable=False)
    token_expires_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True))
    is_sandbox: Mapped[bool] = mapped_column(
        nullable=False, default=True, server_default=text("true")
    )
    is_active: Mapped[bool] = mapped_column(
        nullable=False, default=True, server_default=text("true")
    )
    merchant_type: Mapped[str] = mapped_column(
        String(length=32),
        nullable=False,
        default="SQUARE",
        server_default=text("'SQUARE'"),
    )
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    organization: Mapped[Organization] = relationship(back_populates="merchant")


__all__ = ["Merchant"]
