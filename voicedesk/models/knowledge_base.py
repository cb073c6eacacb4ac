"""Knowledge base model.

The markdown body lives in blob storage at ``storage_path``; the row only
keeps bookkeeping.  ``agent_ids`` lists the voice agents the document is
attached to.  Each agent may appear in at most one knowledge base per
organization, enforced by :mod:`voicedesk.knowledge_base.service` rather than
by a database constraint.
"""

from __future__ import annotations

import datetime as dt
from typing import List

from sqlalchemy import JSON, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from . import Base
from .tenant import BigId, _utcnow


class KnowledgeBase(Base):
    __tablename__ = "knowledge_base"
    __table_args__ = (Index("ix_knowledge_base_organization_id", "clerk_organization_id"),)

    id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    clerk_organization_id: Mapped[str] = mapped_column(
        String(length=64),
        ForeignKey("organizations.clerk_organization_id", ondelete="CASCADE"),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(length=255), nullable=False)
    storage_path: Mapped[str] = mapped_column(Text(), nullable=False, default="")
    source_url: Mapped[str | None] = mapped_column(Text())
    agent_ids: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    voice_document_id: Mapped[str | None] = mapped_column(String(length=128))
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )


__all__ = ["KnowledgeBase"]
