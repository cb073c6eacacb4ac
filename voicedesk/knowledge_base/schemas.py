"""Pydantic schemas for knowledge-base APIs."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class KnowledgeBasePayload(BaseModel):
    """Create/update body.

    Fields are loosely typed so that missing or malformed values surface as
    the explicit validation messages of :func:`validate_payload` rather than
    generic request-body errors.
    """

    model_config = ConfigDict(populate_by_name=True)

    title: Any = None
    content: Any = None
    agent_ids: Any = Field(default=None, alias="agentIds")
    source_url: str | None = Field(default=None, alias="sourceUrl")


class CrawlRequest(BaseModel):
    url: Any = None


class CrawledPage(BaseModel):
    markdown: str = ""
    url: str = ""
    title: str | None = None


class SummarizeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    crawled_pages: list[CrawledPage] | None = Field(default=None, alias="crawledPages")


__all__ = ["CrawlRequest", "CrawledPage", "KnowledgeBasePayload", "SummarizeRequest"]
