"""Knowledge-base management API router."""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from ..clients import (
    CrawlClient,
    KnowledgeBaseStorage,
    TextGenerationClient,
    UpstreamError,
    VoicePlatformClient,
)
from ..core.rate_limit import crawl_rate_limit, limiter
from ..dependencies import get_crawl_client, get_storage, get_text_client, get_voice_client
from ..knowledge_base import KnowledgeBaseError, KnowledgeBaseService
from ..knowledge_base.schemas import CrawlRequest, KnowledgeBasePayload, SummarizeRequest
from ..knowledge_base.website import crawl_progress, start_crawl, summarize_pages
from ..models import User
from ..security.auth import get_current_user, get_db_session

router = APIRouter(prefix="/api/knowledge-base", tags=["knowledge-base"])

logger = logging.getLogger(__name__)


@contextmanager
def _knowledge_base_errors() -> Iterator[None]:
    try:
        yield
    except KnowledgeBaseError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.to_body()) from exc


def get_service(
    user: User = Depends(get_current_user),
    session: Session = Depends(get_db_session),
    storage: KnowledgeBaseStorage = Depends(get_storage),
    voice: VoicePlatformClient = Depends(get_voice_client),
) -> KnowledgeBaseService:
    return KnowledgeBaseService(
        session,
        organization_id=user.clerk_organization_id,
        storage=storage,
        voice=voice,
    )


@router.get("")
def list_knowledge_bases(
    service: KnowledgeBaseService = Depends(get_service),
) -> dict[str, Any]:
    return {"knowledgeBases": service.list_all()}


@router.post("")
def create_knowledge_base(
    payload: KnowledgeBasePayload,
    service: KnowledgeBaseService = Depends(get_service),
) -> dict[str, Any]:
    with _knowledge_base_errors():
        return service.create(payload)


@router.get("/agent-availability")
def agent_availability(
    exclude_kb_id: int | None = Query(default=None, alias="excludeKbId"),
    service: KnowledgeBaseService = Depends(get_service),
) -> dict[str, Any]:
    """Which knowledge base each agent is assigned to, optionally ignoring one."""

    return {"assignments": service.agent_assignments(exclude_kb_id)}


@router.post("/crawl")
@limiter.limit(crawl_rate_limit)
def start_website_crawl(
    request: Request,
    body: CrawlRequest,
    user: User = Depends(get_current_user),
    crawler: CrawlClient = Depends(get_crawl_client),
) -> dict[str, Any]:
    with _knowledge_base_errors():
        try:
            return start_crawl(crawler, body.url)
        except UpstreamError as exc:
            logger.error("Failed to start crawl for %s: %s", user.clerk_organization_id, exc)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to start website crawl",
            ) from exc


@router.get("/crawl/{crawl_id}")
def crawl_status(
    crawl_id: str,
    user: User = Depends(get_current_user),
    crawler: CrawlClient = Depends(get_crawl_client),
) -> dict[str, Any]:
    try:
        return crawl_progress(crawler.get_crawl_status(crawl_id))
    except UpstreamError as exc:
        logger.error("Failed to check crawl %s: %s", crawl_id, exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to check crawl status",
        ) from exc


@router.post("/summarize")
@limiter.limit(crawl_rate_limit)
def summarize_website(
    request: Request,
    body: SummarizeRequest,
    user: User = Depends(get_current_user),
    generator: TextGenerationClient = Depends(get_text_client),
) -> dict[str, Any]:
    """Draft knowledge-base markdown from crawled pages."""

    with _knowledge_base_errors():
        try:
            return summarize_pages(generator, body.crawled_pages)
        except UpstreamError as exc:
            logger.error("Summarization failed for %s: %s", user.clerk_organization_id, exc)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to summarize website content",
            ) from exc


@router.get("/{kb_id}")
def get_knowledge_base(
    kb_id: int,
    service: KnowledgeBaseService = Depends(get_service),
) -> dict[str, Any]:
    with _knowledge_base_errors():
        return service.get(kb_id)


@router.put("/{kb_id}")
def update_knowledge_base(
    kb_id: int,
    payload: KnowledgeBasePayload,
    service: KnowledgeBaseService = Depends(get_service),
) -> dict[str, Any]:
    with _knowledge_base_errors():
        return service.update(kb_id, payload)


@router.delete("/{kb_id}")
def delete_knowledge_base(
    kb_id: int,
    service: KnowledgeBaseService = Depends(get_service),
) -> dict[str, Any]:
    with _knowledge_base_errors():
        return service.delete(kb_id)
