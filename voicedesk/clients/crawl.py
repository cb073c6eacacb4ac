"""Website crawling service (Firecrawl) client."""

from __future__ import annotations

import logging
from typing import Any

import requests

from ..core.config import CrawlSettings
from .base import JsonApiClient, UpstreamError


class CrawlClient(JsonApiClient):
    service = "firecrawl"

    def __init__(
        self,
        settings: CrawlSettings,
        *,
        session: requests.Session | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        super().__init__(
            settings.api_url,
            headers={"Authorization": f"Bearer {settings.api_key}"},
            session=session,
            logger=logger,
        )
        self.page_limit = settings.page_limit

    def start_crawl(self, url: str) -> str:
        """Start an asynchronous crawl returning markdown of each page's main content."""

        payload = self.request_json(
            "POST",
            "crawl",
            json={
                "url": url,
                "limit": self.page_limit,
                "scrapeOptions": {"formats": ["markdown"], "onlyMainContent": True},
            },
        ) or {}
        crawl_id = payload.get("id")
        if not crawl_id:
            raise UpstreamError(self.service, "crawl start returned no id", payload=payload)
        return str(crawl_id)

    def get_crawl_status(self, crawl_id: str) -> dict[str, Any]:
        """Return the first page of the crawl status (no auto-pagination)."""

        return self.request_json("GET", f"crawl/{crawl_id}") or {}


__all__ = ["CrawlClient"]
