"""Website import: crawl jobs and AI summarisation into a knowledge-base draft."""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Iterable, List
from urllib.parse import urlsplit

from voicedesk.clients import CrawlClient, TextGenerationClient

from .schemas import CrawledPage
from .service import KnowledgeBaseError, KnowledgeBaseValidationError

logger = logging.getLogger(__name__)

MAX_CHARS_PER_PAGE = 10_000
TRUNCATION_MARKER = "\n\n[Content truncated...]"

SUMMARIZE_PROMPT = """You are an expert business analyst. You have been given the crawled content of a business website (a spa, salon, or similar service business). Your job is to create a comprehensive knowledge base document that an AI voice agent can use to answer phone calls on behalf of this business.

Analyze ALL of the provided website pages and extract every piece of useful information. Organize it into a clear, well-structured markdown document with the following sections (include only sections where you found relevant information):

## Business Overview
Name, description, mission statement, brand identity, what makes them unique.

## Location & Contact Information
Full address, phone number, email, directions, parking info, multiple locations if applicable.

## Hours of Operation
Regular hours for each day of the week, holiday hours, special seasonal hours.

## Services
Complete list of all services offered with descriptions and pricing. Group by category (e.g., Hair Services, Nail Services, Spa Treatments, etc.)

## Products
Any retail products sold, brands carried, product lines.

## Staff & Team
Staff members, their specialties, qualifications, bios.

## Booking & Appointments
How to book, online booking availability, walk-in policy, appointment duration info.

## Policies
Cancellation policy, no-show policy, refund policy, late arrival policy, age restrictions, health requirements.

## Payment
Accepted payment methods, gift cards, membership/package deals, tipping policy.

## Frequently Asked Questions
Common questions and their answers based on the website content.

## Additional Information
Any other relevant details (events, promotions, loyalty programs, accessibility info, COVID protocols, etc.)

IMPORTANT GUIDELINES:
- Write in a factual, informative tone suitable for an AI agent to reference when answering caller questions.
- Include specific details: exact prices, exact hours, exact addresses -- do not be vague.
- If information is not available on the website, do NOT make it up. Simply omit that section.
- Use markdown formatting: ## for sections, ### for subsections, - for bullet lists, **bold** for emphasis.
- Do NOT include any HTML tags.
- Do NOT include any commentary about the document itself -- just the business information.
- Do NOT wrap the output in code fences (no ```markdown or ``` blocks). Output raw markdown directly.
"""

_LEADING_FENCE = re.compile(r"^```(?:markdown)?\s*\n?")
_TRAILING_FENCE = re.compile(r"\n?```\s*$")


def validate_crawl_url(url: Any) -> str:
    """Return ``url`` if it is an absolute URL string.

    Raises:
        KnowledgeBaseValidationError: For a missing or malformed URL.
    """

    if not url or not isinstance(url, str):
        raise KnowledgeBaseValidationError("A valid URL is required")
    try:
        parts = urlsplit(url)
    except ValueError as exc:
        raise KnowledgeBaseValidationError("Invalid URL format") from exc
    if not parts.scheme or not parts.netloc:
        raise KnowledgeBaseValidationError("Invalid URL format")
    return url


def start_crawl(crawler: CrawlClient, url: Any) -> Dict[str, str]:
    target = validate_crawl_url(url)
    crawl_id = crawler.start_crawl(target)
    logger.info("Crawl %s started for %s", crawl_id, target)
    return {"crawlId": crawl_id, "url": target}


def crawl_progress(status: Dict[str, Any]) -> Dict[str, Any]:
    """Shape a crawl status payload for the dashboard.

    Completed crawls include every page's markdown, source URL and title.
    """

    if status.get("status") == "completed":
        pages: List[Dict[str, str]] = []
        for page in status.get("data") or []:
            metadata = page.get("metadata") or {}
            pages.append(
                {
                    "markdown": page.get("markdown") or "",
                    "url": metadata.get("sourceURL") or metadata.get("url") or "",
                    "title": metadata.get("title") or "",
                }
            )
        return {
            "status": "completed",
            "completed": len(pages),
            "total": len(pages),
            "pages": pages,
        }
    return {
        "status": status.get("status"),
        "completed": status.get("completed") or 0,
        "total": status.get("total") or 0,
    }


def format_pages(pages: Iterable[CrawledPage]) -> str:
    blocks = []
    for index, page in enumerate(pages, start=1):
        markdown = page.markdown
        if len(markdown) > MAX_CHARS_PER_PAGE:
            markdown = markdown[:MAX_CHARS_PER_PAGE] + TRUNCATION_MARKER
        title = f"Title: {page.title}\n" if page.title else ""
        blocks.append(f"--- PAGE {index}: {page.url} ---\n{title}{markdown}")
    return "\n\n".join(blocks)


def build_summary_prompt(pages: Iterable[CrawledPage]) -> str:
    return f"{SUMMARIZE_PROMPT}\n\nHere are the crawled website pages:\n\n{format_pages(pages)}"


def strip_code_fences(text: str) -> str:
    return _TRAILING_FENCE.sub("", _LEADING_FENCE.sub("", text, count=1), count=1)


def summarize_pages(
    generator: TextGenerationClient, pages: List[CrawledPage] | None
) -> Dict[str, str]:
    """Turn crawled pages into a knowledge-base markdown draft."""

    if not pages:
        raise KnowledgeBaseValidationError("Crawled pages data is required")
    logger.info("Summarizing %d crawled pages", len(pages))
    content = generator.generate_text(build_summary_prompt(pages))
    if not content:
        raise KnowledgeBaseError("Failed to generate summary - empty response")
    content = strip_code_fences(content)
    logger.info("Generated summary of %d chars", len(content))
    return {"content": content}


__all__ = [
    "MAX_CHARS_PER_PAGE",
    "SUMMARIZE_PROMPT",
    "build_summary_prompt",
    "crawl_progress",
    "format_pages",
    "start_crawl",
    "strip_code_fences",
    "summarize_pages",
    "validate_crawl_url",
]
