"""FastAPI providers for vendor clients.

HTTP clients are request-scoped and release their connection pool when the
request finishes. The storage client is shared per settings object. Tests
replace every provider through ``app.dependency_overrides``.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Iterator

from .clients import (
    ClerkClient,
    CrawlClient,
    KnowledgeBaseStorage,
    SquareOAuthClient,
    TextGenerationClient,
    VoicePlatformClient,
)
from .core.config import (
    StorageSettings,
    get_clerk_settings,
    get_crawl_settings,
    get_square_settings,
    get_storage_settings,
    get_text_generation_settings,
    get_voice_platform_settings,
)

logger = logging.getLogger("voicedesk")


def get_clerk_client() -> Iterator[ClerkClient]:
    with ClerkClient(get_clerk_settings(), logger=logger) as client:
        yield client


def get_voice_client() -> Iterator[VoicePlatformClient]:
    with VoicePlatformClient(get_voice_platform_settings(), logger=logger) as client:
        yield client


def get_crawl_client() -> Iterator[CrawlClient]:
    with CrawlClient(get_crawl_settings(), logger=logger) as client:
        yield client


def get_text_client() -> Iterator[TextGenerationClient]:
    with TextGenerationClient(get_text_generation_settings(), logger=logger) as client:
        yield client


@lru_cache(maxsize=1)
def _storage_for(settings: StorageSettings) -> KnowledgeBaseStorage:
    return KnowledgeBaseStorage(settings, logger=logger)


def get_storage() -> KnowledgeBaseStorage:
    """Return the storage client for the current settings, creating it once."""

    return _storage_for(get_storage_settings())


def get_square_client() -> Iterator[SquareOAuthClient]:
    with SquareOAuthClient(get_square_settings(), logger=logger) as client:
        yield client


__all__ = [
    "get_clerk_client",
    "get_crawl_client",
    "get_square_client",
    "get_storage",
    "get_text_client",
    "get_voice_client",
]
