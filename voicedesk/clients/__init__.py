"""HTTP clients for the vendor APIs the dashboard orchestrates."""

from .base import JsonApiClient, UpstreamError
from .clerk import ClerkClient
from .crawl import CrawlClient
from .square import SquareOAuthClient
from .storage import KnowledgeBaseStorage, StorageError
from .text_generation import TextGenerationClient
from .voice import VoicePlatformClient

__all__ = [
    "ClerkClient",
    "CrawlClient",
    "JsonApiClient",
    "KnowledgeBaseStorage",
    "SquareOAuthClient",
    "StorageError",
    "TextGenerationClient",
    "UpstreamError",
    "VoicePlatformClient",
]
