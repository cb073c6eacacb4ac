"""Runtime configuration for the dashboard API and its vendor integrations.

Settings are read from the environment (``.env`` is loaded by
:mod:`voicedesk.main`) into frozen dataclasses cached with ``lru_cache``.
Tests that change environment variables call :func:`reset_settings_cache`.
"""

from __future__ import annotations

import dataclasses
import os
from functools import lru_cache

SQUARE_PRODUCTION_URL = "https://connect.squareup.com"
SQUARE_SANDBOX_URL = "https://connect.squareupsandbox.com"


def _env(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name, default)
    if value is None:
        return None
    value = value.strip()
    return value or default


def _require(name: str) -> str:
    value = _env(name)
    if not value:
        raise RuntimeError(f"{name} environment variable is not set")
    return value


def _split(value: str | None) -> tuple[str, ...]:
    if not value:
        return ()
    return tuple(item.strip() for item in value.split(",") if item.strip())


def http_timeout() -> float:
    """Timeout in seconds applied to every outbound vendor request."""

    return float(os.getenv("HTTP_TIMEOUT", "30"))


@dataclasses.dataclass(frozen=True)
class SessionTokenSettings:
    """How identity-provider session tokens are verified.

    Either ``key`` (PEM public key or shared secret) or ``jwks_url`` must be
    configured.
    """

    key: str | None
    jwks_url: str | None
    algorithm: str = "RS256"
    issuer: str | None = None
    authorized_parties: tuple[str, ...] = ()
    leeway_seconds: int = 5


@lru_cache(maxsize=1)
def get_session_token_settings() -> SessionTokenSettings:
    key = _env("CLERK_JWT_KEY")
    if key:
        key = key.replace("\\n", "\n")
    jwks_url = _env("CLERK_JWKS_URL")
    if not key and not jwks_url:
        raise RuntimeError("CLERK_JWT_KEY or CLERK_JWKS_URL must be set.")
    return SessionTokenSettings(
        key=key,
        jwks_url=jwks_url,
        algorithm=_env("CLERK_JWT_ALGORITHM", "RS256") or "RS256",
        issuer=_env("CLERK_ISSUER"),
        authorized_parties=_split(_env("CLERK_AUTHORIZED_PARTIES")),
        leeway_seconds=int(os.getenv("CLERK_JWT_LEEWAY", "5")),
    )


@dataclasses.dataclass(frozen=True)
class ClerkSettings:
    secret_key: str
    api_url: str = "https://api.clerk.com/v1"


@lru_cache(maxsize=1)
def get_clerk_settings() -> ClerkSettings:
    return ClerkSettings(
        secret_key=_require("CLERK_SECRET_KEY"),
        api_url=(_env("CLERK_API_URL", "https://api.clerk.com/v1") or "").rstrip("/"),
    )


@dataclasses.dataclass(frozen=True)
class VoicePlatformSettings:
    api_key: str
    api_url: str = "https://api.elevenlabs.io/v1"
    fanout_workers: int = 8


@lru_cache(maxsize=1)
def get_voice_platform_settings() -> VoicePlatformSettings:
    return VoicePlatformSettings(
        api_key=_require("ELEVENLABS_API_KEY"),
        api_url=(_env("ELEVENLABS_API_URL", "https://api.elevenlabs.io/v1") or "").rstrip("/"),
        fanout_workers=max(int(os.getenv("VOICE_FANOUT_WORKERS", "8")), 1),
    )


@dataclasses.dataclass(frozen=True)
class CrawlSettings:
    api_key: str
    api_url: str = "https://api.firecrawl.dev/v1"
    page_limit: int = 50


@lru_cache(maxsize=1)
def get_crawl_settings() -> CrawlSettings:
    return CrawlSettings(
        api_key=_require("FIRECRAWL_API_KEY"),
        api_url=(_env("FIRECRAWL_API_URL", "https://api.firecrawl.dev/v1") or "").rstrip("/"),
        page_limit=int(os.getenv("CRAWL_PAGE_LIMIT", "50")),
    )


@dataclasses.dataclass(frozen=True)
class TextGenerationSettings:
    api_key: str
    api_url: str = "https://generativelanguage.googleapis.com/v1beta"
    model: str = "gemini-2.0-flash"


@lru_cache(maxsize=1)
def get_text_generation_settings() -> TextGenerationSettings:
    return TextGenerationSettings(
        api_key=_require("GOOGLE_GEMINI_API_KEY"),
        api_url=(
            _env("GEMINI_API_URL", "https://generativelanguage.googleapis.com/v1beta") or ""
        ).rstrip("/"),
        model=_env("GEMINI_MODEL", "gemini-2.0-flash") or "gemini-2.0-flash",
    )


@dataclasses.dataclass(frozen=True)
class StorageSettings:
    url: str
    service_role_key: str
    bucket: str = "knowledge-base"


@lru_cache(maxsize=1)
def get_storage_settings() -> StorageSettings:
    return StorageSettings(
        url=_require("SUPABASE_URL"),
        service_role_key=_require("SUPABASE_SERVICE_ROLE_KEY"),
        bucket=_env("KNOWLEDGE_BASE_BUCKET", "knowledge-base") or "knowledge-base",
    )


@dataclasses.dataclass(frozen=True)
class SquareSettings:
    """Square OAuth configuration for the selected environment.

    ``application_id`` and ``application_secret`` may be missing; callers
    report that as a configuration error instead of failing at load time.
    """

    environment: str
    application_id: str | None
    application_secret: str | None
    app_url: str
    api_version: str = "2024-01-18"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def base_url(self) -> str:
        return SQUARE_PRODUCTION_URL if self.is_production else SQUARE_SANDBOX_URL

    @property
    def redirect_uri(self) -> str:
        return f"{self.app_url}/api/square/callback"


@lru_cache(maxsize=1)
def get_square_settings() -> SquareSettings:
    environment = (_env("SQUARE_ENVIRONMENT", "sandbox") or "sandbox").lower()
    prefix = "SQUARE_PRODUCTION" if environment == "production" else "SQUARE_SANDBOX"
    return SquareSettings(
        environment="production" if environment == "production" else "sandbox",
        application_id=_env(f"{prefix}_APPLICATION_ID"),
        application_secret=_env(f"{prefix}_APPLICATION_SECRET"),
        app_url=(_env("APP_URL", "http://localhost:3000") or "").rstrip("/"),
        api_version=_env("SQUARE_API_VERSION", "2024-01-18") or "2024-01-18",
    )


def reset_settings_cache() -> None:
    """Clear cached settings; useful in tests when env vars change."""

    for loader in (
        get_session_token_settings,
        get_clerk_settings,
        get_voice_platform_settings,
        get_crawl_settings,
        get_text_generation_settings,
        get_storage_settings,
        get_square_settings,
    ):
        loader.cache_clear()


__all__ = [
    "ClerkSettings",
    "CrawlSettings",
    "SessionTokenSettings",
    "SquareSettings",
    "StorageSettings",
    "TextGenerationSettings",
    "VoicePlatformSettings",
    "get_clerk_settings",
    "get_crawl_settings",
    "get_session_token_settings",
    "get_square_settings",
    "get_storage_settings",
    "get_text_generation_settings",
    "get_voice_platform_settings",
    "http_timeout",
    "reset_settings_cache",
]
