"""Utilities for identity-provider session authentication."""

from __future__ import annotations

from functools import lru_cache
from typing import cast

from typing_extensions import TypedDict

import jwt
from fastapi import HTTPException, Request, status
from jwt import ExpiredSignatureError, InvalidTokenError, PyJWKClient, PyJWKClientError

from .config import SessionTokenSettings, get_session_token_settings

__all__ = [
    "SESSION_COOKIE",
    "SessionTokenConfigurationError",
    "SessionTokenPayload",
    "SessionTokenValidationError",
    "decode_session_token",
    "extract_session_token",
    "get_session_context",
]

SESSION_COOKIE = "__session"


class SessionTokenConfigurationError(RuntimeError):
    """Raised when session token verification is not configured."""


class SessionTokenValidationError(ValueError):
    """Raised when the provided session token cannot be validated."""


class _SessionTokenRequiredClaims(TypedDict):
    sub: str


class SessionTokenPayload(_SessionTokenRequiredClaims, total=False):
    """Decoded session token issued by the identity provider."""

    azp: str
    exp: int
    iat: int
    iss: str
    nbf: int
    org_id: str
    org_role: str
    sid: str


@lru_cache(maxsize=4)
def _jwks_client(url: str) -> PyJWKClient:
    return PyJWKClient(url)


def _signing_key(token: str, settings: SessionTokenSettings) -> object:
    if settings.key:
        return settings.key
    if not settings.jwks_url:
        raise SessionTokenConfigurationError("CLERK_JWT_KEY or CLERK_JWKS_URL must be set.")
    try:
        return _jwks_client(settings.jwks_url).get_signing_key_from_jwt(token).key
    except PyJWKClientError as exc:
        raise SessionTokenValidationError("Session token signing key not found.") from exc


def decode_session_token(token: str) -> SessionTokenPayload:
    """Decode and validate a session token.

    Args:
        token: Encoded JWT from the ``Authorization`` header or session cookie.

    Returns:
        SessionTokenPayload: Parsed payload; ``sub`` carries the user id.

    Raises:
        SessionTokenConfigurationError: If no verification key is configured.
        SessionTokenValidationError: If signature, claims, expiry or the
            authorized party are invalid.
    """

    try:
        settings = get_session_token_settings()
    except RuntimeError as exc:
        raise SessionTokenConfigurationError(str(exc)) from exc

    options: dict[str, object] = {"require": ["exp", "sub"], "verify_aud": False}
    try:
        payload = jwt.decode(
            token,
            _signing_key(token, settings),
            algorithms=[settings.algorithm],
            issuer=settings.issuer,
            leeway=settings.leeway_seconds,
            options=options,
        )
    except ExpiredSignatureError as exc:
        raise SessionTokenValidationError("Session token has expired.") from exc
    except InvalidTokenError as exc:
        raise SessionTokenValidationError("Session token is invalid.") from exc

    if settings.authorized_parties:
        azp = payload.get("azp")
        if azp and azp not in settings.authorized_parties:
            raise SessionTokenValidationError("Session token authorized party is not allowed.")

    return cast(SessionTokenPayload, payload)


def extract_session_token(request: Request) -> str | None:
    """Return the bearer token or the session cookie value, if any."""

    authorization = request.headers.get("Authorization")
    if authorization:
        scheme, _, credentials = authorization.partition(" ")
        if credentials and scheme.lower() == "bearer":
            return credentials.strip()
        return None
    return request.cookies.get(SESSION_COOKIE)


async def get_session_context(request: Request) -> SessionTokenPayload:
    """Authenticate ``request`` and return the verified session payload.

    Raises:
        HTTPException: With status ``401`` when no valid session is present,
            or ``500`` if token verification is not configured.
    """

    token = extract_session_token(request)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )

    try:
        return decode_session_token(token)
    except SessionTokenConfigurationError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(exc),
        ) from exc
    except SessionTokenValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        ) from exc
