"""Tests for session-token authentication helpers."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from voicedesk.core.auth import (
    SessionTokenConfigurationError,
    SessionTokenPayload,
    SessionTokenValidationError,
    decode_session_token,
    get_session_context,
)
from voicedesk.core.config import reset_settings_cache

SECRET = "core-auth-test-secret-0123456789abcdef"


@pytest.fixture()
def token_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Configure HS256 verification with a shared secret."""

    monkeypatch.setenv("CLERK_JWT_KEY", SECRET)
    monkeypatch.setenv("CLERK_JWT_ALGORITHM", "HS256")
    monkeypatch.delenv("CLERK_JWKS_URL", raising=False)
    monkeypatch.delenv("CLERK_ISSUER", raising=False)
    monkeypatch.delenv("CLERK_AUTHORIZED_PARTIES", raising=False)
    reset_settings_cache()
    yield
    reset_settings_cache()


def _issue_token(
    *,
    secret: str = SECRET,
    user_id: str | None = "user_123",
    expires_in: timedelta = timedelta(minutes=5),
    **extra_claims: str | int,
) -> str:
    """Generate a signed session JWT for testing purposes."""

    payload: dict[str, object] = {"exp": datetime.now(timezone.utc) + expires_in}
    if user_id is not None:
        payload["sub"] = user_id
    payload.update(extra_claims)
    return jwt.encode(payload, secret, algorithm="HS256")


def test_decode_session_token_success(token_env: None) -> None:
    """A valid token returns the decoded payload."""

    payload = decode_session_token(_issue_token(org_id="org_1"))

    assert payload["sub"] == "user_123"
    assert payload["org_id"] == "org_1"


def test_decode_session_token_requires_subject(token_env: None) -> None:
    with pytest.raises(SessionTokenValidationError):
        decode_session_token(_issue_token(user_id=None))


def test_decode_session_token_rejects_expired(token_env: None) -> None:
    token = _issue_token(expires_in=timedelta(minutes=-10))

    with pytest.raises(SessionTokenValidationError, match="expired"):
        decode_session_token(token)


def test_decode_session_token_checks_authorized_party(
    token_env: None, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Tokens minted for another frontend origin are rejected."""

    monkeypatch.setenv("CLERK_AUTHORIZED_PARTIES", "https://dash.example.com")
    reset_settings_cache()

    assert decode_session_token(_issue_token(azp="https://dash.example.com"))["sub"] == "user_123"
    with pytest.raises(SessionTokenValidationError):
        decode_session_token(_issue_token(azp="https://evil.example.com"))


def test_decode_session_token_configuration_error(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Missing configuration raises a configuration error."""

    monkeypatch.delenv("CLERK_JWT_KEY", raising=False)
    monkeypatch.delenv("CLERK_JWKS_URL", raising=False)
    reset_settings_cache()

    with pytest.raises(SessionTokenConfigurationError):
        decode_session_token("token")
    reset_settings_cache()


def _create_test_client() -> TestClient:
    """Create a FastAPI application wired with the session dependency."""

    app = FastAPI()

    @app.get("/me")
    async def read_session(
        payload: SessionTokenPayload = Depends(get_session_context),
    ) -> SessionTokenPayload:
        return payload

    return TestClient(app)


def test_get_session_context_bearer_header(token_env: None) -> None:
    client = _create_test_client()

    response = client.get("/me", headers={"Authorization": f"Bearer {_issue_token()}"})

    assert response.status_code == 200
    assert response.json()["sub"] == "user_123"


def test_get_session_context_session_cookie(token_env: None) -> None:
    """The ``__session`` cookie is accepted when no header is sent."""

    client = _create_test_client()
    client.cookies.set("__session", _issue_token())

    response = client.get("/me")

    assert response.status_code == 200
    assert response.json()["sub"] == "user_123"


def test_get_session_context_missing_token(token_env: None) -> None:
    response = _create_test_client().get("/me")

    assert response.status_code == 401


def test_get_session_context_invalid_scheme(token_env: None) -> None:
    """Non-bearer Authorization scheme is rejected."""

    client = _create_test_client()

    response = client.get("/me", headers={"Authorization": f"Token {_issue_token()}"})

    assert response.status_code == 401


def test_get_session_context_invalid_signature(token_env: None) -> None:
    client = _create_test_client()
    token = _issue_token(secret="another-secret-0123456789abcdefghijkl")

    response = client.get("/me", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401


def test_get_session_context_configuration_error(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Configuration issues propagate as HTTP 500 errors."""

    monkeypatch.delenv("CLERK_JWT_KEY", raising=False)
    monkeypatch.delenv("CLERK_JWKS_URL", raising=False)
    reset_settings_cache()

    response = _create_test_client().get("/me", headers={"Authorization": "Bearer token"})

    assert response.status_code == 500
    reset_settings_cache()
