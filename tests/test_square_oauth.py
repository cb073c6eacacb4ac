from __future__ import annotations

import base64
import json
from urllib.parse import parse_qs, urlsplit

import pytest
from conftest import ORG_ID, OTHER_ORG_ID, FakeResponse
from sqlalchemy import select

from voicedesk.integrations import InvalidStateError, build_state, decode_state
from voicedesk.models import Merchant
from voicedesk.security.encryption import decrypt_value, encrypt_value

TOKENS = {
    "access_token": "EAAA-access",
    "refresh_token": "EQAA-refresh",
    "merchant_id": "MLR123",
    "expires_at": "2030-01-01T00:00:00Z",
}


NON_ASCII_SIG_STATE = (
    base64.urlsafe_b64encode(
        json.dumps(
            {"csrf": "a", "orgId": ORG_ID, "userId": "user_admin", "sig": "\u00e9"}
        ).encode()
    )
    .decode()
    .rstrip("=")
)


def _query(url: str) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(urlsplit(url).query).items()}


def _callback(dashboard, **params):
    return dashboard.client.get("/api/square/callback", params=params, follow_redirects=False)


def _merchant(dashboard, organization_id: str = ORG_ID) -> Merchant | None:
    with dashboard.session() as session:
        return session.scalars(
            select(Merchant).where(Merchant.clerk_organization_id == organization_id)
        ).first()


def _connect(dashboard) -> None:
    dashboard.square_http.queue(FakeResponse(payload=TOKENS))
    _callback(dashboard, code="auth-code", state=build_state(ORG_ID, "user_admin"))


def test_authorize_returns_consent_url(dashboard):
    response = dashboard.client.get("/api/square/authorize", headers=dashboard.headers("user_admin"))

    assert response.status_code == 200
    url = response.json()["authUrl"]
    assert url.startswith("https://connect.squareupsandbox.com/oauth2/authorize?")
    query = _query(url)
    assert query["client_id"] == "sq0idp-sandbox"
    assert query["redirect_uri"] == "https://dash.example.com/api/square/callback"
    claims = decode_state(query["state"])
    assert (claims.org_id, claims.user_id) == (ORG_ID, "user_admin")


def test_authorize_requires_admin(dashboard):
    response = dashboard.client.get("/api/square/authorize", headers=dashboard.headers("user_member"))

    assert response.status_code == 403
    assert response.json() == {"error": "Admin access required"}


def test_authorize_without_application_id(dashboard, monkeypatch):
    from voicedesk.core.config import reset_settings_cache

    monkeypatch.delenv("SQUARE_SANDBOX_APPLICATION_ID")
    reset_settings_cache()

    response = dashboard.client.get("/api/square/authorize", headers=dashboard.headers("user_admin"))

    assert response.status_code == 500
    assert response.json() == {"error": "Square Application ID not configured"}


def test_callback_stores_encrypted_tokens(dashboard):
    dashboard.square_http.queue(FakeResponse(payload=TOKENS))

    response = _callback(dashboard, code="auth-code", state=build_state(ORG_ID, "user_admin"))

    assert response.status_code == 307
    assert response.headers["location"] == "https://dash.example.com/?square_connected=true"
    exchange = dashboard.square_http.requests[0]
    assert exchange["url"] == "https://connect.squareupsandbox.com/oauth2/token"
    assert exchange["json"] == {
        "client_id": "sq0idp-sandbox",
        "client_secret": "sq0csp-sandbox-secret",
        "code": "auth-code",
        "grant_type": "authorization_code",
    }

    merchant = _merchant(dashboard)
    assert merchant.merchant_id == "MLR123"
    assert merchant.access_token_encrypted != "EAAA-access"
    assert decrypt_value(merchant.access_token_encrypted) == "EAAA-access"
    assert decrypt_value(merchant.refresh_token_encrypted) == "EQAA-refresh"
    assert merchant.is_sandbox is True
    assert merchant.merchant_type == "SQUARE"


def test_reconnect_updates_existing_merchant(dashboard):
    _connect(dashboard)
    dashboard.square_http.queue(FakeResponse(payload={**TOKENS, "access_token": "EAAA-new"}))

    _callback(dashboard, code="again", state=build_state(ORG_ID, "user_admin"))

    with dashboard.session() as session:
        merchants = session.scalars(select(Merchant)).all()
    assert len(merchants) == 1
    assert decrypt_value(merchants[0].access_token_encrypted) == "EAAA-new"


def test_callback_with_tampered_state_writes_nothing(dashboard):
    state = build_state(ORG_ID, "user_admin")
    blob = json.loads(base64.urlsafe_b64decode(state + "=" * (-len(state) % 4)))
    blob["orgId"] = OTHER_ORG_ID
    forged = base64.urlsafe_b64encode(json.dumps(blob).encode()).decode().rstrip("=")

    response = _callback(dashboard, code="auth-code", state=forged)

    assert _query(response.headers["location"]) == {
        "square_error": "invalid_state",
        "square_error_description": "Invalid state parameter",
    }
    assert dashboard.square_http.requests == []
    assert _merchant(dashboard, OTHER_ORG_ID) is None


@pytest.mark.parametrize(
    "params, code, description",
    [
        ({"error": "access_denied"}, "access_denied", "Authorization was denied"),
        (
            {"error": "access_denied", "error_description": "User cancelled"},
            "access_denied",
            "User cancelled",
        ),
        ({"code": "auth-code"}, "missing_params", "Missing authorization code or state"),
        ({"code": "auth-code", "state": "%%%"}, "invalid_state", "Invalid state parameter"),
        (
            {"code": "auth-code", "state": NON_ASCII_SIG_STATE},
            "invalid_state",
            "Invalid state parameter",
        ),
    ],
)
def test_callback_errors_redirect_to_dashboard(dashboard, params, code, description):
    response = _callback(dashboard, **params)

    location = response.headers["location"]
    assert location.startswith("https://dash.example.com/?")
    assert _query(location) == {"square_error": code, "square_error_description": description}


def test_callback_for_unknown_user(dashboard):
    response = _callback(dashboard, code="auth-code", state=build_state(ORG_ID, "user_other"))

    assert _query(response.headers["location"])["square_error"] == "user_not_found"


def test_failed_token_exchange(dashboard):
    dashboard.square_http.queue(
        FakeResponse(status_code=400, payload={"message": "Authorization code is expired"})
    )

    response = _callback(dashboard, code="stale", state=build_state(ORG_ID, "user_admin"))

    assert _query(response.headers["location"]) == {
        "square_error": "token_exchange_failed",
        "square_error_description": "Authorization code is expired",
    }
    assert _merchant(dashboard) is None


def test_disconnect_revokes_and_deletes(dashboard):
    _connect(dashboard)
    dashboard.square_http.queue(FakeResponse(payload={"success": True}))

    response = dashboard.client.post("/api/square/disconnect", headers=dashboard.headers("user_admin"))

    assert response.json() == {"success": True, "message": "Square integration disconnected"}
    revoke = dashboard.square_http.requests[-1]
    assert revoke["url"].endswith("/oauth2/revoke")
    assert revoke["json"]["access_token"] == "EAAA-access"
    assert _merchant(dashboard) is None


def test_disconnect_deletes_even_if_revoke_fails(dashboard):
    _connect(dashboard)
    dashboard.square_http.queue(FakeResponse(status_code=401, payload={"errors": ["bad"]}))

    response = dashboard.client.post("/api/square/disconnect", headers=dashboard.headers("user_admin"))

    assert response.status_code == 200
    assert _merchant(dashboard) is None


def test_disconnect_skips_revoke_for_undecryptable_token(dashboard):
    _connect(dashboard)
    with dashboard.session() as session:
        merchant = session.scalars(select(Merchant)).one()
        merchant.access_token_encrypted = "not-a-fernet-token"
        session.commit()
    sent = len(dashboard.square_http.requests)

    response = dashboard.client.post("/api/square/disconnect", headers=dashboard.headers("user_admin"))

    assert response.status_code == 200
    assert len(dashboard.square_http.requests) == sent
    assert _merchant(dashboard) is None


def test_disconnect_without_connection(dashboard):
    response = dashboard.client.post("/api/square/disconnect", headers=dashboard.headers("user_admin"))

    assert response.status_code == 404
    assert response.json() == {"error": "No Square integration found"}


def test_disconnect_requires_admin(dashboard):
    response = dashboard.client.post("/api/square/disconnect", headers=dashboard.headers("user_member"))

    assert response.status_code == 403


def test_integration_status(dashboard):
    before = dashboard.client.get("/api/integrations", headers=dashboard.headers("user_member"))
    _connect(dashboard)
    after = dashboard.client.get("/api/integrations", headers=dashboard.headers("user_member"))

    assert before.json() == {"integrations": {"square": {"connected": False}}}
    square = after.json()["integrations"]["square"]
    assert square["connected"] is True
    assert square["merchantId"] == "MLR123"
    assert square["isSandbox"] is True
    assert square["locationsCount"] == 2


def test_state_round_trip_and_rejection(dashboard):
    state = build_state(ORG_ID, "user_admin", csrf="nonce")

    assert "=" not in state
    assert decode_state(state).csrf == "nonce"
    with pytest.raises(InvalidStateError):
        decode_state(base64.urlsafe_b64encode(b"[1, 2]").decode())


def test_encryption_round_trip(dashboard):
    token = encrypt_value("secret")

    assert token != "secret"
    assert decrypt_value(token) == "secret"
