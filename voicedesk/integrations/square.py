"""Square OAuth connect/disconnect flow for an organization's merchant account.

The ``state`` parameter round-trips through Square as base64url JSON carrying
a random CSRF nonce, the organization id and the user id, signed with an
HMAC-SHA256 keyed from ``ENCRYPTION_KEY``. No nonce is stored server side;
a state is valid when its signature verifies.
"""

from __future__ import annotations

import base64
import binascii
import datetime as dt
import hashlib
import hmac
import json
import logging
import secrets
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import urlencode, urlsplit, urlunsplit

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from voicedesk.clients import SquareOAuthClient, UpstreamError
from voicedesk.models import Location, Merchant, User
from voicedesk.security.encryption import (
    EncryptionError,
    decrypt_value,
    encrypt_value,
    get_master_key,
)

logger = logging.getLogger(__name__)

MERCHANT_TYPE = "SQUARE"
_STATE_CONTEXT = b"square-oauth-state"


class InvalidStateError(ValueError):
    """Raised when an OAuth ``state`` value is malformed or forged."""


class SquareNotConnectedError(LookupError):
    """Raised when the organization has no merchant connection."""


@dataclass(frozen=True)
class OAuthState:
    csrf: str
    org_id: str
    user_id: str


def _state_key() -> bytes:
    return hmac.new(get_master_key().encode("utf-8"), _STATE_CONTEXT, hashlib.sha256).digest()


def _sign(csrf: str, org_id: str, user_id: str) -> str:
    message = json.dumps([csrf, org_id, user_id], separators=(",", ":")).encode("utf-8")
    return hmac.new(_state_key(), message, hashlib.sha256).hexdigest()


def build_state(org_id: str, user_id: str, *, csrf: str | None = None) -> str:
    """Encode and sign an OAuth state for ``org_id``/``user_id``."""

    nonce = csrf or secrets.token_hex(32)
    blob = {
        "csrf": nonce,
        "orgId": org_id,
        "userId": user_id,
        "sig": _sign(nonce, org_id, user_id),
    }
    encoded = base64.urlsafe_b64encode(json.dumps(blob).encode("utf-8"))
    return encoded.decode("ascii").rstrip("=")


def decode_state(state: str) -> OAuthState:
    """Parse and verify a state produced by :func:`build_state`.

    Raises:
        InvalidStateError: If the value is not base64url JSON, lacks a field
            or carries a signature that does not verify.
        EncryptionError: If no server secret is configured.
    """

    try:
        raw = base64.urlsafe_b64decode(state + "=" * (-len(state) % 4))
        data = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        raise InvalidStateError("State is not valid base64url JSON") from exc
    if not isinstance(data, dict):
        raise InvalidStateError("State must be a JSON object")

    fields = {}
    for name in ("csrf", "orgId", "userId", "sig"):
        value = data.get(name)
        if not isinstance(value, str) or not value:
            raise InvalidStateError(f"State is missing {name}")
        fields[name] = value

    expected = _sign(fields["csrf"], fields["orgId"], fields["userId"])
    if not hmac.compare_digest(expected.encode("ascii"), fields["sig"].encode("utf-8")):
        raise InvalidStateError("State signature mismatch")
    return OAuthState(csrf=fields["csrf"], org_id=fields["orgId"], user_id=fields["userId"])


def redirect_url(app_url: str, params: Dict[str, str]) -> str:
    """Return ``app_url`` with ``params`` as its query string."""

    parts = urlsplit(app_url)
    return urlunsplit(
        (parts.scheme, parts.netloc, parts.path or "/", urlencode(params), "")
    )


def _parse_expiry(value: Any) -> Optional[dt.datetime]:
    if not isinstance(value, str) or not value:
        return None
    try:
        return dt.datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Unrecognised Square token expiry %r", value)
        return None


class CallbackError(Exception):
    """A callback failure that is reported to the browser via redirect."""

    def __init__(self, code: str, description: str) -> None:
        super().__init__(f"{code}: {description}")
        self.code = code
        self.description = description


class SquareIntegration:
    """Connect, inspect and disconnect an organization's Square merchant."""

    def __init__(self, session: Session, client: SquareOAuthClient) -> None:
        self.session = session
        self.client = client
        self.settings = client.settings

    def _merchant_for(self, organization_id: str) -> Optional[Merchant]:
        return self.session.scalars(
            select(Merchant).where(Merchant.clerk_organization_id == organization_id)
        ).first()

    def authorization_url(self, organization_id: str, user_id: str) -> str:
        if not self.settings.application_id:
            raise RuntimeError("Square Application ID not configured")
        return self.client.authorization_url(build_state(organization_id, user_id))

    def handle_callback(
        self,
        *,
        code: str | None,
        state: str | None,
        error: str | None = None,
        error_description: str | None = None,
    ) -> str:
        """Complete the OAuth handshake and return the dashboard redirect URL."""

        app_url = self.settings.app_url
        try:
            merchant_id = self._complete(code, state, error, error_description)
        except CallbackError as exc:
            logger.warning("Square callback rejected: %s", exc)
            return redirect_url(
                app_url,
                {"square_error": exc.code, "square_error_description": exc.description},
            )
        except Exception:
            self.session.rollback()
            logger.exception("Unexpected error in Square OAuth callback")
            return redirect_url(
                app_url,
                {
                    "square_error": "internal_error",
                    "square_error_description": "An unexpected error occurred",
                },
            )
        logger.info("Square merchant %s connected", merchant_id)
        return redirect_url(app_url, {"square_connected": "true"})

    def _complete(
        self,
        code: str | None,
        state: str | None,
        error: str | None,
        error_description: str | None,
    ) -> str:
        if error:
            raise CallbackError(error, error_description or "Authorization was denied")
        if not code or not state:
            raise CallbackError("missing_params", "Missing authorization code or state")

        try:
            claims = decode_state(state)
        except InvalidStateError as exc:
            logger.warning("Rejected Square state: %s", exc)
            raise CallbackError("invalid_state", "Invalid state parameter") from exc
        except EncryptionError as exc:
            raise CallbackError("config_error", "Server encryption key not configured") from exc

        user = self.session.scalars(
            select(User).where(
                User.clerk_user_id == claims.user_id,
                User.clerk_organization_id == claims.org_id,
            )
        ).first()
        if user is None:
            raise CallbackError("user_not_found", "User not found or session expired")

        if not self.client.is_configured:
            raise CallbackError("config_error", "Square credentials not configured")

        try:
            tokens = self.client.exchange_code(code)
        except UpstreamError as exc:
            payload = exc.payload if isinstance(exc.payload, dict) else {}
            logger.error("Square token exchange failed: %s", exc)
            raise CallbackError(
                "token_exchange_failed",
                payload.get("message") or "Failed to obtain access token",
            ) from exc

        self._store_tokens(claims.org_id, tokens)
        return str(tokens.get("merchant_id") or "")

    def _store_tokens(self, organization_id: str, tokens: Dict[str, Any]) -> Merchant:
        access_token = encrypt_value(str(tokens["access_token"]))
        refresh_token = encrypt_value(str(tokens.get("refresh_token") or ""))
        merchant = self._merchant_for(organization_id)
        if merchant is None:
            merchant = Merchant(clerk_organization_id=organization_id)
            self.session.add(merchant)
        merchant.merchant_id = str(tokens.get("merchant_id") or "")
        merchant.access_token_encrypted = access_token
        merchant.refresh_token_encrypted = refresh_token
        merchant.token_expires_at = _parse_expiry(tokens.get("expires_at"))
        merchant.is_sandbox = not self.settings.is_production
        merchant.is_active = True
        merchant.merchant_type = MERCHANT_TYPE
        merchant.updated_at = dt.datetime.now(dt.timezone.utc)
        self.session.commit()
        return merchant

    def disconnect(self, organization_id: str) -> Dict[str, Any]:
        """Revoke the merchant's access token best-effort and delete the row.

        Raises:
            SquareNotConnectedError: If the organization has no merchant.
        """

        merchant = self._merchant_for(organization_id)
        if merchant is None:
            raise SquareNotConnectedError("No Square integration found")

        access_token: str | None = None
        try:
            access_token = decrypt_value(merchant.access_token_encrypted)
        except EncryptionError as exc:
            logger.error("Failed to decrypt Square access token, skipping revoke: %s", exc)

        if access_token and not self.client.is_configured:
            logger.error("Square credentials not configured, skipping revoke")
        elif access_token:
            try:
                self.client.revoke_token(access_token)
            except UpstreamError as exc:
                logger.error("Square revoke failed: %s (%s)", exc, exc.payload)

        self.session.delete(merchant)
        self.session.commit()
        logger.info("Square integration removed for %s", organization_id)
        return {"success": True, "message": "Square integration disconnected"}


def integration_status(session: Session, organization_id: str) -> Dict[str, Any]:
    """Describe the organization's integrations for the settings page."""

    merchant = session.scalars(
        select(Merchant).where(Merchant.clerk_organization_id == organization_id)
    ).first()
    if merchant is None:
        return {"square": {"connected": False}}
    locations = session.scalar(
        select(func.count(Location.id)).where(Location.clerk_organization_id == organization_id)
    )
    return {
        "square": {
            "connected": True,
            "merchantId": merchant.merchant_id,
            "isSandbox": merchant.is_sandbox,
            "isActive": merchant.is_active,
            "merchantType": merchant.merchant_type,
            "locationsCount": int(locations or 0),
            "connectedAt": merchant.created_at,
            "updatedAt": merchant.updated_at,
        }
    }


__all__ = [
    "CallbackError",
    "InvalidStateError",
    "OAuthState",
    "SquareIntegration",
    "SquareNotConnectedError",
    "build_state",
    "decode_state",
    "integration_status",
    "redirect_url",
]
