"""Square OAuth endpoints: authorize redirect, token exchange and revoke."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urlencode

import requests

from ..core.config import SquareSettings
from .base import JsonApiClient

SQUARE_SCOPES = (
    "MERCHANT_PROFILE_READ",
    "ITEMS_READ",
    "ORDERS_READ",
    "PAYMENTS_READ",
)


class SquareOAuthClient(JsonApiClient):
    service = "square"

    def __init__(
        self,
        settings: SquareSettings,
        *,
        session: requests.Session | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        super().__init__(
            settings.base_url,
            headers={
                "Square-Version": settings.api_version,
                "Content-Type": "application/json",
            },
            session=session,
            logger=logger,
        )
        self.settings = settings

    @property
    def is_configured(self) -> bool:
        return bool(self.settings.application_id and self.settings.application_secret)

    def authorization_url(self, state: str) -> str:
        query = urlencode(
            {
                "client_id": self.settings.application_id or "",
                "scope": " ".join(SQUARE_SCOPES),
                "state": state,
                "redirect_uri": self.settings.redirect_uri,
            }
        )
        return f"{self.settings.base_url}/oauth2/authorize?{query}"

    def exchange_code(self, code: str) -> dict[str, Any]:
        """Trade an authorization code for access and refresh tokens."""

        return self.request_json(
            "POST",
            "oauth2/token",
            json={
                "client_id": self.settings.application_id,
                "client_secret": self.settings.application_secret,
                "code": code,
                "grant_type": "authorization_code",
            },
        ) or {}

    def revoke_token(self, access_token: str) -> None:
        self.request(
            "POST",
            "oauth2/revoke",
            headers={"Authorization": f"Client {self.settings.application_secret}"},
            json={
                "client_id": self.settings.application_id,
                "access_token": access_token,
            },
        )


__all__ = ["SQUARE_SCOPES", "SquareOAuthClient"]
