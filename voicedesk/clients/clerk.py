"""Identity-provider Backend API client used for membership role lookups."""

from __future__ import annotations

import logging
from typing import Any

import requests

from ..core.config import ClerkSettings
from .base import JsonApiClient

ADMIN_ROLES = frozenset({"org:admin", "admin"})


def normalize_role(role: str | None) -> str:
    """Collapse provider role keys into ``admin`` or ``member``."""

    return "admin" if role in ADMIN_ROLES else "member"


class ClerkClient(JsonApiClient):
    service = "clerk"

    def __init__(
        self,
        settings: ClerkSettings,
        *,
        session: requests.Session | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        super().__init__(
            settings.api_url,
            headers={"Authorization": f"Bearer {settings.secret_key}"},
            session=session,
            logger=logger,
        )

    def list_organization_memberships(self, user_id: str) -> list[dict[str, Any]]:
        payload = self.request_json(
            "GET",
            f"users/{user_id}/organization_memberships",
            params={"limit": 100},
        )
        if isinstance(payload, dict):
            memberships = payload.get("data") or []
        else:
            memberships = payload or []
        return [m for m in memberships if isinstance(m, dict)]

    def get_organization_role(self, user_id: str, organization_id: str) -> str | None:
        """Return ``admin``/``member`` for the user's membership, or ``None``."""

        for membership in self.list_organization_memberships(user_id):
            organization = membership.get("organization") or {}
            if organization.get("id") == organization_id:
                return normalize_role(membership.get("role"))
        return None


__all__ = ["ADMIN_ROLES", "ClerkClient", "normalize_role"]
