"""Voice-agent platform (ElevenLabs Conversational AI) client."""

from __future__ import annotations

import logging
from typing import Any

import requests

from ..core.config import VoicePlatformSettings
from .base import JsonApiClient, UpstreamError


class VoicePlatformClient(JsonApiClient):
    """Agents, conversations and knowledge-base documents on the voice platform."""

    service = "elevenlabs"

    def __init__(
        self,
        settings: VoicePlatformSettings,
        *,
        session: requests.Session | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        super().__init__(
            settings.api_url,
            headers={"xi-api-key": settings.api_key},
            session=session,
            logger=logger,
        )
        self.fanout_workers = settings.fanout_workers

    # ------------------------------------------------------------------
    # Agents
    # ------------------------------------------------------------------

    def get_agent(self, agent_id: str) -> dict[str, Any]:
        return self.request_json("GET", f"convai/agents/{agent_id}") or {}

    def get_agent_name(self, agent_id: str) -> str | None:
        """Best-effort agent name lookup; failures are logged and yield ``None``."""

        try:
            return self.get_agent(agent_id).get("name") or None
        except UpstreamError as exc:
            self.logger.warning("Failed to fetch agent %s: %s", agent_id, exc)
            return None

    def set_agent_knowledge_base(
        self, agent_id: str, documents: list[dict[str, str]]
    ) -> None:
        """Replace the knowledge-base list on the agent's prompt configuration."""

        self.request_json(
            "PATCH",
            f"convai/agents/{agent_id}",
            json={
                "conversation_config": {
                    "agent": {"prompt": {"knowledge_base": documents}}
                }
            },
        )

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    def list_conversations(
        self,
        *,
        call_start_after_unix: int,
        agent_id: str | None = None,
        page_size: int = 100,
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {
            "call_start_after_unix": call_start_after_unix,
            "page_size": page_size,
        }
        if agent_id:
            params["agent_id"] = agent_id
        payload = self.request_json("GET", "convai/conversations", params=params) or {}
        return list(payload.get("conversations") or [])

    def get_conversation(self, conversation_id: str) -> dict[str, Any]:
        return self.request_json("GET", f"convai/conversations/{conversation_id}") or {}

    def get_caller_number(self, conversation_id: str) -> str | None:
        """Return the external phone number of a call, ``None`` on any failure."""

        try:
            details = self.get_conversation(conversation_id)
        except UpstreamError as exc:
            self.logger.debug("Phone lookup failed for %s: %s", conversation_id, exc)
            return None
        phone_call = (details.get("metadata") or {}).get("phone_call") or {}
        return phone_call.get("external_number") or None

    # ------------------------------------------------------------------
    # Knowledge-base documents
    # ------------------------------------------------------------------

    def create_document_from_markdown(self, name: str, content: str) -> str:
        """Upload ``content`` as a markdown file and return the document id."""

        payload = self.request_json(
            "POST",
            "convai/knowledge-base/file",
            files={"file": (f"{name}.md", content.encode("utf-8"), "text/markdown")},
            data={"name": name},
        )
        document_id = (payload or {}).get("id")
        if not document_id:
            raise UpstreamError(self.service, "document upload returned no id")
        return str(document_id)

    def delete_document(self, document_id: str) -> None:
        self.request("DELETE", f"convai/knowledge-base/{document_id}")


__all__ = ["VoicePlatformClient"]
