"""Knowledge-base persistence, blob storage and voice-platform document sync."""

from __future__ import annotations

import datetime as dt
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from voicedesk.clients import KnowledgeBaseStorage, StorageError, UpstreamError, VoicePlatformClient
from voicedesk.models import KnowledgeBase

from .schemas import KnowledgeBasePayload

logger = logging.getLogger(__name__)

SLUG_MAX_LENGTH = 80


class KnowledgeBaseError(RuntimeError):
    """Base error carrying the HTTP status the API should respond with."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_body(self) -> Dict[str, Any]:
        return {"error": self.message}


class KnowledgeBaseValidationError(KnowledgeBaseError):
    status_code = 400


class KnowledgeBaseNotFoundError(KnowledgeBaseError):
    status_code = 404

    def __init__(self, message: str = "Knowledge base not found") -> None:
        super().__init__(message)


class AgentConflictError(KnowledgeBaseError):
    """Raised when proposed agents already belong to another knowledge base."""

    status_code = 409

    def __init__(self, conflicts: List[Dict[str, str]]) -> None:
        detail = "; ".join(
            f'"{c["agentId"]}" is already assigned to "{c["kbTitle"]}"' for c in conflicts
        )
        super().__init__(
            f"Agent conflict: {detail}. Each agent can only have one knowledge base."
        )
        self.conflicts = conflicts

    def to_body(self) -> Dict[str, Any]:
        return {"error": self.message, "conflicts": self.conflicts}


class KnowledgeBaseStorageError(KnowledgeBaseError):
    status_code = 500


def slugify(text: str) -> str:
    """Lowercase ``text`` and collapse non-alphanumeric runs into single dashes."""

    slug = re.sub(r"[^a-z0-9]+", "-", text.lower().strip()).strip("-")
    return slug[:SLUG_MAX_LENGTH]


def storage_path(organization_id: str, kb_id: int | str, title: str) -> str:
    """Return the blob path ``{organization}/{id}-{slug}.md`` for a knowledge base."""

    return f"{organization_id}/{kb_id}-{slugify(title) or 'untitled'}.md"


@dataclass(frozen=True)
class KnowledgeBaseInput:
    title: str
    content: str
    agent_ids: List[str] = field(default_factory=list)
    source_url: Optional[str] = None


def validate_payload(payload: KnowledgeBasePayload) -> KnowledgeBaseInput:
    """Check the create/update body and normalise it.

    Raises:
        KnowledgeBaseValidationError: If the title is blank, the content is
            empty or the agent id list is missing.
    """

    if not isinstance(payload.title, str) or not payload.title.strip():
        raise KnowledgeBaseValidationError("A document name is required")
    if not isinstance(payload.content, str) or not payload.content:
        raise KnowledgeBaseValidationError("Content is required")
    if not isinstance(payload.agent_ids, list):
        raise KnowledgeBaseValidationError("Agent IDs array is required")
    agent_ids: List[str] = []
    for agent_id in payload.agent_ids:
        if str(agent_id) not in agent_ids:
            agent_ids.append(str(agent_id))
    return KnowledgeBaseInput(
        title=payload.title.strip(),
        content=payload.content,
        agent_ids=agent_ids,
        source_url=payload.source_url,
    )


def _serialize_summary(kb: KnowledgeBase) -> Dict[str, Any]:
    return {
        "id": str(kb.id),
        "title": kb.title,
        "sourceUrl": kb.source_url,
        "agentIds": list(kb.agent_ids or []),
        "hasVoiceDocument": bool(kb.voice_document_id),
        "createdAt": kb.created_at,
        "updatedAt": kb.updated_at,
    }


class KnowledgeBaseService:
    """Knowledge-base operations scoped to one organization.

    Content lives in blob storage; when agents are associated the same
    markdown is uploaded to the voice platform as a document and attached to
    each agent's prompt. Vendor calls after the content upload are
    best-effort: failures are logged and the database write still happens.
    The one-agent-per-knowledge-base rule is a read-then-write check with no
    isolation against concurrent editors.
    """

    def __init__(
        self,
        session: Session,
        *,
        organization_id: str,
        storage: KnowledgeBaseStorage,
        voice: VoicePlatformClient | None = None,
    ) -> None:
        self.session = session
        self.organization_id = organization_id
        self.storage = storage
        self.voice = voice

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _get(self, kb_id: int) -> KnowledgeBase:
        kb = self.session.scalars(
            select(KnowledgeBase).where(
                KnowledgeBase.id == kb_id,
                KnowledgeBase.clerk_organization_id == self.organization_id,
            )
        ).first()
        if kb is None:
            raise KnowledgeBaseNotFoundError()
        return kb

    def _others(self, exclude_id: int | None = None) -> Sequence[KnowledgeBase]:
        stmt = select(KnowledgeBase).where(
            KnowledgeBase.clerk_organization_id == self.organization_id
        )
        if exclude_id is not None:
            stmt = stmt.where(KnowledgeBase.id != exclude_id)
        return self.session.scalars(stmt.order_by(KnowledgeBase.id)).all()

    def list_all(self) -> List[Dict[str, Any]]:
        rows = self.session.scalars(
            select(KnowledgeBase)
            .where(KnowledgeBase.clerk_organization_id == self.organization_id)
            .order_by(KnowledgeBase.updated_at.desc(), KnowledgeBase.id.desc())
        ).all()
        return [_serialize_summary(kb) for kb in rows]

    def get(self, kb_id: int) -> Dict[str, Any]:
        kb = self._get(kb_id)
        try:
            content = self.storage.download(kb.storage_path)
        except StorageError as exc:
            logger.error("Failed to download knowledge base %s: %s", kb.id, exc)
            raise KnowledgeBaseStorageError(
                "Failed to retrieve knowledge base content"
            ) from exc
        return {
            "id": str(kb.id),
            "title": kb.title,
            "content": content,
            "agentIds": list(kb.agent_ids or []),
            "sourceUrl": kb.source_url,
            "voiceDocumentId": kb.voice_document_id,
            "updatedAt": kb.updated_at,
        }

    def agent_assignments(self, exclude_id: int | None = None) -> Dict[str, Dict[str, str]]:
        """Map each assigned agent id to the knowledge base that claims it."""

        assignments: Dict[str, Dict[str, str]] = {}
        for kb in self._others(exclude_id):
            for agent_id in kb.agent_ids or []:
                assignments[agent_id] = {"kbId": str(kb.id), "kbTitle": kb.title}
        return assignments

    def check_conflicts(self, agent_ids: List[str], exclude_id: int | None = None) -> None:
        if not agent_ids:
            return
        conflicts: List[Dict[str, str]] = []
        for kb in self._others(exclude_id):
            claimed = set(kb.agent_ids or [])
            for agent_id in agent_ids:
                if agent_id in claimed:
                    conflicts.append({"agentId": agent_id, "kbTitle": kb.title})
        if conflicts:
            raise AgentConflictError(conflicts)

    # ------------------------------------------------------------------
    # Voice-platform sync
    # ------------------------------------------------------------------

    def _attach(self, agent_id: str, documents: List[Dict[str, str]]) -> None:
        if self.voice is None:
            return
        try:
            self.voice.set_agent_knowledge_base(agent_id, documents)
        except UpstreamError as exc:
            logger.error("Failed to update knowledge base of agent %s: %s", agent_id, exc)

    def _publish_document(self, data: KnowledgeBaseInput) -> Optional[str]:
        """Upload the markdown as a voice-platform document and attach it to agents."""

        if self.voice is None or not data.agent_ids:
            return None
        try:
            document_id = self.voice.create_document_from_markdown(data.title, data.content)
        except UpstreamError as exc:
            logger.error("Failed to create voice document for %r: %s", data.title, exc)
            return None
        logger.info("Created voice document %s", document_id)
        entry = [{"type": "file", "name": data.title, "id": document_id}]
        for agent_id in data.agent_ids:
            self._attach(agent_id, entry)
        return document_id

    def _delete_document(self, document_id: str) -> None:
        if self.voice is None:
            return
        try:
            self.voice.delete_document(document_id)
        except UpstreamError as exc:
            logger.error("Failed to delete voice document %s: %s", document_id, exc)

    def _remove_blob(self, path: str) -> None:
        try:
            self.storage.remove([path])
        except StorageError as exc:
            logger.error("Failed to remove stored content %s: %s", path, exc)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(self, payload: KnowledgeBasePayload) -> Dict[str, Any]:
        data = validate_payload(payload)
        self.check_conflicts(data.agent_ids)

        logger.info("Creating knowledge base %r for %s", data.title, self.organization_id)
        kb = KnowledgeBase(
            clerk_organization_id=self.organization_id,
            title=data.title,
            storage_path="",
            source_url=data.source_url,
            agent_ids=list(data.agent_ids),
        )
        self.session.add(kb)
        self.session.commit()

        path = storage_path(self.organization_id, kb.id, data.title)
        try:
            self.storage.upload(path, data.content)
        except StorageError as exc:
            logger.error("Failed to upload knowledge base %s: %s", kb.id, exc)
            self.session.delete(kb)
            self.session.commit()
            raise KnowledgeBaseStorageError("Failed to save knowledge base content") from exc

        document_id = self._publish_document(data)

        kb.storage_path = path
        kb.voice_document_id = document_id
        self.session.commit()
        logger.info("Knowledge base %s created", kb.id)
        return {"success": True, "id": str(kb.id), "documentId": document_id}

    def update(self, kb_id: int, payload: KnowledgeBasePayload) -> Dict[str, Any]:
        kb = self._get(kb_id)
        data = validate_payload(payload)
        self.check_conflicts(data.agent_ids, exclude_id=kb.id)

        path = storage_path(self.organization_id, kb.id, data.title)
        previous_path = kb.storage_path
        previous_document = kb.voice_document_id
        previous_agents = list(kb.agent_ids or [])

        logger.info("Updating knowledge base %s", kb.id)
        try:
            self.storage.upload(path, data.content)
        except StorageError as exc:
            logger.error("Failed to upload knowledge base %s: %s", kb.id, exc)
            raise KnowledgeBaseStorageError("Failed to save knowledge base content") from exc

        if previous_path and previous_path != path:
            self._remove_blob(previous_path)

        document_id = self._publish_document(data)

        for agent_id in previous_agents:
            if agent_id not in data.agent_ids:
                self._attach(agent_id, [])
                logger.info("Detached knowledge base %s from agent %s", kb.id, agent_id)

        if previous_document and document_id and previous_document != document_id:
            self._delete_document(previous_document)

        kb.title = data.title
        kb.storage_path = path
        kb.voice_document_id = document_id or previous_document
        kb.source_url = data.source_url if data.source_url is not None else kb.source_url
        kb.agent_ids = list(data.agent_ids)
        kb.updated_at = dt.datetime.now(dt.timezone.utc)
        self.session.commit()
        return {"success": True, "documentId": document_id}

    def delete(self, kb_id: int) -> Dict[str, Any]:
        kb = self._get(kb_id)
        for agent_id in kb.agent_ids or []:
            self._attach(agent_id, [])
        if kb.voice_document_id:
            self._delete_document(kb.voice_document_id)
        if kb.storage_path:
            self._remove_blob(kb.storage_path)
        self.session.delete(kb)
        self.session.commit()
        logger.info("Knowledge base %s deleted", kb_id)
        return {"success": True}


__all__ = [
    "AgentConflictError",
    "KnowledgeBaseError",
    "KnowledgeBaseInput",
    "KnowledgeBaseNotFoundError",
    "KnowledgeBaseService",
    "KnowledgeBaseStorageError",
    "KnowledgeBaseValidationError",
    "slugify",
    "storage_path",
    "validate_payload",
]
