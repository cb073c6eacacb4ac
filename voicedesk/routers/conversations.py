"""Call analytics API router."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from ..agents import AgentAccess, resolve_agent_access
from ..clients import UpstreamError, VoicePlatformClient
from ..conversations import build_conversation_detail, list_conversations
from ..dependencies import get_voice_client
from ..security.auth import CurrentMember, get_current_member, get_db_session

router = APIRouter(prefix="/api/conversations", tags=["conversations"])

logger = logging.getLogger(__name__)


def get_agent_access(
    member: CurrentMember = Depends(get_current_member),
    session: Session = Depends(get_db_session),
) -> AgentAccess:
    return resolve_agent_access(
        session,
        organization_id=member.organization_id,
        user_id=member.user_id,
        is_admin=member.is_admin,
    )


@router.get("")
def list_recent_conversations(
    agent_id: str | None = Query(default=None),
    time_window: str | None = Query(default=None),
    access: AgentAccess = Depends(get_agent_access),
    voice: VoicePlatformClient = Depends(get_voice_client),
) -> dict[str, Any]:
    """Conversations in ``time_window`` with call volume and success stats."""

    if agent_id and not access.allows(agent_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Agent not found")
    try:
        return list_conversations(
            voice, access, agent_id=agent_id, time_window=time_window
        )
    except UpstreamError as exc:
        logger.error("Failed to fetch conversations: %s", exc)
        raise HTTPException(
            status_code=exc.status_code or status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch conversations",
        ) from exc


@router.get("/{conversation_id}")
def get_conversation(
    conversation_id: str,
    access: AgentAccess = Depends(get_agent_access),
    voice: VoicePlatformClient = Depends(get_voice_client),
) -> dict[str, Any]:
    """Transcript, analysis and participating agent names for one call."""

    try:
        data = voice.get_conversation(conversation_id)
    except UpstreamError as exc:
        if exc.status_code == status.HTTP_404_NOT_FOUND:
            raise HTTPException(status_code=404, detail="Conversation not found") from exc
        logger.error("Failed to fetch conversation %s: %s", conversation_id, exc)
        raise HTTPException(
            status_code=exc.status_code or status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch conversation",
        ) from exc

    if not access.allows(data.get("agent_id")):
        raise HTTPException(status_code=404, detail="Conversation not found")
    return build_conversation_detail(voice, data)
