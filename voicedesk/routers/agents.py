"""Voice agent listing API router."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..agents import list_agent_summaries, resolve_agent_access
from ..clients import VoicePlatformClient
from ..dependencies import get_voice_client
from ..security.auth import CurrentMember, get_current_member, get_db_session

router = APIRouter(prefix="/api/agents", tags=["agents"])


@router.get("")
def list_agents(
    member: CurrentMember = Depends(get_current_member),
    session: Session = Depends(get_db_session),
    voice: VoicePlatformClient = Depends(get_voice_client),
) -> dict[str, Any]:
    """Agents visible to the caller, with a hint when none are available."""

    access = resolve_agent_access(
        session,
        organization_id=member.organization_id,
        user_id=member.user_id,
        is_admin=member.is_admin,
    )
    body: dict[str, Any] = {
        "agents": list_agent_summaries(voice, access) if access.agent_ids else [],
        "configured": access.configured,
    }
    if access.message:
        body["message"] = access.message
    return body
