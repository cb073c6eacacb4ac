"""Role-resolved access to the organization's voice agents."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

from sqlalchemy import exists, select
from sqlalchemy.orm import Session

from voicedesk.clients import VoicePlatformClient
from voicedesk.core.concurrency import bounded_map
from voicedesk.models import AgentConfig, Location, PhoneNumberConfig, UserLocationAccess

logger = logging.getLogger(__name__)

UNCONFIGURED_MESSAGE = (
    "No voice agents are configured for your organization yet. "
    "Contact support to finish onboarding."
)
NO_ACCESS_MESSAGE = (
    "You do not have access to any locations. "
    "Ask an organization admin to grant you access."
)
UNASSIGNED_MESSAGE = (
    "Your voice agents are not assigned to a phone line yet. "
    "Contact support to finish onboarding."
)


@dataclass(frozen=True)
class AgentAccess:
    """Agent ids visible to a caller.

    ``configured`` is ``False`` only when the organization has no agent
    configuration at all. Admins who see no agents get an onboarding hint rather than an access one.
    """

    agent_ids: Tuple[str, ...]
    configured: bool = True
    is_admin: bool = False

    def allows(self, agent_id: str | None) -> bool:
        return bool(agent_id) and agent_id in self.agent_ids

    @property
    def message(self) -> str | None:
        if self.agent_ids:
            return None
        if not self.configured:
            return UNCONFIGURED_MESSAGE
        return UNASSIGNED_MESSAGE if self.is_admin else NO_ACCESS_MESSAGE


def resolve_agent_access(
    session: Session, *, organization_id: str, user_id: str, is_admin: bool
) -> AgentAccess:
    """Return the agent ids the caller may see.

    Admins see every agent reachable through the organization's locations and
    phone lines; members only those at locations they were granted.
    """

    stmt = (
        select(AgentConfig.agent_id)
        .join(PhoneNumberConfig, AgentConfig.phone_number_config_id == PhoneNumberConfig.id)
        .join(Location, PhoneNumberConfig.location_id == Location.id)
        .where(Location.clerk_organization_id == organization_id)
    )
    if not is_admin:
        stmt = stmt.join(
            UserLocationAccess,
            (UserLocationAccess.location_id == Location.id)
            & (UserLocationAccess.clerk_organization_id == organization_id)
            & (UserLocationAccess.clerk_user_id == user_id),
        )

    agent_ids: List[str] = []
    for agent_id in session.scalars(stmt.order_by(AgentConfig.id)):
        if agent_id not in agent_ids:
            agent_ids.append(agent_id)
    if agent_ids:
        return AgentAccess(agent_ids=tuple(agent_ids), configured=True, is_admin=is_admin)

    configured = session.scalar(
        select(
            exists().where(AgentConfig.clerk_organization_id == organization_id)
        )
    )
    return AgentAccess(agent_ids=(), configured=bool(configured), is_admin=is_admin)


def fetch_agent_names(
    voice: VoicePlatformClient, agent_ids: List[str] | Tuple[str, ...]
) -> Dict[str, str | None]:
    """Look up display names for ``agent_ids`` in parallel; failures map to ``None``."""

    names = bounded_map(voice.get_agent_name, agent_ids, voice.fanout_workers)
    return dict(zip(agent_ids, names))


def list_agent_summaries(
    voice: VoicePlatformClient, access: AgentAccess
) -> List[Dict[str, Any]]:
    """Return ``{"agent_id", "name"}`` for each reachable agent, skipping failures."""

    summaries: List[Dict[str, Any]] = []
    for agent_id, name in fetch_agent_names(voice, access.agent_ids).items():
        if name is None:
            logger.warning("Omitting agent %s: details unavailable", agent_id)
            continue
        summaries.append({"agent_id": agent_id, "name": name})
    return summaries


__all__ = [
    "AgentAccess",
    "NO_ACCESS_MESSAGE",
    "UNASSIGNED_MESSAGE",
    "UNCONFIGURED_MESSAGE",
    "fetch_agent_names",
    "list_agent_summaries",
    "resolve_agent_access",
]
