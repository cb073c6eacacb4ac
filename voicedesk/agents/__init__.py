"""Voice agent access resolution."""

from .access import (
    NO_ACCESS_MESSAGE,
    UNASSIGNED_MESSAGE,
    UNCONFIGURED_MESSAGE,
    AgentAccess,
    fetch_agent_names,
    list_agent_summaries,
    resolve_agent_access,
)

__all__ = [
    "AgentAccess",
    "NO_ACCESS_MESSAGE",
    "UNASSIGNED_MESSAGE",
    "UNCONFIGURED_MESSAGE",
    "fetch_agent_names",
    "list_agent_summaries",
    "resolve_agent_access",
]
