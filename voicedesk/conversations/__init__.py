"""Call analytics over the voice platform's conversation records."""

from .service import (
    build_conversation_detail,
    compute_stats,
    extract_transfer_agent_ids,
    list_conversations,
    time_window_start,
)

__all__ = [
    "build_conversation_detail",
    "compute_stats",
    "extract_transfer_agent_ids",
    "list_conversations",
    "time_window_start",
]
