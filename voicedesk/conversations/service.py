"""Call analytics: conversation listings, stats and transcript details."""

from __future__ import annotations

import datetime as dt
import json
import logging
import math
from typing import Any, Dict, Iterable, List, Optional, Set

from voicedesk.agents import AgentAccess, fetch_agent_names
from voicedesk.clients import VoicePlatformClient
from voicedesk.core.concurrency import bounded_map

logger = logging.getLogger(__name__)

TIME_WINDOWS = ("today", "last_7_days", "this_month", "last_30_days")
DEFAULT_TIME_WINDOW = "last_7_days"
PAGE_SIZE = 100
TRANSFER_TOOL = "transfer_to_agent"


def normalize_time_window(value: str | None) -> str:
    return value if value in TIME_WINDOWS else DEFAULT_TIME_WINDOW


def time_window_start(time_window: str | None, now: dt.datetime | None = None) -> int:
    """Return the unix timestamp at which ``time_window`` begins.

    ``today`` and ``this_month`` are aligned to the server's local calendar;
    unknown windows fall back to the last seven days.
    """

    current = now or dt.datetime.now().astimezone()
    window = normalize_time_window(time_window)
    if window == "today":
        start = current.replace(hour=0, minute=0, second=0, microsecond=0)
    elif window == "this_month":
        start = current.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    elif window == "last_30_days":
        start = current - dt.timedelta(days=30)
    else:
        start = current - dt.timedelta(days=7)
    return int(math.floor(start.timestamp()))


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def compute_stats(conversations: List[Dict[str, Any]]) -> Dict[str, int]:
    total = len(conversations)
    if total == 0:
        return {"totalCalls": 0, "avgDurationSecs": 0, "successRate": 0}
    duration = sum(c.get("call_duration_secs") or 0 for c in conversations)
    successes = sum(1 for c in conversations if c.get("call_successful") == "success")
    return {
        "totalCalls": total,
        "avgDurationSecs": _round_half_up(duration / total),
        "successRate": _round_half_up(successes / total * 100),
    }


def _summary(conversation: Dict[str, Any], phone_number: str | None) -> Dict[str, Any]:
    return {
        "conversation_id": conversation.get("conversation_id"),
        "agent_id": conversation.get("agent_id"),
        "agent_name": conversation.get("agent_name") or None,
        "start_time_unix_secs": conversation.get("start_time_unix_secs"),
        "call_duration_secs": conversation.get("call_duration_secs"),
        "status": conversation.get("status"),
        "call_successful": conversation.get("call_successful"),
        "caller_phone_number": phone_number,
    }


def list_conversations(
    voice: VoicePlatformClient,
    access: AgentAccess,
    *,
    agent_id: str | None = None,
    time_window: str | None = None,
    now: dt.datetime | None = None,
) -> Dict[str, Any]:
    """List recent conversations visible to the caller with aggregate stats.

    The caller must have checked ``agent_id`` against ``access`` already.
    Raises :class:`~voicedesk.clients.UpstreamError` if the listing fails;
    per-conversation phone lookups never fail the request.
    """

    if not agent_id and not access.agent_ids:
        return {"conversations": [], "stats": compute_stats([])}

    raw = voice.list_conversations(
        call_start_after_unix=time_window_start(time_window, now),
        agent_id=agent_id,
        page_size=PAGE_SIZE,
    )
    if not agent_id:
        raw = [c for c in raw if c.get("agent_id") in access.agent_ids]

    phone_numbers = bounded_map(
        lambda c: voice.get_caller_number(str(c.get("conversation_id"))),
        raw,
        voice.fanout_workers,
    )
    conversations = [_summary(c, phone) for c, phone in zip(raw, phone_numbers)]
    return {"conversations": conversations, "stats": compute_stats(conversations)}


def _as_mapping(value: Any) -> Optional[Dict[str, Any]]:
    if isinstance(value, dict):
        return value
    if isinstance(value, str) and value:
        try:
            decoded = json.loads(value)
        except ValueError:
            return None
        return decoded if isinstance(decoded, dict) else None
    return None


def _add_endpoints(target: Set[str], data: Optional[Dict[str, Any]]) -> None:
    if not data:
        return
    for key in ("from_agent", "to_agent"):
        if data.get(key):
            target.add(str(data[key]))


def extract_transfer_agent_ids(transcript: Iterable[Dict[str, Any]]) -> Set[str]:
    """Collect agent ids referenced by agent-transfer tool calls in a transcript.

    Looks at the call parameters (``agent_id``), the matching tool result
    (``from_agent``/``to_agent``) and transfer results nested in
    ``steps[].results[]`` of any tool result. Malformed JSON is ignored.
    """

    messages = [m for m in transcript if isinstance(m, dict)]
    results_by_request: Dict[str, Dict[str, Any]] = {}
    for message in messages:
        for result in message.get("tool_results") or []:
            if isinstance(result, dict) and result.get("request_id"):
                results_by_request[result["request_id"]] = result

    agent_ids: Set[str] = set()
    for message in messages:
        for call in message.get("tool_calls") or []:
            if not isinstance(call, dict):
                continue
            result = results_by_request.get(call.get("request_id") or "")
            result_data = _as_mapping((result or {}).get("result_value"))

            if call.get("tool_name") == TRANSFER_TOOL:
                params = _as_mapping(call.get("params_as_json") or "{}")
                if params and params.get("agent_id"):
                    agent_ids.add(str(params["agent_id"]))
                _add_endpoints(agent_ids, result_data)

            steps = (result_data or {}).get("steps")
            if not isinstance(steps, list):
                continue
            for step in steps:
                step_results = step.get("results") if isinstance(step, dict) else None
                if not isinstance(step_results, list):
                    continue
                for step_result in step_results:
                    if not isinstance(step_result, dict):
                        continue
                    if step_result.get("tool_name") != TRANSFER_TOOL:
                        continue
                    _add_endpoints(agent_ids, _as_mapping(step_result.get("result_value")))
                    _add_endpoints(agent_ids, _as_mapping(step_result.get("result")))
    return agent_ids


def _call_successful(data: Dict[str, Any]) -> str:
    if data.get("call_successful"):
        return data["call_successful"]
    analysis = data.get("analysis") or {}
    return "success" if analysis.get("call_successful") else "unknown"


def build_conversation_detail(
    voice: VoicePlatformClient, data: Dict[str, Any]
) -> Dict[str, Any]:
    """Shape an upstream conversation record, resolving transfer agent names."""

    metadata = data.get("metadata") or {}
    transcript = data.get("transcript") or []

    agent_names: Dict[str, str] = {}
    if data.get("agent_id"):
        agent_names[data["agent_id"]] = data.get("agent_name") or "Unknown Agent"

    transfer_ids = sorted(extract_transfer_agent_ids(transcript))
    if transfer_ids:
        logger.debug("Transfer agents referenced: %s", transfer_ids)
        for agent_id, name in fetch_agent_names(voice, transfer_ids).items():
            if name:
                agent_names[agent_id] = name

    return {
        "conversation_id": data.get("conversation_id"),
        "agent_id": data.get("agent_id"),
        "agent_name": data.get("agent_name") or None,
        "status": data.get("status"),
        "call_successful": _call_successful(data),
        "start_time_unix_secs": data.get("start_time_unix_secs")
        or metadata.get("start_time_unix_secs")
        or 0,
        "call_duration_secs": data.get("call_duration_secs")
        or metadata.get("call_duration_secs")
        or 0,
        "caller_phone_number": (metadata.get("phone_call") or {}).get("external_number")
        or None,
        "transcript": transcript,
        "analysis": data.get("analysis") or None,
        "agent_names": agent_names,
    }


__all__ = [
    "DEFAULT_TIME_WINDOW",
    "PAGE_SIZE",
    "TIME_WINDOWS",
    "build_conversation_detail",
    "compute_stats",
    "extract_transfer_agent_ids",
    "list_conversations",
    "normalize_time_window",
    "time_window_start",
]
