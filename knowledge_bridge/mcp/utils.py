import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .protocol import SUPPORTED_PROTOCOL_VERSIONS

logger = logging.getLogger("KnowledgeBridge.mcp.utils")


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a trailing Z."""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def safe_json_dumps(payload: Any) -> str:
    """Pretty-print a payload for tool/resource text, falling back to str() for odd values."""
    try:
        return json.dumps(payload, indent=2)
    except (TypeError, ValueError):
        return json.dumps(payload, indent=2, default=str)


def text_content(payload: Any, *, is_error: bool = False) -> Dict[str, Any]:
    """Wrap a payload as an MCP tools/call result."""
    result: Dict[str, Any] = {
        "content": [
            {
                "type": "text",
                "text": safe_json_dumps(payload),
            }
        ]
    }
    if is_error:
        result["isError"] = True
    return result


def negotiated_protocol_version(requested: Optional[str]) -> Optional[str]:
    """Negotiate the protocol version with the client."""
    if not requested:
        return SUPPORTED_PROTOCOL_VERSIONS[0]
    if requested in SUPPORTED_PROTOCOL_VERSIONS:
        return requested
    return None


def build_initialize_instructions(project_id: str, api_url: str, startup_warnings: Optional[List[str]] = None) -> str:
    """Build a set of instructions for the client during initialization."""
    base_instructions = (
        f"Knowledge bridge for project '{project_id}' at {api_url}. "
        "Use list_notes/search to find notes, get_note/create_note/update_note to work with them, "
        "and the wikilink tools to manage connections."
    )
    if not startup_warnings:
        return base_instructions
    bullet_list = "\n".join(f"- {warning}" for warning in startup_warnings)
    return f"{base_instructions}\n\nStartup checks:\n{bullet_list}"


def public_tool_error_message(error: BaseException) -> str:
    """Error text suitable for a tool result body."""
    msg = str(error)
    return msg or error.__class__.__name__
