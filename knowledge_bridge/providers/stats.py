"""
Project, system, usage and folder statistics tools.
"""

from __future__ import annotations

from typing import Any, Dict, List, Tuple

from knowledge_bridge.core.identity import SessionContext
from knowledge_bridge.mcp.utils import utc_timestamp

from .base import (
    PROJECT_ID_PROPERTY,
    CapabilityProvider,
    ToolDescriptor,
    format_success,
    is_not_found,
    project_endpoint,
    quote_segment,
    tool,
)

TOOLS: Tuple[ToolDescriptor, ...] = (
    tool(
        "get_project_stats",
        "Get comprehensive statistics for a specific project",
        {
            "projectId": PROJECT_ID_PROPERTY,
            "include_recent_activity": {
                "type": "boolean",
                "description": "Include recent activity summary (default: true)",
            },
            "include_embedding_stats": {
                "type": "boolean",
                "description": "Include embedding/vector store statistics (default: true)",
            },
        },
    ),
    tool(
        "get_system_stats",
        "Get system-wide statistics and health information",
        {
            "include_project_breakdown": {
                "type": "boolean",
                "description": "Include per-project statistics breakdown (default: false)",
            }
        },
    ),
    tool(
        "get_usage_stats",
        "Get usage statistics for a project",
        {"projectId": PROJECT_ID_PROPERTY},
    ),
    tool(
        "get_folder_stats",
        "Get statistics for a virtual folder",
        {
            "projectId": PROJECT_ID_PROPERTY,
            "folder": {"type": "string", "description": "Virtual folder path", "minLength": 1},
        },
        required=["folder"],
    ),
)


class StatsProvider(CapabilityProvider):
    name = "stats"

    def list_tools(self) -> List[ToolDescriptor]:
        return list(TOOLS)

    async def tool_get_project_stats(self, project_id: str, args: Dict[str, Any], context: SessionContext) -> Dict[str, Any]:
        params = []
        if args.get("include_recent_activity") is not False:
            params.append(("include_recent_activity", "true"))
        if args.get("include_embedding_stats") is not False:
            params.append(("include_embedding_stats", "true"))

        result = await self.request(project_endpoint(project_id, "/stats"), params=params)
        return format_success(result, f"Retrieved statistics for project: {project_id}")

    async def tool_get_system_stats(self, project_id: str, args: Dict[str, Any], context: SessionContext) -> Dict[str, Any]:
        params = [("include_project_breakdown", "true")] if args.get("include_project_breakdown") else []
        try:
            result = await self.request("/api/stats", params=params)
        except Exception as exc:
            if not is_not_found(exc):
                raise
            basic = {
                "api": {"url": context.api_url, "accessible": True},
                "message": "System statistics not available - no system-wide stats endpoint",
                "timestamp": utc_timestamp(),
            }
            return format_success(basic, "Basic system information")
        return format_success(result, "Retrieved system statistics")

    async def tool_get_usage_stats(self, project_id: str, args: Dict[str, Any], context: SessionContext) -> Dict[str, Any]:
        try:
            result = await self.request(project_endpoint(project_id, "/usage/stats"))
        except Exception as exc:
            if not is_not_found(exc):
                raise
            return format_success(
                {"available": False, "projectId": project_id, "message": "Usage statistics not available"},
                "Usage statistics unavailable",
            )
        return format_success(result, f"Retrieved usage statistics for project: {project_id}")

    async def tool_get_folder_stats(self, project_id: str, args: Dict[str, Any], context: SessionContext) -> Dict[str, Any]:
        folder = args["folder"]
        try:
            result = await self.request(project_endpoint(project_id, f"/folders/{quote_segment(folder)}/stats"))
        except Exception as exc:
            if not is_not_found(exc):
                raise
            return format_success(
                {
                    "available": False,
                    "projectId": project_id,
                    "folder": folder,
                    "message": "Folder statistics not available",
                },
                "Folder statistics unavailable",
            )
        return format_success(result, f"Retrieved statistics for folder: {folder}")
