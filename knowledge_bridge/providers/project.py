"""
Project information and session context tools.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Tuple

from knowledge_bridge.core.identity import SessionContext
from knowledge_bridge.mcp.utils import utc_timestamp

from .base import PROJECT_ID_PROPERTY, CapabilityProvider, ToolDescriptor, format_success, is_not_found, project_endpoint, tool

logger = logging.getLogger("KnowledgeBridge.providers.project")

TOOLS: Tuple[ToolDescriptor, ...] = (
    tool(
        "list_projects",
        "List all available projects in the system",
        {
            "include_stats": {
                "type": "boolean",
                "description": "Include basic statistics for each project (default: false)",
            }
        },
    ),
    tool(
        "get_project_info",
        "Get detailed information about a specific project",
        {
            "projectId": PROJECT_ID_PROPERTY,
            "include_stats": {"type": "boolean", "description": "Include detailed statistics (default: true)"},
        },
    ),
    tool(
        "get_current_context",
        "Get information about the current active project and system context",
    ),
)


class ProjectProvider(CapabilityProvider):
    name = "project"

    def list_tools(self) -> List[ToolDescriptor]:
        return list(TOOLS)

    async def tool_list_projects(self, project_id: str, args: Dict[str, Any], context: SessionContext) -> Dict[str, Any]:
        # The remote API has no project listing endpoint.
        notice = {
            "message": "Project listing not available - no projects endpoint implemented",
            "available": False,
            "currentProject": "Use get_current_context to see active project",
            "timestamp": utc_timestamp(),
        }
        return format_success(notice, "Project listing unavailable")

    async def tool_get_project_info(self, project_id: str, args: Dict[str, Any], context: SessionContext) -> Dict[str, Any]:
        try:
            result = await self.request(project_endpoint(project_id, "/stats"))
        except Exception as exc:
            if not is_not_found(exc):
                raise
            unavailable = {
                "projectId": project_id,
                "available": False,
                "message": "Project information not available",
                "timestamp": utc_timestamp(),
            }
            return format_success(unavailable, f"Project {project_id} not accessible")
        return format_success(result, f"Retrieved info for project: {project_id}")

    async def tool_get_current_context(self, project_id: str, args: Dict[str, Any], context: SessionContext) -> Dict[str, Any]:
        current = context.project_id
        info: Dict[str, Any] = {
            "currentProject": current,
            "apiUrl": context.api_url,
            "hasApiKey": context.has_credential,
            "timestamp": utc_timestamp(),
        }
        try:
            project_info = await self.tool_get_project_info(current, {"include_stats": True}, context)
        except Exception as exc:
            logger.warning("Could not retrieve project info for '%s': %s", current, exc)
            info["projectInfo"] = None
            info["warning"] = f"Could not retrieve project info: {exc}"
            return format_success(info, f"Current context: {current} (limited info)")

        info["projectInfo"] = project_info.get("data", project_info)
        return format_success(info, f"Current context: {current}")
