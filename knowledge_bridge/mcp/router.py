"""
Tool and resource dispatch.

The router owns the ordered provider list and the session context. It maps a
tool name to exactly one provider and wraps every outcome in the MCP content
envelope; tool calls are never retried at this layer.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from knowledge_bridge.core.identity import SessionContext
from knowledge_bridge.providers.base import CapabilityProvider, ToolDescriptor
from knowledge_bridge.sdk.errors import ConfigurationError, UnknownResourceError, UnknownToolError
from knowledge_bridge.sdk.gateway import ApiGateway
from knowledge_bridge.version import __version__

from .protocol import JSON_MIME_TYPE, RESOURCE_CURRENT_PROJECT, RESOURCE_PORTABLE_INFO, RESOURCE_SYSTEM_HEALTH
from .utils import public_tool_error_message, safe_json_dumps, text_content, utc_timestamp

logger = logging.getLogger("KnowledgeBridge.mcp.router")

RESOURCES = (
    {
        "uri": RESOURCE_CURRENT_PROJECT,
        "name": "Current Project Context",
        "description": "Information about the current active project",
        "mimeType": JSON_MIME_TYPE,
    },
    {
        "uri": RESOURCE_SYSTEM_HEALTH,
        "name": "System Health",
        "description": "Health status of the knowledge API",
        "mimeType": JSON_MIME_TYPE,
    },
    {
        "uri": RESOURCE_PORTABLE_INFO,
        "name": "Portable Client Info",
        "description": "Information about this bridge",
        "mimeType": JSON_MIME_TYPE,
    },
)


class DispatchRouter:
    def __init__(
        self,
        providers: Sequence[CapabilityProvider],
        context: SessionContext,
        gateway: Optional[ApiGateway] = None,
        server_version: str = __version__,
    ) -> None:
        self.providers = list(providers)
        self.context = context
        self.gateway = gateway
        self.server_version = server_version
        self._check_unique_tool_names()

    def _check_unique_tool_names(self) -> None:
        owners: Dict[str, str] = {}
        for provider in self.providers:
            for descriptor in self._safe_list_tools(provider):
                if descriptor.name in owners:
                    raise ConfigurationError(
                        f"Duplicate tool name '{descriptor.name}' "
                        f"(providers '{owners[descriptor.name]}' and '{provider.name}')"
                    )
                owners[descriptor.name] = provider.name

    @staticmethod
    def _safe_list_tools(provider: CapabilityProvider) -> List[ToolDescriptor]:
        try:
            return list(provider.list_tools())
        except Exception:
            logger.exception("Provider '%s' failed to enumerate tools", provider.name)
            return []

    def list_all_tools(self) -> List[ToolDescriptor]:
        tools: List[ToolDescriptor] = []
        for provider in self.providers:
            tools.extend(self._safe_list_tools(provider))
        return tools

    def find_provider(self, name: str) -> Optional[CapabilityProvider]:
        for provider in self.providers:
            try:
                if provider.owns(name):
                    return provider
            except Exception:
                logger.exception("Provider '%s' failed ownership check for '%s'", provider.name, name)
        return None

    async def dispatch(self, name: str, arguments: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        provider = self.find_provider(name)
        if provider is None:
            raise UnknownToolError(name)
        return await provider.invoke(name, arguments or {}, self.context)

    async def call_tool(self, name: str, arguments: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """Protocol-facing tool call; always returns a content envelope."""
        try:
            result = await self.dispatch(name, arguments)
        except Exception as exc:
            logger.error("Tool execution failed: %s - %s", name, exc)
            return text_content(
                {
                    "error": public_tool_error_message(exc),
                    "tool": name,
                    "timestamp": utc_timestamp(),
                },
                is_error=True,
            )

        failed = isinstance(result, dict) and result.get("success") is False
        return text_content(result, is_error=failed)

    def list_resources(self) -> List[Dict[str, Any]]:
        return [dict(resource) for resource in RESOURCES]

    async def read_resource(self, uri: str) -> Dict[str, Any]:
        if uri == RESOURCE_CURRENT_PROJECT:
            payload = {
                "currentProject": self.context.project_id,
                "apiUrl": self.context.api_url,
                "timestamp": utc_timestamp(),
                "mode": "portable",
            }
        elif uri == RESOURCE_SYSTEM_HEALTH:
            payload = await self.system_health()
        elif uri == RESOURCE_PORTABLE_INFO:
            payload = {
                "name": "Knowledge Bridge",
                "version": self.server_version,
                "project": self.context.project_id,
                "apiUrl": self.context.api_url,
                "handlers": [provider.name for provider in self.providers],
                "toolCount": len(self.list_all_tools()),
                "capabilities": [
                    "Full API access via capability providers",
                    "Webhook notifications for database changes",
                    "Project isolation and authentication",
                ],
            }
        else:
            raise UnknownResourceError(uri)

        return {
            "contents": [
                {
                    "uri": uri,
                    "mimeType": JSON_MIME_TYPE,
                    "text": safe_json_dumps(payload),
                }
            ]
        }

    async def system_health(self) -> Dict[str, Any]:
        """Probe the remote API once; never raises."""
        ok = False
        error: Optional[str] = "No API gateway configured"
        if self.gateway is not None:
            try:
                ok, error = await self.gateway.probe("/health")
            except Exception as exc:
                ok, error = False, public_tool_error_message(exc)

        api: Dict[str, Any] = {"url": self.context.api_url, "accessible": ok}
        if ok:
            api["response_time"] = "OK"
        else:
            api["error"] = error
        return {
            "status": "healthy" if ok else "degraded",
            "currentProject": self.context.project_id,
            "api": api,
            "mode": "portable",
            "timestamp": utc_timestamp(),
        }

    def list_prompts(self) -> List[Dict[str, Any]]:
        return []
