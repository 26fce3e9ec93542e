"""
Knowledge Bridge: Base Capability Provider
===========================================
Abstract base class for the tool providers exposed over MCP.

Each provider owns a fixed, ordered set of tools and provides:
  - list_tools() → list[ToolDescriptor]
  - owns(name)   → bool
  - async invoke(name, arguments, context) → result dict

Providers are responsible for:
  1. Validating required arguments before any request is issued
  2. Translating the call into one or more ApiGateway requests
  3. Wrapping the outcome in a success or error envelope (never raising)

Tool operations are coroutine methods named ``tool_<name>`` taking
``(project_id, arguments, context)``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from knowledge_bridge.core.identity import SessionContext
from knowledge_bridge.mcp.utils import public_tool_error_message, utc_timestamp
from knowledge_bridge.sdk.errors import ApiError, UnknownToolError, ValidationError
from knowledge_bridge.sdk.gateway import ApiGateway, project_endpoint, quote_segment, unwrap  # noqa: F401

logger = logging.getLogger("KnowledgeBridge.providers.base")

PROJECT_ID_PROPERTY = {
    "type": "string",
    "description": "Project ID (defaults to current project)",
}
NOTE_ID_PROPERTY = {
    "type": ["number", "string"],
    "description": "Note stable ID or content hash",
}


@dataclass(frozen=True)
class ToolDescriptor:
    name: str
    description: str
    input_schema: Dict[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})

    @property
    def required(self) -> Tuple[str, ...]:
        return tuple(self.input_schema.get("required", ()))

    def to_mcp(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }


def tool(name: str, description: str, properties: Optional[Dict[str, Any]] = None, required: Sequence[str] = ()) -> ToolDescriptor:
    """Shorthand for an object-typed tool schema."""
    schema: Dict[str, Any] = {"type": "object", "properties": dict(properties or {})}
    if required:
        schema["required"] = list(required)
    return ToolDescriptor(name=name, description=description, input_schema=schema)


def flag(value: Any) -> str:
    """Render a boolean query parameter the way the remote API expects."""
    return "true" if value is True or (isinstance(value, str) and value.lower() == "true") else "false"


def is_not_found(exc: BaseException) -> bool:
    return isinstance(exc, ApiError) and exc.status_code == 404


def format_success(data: Any, message: Optional[str] = None, **extras: Any) -> Dict[str, Any]:
    payload = {
        "success": True,
        "data": data,
        "message": message,
        "timestamp": utc_timestamp(),
    }
    payload.update(extras)
    return payload


def format_error(error: BaseException, tool_name: Optional[str] = None) -> Dict[str, Any]:
    return {
        "success": False,
        "error": public_tool_error_message(error),
        "tool": tool_name,
        "timestamp": utc_timestamp(),
    }


class CapabilityProvider(ABC):
    """
    Abstract base class for tool providers.

    Subclasses declare ``name`` and ``TOOLS`` and implement one
    ``tool_<name>`` coroutine per descriptor.
    """

    #: Provider identity, reported by the portable info resource
    name: str = "base"

    def __init__(self, gateway: ApiGateway) -> None:
        self.gateway = gateway

    @abstractmethod
    def list_tools(self) -> List[ToolDescriptor]:
        """Tool descriptors in a stable order."""

    def owns(self, tool_name: str) -> bool:
        return any(descriptor.name == tool_name for descriptor in self.list_tools())

    def _descriptor(self, tool_name: str) -> Optional[ToolDescriptor]:
        for descriptor in self.list_tools():
            if descriptor.name == tool_name:
                return descriptor
        return None

    @staticmethod
    def validate_params(arguments: Mapping[str, Any], required: Sequence[str]) -> None:
        missing = [key for key in required if arguments.get(key) is None]
        if missing:
            raise ValidationError(missing)

    @staticmethod
    def project_for(arguments: Mapping[str, Any], context: SessionContext) -> str:
        return arguments.get("projectId") or context.project_id

    async def invoke(
        self,
        tool_name: str,
        arguments: Optional[Mapping[str, Any]],
        context: SessionContext,
    ) -> Dict[str, Any]:
        """Run one tool; failures come back as an error envelope rather than raising."""
        arguments = dict(arguments or {})
        try:
            descriptor = self._descriptor(tool_name)
            operation = getattr(self, f"tool_{tool_name}", None)
            if descriptor is None or operation is None:
                raise UnknownToolError(tool_name)
            self.validate_params(arguments, descriptor.required)
            return await operation(self.project_for(arguments, context), arguments, context)
        except Exception as exc:
            logger.warning("Tool '%s' failed: %s", tool_name, exc)
            return format_error(exc, tool_name)

    async def request(self, path: str, **kwargs: Any) -> Any:
        return await self.gateway.request(path, **kwargs)
