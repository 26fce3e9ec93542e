"""
Knowledge Bridge: MCP access to a remote knowledge API.
"""

from knowledge_bridge.version import __version__
from knowledge_bridge.sdk import (
    ApiError,
    ApiGateway,
    BridgeError,
    ConfigurationError,
    EventChannel,
    EventKind,
    KnowledgeClient,
    WebhookReceiver,
)
from knowledge_bridge.core.config import BridgeConfig
from knowledge_bridge.core.identity import SessionContext, resolve_project_id

__all__ = [
    "__version__",
    "BridgeConfig",
    "SessionContext",
    "resolve_project_id",
    "KnowledgeClient",
    "ApiGateway",
    "WebhookReceiver",
    "EventChannel",
    "EventKind",
    "BridgeError",
    "ConfigurationError",
    "ApiError",
]
