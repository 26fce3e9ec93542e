"""
Knowledge Bridge SDK public exports.
"""

from knowledge_bridge.sdk.errors import (
    ApiError,
    BridgeError,
    ConfigurationError,
    MalformedResponseError,
    UnknownResourceError,
    UnknownToolError,
    ValidationError,
    WebhookParseError,
)
from knowledge_bridge.sdk.events import EventChannel, EventKind
from knowledge_bridge.sdk.gateway import ApiGateway
from knowledge_bridge.sdk.webhook import ReceiverState, WebhookReceiver
from knowledge_bridge.sdk.client import KnowledgeClient

__all__ = [
    "KnowledgeClient",
    "ApiGateway",
    "WebhookReceiver",
    "ReceiverState",
    "EventChannel",
    "EventKind",
    "BridgeError",
    "ConfigurationError",
    "ValidationError",
    "UnknownToolError",
    "UnknownResourceError",
    "ApiError",
    "MalformedResponseError",
    "WebhookParseError",
]
