"""
Knowledge Bridge MCP Protocol Constants
"""

SUPPORTED_PROTOCOL_VERSIONS = ("2025-11-25", "2025-06-18", "2024-11-05")
JSONRPC_VERSION = "2.0"

# Standard JSON-RPC / MCP Error Codes
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

# Resource URIs
RESOURCE_CURRENT_PROJECT = "knowledge://project/current"
RESOURCE_SYSTEM_HEALTH = "knowledge://system/health"
RESOURCE_PORTABLE_INFO = "knowledge://portable/info"

JSON_MIME_TYPE = "application/json"
