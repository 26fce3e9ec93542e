"""
MCP stdio transport, JSON-RPC handlers and tool dispatch.
"""
