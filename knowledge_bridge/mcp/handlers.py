import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from knowledge_bridge.sdk.errors import UnknownResourceError

from .protocol import INTERNAL_ERROR, INVALID_PARAMS
from .router import DispatchRouter
from .utils import build_initialize_instructions, negotiated_protocol_version

logger = logging.getLogger("KnowledgeBridge.mcp.handlers")

SendResultFn = Callable[[Any, Dict[str, Any]], Awaitable[None]]
SendErrorFn = Callable[[Any, int, str], Awaitable[None]]


@dataclass
class SessionState:
    """Per-connection protocol state."""
    negotiated: bool = False
    initialized: bool = False
    protocol_version: Optional[str] = None
    client_capabilities: Dict[str, Any] = field(default_factory=dict)
    client_info: Dict[str, Any] = field(default_factory=dict)


async def handle_initialize(
    msg_id: Any,
    params: Dict[str, Any],
    session: SessionState,
    router: DispatchRouter,
    server_info: Dict[str, str],
    send_error_fn: SendErrorFn,
    send_result_fn: SendResultFn,
    startup_warnings: Optional[List[str]] = None,
) -> None:
    """Handle protocol negotiation and server initialization."""
    if not isinstance(params, dict):
        await send_error_fn(msg_id, INVALID_PARAMS, "initialize params must be an object")
        return

    requested_version = params.get("protocolVersion")
    negotiated_version = negotiated_protocol_version(requested_version)
    if not negotiated_version:
        await send_error_fn(msg_id, INVALID_PARAMS, f"Unsupported protocol version {requested_version}")
        return

    session.negotiated = True
    session.protocol_version = negotiated_version
    capabilities = params.get("capabilities")
    session.client_capabilities = capabilities if isinstance(capabilities, dict) else {}
    client_info = params.get("clientInfo")
    session.client_info = client_info if isinstance(client_info, dict) else {}
    logger.info(
        "Negotiated protocol %s with client %s",
        negotiated_version,
        session.client_info.get("name", "unknown"),
    )

    result = {
        "protocolVersion": negotiated_version,
        "capabilities": {
            "tools": {"listChanged": False},
            "resources": {"subscribe": False, "listChanged": False},
            "prompts": {"listChanged": False},
        },
        "serverInfo": dict(server_info),
        "instructions": build_initialize_instructions(
            router.context.project_id, router.context.api_url, startup_warnings
        ),
    }
    await send_result_fn(msg_id, result)


async def handle_list_tools(msg_id: Any, router: DispatchRouter, send_result_fn: SendResultFn) -> None:
    tools = [descriptor.to_mcp() for descriptor in router.list_all_tools()]
    await send_result_fn(msg_id, {"tools": tools})


async def handle_call_tool(
    msg_id: Any,
    params: Any,
    router: DispatchRouter,
    send_error_fn: SendErrorFn,
    send_result_fn: SendResultFn,
) -> None:
    """Validate tools/call params and run the tool; tool failures stay in-band."""
    if not isinstance(params, dict):
        await send_error_fn(msg_id, INVALID_PARAMS, "tools/call params must be an object")
        return
    name = params.get("name")
    if not isinstance(name, str) or not name:
        await send_error_fn(msg_id, INVALID_PARAMS, "tools/call requires a non-empty string 'name'")
        return
    arguments = params.get("arguments")
    if arguments is None:
        arguments = {}
    if not isinstance(arguments, dict):
        await send_error_fn(msg_id, INVALID_PARAMS, "tools/call 'arguments' must be an object")
        return

    result = await router.call_tool(name, arguments)
    await send_result_fn(msg_id, result)


async def handle_list_resources(msg_id: Any, router: DispatchRouter, send_result_fn: SendResultFn) -> None:
    await send_result_fn(msg_id, {"resources": router.list_resources()})


async def handle_read_resource(
    msg_id: Any,
    params: Any,
    router: DispatchRouter,
    send_error_fn: SendErrorFn,
    send_result_fn: SendResultFn,
) -> None:
    uri = params.get("uri") if isinstance(params, dict) else None
    if not isinstance(uri, str) or not uri:
        await send_error_fn(msg_id, INVALID_PARAMS, "resources/read requires a string 'uri'")
        return
    try:
        result = await router.read_resource(uri)
    except UnknownResourceError as exc:
        await send_error_fn(msg_id, INVALID_PARAMS, str(exc))
        return
    except Exception as exc:
        logger.exception("Failed to read resource %s", uri)
        await send_error_fn(msg_id, INTERNAL_ERROR, f"Failed to read resource {uri}: {exc}")
        return
    await send_result_fn(msg_id, result)


async def handle_list_prompts(msg_id: Any, router: DispatchRouter, send_result_fn: SendResultFn) -> None:
    await send_result_fn(msg_id, {"prompts": router.list_prompts()})
