import sys
import json
import asyncio
import logging
from typing import Any, BinaryIO, Dict, List, Optional, Set, TextIO

from .handlers import (
    SessionState,
    handle_call_tool,
    handle_initialize,
    handle_list_prompts,
    handle_list_resources,
    handle_list_tools,
    handle_read_resource,
)
from .protocol import INTERNAL_ERROR, INVALID_REQUEST, JSONRPC_VERSION, METHOD_NOT_FOUND
from .router import DispatchRouter

logger = logging.getLogger("KnowledgeBridge.mcp.server")

_NOT_INITIALIZED = "Server not initialized. Send initialize then notifications/initialized."


class McpServer:
    """
    Handles JSON-RPC communication over stdio.

    Inbound messages are read in a worker thread and each one is dispatched
    as its own task; writes to stdout are serialized by a lock.
    """

    def __init__(
        self,
        router: DispatchRouter,
        name: str,
        version: str,
        stdin: Optional[BinaryIO] = None,
        stdout: Optional[TextIO] = None,
        startup_warnings: Optional[List[str]] = None,
    ):
        self.router = router
        self.server_info = {"name": name, "version": version}
        self.stdin = stdin
        self.stdout = stdout
        self.startup_warnings = list(startup_warnings or [])
        self.session = SessionState()
        self.transport_closed = False
        self._write_lock = asyncio.Lock()
        self._tasks: Set[asyncio.Task] = set()

    async def send_rpc(self, message: Dict[str, Any]) -> None:
        """Serialize and send a JSON-RPC message to stdout."""
        if self.transport_closed:
            return

        stream = self.stdout or sys.stdout
        try:
            serialized = json.dumps(message)
            async with self._write_lock:
                if self.transport_closed:
                    return
                stream.write(serialized + "\n")
                stream.flush()
        except (BrokenPipeError, OSError) as exc:
            self.transport_closed = True
            logger.warning("MCP stdio transport closed while sending: %s", exc)

    async def send_result(self, msg_id: Any, result: Dict[str, Any]) -> None:
        await self.send_rpc({"jsonrpc": JSONRPC_VERSION, "id": msg_id, "result": result})

    async def send_error(self, msg_id: Any, code: int, message: str) -> None:
        """Convenience method for sending JSON-RPC errors."""
        await self.send_rpc({
            "jsonrpc": JSONRPC_VERSION,
            "id": msg_id,
            "error": {
                "code": code,
                "message": message,
            },
        })

    def read_message(self, stream: BinaryIO) -> Optional[Dict[str, Any]]:
        """
        Read one inbound JSON-RPC message from a binary stream.
        Supports Content-Length framing and newline-delimited JSON.
        """
        while True:
            line = stream.readline()
            if not line:
                return None
            if not line.strip():
                continue

            if line.lower().startswith(b"content-length:"):
                try:
                    content_length = int(line.split(b":", 1)[1].strip())
                    if content_length <= 0:
                        raise ValueError("content length must be positive")
                except ValueError:
                    logger.warning("Invalid Content-Length header: %r", line)
                    if not self._consume_framing_headers(stream):
                        return None
                    continue

                if not self._consume_framing_headers(stream):
                    return None

                payload = stream.read(content_length)
                if not payload or len(payload) != content_length:
                    return None
                msg = self._decode(payload)
            else:
                msg = self._decode(line)

            if isinstance(msg, dict):
                return msg

    @staticmethod
    def _decode(raw: bytes) -> Any:
        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            logger.warning("Discarding undecodable JSON-RPC frame (%d bytes)", len(raw))
            return None

    @staticmethod
    def _consume_framing_headers(stream: BinaryIO) -> bool:
        while True:
            header_line = stream.readline()
            if not header_line:
                return False
            if header_line in (b"\r\n", b"\n"):
                return True

    async def _require_initialized(self, msg_id: Any) -> bool:
        if self.session.initialized:
            return True
        if msg_id is not None:
            await self.send_error(msg_id, INVALID_REQUEST, _NOT_INITIALIZED)
        return False

    async def dispatch(self, msg: Dict[str, Any]) -> None:
        """
        Handle a single parsed JSON-RPC message.

        - Unknown request methods (with id) return -32601.
        - Unknown notifications (no id) are ignored.
        - notifications/initialized is only accepted after successful initialize.
        """
        msg_id = msg.get("id")
        method = msg.get("method")
        params = msg.get("params")

        if not isinstance(method, str):
            if msg_id is not None:
                await self.send_error(msg_id, INVALID_REQUEST, "Invalid Request: missing method")
            return

        if method == "initialize":
            await handle_initialize(
                msg_id,
                {} if params is None else params,
                self.session,
                self.router,
                self.server_info,
                self.send_error,
                self.send_result,
                self.startup_warnings,
            )
            return

        if method == "notifications/initialized":
            if self.session.negotiated:
                self.session.initialized = True
                logger.info("Client initialized connection")
            else:
                logger.warning("Ignored notifications/initialized before successful initialize")
            return

        if method == "ping":
            if msg_id is not None:
                await self.send_result(msg_id, {})
            return

        if msg_id is None:
            logger.debug("Ignoring notification %s", method)
            return

        if method == "tools/list":
            if await self._require_initialized(msg_id):
                await handle_list_tools(msg_id, self.router, self.send_result)
            return

        if method == "tools/call":
            if await self._require_initialized(msg_id):
                await handle_call_tool(msg_id, params, self.router, self.send_error, self.send_result)
            return

        if method == "resources/list":
            if await self._require_initialized(msg_id):
                await handle_list_resources(msg_id, self.router, self.send_result)
            return

        if method == "resources/read":
            if await self._require_initialized(msg_id):
                await handle_read_resource(msg_id, params, self.router, self.send_error, self.send_result)
            return

        if method == "prompts/list":
            if await self._require_initialized(msg_id):
                await handle_list_prompts(msg_id, self.router, self.send_result)
            return

        await self.send_error(msg_id, METHOD_NOT_FOUND, f"Method not found: {method}")

    async def _dispatch_guarded(self, msg: Dict[str, Any]) -> None:
        try:
            await self.dispatch(msg)
        except Exception:
            logger.exception("Unexpected error during RPC dispatch")
            msg_id = msg.get("id")
            if msg_id is not None and not self.transport_closed:
                await self.send_error(msg_id, INTERNAL_ERROR, "Internal error during request dispatch.")

    def submit_dispatch(self, msg: Dict[str, Any]) -> asyncio.Task:
        task = asyncio.create_task(self._dispatch_guarded(msg))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def serve(self) -> None:
        """Read and dispatch messages until stdin closes, then drain in-flight requests."""
        stream = self.stdin or sys.stdin.buffer
        logger.info("MCP stdio server running for project: %s", self.router.context.project_id)
        while not self.transport_closed:
            msg = await asyncio.to_thread(self.read_message, stream)
            if msg is None:
                break
            # Handshake messages run inline so session state is settled before later requests.
            if msg.get("method") in ("initialize", "notifications/initialized"):
                await self._dispatch_guarded(msg)
            else:
                self.submit_dispatch(msg)

        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        logger.info("MCP stdio transport closed")

    def stop(self) -> None:
        self.transport_closed = True
