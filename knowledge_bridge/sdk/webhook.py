"""
Local webhook receiver.

Hosts a single ``POST {path}`` endpoint on an embedded uvicorn server and
re-emits parsed change notifications on an EventChannel.
"""

from __future__ import annotations

import asyncio
import contextlib
import hashlib
import hmac
import json
import logging
import socket
from enum import Enum
from typing import Any, AsyncIterator, Dict, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from knowledge_bridge.core.config import WebhookConfig
from knowledge_bridge.sdk.errors import WebhookParseError
from knowledge_bridge.sdk.events import WEBHOOK_EVENT_KINDS, EventChannel, EventKind

logger = logging.getLogger("KnowledgeBridge.webhook")

SIGNATURE_HEADER = "X-Webhook-Signature"
_SIGNATURE_PREFIX = "sha256="
_STARTUP_POLL_SECONDS = 0.01


class ReceiverState(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    LISTENING = "listening"


class _EmbeddedServer(uvicorn.Server):
    """uvicorn server that leaves process signal handling to the host."""

    def install_signal_handlers(self) -> None:
        pass

    @contextlib.contextmanager
    def capture_signals(self):
        yield


def parse_envelope(body: bytes) -> Dict[str, Any]:
    """Decode a webhook body into its ``{event, data}`` envelope."""
    try:
        envelope = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise WebhookParseError(f"Webhook body is not valid JSON: {exc}") from exc
    if not isinstance(envelope, dict):
        raise WebhookParseError("Webhook body must be a JSON object")
    return envelope


def sign_body(secret: str, body: bytes) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"{_SIGNATURE_PREFIX}{digest}"


class WebhookReceiver:
    """
    Embedded HTTP listener for remote change notifications.

    State moves STOPPED -> STARTING -> LISTENING -> STOPPED. A failed start
    releases the socket and returns to STOPPED.
    """

    def __init__(self, config: WebhookConfig, events: EventChannel) -> None:
        self.config = config
        self.events = events
        self.state = ReceiverState.STOPPED
        self.url: Optional[str] = None
        self.port: Optional[int] = None
        self.app = self.build_app()
        self._server: Optional[_EmbeddedServer] = None
        self._serve_task: Optional[asyncio.Task] = None
        self._socket: Optional[socket.socket] = None

    def build_app(self) -> FastAPI:
        """Serve exactly ``POST {path}``; every other method or path is a bare 404."""
        app = FastAPI(openapi_url=None, docs_url=None, redoc_url=None, redirect_slashes=False)

        async def receive(request: Request) -> Response:
            body = await request.body()
            status = await self.handle(body, request.headers.get(SIGNATURE_HEADER))
            if status == 200:
                return JSONResponse({"success": True})
            return Response(status_code=status)

        async def not_found(request: Request, exc: StarletteHTTPException) -> Response:
            # 405 from an unmatched method on the webhook path is reported as 404 too.
            if exc.status_code in (404, 405):
                return Response(status_code=404)
            return Response(status_code=exc.status_code, headers=getattr(exc, "headers", None))

        app.add_api_route(self.config.path, receive, methods=["POST"])
        app.add_exception_handler(StarletteHTTPException, not_found)
        return app

    def _signature_ok(self, body: bytes, signature: Optional[str]) -> bool:
        if not self.config.secret:
            return True
        if signature is None:
            return False
        expected = sign_body(self.config.secret, body)
        return hmac.compare_digest(expected, signature.strip())

    async def handle(self, body: bytes, signature: Optional[str] = None) -> int:
        """Process one buffered POST body and return the HTTP status to send."""
        if not self._signature_ok(body, signature):
            logger.warning("Rejected webhook with invalid signature")
            return 401

        try:
            envelope = parse_envelope(body)
        except WebhookParseError as exc:
            logger.error("Webhook parsing error: %s", exc)
            return 400

        event = envelope.get("event")
        kind = WEBHOOK_EVENT_KINDS.get(event) if isinstance(event, str) else None
        if kind is not None:
            await self.events.emit(kind, envelope.get("data"))
        await self.events.emit(EventKind.WEBHOOK_RECEIVED, envelope)

        if kind is None:
            logger.warning("Ignoring webhook with unrecognized event %r", event)
            return 400
        return 200

    def _bind_socket(self) -> socket.socket:
        family = socket.AF_INET6 if ":" in self.config.host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.config.host, self.config.port))
        except OSError:
            sock.close()
            raise
        return sock

    async def start(self) -> str:
        """Bind, serve, and return the externally reachable URL."""
        if self.state is not ReceiverState.STOPPED:
            raise RuntimeError(f"Webhook receiver is already {self.state.value}")

        self.state = ReceiverState.STARTING
        try:
            self._socket = self._bind_socket()
            self.port = self._socket.getsockname()[1]
            config = uvicorn.Config(
                self.app,
                log_level="warning",
                access_log=False,
                lifespan="off",
            )
            self._server = _EmbeddedServer(config)
            self._serve_task = asyncio.create_task(self._server.serve(sockets=[self._socket]))

            while not self._server.started:
                if self._serve_task.done():
                    exc = self._serve_task.exception()
                    raise RuntimeError(f"Webhook server exited during startup: {exc}")
                await asyncio.sleep(_STARTUP_POLL_SECONDS)
        except BaseException:
            await self._release()
            raise

        self.url = f"http://{self.config.public_host}:{self.port}{self.config.path}"
        self.state = ReceiverState.LISTENING
        logger.info("Webhook receiver listening at %s", self.url)
        return self.url

    async def stop(self) -> None:
        if self.state is ReceiverState.STOPPED:
            return
        await self._release()
        logger.info("Webhook receiver stopped")

    async def _release(self) -> None:
        if self._server is not None:
            self._server.should_exit = True
        if self._serve_task is not None:
            try:
                await self._serve_task
            except Exception:
                logger.exception("Webhook server task failed")
        if self._socket is not None:
            self._socket.close()
        self._server = None
        self._serve_task = None
        self._socket = None
        self.url = None
        self.port = None
        self.state = ReceiverState.STOPPED

    @contextlib.asynccontextmanager
    async def listening(self) -> AsyncIterator["WebhookReceiver"]:
        await self.start()
        try:
            yield self
        finally:
            await self.stop()
