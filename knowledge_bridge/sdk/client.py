"""
Embeddable async client for the knowledge API.

Wraps the gateway with a connect/disconnect lifecycle that optionally hosts a
local webhook receiver and registers it with the remote API, plus a handful
of note helpers that return the unwrapped ``data`` member of each reply.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import httpx

from knowledge_bridge.core.config import BridgeConfig
from knowledge_bridge.core.identity import resolve_project_id
from knowledge_bridge.sdk.errors import ApiError
from knowledge_bridge.sdk.events import EventChannel, EventKind, Listener
from knowledge_bridge.sdk.gateway import ApiGateway, project_endpoint, quote_segment, unwrap
from knowledge_bridge.sdk.webhook import WebhookReceiver

logger = logging.getLogger("KnowledgeBridge.client")

WEBHOOK_REGISTRATION_PATH = "/api/webhooks"
WEBHOOK_EVENTS = ("created", "updated", "deleted")


class KnowledgeClient:
    """
    Async client with webhook notifications.

    Usage:
        async with KnowledgeClient(BridgeConfig.from_env()) as client:
            client.on(EventKind.NOTE_CREATED, print)
            note = await client.get_note(42)
    """

    def __init__(
        self,
        config: BridgeConfig,
        *,
        events: Optional[EventChannel] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.config = config
        self.events = events or EventChannel()
        self.gateway = ApiGateway(config, client=http_client)
        self.receiver: Optional[WebhookReceiver] = None
        self.connected = False

    @property
    def webhook_url(self) -> Optional[str]:
        return self.receiver.url if self.receiver is not None else None

    def on(self, kind: EventKind, listener: Listener) -> Callable[[], None]:
        return self.events.subscribe(kind, listener)

    async def __aenter__(self) -> "KnowledgeClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await self.disconnect()
        finally:
            await self.gateway.close()

    async def connect(self) -> None:
        """
        Verify API reachability and, when enabled, start and register the webhook receiver.

        Connecting an already connected client is a no-op.
        """
        if self.connected:
            logger.debug("connect() called on an already connected client")
            return
        await self._stop_receiver()
        try:
            await self.gateway.request("/health")
            if self.config.webhook.enabled:
                self.receiver = WebhookReceiver(self.config.webhook, self.events)
                await self.receiver.start()
                await self._register_webhook()
        except Exception as exc:
            await self.events.emit(EventKind.ERROR, exc)
            await self._stop_receiver()
            raise

        self.connected = True
        logger.info("Connected to knowledge API at %s", self.config.api_url)
        if self.webhook_url:
            logger.info("Webhook receiver running at: %s", self.webhook_url)
        await self.events.emit(EventKind.CONNECTED, {"webhookUrl": self.webhook_url})

    async def disconnect(self) -> None:
        if self.webhook_url:
            await self._unregister_webhook()
        await self._stop_receiver()
        was_connected = self.connected
        self.connected = False
        if was_connected:
            await self.events.emit(EventKind.DISCONNECTED, None)

    async def _stop_receiver(self) -> None:
        if self.receiver is not None:
            await self.receiver.stop()
            self.receiver = None

    async def _register_webhook(self) -> None:
        if not self.webhook_url:
            return
        body = {
            "url": self.webhook_url,
            "events": list(WEBHOOK_EVENTS),
            "config": {
                "timeout": self.config.webhook.registration_timeout_ms,
                "secret": self.config.webhook.secret,
            },
        }
        try:
            await self.gateway.request(WEBHOOK_REGISTRATION_PATH, method="POST", json_body=body)
            logger.info("Webhook registered: %s", self.webhook_url)
        except ApiError as exc:
            logger.warning("Failed to register webhook: %s", exc)

    async def _unregister_webhook(self) -> None:
        try:
            await self.gateway.request(
                WEBHOOK_REGISTRATION_PATH, method="DELETE", json_body={"url": self.webhook_url}
            )
        except ApiError as exc:
            logger.warning("Failed to unregister webhook: %s", exc)

    def _project(self, project_id: Optional[str]) -> str:
        return resolve_project_id(project_id or self.config.project_id, self.config.api_key)

    def _note_path(self, note_id: Any, project_id: Optional[str]) -> str:
        return project_endpoint(self._project(project_id), f"/notes/{quote_segment(note_id)}")

    async def create_note(self, note: Dict[str, Any], project_id: Optional[str] = None) -> Any:
        project = self._project(project_id or note.get("projectId"))
        body = {key: value for key, value in note.items() if key != "projectId"}
        return unwrap(await self.gateway.request(project_endpoint(project, "/notes"), method="POST", json_body=body))

    async def get_note(self, note_id: Any, project_id: Optional[str] = None) -> Any:
        return unwrap(await self.gateway.request(self._note_path(note_id, project_id)))

    async def update_note(self, note_id: Any, update: Dict[str, Any], project_id: Optional[str] = None) -> Any:
        """Apply an ``old_str``/``new_str`` content patch."""
        return unwrap(
            await self.gateway.request(self._note_path(note_id, project_id), method="PATCH", json_body=update)
        )

    async def delete_note(self, note_id: Any, project_id: Optional[str] = None) -> bool:
        result = await self.gateway.request(self._note_path(note_id, project_id), method="DELETE")
        if isinstance(result, dict):
            return bool(result.get("success", True))
        return True

    async def search(self, query: str, project_id: Optional[str] = None, **options: Any) -> Any:
        params: List[Tuple[str, Any]] = [("q", query)]
        params.extend(_query_items(options))
        return unwrap(
            await self.gateway.request(project_endpoint(self._project(project_id), "/notes/search"), params=params)
        )

    async def list_notes(self, project_id: Optional[str] = None, **options: Any) -> Any:
        return unwrap(
            await self.gateway.request(
                project_endpoint(self._project(project_id), "/notes"), params=list(_query_items(options))
            )
        )

    async def get_project_stats(self, project_id: Optional[str] = None) -> Any:
        return unwrap(await self.gateway.request(project_endpoint(self._project(project_id), "/stats")))


def _query_items(options: Dict[str, Any]) -> Iterable[Tuple[str, Any]]:
    for key, value in options.items():
        if value is None:
            continue
        if isinstance(value, bool):
            yield key, "true" if value else "false"
        elif isinstance(value, (list, tuple)):
            for item in value:
                yield key, item
        else:
            yield key, value
