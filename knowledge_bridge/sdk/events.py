"""
In-process event channel for client lifecycle and webhook notifications.
"""

from __future__ import annotations

import inspect
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Union

logger = logging.getLogger("KnowledgeBridge.events")

Listener = Callable[[Any], Union[None, Awaitable[None]]]


class EventKind(str, Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"
    NOTE_CREATED = "noteCreated"
    NOTE_UPDATED = "noteUpdated"
    NOTE_DELETED = "noteDeleted"
    WEBHOOK_RECEIVED = "webhookReceived"


# Remote webhook event name -> typed note event
WEBHOOK_EVENT_KINDS: Dict[str, EventKind] = {
    "created": EventKind.NOTE_CREATED,
    "updated": EventKind.NOTE_UPDATED,
    "deleted": EventKind.NOTE_DELETED,
}


class EventChannel:
    """
    Typed publish/subscribe channel.

    Listeners run in subscription order; coroutine listeners are awaited
    before the next one runs. A failing listener is logged and skipped.
    """

    def __init__(self) -> None:
        self._listeners: Dict[EventKind, List[Listener]] = {}

    def subscribe(self, kind: EventKind, listener: Listener) -> Callable[[], None]:
        kind = EventKind(kind)
        self._listeners.setdefault(kind, []).append(listener)

        def _unsubscribe() -> None:
            self.unsubscribe(kind, listener)

        return _unsubscribe

    def unsubscribe(self, kind: EventKind, listener: Listener) -> bool:
        listeners = self._listeners.get(EventKind(kind), [])
        try:
            listeners.remove(listener)
        except ValueError:
            return False
        return True

    def once(self, kind: EventKind, listener: Listener) -> Callable[[], None]:
        """Subscribe a listener that is removed after its first delivery."""
        kind = EventKind(kind)

        async def _wrapper(payload: Any) -> None:
            self.unsubscribe(kind, _wrapper)
            result = listener(payload)
            if inspect.isawaitable(result):
                await result

        return self.subscribe(kind, _wrapper)

    def listener_count(self, kind: EventKind) -> int:
        return len(self._listeners.get(EventKind(kind), []))

    async def emit(self, kind: EventKind, payload: Any = None) -> int:
        """Deliver ``payload`` to every listener of ``kind``; returns the delivered count."""
        kind = EventKind(kind)
        delivered = 0
        # Snapshot so listeners may unsubscribe during delivery.
        for listener in list(self._listeners.get(kind, [])):
            try:
                result = listener(payload)
                if inspect.isawaitable(result):
                    await result
                delivered += 1
            except Exception:
                logger.exception("Listener for '%s' event failed", kind.value)
        return delivered

    def clear(self) -> None:
        self._listeners.clear()
