"""Shared fixtures: bridge configs and a scripted stand-in for the remote API."""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Tuple, Union

import httpx
import pytest

from knowledge_bridge.core.config import BridgeConfig, HttpConfig, WebhookConfig
from knowledge_bridge.core.identity import SessionContext

CREDENTIAL = "employee-myproject-secret123"
API_URL = "http://knowledge.test"

_ENV_VARS = (
    "KNOWLEDGE_AI_URL",
    "API_URL",
    "KNOWLEDGE_AI_API_KEY",
    "API_KEY",
    "KNOWLEDGE_AI_PROJECT",
    "PROJECT_ID",
    "WEBHOOK_ENABLED",
    "WEBHOOK_HOST",
    "WEBHOOK_PUBLIC_HOST",
    "WEBHOOK_PORT",
    "WEBHOOK_PATH",
    "WEBHOOK_SECRET",
    "TIMEOUT",
    "RETRIES",
    "RETRY_DELAY",
    "RETRY_CLIENT_ERRORS",
    "LOG_ENABLED",
    "LOG_LEVEL",
    "LOG_FILE",
)

Scripted = Union[httpx.Response, Exception, Callable[[httpx.Request], httpx.Response]]


class ApiStub:
    """
    Routes (method, path) to scripted responses and records every request.

    A route holding several responses serves them in order and then keeps
    repeating the last one.
    """

    def __init__(self) -> None:
        self.routes: Dict[Tuple[str, str], List[Scripted]] = {}
        self.calls: List[httpx.Request] = []

    def add(self, method: str, path: str, *responses: Scripted) -> "ApiStub":
        self.routes[(method.upper(), path)] = list(responses)
        return self

    def calls_to(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.calls if r.method == method.upper() and r.url.path == path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        queue = self.routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(404, json={"error": f"No route for {request.method} {request.url.path}"})
        scripted = queue[0] if len(queue) == 1 else queue.pop(0)
        if isinstance(scripted, Exception):
            raise scripted
        if isinstance(scripted, httpx.Response):
            # Fresh copy per request so a scripted response can be served repeatedly.
            return httpx.Response(scripted.status_code, headers=scripted.headers, content=scripted.content)
        return scripted(request)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def api_stub() -> ApiStub:
    return ApiStub()


@pytest.fixture
def make_config() -> Callable[..., BridgeConfig]:
    def _make(
        *,
        retries: int = 0,
        retry_delay: float = 0.0,
        retry_client_errors: bool = True,
        webhook: WebhookConfig = WebhookConfig(enabled=False),
        **overrides: Any,
    ) -> BridgeConfig:
        fields: Dict[str, Any] = {
            "api_url": API_URL,
            "api_key": CREDENTIAL,
            "http": HttpConfig(
                timeout=1.0,
                retries=retries,
                retry_delay=retry_delay,
                retry_client_errors=retry_client_errors,
            ),
            "webhook": webhook,
        }
        fields.update(overrides)
        return BridgeConfig(**fields)

    return _make


@pytest.fixture
def context() -> SessionContext:
    return SessionContext(project_id="myproject", api_url=API_URL, credential=CREDENTIAL)
