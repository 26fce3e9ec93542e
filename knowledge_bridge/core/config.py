"""
Knowledge Bridge Configuration
------------------------------
Immutable configuration for the bridge, built once at startup and passed by
reference into every component. Loads from environment variables; the CLI
loads a ``.env`` file first so the same names work from either source.
"""

import os
import logging
from typing import Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator

from knowledge_bridge.version import __version__

logger = logging.getLogger("KnowledgeBridge.Config")

DEFAULT_API_URL = "http://localhost:3000"
DEFAULT_WEBHOOK_PATH = "/webhook"
SUPPORTED_LOG_LEVELS = ("debug", "info", "warning", "error", "critical")


def _first_env(*names: str) -> Optional[str]:
    for name in names:
        value = os.environ.get(name)
        if value is not None and value.strip() != "":
            return value.strip()
    return None


def _parse_int_env(name: str, default: int, *, minimum: int = 0) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
        if value < minimum:
            raise ValueError
        return value
    except ValueError:
        logger.warning(
            "Invalid %s value '%s'; expected integer >= %d. Using %d.",
            name,
            raw,
            minimum,
            default,
        )
        return default


def _parse_flag_env(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() not in {"0", "false", "no", "off"}


class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class HttpConfig(_FrozenModel):
    """Outbound HTTP client configuration."""
    timeout: float = 5.0
    retries: int = Field(default=3, ge=0)
    retry_delay: float = Field(default=1.0, ge=0.0)
    # 4xx responses are retried like any other failure unless disabled here.
    retry_client_errors: bool = True


class WebhookConfig(_FrozenModel):
    """Local webhook receiver configuration."""
    enabled: bool = True
    host: str = "127.0.0.1"
    public_host: str = "localhost"
    port: int = Field(default=0, ge=0, le=65535)
    path: str = DEFAULT_WEBHOOK_PATH
    secret: Optional[str] = None
    registration_timeout_ms: int = 5000

    @field_validator("path")
    @classmethod
    def _leading_slash(cls, value: str) -> str:
        value = value.strip() or DEFAULT_WEBHOOK_PATH
        return value if value.startswith("/") else f"/{value}"


class McpConfig(_FrozenModel):
    """MCP server identity reported during initialize."""
    name: str = "knowledge-ai-portable"
    version: str = __version__


class LoggingConfig(_FrozenModel):
    enabled: bool = True
    level: str = "info"
    file: Optional[str] = None

    @field_validator("level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        candidate = (value or "").strip().lower()
        if candidate in SUPPORTED_LOG_LEVELS:
            return candidate
        logger.warning(
            "Unsupported log level '%s'; expected one of %s. Falling back to 'info'.",
            value,
            SUPPORTED_LOG_LEVELS,
        )
        return "info"


class BridgeConfig(_FrozenModel):
    """Root configuration for the bridge."""
    api_url: str = DEFAULT_API_URL
    api_key: Optional[str] = None
    project_id: Optional[str] = None
    http: HttpConfig = Field(default_factory=HttpConfig)
    webhook: WebhookConfig = Field(default_factory=WebhookConfig)
    mcp: McpConfig = Field(default_factory=McpConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("api_url")
    @classmethod
    def _normalize_api_url(cls, value: str) -> str:
        normalized = value.strip().rstrip("/")
        parsed = urlparse(normalized)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"Invalid API base URL: {value!r}")
        return normalized

    @classmethod
    def from_env(cls) -> "BridgeConfig":
        """
        Load configuration from environment variables.

        - API_URL / KNOWLEDGE_AI_URL: Remote API base URL
        - API_KEY / KNOWLEDGE_AI_API_KEY: Credential (role-project-secret)
        - PROJECT_ID / KNOWLEDGE_AI_PROJECT: Explicit project override
        - WEBHOOK_ENABLED / WEBHOOK_HOST / WEBHOOK_PUBLIC_HOST / WEBHOOK_PORT /
          WEBHOOK_PATH / WEBHOOK_SECRET: Local webhook receiver
        - TIMEOUT / RETRY_DELAY: Milliseconds; RETRIES: retry count
        - LOG_ENABLED / LOG_LEVEL / LOG_FILE: Logging
        """
        timeout_ms = _parse_int_env("TIMEOUT", 5000, minimum=1)
        retry_delay_ms = _parse_int_env("RETRY_DELAY", 1000)

        return cls(
            api_url=_first_env("API_URL", "KNOWLEDGE_AI_URL") or DEFAULT_API_URL,
            api_key=_first_env("API_KEY", "KNOWLEDGE_AI_API_KEY"),
            project_id=_first_env("PROJECT_ID", "KNOWLEDGE_AI_PROJECT"),
            http=HttpConfig(
                timeout=timeout_ms / 1000.0,
                retries=_parse_int_env("RETRIES", 3),
                retry_delay=retry_delay_ms / 1000.0,
                retry_client_errors=_parse_flag_env("RETRY_CLIENT_ERRORS", True),
            ),
            webhook=WebhookConfig(
                enabled=_parse_flag_env("WEBHOOK_ENABLED", True),
                host=_first_env("WEBHOOK_HOST") or "127.0.0.1",
                public_host=_first_env("WEBHOOK_PUBLIC_HOST") or "localhost",
                port=_parse_int_env("WEBHOOK_PORT", 0),
                path=_first_env("WEBHOOK_PATH") or DEFAULT_WEBHOOK_PATH,
                secret=_first_env("WEBHOOK_SECRET"),
            ),
            logging=LoggingConfig(
                enabled=_parse_flag_env("LOG_ENABLED", True),
                level=_first_env("LOG_LEVEL") or "info",
                file=_first_env("LOG_FILE"),
            ),
        )

    def with_overrides(self, **updates) -> "BridgeConfig":
        """Return a validated copy with top-level fields replaced."""
        data = self.model_dump()
        for key, value in updates.items():
            if isinstance(value, BaseModel):
                value = value.model_dump()
            data[key] = value
        return type(self).model_validate(data)
