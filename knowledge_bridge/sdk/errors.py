"""
Knowledge Bridge exceptions.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional


class BridgeError(RuntimeError):
    """Base class for bridge errors."""


class ConfigurationError(BridgeError):
    """Raised at startup when no tenant/project context can be resolved."""


class ValidationError(BridgeError):
    """Raised when tool arguments are missing or malformed."""

    def __init__(self, missing: Iterable[str], detail: Optional[str] = None) -> None:
        self.missing = tuple(missing)
        if detail is None:
            detail = f"Missing required parameters: {', '.join(self.missing)}"
        super().__init__(detail)


class UnknownToolError(BridgeError):
    def __init__(self, tool: str) -> None:
        self.tool = tool
        super().__init__(f"Unknown tool: {tool}")


class UnknownResourceError(BridgeError):
    def __init__(self, uri: str) -> None:
        self.uri = uri
        super().__init__(f"Unknown resource: {uri}")


class ApiError(BridgeError):
    """Raised when the remote API fails after the retry budget is spent."""

    def __init__(
        self,
        detail: str,
        *,
        status_code: Optional[int] = None,
        path: Optional[str] = None,
        payload: Optional[Any] = None,
    ) -> None:
        self.detail = detail
        self.status_code = status_code
        self.path = path
        self.payload = payload
        status_hint = f" (status={status_code})" if status_code is not None else ""
        path_hint = f" [{path}]" if path else ""
        super().__init__(f"{detail}{status_hint}{path_hint}")


class MalformedResponseError(ApiError):
    """Raised when a response declares JSON but the body does not decode."""

    def __init__(self, raw_text: str, *, status_code: Optional[int] = None, path: Optional[str] = None) -> None:
        self.raw_text = raw_text
        super().__init__(
            f"Invalid JSON response: {raw_text}",
            status_code=status_code,
            path=path,
            payload=raw_text,
        )


class WebhookParseError(BridgeError):
    """Raised when an inbound webhook POST cannot be parsed."""
