"""
Authenticated HTTP gateway to the remote knowledge API.

Every outbound call carries the credential header and goes through a bounded
retry loop with linear backoff: before retry ``n`` the gateway sleeps
``retry_delay * n`` seconds.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple, Union
from urllib.parse import quote

import httpx

from knowledge_bridge.core.config import BridgeConfig, HttpConfig
from knowledge_bridge.sdk.errors import ApiError, MalformedResponseError
from knowledge_bridge.version import __version__

logger = logging.getLogger("KnowledgeBridge.gateway")

USER_AGENT = f"knowledge-bridge/{__version__}"

QueryParams = Union[Mapping[str, Any], Sequence[Tuple[str, Any]]]


def quote_segment(value: Any) -> str:
    return quote(str(value), safe="")


def project_endpoint(project_id: str, path: str = "") -> str:
    return f"/api/projects/{quote_segment(project_id)}{path}"


def unwrap(result: Any) -> Any:
    """Return the ``data`` member of an API envelope, or the body itself."""
    if isinstance(result, dict) and "data" in result:
        return result["data"]
    return result


def _coerce_error_detail(payload: Any, fallback: str) -> str:
    if isinstance(payload, dict):
        for key in ("error", "detail", "message"):
            detail = payload.get(key)
            if isinstance(detail, str) and detail:
                return detail
            if detail is not None:
                try:
                    return json.dumps(detail, sort_keys=True)
                except (TypeError, ValueError):
                    return str(detail)
    if isinstance(payload, str) and payload:
        return payload
    return fallback


def _is_json_response(response: httpx.Response) -> bool:
    content_type = response.headers.get("content-type", "")
    return "application/json" in content_type.lower() or content_type.lower().endswith("+json")


class ApiGateway:
    """
    Async client for the remote knowledge API.

    Usage:
        async with ApiGateway(config) as gateway:
            notes = await gateway.request("/api/projects/demo/notes")
    """

    def __init__(
        self,
        config: BridgeConfig,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = config.api_url
        self.credential = config.api_key
        self.http: HttpConfig = config.http
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self.http.timeout)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "ApiGateway":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _url(self, path: str) -> str:
        if not path.startswith("/"):
            path = f"/{path}"
        return f"{self.base_url}{path}"

    def _headers(self, extra: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        }
        if self.credential:
            headers["X-API-Key"] = self.credential
        if extra:
            headers.update(extra)
        return headers

    def _parse(self, response: httpx.Response, path: str) -> Any:
        if not _is_json_response(response):
            return response.text
        if not response.content.strip():
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise MalformedResponseError(
                response.text, status_code=response.status_code, path=path
            ) from exc

    def _should_retry_status(self, status_code: int) -> bool:
        if 400 <= status_code < 500:
            return self.http.retry_client_errors
        return True

    async def request(
        self,
        path: str,
        *,
        method: str = "GET",
        json_body: Optional[Any] = None,
        params: Optional[QueryParams] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Any:
        """
        Issue one logical request with retry; returns the parsed body.

        Raises ApiError once ``retries + 1`` attempts are exhausted, or
        MalformedResponseError immediately for an undecodable JSON body.
        """
        url = self._url(path)
        request_headers = self._headers(headers)
        max_attempts = self.http.retries + 1
        last_error: Optional[ApiError] = None

        for attempt in range(max_attempts):
            if attempt > 0:
                delay = self.http.retry_delay * attempt
                logger.debug("Retrying %s %s in %.2fs (attempt %d/%d)", method, path, delay, attempt + 1, max_attempts)
                await asyncio.sleep(delay)

            try:
                response = await self._client.request(
                    method,
                    url,
                    json=json_body,
                    params=params,
                    headers=request_headers,
                    timeout=self.http.timeout,
                )
            except httpx.TimeoutException as exc:
                last_error = ApiError(f"Request timed out after {self.http.timeout}s: {exc}", path=path)
                logger.warning("%s %s timed out (attempt %d/%d)", method, path, attempt + 1, max_attempts)
                continue
            except httpx.HTTPError as exc:
                last_error = ApiError(
                    f"Failed to connect to API at {self.base_url}: {exc}", path=path
                )
                logger.warning("%s %s failed to connect (attempt %d/%d): %s", method, path, attempt + 1, max_attempts, exc)
                continue

            if response.is_success:
                return self._parse(response, path)

            payload: Any
            try:
                payload = response.json() if response.content else None
            except ValueError:
                payload = response.text
            detail = _coerce_error_detail(payload, f"API request failed ({response.status_code})")
            last_error = ApiError(detail, status_code=response.status_code, path=path, payload=payload)
            logger.warning(
                "%s %s returned HTTP %d (attempt %d/%d)",
                method,
                path,
                response.status_code,
                attempt + 1,
                max_attempts,
            )
            if not self._should_retry_status(response.status_code):
                break

        if last_error:
            raise last_error
        raise ApiError("Unexpected end of request loop", path=path)

    async def probe(self, path: str = "/health") -> Tuple[bool, Optional[str]]:
        """Single-attempt reachability check; never raises."""
        try:
            response = await self._client.get(
                self._url(path),
                headers=self._headers(),
                timeout=self.http.timeout,
            )
        except httpx.HTTPError as exc:
            return False, str(exc) or exc.__class__.__name__
        if not response.is_success:
            return False, f"API returned {response.status_code}"
        return True, None
