"""Async HTTP client for a running render server."""

from __future__ import annotations

import base64
import logging
from collections.abc import Mapping
from types import TracebackType
from typing import Any

import httpx

from vis_render.schemas import HealthResponse, RenderResponse
from vis_render.services.delivery import PNG_DATA_URI_PREFIX

logger = logging.getLogger(__name__)

DEFAULT_SERVER_URL = "http://localhost:3000"


class RenderClientError(Exception):
    """Base error for render client operations."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def decode_data_uri(data_uri: str) -> bytes:
    """Return the PNG bytes carried by an inline render result."""
    if not data_uri.startswith(PNG_DATA_URI_PREFIX):
        raise RenderClientError("Result is not an inline PNG data URI.")
    return base64.b64decode(data_uri[len(PNG_DATA_URI_PREFIX) :])


class RenderClient:
    """Talks to ``/render`` and ``/health`` on a render server."""

    def __init__(
        self,
        base_url: str = DEFAULT_SERVER_URL,
        *,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    async def __aenter__(self) -> RenderClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def render(self, spec: Mapping[str, Any]) -> RenderResponse:
        """POST a chart description; raise when the server reports failure."""
        try:
            response = await self._client.post("/render", json=dict(spec))
        except httpx.HTTPError as exc:
            raise RenderClientError(f"Request to render server failed: {exc}") from exc
        try:
            payload = response.json()
        except ValueError as exc:
            raise RenderClientError(
                f"Render server returned a non-JSON body (HTTP {response.status_code}).",
                status_code=response.status_code,
            ) from exc
        result = RenderResponse.model_validate(payload)
        if not result.success:
            raise RenderClientError(
                result.error_message or "Render failed",
                status_code=response.status_code,
            )
        return result

    async def health(self) -> HealthResponse:
        try:
            response = await self._client.get("/health")
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise RenderClientError(f"Health check failed: {exc}") from exc
        return HealthResponse.model_validate(response.json())
