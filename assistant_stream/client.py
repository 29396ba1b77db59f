"""client.py — HTTP transport for the assistant endpoint.

Opens the streaming POST with httpx.AsyncClient.stream() and hands the
session controller a response whose byte chunks arrive as the network
delivers them. All httpx failures leave this module as TransportError.

Response handling:
- non-2xx                     → TransportError (body "error" field if JSON)
- 204 / 205                   → UnsupportedStreamError (no body to read)
- 2xx application/json        → cached answer {"success", "response", "cached"}
- anything else               → event stream, consumed chunk by chunk
"""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from .config import AssistantConfig, redact_headers
from .errors import TransportError, UnsupportedStreamError

logger = logging.getLogger("assistant_stream.client")

NO_BODY_STATUS = {204, 205}


@dataclass(frozen=True)
class AssistantRequest:
    """One question for the assistant, scoped to a project and period."""
    project_id: str
    start_date: str
    end_date: str
    message: str
    analysis_type: Optional[str] = None
    skip_cache: bool = False

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "projectId": self.project_id,
            "startDate": self.start_date,
            "endDate": self.end_date,
            "message": self.message,
            "skipCache": self.skip_cache,
        }
        if self.analysis_type:
            body["analysisType"] = self.analysis_type
        return body


@dataclass(frozen=True)
class CachedAnswer:
    text: str
    cached: bool


class AssistantResponse:
    """An open response from the assistant endpoint."""

    def __init__(self, response: httpx.Response):
        self._response = response

    @property
    def status_code(self) -> int:
        return self._response.status_code

    @property
    def is_json(self) -> bool:
        content_type = self._response.headers.get("content-type", "")
        return content_type.split(";")[0].strip().lower() == "application/json"

    async def read_answer(self) -> CachedAnswer:
        """Read a complete JSON answer (cache hit path)."""
        try:
            await self._response.aread()
            data = self._response.json()
        except httpx.HTTPError as e:
            raise TransportError(f"Read failed: {e}") from e
        except json.JSONDecodeError as e:
            raise TransportError(f"Non-JSON response body: {self._response.text[:200]}") from e

        if not isinstance(data, dict):
            raise TransportError("Unexpected JSON response shape")
        if not data.get("success", False):
            raise TransportError(str(data.get("error") or "Unknown error"))
        return CachedAnswer(
            text=str(data.get("response") or ""),
            cached=bool(data.get("cached", False)),
        )

    async def chunks(self) -> AsyncIterator[bytes]:
        """Yield body chunks in delivery order."""
        try:
            async for chunk in self._response.aiter_bytes():
                yield chunk
        except httpx.TimeoutException as e:
            raise TransportError(f"Read timed out: {e}", retryable=True) from e
        except httpx.HTTPError as e:
            raise TransportError(f"Stream interrupted: {e}", retryable=True) from e


class AssistantClient:
    """Owns the httpx.AsyncClient used for assistant calls."""

    def __init__(
        self,
        config: AssistantConfig,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._config = config
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=self._timeout())

    def _timeout(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self._config.connect_timeout_ms / 1000.0,
            read=self._config.read_timeout_ms / 1000.0,
            write=self._config.write_timeout_ms / 1000.0,
            pool=self._config.pool_timeout_ms / 1000.0,
        )

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._config.api_key}",
            "Content-Type": "application/json",
            "Accept": "text/event-stream, application/json",
        }

    @asynccontextmanager
    async def stream(self, request: AssistantRequest) -> AsyncIterator[AssistantResponse]:
        """Open the assistant call. Raises TransportError / UnsupportedStreamError.

        The response is closed when the block exits, including on
        cancellation.
        """
        headers = self._headers()
        logger.debug("POST %s headers=%s", self._config.url, redact_headers(headers))

        try:
            async with self._http.stream(
                "POST", self._config.url, json=request.to_body(), headers=headers,
            ) as response:
                if not response.is_success:
                    raise TransportError(
                        await _error_message(response),
                        status_code=response.status_code,
                        retryable=response.status_code == 429 or response.status_code >= 500,
                    )
                if response.status_code in NO_BODY_STATUS:
                    raise UnsupportedStreamError(status_code=response.status_code)
                yield AssistantResponse(response)
        except httpx.TimeoutException as e:
            raise TransportError(f"Request timed out: {e}", retryable=True) from e
        except httpx.ConnectError as e:
            raise TransportError(f"Connection failed: {e}", retryable=True) from e
        except httpx.HTTPError as e:
            raise TransportError(f"Unexpected transport error: {e}") from e

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def __aenter__(self) -> "AssistantClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()


async def _error_message(response: httpx.Response) -> str:
    """Extract the backend's error text without exposing the whole body."""
    try:
        await response.aread()
    except httpx.HTTPError:
        return f"HTTP {response.status_code}"
    try:
        data = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return f"HTTP {response.status_code}"
    if isinstance(data, dict) and data.get("error"):
        return str(data["error"])[:200]
    return f"HTTP {response.status_code}"
