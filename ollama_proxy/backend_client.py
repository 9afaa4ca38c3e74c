"""Backend adapter interface and the shared upstream call path."""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from .errors import UpstreamError
from .models import Backend, BackendResponse, GenerationRequest

logger = logging.getLogger(__name__)


class BackendClient(ABC):
    """
    Uniform wrapper over one upstream provider's HTTP surface.

    Subclasses build the provider wire request from a GenerationRequest,
    map the ``stream`` flag onto the provider's streaming mechanism, and
    reshape buffered responses so they expose ``choices[0].message.content``.
    Streamed bodies are returned untouched for the stream translator.
    """

    backend: Backend
    default_model: str = ""

    def __init__(self, base_url: str, timeout: float = 300.0,
                 client: Optional[httpx.AsyncClient] = None):
        self.base_url = base_url.rstrip("/")
        self.client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout, connect=10.0))

    @property
    def name(self) -> str:
        return self.backend.value

    async def close(self):
        """Close HTTP client."""
        await self.client.aclose()

    @abstractmethod
    async def generate(self, request: GenerationRequest) -> BackendResponse:
        """Single-turn completion from ``request.prompt`` (+ ``request.system``)."""

    @abstractmethod
    async def chat(self, request: GenerationRequest) -> BackendResponse:
        """Multi-turn completion from ``request.messages``."""

    @abstractmethod
    async def list_models(self) -> BackendResponse:
        """Upstream models as ``{"object": "list", "data": [{"id": ...}]}``."""

    def _headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json"}

    async def _send(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
        stream: bool = False,
    ) -> BackendResponse:
        """
        Issue one upstream call. No retries.

        On success with ``stream=True`` the open response is handed to the
        caller inside the envelope. Any failure raises UpstreamError.
        """
        request = self.client.build_request(
            method,
            f"{self.base_url}{path}",
            json=payload,
            params=params,
            headers=self._headers(),
        )

        try:
            response = await self.client.send(request, stream=stream)
        except httpx.HTTPError as e:
            logger.error(f"{self.name} request to {path} failed: {e!r}")
            raise UpstreamError(f"{self.name} upstream request failed: {e}") from e

        if response.is_error:
            try:
                await response.aread()
            finally:
                await response.aclose()
            body = _error_body(response)
            logger.error(f"{self.name} API error: status={response.status_code} body={body}")
            raise UpstreamError(
                f"{self.name} upstream returned HTTP {response.status_code}",
                status_code=response.status_code,
                body=body,
            )

        if stream:
            return BackendResponse(status_code=response.status_code, stream=response)

        try:
            body = response.json()
        except ValueError as e:
            logger.error(f"{self.name} returned a non-JSON body: {response.text[:200]}")
            raise UpstreamError(f"{self.name} upstream returned an invalid JSON body") from e

        return BackendResponse(status_code=response.status_code, body=body)


def _error_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text or None


def chat_completion_view(content: str, model: str, finish_reason: Optional[str] = "stop") -> Dict[str, Any]:
    """Minimal chat-completion body for providers whose native shape differs."""
    return {
        "object": "chat.completion",
        "model": model,
        "choices": [{
            "index": 0,
            "message": {"role": "assistant", "content": content},
            "finish_reason": finish_reason,
        }],
    }
