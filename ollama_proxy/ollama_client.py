"""Native Ollama API backend."""

import logging
from typing import Any, Dict, Optional

import httpx

from .backend_client import BackendClient
from .models import Backend, BackendResponse, GenerationRequest

logger = logging.getLogger(__name__)


class OllamaClient(BackendClient):
    """
    Async client for a native Ollama server.

    Handles:
    - /api/generate and /api/chat, buffered or streamed (NDJSON)
    - Model listing via /api/tags

    Ollama needs no credentials.
    """

    backend = Backend.OLLAMA
    default_model = "llama2"

    def __init__(self, base_url: str, timeout: float = 300.0,
                 client: Optional[httpx.AsyncClient] = None):
        super().__init__(base_url, timeout=timeout, client=client)

    async def generate(self, request: GenerationRequest) -> BackendResponse:
        payload = self._payload(request)
        payload["prompt"] = request.prompt or ""
        if request.system:
            payload["system"] = request.system
        if request.images:
            payload["images"] = request.images

        logger.info(f"Ollama generate: model={payload['model']}, stream={request.stream}")
        response = await self._send("POST", "/api/generate", payload, stream=request.stream)
        return self._reshape(response, payload["model"])

    async def chat(self, request: GenerationRequest) -> BackendResponse:
        payload = self._payload(request)
        messages = [m.to_dict() for m in request.messages or []]
        if request.system and not any(m.get("role") == "system" for m in messages):
            messages.insert(0, {"role": "system", "content": request.system})
        payload["messages"] = messages

        logger.info(f"Ollama chat: model={payload['model']}, messages={len(messages)}, stream={request.stream}")
        response = await self._send("POST", "/api/chat", payload, stream=request.stream)
        return self._reshape(response, payload["model"])

    async def list_models(self) -> BackendResponse:
        response = await self._send("GET", "/api/tags")
        models = [
            {"id": m.get("name") or m.get("model", ""), "object": "model", "owned_by": "ollama"}
            for m in response.body.get("models", [])
        ]
        logger.info(f"Ollama: found {len(models)} models")
        return BackendResponse(
            status_code=response.status_code,
            body={"object": "list", "data": models},
        )

    def _payload(self, request: GenerationRequest) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": request.model or self.default_model,
            "stream": request.stream,
        }
        options = request.options.sparse()
        if options:
            payload["options"] = options
        if request.format is not None:
            payload["format"] = request.format
        return payload

    @staticmethod
    def _reshape(response: BackendResponse, model: str) -> BackendResponse:
        """Add a ``choices`` view next to the native fields of a buffered reply."""
        if response.is_stream or not isinstance(response.body, dict):
            return response

        body = response.body
        message = body.get("message") or {}
        content = message.get("content") if isinstance(message, dict) else None
        if content is None:
            content = body.get("response", "")

        reshaped = dict(body)
        reshaped["choices"] = [{
            "index": 0,
            "message": {"role": "assistant", "content": content},
            "finish_reason": body.get("done_reason", "stop"),
        }]
        reshaped.setdefault("model", model)
        return BackendResponse(status_code=response.status_code, body=reshaped)
