"""OpenAI-compatible chat completions backend."""

import logging
import re
from typing import Any, Dict, List, Optional

import httpx

from .backend_client import BackendClient
from .errors import BackendConfigError
from .models import Backend, BackendResponse, GenerationRequest

logger = logging.getLogger(__name__)

# Unified option -> OpenAI request field. Anything else (top_k, ...) is dropped.
SUPPORTED_OPTIONS = {
    "temperature": "temperature",
    "top_p": "top_p",
    "presence_penalty": "presence_penalty",
    "frequency_penalty": "frequency_penalty",
    "stop": "stop",
    "seed": "seed",
    "num_predict": "max_tokens",
}


class OpenAIClient(BackendClient):
    """
    Backend for any OpenAI-compatible ``/chat/completions`` API.

    Both generate and chat are served through chat completions; streamed
    responses are the provider's own SSE frames.
    """

    backend = Backend.OPENAI
    default_model = "gpt-3.5-turbo"

    def __init__(self, api_key: str, base_url: str = "https://api.openai.com/v1",
                 timeout: float = 300.0, client: Optional[httpx.AsyncClient] = None):
        super().__init__(base_url, timeout=timeout, client=client)
        self.api_key = api_key

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def _require_key(self):
        if not self.api_key:
            raise BackendConfigError(
                "OpenAI API key is not set. Please set OPENAI_API_KEY in your environment variables."
            )

    async def generate(self, request: GenerationRequest) -> BackendResponse:
        messages = []
        if request.system:
            messages.append({"role": "system", "content": request.system})
        messages.append({"role": "user", "content": request.prompt or ""})
        return await self._complete(request, messages)

    async def chat(self, request: GenerationRequest) -> BackendResponse:
        messages = [{"role": m.role, "content": m.content} for m in request.messages or []]
        if request.system and not any(m["role"] == "system" for m in messages):
            messages.insert(0, {"role": "system", "content": request.system})
        return await self._complete(request, messages)

    async def list_models(self) -> BackendResponse:
        self._require_key()
        response = await self._send("GET", "/models")

        # Only chat-capable GPT models are exposed as aliases
        gpt_models = [m for m in response.body.get("data", []) if m.get("id", "").startswith("gpt-")]
        logger.info(f"OpenAI: found {len(gpt_models)} gpt- models")

        return BackendResponse(
            status_code=response.status_code,
            body={"object": "list", "data": gpt_models},
        )

    async def _complete(self, request: GenerationRequest, messages: List[Dict[str, Any]]) -> BackendResponse:
        self._require_key()
        model = normalize_model_name(request.model or self.default_model)

        payload = {
            "model": model,
            "messages": messages,
            "stream": request.stream,
            **map_options(request.options.sparse()),
        }
        if isinstance(request.format, dict):
            payload["response_format"] = request.format
        elif request.format == "json":
            payload["response_format"] = {"type": "json_object"}

        logger.info(f"OpenAI request: model={model}, messages={len(messages)}, stream={request.stream}")
        return await self._send("POST", "/chat/completions", payload, stream=request.stream)


def map_options(options: Dict[str, Any]) -> Dict[str, Any]:
    """Keep only options OpenAI understands, renamed to its field names."""
    return {SUPPORTED_OPTIONS[k]: v for k, v in options.items() if k in SUPPORTED_OPTIONS}


def normalize_model_name(model: str) -> str:
    """Turn shorthand like ``gpt4.1-nano`` into ``gpt-4.1-nano``."""
    if not model.startswith("gpt-") and re.match(r"^gpt[0-9]", model, re.IGNORECASE):
        corrected = "gpt-" + model[3:]
        logger.debug(f"Converting model name {model!r} to {corrected!r}")
        return corrected
    return model
