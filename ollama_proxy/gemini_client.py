"""Gemini ``generateContent`` backend."""

import logging
from typing import Any, Dict, List, Optional

import httpx

from .backend_client import BackendClient, chat_completion_view
from .errors import BackendConfigError
from .extraction import BODY_RULES, extract_text
from .models import Backend, BackendResponse, ChatMessage, GenerationRequest

logger = logging.getLogger(__name__)

# Unified option -> generationConfig field
GENERATION_CONFIG_FIELDS = {
    "temperature": "temperature",
    "top_p": "topP",
    "top_k": "topK",
    "num_predict": "maxOutputTokens",
    "stop": "stopSequences",
    "seed": "seed",
    "presence_penalty": "presencePenalty",
    "frequency_penalty": "frequencyPenalty",
}

FINISH_REASONS = {"STOP": "stop", "MAX_TOKENS": "length"}


class GeminiClient(BackendClient):
    """
    Backend for the Gemini API, authenticated with an API-key query parameter.

    Chat messages are converted to Gemini's turn-structured ``contents``;
    system text goes to ``systemInstruction``. Streaming uses the SSE
    variant of ``streamGenerateContent``.
    """

    backend = Backend.GEMINI
    default_model = "gemini-2.0-flash"

    def __init__(self, api_key: str,
                 base_url: str = "https://generativelanguage.googleapis.com/v1beta",
                 timeout: float = 300.0, client: Optional[httpx.AsyncClient] = None):
        super().__init__(base_url, timeout=timeout, client=client)
        self.api_key = api_key

    def _require_key(self):
        if not self.api_key:
            raise BackendConfigError(
                "Gemini API key is not set. Please set GEMINI_API_KEY in your environment variables."
            )

    async def generate(self, request: GenerationRequest) -> BackendResponse:
        text = request.prompt or ""
        if request.system:
            text = f"{request.system}\n\n{text}"
        payload = {"contents": [{"role": "user", "parts": [{"text": text}]}]}
        return await self._generate_content(request, payload)

    async def chat(self, request: GenerationRequest) -> BackendResponse:
        contents, system = to_contents(request.messages or [])
        if request.system:
            system = [request.system] + system

        payload: Dict[str, Any] = {"contents": contents}
        if system:
            payload["systemInstruction"] = {"parts": [{"text": "\n\n".join(system)}]}
        return await self._generate_content(request, payload)

    async def list_models(self) -> BackendResponse:
        self._require_key()
        response = await self._send("GET", "/models", params={"key": self.api_key})

        models = []
        for m in response.body.get("models", []):
            methods = m.get("supportedGenerationMethods")
            if methods is not None and "generateContent" not in methods:
                continue
            models.append({"id": m.get("name", ""), "object": "model", "owned_by": "google"})

        logger.info(f"Gemini: found {len(models)} generateContent models")
        return BackendResponse(
            status_code=response.status_code,
            body={"object": "list", "data": models},
        )

    async def _generate_content(self, request: GenerationRequest, payload: Dict[str, Any]) -> BackendResponse:
        self._require_key()
        model = model_path(request.model or self.default_model)

        config = {
            GENERATION_CONFIG_FIELDS[k]: v
            for k, v in request.options.sparse().items()
            if k in GENERATION_CONFIG_FIELDS
        }
        if request.format == "json":
            config["responseMimeType"] = "application/json"
        if config:
            payload["generationConfig"] = config

        logger.info(f"Gemini request: model={model}, turns={len(payload['contents'])}, stream={request.stream}")

        if request.stream:
            return await self._send(
                "POST",
                f"/models/{model}:streamGenerateContent",
                payload,
                params={"key": self.api_key, "alt": "sse"},
                stream=True,
            )

        response = await self._send(
            "POST",
            f"/models/{model}:generateContent",
            payload,
            params={"key": self.api_key},
        )
        return BackendResponse(
            status_code=response.status_code,
            body=reshape_response(response.body, model),
        )


def model_path(model: str) -> str:
    """Upstream ids may arrive as ``models/<name>`` from the model listing."""
    return model[len("models/"):] if model.startswith("models/") else model


def to_contents(messages: List[ChatMessage]):
    """Split chat messages into Gemini turns and system instruction texts."""
    contents = []
    system = []
    for msg in messages:
        if msg.role == "system":
            system.append(msg.content)
            continue
        role = "model" if msg.role == "assistant" else "user"
        contents.append({"role": role, "parts": [{"text": msg.content}]})
    return contents, system


def reshape_response(body: Dict[str, Any], model: str) -> Dict[str, Any]:
    """Add a ``choices[0].message.content`` view over the candidate/parts tree."""
    candidates = body.get("candidates") or [{}]
    first = candidates[0]
    finish = FINISH_REASONS.get(first.get("finishReason", "STOP"), "stop")

    reshaped = chat_completion_view(extract_text(body, BODY_RULES), model, finish)
    if "usageMetadata" in body:
        reshaped["usageMetadata"] = body["usageMetadata"]
    return reshaped
