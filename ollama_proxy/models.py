"""Data models for the proxy."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ClientValidationError


# ============================================================================
# Routing
# ============================================================================

class Backend(str, Enum):
    """Upstream provider families."""
    OPENAI = "openai"
    GEMINI = "gemini"
    OLLAMA = "ollama"


class RequestKind(str, Enum):
    CHAT = "chat"
    GENERATE = "generate"


class ResponseShape(str, Enum):
    """Client-protocol response variant the proxy renders."""
    OLLAMA_CHAT = "ollama_chat"
    OLLAMA_GENERATE = "ollama_generate"
    OPENAI_CHAT = "openai_chat"
    OPENAI_COMPLETION = "openai_completion"


@dataclass(frozen=True)
class AliasEntry:
    """Client-facing model alias mapped to a backend and upstream model id."""
    alias: Optional[str]
    backend: Backend
    upstream_model: str


# ============================================================================
# Unified Request Shape
# ============================================================================

class ChatMessage(BaseModel):
    """
    Chat message as received from a client.

    ``role`` and ``content`` are optional here so the router can reject
    incomplete messages with its own error message.
    """
    role: Optional[str] = None
    content: Optional[str] = None
    images: Optional[List[str]] = None

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class GenerationOptions(BaseModel):
    """Sparse sampling options. Unset fields are left to the provider."""
    model_config = ConfigDict(extra="allow")

    temperature: Optional[float] = None
    top_p: Optional[float] = None
    top_k: Optional[int] = None
    num_predict: Optional[int] = None
    stop: Optional[List[str]] = None
    seed: Optional[int] = None
    presence_penalty: Optional[float] = None
    frequency_penalty: Optional[float] = None
    repeat_penalty: Optional[float] = None

    @field_validator("stop", mode="before")
    @classmethod
    def _stop_as_list(cls, value):
        if isinstance(value, str):
            return [value]
        return value

    def sparse(self) -> Dict[str, Any]:
        """Only the options the client actually set."""
        return self.model_dump(exclude_none=True)


# OpenAI request parameter -> unified option name
OPENAI_OPTION_FIELDS = {
    "temperature": "temperature",
    "top_p": "top_p",
    "max_tokens": "num_predict",
    "max_completion_tokens": "num_predict",
    "stop": "stop",
    "seed": "seed",
    "presence_penalty": "presence_penalty",
    "frequency_penalty": "frequency_penalty",
}


class GenerationRequest(BaseModel):
    """Backend-agnostic request consumed by every adapter."""
    model: str = ""
    prompt: Optional[str] = None
    messages: Optional[List[ChatMessage]] = None
    system: Optional[str] = None
    images: Optional[List[str]] = None
    stream: bool = False
    format: Optional[Any] = None
    options: GenerationOptions = Field(default_factory=GenerationOptions)

    @classmethod
    def from_ollama(cls, body: Any, kind: RequestKind) -> "GenerationRequest":
        """Parse an ``/api/generate`` or ``/api/chat`` body."""
        body = _require_object(body)
        data = _pick(body, "model", "system", "format", "images")
        if kind is RequestKind.CHAT:
            data["messages"] = body.get("messages")
        else:
            data["prompt"] = body.get("prompt")
        # Ollama streams generate by default, chat only on request
        data["stream"] = body.get("stream", kind is RequestKind.GENERATE)
        data["options"] = body.get("options") or {}
        return _validate(cls, data)

    @classmethod
    def from_openai(cls, body: Any, kind: RequestKind) -> "GenerationRequest":
        """Parse a ``/v1/chat/completions`` or ``/v1/completions`` body."""
        body = _require_object(body)
        data = _pick(body, "model")
        if kind is RequestKind.CHAT:
            data["messages"] = body.get("messages")
        else:
            data["prompt"] = body.get("prompt")
        data["stream"] = body.get("stream", False)

        options = body.get("options") or {}
        if not isinstance(options, dict):
            raise ClientValidationError("Invalid request field 'options': must be an object")
        options = dict(options)
        for key, option in OPENAI_OPTION_FIELDS.items():
            if body.get(key) is not None:
                options[option] = body[key]
        data["options"] = options
        return _validate(cls, data)


def _require_object(body: Any) -> Dict[str, Any]:
    if not isinstance(body, dict):
        raise ClientValidationError("Request body must be a JSON object")
    return body


def _pick(body: Dict[str, Any], *keys: str) -> Dict[str, Any]:
    return {k: body[k] for k in keys if body.get(k) is not None}


def _validate(cls, data: Dict[str, Any]):
    try:
        return cls.model_validate(data)
    except ValidationError as e:
        err = e.errors()[0]
        loc = ".".join(str(part) for part in err["loc"])
        raise ClientValidationError(f"Invalid request field '{loc}': {err['msg']}") from e


# ============================================================================
# Backend Response Envelope
# ============================================================================

@dataclass
class BackendResponse:
    """
    Result of one upstream call.

    Buffered calls carry a decoded JSON ``body``. Streaming calls carry the
    live ``stream``; whoever consumes it owns it and must call ``aclose()``.
    """
    status_code: int
    body: Any = None
    stream: Optional[httpx.Response] = None

    @property
    def is_stream(self) -> bool:
        return self.stream is not None

    def aiter_lines(self) -> AsyncIterator[str]:
        return self.stream.aiter_lines()

    async def aclose(self):
        """Release the upstream stream. Safe to call more than once."""
        if self.stream is not None and not self.stream.is_closed:
            await self.stream.aclose()
