"""
Buffered response normalization into the client protocol shapes.

Usage figures on OpenAI-shape responses are a coarse character-count
heuristic (4 characters per token), not tokenizer output.
"""

import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict

from .extraction import BODY_RULES, extract_text
from .models import AliasEntry, GenerationRequest, ResponseShape

CHARS_PER_TOKEN = 4

ZEROED_TIMINGS = {
    "total_duration": 0,
    "load_duration": 0,
    "prompt_eval_count": 0,
    "eval_count": 0,
}


def created_at() -> str:
    """Ollama-style UTC timestamp."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def completion_id(shape: ResponseShape) -> str:
    prefix = "chatcmpl" if shape is ResponseShape.OPENAI_CHAT else "cmpl"
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


def approximate_tokens(text: str) -> int:
    return len(text) // CHARS_PER_TOKEN


def prompt_text(request: GenerationRequest) -> str:
    """Text counted as the prompt by the usage heuristic."""
    if request.messages:
        return "".join(m.content or "" for m in request.messages)
    return request.prompt or ""


def usage(prompt: str, completion: str) -> Dict[str, int]:
    prompt_tokens = approximate_tokens(prompt)
    completion_tokens = approximate_tokens(completion)
    return {
        "prompt_tokens": prompt_tokens,
        "completion_tokens": completion_tokens,
        "total_tokens": prompt_tokens + completion_tokens,
    }


def normalize(body: Any, shape: ResponseShape, model: str, prompt: str = "") -> Dict[str, Any]:
    """Render an adapter's buffered body as a terminal client response."""
    content = extract_text(body or {}, BODY_RULES)

    if shape is ResponseShape.OLLAMA_CHAT:
        return {
            "model": model,
            "created_at": created_at(),
            "message": {"role": "assistant", "content": content},
            "done": True,
            **ZEROED_TIMINGS,
        }

    if shape is ResponseShape.OLLAMA_GENERATE:
        return {
            "model": model,
            "created_at": created_at(),
            "response": content,
            "done": True,
            **ZEROED_TIMINGS,
        }

    if shape is ResponseShape.OPENAI_CHAT:
        choice = {
            "index": 0,
            "message": {"role": "assistant", "content": content},
            "finish_reason": "stop",
        }
        obj = "chat.completion"
    else:
        choice = {
            "text": content,
            "index": 0,
            "logprobs": None,
            "finish_reason": "stop",
        }
        obj = "text_completion"

    return {
        "id": completion_id(shape),
        "object": obj,
        "created": int(time.time()),
        "model": model,
        "choices": [choice],
        "usage": usage(prompt, content),
    }


def ollama_model_info(entry: AliasEntry) -> Dict[str, Any]:
    """Registry entry as an Ollama ``/api/tags`` model."""
    return {
        "name": entry.alias,
        "model": entry.alias,
        "modified_at": created_at(),
        "size": 0,
        "digest": "",
        "details": {
            "format": "unknown",
            "family": entry.backend.value,
            "parameter_size": "unknown",
            "quantization_level": "unknown",
        },
    }


def openai_model_info(entry: AliasEntry) -> Dict[str, Any]:
    """Registry entry as an OpenAI ``/v1/models`` item."""
    return {
        "id": entry.alias,
        "object": "model",
        "created": int(time.time()),
        "owned_by": entry.backend.value,
    }
