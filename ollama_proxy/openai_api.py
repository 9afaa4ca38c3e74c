"""
OpenAI-compatible API endpoints.

Provides /v1/chat/completions, /v1/completions and /v1/models for
OpenAI clients, routed to whichever backend the model alias resolves to.
"""

import logging

from fastapi import APIRouter, Request

from .errors import ClientValidationError
from .models import GenerationRequest, RequestKind, ResponseShape
from .normalizer import openai_model_info
from .ollama_api import get_router, handle, read_json

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1")


@router.get("/models")
async def list_models(request: Request):
    """List registered aliases (OpenAI-compatible)."""
    entries = get_router(request).registry.entries()
    return {"object": "list", "data": [openai_model_info(e) for e in entries]}


@router.post("/chat/completions")
async def chat_completions(request: Request):
    """
    OpenAI-compatible chat completions.

    Streams ``chat.completion.chunk`` SSE frames ending with ``data: [DONE]``
    when ``stream`` is true, otherwise returns one ``chat.completion``.
    """
    parsed = GenerationRequest.from_openai(await read_json(request), RequestKind.CHAT)

    logger.info(f"Chat completion: model={parsed.model!r}, messages={len(parsed.messages or [])}, "
                f"stream={parsed.stream}")
    return await handle(request, parsed, RequestKind.CHAT, ResponseShape.OPENAI_CHAT)


@router.post("/completions")
async def completions(request: Request):
    """OpenAI-compatible legacy text completions."""
    parsed = GenerationRequest.from_openai(await read_json(request), RequestKind.GENERATE)
    if not parsed.prompt:
        raise ClientValidationError("Prompt is required")

    logger.info(f"Completion: model={parsed.model!r}, prompt_length={len(parsed.prompt)}, "
                f"stream={parsed.stream}")
    return await handle(request, parsed, RequestKind.GENERATE, ResponseShape.OPENAI_COMPLETION)
