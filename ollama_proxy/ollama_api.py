"""
Ollama-compatible API endpoints.

Chat and generate requests are routed to the configured backends; model
listing and inspection are served from the alias registry. Model
lifecycle operations are not supported and answer 501.
"""

import logging
from typing import Any

from fastapi import APIRouter, Request

from .errors import ClientValidationError, EndpointNotImplementedError
from .models import GenerationRequest, RequestKind, ResponseShape
from .normalizer import normalize, ollama_model_info, prompt_text
from .router import Router
from .streaming import streaming_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


async def read_json(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError:
        raise ClientValidationError("Request body must be valid JSON")


def get_router(request: Request) -> Router:
    return request.app.state.router


async def handle(request: Request, parsed: GenerationRequest, kind: RequestKind, shape: ResponseShape):
    """Dispatch a parsed request and render the reply in ``shape``."""
    model = parsed.model
    route, response = await get_router(request).dispatch(parsed, kind)

    if response.is_stream:
        return streaming_response(response, shape, model or route.upstream_model)

    logger.debug(f"Upstream reply: status={response.status_code}")
    return normalize(response.body, shape, model or route.upstream_model, prompt_text(parsed))


@router.post("/generate")
async def generate(request: Request):
    """Single-prompt generation, streamed by default."""
    parsed = GenerationRequest.from_ollama(await read_json(request), RequestKind.GENERATE)
    if parsed.prompt is None:
        raise ClientValidationError("Prompt is required")

    logger.info(f"Generate request: model={parsed.model!r}, prompt_length={len(parsed.prompt)}, "
                f"stream={parsed.stream}")
    return await handle(request, parsed, RequestKind.GENERATE, ResponseShape.OLLAMA_GENERATE)


@router.post("/chat")
async def chat(request: Request):
    """Multi-turn chat, buffered unless ``stream`` is true."""
    parsed = GenerationRequest.from_ollama(await read_json(request), RequestKind.CHAT)

    logger.info(f"Chat request: model={parsed.model!r}, messages={len(parsed.messages or [])}, "
                f"stream={parsed.stream}")
    return await handle(request, parsed, RequestKind.CHAT, ResponseShape.OLLAMA_CHAT)


@router.get("/tags")
@router.get("/models")
async def list_models(request: Request):
    """Registered aliases in Ollama format."""
    entries = get_router(request).registry.entries()
    return {"models": [ollama_model_info(e) for e in entries]}


@router.post("/show")
async def show_model(request: Request):
    body = await read_json(request)
    name = (body.get("name") or body.get("model")) if isinstance(body, dict) else None
    if not isinstance(name, str) or not name:
        raise ClientValidationError("Model name is required")
    return ollama_model_info(get_router(request).lookup_model(name))


@router.post("/models/{model}/copy")
async def copy_model(model: str):
    logger.info(f"Model copy not implemented: {model}")
    raise EndpointNotImplementedError()


@router.post("/models/{model}")
async def model_info(model: str, request: Request):
    return ollama_model_info(get_router(request).lookup_model(model))


@router.delete("/models/{model}")
async def delete_model(model: str):
    logger.info(f"Model delete not implemented: {model}")
    raise EndpointNotImplementedError()


@router.post("/create")
@router.post("/pull")
@router.post("/push")
@router.post("/embeddings")
@router.get("/ps")
@router.get("/version")
async def not_implemented():
    raise EndpointNotImplementedError()
