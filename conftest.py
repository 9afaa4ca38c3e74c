"""Shared fixtures: fake backends and upstream streams."""

import json
from typing import Any, Dict, List, Optional

import httpx
import pytest
import pytest_asyncio

from ollama_proxy.backend_client import BackendClient
from ollama_proxy.main import create_app
from ollama_proxy.models import AliasEntry, Backend, BackendResponse, GenerationRequest
from ollama_proxy.registry import ModelRegistry
from ollama_proxy.router import Router


class FakeUpstream:
    """Stands in for a live upstream stream; records whether it was released."""

    def __init__(self, lines: List[str]):
        self.lines = lines
        self.read = 0
        self.closed = False
        self.close_calls = 0

    @property
    def is_closed(self):
        return self.closed

    async def aiter_lines(self):
        for line in self.lines:
            self.read += 1
            yield line

    async def aclose(self):
        self.close_calls += 1
        self.closed = True


class FakeBackend(BackendClient):
    """Adapter double that records calls and returns canned envelopes."""

    def __init__(self, backend: Backend, body: Any = None, stream_lines: Optional[List[str]] = None,
                 models: Optional[List[str]] = None, list_error: Optional[Exception] = None):
        self.backend = backend
        self.body = body if body is not None else {
            "choices": [{"message": {"role": "assistant", "content": "Hello there"}}]
        }
        self.stream_lines = stream_lines
        self.models = models or []
        self.list_error = list_error
        self.calls: List[Dict[str, Any]] = []
        self.upstreams: List[FakeUpstream] = []

    async def close(self):
        pass

    async def generate(self, request: GenerationRequest) -> BackendResponse:
        self.calls.append({"method": "generate", "request": request})
        return self._respond(request)

    async def chat(self, request: GenerationRequest) -> BackendResponse:
        self.calls.append({"method": "chat", "request": request})
        return self._respond(request)

    async def list_models(self) -> BackendResponse:
        if self.list_error is not None:
            raise self.list_error
        return BackendResponse(200, body={"object": "list", "data": [{"id": m} for m in self.models]})

    def _respond(self, request: GenerationRequest) -> BackendResponse:
        if request.stream and self.stream_lines is not None:
            upstream = FakeUpstream(self.stream_lines)
            self.upstreams.append(upstream)
            return BackendResponse(200, stream=upstream)
        return BackendResponse(200, body=self.body)


def sse(payload: Dict[str, Any]) -> str:
    return f"data: {json.dumps(payload)}"


def parse_frames(text: str) -> List[Any]:
    """Decode ``data: ...`` frames from an SSE body; ``[DONE]`` stays a string."""
    frames = []
    for block in text.split("\n\n"):
        block = block.strip()
        if not block.startswith("data: "):
            continue
        data = block[len("data: "):]
        frames.append(data if data == "[DONE]" else json.loads(data))
    return frames


@pytest.fixture
def openai_backend():
    return FakeBackend(
        Backend.OPENAI,
        stream_lines=[
            sse({"choices": [{"delta": {"role": "assistant"}}]}),
            "",
            sse({"choices": [{"delta": {"content": "Hel"}}]}),
            "",
            sse({"choices": [{"delta": {"content": "lo"}}]}),
            "",
            "data: [DONE]",
        ],
    )


@pytest.fixture
def gemini_backend():
    return FakeBackend(
        Backend.GEMINI,
        body={"choices": [{"message": {"role": "assistant", "content": "From Gemini"}}]},
    )


@pytest.fixture
def registry():
    return ModelRegistry([
        AliasEntry("gpt4", Backend.OPENAI, "gpt-4"),
        AliasEntry("gemini", Backend.GEMINI, "gemini-2.0-flash"),
        AliasEntry("llama", Backend.OLLAMA, "llama2"),
    ])


@pytest.fixture
def proxy_app(registry, openai_backend, gemini_backend):
    """App with routing installed directly; Ollama is deliberately unconfigured."""
    app = create_app()
    app.state.router = Router(registry, {
        Backend.OPENAI: openai_backend,
        Backend.GEMINI: gemini_backend,
    })
    return app


@pytest_asyncio.fixture
async def client(proxy_app):
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=proxy_app), base_url="http://test") as c:
        yield c
