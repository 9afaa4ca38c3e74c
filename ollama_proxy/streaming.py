"""
Streaming response translation.

Consumes an upstream event stream line by line and re-emits each frame in
the client protocol's streaming shape as soon as it arrives. Upstreams send
``data: <json>`` SSE frames (OpenAI, Gemini) or bare JSON lines (native
Ollama); the output is always ``data: <json>\\n\\n`` frames, in upstream order.
"""

import json
import logging
import time
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol

import httpx
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from .extraction import DELTA_RULES, extract_text
from .models import ResponseShape
from .normalizer import ZEROED_TIMINGS, completion_id, created_at

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


class UpstreamStream(Protocol):
    """Live upstream body; BackendResponse satisfies this."""

    def aiter_lines(self) -> AsyncIterator[str]:
        ...

    async def aclose(self):
        ...


class StreamTranslator:
    """
    Translator for one streamed response.

    Emits at most one content frame per upstream frame and exactly one
    terminal output, either on the upstream's end sentinel or when the
    upstream ends without one.
    """

    def __init__(self, shape: ResponseShape, model: str,
                 response_id: Optional[str] = None, created: Optional[int] = None):
        self.shape = shape
        self.model = model
        self.response_id = response_id or completion_id(shape)
        self.created = created or int(time.time())
        self.done = False

    async def relay(self, upstream: UpstreamStream) -> AsyncIterator[str]:
        """
        Yield client frames while reading ``upstream``.

        The upstream is released on every exit path, including the consumer
        closing this generator when the client disconnects.
        """
        try:
            async for line in upstream.aiter_lines():
                for frame in self.translate_line(line):
                    yield frame
                if self.done:
                    break
            for frame in self.finish():
                yield frame
        except httpx.HTTPError as e:
            logger.error(f"Upstream stream failed mid-response: {e!r}")
            raise
        finally:
            await upstream.aclose()

    def translate_line(self, line: str) -> List[str]:
        """Output frames for one upstream line (possibly none)."""
        line = line.strip()
        if not line or self.done:
            return []

        if line.startswith(DATA_PREFIX):
            payload = line[len(DATA_PREFIX):].strip()
        elif line.startswith("{"):
            payload = line
        else:
            # event:, id:, retry: and comment lines carry no content
            return []

        if payload == DONE_SENTINEL:
            return self._terminal()

        try:
            data = json.loads(payload)
        except json.JSONDecodeError:
            logger.warning(f"Dropping unparsable stream frame: {payload[:100]}")
            return []

        frames = []
        text = extract_text(data, DELTA_RULES)
        if text:
            frames.append(_sse(self._content_chunk(text)))

        # Native Ollama marks its last chunk instead of sending [DONE]
        if isinstance(data, dict) and data.get("done") is True:
            frames.extend(self._terminal())
        return frames

    def finish(self) -> List[str]:
        """Terminal output if the upstream ended without a sentinel."""
        if self.done:
            return []
        logger.debug("Upstream stream ended without an end sentinel")
        return self._terminal()

    def _terminal(self) -> List[str]:
        if self.done:
            return []
        self.done = True

        if self.shape is ResponseShape.OLLAMA_CHAT:
            return [_sse(self._ollama_chunk({"message": {"role": "assistant", "content": ""}}, done=True))]
        if self.shape is ResponseShape.OLLAMA_GENERATE:
            return [_sse(self._ollama_chunk({"response": ""}, done=True))]
        if self.shape is ResponseShape.OPENAI_CHAT:
            choice = {"index": 0, "delta": {}, "finish_reason": "stop"}
        else:
            choice = {"text": "", "index": 0, "logprobs": None, "finish_reason": "stop"}
        return [_sse(self._openai_chunk(choice)), f"data: {DONE_SENTINEL}\n\n"]

    def _content_chunk(self, text: str) -> Dict[str, Any]:
        if self.shape is ResponseShape.OLLAMA_CHAT:
            return self._ollama_chunk({"message": {"role": "assistant", "content": text}}, done=False)
        if self.shape is ResponseShape.OLLAMA_GENERATE:
            return self._ollama_chunk({"response": text}, done=False)
        if self.shape is ResponseShape.OPENAI_CHAT:
            return self._openai_chunk({"index": 0, "delta": {"content": text}, "finish_reason": None})
        return self._openai_chunk({"text": text, "index": 0, "logprobs": None, "finish_reason": None})

    def _ollama_chunk(self, body: Dict[str, Any], done: bool) -> Dict[str, Any]:
        return {
            "model": self.model,
            "created_at": created_at(),
            **body,
            "done": done,
            **ZEROED_TIMINGS,
        }

    def _openai_chunk(self, choice: Dict[str, Any]) -> Dict[str, Any]:
        obj = "chat.completion.chunk" if self.shape is ResponseShape.OPENAI_CHAT else "text_completion"
        return {
            "id": self.response_id,
            "object": obj,
            "created": self.created,
            "model": self.model,
            "choices": [choice],
        }


def _sse(chunk: Dict[str, Any]) -> str:
    return f"data: {json.dumps(chunk)}\n\n"


def streaming_response(upstream: UpstreamStream, shape: ResponseShape, model: str) -> StreamingResponse:
    """
    SSE response relaying ``upstream`` through a StreamTranslator.

    Closing the upstream is also scheduled as a background task so it is
    released even if the body is never iterated.
    """
    translator = StreamTranslator(shape, model)
    return StreamingResponse(
        translator.relay(upstream),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        },
        background=BackgroundTask(upstream.aclose),
    )
