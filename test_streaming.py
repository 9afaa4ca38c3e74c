"""Tests for the SSE stream translator."""

import json

import httpx
import pytest

from conftest import FakeUpstream, sse
from ollama_proxy.models import ResponseShape
from ollama_proxy.streaming import StreamTranslator


def decode(frame: str):
    assert frame.startswith("data: ") and frame.endswith("\n\n")
    data = frame[len("data: "):-2]
    return data if data == "[DONE]" else json.loads(data)


async def collect(translator, upstream):
    return [decode(f) async for f in translator.relay(upstream)]


@pytest.mark.asyncio
async def test_ollama_chat_frames():
    upstream = FakeUpstream([
        'data: {"choices":[{"delta":{"content":"Hi"}}]}',
        "",
        "data: [DONE]",
        "",
    ])
    frames = await collect(StreamTranslator(ResponseShape.OLLAMA_CHAT, "llama2"), upstream)

    assert len(frames) == 2
    assert frames[0]["message"] == {"role": "assistant", "content": "Hi"}
    assert frames[0]["done"] is False
    assert frames[1]["done"] is True
    assert frames[1]["total_duration"] == 0
    assert frames[1]["eval_count"] == 0
    assert upstream.closed


@pytest.mark.asyncio
async def test_openai_chat_frames():
    upstream = FakeUpstream([
        'data: {"choices":[{"delta":{"content":"Hi"}}]}',
        "data: [DONE]",
    ])
    translator = StreamTranslator(ResponseShape.OPENAI_CHAT, "gpt4", response_id="chatcmpl-test", created=1)
    frames = await collect(translator, upstream)

    assert frames[0] == {
        "id": "chatcmpl-test",
        "object": "chat.completion.chunk",
        "created": 1,
        "model": "gpt4",
        "choices": [{"index": 0, "delta": {"content": "Hi"}, "finish_reason": None}],
    }
    assert frames[1]["choices"][0]["finish_reason"] == "stop"
    assert frames[2] == "[DONE]"
    assert len(frames) == 3


def test_malformed_frame_is_dropped():
    translator = StreamTranslator(ResponseShape.OLLAMA_CHAT, "gemini")

    content = translator.translate_line("data: {not valid json")
    content += translator.translate_line('data: {"candidates":[{"content":"ok"}]}')

    assert len(content) == 1
    assert decode(content[0])["message"]["content"] == "ok"


@pytest.mark.asyncio
async def test_missing_sentinel_still_terminates():
    upstream = FakeUpstream([
        sse({"candidates": [{"content": {"parts": [{"text": "Hel"}, {"text": "lo"}], "role": "model"}}]}),
    ])
    frames = await collect(StreamTranslator(ResponseShape.OPENAI_COMPLETION, "gemini"), upstream)

    assert frames[0]["object"] == "text_completion"
    assert frames[0]["choices"][0]["text"] == "Hello"
    assert frames[1]["choices"][0]["finish_reason"] == "stop"
    assert frames[2] == "[DONE]"
    assert upstream.closed


@pytest.mark.asyncio
async def test_native_ollama_lines():
    upstream = FakeUpstream([
        json.dumps({"model": "llama3", "response": "Once", "done": False}),
        json.dumps({"model": "llama3", "response": " upon", "done": False}),
        json.dumps({"model": "llama3", "response": "", "done": True}),
        json.dumps({"model": "llama3", "response": "ignored", "done": False}),
    ])
    frames = await collect(StreamTranslator(ResponseShape.OLLAMA_GENERATE, "llama3"), upstream)

    assert [f["response"] for f in frames] == ["Once", " upon", ""]
    assert [f["done"] for f in frames] == [False, False, True]
    # reading stops at the terminal chunk
    assert upstream.read == 3


@pytest.mark.asyncio
async def test_frames_without_text_are_skipped():
    upstream = FakeUpstream([
        sse({"choices": [{"delta": {"role": "assistant"}}]}),
        "event: ping",
        ": keep-alive",
        sse({"choices": [{"delta": {"content": "a"}}]}),
        sse({"choices": [{"delta": {"content": "b"}}]}),
        sse({"choices": [{"delta": {}, "finish_reason": "stop"}]}),
        "data: [DONE]",
    ])
    frames = await collect(StreamTranslator(ResponseShape.OLLAMA_CHAT, "m"), upstream)

    assert [f["message"]["content"] for f in frames] == ["a", "b", ""]


@pytest.mark.asyncio
async def test_consumer_disconnect_releases_upstream():
    upstream = FakeUpstream([sse({"choices": [{"delta": {"content": str(i)}}]}) for i in range(10)])
    relay = StreamTranslator(ResponseShape.OPENAI_CHAT, "gpt4").relay(upstream)

    first = await relay.__anext__()
    assert decode(first)["choices"][0]["delta"]["content"] == "0"
    assert not upstream.closed

    await relay.aclose()
    assert upstream.closed
    assert upstream.read == 1


@pytest.mark.asyncio
async def test_upstream_failure_releases_and_propagates():
    class BrokenUpstream(FakeUpstream):
        async def aiter_lines(self):
            yield sse({"choices": [{"delta": {"content": "partial"}}]})
            raise httpx.ReadError("connection reset")

    upstream = BrokenUpstream([])
    relay = StreamTranslator(ResponseShape.OLLAMA_CHAT, "m").relay(upstream)

    frames = []
    with pytest.raises(httpx.ReadError):
        async for frame in relay:
            frames.append(frame)

    assert len(frames) == 1
    assert upstream.closed
