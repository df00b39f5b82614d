import json

import pytest
from aiohttp import test_utils, web

from deutschdrill.config import Settings
from deutschdrill.errors import ConfigurationError, ExtractionError, TransportError
from deutschdrill.llm import (
    ChatCompletionsClient,
    GeminiClient,
    build_llm,
    delta_text,
    parse_json_object,
    sse_data,
)
from deutschdrill.prompts import ChatMessage

MESSAGES = [ChatMessage("system", "Be helpful."), ChatMessage("user", "gehen")]


@pytest.fixture(autouse=True)
def _api_key(monkeypatch):
    monkeypatch.setenv("DEEPSEEK_API_KEY", "test-key")
    monkeypatch.delenv("LLM_API_KEY", raising=False)


async def _serve(handler) -> test_utils.TestServer:
    app = web.Application()
    app.router.add_post("/v1/chat/completions", handler)
    server = test_utils.TestServer(app)
    await server.start_server()
    return server


def _client(server: test_utils.TestServer) -> ChatCompletionsClient:
    return ChatCompletionsClient(base_url=str(server.make_url("/v1")), model="test-model", timeout=5)


def _event(content: str | None) -> str:
    delta = {"content": content} if content is not None else {"role": "assistant"}
    return "data: " + json.dumps({"choices": [{"delta": delta}]}) + "\n\n"


def _sse_handler(parts: list[str], captured: list):
    async def handler(request: web.Request) -> web.StreamResponse:
        captured.append((dict(request.headers), await request.json()))
        resp = web.StreamResponse(status=200, headers={"Content-Type": "text/event-stream"})
        await resp.prepare(request)
        for part in parts:
            await resp.write(part.encode("utf-8"))
        await resp.write_eof()
        return resp

    return handler


def test_sse_data() -> None:
    assert sse_data('data: {"a": 1}\n') == '{"a": 1}'
    assert sse_data("data:[DONE]") == "[DONE]"
    assert sse_data("") is None
    assert sse_data(": keep-alive") is None
    assert sse_data("event: ping") is None


def test_delta_text() -> None:
    assert delta_text(json.dumps({"choices": [{"delta": {"content": "Hal"}}]})) == "Hal"
    assert delta_text(json.dumps({"choices": [{"delta": {"role": "assistant"}}]})) is None
    assert delta_text(json.dumps({"choices": []})) is None
    assert delta_text("{not json") is None


def test_parse_json_object() -> None:
    assert parse_json_object('{"a": 1}') == {"a": 1}
    assert parse_json_object('Here:\n{"a": {"b": 2}}\nThanks') == {"a": {"b": 2}}
    with pytest.raises(ExtractionError):
        parse_json_object("[1, 2]")
    with pytest.raises(ExtractionError):
        parse_json_object("nothing")


@pytest.mark.asyncio
async def test_stream_skips_noise_and_stops_at_done() -> None:
    captured: list = []
    parts = [
        ": keep-alive\n\n",
        _event(None),
        _event("Hal"),
        "data: {broken json\n\n",
        _event("lo"),
        "data: [DONE]\n\n",
        _event("after done"),
    ]
    server = await _serve(_sse_handler(parts, captured))
    try:
        chunks = [c async for c in _client(server).stream(MESSAGES, json_mode=True)]
    finally:
        await server.close()

    assert chunks == ["Hal", "lo"]
    headers, payload = captured[0]
    assert headers["Authorization"] == "Bearer test-key"
    assert payload["stream"] is True
    assert payload["model"] == "test-model"
    assert payload["response_format"] == {"type": "json_object"}
    assert payload["messages"][1] == {"role": "user", "content": "gehen"}


@pytest.mark.asyncio
async def test_stream_event_split_across_writes() -> None:
    line = _event('{"a": 1}')
    server = await _serve(_sse_handler([line[:20], line[20:], "data: [DONE]\n\n"], []))
    try:
        chunks = [c async for c in _client(server).stream(MESSAGES)]
    finally:
        await server.close()
    assert chunks == ['{"a": 1}']


@pytest.mark.asyncio
async def test_stream_without_data_is_an_error() -> None:
    server = await _serve(_sse_handler([": nothing\n\n"], []))
    try:
        with pytest.raises(TransportError) as info:
            async for _ in _client(server).stream(MESSAGES):
                pass
    finally:
        await server.close()
    assert "No response body received" in str(info.value)


@pytest.mark.asyncio
async def test_http_error_status() -> None:
    async def handler(request: web.Request) -> web.Response:
        return web.Response(status=500, text="boom")

    server = await _serve(handler)
    try:
        with pytest.raises(TransportError) as blocking:
            await _client(server).complete(MESSAGES)
        with pytest.raises(TransportError) as streaming:
            async for _ in _client(server).stream(MESSAGES):
                pass
    finally:
        await server.close()
    assert blocking.value.status == 500
    assert str(blocking.value) == "LLM API error: 500 Internal Server Error"
    assert streaming.value.status == 500


@pytest.mark.asyncio
async def test_complete_and_complete_json() -> None:
    captured: list = []

    async def handler(request: web.Request) -> web.Response:
        body = await request.json()
        captured.append(body)
        return web.json_response({"choices": [{"message": {"role": "assistant", "content": '{"present": {"ich": "gehe"}}'}}]})

    server = await _serve(handler)
    try:
        client = _client(server)
        text = await client.complete(MESSAGES)
        table = await client.complete_json(MESSAGES)
    finally:
        await server.close()

    assert text == '{"present": {"ich": "gehe"}}'
    assert table == {"present": {"ich": "gehe"}}
    assert "response_format" not in captured[0]
    assert captured[1]["response_format"] == {"type": "json_object"}
    assert "stream" not in captured[1]


@pytest.mark.asyncio
async def test_complete_without_content() -> None:
    async def handler(request: web.Request) -> web.Response:
        return web.json_response({"choices": []})

    server = await _serve(handler)
    try:
        with pytest.raises(TransportError) as info:
            await _client(server).complete(MESSAGES)
    finally:
        await server.close()
    assert "No response body received" in str(info.value)


@pytest.mark.asyncio
async def test_missing_key_fails_before_any_request(monkeypatch) -> None:
    monkeypatch.delenv("DEEPSEEK_API_KEY", raising=False)
    hits: list = []

    async def handler(request: web.Request) -> web.Response:
        hits.append(request)
        return web.json_response({})

    server = await _serve(handler)
    try:
        with pytest.raises(ConfigurationError) as info:
            await _client(server).complete(MESSAGES)
    finally:
        await server.close()
    assert str(info.value) == "DEEPSEEK_API_KEY is not set"
    assert hits == []


def test_build_llm_picks_provider() -> None:
    base = Settings(bot_token=None, admin_ids=[], database_url="sqlite+aiosqlite://")
    deepseek = build_llm(base)
    assert isinstance(deepseek, ChatCompletionsClient)
    assert deepseek.url == "https://api.deepseek.com/v1/chat/completions"

    gemini = build_llm(Settings(
        bot_token=None,
        admin_ids=[],
        database_url="sqlite+aiosqlite://",
        llm_provider="gemini",
        llm_model="gemini-test",
    ))
    assert isinstance(gemini, GeminiClient)
    assert gemini.model == "gemini-test"
