import json

import pytest
from aiohttp import test_utils, web

from deutschdrill.errors import TransportError
from deutschdrill.generator import correct_text, generate
from deutschdrill.llm import ChatCompletionsClient
from deutschdrill.types import CompleteEvent, Domain, ErrorEvent, ExerciseEvent, TableEvent
from tests.fake_llm import GEHEN_EXERCISES, GEHEN_TABLE, FakeLLM, exercises_json, split_every


async def _collect(client, word="gehen", domain=Domain.VERB, **kwargs):
    return [event async for event in generate(client, word, domain, **kwargs)]


@pytest.mark.asyncio
async def test_streamed_generation_for_gehen() -> None:
    client = FakeLLM()
    events = await _collect(client, exercise_count=2)

    assert [e.type for e in events] == ["table", "exercise", "exercise", "complete"]
    assert isinstance(events[0], TableEvent)
    assert events[0].table == GEHEN_TABLE
    answers = [e.exercise.answer for e in events if isinstance(e, ExerciseEvent)]
    assert answers == ["gehe", "ginge"]
    assert all(e.exercise.sentence for e in events if isinstance(e, ExerciseEvent))
    assert events[1].exercise.tags() == {"tense": "present", "person": "1st person singular"}
    assert events[-1] == CompleteEvent("Generated 2 exercises")

    kinds = [call[0] for call in client.calls]
    assert kinds == ["complete_json", "stream"]
    assert "2" in client.calls[1][1][1].content
    assert client.calls[1][2] is True


@pytest.mark.asyncio
@pytest.mark.parametrize("size", [1, 5, 1000])
async def test_chunk_boundaries_do_not_change_the_result(size: int) -> None:
    events = await _collect(FakeLLM(chunks=split_every(exercises_json(), size)))
    assert [e.exercise.answer for e in events if isinstance(e, ExerciseEvent)] == ["gehe", "ginge"]
    assert isinstance(events[-1], CompleteEvent)


@pytest.mark.asyncio
async def test_blocking_generation() -> None:
    client = FakeLLM(completion="Here you are:\n" + exercises_json())
    events = await _collect(client, stream=False)
    assert [e.type for e in events] == ["table", "exercise", "exercise", "complete"]
    assert [call[0] for call in client.calls] == ["complete_json", "complete"]


@pytest.mark.asyncio
async def test_table_wrapper_is_unwrapped() -> None:
    wrapped = {"type": "table", "declension_table": {"definite_article": {"nominative": {"masculine": "der große"}}}}
    events = await _collect(FakeLLM(table=wrapped), word="groß", domain="adjective")
    assert events[0].table == wrapped["declension_table"]


@pytest.mark.asyncio
async def test_response_without_exercises_yields_table_then_error() -> None:
    events = await _collect(FakeLLM(chunks=["I am sorry, ", "I cannot do that."]))
    assert [e.type for e in events] == ["table", "error"]
    assert events[1] == ErrorEvent("No JSON array found in response", kind="extraction")


@pytest.mark.asyncio
async def test_invalid_exercises_are_skipped() -> None:
    items = [{"sentence": "Ich ___.", "answer": ""}, *GEHEN_EXERCISES]
    events = await _collect(FakeLLM(chunks=[json.dumps({"exercises": items})]))
    assert [e.type for e in events] == ["table", "exercise", "exercise", "complete"]


@pytest.mark.asyncio
async def test_only_invalid_exercises_is_an_error() -> None:
    items = [{"sentence": "Ich ___.", "answer": " "}]
    events = await _collect(FakeLLM(chunks=[json.dumps({"exercises": items})]))
    assert [e.type for e in events] == ["table", "error"]
    assert events[-1].message == "No exercises found in response"


@pytest.mark.asyncio
async def test_stream_failure_keeps_what_was_emitted() -> None:
    first = json.dumps(GEHEN_EXERCISES[0])
    client = FakeLLM(chunks=['{"exercises": [', first, ","], stream_error=TransportError("connection reset"))
    events = await _collect(client)
    assert [e.type for e in events] == ["table", "exercise", "error"]
    assert events[-1] == ErrorEvent("LLM API error: connection reset", kind="transport")


@pytest.mark.asyncio
async def test_table_failure_yields_only_error() -> None:
    client = FakeLLM(table_error=TransportError("Service Unavailable", status=503))
    events = await _collect(client)
    assert events == [ErrorEvent("LLM API error: 503 Service Unavailable", kind="transport")]
    assert [call[0] for call in client.calls] == ["complete_json"]


@pytest.mark.asyncio
async def test_http_500_from_endpoint_yields_only_error(monkeypatch) -> None:
    monkeypatch.setenv("DEEPSEEK_API_KEY", "test-key")

    async def handler(request: web.Request) -> web.Response:
        return web.Response(status=500, text="boom")

    app = web.Application()
    app.router.add_post("/v1/chat/completions", handler)
    server = test_utils.TestServer(app)
    await server.start_server()
    try:
        client = ChatCompletionsClient(base_url=str(server.make_url("/v1")), timeout=5)
        events = await _collect(client)
    finally:
        await server.close()

    assert len(events) == 1
    assert isinstance(events[0], ErrorEvent)
    assert events[0].kind == "transport"
    assert "500" in events[0].message


@pytest.mark.asyncio
async def test_missing_api_key_is_reported_as_error(monkeypatch) -> None:
    monkeypatch.delenv("DEEPSEEK_API_KEY", raising=False)
    monkeypatch.delenv("LLM_API_KEY", raising=False)
    events = await _collect(ChatCompletionsClient())
    assert events == [ErrorEvent("DEEPSEEK_API_KEY is not set", kind="configuration")]


@pytest.mark.asyncio
@pytest.mark.parametrize("word", ["", "   "])
async def test_empty_word_is_rejected_without_calls(word: str) -> None:
    client = FakeLLM()
    events = await _collect(client, word=word)
    assert events == [ErrorEvent("word must not be empty", kind="input")]
    assert client.calls == []


@pytest.mark.asyncio
async def test_correct_text() -> None:
    client = FakeLLM(completion="  Ich bin gegangen.\n")
    assert await correct_text(client, "Ich habe gegangen.") == "Ich bin gegangen."
    assert client.calls[0][0] == "complete"
    assert client.calls[0][2] is False


@pytest.mark.asyncio
async def test_malformed_exercise_mid_stream_keeps_the_rest() -> None:
    good = [{"sentence": f"Ich ___ ({i}).", "answer": "gehe"} for i in range(5)]
    bad = '{"sentence": "Er sagt "hallo" ___", "answer": "x"}'
    items = [json.dumps(good[0]), bad, *(json.dumps(g) for g in good[1:])]
    text = '{"exercises": [' + ", ".join(items) + "]}"

    events = await _collect(FakeLLM(chunks=split_every(text, 20)))

    assert [e.type for e in events] == ["table"] + ["exercise"] * 5 + ["complete"]
    assert [e.exercise.sentence for e in events if isinstance(e, ExerciseEvent)] == [g["sentence"] for g in good]
    assert events[-1] == CompleteEvent("Generated 5 exercises")
