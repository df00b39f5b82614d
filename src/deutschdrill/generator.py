from __future__ import annotations

import json
import logging
from typing import AsyncIterator

from .errors import DrillError, ExtractionError
from .extractor import FragmentExtractor, parse_exercise_array
from .llm import LLMClient
from .prompts import build_correction_messages, build_exercise_messages, build_table_messages
from .types import (
    CompleteEvent,
    Domain,
    ErrorEvent,
    Exercise,
    ExerciseEvent,
    GenerationEvent,
    TableEvent,
)

logger = logging.getLogger(__name__)

_TABLE_KEYS = ("conjugation_table", "declension_table")


def _unwrap_table(payload: dict) -> dict:
    # some models wrap the table as {"type": "table", "conjugation_table": {...}}
    if payload.get("type") == "table":
        for key in _TABLE_KEYS:
            if isinstance(payload.get(key), dict):
                return payload[key]
    return payload


def _to_exercise(payload: object) -> Exercise | None:
    try:
        return Exercise.from_payload(payload)
    except ValueError as exc:
        logger.info("exercise_skipped: reason=%s payload=%r", exc, str(payload)[:200])
        return None


async def _stream_exercises(
    client: LLMClient,
    messages,
) -> AsyncIterator[Exercise]:
    extractor = FragmentExtractor()
    parts: list[str] = []
    found = 0
    async for chunk in client.stream(messages, json_mode=True):
        parts.append(chunk)
        for fragment in extractor.feed(chunk):
            exercise = _to_exercise(json.loads(fragment))
            if exercise is not None:
                found += 1
                yield exercise
    for fragment in extractor.finish():
        exercise = _to_exercise(json.loads(fragment))
        if exercise is not None:
            found += 1
            yield exercise
    if extractor.dropped:
        logger.warning("exercise_stream_dropped: malformed=%s kept=%s", extractor.dropped, found)
    if found:
        return
    # nothing usable came out incrementally; try the response as a whole
    for payload in parse_exercise_array("".join(parts)):
        exercise = _to_exercise(payload)
        if exercise is not None:
            yield exercise


async def _blocking_exercises(
    client: LLMClient,
    messages,
) -> AsyncIterator[Exercise]:
    text = await client.complete(messages, json_mode=True)
    for payload in parse_exercise_array(text):
        exercise = _to_exercise(payload)
        if exercise is not None:
            yield exercise


async def generate(
    client: LLMClient,
    word: str,
    domain: Domain | str,
    *,
    exercise_count: int = 32,
    stream: bool = True,
) -> AsyncIterator[GenerationEvent]:
    """Produce the event sequence for one submitted word.

    Always ends with exactly one CompleteEvent or ErrorEvent. A failure
    before the table arrives yields only the ErrorEvent.
    """
    try:
        domain = Domain(domain)
        table_messages = build_table_messages(word, domain)
        exercise_messages = build_exercise_messages(word, domain, exercise_count)
    except ValueError as exc:
        yield ErrorEvent(str(exc), kind="input")
        return

    word = word.strip()
    logger.info("generation_start: word=%r domain=%s stream=%s count=%s", word, domain.value, stream, exercise_count)
    count = 0
    try:
        table = await client.complete_json(table_messages)
        yield TableEvent(_unwrap_table(table))
        source = _stream_exercises if stream else _blocking_exercises
        async for exercise in source(client, exercise_messages):
            count += 1
            yield ExerciseEvent(exercise)
        if count == 0:
            raise ExtractionError("No exercises found in response")
    except DrillError as exc:
        if isinstance(exc, ExtractionError) and exc.raw is not None:
            logger.error("generation_failed: kind=%s word=%r error=%s raw=%r", exc.kind, word, exc, exc.raw)
        else:
            logger.error("generation_failed: kind=%s word=%r error=%s", exc.kind, word, exc)
        yield ErrorEvent(str(exc), kind=exc.kind)
        return

    logger.info("generation_complete: word=%r domain=%s exercises=%s", word, domain.value, count)
    yield CompleteEvent(f"Generated {count} exercises")


async def correct_text(client: LLMClient, text: str) -> str:
    messages = build_correction_messages(text)
    return (await client.complete(messages)).strip()
