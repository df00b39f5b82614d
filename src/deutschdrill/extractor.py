"""Pull JSON objects out of LLM text as it streams in.

The model is asked for JSON but does not reliably produce a single valid
document: objects arrive split across chunks, run together without a
separator, or carry trailing commas. ``FragmentExtractor`` keeps an
explicit buffer and hands back every flat object (one level of braces)
as soon as it is complete, each exactly once, in order of appearance.
A closed candidate that does not parse is logged and skipped so the
objects behind it still come through.

Objects that contain nested objects are not extracted as a unit; the
innermost flat object is found instead. Reference tables are nested and
therefore go through ``parse_exercise_array``/``json.loads`` on the whole
response, while exercises are flat and stream through the extractor.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterable, AsyncIterator, Iterable, Iterator

from .errors import ExtractionError

logger = logging.getLogger(__name__)

_FLAT_OBJECT = re.compile(r"\{[^{}]*\}")
_TRAILING_COMMA_OBJ = re.compile(r",\s*}")
_TRAILING_COMMA_ARR = re.compile(r",\s*]")
_JOINED_OBJECTS = re.compile(r"\}\s*\{")
_ARRAY = re.compile(r"\[[\s\S]*\]")


class ScanStatus(str, Enum):
    FRAGMENT = "fragment"
    INCOMPLETE = "incomplete"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class ScanResult:
    status: ScanStatus
    fragment: str | None = None
    start: int = -1
    end: int = -1


def _loads_object(text: str) -> bool:
    try:
        value = json.loads(text)
    except ValueError:
        return False
    return isinstance(value, dict)


def scan(buffer: str) -> ScanResult:
    """Look for the leftmost flat object in ``buffer``."""
    match = _FLAT_OBJECT.search(buffer)
    if match is None:
        return ScanResult(ScanStatus.INCOMPLETE)
    candidate = match.group(0)
    if _loads_object(candidate):
        return ScanResult(ScanStatus.FRAGMENT, candidate, match.start(), match.end())
    repaired = _TRAILING_COMMA_OBJ.sub("}", candidate)
    if repaired != candidate and _loads_object(repaired):
        return ScanResult(ScanStatus.FRAGMENT, repaired, match.start(), match.end())
    return ScanResult(ScanStatus.MALFORMED, candidate, match.start(), match.end())


class FragmentExtractor:
    def __init__(self) -> None:
        self._buffer = ""
        self._emitted = 0
        self._dropped = 0
        self._finished = False
        self.last_status = ScanStatus.INCOMPLETE

    @property
    def buffer(self) -> str:
        return self._buffer

    @property
    def emitted(self) -> int:
        return self._emitted

    @property
    def dropped(self) -> int:
        return self._dropped

    def _drain(self) -> list[str]:
        out: list[str] = []
        while True:
            result = scan(self._buffer)
            self.last_status = result.status
            if result.status is ScanStatus.INCOMPLETE:
                break
            if result.status is ScanStatus.MALFORMED:
                # a closed flat candidate never becomes valid with more input
                self._dropped += 1
                logger.warning(
                    "extractor_drop: malformed fragment skipped noise_len=%s len=%s fragment=%r",
                    result.start,
                    len(result.fragment or ""),
                    (result.fragment or "")[:200],
                )
            else:
                out.append(result.fragment)
            self._buffer = self._buffer[result.end:]
        self._emitted += len(out)
        return out

    def feed(self, chunk: str) -> list[str]:
        if self._finished:
            raise RuntimeError("extractor already finished")
        if chunk:
            self._buffer += chunk
        return self._drain()

    def finish(self) -> list[str]:
        if self._finished:
            return []
        self._finished = True
        out = self._drain()
        if self._buffer.strip():
            logger.debug("extractor_drop: no object in trailing buffer len=%s", len(self._buffer))
        self._buffer = ""
        return out


def iter_fragments(chunks: Iterable[str]) -> Iterator[str]:
    extractor = FragmentExtractor()
    for chunk in chunks:
        yield from extractor.feed(chunk)
    yield from extractor.finish()


async def aiter_fragments(chunks: AsyncIterable[str]) -> AsyncIterator[str]:
    extractor = FragmentExtractor()
    async for chunk in chunks:
        for fragment in extractor.feed(chunk):
            yield fragment
    for fragment in extractor.finish():
        yield fragment


def parse_exercise_array(text: str) -> list[dict]:
    """Parse the whole response as one JSON array of exercise payloads."""
    match = _ARRAY.search(text or "")
    if not match:
        raise ExtractionError("No JSON array found in response", raw=text)
    cleaned = _TRAILING_COMMA_ARR.sub("]", match.group(0))
    cleaned = _TRAILING_COMMA_OBJ.sub("}", cleaned)
    cleaned = _JOINED_OBJECTS.sub("},{", cleaned)
    cleaned = cleaned.replace("\n", "").replace("\r", "").strip()
    try:
        items = json.loads(cleaned)
    except ValueError as exc:
        raise ExtractionError(f"Invalid JSON array in response: {exc}", raw=text) from exc
    if not isinstance(items, list):
        raise ExtractionError("Response is not an array", raw=text)
    out: list[dict] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        if item.get("type") == "table":
            continue
        if item.get("type") == "exercise" and isinstance(item.get("data"), dict):
            item = item["data"]
        out.append(item)
    return out
