from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union


class Domain(str, Enum):
    VERB = "verb"
    ADJECTIVE = "adjective"


TAG_FIELDS = ("tense", "person", "mood", "case", "gender", "number", "article_type")


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class Exercise:
    sentence: str
    answer: str
    explanation: str = ""
    tense: str | None = None
    person: str | None = None
    mood: str | None = None
    case: str | None = None
    gender: str | None = None
    number: str | None = None
    article_type: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "Exercise":
        if isinstance(payload, dict) and payload.get("type") == "exercise" and isinstance(payload.get("data"), dict):
            payload = payload["data"]
        if not isinstance(payload, dict):
            raise ValueError("exercise must be an object")
        sentence = _clean(payload.get("sentence"))
        answer = _clean(payload.get("answer"))
        if not sentence or not answer:
            raise ValueError("sentence/answer required")
        tags = {name: _clean(payload.get(name)) for name in TAG_FIELDS}
        return cls(
            sentence=sentence,
            answer=answer,
            explanation=_clean(payload.get("explanation")) or "",
            **tags,
        )

    def tags(self) -> dict[str, str]:
        return {name: getattr(self, name) for name in TAG_FIELDS if getattr(self, name)}


@dataclass
class ExerciseAttempt:
    """Per-user view of an exercise; the wrapped Exercise never changes."""

    exercise: Exercise
    submitted: str | None = None
    correct: bool | None = None
    revealed: bool = False

    @property
    def answered(self) -> bool:
        return self.correct is not None


@dataclass(frozen=True)
class TableEvent:
    table: dict[str, Any]
    type: str = field(default="table", init=False)


@dataclass(frozen=True)
class ExerciseEvent:
    exercise: Exercise
    type: str = field(default="exercise", init=False)


@dataclass(frozen=True)
class CompleteEvent:
    message: str
    type: str = field(default="complete", init=False)


@dataclass(frozen=True)
class ErrorEvent:
    message: str
    kind: str = "error"
    type: str = field(default="error", init=False)


GenerationEvent = Union[TableEvent, ExerciseEvent, CompleteEvent, ErrorEvent]
