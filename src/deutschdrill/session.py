from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterable, Awaitable, Callable, Coroutine, Optional

from .normalize import norm_answer
from .types import (
    CompleteEvent,
    Domain,
    ErrorEvent,
    ExerciseAttempt,
    ExerciseEvent,
    GenerationEvent,
    TableEvent,
)

logger = logging.getLogger(__name__)


class SessionStatus(str, Enum):
    IDLE = "idle"
    GENERATING = "generating"
    COMPLETE = "complete"
    ERROR = "error"


def answers_match(given: str, canonical: str) -> bool:
    """Trimmed, case-insensitive comparison.

    ``str.lower`` rather than ``casefold`` so that "ß" and "ss" stay
    different answers.
    """
    return norm_answer(given) == norm_answer(canonical)


EventCallback = Callable[["ExerciseSession", GenerationEvent], Awaitable[None]]


@dataclass
class ExerciseSession:
    word: str
    domain: Domain
    emit_interval: float = 0.0
    table: Optional[dict[str, Any]] = None
    exercises: list[ExerciseAttempt] = field(default_factory=list)
    status: SessionStatus = SessionStatus.IDLE
    error: str | None = None
    current: int | None = None  # exercise shown to the learner, None when a word is expected

    def apply(self, event: GenerationEvent) -> None:
        if isinstance(event, TableEvent):
            self.table = event.table
            self.status = SessionStatus.GENERATING
        elif isinstance(event, ExerciseEvent):
            self.exercises.append(ExerciseAttempt(event.exercise))
            self.status = SessionStatus.GENERATING
        elif isinstance(event, CompleteEvent):
            self.status = SessionStatus.COMPLETE
        elif isinstance(event, ErrorEvent):
            # table and exercises already shown stay in place
            self.status = SessionStatus.ERROR
            self.error = event.message
        else:
            raise TypeError(f"unknown event: {event!r}")

    async def consume(
        self,
        events: AsyncIterable[GenerationEvent],
        on_event: EventCallback | None = None,
    ) -> None:
        self.status = SessionStatus.GENERATING
        self.error = None
        paced = False
        async for event in events:
            if isinstance(event, ExerciseEvent):
                if paced and self.emit_interval > 0:
                    await asyncio.sleep(self.emit_interval)
                paced = True
            self.apply(event)
            if on_event is not None:
                await on_event(self, event)

    def attempt(self, index: int) -> ExerciseAttempt:
        if index < 0 or index >= len(self.exercises):
            raise IndexError(f"no exercise {index}")
        return self.exercises[index]

    def check_answer(self, index: int, answer: str) -> bool:
        item = self.attempt(index)
        item.submitted = answer
        item.correct = answers_match(answer, item.exercise.answer)
        return item.correct

    def reveal(self, index: int) -> ExerciseAttempt:
        item = self.attempt(index)
        item.revealed = True
        return item

    def score(self) -> tuple[int, int]:
        answered = [x for x in self.exercises if x.answered]
        return sum(1 for x in answered if x.correct), len(answered)

    @property
    def finished(self) -> bool:
        return self.status in (SessionStatus.COMPLETE, SessionStatus.ERROR)


class SessionRegistry:
    """One session and at most one generation task per chat."""

    def __init__(self) -> None:
        self._sessions: dict[int, ExerciseSession] = {}
        self._tasks: dict[int, asyncio.Task] = {}
        self._generation: dict[int, int] = {}
        self._ids = itertools.count(1)

    def get(self, chat_id: int) -> ExerciseSession | None:
        return self._sessions.get(chat_id)

    def generation_id(self, chat_id: int) -> int | None:
        return self._generation.get(chat_id)

    def is_current(self, chat_id: int, generation_id: int) -> bool:
        return self._generation.get(chat_id) == generation_id

    def task(self, chat_id: int) -> asyncio.Task | None:
        return self._tasks.get(chat_id)

    def cancel(self, chat_id: int) -> bool:
        task = self._tasks.pop(chat_id, None)
        if task is None or task.done():
            return False
        task.cancel()
        logger.info("generation_cancelled: chat_id=%s", chat_id)
        return True

    def start(
        self,
        chat_id: int,
        session: ExerciseSession,
        run: Callable[[int], Coroutine[Any, Any, None]],
    ) -> asyncio.Task:
        """Replace the chat's session and run ``run(generation_id)`` as its task.

        The previous task, if still running, is cancelled first.
        """
        self.cancel(chat_id)
        generation_id = next(self._ids)
        self._sessions[chat_id] = session
        self._generation[chat_id] = generation_id
        task = asyncio.create_task(run(generation_id))
        self._tasks[chat_id] = task

        def _done(t: asyncio.Task) -> None:
            if self._tasks.get(chat_id) is t:
                self._tasks.pop(chat_id, None)
            if not t.cancelled() and t.exception() is not None:
                logger.error("generation_task_failed: chat_id=%s", chat_id, exc_info=t.exception())

        task.add_done_callback(_done)
        return task
