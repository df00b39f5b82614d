from __future__ import annotations

import json
from typing import Any

from aiogram.utils.formatting import Bold, Code, Italic, Text

from .i18n import t
from .session import ExerciseSession, SessionStatus
from .types import ExerciseAttempt

MESSAGE_LIMIT = 3500


def _label(key: object) -> str:
    text = str(key).replace("_", " ").strip()
    return text[:1].upper() + text[1:] if text else text


def _leaf(value: Any) -> str:
    if value is None:
        return "—"
    if isinstance(value, str):
        return value or "—"
    if isinstance(value, list):
        return ", ".join(_leaf(v) for v in value)
    return json.dumps(value, ensure_ascii=False)


def _table_lines(node: dict, depth: int = 0) -> list[list[object]]:
    lines: list[list[object]] = []
    indent = "  " * depth
    for key, value in node.items():
        if isinstance(value, dict):
            lines.append([indent, Bold(_label(key))])
            lines.extend(_table_lines(value, depth + 1))
        else:
            lines.append([indent, _label(key), ": ", Code(_leaf(value))])
    return lines


def _plain_len(parts: list[object]) -> int:
    return len(Text(*parts).as_kwargs()["text"])


def render_table(table: dict | None, word: str, lang: str, *, limit: int = MESSAGE_LIMIT) -> list[Text]:
    """Render a reference table as one or more messages under ``limit`` chars."""
    if not table:
        return [Text(t("no_table", lang))]
    header: list[object] = ["📋 ", Bold(word)]
    chunks: list[Text] = []
    current: list[object] = list(header)
    size = _plain_len(current)
    for line in _table_lines(table):
        line_len = _plain_len(line) + 1
        if size + line_len > limit and size:
            chunks.append(Text(*current))
            current, size = [], 0
        if current:
            current.append("\n")
        current.extend(line)
        size += line_len
    if current:
        chunks.append(Text(*current))
    return chunks


def render_exercise(index: int, total: int | None, attempt: ExerciseAttempt, lang: str) -> Text:
    # total is unknown while exercises are still arriving
    ex = attempt.exercise
    title = f"{t('exercise', lang)} {index + 1}" + (f"/{total}" if total else "")
    parts: list[object] = [Bold(title), "\n", ex.sentence]
    tags = ex.tags()
    if tags:
        parts.extend(["\n", Italic(" · ".join(tags.values()))])
    return Text(*parts)


def _mark(attempt: ExerciseAttempt) -> str:
    if attempt.correct is True:
        return "✅"
    if attempt.correct is False:
        return "❌"
    if attempt.revealed:
        return "👁"
    return "▫️"


def render_exercise_list(session: ExerciseSession, lang: str, *, limit: int = MESSAGE_LIMIT) -> Text:
    if not session.exercises:
        return Text(t("no_exercises", lang))
    correct, answered = session.score()
    parts: list[object] = [
        "✏️ ",
        Bold(session.word),
        f" ({t('score', lang)} {correct}/{answered}, {len(session.exercises)})",
    ]
    size = _plain_len(parts)
    for i, attempt in enumerate(session.exercises):
        line = f"\n{i + 1}. {_mark(attempt)} {attempt.exercise.sentence}"
        if size + len(line) > limit:
            parts.append("\n…")
            break
        parts.append(line)
        size += len(line)
    return Text(*parts)


def render_status(session: ExerciseSession, lang: str) -> Text:
    if session.status is SessionStatus.ERROR:
        return Text(t("failed", lang), " ", session.error or "")
    if session.status is SessionStatus.COMPLETE:
        return Text(t("complete", lang), " ", Bold(session.word), f" ({len(session.exercises)})")
    return Text(t("generating", lang), " ", Bold(session.word), f" ({session.domain.value})…")


def render_explanation(index: int, attempt: ExerciseAttempt, lang: str) -> Text:
    explanation = attempt.exercise.explanation or t("no_explanation", lang)
    return Text(Bold(f"{t('exercise', lang)} {index + 1}"), "\n", explanation)


def render_answer(index: int, attempt: ExerciseAttempt, lang: str) -> Text:
    return Text(
        Bold(f"{t('exercise', lang)} {index + 1}"),
        "\n",
        t("answer", lang),
        " ",
        Code(attempt.exercise.answer),
    )


def split_message(text: str, limit: int = MESSAGE_LIMIT) -> list[str]:
    """Split free text on line breaks into parts of at most ``limit`` chars."""
    parts: list[str] = []
    current = ""
    for line in text.split("\n"):
        while len(line) > limit:
            if current:
                parts.append(current)
                current = ""
            parts.append(line[:limit])
            line = line[limit:]
        candidate = f"{current}\n{line}" if current else line
        if len(candidate) > limit:
            parts.append(current)
            current = line
        else:
            current = candidate
    if current or not parts:
        parts.append(current)
    return parts
