from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass

from aiogram import Bot, Dispatcher, F
from aiogram.exceptions import TelegramBadRequest
from aiogram.filters import Command, CommandObject, CommandStart
from aiogram.types import CallbackQuery, Message, User as TgUser
from aiogram.utils.formatting import Bold, Code, Text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .config import Settings
from .errors import DrillError
from .generator import correct_text, generate
from .i18n import t
from .keyboards import kb_domain, kb_exercise, kb_feedback, kb_lang, kb_tabs
from .llm import LLMClient, build_llm
from .models import User, utcnow
from .normalize import norm_text, norm_word
from .rendering import (
    render_answer,
    render_exercise,
    render_exercise_list,
    render_explanation,
    render_status,
    render_table,
    split_message,
)
from .session import ExerciseSession, SessionRegistry, SessionStatus
from .types import CompleteEvent, Domain, ErrorEvent, ExerciseEvent, GenerationEvent, TableEvent

logger = logging.getLogger(__name__)

@dataclass
class _ChatView:
    chat_id: int
    lang: str
    status_message_id: int | None = None
    # present the next exercise as soon as it arrives
    waiting_for_exercise: bool = True

# ---------------- helpers ----------------
async def _get_or_create_user(s: AsyncSession, tg_user: TgUser, default_lang: str) -> User:
    u = await s.get(User, tg_user.id)
    if u:
        return u
    u = User(
        id=tg_user.id,
        username=tg_user.username,
        first_name=tg_user.first_name,
        ui_lang=default_lang,
    )
    s.add(u)
    await s.commit()
    return u

def _parse_index(data: str | None) -> int | None:
    try:
        return int((data or "").split(":", 1)[1])
    except (IndexError, ValueError):
        return None

def build_feedback_message(correct: bool, submitted: str, canonical: str, ui_lang: str) -> dict[str, object]:
    verdict = t("correct", ui_lang) if correct else t("wrong", ui_lang)
    content = Text(
        verdict,
        "\n",
        Bold(t("your_answer", ui_lang)),
        " ",
        Code(norm_text(submitted) or "—"),
        "\n",
        Bold(t("correct_answer", ui_lang)),
        " ",
        Code(canonical),
    )
    return content.as_kwargs()

def register_handlers(
    dp: Dispatcher,
    *,
    settings: Settings,
    sessionmaker: async_sessionmaker[AsyncSession],
    llm: LLMClient | None = None,
) -> SessionRegistry:
    llm = llm or build_llm(settings)
    registry = SessionRegistry()
    views: dict[int, _ChatView] = {}

    async def _load_user(tg_user: TgUser) -> User:
        async with sessionmaker() as s:
            return await _get_or_create_user(s, tg_user, settings.ui_default_lang)

    async def _update_user(tg_user: TgUser, **fields) -> User:
        async with sessionmaker() as s:
            user = await _get_or_create_user(s, tg_user, settings.ui_default_lang)
            for key, value in fields.items():
                setattr(user, key, value)
            user.updated_at = utcnow()
            await s.commit()
            return user

    async def _edit_status(bot: Bot, view: _ChatView, content: Text) -> None:
        if view.status_message_id is None:
            msg = await bot.send_message(view.chat_id, **content.as_kwargs())
            view.status_message_id = msg.message_id
            return
        try:
            await bot.edit_message_text(
                chat_id=view.chat_id,
                message_id=view.status_message_id,
                **content.as_kwargs(),
            )
        except TelegramBadRequest as exc:
            logger.warning("status_edit_failed: chat_id=%s error=%s", view.chat_id, exc)

    async def _present(bot: Bot, view: _ChatView, session: ExerciseSession, index: int) -> None:
        session.current = index
        total = len(session.exercises) if session.finished else None
        content = render_exercise(index, total, session.exercises[index], view.lang)
        await bot.send_message(view.chat_id, reply_markup=kb_exercise(index, view.lang), **content.as_kwargs())

    async def _send_table(bot: Bot, chat_id: int, session: ExerciseSession, lang: str) -> None:
        chunks = render_table(session.table, session.word, lang)
        for i, chunk in enumerate(chunks):
            markup = kb_tabs(lang) if i == len(chunks) - 1 else None
            await bot.send_message(chat_id, reply_markup=markup, **chunk.as_kwargs())

    async def _on_event(bot: Bot, view: _ChatView, session: ExerciseSession, event: GenerationEvent) -> None:
        if isinstance(event, TableEvent):
            await _send_table(bot, view.chat_id, session, view.lang)
        elif isinstance(event, ExerciseEvent):
            if view.waiting_for_exercise:
                view.waiting_for_exercise = False
                await _present(bot, view, session, len(session.exercises) - 1)
        elif isinstance(event, (CompleteEvent, ErrorEvent)):
            await _edit_status(bot, view, render_status(session, view.lang))
            if isinstance(event, CompleteEvent) and view.waiting_for_exercise and session.exercises:
                session.current = None
                await bot.send_message(view.chat_id, t("all_done", view.lang), reply_markup=kb_tabs(view.lang))

    async def _start_generation(bot: Bot, chat_id: int, raw_word: str, domain: Domain, lang: str) -> None:
        word = norm_word(raw_word)
        if not word:
            await bot.send_message(chat_id, t(f"ask_word_{domain.value}", lang))
            return
        session = ExerciseSession(word=word, domain=domain, emit_interval=settings.emit_interval)
        view = _ChatView(chat_id=chat_id, lang=lang)
        status = await bot.send_message(chat_id, **render_status(session, lang).as_kwargs())
        view.status_message_id = status.message_id
        logger.info("user_action: generate chat_id=%s word=%r domain=%s", chat_id, word, domain.value)

        async def _run(generation_id: int) -> None:
            async def on_event(s: ExerciseSession, event: GenerationEvent) -> None:
                if registry.is_current(chat_id, generation_id):
                    await _on_event(bot, view, s, event)

            events = generate(
                llm,
                word,
                domain,
                exercise_count=settings.exercise_count,
                stream=settings.stream_exercises,
            )
            try:
                await session.consume(events, on_event)
            except asyncio.CancelledError:
                session.status = SessionStatus.ERROR
                session.error = t("cancelled", lang)
                await _edit_status(bot, view, Text(t("cancelled", lang)))
                raise
            except Exception as exc:
                logger.exception("generation_ui_failed: chat_id=%s word=%r", chat_id, word)
                session.status = SessionStatus.ERROR
                session.error = str(exc) or exc.__class__.__name__
                try:
                    await _edit_status(bot, view, render_status(session, lang))
                except Exception:
                    logger.exception("status_edit_failed: chat_id=%s", chat_id)
            finally:
                await events.aclose()

        views[chat_id] = view
        registry.start(chat_id, session, _run)

    async def _switch_mode(bot: Bot, chat_id: int, tg_user: TgUser, domain: Domain, word: str | None) -> None:
        user = await _update_user(tg_user, domain=domain.value)
        session = registry.get(chat_id)
        if session is not None:
            # next plain text is a word, not an answer
            session.current = None
        if word and word.strip():
            await _start_generation(bot, chat_id, word, domain, user.ui_lang)
            return
        await bot.send_message(chat_id, t(f"ask_word_{domain.value}", user.ui_lang))

    @dp.message(CommandStart())
    async def on_start(m: Message):
        user = await _load_user(m.from_user)
        await m.answer(t("welcome", user.ui_lang), reply_markup=kb_domain(user.ui_lang))

    @dp.message(Command("verb"))
    async def on_verb(m: Message, command: CommandObject):
        await _switch_mode(m.bot, m.chat.id, m.from_user, Domain.VERB, command.args)

    @dp.message(Command(commands=["adjective", "adj"]))
    async def on_adjective(m: Message, command: CommandObject):
        await _switch_mode(m.bot, m.chat.id, m.from_user, Domain.ADJECTIVE, command.args)

    @dp.message(Command("stop"))
    async def on_stop(m: Message):
        user = await _load_user(m.from_user)
        if registry.cancel(m.chat.id):
            return
        await m.answer(t("nothing_running", user.ui_lang))

    @dp.message(Command("score"))
    async def on_score(m: Message):
        user = await _load_user(m.from_user)
        session = registry.get(m.chat.id)
        if session is None:
            await m.answer(t("no_session", user.ui_lang))
            return
        await m.answer(reply_markup=kb_tabs(user.ui_lang), **render_exercise_list(session, user.ui_lang).as_kwargs())

    @dp.message(Command("lang"))
    async def on_lang_command(m: Message):
        user = await _load_user(m.from_user)
        await m.answer(t("choose_lang", user.ui_lang), reply_markup=kb_lang())

    @dp.message(Command("correct"))
    async def on_correct(m: Message, command: CommandObject):
        user = await _load_user(m.from_user)
        text = (command.args or "").strip()
        if not text:
            await m.answer(t("correct_usage", user.ui_lang))
            return
        logger.info("user_action: correct chat_id=%s text_len=%s", m.chat.id, len(text))
        try:
            corrected = await correct_text(llm, text)
        except DrillError as exc:
            logger.error("correction_failed: kind=%s error=%s", exc.kind, exc)
            await m.answer(f"{t('correction_failed', user.ui_lang)} {exc}")
            return
        for part in split_message(corrected):
            await m.answer(**Text(part).as_kwargs())

    @dp.callback_query(F.data.startswith("mode:"))
    async def on_mode(c: CallbackQuery):
        try:
            domain = Domain(c.data.split(":", 1)[1])
        except ValueError:
            await c.answer()
            return
        await _switch_mode(c.bot, c.message.chat.id, c.from_user, domain, None)
        await c.answer()

    @dp.callback_query(F.data.startswith("lang:"))
    async def on_lang(c: CallbackQuery):
        lang = c.data.split(":", 1)[1]
        if lang not in ("en", "de"):
            await c.answer()
            return
        await _update_user(c.from_user, ui_lang=lang)
        view = views.get(c.message.chat.id)
        if view is not None:
            view.lang = lang
        await c.message.answer(t("lang_set", lang), reply_markup=kb_domain(lang))
        await c.answer()

    @dp.callback_query(F.data.startswith("tab:"))
    async def on_tab(c: CallbackQuery):
        user = await _load_user(c.from_user)
        chat_id = c.message.chat.id
        session = registry.get(chat_id)
        if session is None:
            await c.answer(t("no_session", user.ui_lang), show_alert=True)
            return
        if c.data == "tab:table":
            await _send_table(c.bot, chat_id, session, user.ui_lang)
        else:
            content = render_exercise_list(session, user.ui_lang)
            await c.message.answer(reply_markup=kb_tabs(user.ui_lang), **content.as_kwargs())
        await c.answer()

    @dp.callback_query(F.data.startswith("why:") | F.data.startswith("show:"))
    async def on_why_or_show(c: CallbackQuery):
        user = await _load_user(c.from_user)
        session = registry.get(c.message.chat.id)
        index = _parse_index(c.data)
        if session is None or index is None or index >= len(session.exercises):
            await c.answer(t("no_session", user.ui_lang), show_alert=True)
            return
        if c.data.startswith("why:"):
            content = render_explanation(index, session.exercises[index], user.ui_lang)
        else:
            content = render_answer(index, session.reveal(index), user.ui_lang)
        await c.message.answer(**content.as_kwargs())
        await c.answer()

    @dp.callback_query(F.data.startswith("next:"))
    async def on_next(c: CallbackQuery):
        user = await _load_user(c.from_user)
        chat_id = c.message.chat.id
        session = registry.get(chat_id)
        view = views.get(chat_id)
        index = _parse_index(c.data)
        if session is None or view is None or index is None:
            await c.answer(t("no_session", user.ui_lang), show_alert=True)
            return
        view.lang = user.ui_lang
        nxt = index + 1
        if nxt < len(session.exercises):
            view.waiting_for_exercise = False
            await _present(c.bot, view, session, nxt)
        elif not session.finished:
            session.current = None
            view.waiting_for_exercise = True
            await c.message.answer(t("waiting_more", user.ui_lang))
        else:
            session.current = None
            correct, answered = session.score()
            await c.message.answer(
                f"{t('all_done', user.ui_lang)} {t('score', user.ui_lang)} {correct}/{answered}",
                reply_markup=kb_tabs(user.ui_lang),
            )
        await c.answer()

    @dp.message(F.text)
    async def on_text(m: Message):
        if m.text.startswith("/"):
            return
        chat_id = m.chat.id
        user = await _load_user(m.from_user)
        session = registry.get(chat_id)
        if session is not None and session.current is not None:
            index = session.current
            correct = session.check_answer(index, m.text)
            logger.info("user_action: answer chat_id=%s index=%s correct=%s", chat_id, index, correct)
            await m.answer(
                reply_markup=kb_feedback(index, user.ui_lang),
                **build_feedback_message(correct, m.text, session.exercises[index].exercise.answer, user.ui_lang),
            )
            return
        if not user.domain:
            await m.answer(t("no_mode", user.ui_lang), reply_markup=kb_domain(user.ui_lang))
            return
        await _start_generation(m.bot, chat_id, m.text, Domain(user.domain), user.ui_lang)

    return registry
