from __future__ import annotations
from aiogram.types import InlineKeyboardMarkup
from aiogram.utils.keyboard import InlineKeyboardBuilder
from .i18n import t

def kb_domain(ui_lang: str) -> InlineKeyboardMarkup:
    b = InlineKeyboardBuilder()
    b.button(text=t("mode_verb", ui_lang), callback_data="mode:verb")
    b.button(text=t("mode_adjective", ui_lang), callback_data="mode:adjective")
    b.adjust(2)
    return b.as_markup()

def kb_lang() -> InlineKeyboardMarkup:
    b = InlineKeyboardBuilder()
    b.button(text="English", callback_data="lang:en")
    b.button(text="Deutsch", callback_data="lang:de")
    b.adjust(2)
    return b.as_markup()

def kb_tabs(ui_lang: str) -> InlineKeyboardMarkup:
    b = InlineKeyboardBuilder()
    b.button(text=t("tab_table", ui_lang), callback_data="tab:table")
    b.button(text=t("tab_exercises", ui_lang), callback_data="tab:exercises")
    b.adjust(2)
    return b.as_markup()

def kb_exercise(index: int, ui_lang: str) -> InlineKeyboardMarkup:
    b = InlineKeyboardBuilder()
    b.button(text=t("show", ui_lang), callback_data=f"show:{index}")
    b.button(text=t("next", ui_lang), callback_data=f"next:{index}")
    b.adjust(2)
    return b.as_markup()

def kb_feedback(index: int, ui_lang: str) -> InlineKeyboardMarkup:
    # index is the exercise just checked
    b = InlineKeyboardBuilder()
    b.button(text=t("why", ui_lang), callback_data=f"why:{index}")
    b.button(text=t("next", ui_lang), callback_data=f"next:{index}")
    b.adjust(2)
    return b.as_markup()
