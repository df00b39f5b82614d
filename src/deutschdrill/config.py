from __future__ import annotations
import os
from dataclasses import dataclass
from typing import List
from dotenv import load_dotenv

from .errors import ConfigurationError

load_dotenv()

PROVIDERS = ("deepseek", "gemini")

_DEFAULT_MODELS = {
    "deepseek": "deepseek-chat",
    "gemini": "gemini-3-flash-preview",
}

_API_KEY_ENV = {
    "deepseek": ("DEEPSEEK_API_KEY", "LLM_API_KEY"),
    "gemini": ("GEMINI_API_KEY", "GOOGLE_API_KEY"),
}

def _split_csv_ints(s: str) -> List[int]:
    out = []
    for part in (s or "").split(","):
        part = part.strip()
        if part:
            out.append(int(part))
    return out

def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number") from exc

def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer") from exc

def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}

@dataclass(frozen=True)
class Settings:
    bot_token: str | None
    admin_ids: List[int]
    database_url: str
    llm_provider: str = "deepseek"
    llm_model: str = "deepseek-chat"
    llm_base_url: str = "https://api.deepseek.com/v1"
    llm_temperature: float = 0.7
    llm_max_tokens: int = 8000
    llm_timeout: float = 120.0
    exercise_count: int = 32
    emit_interval: float = 0.5  # seconds between exercise appends, 0 disables pacing
    stream_exercises: bool = True
    ui_default_lang: str = "en"  # en/de

def load_settings(*, require_bot_token: bool = True) -> Settings:
    load_dotenv()
    bot_token = os.getenv("BOT_TOKEN") or None
    if require_bot_token and not bot_token:
        raise ConfigurationError("BOT_TOKEN is required")

    admin_ids = _split_csv_ints(os.getenv("ADMIN_IDS", ""))
    database_url = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./data/app.db")

    llm_provider = os.getenv("LLM_PROVIDER", "deepseek").strip().lower()
    if llm_provider not in PROVIDERS:
        raise ConfigurationError("LLM_PROVIDER must be deepseek or gemini")
    llm_model = os.getenv("LLM_MODEL", "").strip() or _DEFAULT_MODELS[llm_provider]
    llm_base_url = os.getenv("LLM_BASE_URL", "https://api.deepseek.com/v1").strip().rstrip("/")

    exercise_count = _env_int("EXERCISE_COUNT", 32)
    if exercise_count < 1:
        raise ConfigurationError("EXERCISE_COUNT must be positive")
    emit_interval = _env_float("EMIT_INTERVAL", 0.5)
    if emit_interval < 0:
        raise ConfigurationError("EMIT_INTERVAL must not be negative")

    ui_default_lang = os.getenv("UI_DEFAULT_LANG", "en").strip().lower()
    if ui_default_lang not in {"en", "de"}:
        raise ConfigurationError("UI_DEFAULT_LANG must be en or de")

    return Settings(
        bot_token=bot_token,
        admin_ids=admin_ids,
        database_url=database_url,
        llm_provider=llm_provider,
        llm_model=llm_model,
        llm_base_url=llm_base_url,
        llm_temperature=_env_float("LLM_TEMPERATURE", 0.7),
        llm_max_tokens=_env_int("LLM_MAX_TOKENS", 8000),
        llm_timeout=_env_float("LLM_TIMEOUT", 120.0),
        exercise_count=exercise_count,
        emit_interval=emit_interval,
        stream_exercises=_env_bool("STREAM_EXERCISES", True),
        ui_default_lang=ui_default_lang,
    )

def require_api_key(provider: str) -> str:
    """Read the vendor API key at call time.

    Missing keys fail here, before any request is built, so the user sees a
    configuration problem instead of a 401 from the vendor.
    """
    names = _API_KEY_ENV.get(provider)
    if names is None:
        raise ConfigurationError(f"unknown LLM provider: {provider}")
    for name in names:
        value = (os.getenv(name) or "").strip()
        if value:
            return value
    raise ConfigurationError(f"{names[0]} is not set")
