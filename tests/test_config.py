import pytest

from deutschdrill.config import load_settings, require_api_key
from deutschdrill.errors import ConfigurationError

_KEYS = (
    "BOT_TOKEN",
    "ADMIN_IDS",
    "DATABASE_URL",
    "LLM_PROVIDER",
    "LLM_MODEL",
    "LLM_BASE_URL",
    "LLM_TEMPERATURE",
    "LLM_MAX_TOKENS",
    "LLM_TIMEOUT",
    "EXERCISE_COUNT",
    "EMIT_INTERVAL",
    "STREAM_EXERCISES",
    "UI_DEFAULT_LANG",
    "DEEPSEEK_API_KEY",
    "LLM_API_KEY",
    "GEMINI_API_KEY",
    "GOOGLE_API_KEY",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for key in _KEYS:
        monkeypatch.delenv(key, raising=False)


def test_defaults(monkeypatch) -> None:
    monkeypatch.setenv("BOT_TOKEN", "123:abc")
    settings = load_settings()
    assert settings.bot_token == "123:abc"
    assert settings.admin_ids == []
    assert settings.llm_provider == "deepseek"
    assert settings.llm_model == "deepseek-chat"
    assert settings.exercise_count == 32
    assert settings.emit_interval == 0.5
    assert settings.stream_exercises is True
    assert settings.ui_default_lang == "en"


def test_bot_token_is_required_unless_disabled() -> None:
    with pytest.raises(ConfigurationError):
        load_settings()
    assert load_settings(require_bot_token=False).bot_token is None


def test_overrides(monkeypatch) -> None:
    monkeypatch.setenv("ADMIN_IDS", "1, 2,")
    monkeypatch.setenv("LLM_PROVIDER", "Gemini")
    monkeypatch.setenv("LLM_BASE_URL", "http://localhost:8080/v1/")
    monkeypatch.setenv("EXERCISE_COUNT", "8")
    monkeypatch.setenv("EMIT_INTERVAL", "0")
    monkeypatch.setenv("STREAM_EXERCISES", "no")
    monkeypatch.setenv("UI_DEFAULT_LANG", "DE")
    settings = load_settings(require_bot_token=False)
    assert settings.admin_ids == [1, 2]
    assert settings.llm_provider == "gemini"
    assert settings.llm_model == "gemini-3-flash-preview"
    assert settings.llm_base_url == "http://localhost:8080/v1"
    assert settings.exercise_count == 8
    assert settings.emit_interval == 0.0
    assert settings.stream_exercises is False
    assert settings.ui_default_lang == "de"


@pytest.mark.parametrize(
    "key,value",
    [
        ("LLM_PROVIDER", "openai"),
        ("EXERCISE_COUNT", "0"),
        ("EXERCISE_COUNT", "many"),
        ("EMIT_INTERVAL", "-1"),
        ("LLM_TEMPERATURE", "warm"),
        ("UI_DEFAULT_LANG", "fr"),
    ],
)
def test_invalid_values(monkeypatch, key: str, value: str) -> None:
    monkeypatch.setenv(key, value)
    with pytest.raises(ConfigurationError):
        load_settings(require_bot_token=False)


def test_require_api_key(monkeypatch) -> None:
    with pytest.raises(ConfigurationError) as info:
        require_api_key("deepseek")
    assert str(info.value) == "DEEPSEEK_API_KEY is not set"

    monkeypatch.setenv("LLM_API_KEY", "fallback")
    assert require_api_key("deepseek") == "fallback"
    monkeypatch.setenv("DEEPSEEK_API_KEY", " primary ")
    assert require_api_key("deepseek") == "primary"

    monkeypatch.setenv("GOOGLE_API_KEY", "g")
    assert require_api_key("gemini") == "g"
    with pytest.raises(ConfigurationError):
        require_api_key("openai")
