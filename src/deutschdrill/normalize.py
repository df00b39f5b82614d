from __future__ import annotations
import re
import unicodedata

_QUOTE_MAP = {
    "’": "'",
    "‘": "'",
    "“": "\"",
    "”": "\"",
    "„": "\"",
}

def _nfkc_normalize(s: str) -> str:
    if not s:
        return ""
    s = unicodedata.normalize("NFKC", s)
    for src, dst in _QUOTE_MAP.items():
        s = s.replace(src, dst)
    return s

def norm_text(s: str) -> str:
    s = _nfkc_normalize(s or "")
    s = s.strip()
    s = re.sub(r"\s+", " ", s)
    return s

def norm_answer(s: str) -> str:
    # lower(), not casefold(): "ß" must not turn into "ss"
    return norm_text(s).lower()

def norm_word(s: str) -> str:
    """Clean a word typed by the learner before it goes into a prompt."""
    s = norm_text(s)
    s = s.strip(" .,!?;:\"'")
    return s
