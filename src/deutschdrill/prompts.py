from __future__ import annotations

from dataclasses import dataclass

from .types import Domain


@dataclass(frozen=True)
class ChatMessage:
    role: str  # system | user | assistant
    content: str

    def as_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


def _require_word(word: str) -> str:
    cleaned = (word or "").strip()
    if not cleaned:
        raise ValueError("word must not be empty")
    return cleaned


_VERB_TABLE_SYSTEM = """You are a German language expert. Generate conjugation tables for verbs in a structured format.
The tables should include:
1. Present tense (Präsens)
2. Past tense (Präteritum)
3. Perfect tense (Perfekt)
4. Future tense (Futur I)
5. Subjunctive I (Konjunktiv I): present and perfect
6. Subjunctive II (Konjunktiv II): past and future
7. Imperative forms
8. Additional forms (infinitive, past participle)

For each tense/mood table, provide conjugations for all persons in both singular and plural forms."""

_VERB_TABLE_USER = """Generate complete conjugation tables for the German verb "{word}" in JSON format.
Format it as nested objects with this structure:
{{
  "present": {{
    "1st_person_singular": "...",
    "2nd_person_singular": "...",
    "3rd_person_singular": "...",
    "1st_person_plural": "...",
    "2nd_person_plural": "...",
    "3rd_person_plural": "..."
  }},
  "preterite": {{ same structure as present }},
  "perfect": {{ same structure as present }},
  "future": {{ same structure as present }},
  "konjunktiv_i": {{
    "present": {{ same structure as present }},
    "perfect": {{ same structure as present }}
  }},
  "konjunktiv_ii": {{
    "past": {{ same structure as present }},
    "future": {{ same structure as present }}
  }},
  "imperative": {{
    "du": "...",
    "ihr": "...",
    "Sie": "..."
  }},
  "infinitive": "...",
  "past_participle": "..."
}}"""

_ADJECTIVE_TABLE_SYSTEM = """You are a German language expert. Generate declension tables for adjectives in a structured format.
The table should include:
1. Definite article declensions (der/die/das)
2. Indefinite article declensions (ein/eine)
3. Declensions without article
4. Plural forms for all cases
Each table should show all cases (Nominative, Accusative, Dative, Genitive) and all genders (masculine, feminine, neuter)."""

_ADJECTIVE_TABLE_USER = """Generate complete declension tables for the German adjective "{word}" in JSON format.
Format it as nested objects with this structure:
{{
  "definite_article": {{
    "nominative": {{
      "masculine": "...",
      "feminine": "...",
      "neuter": "...",
      "plural": "..."
    }},
    "accusative": {{ same structure }},
    "dative": {{ same structure }},
    "genitive": {{ same structure }}
  }},
  "indefinite_article": {{ same structure as definite_article }},
  "no_article": {{ same structure as definite_article }},
  "comparative": "...",
  "superlative": "..."
}}"""

_VERB_EXERCISE_SYSTEM = """You are a German language expert. Generate verb conjugation exercises that cover all tenses, moods, and persons.
Each exercise must include:
1. A German sentence with a gap (___) for the verb
2. The correct answer (verb in proper form)
3. The tense being used
4. The mood (Indikativ, Konjunktiv I, or Konjunktiv II)
5. The person (1st, 2nd, or 3rd)
6. The number (singular or plural)
7. A clear explanation of why this form is used, especially for subjunctive moods"""

_VERB_EXERCISE_USER = """Generate {count} diverse exercises for the German verb "{word}" in JSON format.
Include exercises for:
- All indicative tenses (Präsens, Präteritum, Perfekt, Futur I)
- Konjunktiv I (present and perfect)
- Konjunktiv II (past and future)
- All persons (1st, 2nd, 3rd)
- Both numbers (singular, plural)
- Some imperative forms
- Some modal verb combinations

Make sure to include plenty of subjunctive mood exercises with common use cases like:
- Reported speech (Konjunktiv I)
- Hypothetical situations (Konjunktiv II)
- Polite requests (Konjunktiv II)
- Wishes and desires (Konjunktiv II)

Return an object {{"exercises": [...]}}. Every exercise is a flat object, never nest objects inside it:
{{
  "sentence": "Er sagte, er ___ morgen kommen.",
  "answer": "werde",
  "tense": "Präsens",
  "mood": "Konjunktiv I",
  "person": "3rd Person",
  "number": "singular",
  "explanation": "In reported speech (indirekte Rede), we use Konjunktiv I. The present subjunctive of 'werden' in 3rd person singular is 'werde'."
}}"""

_ADJECTIVE_EXERCISE_SYSTEM = """You are a German language expert. Generate adjective declension exercises that cover all cases, genders, and article types.
Each exercise must include:
1. A German sentence with a gap (___) for the adjective
2. The correct answer (adjective with proper ending)
3. The grammatical case
4. The gender (for singular) or "plural"
5. The article type used (definite, indefinite, or no article)
6. A clear explanation of why this ending is used"""

_ADJECTIVE_EXERCISE_USER = """Generate {count} diverse exercises for the German adjective "{word}" in JSON format.
Include exercises for:
- All cases (Nominative, Accusative, Dative, Genitive)
- All genders (masculine, feminine, neuter, plural)
- All article types (definite, indefinite, no article)
- Some comparative and superlative forms

Return an object {{"exercises": [...]}}. Every exercise is a flat object, never nest objects inside it:
{{
  "sentence": "Der ___ Mann geht.",
  "answer": "{word}e",
  "case": "Nominative",
  "gender": "masculine",
  "number": "singular",
  "article_type": "definite",
  "explanation": "With definite article 'der' (masculine, nominative), the adjective takes the -e ending"
}}"""

_CORRECTION_SYSTEM = (
    "Du bist ein deutscher Grammatik- und Sprachexperte. Korrigiere den folgenden deutschen Text. "
    "Gib die korrigierte Version zurück und erkläre die Korrekturen in einer Liste darunter."
)

_TABLE_PROMPTS = {
    Domain.VERB: (_VERB_TABLE_SYSTEM, _VERB_TABLE_USER),
    Domain.ADJECTIVE: (_ADJECTIVE_TABLE_SYSTEM, _ADJECTIVE_TABLE_USER),
}

_EXERCISE_PROMPTS = {
    Domain.VERB: (_VERB_EXERCISE_SYSTEM, _VERB_EXERCISE_USER),
    Domain.ADJECTIVE: (_ADJECTIVE_EXERCISE_SYSTEM, _ADJECTIVE_EXERCISE_USER),
}


def build_table_messages(word: str, domain: Domain | str) -> list[ChatMessage]:
    word = _require_word(word)
    system, user = _TABLE_PROMPTS[Domain(domain)]
    return [
        ChatMessage("system", system),
        ChatMessage("user", user.format(word=word)),
    ]


def build_exercise_messages(word: str, domain: Domain | str, count: int = 32) -> list[ChatMessage]:
    word = _require_word(word)
    if count < 1:
        raise ValueError("count must be positive")
    system, user = _EXERCISE_PROMPTS[Domain(domain)]
    return [
        ChatMessage("system", system),
        ChatMessage("user", user.format(word=word, count=count)),
    ]


def build_correction_messages(text: str) -> list[ChatMessage]:
    text = (text or "").strip()
    if not text:
        raise ValueError("text must not be empty")
    return [
        ChatMessage("system", _CORRECTION_SYSTEM),
        ChatMessage("user", text),
    ]
