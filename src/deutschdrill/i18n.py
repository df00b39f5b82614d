from __future__ import annotations

STRINGS: dict[str, dict[str, str]] = {
    "welcome": {
        "en": "Practice German verb conjugation and adjective declension. Choose a mode:",
        "de": "Übe Verbkonjugation und Adjektivdeklination. Wähle einen Modus:",
    },
    "choose_lang": {"en": "Choose UI language:", "de": "Sprache der Oberfläche wählen:"},
    "lang_set": {"en": "Language set.", "de": "Sprache gespeichert."},
    "mode_verb": {"en": "Verbs", "de": "Verben"},
    "mode_adjective": {"en": "Adjectives", "de": "Adjektive"},
    "ask_word_verb": {"en": "Send me a German verb, e.g. gehen.", "de": "Schick mir ein deutsches Verb, z. B. gehen."},
    "ask_word_adjective": {"en": "Send me a German adjective, e.g. groß.", "de": "Schick mir ein deutsches Adjektiv, z. B. groß."},
    "no_mode": {"en": "Choose a mode first: /verb or /adjective", "de": "Wähle zuerst einen Modus: /verb oder /adjective"},
    "generating": {"en": "⏳ Generating exercises for", "de": "⏳ Erzeuge Übungen für"},
    "complete": {"en": "✅ Done:", "de": "✅ Fertig:"},
    "failed": {"en": "❌ Generation failed:", "de": "❌ Erzeugung fehlgeschlagen:"},
    "cancelled": {"en": "Generation stopped.", "de": "Erzeugung gestoppt."},
    "nothing_running": {"en": "Nothing is running.", "de": "Es läuft nichts."},
    "tab_table": {"en": "📋 Table", "de": "📋 Tabelle"},
    "tab_exercises": {"en": "✏️ Exercises", "de": "✏️ Übungen"},
    "no_table": {"en": "No table yet.", "de": "Noch keine Tabelle."},
    "no_exercises": {"en": "No exercises yet.", "de": "Noch keine Übungen."},
    "exercise": {"en": "Exercise", "de": "Übung"},
    "your_answer": {"en": "Your answer:", "de": "Deine Antwort:"},
    "correct_answer": {"en": "Correct:", "de": "Richtig:"},
    "correct": {"en": "✅ Correct", "de": "✅ Richtig"},
    "wrong": {"en": "❌ Wrong", "de": "❌ Falsch"},
    "why": {"en": "💡 Why", "de": "💡 Warum"},
    "show": {"en": "👁 Show answer", "de": "👁 Lösung"},
    "next": {"en": "▶️ Next", "de": "▶️ Weiter"},
    "answer": {"en": "Answer:", "de": "Lösung:"},
    "no_explanation": {"en": "No explanation available.", "de": "Keine Erklärung vorhanden."},
    "waiting_more": {"en": "More exercises are on the way…", "de": "Weitere Übungen kommen gleich…"},
    "all_done": {"en": "That was the last exercise.", "de": "Das war die letzte Übung."},
    "score": {"en": "Score:", "de": "Punkte:"},
    "no_session": {"en": "No exercises yet. Send a word first.", "de": "Noch keine Übungen. Schick zuerst ein Wort."},
    "correct_usage": {"en": "Usage: /correct <German text>", "de": "Verwendung: /correct <deutscher Text>"},
    "correction_failed": {"en": "Correction failed:", "de": "Korrektur fehlgeschlagen:"},
}

def t(key: str, lang: str) -> str:
    return STRINGS.get(key, {}).get(lang, STRINGS.get(key, {}).get("en", key))
