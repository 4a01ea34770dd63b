"""
Tests for natural-language intent detection.
"""

import pytest

from app.whatsapp_bot.intents import (
    INTENT_RULES,
    IntentRule,
    first_match,
    match_intent,
    parse_reminder_delay,
)


class TestReminderIntent:
    """Reminder phrasings in both word orders."""

    def test_time_first(self):
        match = match_intent("recuérdame en 2 horas que llame a mamá")
        assert match.intent == "reminder"
        assert match.params == {"raw_time": "2 horas", "text": "llame a mamá"}

    def test_leading_time(self):
        match = match_intent("en 10 min recuérdame revisar el horno")
        assert match.intent == "reminder"
        assert match.params == {"raw_time": "10 min", "text": "revisar el horno"}

    def test_text_first(self):
        match = match_intent("ponme un recordatorio de sacar la basura en 20 minutos")
        assert match.intent == "reminder"
        assert match.params == {"raw_time": "20 minutos", "text": "sacar la basura"}

    def test_too_short_text_is_not_a_reminder(self):
        assert match_intent("recuérdame en 5 min ok") is None


class TestOtherIntents:
    """Voice, list, role, model, gif, pdf and qr."""

    def test_voice_on_and_off(self):
        assert match_intent("activa la voz").intent == "voice_on"
        assert match_intent("desactiva la voz").intent == "voice_off"
        assert match_intent("respóndeme en modo texto").intent == "voice_off"

    def test_list_reminders(self):
        assert match_intent("cuáles son mis recordatorios").intent == "list_reminders"

    def test_role(self):
        match = match_intent("modo chef")
        assert match.intent == "role"
        assert match.params == {"role": "chef"}

    def test_model_needs_a_verb(self):
        assert match_intent("usa el modelo kimi").params == {"key": "kimi"}
        assert match_intent("kimi es bueno") is None

    def test_gif(self):
        match = match_intent("mándame un gif de gatos")
        assert match.intent == "gif"
        assert match.params == {"query": "gatos"}

    def test_pdf(self):
        match = match_intent("hazme un pdf sobre la historia del café")
        assert match.intent == "pdf"
        assert match.params == {"topic": "la historia del café"}

    def test_qr(self):
        match = match_intent("genera un qr de https://example.com")
        assert match.intent == "qr"
        assert match.params == {"data": "https://example.com"}


class TestNoIntent:
    """Inputs that never match."""

    @pytest.mark.parametrize("text", ["/recordar 10m algo", "ok", "", None, "hola", "¿cómo estás?"])
    def test_plain_text_commands_and_short_text(self, text):
        assert match_intent(text) is None


class TestFirstMatch:
    """Rule ordering."""

    def test_earlier_rule_wins(self):
        rules = [
            IntentRule("first", lambda msg, low: {"n": 1} if "x" in low else None),
            IntentRule("second", lambda msg, low: {"n": 2}),
        ]
        assert first_match(rules, "X").intent == "first"
        assert first_match(rules, "y").intent == "second"

    def test_reminder_is_checked_first(self):
        assert INTENT_RULES[0].intent == "reminder"


class TestParseReminderDelay:
    """Tests for parse_reminder_delay function."""

    @pytest.mark.parametrize("raw,expected", [
        ("2 horas", 7_200),
        ("1 hora", 3_600),
        ("30m", 1_800),
        ("10 min", 600),
        ("1d", 86_400),
        ("3 días", 259_200),
        ("45 segundos", 45),
    ])
    def test_valid(self, raw, expected):
        assert parse_reminder_delay(raw) == expected

    @pytest.mark.parametrize("raw", ["0 min", "3 semanas", "pronto", "", None])
    def test_invalid(self, raw):
        assert parse_reminder_delay(raw) is None
