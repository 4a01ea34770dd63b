"""
Tests for the assistant sub-bot: reminders, LLM retry, media helpers.
"""

import asyncio
from types import SimpleNamespace

import httpx
import openai
import pytest

from conftest import USER_JID, FakeSender, inbound

from app.assistant.llm import (
    AVAILABLE_MODELS,
    LLMService,
    RateLimitedError,
    backoff_delay,
    with_retry,
)
from app.assistant.media import build_pdf, pdf_filename, qr_url
from app.assistant.reminders import (
    MAX_PER_CHAT,
    ReminderError,
    ReminderScheduler,
    format_delay,
    parse_command_args,
)


def _rate_limit_error():
    response = httpx.Response(429, request=httpx.Request("POST", "https://api.groq.com/openai/v1/chat/completions"))
    return openai.RateLimitError("rate limited", response=response, body=None)


class _FakeCompletions:
    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=reply))])


def _service(*replies):
    completions = _FakeCompletions(*replies)
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    sleeps = []

    async def fake_sleep(delay):
        sleeps.append(delay)

    return LLMService(client=client, sleep=fake_sleep), completions, sleeps


class TestParseCommandArgs:
    """Tests for parse_command_args function."""

    @pytest.mark.parametrize("args,expected", [
        ("30m Llamar a mamá", (1_800, "Llamar a mamá")),
        ("1h30m Reunión", (5_400, "Reunión")),
        ("2 horas Reunión de trabajo", (7_200, "Reunión de trabajo")),
        ("15 sacar al perro", (900, "sacar al perro")),
        ("mañana pagar", (None, "mañana pagar")),
        ("", (None, "")),
    ])
    def test_parse(self, args, expected):
        assert parse_command_args(args) == expected


class TestFormatDelay:
    """Tests for format_delay function."""

    @pytest.mark.parametrize("seconds,expected", [
        (30, "30 s"),
        (120, "2 min"),
        (5_400, "1h 30m"),
        (3_600, "1h 0m"),
    ])
    def test_format(self, seconds, expected):
        assert format_delay(seconds) == expected


class TestReminderScheduler:
    """In-process reminder tasks."""

    def test_limits(self):
        async def scenario():
            scheduler = ReminderScheduler(FakeSender())
            with pytest.raises(ReminderError):
                scheduler.add(USER_JID, 5, "muy pronto")
            with pytest.raises(ReminderError):
                scheduler.add(USER_JID, 25 * 3600, "muy tarde")
            for i in range(MAX_PER_CHAT):
                scheduler.add(USER_JID, 60 + i, f"r{i}")
            with pytest.raises(ReminderError):
                scheduler.add(USER_JID, 60, "uno más")
            scheduler.cancel_all()

        asyncio.run(scenario())

    def test_cancel_by_position(self):
        async def scenario():
            scheduler = ReminderScheduler(FakeSender())
            scheduler.add(USER_JID, 600, "después")
            scheduler.add(USER_JID, 60, "primero")
            cancelled = scheduler.cancel(USER_JID, 1)
            remaining = [r.text for r in scheduler.pending(USER_JID)]
            missing = scheduler.cancel(USER_JID, 5)
            scheduler.cancel_all()
            return cancelled.text, remaining, missing

        assert asyncio.run(scenario()) == ("primero", ["después"], None)

    def test_due_reminder_is_delivered(self, monkeypatch):
        sender = FakeSender()
        real_sleep = asyncio.sleep

        async def instant_sleep(delay):
            await real_sleep(0)

        monkeypatch.setattr("app.assistant.reminders.asyncio.sleep", instant_sleep)

        async def scenario():
            scheduler = ReminderScheduler(sender)
            reminder = scheduler.add(USER_JID, 60, "Llamar a mamá")
            await reminder.task
            return scheduler.pending(USER_JID)

        assert asyncio.run(scenario()) == []
        assert sender.texts() == ["⏰ *Recordatorio:*\n\nLlamar a mamá"]

    def test_format_pending_empty(self):
        assert ReminderScheduler(FakeSender()).format_pending(USER_JID).startswith("No tienes recordatorios")


class TestRetry:
    """Rate-limit retries with capped exponential backoff."""

    def test_backoff_is_capped(self):
        assert [backoff_delay(i) for i in range(6)] == [1, 2, 4, 8, 8, 8]

    def test_retries_then_succeeds(self):
        attempts = []
        sleeps = []

        async def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise _rate_limit_error()
            return "ok"

        async def fake_sleep(delay):
            sleeps.append(delay)

        assert asyncio.run(with_retry(flaky, retries=3, sleep=fake_sleep)) == "ok"
        assert sleeps == [1, 2]

    def test_gives_up_after_retries(self):
        sleeps = []

        async def always_limited():
            raise _rate_limit_error()

        async def fake_sleep(delay):
            sleeps.append(delay)

        with pytest.raises(RateLimitedError):
            asyncio.run(with_retry(always_limited, retries=2, sleep=fake_sleep))
        assert sleeps == [1, 2]


class TestLLMService:
    """Conversation memory, prompts and models."""

    def test_chat_keeps_history_and_personality(self):
        service, completions, _ = _service("Hola Ana", "Claro")
        asyncio.run(service.chat(USER_JID, "hola", personality="Pirata"))
        asyncio.run(service.chat(USER_JID, "¿me ayudas?"))

        first_system = completions.calls[0]["messages"][0]["content"]
        assert first_system.endswith("Personalidad que pidió el usuario: Pirata")
        second = completions.calls[1]["messages"]
        assert [m["role"] for m in second] == ["system", "user", "assistant", "user"]
        assert service.history(USER_JID)[-1] == {"role": "assistant", "content": "Claro"}

    def test_clear_history(self):
        service, _, _ = _service("Hola")
        asyncio.run(service.chat(USER_JID, "hola"))
        service.clear_history(USER_JID)
        assert service.history(USER_JID) == []

    def test_rate_limit_retried_transparently(self):
        service, completions, sleeps = _service(_rate_limit_error(), "Listo")
        assert asyncio.run(service.chat(USER_JID, "hola")) == "Listo"
        assert sleeps == [1]
        assert len(completions.calls) == 2

    def test_set_model(self):
        service, _, _ = _service()
        assert service.set_model(USER_JID, "kimi")["name"] == "Kimi K2"
        assert service.model(USER_JID) == AVAILABLE_MODELS["kimi"]["id"]

        service.set_model(USER_JID, "reset")
        assert service.model(USER_JID) == service.default_model

        with pytest.raises(KeyError):
            service.set_model(USER_JID, "gpt-9")

    def test_complete_json_invalid_is_empty(self):
        service, _, _ = _service("no es json")
        assert asyncio.run(service.complete_json("Gano mucho")) == {}


class TestMediaHelpers:
    """QR links, PDF files."""

    def test_qr_url_encodes_content(self):
        assert qr_url("hola mundo & más") == (
            "https://api.qrserver.com/v1/create-qr-code/?size=400x400&data=hola%20mundo%20%26%20m%C3%A1s"
        )

    def test_pdf_filename(self):
        assert pdf_filename("Historia del café") == "historia_del_caf.pdf"
        assert pdf_filename("¡¡!!") == "documento.pdf"

    def test_build_pdf(self):
        data = build_pdf("Informe", "# Título\n\nTexto con **negrita** y _cursiva_.\n- punto uno\n```\ncodigo\n```")
        assert data.startswith(b"%PDF")


class TestAssistantRouting:
    """Commands and intents reach the right assistant action."""

    def test_voice_intent_updates_prefs(self, router, contacts, sender):
        contacts.seed(USER_JID, onboarding_done=True, active_bot="groq")
        asyncio.run(router.handle(inbound("activa la voz")))

        assert contacts.rows[USER_JID]["preferences"]["voice_mode"] is True
        assert "Modo voz *activado*" in sender.last["text"]

    def test_qr_command_sends_image(self, router, contacts, sender):
        contacts.seed(USER_JID, onboarding_done=True, active_bot="groq")
        asyncio.run(router.handle(inbound("/qr https://example.com")))

        assert sender.last["kind"] == "image"
        assert sender.last["url"].endswith("data=https%3A%2F%2Fexample.com")

    def test_recordar_schedules(self, router, contacts, sender):
        contacts.seed(USER_JID, onboarding_done=True, active_bot="groq")

        async def scenario():
            await router.handle(inbound("/recordar 30m Llamar a mamá"))
            pending = router.assistant.reminders.pending(USER_JID)
            router.assistant.reminders.cancel_all()
            return pending

        assert [r.text for r in asyncio.run(scenario())] == ["Llamar a mamá"]
        assert sender.last["text"] == "⏰ Recordatorio programado en *30 min*:\n_Llamar a mamá_"

    def test_reset_clears_history(self, router, contacts, sender, llm):
        contacts.seed(USER_JID, onboarding_done=True, active_bot="groq")
        asyncio.run(router.handle(inbound("/reset")))

        assert llm.cleared == [USER_JID]
        assert sender.last["text"] == "🧹 Conversación reiniciada."
