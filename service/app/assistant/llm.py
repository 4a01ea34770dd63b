"""
LLM chat service (Groq via its OpenAI-compatible API).

Keeps per-chat conversation history (capped, expiring after an hour of
inactivity), per-chat system prompts (roles) and per-chat models.
Rate-limit responses are retried with capped exponential backoff.
"""

import asyncio
import json
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional

import openai

from app.config import get_settings
from app.whatsapp_bot.logging_config import get_logger

logger = get_logger("assistant.llm")

MAX_HISTORY = 20
CONVERSATION_TTL = 60 * 60
MAX_INPUT_LENGTH = 8000

MAX_RETRIES = 3
MAX_BACKOFF = 8.0

AVAILABLE_MODELS = {
    "scout": {"id": "meta-llama/llama-4-scout-17b-16e-instruct", "name": "Llama 4 Scout", "desc": "Rápido, 30K tok/min, visión"},
    "versatile": {"id": "llama-3.3-70b-versatile", "name": "Llama 3.3 70B", "desc": "Más inteligente, 12K tok/min"},
    "kimi": {"id": "moonshotai/kimi-k2-instruct", "name": "Kimi K2", "desc": "Buena calidad, 10K tok/min"},
    "instant": {"id": "llama-3.1-8b-instant", "name": "Llama 3.1 8B", "desc": "Ultra rápido, menos inteligente"},
}

RATE_LIMIT_MESSAGE = "⏳ Estoy recibiendo demasiadas solicitudes. Intenta de nuevo en un momento."


class RateLimitedError(Exception):
    """Provider kept answering 429 after every retry."""
    pass


@dataclass
class Conversation:
    messages: List[Dict[str, str]] = field(default_factory=list)
    last_activity: float = field(default_factory=time.monotonic)


def backoff_delay(attempt: int) -> float:
    """1, 2, 4, 8, 8, ... seconds."""
    return min(2 ** attempt, MAX_BACKOFF)


async def with_retry(fn: Callable[[], Awaitable], retries: int = MAX_RETRIES,
                     sleep: Callable[[float], Awaitable] = asyncio.sleep):
    """
    Run `fn`, retrying provider rate limits with capped exponential backoff.

    Raises:
        RateLimitedError: still rate limited after `retries` retries
    """
    for attempt in range(retries + 1):
        try:
            return await fn()
        except openai.RateLimitError as e:
            if attempt >= retries:
                raise RateLimitedError(str(e)) from e
            delay = backoff_delay(attempt)
            logger.warning(f"Rate limited, retrying in {delay}s ({attempt + 1}/{retries})")
            await sleep(delay)


class LLMService:
    def __init__(self, client: Optional[openai.AsyncOpenAI] = None,
                 sleep: Callable[[float], Awaitable] = asyncio.sleep):
        settings = get_settings()
        self.client = client or openai.AsyncOpenAI(
            api_key=settings.groq_api_key,
            base_url=settings.groq_base_url,
        )
        self.default_model = settings.groq_model
        self.default_prompt = settings.bot_personality
        self.tts_model = settings.groq_tts_model
        self.tts_voice = settings.groq_tts_voice
        self._sleep = sleep
        self._conversations: Dict[str, Conversation] = {}
        self._prompts: Dict[str, str] = {}
        self._models: Dict[str, str] = {}

    # =========================================================================
    # History
    # =========================================================================

    def _conversation(self, chat_id: str) -> Conversation:
        now = time.monotonic()
        conv = self._conversations.get(chat_id)
        if conv is None or now - conv.last_activity > CONVERSATION_TTL:
            conv = Conversation()
            self._conversations[chat_id] = conv
        conv.last_activity = now
        return conv

    def history(self, chat_id: str) -> List[Dict[str, str]]:
        return list(self._conversation(chat_id).messages)

    def add_to_history(self, chat_id: str, role: str, content: str) -> None:
        conv = self._conversation(chat_id)
        conv.messages.append({"role": role, "content": content})
        if len(conv.messages) > MAX_HISTORY:
            conv.messages = conv.messages[-MAX_HISTORY:]

    def clear_history(self, chat_id: str) -> None:
        self._conversations.pop(chat_id, None)

    # =========================================================================
    # Prompts / models
    # =========================================================================

    def system_prompt(self, chat_id: str) -> str:
        return self._prompts.get(chat_id, self.default_prompt)

    def set_prompt(self, chat_id: str, prompt: str) -> None:
        self._prompts[chat_id] = prompt

    def reset_prompt(self, chat_id: str) -> None:
        self._prompts.pop(chat_id, None)

    def model(self, chat_id: str) -> str:
        return self._models.get(chat_id, self.default_model)

    def set_model(self, chat_id: str, key: str) -> dict:
        """Switch model by key ("versatile", ...). "reset"/"scout" restores the default."""
        if key in ("reset", "scout"):
            self._models.pop(chat_id, None)
            return AVAILABLE_MODELS["scout"]
        if key not in AVAILABLE_MODELS:
            raise KeyError(key)
        self._models[chat_id] = AVAILABLE_MODELS[key]["id"]
        return AVAILABLE_MODELS[key]

    # =========================================================================
    # Calls
    # =========================================================================

    async def chat(self, chat_id: str, text: str, personality: Optional[str] = None) -> str:
        """
        Reply to a user message within the chat's conversation.

        Raises:
            RateLimitedError: provider rate limit persisted after retries
        """
        if len(text) > MAX_INPUT_LENGTH:
            text = text[:MAX_INPUT_LENGTH] + "... (truncado)"

        system = self.system_prompt(chat_id)
        if personality:
            system += f"\n\nPersonalidad que pidió el usuario: {personality}"

        messages = [{"role": "system", "content": system}] + self.history(chat_id) + [
            {"role": "user", "content": text}
        ]

        async def _call():
            return await self.client.chat.completions.create(
                model=self.model(chat_id),
                messages=messages,
                temperature=0.7,
                max_tokens=1024,
            )

        response = await with_retry(_call, sleep=self._sleep)
        reply = (response.choices[0].message.content or "").strip()

        self.add_to_history(chat_id, "user", text)
        self.add_to_history(chat_id, "assistant", reply)
        return reply

    async def complete(self, prompt: str, system: str = "", max_tokens: int = 2048) -> str:
        """One-shot completion without history."""
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        async def _call():
            return await self.client.chat.completions.create(
                model=self.default_model,
                messages=messages,
                temperature=0.5,
                max_tokens=max_tokens,
            )

        response = await with_retry(_call, sleep=self._sleep)
        return (response.choices[0].message.content or "").strip()

    async def complete_json(self, prompt: str, system: str = "") -> dict:
        """One-shot completion parsed as a JSON object ({} when unparseable)."""
        async def _call():
            return await self.client.chat.completions.create(
                model=self.default_model,
                messages=[
                    {"role": "system", "content": system or "Responde solo con JSON válido."},
                    {"role": "user", "content": prompt},
                ],
                temperature=0,
                response_format={"type": "json_object"},
            )

        response = await with_retry(_call, sleep=self._sleep)
        try:
            data = json.loads(response.choices[0].message.content or "{}")
        except json.JSONDecodeError:
            logger.warning("LLM returned invalid JSON")
            return {}
        return data if isinstance(data, dict) else {}

    async def speech(self, text: str) -> bytes:
        """Text-to-speech audio (wav)."""
        async def _call():
            return await self.client.audio.speech.create(
                model=self.tts_model,
                voice=self.tts_voice,
                input=text[:1000],
                response_format="wav",
            )

        response = await with_retry(_call, sleep=self._sleep)
        return response.content
