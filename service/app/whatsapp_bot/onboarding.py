"""
First-contact onboarding: ask new contacts how the assistant should behave.

The answer is stored as the contact's `personality` and appended to the
assistant system prompt on every chat. `/miperfil` shows or replaces it.
"""

from typing import Optional

from .contacts import ContactStore
from .logging_config import bot_logger as logger
from .sessions import SessionEntry, SessionKind, SessionStore

MIN_PERSONALITY_LENGTH = 3

WELCOME_MESSAGE = "\n".join([
    "¡Hola{name}! 👋 Soy tu asistente personal de WhatsApp.",
    "",
    "Antes de comenzar, quiero conocer tus preferencias para darte la mejor experiencia.",
    "",
    "*¿Cómo te gustaría que fuera mi personalidad?*",
    "",
    "Puedes escribir algo como:",
    "• _Formal y profesional, experto en derecho_",
    "• _Casual y divertido, me gusta el humor_",
    "• _Experto en programación y tecnología_",
    "• _Coach de vida motivacional_",
    "• _Asistente general en español colombiano_",
    "",
    "✍️ Escribe ahora cómo quieres que sea tu asistente:",
])

TOO_SHORT_MESSAGE = "Cuéntame un poco más. ¿Cómo quieres que sea tu asistente?"


def _shorten(text: str, limit: int) -> str:
    return text[:limit] + ("..." if len(text) > limit else "")


def confirm_message(personality: str) -> str:
    return "\n".join([
        "✅ *¡Perfecto!* He guardado tu configuración.",
        "",
        f"Tu asistente ahora es: _{_shorten(personality, 80)}_",
        "",
        "Puedes cambiar mi personalidad en cualquier momento escribiendo:",
        "*/miperfil <nueva descripción>*",
        "",
        "¿En qué puedo ayudarte hoy? 😊",
    ])


class PersonalityOnboarding:
    def __init__(self, contacts: ContactStore, sessions: SessionStore, sender, llm=None):
        self.contacts = contacts
        self.sessions = sessions
        self.sender = sender
        self.llm = llm

    def in_progress(self, jid: str) -> bool:
        return self.sessions.get(jid, SessionKind.PERSONALITY_ONBOARDING) is not None

    async def start(self, jid: str, name: str = "") -> None:
        """Send the welcome question and wait for the answer."""
        self.sessions.open(jid, SessionKind.PERSONALITY_ONBOARDING, on_expire=self._on_timeout)
        first_name = name.split()[0] if name.strip() else ""
        await self.sender.send_text(jid, WELCOME_MESSAGE.format(name=f" {first_name}" if first_name else ""))
        logger.info(f"Personality onboarding started for {jid}")

    async def handle(self, jid: str, text: str) -> None:
        """Answer to the welcome question."""
        personality = text.strip()
        if len(personality) < MIN_PERSONALITY_LENGTH:
            self.sessions.touch(jid, SessionKind.PERSONALITY_ONBOARDING)
            await self.sender.send_text(jid, TOO_SHORT_MESSAGE)
            return

        self.sessions.resolve(jid, SessionKind.PERSONALITY_ONBOARDING)
        await self._save(jid, personality)
        await self.sender.send_text(jid, confirm_message(personality))
        logger.info(f"Personality onboarding completed for {jid}")

    async def _on_timeout(self, entry: SessionEntry) -> None:
        # Unanswered welcome: stop asking, the default assistant prompt applies
        await self.contacts.update(entry.chat_id, onboarding_done=True)

    async def _save(self, jid: str, personality: str) -> None:
        await self.contacts.set_personality(jid, personality)
        if self.llm is not None:
            self.llm.clear_history(jid)

    async def miperfil(self, jid: str, args: str, current: Optional[str]) -> None:
        """/miperfil shows the stored personality; /miperfil <texto> replaces it."""
        personality = args.strip()
        if not personality:
            shown = f"_{current}_" if current else "_(asistente general, sin personalidad definida)_"
            await self.sender.send_text(jid, "\n".join([
                "👤 *Tu perfil*",
                "",
                shown,
                "",
                "Cámbialo con: */miperfil <nueva descripción>*",
            ]))
            return

        await self._save(jid, personality)
        await self.sender.send_text(
            jid,
            f"✅ *Perfil actualizado*\n\n_{_shorten(personality, 100)}_\n\nConversación reiniciada.",
        )
