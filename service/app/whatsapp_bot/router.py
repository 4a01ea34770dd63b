"""
Message router: one inbound message -> exactly one handler.

Per chat, messages are processed one at a time (per-chat asyncio.Lock) and
due sessions are expired before the next message is looked at. Checks run
in a fixed order, first match wins:

    1. blocklist (non-admin)
    2. universal commands: /resetgastos, /actualizar, /status
    3. briefing: natural language, /noticias, /noticia N, /precios, /prefs, /briefing
    4. admin commands: /bot, /bloquear, /desbloquear, /bloqueados, /briefing on|off|status
    5. pending bot selection reply
    6. /miperfil and personality onboarding (new contacts)
    7. /salir, /stop
    8. gastos triggers (/gastos, /plata, ... or "quiero registrar mis gastos")
    9. gastos onboarding answers
   10. gastos sub-bot (active contacts), falling through to
   11. the assistant
"""

import asyncio
import re
from collections import defaultdict
from enum import Enum
from typing import Dict, Optional, Set

import httpx
import openai

from app.gastos.handler import LEDGER_ERROR_MESSAGE, GastosHandler
from app.gastos.ledger import LedgerError, sheet_url
from app.gastos.onboarding import STEPS, GastosOnboarding
from app.assistant.handler import AssistantHandler
from app.assistant.llm import RateLimitedError
from app.briefing.news import NewsItem, NewsService, format_news
from app.briefing.prices import PriceService
from app.briefing.scheduler import BriefingScheduler
from .admin import BLOCKED_WARNING, AdminCommands, is_admin
from .contacts import Contact, ContactStore
from .logging_config import bot_logger as logger
from .messages import MENU_DIVIDER, PREFIX, InboundMessage
from .onboarding import PersonalityOnboarding
from .prefs import handle_prefs_command
from .sessions import SessionEntry, SessionKind, SessionStore


class ChatState(str, Enum):
    NONE = "none"
    GROQ = "groq"
    GASTOS_ACTIVE = "gastos_active"
    GASTOS_ONBOARDING = "gastos_onboarding"
    PENDING_BOT_SELECTION = "pending_bot_selection"
    PENDING_CATEGORY = "pending_category"
    PENDING_EDIT = "pending_edit"


GASTOS_TRIGGERS = ("/gastos", "/ahorros", "/finanzas", "/presupuesto", "/cuentas", "/dinero", "/plata")

BOT_OPTIONS = [
    {"id": "bot_groq", "text": "Asistente IA", "desc": "Chat, recordatorios, GIFs, PDFs y más"},
    {"id": "bot_gastos", "text": "Control de gastos", "desc": "Registra gastos en tu hoja de cálculo"},
]
_BOT_BY_NUMBER = {str(i): option["id"] for i, option in enumerate(BOT_OPTIONS, start=1)}

_WANTS_GASTOS = re.compile(
    r"\b(?:quiero|deseo|empezar\s+a|comenzar\s+a|ay[uú]dame\s+a)\s+"
    r"(?:registrar|llevar|controlar|anotar)\s+(?:el\s+control\s+de\s+)?(?:mis\s+)?(?:gastos|finanzas)\b"
)
_WANTS_BRIEFING = [
    re.compile(r"\b(?:dame|quiero|manda|env[ií]a|dime)\s+(?:el|mi)?\s*(?:briefing|resumen\s+(?:del?\s+)?(?:d[ií]a|diario|hoy))\b"),
    re.compile(r"\bbrief(?:ing)?\s+(?:de\s+)?(?:hoy|ahora)\b"),
    re.compile(r"\bmi\s+resumen\s+diario\b"),
]
_WANTS_NEWS = [
    re.compile(r"\b(?:dame|quiero|cu[eé]ntame|manda|env[ií]a)\s+(?:las?\s+)?(?:[uú]ltimas?\s+)?noticias?\b"),
    re.compile(r"\bnoticias?\s+(?:de\s+)?(?:hoy|ahora|recientes?|[uú]ltima\s+hora)\b"),
    re.compile(r"\bqu[eé]\s+(?:pas[oó]|hay)\s+(?:hoy|de\s+nuevo)\b"),
]
_WANTS_PRICES = [
    re.compile(r"\b(?:dame|ver|muestra|quiero)\s+(?:los?\s+)?precios?\b"),
    re.compile(r"\bc[oó]mo\s+(?:van|est[aá]n)\s+(?:los?\s+)?(?:precios?|mercados?|cryptos?)\b"),
    re.compile(r"\bestado\s+del\s+mercado\b"),
    re.compile(r"\bprecio\s+del\s+d[oó]lar\b"),
]
_NEWS_DETAIL = re.compile(r"^/noticia\s+(\d+)$", re.IGNORECASE)
_MIPERFIL = re.compile(r"^/miperfil(?:\s+(.*))?$", re.IGNORECASE | re.DOTALL)

NEWS_SUMMARY_PROMPT = (
    "Eres un periodista colombiano. Resume esta noticia en español de forma clara y concisa. "
    "Máximo 4-5 oraciones cortas. No uses markdown ni formato especial, solo texto plano."
)

NO_GASTOS_MESSAGE = "No tienes gastos configurados. Escribe /gastos para empezar."
GASTOS_PAUSED_MESSAGE = "⏸️ Pausé la configuración de gastos. Escribe /gastos para continuar donde quedaste."


def _any(patterns, text: str) -> bool:
    return any(p.search(text) for p in patterns)


def gastos_ready_message(url: Optional[str]) -> str:
    return "\n".join([
        "💰 *Tu tracker de gastos está listo*",
        MENU_DIVIDER,
        "",
        "Escríbeme directamente (sin comandos):",
        '  • _"Almuerzo 25k"_ - registrar gasto',
        '  • _"ver gastos"_ - últimos gastos del mes',
        '  • _"resumen"_ - análisis del mes',
        '  • _"ayuda"_ - todos los comandos',
        "",
        f"📊 {url or 'Hoja de cálculo configurada'}",
        MENU_DIVIDER,
        "_/salir para volver al asistente. /resetgastos para reconfigurar desde cero._",
    ])


class Router:
    def __init__(
        self,
        contacts: ContactStore,
        sessions: SessionStore,
        sender,
        assistant: AssistantHandler,
        gastos: GastosHandler,
        gastos_onboarding: GastosOnboarding,
        personality: PersonalityOnboarding,
        admin: AdminCommands,
        scheduler: BriefingScheduler,
        news: NewsService,
        prices: PriceService,
    ):
        self.contacts = contacts
        self.sessions = sessions
        self.sender = sender
        self.assistant = assistant
        self.gastos = gastos
        self.gastos_onboarding = gastos_onboarding
        self.personality = personality
        self.admin = admin
        self.scheduler = scheduler
        self.news = news
        self.prices = prices
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._warned: Set[str] = set()

    # =========================================================================
    # Entry point
    # =========================================================================

    def should_ignore(self, message: InboundMessage) -> bool:
        """Groups, broadcasts, our own echoes and empty messages."""
        if message.is_group or message.is_broadcast:
            return True
        if message.text.startswith(PREFIX):
            return True
        if message.from_me and not is_admin(message.chat_id):
            # Sent by the bot account to someone else; only the owner's self-chat counts
            return True
        return not message.text and message.interactive is None

    async def handle(self, message: InboundMessage) -> None:
        """Route one message. Never raises: errors are logged per chat."""
        if self.should_ignore(message):
            return

        chat_id = message.chat_id
        try:
            async with self._locks[chat_id]:
                await self.sessions.expire(chat_id)
                await self._dispatch(message)
        except Exception as e:
            logger.error(f"Router error for {chat_id}: {e}", exc_info=True)

    async def state_of(self, chat_id: str) -> ChatState:
        """Current state of a chat, derived from open sessions and the contact record."""
        contact = await self.contacts.get(chat_id)
        in_gastos = contact is not None and contact.active_bot == "gastos"
        for kind, state, gastos_only in (
            (SessionKind.PENDING_BOT_SELECTION, ChatState.PENDING_BOT_SELECTION, False),
            (SessionKind.PENDING_CATEGORY, ChatState.PENDING_CATEGORY, True),
            (SessionKind.PENDING_EDIT, ChatState.PENDING_EDIT, True),
            (SessionKind.GASTOS_ONBOARDING, ChatState.GASTOS_ONBOARDING, False),
        ):
            if (in_gastos or not gastos_only) and self.sessions.get(chat_id, kind):
                return state

        if contact is None:
            return ChatState.NONE
        if contact.active_bot == "gastos" and contact.gastos_ready:
            return ChatState.GASTOS_ACTIVE
        if contact.active_bot in ("groq", "gastos"):
            return ChatState.GROQ
        return ChatState.NONE

    # =========================================================================
    # Dispatch
    # =========================================================================

    async def _dispatch(self, message: InboundMessage) -> None:
        chat_id = message.chat_id
        text = message.text.strip()
        lower = text.lower()
        admin = is_admin(chat_id)

        contact, created = await self.contacts.get_or_create(chat_id, message.push_name)
        if created:
            logger.info(f"New contact {chat_id} ({message.push_name})")
        logger.info(f"{'[ADMIN]' if admin else '[USER]'} {chat_id}: {text[:50]!r}")

        if not admin and contact.blocked:
            if chat_id not in self._warned:
                self._warned.add(chat_id)
                await self.sender.send_text(chat_id, BLOCKED_WARNING)
            logger.info(f"Blocked contact ignored: {chat_id}")
            return
        self._warned.discard(chat_id)

        if await self._universal_command(contact, lower):
            return

        if await self._briefing_request(contact, text, lower, message.interactive is not None):
            return

        if admin:
            if lower == "/bot":
                await self.open_bot_selection(chat_id)
                return
            if await self.admin.handle(chat_id, text):
                return

        if await self._bot_selection_reply(contact, lower, message):
            return

        match = _MIPERFIL.match(text)
        if match:
            await self.personality.miperfil(chat_id, match.group(1) or "", contact.personality)
            return

        if self.personality.in_progress(chat_id):
            await self.personality.handle(chat_id, text)
            return
        if not contact.onboarding_done:
            await self.personality.start(chat_id, message.push_name or contact.name)
            return

        if lower in ("/salir", "/stop"):
            await self._leave_gastos(contact)
            return

        if lower in GASTOS_TRIGGERS or (not lower.startswith("/") and _WANTS_GASTOS.search(lower)):
            await self.enter_gastos(contact)
            return

        if self.sessions.get(chat_id, SessionKind.GASTOS_ONBOARDING):
            await self._onboarding_answer(chat_id, text)
            return

        if contact.active_bot == "gastos" and contact.gastos_ready:
            if await self.gastos.handle(contact, text, message.interactive):
                return

        if contact.active_bot == "none":
            await self.contacts.set_active_bot(chat_id, "groq")
        await self.assistant.handle(contact, text)

    # =========================================================================
    # Universal / briefing commands
    # =========================================================================

    async def _universal_command(self, contact: Contact, lower: str) -> bool:
        jid = contact.jid

        if lower == "/resetgastos":
            for kind in (SessionKind.GASTOS_ONBOARDING, SessionKind.PENDING_CATEGORY,
                         SessionKind.PENDING_EDIT, SessionKind.PENDING_CONFIRMATION):
                self.sessions.discard(jid, kind)
            await self.contacts.reset_gastos(jid)
            await self.sender.send_text(
                jid, "✅ Tu perfil de gastos fue reiniciado.\nEscribe /gastos para configurarlo de nuevo."
            )
            return True

        if lower == "/actualizar":
            if not contact.gastos_ready:
                await self.sender.send_text(jid, NO_GASTOS_MESSAGE)
                return True
            await self.sender.send_text(jid, "⏳ Actualizando hoja de resumen...")
            await self.sender.send_text(jid, await self.gastos.refresh_summary(contact))
            return True

        if lower == "/status":
            await self.sender.send_text(jid, await self.status_text(contact))
            return True

        return False

    async def status_text(self, contact: Contact) -> str:
        labels = {
            ChatState.NONE: "sin bot activo",
            ChatState.GROQ: "🤖 Asistente IA",
            ChatState.GASTOS_ACTIVE: "💰 Control de gastos",
            ChatState.GASTOS_ONBOARDING: "💰 Configurando gastos",
            ChatState.PENDING_BOT_SELECTION: "eligiendo bot",
            ChatState.PENDING_CATEGORY: "💰 esperando categoría",
            ChatState.PENDING_EDIT: "💰 editando un gasto",
        }
        state = await self.state_of(contact.jid)

        gastos = contact.gastos
        if contact.gastos_ready:
            gastos_text = "configurado ✅"
        elif gastos.get("onboarding_step") in STEPS:
            gastos_text = f"en configuración (paso {STEPS.index(gastos['onboarding_step']) + 1}/{len(STEPS)})"
        else:
            gastos_text = "no configurado"

        prefs = contact.prefs
        hours = ", ".join(f"{h}:00" for h in prefs.get("briefing_times") or [])
        briefing_text = f"activo ({hours})" if prefs.get("briefing_enabled") else "desactivado"

        return "\n".join([
            "📋 *Estado*",
            MENU_DIVIDER,
            f"Modo: *{labels[state]}*",
            f"Gastos: {gastos_text}",
            f"Briefing: {briefing_text}",
            f"Voz: {'activada' if prefs.get('voice_mode') else 'desactivada'}",
            MENU_DIVIDER,
        ])

    async def _typing(self, jid: str) -> None:
        try:
            await self.sender.send_presence(jid)
        except httpx.HTTPError as e:
            logger.debug(f"Presence update failed for {jid}: {e}")

    async def _briefing_request(self, contact: Contact, text: str, lower: str, interactive: bool) -> bool:
        jid = contact.jid

        if not lower.startswith("/") and not interactive:
            if _any(_WANTS_BRIEFING, lower):
                await self.send_briefing(contact)
                return True
            if _any(_WANTS_NEWS, lower):
                await self.send_news(contact)
                return True
            if _any(_WANTS_PRICES, lower):
                await self.send_prices(contact)
                return True
            return False

        if lower == "/noticias":
            await self.send_news(contact)
            return True

        match = _NEWS_DETAIL.match(text)
        if match:
            await self.sender.send_text(jid, await self.news_detail_text(jid, int(match.group(1))))
            return True

        if lower == "/precios":
            await self.send_prices(contact)
            return True

        if lower == "/prefs" or lower.startswith("/prefs "):
            await self.sender.send_text(jid, await handle_prefs_command(self.contacts, jid, text[len("/prefs"):]))
            return True

        if lower == "/briefing":
            await self.send_briefing(contact)
            return True

        return False

    async def send_briefing(self, contact: Contact) -> None:
        await self._typing(contact.jid)
        try:
            await self.scheduler.send_now(contact.jid, contact.name)
        except httpx.HTTPError as e:
            logger.error(f"Briefing failed for {contact.jid}: {e}")
            await self.sender.send_text(contact.jid, "❌ Error generando el briefing. Intenta de nuevo en un momento.")

    async def send_news(self, contact: Contact) -> None:
        await self._typing(contact.jid)
        prefs = contact.prefs
        news = await self.news.get_news_by_topics(
            prefs.get("news_topics") or ["colombia", "internacional"],
            int(prefs.get("news_count") or 5),
            chat_id=contact.jid,
        )
        await self.sender.send_text(
            contact.jid, format_news(news) or "No se pudieron obtener noticias en este momento."
        )

    async def send_prices(self, contact: Contact) -> None:
        await self._typing(contact.jid)
        await self.sender.send_text(contact.jid, await self.prices.format_prices(contact.prefs))

    async def news_detail_text(self, jid: str, number: int) -> str:
        """
        Headline N from the last list, with an LLM summary of the article.

        Without a readable article (or when the model fails) only the title,
        source and link are shown.
        """
        news = self.news.last_news(jid)
        if not news:
            return "No hay noticias cargadas. Escribe /noticias primero."
        item = self.news.news_detail(jid, number)
        if item is None:
            return f"Número inválido. Hay {len(news)} noticias (1-{len(news)})."

        await self._typing(jid)
        summary = await self._summarize_article(item)

        lines = [f"📰 *{item.title}*", MENU_DIVIDER]
        if summary:
            lines += [summary, ""]
        if item.source:
            lines.append(f"📌 _{item.source}_")
        if item.url:
            lines += ["", f"🔗 {item.url}"]
        lines += ["", MENU_DIVIDER]
        nav = []
        if number > 1:
            nav.append(f"/noticia {number - 1} ← ant")
        if number < len(news):
            nav.append(f"/noticia {number + 1} → sig")
        if nav:
            lines.append("  |  ".join(nav))
        return "\n".join(lines)

    async def _summarize_article(self, item: NewsItem) -> Optional[str]:
        content = await self.news.fetch_article(item.url)
        if not content:
            return None
        try:
            summary = await self.assistant.llm.complete(
                f"Resume esta noticia:\n\nTítulo: {item.title}\n\nContenido:\n{content}",
                system=NEWS_SUMMARY_PROMPT,
                max_tokens=300,
            )
        except (openai.APIError, RateLimitedError) as e:
            logger.warning(f"News summary failed for {item.url}: {e}")
            return None
        return summary or None

    # =========================================================================
    # Bot selection
    # =========================================================================

    async def open_bot_selection(self, jid: str) -> None:
        self.sessions.open(jid, SessionKind.PENDING_BOT_SELECTION)
        await self.sender.send_menu(jid, "🤖 *¿Qué bot quieres usar?*", BOT_OPTIONS,
                                    footer="Responde con el número (1 minuto)")

    async def _bot_selection_reply(self, contact: Contact, lower: str, message: InboundMessage) -> bool:
        jid = contact.jid
        if not self.sessions.get(jid, SessionKind.PENDING_BOT_SELECTION):
            return False

        choice = message.interactive.id if message.interactive else _BOT_BY_NUMBER.get(lower)
        if choice not in ("bot_groq", "bot_gastos"):
            return False

        self.sessions.resolve(jid, SessionKind.PENDING_BOT_SELECTION)
        logger.info(f"Bot selected by {jid}: {choice}")
        if choice == "bot_groq":
            await self.contacts.set_active_bot(jid, "groq")
            await self.sender.send_text(jid, "🤖 *Asistente IA activado.* ¿En qué puedo ayudarte?")
        else:
            await self.enter_gastos(contact)
        return True

    # =========================================================================
    # Gastos lifecycle
    # =========================================================================

    async def enter_gastos(self, contact: Contact) -> None:
        """Activate the expense tracker, or start/resume its onboarding."""
        jid = contact.jid
        gastos = contact.gastos
        if contact.gastos_ready:
            await self.contacts.set_active_bot(jid, "gastos")
            await self.sender.send_text(jid, gastos_ready_message(gastos.get("sheet_url") or sheet_url(gastos["sheet_id"])))
            return

        self.sessions.open(jid, SessionKind.GASTOS_ONBOARDING, on_expire=self._onboarding_timeout)
        if gastos.get("onboarding_step") in STEPS:
            await self.gastos_onboarding.resume(jid)
        else:
            await self.gastos_onboarding.start(jid)

    async def _onboarding_answer(self, jid: str, text: str) -> None:
        self.sessions.touch(jid, SessionKind.GASTOS_ONBOARDING)
        if await self.gastos_onboarding.handle(jid, text):
            self.sessions.resolve(jid, SessionKind.GASTOS_ONBOARDING)

    async def _onboarding_timeout(self, entry: SessionEntry) -> None:
        # Progress is durable in gastos_data; only the capture of messages ends
        await self.sender.send_text(entry.chat_id, GASTOS_PAUSED_MESSAGE)

    async def _leave_gastos(self, contact: Contact) -> None:
        jid = contact.jid
        try:
            await self.gastos.flush_pending_category(jid)
        except LedgerError as e:
            # Stays pending; its timeout retries the write
            logger.error(f"Pending expense not written for {jid} on exit: {e}")
            await self.sender.send_text(jid, LEDGER_ERROR_MESSAGE)
        for kind in (SessionKind.GASTOS_ONBOARDING, SessionKind.PENDING_EDIT, SessionKind.PENDING_CONFIRMATION):
            self.sessions.discard(jid, kind)
        await self.contacts.set_active_bot(jid, "groq")
        await self.sender.send_text(jid, "🤖 Volviste al asistente. ¿En qué puedo ayudarte?")
