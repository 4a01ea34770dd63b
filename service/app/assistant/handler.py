"""
General assistant sub-bot ("groq").

Handles assistant commands (/reset, /modelo, /rol, /recordar, ...), the
natural-language intents detected by `match_intent()`, and otherwise chats
with the LLM.
"""

from typing import Optional

import httpx
import openai

from app.whatsapp_bot.contacts import Contact, ContactStore
from app.whatsapp_bot.intents import IntentMatch, match_intent, parse_reminder_delay
from app.whatsapp_bot.logging_config import get_logger
from .llm import AVAILABLE_MODELS, RATE_LIMIT_MESSAGE, LLMService, RateLimitedError
from .media import PDF_SYSTEM_PROMPT, build_pdf, pdf_filename, qr_url, search_gif
from .reminders import ReminderError, ReminderScheduler, format_delay, parse_command_args

logger = get_logger("assistant")

PRESET_ROLES = {
    "traductor": "Eres un traductor profesional. Traduce entre español e inglés. Si te escriben en español, traduce al inglés. Si te escriben en inglés, traduce al español. Solo da la traducción sin explicaciones adicionales.",
    "programador": "Eres un experto programador senior. Ayudas con código, debugging, arquitectura y mejores prácticas. Respondes con código limpio y explicaciones claras. Usa formato de WhatsApp.",
    "tutor": "Eres un tutor paciente y pedagógico. Explicas conceptos de forma simple, usas analogías y ejemplos. Haces preguntas para verificar comprensión. Adaptas tu nivel al del estudiante.",
    "escritor": "Eres un escritor creativo y editor profesional. Ayudas a redactar, corregir y mejorar textos. Puedes escribir en diferentes estilos y tonos según lo que necesite el usuario.",
    "fitness": "Eres un entrenador personal y nutricionista. Das consejos de ejercicio, rutinas y alimentación. Siempre recuerdas que no eres médico y recomiendas consultar profesionales.",
    "chef": "Eres un chef profesional. Sugieres recetas, técnicas de cocina y combinaciones de ingredientes. Puedes adaptar recetas a dietas específicas y presupuestos.",
}

ROLE_LABELS = {
    "traductor": "Traduce entre español e inglés",
    "programador": "Experto en código y debugging",
    "tutor": "Explica conceptos de forma simple",
    "escritor": "Redacción y edición de textos",
    "fitness": "Ejercicio y nutrición",
    "chef": "Recetas y técnicas de cocina",
}

HELP_TEXT = "\n".join([
    "🤖 *Asistente*",
    "",
    "Escríbeme lo que quieras y te respondo.",
    "",
    "  /reset  -  Borrar la conversación",
    "  /modelo _[nombre]_  -  Ver o cambiar modelo",
    "  /rol _[nombre|reset]_  -  Cambiar personalidad",
    "  /recordar _tiempo texto_  -  Recordatorio",
    "  /recordatorios  -  Ver recordatorios",
    "  /voz on|off  -  Respuestas en audio",
    "  /gif _búsqueda_  -  Enviar un GIF",
    "  /qr _texto_  -  Generar código QR",
    "  /pdf _tema_  -  Generar un documento PDF",
    "",
    "También entiendo: _recuérdame en 10 min que..._, _activa la voz_, _modo chef_,",
    "_mándame un gif de gatos_, _hazme un pdf sobre..._, _genera un qr de..._",
])

ERROR_MESSAGE = "❌ Tuve un problema procesando tu mensaje. Intenta de nuevo."


class AssistantHandler:
    def __init__(self, llm: LLMService, reminders: ReminderScheduler, sender, contacts: ContactStore):
        self.llm = llm
        self.reminders = reminders
        self.sender = sender
        self.contacts = contacts

    async def handle(self, contact: Contact, text: str) -> None:
        """Entry point for every message routed to the assistant."""
        jid = contact.jid
        stripped = text.strip()
        lower = stripped.lower()

        if lower.startswith("/"):
            if await self._handle_command(contact, stripped, lower):
                return
        else:
            intent = match_intent(stripped)
            if intent is not None:
                logger.info(f"Intent {intent.intent} for {jid}: {intent.params}")
                await self._handle_intent(contact, intent)
                return

        await self.chat(contact, stripped)

    # =========================================================================
    # Commands
    # =========================================================================

    async def _handle_command(self, contact: Contact, text: str, lower: str) -> bool:
        jid = contact.jid
        cmd, _, rest = text.partition(" ")
        cmd = cmd.lower()
        args = rest.strip()

        if cmd in ("/ayuda", "/help", "/start"):
            await self.sender.send_text(jid, HELP_TEXT)
            return True

        if cmd in ("/reset", "/nuevo", "/clear"):
            self.llm.clear_history(jid)
            await self.sender.send_text(jid, "🧹 Conversación reiniciada.")
            return True

        if cmd == "/modelo":
            await self.sender.send_text(jid, self._switch_model(jid, args.lower()) if args else self._models_text(jid))
            return True

        if cmd == "/rol":
            await self.sender.send_text(jid, self._switch_role(jid, args))
            return True

        if cmd == "/recordar":
            if not args:
                await self.sender.send_text(jid, "Uso: /recordar <tiempo> <texto>\n\nEjemplos:\n"
                                                 "- /recordar 30m Llamar a mamá\n- /recordar 2h Reunión de trabajo\n"
                                                 "- /recordar 1d Pagar factura")
                return True
            delay, reminder_text = parse_command_args(args)
            await self.sender.send_text(jid, self._schedule(jid, delay, reminder_text))
            return True

        if cmd == "/recordatorios":
            parts = args.lower().split()
            if len(parts) == 2 and parts[0] in ("borrar", "cancelar") and parts[1].isdigit():
                cancelled = self.reminders.cancel(jid, int(parts[1]))
                reply = f"🗑️ Recordatorio cancelado: _{cancelled.text}_" if cancelled else "No encontré ese recordatorio."
                await self.sender.send_text(jid, reply)
            else:
                await self.sender.send_text(jid, self.reminders.format_pending(jid))
            return True

        if cmd == "/voz":
            if args.lower() in ("on", "off"):
                await self._set_voice(jid, args.lower() == "on")
            else:
                enabled = (await self.contacts.get_prefs(jid)).get("voice_mode", False)
                await self.sender.send_text(jid, f"🔊 Modo voz: {'*activo*' if enabled else '*desactivado*'}\n_/voz on|off_")
            return True

        if cmd == "/gif":
            await self._send_gif(jid, args)
            return True

        if cmd == "/qr":
            await self._send_qr(jid, args)
            return True

        if cmd == "/pdf":
            await self._send_pdf(jid, args)
            return True

        # Unknown commands go to the LLM like any other text
        return False

    def _models_text(self, jid: str) -> str:
        current = self.llm.model(jid)
        lines = ["🧠 *Modelos disponibles*", ""]
        for key, info in AVAILABLE_MODELS.items():
            mark = " ✅" if info["id"] == current else ""
            lines.append(f"  *{key}* - {info['name']}: _{info['desc']}_{mark}")
        lines += ["", "_/modelo <nombre> para cambiar, /modelo reset para volver_"]
        return "\n".join(lines)

    def _switch_model(self, jid: str, key: str) -> str:
        try:
            info = self.llm.set_model(jid, key)
        except KeyError:
            return f"Modelo desconocido: {key}\n\n" + self._models_text(jid)
        return f"🧠 Modelo cambiado a *{info['name']}*"

    def _switch_role(self, jid: str, args: str) -> str:
        name = args.lower()
        if not name:
            lines = ["🎭 *Roles disponibles*", ""]
            lines += [f"  *{role}* - {label}" for role, label in ROLE_LABELS.items()]
            lines += ["", "_/rol <nombre>, /rol reset o /rol <instrucciones propias>_"]
            return "\n".join(lines)
        if name in ("reset", "normal", "default"):
            self.llm.reset_prompt(jid)
            self.llm.clear_history(jid)
            return "🎭 Rol restablecido."
        if name in PRESET_ROLES:
            self.llm.set_prompt(jid, PRESET_ROLES[name])
            self.llm.clear_history(jid)
            return f"🎭 Rol activado: *{name}*\n_{ROLE_LABELS[name]}_"
        self.llm.set_prompt(jid, args)
        self.llm.clear_history(jid)
        return "🎭 Rol personalizado activado."

    def _schedule(self, jid: str, delay: Optional[int], text: str) -> str:
        if not text:
            return "Falta el texto del recordatorio.\nEjemplo: /recordar 30m Llamar a mamá"
        if delay is None:
            return "No entendí el tiempo.\nEjemplos: /recordar 30m Llamar a mamá, /recordar 2h Reunión"
        try:
            self.reminders.add(jid, delay, text)
        except ReminderError as e:
            return f"{e}\nEjemplos: /recordar 30m Llamar a mamá, /recordar 2h Reunión"
        return f"⏰ Recordatorio programado en *{format_delay(delay)}*:\n_{text}_"

    async def _set_voice(self, jid: str, enabled: bool) -> None:
        await self.contacts.set_prefs(jid, {"voice_mode": enabled})
        if enabled:
            await self.sender.send_text(jid, "🔊 Modo voz *activado*. Te responderé con audios.")
        else:
            await self.sender.send_text(jid, "🔇 Modo voz *desactivado*. Vuelvo a responder con texto.")

    # =========================================================================
    # Intents
    # =========================================================================

    async def _handle_intent(self, contact: Contact, match: IntentMatch) -> None:
        jid = contact.jid
        params = match.params

        if match.intent == "reminder":
            await self.sender.send_text(jid, self._schedule(jid, parse_reminder_delay(params["raw_time"]), params["text"]))
        elif match.intent == "voice_on":
            await self._set_voice(jid, True)
        elif match.intent == "voice_off":
            await self._set_voice(jid, False)
        elif match.intent == "list_reminders":
            await self.sender.send_text(jid, self.reminders.format_pending(jid))
        elif match.intent == "role":
            await self.sender.send_text(jid, self._switch_role(jid, params["role"]))
        elif match.intent == "model":
            await self.sender.send_text(jid, self._switch_model(jid, params["key"]))
        elif match.intent == "gif":
            await self._send_gif(jid, params["query"])
        elif match.intent == "pdf":
            await self._send_pdf(jid, params["topic"])
        elif match.intent == "qr":
            await self._send_qr(jid, params["data"])

    async def _send_gif(self, jid: str, query: str) -> None:
        if not query:
            await self.sender.send_text(jid, "Uso: /gif <búsqueda>\n\nEjemplo: /gif risa")
            return
        url = await search_gif(query)
        if not url:
            await self.sender.send_text(jid, f"No encontré GIFs de _{query}_.")
            return
        await self.sender.send_media(jid, url, kind="gif")

    async def _send_qr(self, jid: str, data: str) -> None:
        if not data:
            await self.sender.send_text(jid, "Uso: /qr <texto o enlace>")
            return
        await self.sender.send_media(jid, qr_url(data), kind="image", caption=f"QR: {data[:80]}")

    async def _send_pdf(self, jid: str, topic: str) -> None:
        if not topic:
            await self.sender.send_text(jid, "Uso: /pdf <tema>\n\nEjemplo: /pdf historia del café")
            return
        await self.sender.send_text(jid, f"📝 Preparando documento sobre _{topic}_...")
        try:
            content = await self.llm.complete(f"Escribe un documento sobre: {topic}", system=PDF_SYSTEM_PROMPT)
            data = build_pdf(topic[:80].capitalize(), content)
        except RateLimitedError:
            await self.sender.send_text(jid, RATE_LIMIT_MESSAGE)
            return
        except openai.APIError as e:
            logger.error(f"PDF generation failed for {jid}: {e}")
            await self.sender.send_text(jid, "❌ No pude generar el documento. Intenta de nuevo.")
            return
        await self.sender.send_document(jid, data, pdf_filename(topic), caption=f"📄 {topic[:80]}")

    # =========================================================================
    # Chat
    # =========================================================================

    async def chat(self, contact: Contact, text: str) -> None:
        jid = contact.jid
        try:
            reply = await self.llm.chat(jid, text, personality=contact.personality)
        except RateLimitedError:
            await self.sender.send_text(jid, RATE_LIMIT_MESSAGE)
            return
        except openai.APIError as e:
            logger.error(f"LLM error for {jid}: {e}")
            await self.sender.send_text(jid, ERROR_MESSAGE)
            return

        if not reply:
            return

        if contact.prefs.get("voice_mode"):
            try:
                audio = await self.llm.speech(reply)
                await self.sender.send_audio(jid, audio)
                return
            except (openai.APIError, RateLimitedError, httpx.HTTPError) as e:
                logger.warning(f"Voice reply failed for {jid}, sending text: {e}")

        await self.sender.send_text(jid, reply)
