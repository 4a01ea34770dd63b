"""
Background briefing scheduler.

Wakes up every minute; at each scheduled hour it sends the briefing once to
the admin and to every contact that opted in for that hour.
"""

import asyncio
from datetime import datetime
from typing import Optional, Set, Tuple

from app.config import get_settings
from app.gastos.dates import local_now
from app.whatsapp_bot.logging_config import get_logger
from app.whatsapp_bot.messages import jid_from_phone
from .service import BriefingService

logger = get_logger("briefing.scheduler")

SCHEDULED_TIMES = [7, 13, 19]


class BriefingScheduler:
    """Sends scheduled briefings. Toggle globally with `enabled`."""

    def __init__(self, sender, contacts, briefing: Optional[BriefingService] = None,
                 enabled: Optional[bool] = None):
        settings = get_settings()
        self.sender = sender
        self.contacts = contacts
        self.briefing = briefing or BriefingService()
        self.enabled = settings.briefing_enabled if enabled is None else enabled
        self.admin_jid = jid_from_phone(settings.admin_number)
        self._sent: Set[Tuple[str, int, str]] = set()

    def status_text(self) -> str:
        settings = get_settings()
        times = ", ".join(f"{h}:00" for h in SCHEDULED_TIMES)
        return "\n".join([
            "*Daily Briefing (Admin)*",
            f"Estado global: {'*activo* ✅' if self.enabled else '*desactivado* ❌'}",
            f"Horarios: *{times}*",
            f"Zona: _{settings.timezone}_",
            "",
            "Comandos admin:",
            "  /briefing on/off - Activar/desactivar global",
            "  /briefing status - Estado",
            "",
            "Comandos personales:",
            "  /briefing - Obtener briefing ahora",
            "  /prefs - Ver/editar mis preferencias",
        ])

    async def send_now(self, jid: str, name: str = "") -> None:
        """On-demand briefing with the contact's own preferences."""
        prefs = await self.contacts.get_prefs(jid)
        text = await self.briefing.build(prefs, name=name, chat_id=jid)
        await self.sender.send_text(jid, text)

    async def tick(self, now: Optional[datetime] = None) -> int:
        """
        Send due briefings for the current hour.

        Returns:
            Number of briefings sent
        """
        now = now or local_now()
        if not self.enabled or now.hour not in SCHEDULED_TIMES:
            return 0

        day = now.strftime("%Y-%m-%d")
        # Forget previous days
        self._sent = {key for key in self._sent if key[0] == day}

        recipients = []
        if self.admin_jid:
            recipients.append((self.admin_jid, ""))
        for contact in await self.contacts.list_briefing_subscribers():
            if contact.jid == self.admin_jid:
                continue
            if now.hour in (contact.prefs.get("briefing_times") or []):
                recipients.append((contact.jid, contact.name))

        sent = 0
        for jid, name in recipients:
            key = (day, now.hour, jid)
            if key in self._sent:
                continue
            self._sent.add(key)
            try:
                await self.send_now(jid, name)
                sent += 1
                logger.info(f"Briefing sent to {jid} ({now.hour}:00)")
            except Exception as e:
                logger.error(f"Failed to send briefing to {jid}: {e}", exc_info=True)
        return sent

    async def run(self, interval: float = 60.0) -> None:
        """Main loop. Cancel the task to stop it."""
        logger.info(f"Briefing scheduler started, hours {SCHEDULED_TIMES}")
        while True:
            await asyncio.sleep(interval)
            try:
                await self.tick()
            except Exception as e:
                logger.error(f"Briefing scheduler tick error: {e}", exc_info=True)
