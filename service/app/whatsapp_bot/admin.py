"""
Admin identity and admin-only commands.

The admin is the phone configured in ADMIN_NUMBER (or its multi-device
LID alias ADMIN_LID). Admin commands:

    /bloquear <numero|jid> [razón]   add to the blocklist
    /desbloquear <numero|jid>        remove from the blocklist
    /bloqueados                      list blocked contacts
    /briefing on | off | status      global automatic briefing switch
    /resetgastos all                 reset every contact's expense profile
"""

import re
from typing import Optional

from app.config import get_settings
from .contacts import ContactStore
from .logging_config import bot_logger as logger
from .messages import jid_from_phone, normalize_jid, phone_from_jid

_BLOCK = re.compile(r"^/bloquear\s+\+?(\S+)(?:\s+(.+))?$", re.IGNORECASE | re.DOTALL)
_UNBLOCK = re.compile(r"^/desbloquear\s+\+?(\S+)$", re.IGNORECASE)

BLOCKED_WARNING = "\n".join([
    "🚫 *Acceso restringido*",
    "",
    "Este número no tiene acceso al asistente.",
    "",
    "_Este es un aviso automatizado. No responda a este mensaje._",
])


def is_admin(jid: str, admin_number: Optional[str] = None, admin_lid: Optional[str] = None) -> bool:
    """True if `jid` (any device) belongs to the configured admin."""
    if admin_number is None or admin_lid is None:
        settings = get_settings()
        admin_number = settings.admin_number if admin_number is None else admin_number
        admin_lid = settings.admin_lid if admin_lid is None else admin_lid

    clean = normalize_jid(jid)
    if not clean:
        return False
    if admin_number and clean == jid_from_phone(admin_number):
        return True
    if admin_lid:
        lid = normalize_jid(admin_lid)
        if "@" not in lid:
            lid = f"{lid}@lid"
        return clean == lid
    return False


def _target(raw: str) -> tuple[str, str]:
    """(jid, display) for a /bloquear argument: a phone number or a full jid."""
    if "@" in raw:
        return normalize_jid(raw), raw
    return jid_from_phone(raw), f"+{raw}"


class AdminCommands:
    def __init__(self, contacts: ContactStore, sender, scheduler=None):
        self.contacts = contacts
        self.sender = sender
        self.scheduler = scheduler

    async def handle(self, jid: str, text: str) -> bool:
        """Run an admin command. Returns False if `text` is not one."""
        lower = text.lower()

        match = _BLOCK.match(text)
        if match:
            target, display = _target(match.group(1))
            reason = (match.group(2) or "").strip() or None
            await self.contacts.block(target, reason)
            logger.info(f"Admin blocked {target} (reason: {reason})")
            await self.sender.send_text(jid, f"*{display}* bloqueado." + (f"\nRazón: {reason}" if reason else ""))
            return True

        match = _UNBLOCK.match(text)
        if match:
            target, display = _target(match.group(1))
            await self.contacts.unblock(target)
            logger.info(f"Admin unblocked {target}")
            await self.sender.send_text(jid, f"*{display}* desbloqueado.")
            return True

        if lower == "/bloqueados":
            await self.sender.send_text(jid, await self.blocked_text())
            return True

        if lower in ("/briefing on", "/briefing off", "/briefing status") and self.scheduler is not None:
            await self.sender.send_text(jid, self._briefing(lower.split()[1]))
            return True

        if lower == "/resetgastos all":
            await self.sender.send_text(jid, "⏳ Reseteando datos de gastos de todos los usuarios...")
            count = await self.contacts.reset_all_gastos()
            await self.sender.send_text(
                jid,
                f"✅ *Gastos reseteados ({count} usuarios)*\n\n"
                "Todos deberán pasar por el onboarding nuevamente.",
            )
            return True

        return False

    async def blocked_text(self) -> str:
        blocked = await self.contacts.list_blocked()
        if not blocked:
            return "Lista negra vacía.\n\n/bloquear <numero> [razon] - Agregar número"

        lines = []
        for i, contact in enumerate(blocked, start=1):
            name = f" ({contact.name})" if contact.name else ""
            reason = f"  → {contact.block_reason}" if contact.block_reason else ""
            lines.append(f"{i}. +{phone_from_jid(contact.jid)}{name}{reason}")
        return (
            f"*Lista negra ({len(blocked)})*\n\n" + "\n".join(lines)
            + "\n\n/desbloquear <numero> - Quitar de la lista"
        )

    def _briefing(self, action: str) -> str:
        if action == "off":
            self.scheduler.enabled = False
            logger.info("Automatic briefing disabled by admin")
            return "⏹️ Briefing automático *desactivado* globalmente.\nReactivar: /briefing on"
        if action == "on":
            self.scheduler.enabled = True
            logger.info("Automatic briefing enabled by admin")
        return self.scheduler.status_text()
