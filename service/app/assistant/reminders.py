"""
In-process reminders ("/recordar 30m Llamar a mamá").

Each reminder is an asyncio task sleeping until it is due. Reminders are
lost on restart.
"""

import asyncio
import itertools
import re
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from app.whatsapp_bot.intents import parse_reminder_delay
from app.whatsapp_bot.logging_config import get_logger

logger = get_logger("assistant.reminders")

MIN_DELAY = 10
MAX_DELAY = 24 * 60 * 60
MAX_PER_CHAT = 10

_COMPACT = re.compile(r"^(?:\d+[dhms])+$")
_COMPACT_PART = re.compile(r"(\d+)([dhms])")
_COMPACT_SECONDS = {"d": 86400, "h": 3600, "m": 60, "s": 1}


class ReminderError(Exception):
    """Invalid reminder request (delay out of range, too many reminders)."""
    pass


@dataclass
class Reminder:
    id: int
    chat_id: str
    text: str
    due_at: float
    task: Optional[asyncio.Task] = field(default=None, repr=False)

    def remaining(self, now: Optional[float] = None) -> int:
        return max(0, int(self.due_at - (now or time.monotonic())))


def format_delay(seconds: int) -> str:
    """120 -> "2 min", 5400 -> "1h 30m", 30 -> "30 s"."""
    if seconds < 60:
        return f"{seconds} s"
    minutes = round(seconds / 60)
    if minutes >= 60:
        return f"{minutes // 60}h {minutes % 60}m"
    return f"{minutes} min"


def parse_command_args(args: str) -> Tuple[Optional[int], str]:
    """
    Split "/recordar" arguments into (delay seconds, text).

    Accepts "30m texto", "1h30m texto", "2 horas texto" and a bare number
    of minutes ("15 texto"). Delay is None when no time is recognized.
    """
    words = args.split()
    if not words:
        return None, ""

    first = words[0].lower()
    if _COMPACT.match(first):
        seconds = sum(int(n) * _COMPACT_SECONDS[u] for n, u in _COMPACT_PART.findall(first))
        return seconds, " ".join(words[1:]).strip()

    if len(words) >= 2:
        seconds = parse_reminder_delay(f"{words[0]} {words[1].rstrip('.,;')}")
        if seconds:
            return seconds, " ".join(words[2:]).strip()

    if first.isdigit():
        return int(first) * 60, " ".join(words[1:]).strip()
    return None, args.strip()


class ReminderScheduler:
    def __init__(self, sender):
        self.sender = sender
        self._reminders: Dict[str, List[Reminder]] = {}
        self._ids = itertools.count(1)

    def add(self, chat_id: str, delay: int, text: str) -> Reminder:
        """
        Schedule a reminder.

        Raises:
            ReminderError: delay outside 10 s - 24 h or chat already has the maximum
        """
        if delay < MIN_DELAY or delay > MAX_DELAY:
            raise ReminderError("El tiempo debe ser entre 10 segundos y 24 horas.")
        pending = self._reminders.setdefault(chat_id, [])
        if len(pending) >= MAX_PER_CHAT:
            raise ReminderError(f"Ya tienes {MAX_PER_CHAT} recordatorios pendientes.")

        reminder = Reminder(id=next(self._ids), chat_id=chat_id, text=text,
                            due_at=time.monotonic() + delay)
        reminder.task = asyncio.create_task(self._fire(reminder, delay))
        pending.append(reminder)
        logger.info(f"Reminder {reminder.id} for {chat_id} in {delay}s")
        return reminder

    async def _fire(self, reminder: Reminder, delay: float) -> None:
        try:
            await asyncio.sleep(delay)
            await self.sender.send_text(reminder.chat_id, f"⏰ *Recordatorio:*\n\n{reminder.text}")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Failed to deliver reminder {reminder.id} to {reminder.chat_id}: {e}")
        finally:
            self._forget(reminder)

    def _forget(self, reminder: Reminder) -> None:
        pending = self._reminders.get(reminder.chat_id, [])
        if reminder in pending:
            pending.remove(reminder)
        if not pending:
            self._reminders.pop(reminder.chat_id, None)

    def pending(self, chat_id: str) -> List[Reminder]:
        return sorted(self._reminders.get(chat_id, []), key=lambda r: r.due_at)

    def cancel(self, chat_id: str, number: int) -> Optional[Reminder]:
        """Cancel the Nth pending reminder (1-based, soonest first)."""
        pending = self.pending(chat_id)
        if not 1 <= number <= len(pending):
            return None
        reminder = pending[number - 1]
        if reminder.task:
            reminder.task.cancel()
        self._forget(reminder)
        return reminder

    def cancel_all(self) -> None:
        for pending in list(self._reminders.values()):
            for reminder in list(pending):
                if reminder.task:
                    reminder.task.cancel()
        self._reminders.clear()

    def format_pending(self, chat_id: str) -> str:
        pending = self.pending(chat_id)
        if not pending:
            return "No tienes recordatorios pendientes.\n\n_Ejemplo: /recordar 30m Llamar a mamá_"
        now = time.monotonic()
        lines = ["⏰ *Recordatorios pendientes*", ""]
        for i, reminder in enumerate(pending, start=1):
            lines.append(f"{i}. {reminder.text} - en {format_delay(reminder.remaining(now))}")
        lines += ["", "_/recordatorios borrar N para cancelar_"]
        return "\n".join(lines)
