"""
Payday credits.

Once a day (8:00 local) every expense-tracker contact whose payday is today
gets their salary added to the configured balance and a notification.
Paydays past the end of a short month fall on its last day.
"""

import asyncio
import calendar
from datetime import datetime
from typing import List, Optional

from app.whatsapp_bot.logging_config import get_logger
from .dates import local_now
from .onboarding import FREQUENCY_LABELS
from .parsing import format_cop

logger = get_logger("gastos.salary")

PAYDAY_HOUR = 8


def is_payday(paydays: List[int], today: datetime) -> bool:
    last_day = calendar.monthrange(today.year, today.month)[1]
    return any(min(int(day), last_day) == today.day for day in paydays or [])


def salary_message(salary: float, previous: float, balance: float, frequency: Optional[str]) -> str:
    label = FREQUENCY_LABELS.get(frequency or "monthly", "mensual")
    return "\n".join([
        f"💸 *¡Llegó tu pago {label}!*",
        "",
        f"Ingreso: *{format_cop(salary)}*",
        f"Saldo anterior: {format_cop(previous)}",
        f"Nuevo saldo: *{format_cop(balance)}*",
        "",
        "_Recuerda registrar tus gastos del día._",
        "_/gastos → activar bot de finanzas_",
    ])


class SalaryScheduler:
    """Credits salaries on payday. The last credited date lives in the contact config."""

    def __init__(self, sender, contacts):
        self.sender = sender
        self.contacts = contacts

    async def tick(self, now: Optional[datetime] = None) -> int:
        """
        Credit due salaries.

        Returns:
            Number of contacts credited
        """
        now = now or local_now()
        if now.hour != PAYDAY_HOUR:
            return 0

        today = now.date().isoformat()
        credited = 0
        for contact in await self.contacts.list_gastos_contacts():
            config = contact.gastos.get("config") or {}
            salary = config.get("salary")
            if not salary or not is_payday(config.get("payday") or [], now):
                continue
            if config.get("last_payment") == today:
                continue

            previous = float(config.get("balance") or 0)
            balance = previous + salary
            try:
                await self.contacts.update_gastos_config(contact.jid, {"balance": balance, "last_payment": today})
                await self.sender.send_text(
                    contact.jid, salary_message(salary, previous, balance, config.get("salary_frequency"))
                )
                credited += 1
                logger.info(f"Salary credited to {contact.jid}: {salary}")
            except Exception as e:
                logger.error(f"Failed to credit salary for {contact.jid}: {e}", exc_info=True)
        return credited

    async def run(self, interval: float = 60.0) -> None:
        """Main loop. Cancel the task to stop it."""
        logger.info(f"Salary scheduler started, daily at {PAYDAY_HOUR}:00")
        while True:
            await asyncio.sleep(interval)
            try:
                await self.tick()
            except Exception as e:
                logger.error(f"Salary scheduler tick error: {e}", exc_info=True)
