"""
Expense-tracker onboarding.

Steps: goals -> income -> payday -> savings_goal -> sheet_setup -> complete.
Progress lives in the contact's `gastos_data` (onboarding_step and
onboarding_data), so a user can leave mid-way and resume with /gastos.
"""

import re
from typing import List, Optional, Tuple

from app.whatsapp_bot.contacts import ContactStore
from app.whatsapp_bot.logging_config import get_logger
from app.whatsapp_bot.messages import MENU_DIVIDER
from .ledger import LedgerError, SheetsLedger, extract_sheet_id, sheet_url
from .parsing import format_cop, parse_amount

logger = get_logger("gastos.onboarding")

STEPS = ["goals", "income", "payday", "savings_goal", "sheet_setup"]
COMPLETE = "complete"

GOAL_LABELS = {
    "control_gastos": "Control de gastos",
    "ahorro": "Ahorro",
    "metas": "Metas financieras",
    "inversion": "Inversión",
    "presupuesto": "Presupuesto",
}

_GOAL_OPTIONS = {
    "1": ["control_gastos"],
    "2": ["ahorro"],
    "3": ["metas"],
    "4": ["presupuesto"],
    "5": list(GOAL_LABELS),
}

_GOAL_KEYWORDS = [
    ("control_gastos", ("gasto", "control")),
    ("ahorro", ("ahorr",)),
    ("metas", ("meta",)),
    ("inversion", ("invert", "inversi")),
    ("presupuesto", ("presupuesto", "registro")),
]

FREQUENCY_LABELS = {"monthly": "mensual", "biweekly": "quincenal", "weekly": "semanal", "daily": "diario"}

_RESTART_WORDS = ("reiniciar", "empezar de nuevo", "desde cero")
_NO_GOAL = re.compile(r"\b(?:sin\s+meta|no\s+tengo|ninguna|nada|no)\b")
_IRREGULAR = re.compile(r"\b(?:no\s+tengo|irregular|variable|sin\s+fecha|no\s+hay|no\s+fijo|freelance|proyecto)\b")

_MONEY = re.compile(r"\$?(\d+(?:[.,]\d+)*)\s*(millones|mill[oó]n|mil|k|m)?(?![a-záéíóú])", re.IGNORECASE)
_PERCENT = re.compile(r"(\d+(?:[.,]\d+)?)\s*%")
_DAY = re.compile(r"\b(\d{1,2})\b")

INCOME_SYSTEM_PROMPT = (
    "Eres un asistente financiero colombiano. El usuario dice cuánto gana. "
    "En Colombia el punto separa miles. Sufijo k = x1.000, M o millones = x1.000.000. "
    'Responde SOLO con JSON: {"amount": 2100000, "frequency": "monthly"}. '
    'frequency es monthly, biweekly o weekly. Si no hay monto claro, amount: null.'
)


# =========================================================================
# Parsers
# =========================================================================

def parse_goals(text: str) -> List[str]:
    value = text.strip().lower()
    if value in _GOAL_OPTIONS:
        return list(_GOAL_OPTIONS[value])
    if "todo" in value or "todas" in value:
        return list(GOAL_LABELS)
    goals = [goal for goal, words in _GOAL_KEYWORDS if any(w in value for w in words)]
    return goals or ["control_gastos"]


def parse_money(text: str) -> Optional[int]:
    """
    First amount in a sentence.

    "Gano 3 millones" -> 3000000, "1.5M" -> 1500000, "800k" -> 800000,
    "2.000.000" -> 2000000.
    """
    for match in _MONEY.finditer(text or ""):
        number, unit = match.group(1), (match.group(2) or "").lower()
        if not unit:
            amount = parse_amount(number)
        else:
            multiplier = 1_000 if unit in ("mil", "k") else 1_000_000
            separators = number.count(".") + number.count(",")
            if separators <= 1:
                amount = round(float(number.replace(",", ".")) * multiplier)
            else:
                amount = int(number.replace(".", "").replace(",", "")) * multiplier
        if amount and amount > 0:
            return amount
    return None


def parse_frequency(text: str) -> str:
    value = text.lower()
    if "quincen" in value:
        return "biweekly"
    if "semana" in value:
        return "weekly"
    if "diario" in value or "al día" in value or "al dia" in value:
        return "daily"
    return "monthly"


def parse_paydays(text: str) -> Optional[List[int]]:
    """
    Pay days of the month. [] means irregular income, None means not understood.
    """
    value = text.strip().lower()
    if _IRREGULAR.search(value):
        return []
    if "quincena" in value:
        return [15, 30]
    days = sorted({int(d) for d in _DAY.findall(value) if 1 <= int(d) <= 31})
    if days:
        return days
    if "fin de mes" in value or "último" in value or "ultimo" in value:
        return [30]
    if "primero" in value:
        return [1]
    return None


def parse_savings_goal(text: str, salary: Optional[int]) -> Tuple[bool, Optional[int]]:
    """
    Monthly savings goal. Returns (understood, amount); amount None = no goal.
    """
    value = text.strip().lower()
    percent = _PERCENT.search(value)
    if percent and salary:
        return True, round(salary * float(percent.group(1).replace(",", ".")) / 100)
    amount = parse_money(value)
    if amount:
        return True, amount
    if _NO_GOAL.search(value):
        return True, None
    return False, None


# =========================================================================
# Messages
# =========================================================================

def msg_goals() -> str:
    return "\n".join([
        "¡Hola! Soy tu asistente financiero personal 💰",
        "",
        "Voy a ayudarte a tomar control de tu dinero. ¿Qué quieres lograr?",
        "",
        "1️⃣  Controlar mis gastos del día a día",
        "2️⃣  Ahorrar más dinero",
        "3️⃣  Cumplir metas de ahorro",
        "4️⃣  Llevar un registro completo de mis finanzas",
        "5️⃣  Todo lo anterior",
        "",
        "_Responde con el número o escribe lo que quieras_",
    ])


def msg_income(data: dict) -> str:
    goals = ", ".join(GOAL_LABELS.get(g, g) for g in (data.get("goals") or [])[:3])
    return "\n".join([
        f"¡Perfecto! Objetivos: *{goals}* ✓" if goals else "¡Perfecto! 🎯",
        "",
        "¿Cuánto ganas y con qué frecuencia?",
        "",
        '• _"Gano 3 millones al mes"_',
        '• _"Me pagan 1.5M cada quincena"_',
        '• _"Recibo 800k semanal"_',
    ])


def msg_payday(data: dict) -> str:
    salary = data.get("salary")
    salary_text = f"{format_cop(salary)} {FREQUENCY_LABELS.get(data.get('salary_frequency'), '')}".strip() if salary else "registrado"
    return "\n".join([
        f"Ingresos: *{salary_text}* ✓",
        "",
        "¿Qué día(s) del mes te pagan?",
        "",
        '• _"El día 30"_  •  _"Los días 15 y 30"_  •  _"Irregular"_',
    ])


def msg_savings_goal() -> str:
    return "\n".join([
        "¡Casi terminamos! 🚀",
        "",
        "¿Cuánto quieres ahorrar cada mes?",
        "",
        '• _"100k al mes"_  •  _"El 20% de lo que gano"_  •  _"Sin meta"_',
    ])


def msg_sheet_setup(email: str) -> str:
    return "\n".join([
        "📊 *Último paso: conecta tu hoja de cálculo*",
        "",
        "Necesito que hagas esto (solo una vez):",
        "",
        "1️⃣ Ve a *sheets.google.com* y crea una hoja nueva",
        "2️⃣ Haz clic en *Compartir* (arriba a la derecha)",
        f"3️⃣ Agrega este email como *Editor*:\n   `{email or 'cuenta de servicio del bot'}`",
        "4️⃣ Cópiame el *link* de tu hoja aquí",
        "",
        "_La hoja queda en tu Google Drive y es completamente tuya._",
    ])


def msg_complete(url: str) -> str:
    return "\n".join([
        "✅ *¡Tu perfil financiero está listo!*",
        MENU_DIVIDER,
        "",
        "📊 Tu hoja de cálculo personal:",
        f"🔗 {url}",
        "",
        "*Cómo registrar gastos:*",
        '  _"Almuerzo 25k"_ | _"Uber 15.000"_ | _"Netflix 20k"_',
        "",
        "*Comandos útiles:*",
        "  _ver gastos_ → últimos registros",
        "  _resumen_ → análisis del mes",
        "  _ayuda_ → todos los comandos",
        "  _/salir_ → volver al asistente de IA",
        MENU_DIVIDER,
    ])


# =========================================================================
# Flow
# =========================================================================

class GastosOnboarding:
    def __init__(self, contacts: ContactStore, ledger: SheetsLedger, sender, llm=None):
        self.contacts = contacts
        self.ledger = ledger
        self.sender = sender
        self.llm = llm

    def step_message(self, step: Optional[str], data: dict) -> Optional[str]:
        if step == "goals":
            return msg_goals()
        if step == "income":
            return msg_income(data)
        if step == "payday":
            return msg_payday(data)
        if step == "savings_goal":
            return msg_savings_goal()
        if step == "sheet_setup":
            return msg_sheet_setup(self.ledger.service_account_email)
        return None

    async def start(self, jid: str) -> None:
        await self.contacts.set_gastos(jid, {"onboarding_step": "goals", "onboarding_data": {}})
        await self.sender.send_text(jid, msg_goals())

    async def resume(self, jid: str) -> None:
        """Resend the pending step, or start from scratch when there is none."""
        data = await self.contacts.get_gastos(jid)
        step = data.get("onboarding_step")
        if step not in STEPS:
            await self.start(jid)
            return
        message = self.step_message(step, data.get("onboarding_data") or {})
        await self.sender.send_text(jid, f"↩️ Continuamos donde lo dejamos:\n\n{message}")

    async def handle(self, jid: str, text: str) -> bool:
        """
        Process one onboarding answer.

        Returns:
            True when onboarding completed with this message
        """
        gastos = await self.contacts.get_gastos(jid)
        step = gastos.get("onboarding_step")
        data = dict(gastos.get("onboarding_data") or {})
        lower = text.strip().lower()

        if step not in STEPS:
            await self.start(jid)
            return False

        if any(word in lower for word in _RESTART_WORDS):
            await self.contacts.set_gastos(jid, {"onboarding_step": "goals", "onboarding_data": {}})
            await self.sender.send_text(jid, "🔄 Empezando desde cero!\n\n" + msg_goals())
            return False

        if step == "goals":
            data["goals"] = parse_goals(text)
            await self._advance(jid, "income", data)
            return False

        if step == "income":
            amount = parse_money(text)
            frequency = parse_frequency(text)
            if amount is None and self.llm is not None:
                parsed = await self.llm.complete_json(text, system=INCOME_SYSTEM_PROMPT)
                amount = parsed.get("amount") if isinstance(parsed.get("amount"), int) else None
                frequency = parsed.get("frequency") if parsed.get("frequency") in FREQUENCY_LABELS else frequency
            if not amount:
                await self.sender.send_text(jid, 'No pude entender el monto. Intenta: _"Gano 2.1M al mes"_ o _"3 millones mensuales"_')
                return False
            data.update(salary=amount, salary_frequency=frequency)
            await self._advance(jid, "payday", data)
            return False

        if step == "payday":
            days = parse_paydays(text)
            if days is None:
                await self.sender.send_text(jid, "No pude entender el día. Dime un número:\n\n"
                                                 '• _"El día 30"_  •  _"Los días 15 y 30"_\n\n'
                                                 'O escribe _"irregular"_ si tus ingresos no tienen fecha fija.')
                return False
            data["payday"] = days
            await self._advance(jid, "savings_goal", data)
            return False

        if step == "savings_goal":
            understood, goal = parse_savings_goal(text, data.get("salary"))
            if not understood:
                await self.sender.send_text(jid, 'No entendí la meta. Ejemplos: _"100k al mes"_, _"10%"_ o _"sin meta"_')
                return False
            data["savings_goal"] = goal
            await self._advance(jid, "sheet_setup", data)
            return False

        return await self._connect_sheet(jid, text, data)

    async def _advance(self, jid: str, step: str, data: dict) -> None:
        await self.contacts.set_gastos(jid, {"onboarding_step": step, "onboarding_data": data})
        await self.sender.send_text(jid, self.step_message(step, data))

    async def _connect_sheet(self, jid: str, text: str, data: dict) -> bool:
        sheet_id = extract_sheet_id(text)
        if not sheet_id:
            await self.sender.send_text(jid, "\n".join([
                "❌ No pude leer ese link. Asegúrate de que sea el link completo de Google Sheets:",
                "_https://docs.google.com/spreadsheets/d/XXXX/edit_",
                "",
                "O mándame directamente el ID (la parte larga entre /d/ y /edit).",
            ]))
            return False

        try:
            await self.ledger.check_access(sheet_id)
        except LedgerError:
            await self.sender.send_text(jid, "\n".join([
                "❌ No tengo acceso a esa hoja.",
                "",
                "Verifica que la compartiste con este email como *Editor*:",
                f"`{self.ledger.service_account_email}`",
                "",
                "Luego mándame el link de nuevo.",
            ]))
            return False

        url = sheet_url(sheet_id)
        await self.contacts.set_gastos(jid, {
            "sheet_id": sheet_id,
            "sheet_url": url,
            "onboarding_step": COMPLETE,
            "onboarding_data": {},
            "onboarding_complete": True,
            "config": {
                "goals": data.get("goals") or [],
                "salary": data.get("salary"),
                "salary_frequency": data.get("salary_frequency") or "monthly",
                "payday": data.get("payday") or [],
                "savings_goal": data.get("savings_goal"),
            },
        })
        await self.contacts.set_active_bot(jid, "gastos")
        logger.info(f"Gastos onboarding complete for {jid}: {sheet_id}")
        await self.sender.send_text(jid, msg_complete(url))
        return True
