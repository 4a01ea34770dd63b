"""
Expense-tracker message handling for contacts whose onboarding is complete.

Besides registering "Almuerzo 25k", it supports:
    ver gastos [mes]        last 10 rows of a month
    borrar N / editar N     on the last viewed list
    salario X | saldo X | meta ahorro X
    config                  current financial settings
    resumen [mes]           totals per category
    ayuda

Uncategorized expenses open a PENDING_CATEGORY session; if the user does
not pick a category within its timeout the row is written as "Sin Categoría".
"""

import re
from collections import defaultdict
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from app.whatsapp_bot.contacts import Contact, ContactStore
from app.whatsapp_bot.logging_config import get_logger
from app.whatsapp_bot.messages import MENU_DIVIDER, InteractiveReply
from app.whatsapp_bot.sessions import SessionEntry, SessionKind, SessionStore
from .categories import CATEGORIES, DEFAULT_CATEGORY, Category, LearnedCategories, categorize, get_category
from .dates import local_now, month_tab_name, parse_month_input
from .ledger import LedgerEntry, LedgerError, SheetsLedger
from .onboarding import FREQUENCY_LABELS, parse_money
from .parsing import format_cop, parse_amount, parse_expense

logger = get_logger("gastos")

NO_ANSWER = "(sin respuesta)"
LEDGER_ERROR_MESSAGE = "❌ No pude acceder a tu hoja de cálculo. Intenta de nuevo en un momento."

CONFIRM_YES = re.compile(r"^(?:sí|si|yes|ok|dale|listo|confirmo|confirmar|correcto|claro|adelante|hazlo|procede|va)$")
CONFIRM_NO = re.compile(r"^(?:no|cancelar|cancela|cancel|nope|para|olvida|olvídalo|mejor\s+no|negativo)$")

_MONTH_SUFFIX = re.compile(r"\[([^\]]+)\]\s*$")
_VIEW = re.compile(r"^(?:ver\s+gastos|gastos|ver|mis\s+gastos|[uú]ltimos\s+gastos)(?:\s+(.+))?$")
_DELETE = re.compile(r"^borrar\s+(\d+)$")
_NL_DELETE = re.compile(r"\b(?:borra|elimina|quita|b[oó]rrame)\s+(?:el\s+)?(?:gasto\s+)?#?\s*(\d+)\b")
_EDIT = re.compile(r"^editar\s+(\d+)$")
_EDIT_DESC = re.compile(r"^desc(?:ripci[oó]n)?\s+(.+)$", re.IGNORECASE)
_EDIT_AMOUNT = re.compile(r"^monto\s+(.+)$", re.IGNORECASE)
_EDIT_CATEGORY = re.compile(r"^cat(?:egor[ií]a)?\s+(\d+)$", re.IGNORECASE)
_SALARY = re.compile(r"^salario\s+(.+)$")
_BALANCE = re.compile(r"^saldo\s+(.+)$")
_GOAL = re.compile(r"^meta\s+(?:de\s+)?ahorro\s+(.+)$")
_SUMMARY = re.compile(r"^resumen(?:\s+(.+))?$")
_NL_EDIT = re.compile(r"\b(?:edita|cambia|modifica|actualiza)\s+(?:el\s+)?(?:gasto\s+)?#?\s*(\d+)\b")
_NL_SALARY = re.compile(r"\b(?:mi\s+(?:salario|sueldo)\s+(?:es|son|ser[aá])\s+|gano\s+|deveng[oa]\s+)(.+)")
_NL_BALANCE = re.compile(
    r"\b(?:mi\s+saldo\s+(?:es|son|ser[aá])\s+(.+)"
    r"|tengo\s+(.+?)\s+en\s+(?:el\s+|la\s+)?(?:banco|nequi|daviplata|efectivo|cuenta)"
    r"|actualiza(?:r)?\s+(?:mi\s+)?saldo\s+(?:a|en)\s+(.+))"
)
_NL_GOAL = re.compile(
    r"\b(?:quiero\s+ahorrar\s+(.+)|mi\s+meta\s+(?:de\s+ahorro\s+)?(?:es|son|ser[aá])\s+(.+)"
    r"|ponme\s+(?:una\s+)?meta\s+de\s+(.+))"
)
_PER_MONTH = re.compile(r"\s*(?:mensual(?:es)?|al\s+mes|por\s+mes)\s*$")
_CONFIG = re.compile(
    r"^(?:config|configuraci[oó]n|ver\s+config(?:uraci[oó]n)?)$"
    r"|\b(?:mi\s+config(?:uraci[oó]n)?|qu[eé]\s+tengo\s+configurado)\b"
)

CATEGORY_MENU = "\n".join(f"{i}. {cat.name}" for i, cat in enumerate(CATEGORIES, start=1))

HELP_TEXT = "\n".join([
    "💰 *Bot de Gastos*",
    MENU_DIVIDER,
    "",
    "*📝 Registrar*",
    "  _Almuerzo 25k_ | _Uber 15.000_ | _Netflix 20k #suscripciones_",
    "  Para otro mes: _Almuerzo 25k [enero]_",
    "",
    "*📋 Consultar*",
    "  ver gastos  -  últimos 10 de este mes",
    "  ver gastos enero  -  otro mes",
    "",
    "*✏️ Editar / borrar*",
    "  editar N  -  editar gasto #N de la lista",
    "  borrar N  -  eliminar gasto #N de la lista",
    "",
    "*📈 Resumen y configuración*",
    "  resumen [mes]  -  totales por categoría",
    "  salario 5M  -  salario mensual",
    "  saldo 2.5M  -  saldo bancario",
    "  meta ahorro 1M  -  meta de ahorro mensual",
    "  config  -  ver configuración",
    "",
    "  /actualizar  -  actualizar la hoja Resumen",
    "  /salir  -  volver al asistente",
    MENU_DIVIDER,
])


def split_month_suffix(text: str, year: Optional[int] = None) -> Tuple[str, Optional[str]]:
    """"Almuerzo 25k [enero]" -> ("Almuerzo 25k", "Enero 2026")"""
    match = _MONTH_SUFFIX.search(text)
    if not match:
        return text, None
    tab = parse_month_input(match.group(1), year)
    if not tab:
        return text, None
    return text[:match.start()].strip(), tab


def category_from_reply(text: str, interactive: Optional[InteractiveReply]) -> Optional[Category]:
    """Category chosen by button id (cat_<i>, 0-based) or by number (1-based)."""
    if interactive and interactive.id.startswith("cat_"):
        index = interactive.id[len("cat_"):]
        if index.isdigit() and int(index) < len(CATEGORIES):
            return CATEGORIES[int(index)]
    value = (text or "").strip()
    if value.isdigit() and 1 <= int(value) <= len(CATEGORIES):
        return CATEGORIES[int(value) - 1]
    return None


def category_totals(entries: List[LedgerEntry]) -> Dict[str, float]:
    totals: Dict[str, float] = defaultdict(float)
    for entry in entries:
        totals[entry.categoria or DEFAULT_CATEGORY.name] += entry.monto
    return dict(totals)


class GastosHandler:
    def __init__(self, contacts: ContactStore, ledger: SheetsLedger, learned: LearnedCategories,
                 sessions: SessionStore, sender, clock: Callable[[], datetime] = local_now):
        self.contacts = contacts
        self.ledger = ledger
        self.learned = learned
        self.sessions = sessions
        self.sender = sender
        self.clock = clock
        # chat id -> (tab, rows) of the last "ver gastos"
        self._last_viewed: Dict[str, Tuple[str, List[LedgerEntry]]] = {}

    async def handle(self, contact: Contact, text: str, interactive: Optional[InteractiveReply] = None) -> bool:
        """
        Process a message for an active gastos contact.

        Returns:
            False when the message is not for the expense tracker
        """
        jid = contact.jid
        sheet_id = contact.gastos.get("sheet_id")
        stripped = (text or "").strip()
        lower = stripped.lower()

        try:
            if self.sessions.get(jid, SessionKind.PENDING_CONFIRMATION):
                if await self._handle_confirmation(contact, lower):
                    return True

            if self.sessions.get(jid, SessionKind.PENDING_EDIT):
                if await self._handle_edit_reply(contact, stripped):
                    return True

            if self.sessions.get(jid, SessionKind.PENDING_CATEGORY):
                if await self._handle_category_reply(contact, stripped, interactive):
                    return True

            if lower in ("ayuda", "/ayuda", "comandos", "/comandos"):
                await self.sender.send_text(jid, HELP_TEXT)
                return True

            if await self._handle_command(contact, sheet_id, lower):
                return True

            return await self.register(contact, stripped)
        except LedgerError as e:
            logger.error(f"Ledger error for {jid}: {e}")
            await self.sender.send_text(jid, LEDGER_ERROR_MESSAGE)
            return True

    # =========================================================================
    # Registration
    # =========================================================================

    async def register(self, contact: Contact, text: str) -> bool:
        """Parse and store an expense. False when the text is not an expense."""
        jid = contact.jid
        now = self.clock()
        clean, tab = split_month_suffix(text, now.year)
        parsed = parse_expense(clean)
        if parsed is None:
            return False

        month_info = f"\n_→ Guardado en: {tab}_" if tab else ""
        category = categorize(parsed.description, parsed.category_hint, self.learned)

        if category is DEFAULT_CATEGORY:
            payload = {
                "sheet_id": contact.gastos.get("sheet_id"),
                "description": parsed.description,
                "amount": parsed.amount,
                "hint": parsed.category_hint or "",
                "tab": tab,
            }
            # A new question replaces the old one; the old expense is kept uncategorized
            await self.flush_pending_category(jid)
            self.sessions.open(jid, SessionKind.PENDING_CATEGORY, payload, on_expire=self._category_timeout)
            options = [{"id": f"cat_{i}", "text": cat.name} for i, cat in enumerate(CATEGORIES)]
            await self.sender.send_menu(
                jid,
                f"*{parsed.description}*  -  {format_cop(parsed.amount)}{month_info}\n\nSelecciona la categoría:",
                options,
                footer="Responde con el número",
            )
            return True

        await self.ledger.append_expense(
            contact.gastos.get("sheet_id"), now, parsed.description, parsed.amount,
            category.name, parsed.category_hint or "", tab=tab,
        )
        await self.sender.send_text(
            jid, f"*Registrado*\n{parsed.description}  -  {format_cop(parsed.amount)}  [{category.name}]{month_info}"
        )
        return True

    async def _handle_category_reply(self, contact: Contact, text: str,
                                     interactive: Optional[InteractiveReply]) -> bool:
        jid = contact.jid
        category = category_from_reply(text, interactive)
        if category is None:
            return False

        entry = self.sessions.get(jid, SessionKind.PENDING_CATEGORY)
        payload = entry.payload
        # Write first so a ledger failure leaves the choice pending
        await self.ledger.append_expense(
            payload["sheet_id"], self.clock(), payload["description"], payload["amount"],
            category.name, payload["hint"], tab=payload["tab"],
        )
        self.sessions.resolve(jid, SessionKind.PENDING_CATEGORY)
        self.learned.learn(payload["description"], category.name)

        month_info = f" → _{payload['tab']}_" if payload["tab"] else ""
        await self.sender.send_text(
            jid,
            f"*Registrado*\n{payload['description']}  -  {format_cop(payload['amount'])}  [{category.name}]{month_info} (aprendido)",
        )
        return True

    async def _category_timeout(self, entry: SessionEntry) -> None:
        payload = entry.payload
        await self.ledger.append_expense(
            payload["sheet_id"], self.clock(), payload["description"], payload["amount"],
            DEFAULT_CATEGORY.name, NO_ANSWER, tab=payload["tab"],
        )
        await self.sender.send_text(
            entry.chat_id,
            f"*Registrado*\n{payload['description']}  -  {format_cop(payload['amount'])}  [{DEFAULT_CATEGORY.name}] {NO_ANSWER}",
        )

    async def flush_pending_category(self, jid: str) -> None:
        """
        Write a pending expense uncategorized and close its question.

        The session is popped only after the row is written, so a LedgerError
        leaves the question pending.
        """
        entry = self.sessions.get(jid, SessionKind.PENDING_CATEGORY)
        if entry is None:
            return
        await self._category_timeout(entry)
        self.sessions.resolve(jid, SessionKind.PENDING_CATEGORY)

    # =========================================================================
    # Commands
    # =========================================================================

    async def _handle_command(self, contact: Contact, sheet_id: str, lower: str) -> bool:
        jid = contact.jid

        view = _VIEW.match(lower)
        if view and (view.group(1) is None or self._tab_for(view.group(1))):
            await self.view(contact, view.group(1))
            return True

        delete = _DELETE.match(lower)
        if delete:
            entry = await self._viewed_entry(jid, int(delete.group(1)))
            if entry:
                tab = self._last_viewed[jid][0]
                await self.ledger.delete_expense(sheet_id, tab, entry.row_number)
                self._last_viewed.pop(jid, None)
                await self.sender.send_text(jid, f"🗑️ Eliminado: {entry.descripcion} - {format_cop(entry.monto)} [{entry.categoria}]\n\n"
                                                 '_Escribe "ver gastos" para ver la lista actualizada_')
            return True

        nl_delete = _NL_DELETE.search(lower)
        if nl_delete:
            number = int(nl_delete.group(1))
            entry = await self._viewed_entry(jid, number)
            if entry:
                self.sessions.open(jid, SessionKind.PENDING_CONFIRMATION, {
                    "action": "delete", "tab": self._last_viewed[jid][0], "row_number": entry.row_number,
                    "label": f"{entry.descripcion} - {format_cop(entry.monto)} [{entry.categoria}]",
                })
                await self.sender.send_text(jid, f"¿Borro el gasto #{number}: *{entry.descripcion}* - {format_cop(entry.monto)}?\n\n_Responde sí o no_")
            return True

        edit = _EDIT.match(lower)
        if edit:
            number = int(edit.group(1))
            entry = await self._viewed_entry(jid, number)
            if entry:
                await self._start_edit(jid, number, self._last_viewed[jid][0], entry)
            return True

        nl_edit = _NL_EDIT.search(lower)
        if nl_edit:
            number = int(nl_edit.group(1))
            entry = await self._viewed_entry(jid, number)
            if entry:
                self.sessions.open(jid, SessionKind.PENDING_CONFIRMATION, {
                    "action": "edit", "number": number, "tab": self._last_viewed[jid][0], "entry": entry,
                })
                await self.sender.send_text(jid, f"✏️ ¿Edito el gasto #{number}: *{entry.descripcion}* - {format_cop(entry.monto)}?\n\n_Responde sí o no_")
            return True

        if _CONFIG.search(lower):
            await self.sender.send_text(jid, self.format_config(contact.gastos.get("config") or {}))
            return True

        for pattern, key, label, example in (
            (_SALARY, "salary", "Salario", "salario 5M"),
            (_BALANCE, "balance", "Saldo inicial", "saldo 2.5M"),
            (_GOAL, "savings_goal", "Meta de ahorro mensual", "meta ahorro 1M"),
        ):
            match = pattern.match(lower)
            if match:
                amount = parse_amount(match.group(1).replace(" ", ""))
                if amount is None:
                    await self.sender.send_text(jid, f"Monto inválido. Ejemplo: *{example}*")
                else:
                    await self.contacts.update_gastos_config(jid, {key: amount})
                    await self.sender.send_text(jid, f"✅ {label} configurado: *{format_cop(amount)}*")
                return True

        for pattern, key, question in (
            (_NL_SALARY, "salary", "💵 ¿Configuro tu salario en *{}*?"),
            (_NL_BALANCE, "balance", "🏦 ¿Actualizo tu saldo a *{}*?"),
            (_NL_GOAL, "savings_goal", "🎯 ¿Configuro tu meta de ahorro en *{}* mensual?"),
        ):
            match = pattern.search(lower)
            if not match:
                continue
            captured = next(g for g in match.groups() if g)
            amount = parse_money(_PER_MONTH.sub("", captured))
            if amount is None:
                continue
            self.sessions.open(jid, SessionKind.PENDING_CONFIRMATION, {"action": "config", "key": key, "amount": amount})
            await self.sender.send_text(jid, question.format(format_cop(amount)) + "\n\n_Responde sí o no_")
            return True

        summary = _SUMMARY.match(lower)
        if summary:
            await self.summary(contact, summary.group(1))
            return True

        return False

    async def _viewed_entry(self, jid: str, number: int) -> Optional[LedgerEntry]:
        viewed = self._last_viewed.get(jid)
        if not viewed or not viewed[1]:
            await self.sender.send_text(jid, 'Primero escribe "ver gastos" para ver la lista.')
            return None
        entries = viewed[1]
        if not 1 <= number <= len(entries):
            await self.sender.send_text(jid, f"Número inválido. Escribe un número entre 1 y {len(entries)}.")
            return None
        return entries[number - 1]

    def _tab_for(self, month_text: Optional[str]) -> Optional[str]:
        now = self.clock()
        if not month_text:
            return month_tab_name(now)
        return parse_month_input(month_text.strip("[]() "), now.year)

    async def view(self, contact: Contact, month_text: Optional[str] = None) -> None:
        jid = contact.jid
        tab = self._tab_for(month_text)
        if tab is None:
            await self.sender.send_text(jid, "No reconozco ese mes. Ejemplo: _ver gastos enero_")
            return

        entries = await self.ledger.recent_expenses(contact.gastos.get("sheet_id"), tab, limit=10)
        if not entries:
            await self.sender.send_text(jid, f"No hay gastos registrados en *{tab}*.\n\n_Ejemplo: ver gastos enero_")
            return

        self._last_viewed[jid] = (tab, entries)
        lines = [
            f"  *{i}.* {e.descripcion}  -  {format_cop(e.monto)}\n      _{e.categoria} | {e.fecha}_"
            for i, e in enumerate(entries, start=1)
        ]
        await self.sender.send_text(jid, "\n".join([
            f"*Últimos {len(entries)} gastos - {tab}*",
            MENU_DIVIDER,
            "",
            "\n\n".join(lines),
            "",
            MENU_DIVIDER,
            "_borrar N  |  editar N_",
        ]))

    async def _handle_edit_reply(self, contact: Contact, text: str) -> bool:
        jid = contact.jid
        entry = self.sessions.get(jid, SessionKind.PENDING_EDIT)
        payload = entry.payload
        sheet_id = contact.gastos.get("sheet_id")

        desc = _EDIT_DESC.match(text)
        amount_match = _EDIT_AMOUNT.match(text)
        cat = _EDIT_CATEGORY.match(text)

        if desc:
            field, old, new, shown = "descripcion", payload["descripcion"], desc.group(1).strip(), desc.group(1).strip()
        elif amount_match:
            amount = parse_amount(amount_match.group(1).strip())
            if amount is None:
                await self.sender.send_text(jid, "Monto inválido. Ejemplo: *monto 25000* o *monto 25k*")
                return True
            field, old, new, shown = "monto", format_cop(payload["monto"]), amount, format_cop(amount)
        elif cat:
            number = int(cat.group(1))
            if not 1 <= number <= len(CATEGORIES):
                await self.sender.send_text(jid, f"Categoría inválida. Escribe un número entre 1 y {len(CATEGORIES)}.")
                return True
            name = CATEGORIES[number - 1].name
            field, old, new, shown = "categoria", payload["categoria"], name, name
        else:
            return False

        await self.ledger.update_expense(sheet_id, payload["tab"], payload["row_number"], {field: new})
        self.sessions.resolve(jid, SessionKind.PENDING_EDIT)
        self._last_viewed.pop(jid, None)
        labels = {"descripcion": "Descripción", "monto": "Monto", "categoria": "Categoría"}
        await self.sender.send_text(jid, f"✏️ Gasto actualizado ({labels[field]}): {old} → *{shown}*\n\n"
                                         '_Escribe "ver gastos" para ver la lista actualizada_')
        return True

    async def _handle_confirmation(self, contact: Contact, lower: str) -> bool:
        jid = contact.jid
        if CONFIRM_NO.match(lower):
            self.sessions.resolve(jid, SessionKind.PENDING_CONFIRMATION)
            await self.sender.send_text(jid, "👍 Cancelado.")
            return True
        if not CONFIRM_YES.match(lower):
            # Anything else drops the question and is processed normally
            self.sessions.discard(jid, SessionKind.PENDING_CONFIRMATION)
            return False

        payload = self.sessions.get(jid, SessionKind.PENDING_CONFIRMATION).payload
        action = payload["action"]
        if action == "delete":
            await self.ledger.delete_expense(contact.gastos.get("sheet_id"), payload["tab"], payload["row_number"])
            self._last_viewed.pop(jid, None)
            await self.sender.send_text(jid, f"🗑️ Eliminado: {payload['label']}")
        elif action == "edit":
            self.sessions.resolve(jid, SessionKind.PENDING_CONFIRMATION)
            await self._start_edit(jid, payload["number"], payload["tab"], payload["entry"])
            return True
        elif action == "config":
            await self.contacts.update_gastos_config(jid, {payload["key"]: payload["amount"]})
            labels = {"salary": "Salario", "balance": "Saldo", "savings_goal": "Meta de ahorro mensual"}
            await self.sender.send_text(jid, f"✅ {labels[payload['key']]} configurado: *{format_cop(payload['amount'])}*")
        self.sessions.resolve(jid, SessionKind.PENDING_CONFIRMATION)
        return True

    async def _start_edit(self, jid: str, number: int, tab: str, entry: LedgerEntry) -> None:
        self.sessions.open(jid, SessionKind.PENDING_EDIT, {
            "tab": tab,
            "row_number": entry.row_number,
            "descripcion": entry.descripcion,
            "monto": entry.monto,
            "categoria": entry.categoria,
        })
        await self.sender.send_text(jid, "\n".join([
            f"*Editando gasto #{number}:*",
            "",
            f"Descripción: {entry.descripcion}",
            f"Monto: {format_cop(entry.monto)}",
            f"Categoría: {entry.categoria}",
            "",
            "Escribe qué quieres cambiar:",
            "- *desc* NuevoNombre",
            "- *monto* 25000",
            f"- *cat* número (1-{len(CATEGORIES)})",
            "",
            CATEGORY_MENU,
        ]))

    @staticmethod
    def format_config(config: dict) -> str:
        def money(key: str, missing: str) -> str:
            value = config.get(key)
            return format_cop(value) if value else missing

        paydays = config.get("payday") or []
        lines = [
            "⚙️ *Configuración*",
            MENU_DIVIDER,
            "",
            f"  Salario:  {money('salary', 'No configurado')}",
            f"  Frecuencia:  {FREQUENCY_LABELS.get(config.get('salary_frequency') or '', 'No configurada')}",
            f"  Días de pago:  {', '.join(str(d) for d in paydays) if paydays else 'No configurados'}",
            f"  Saldo:  {money('balance', 'No configurado')}",
            f"  Meta de ahorro:  {money('savings_goal', 'No configurada')}",
            "",
            MENU_DIVIDER,
        ]
        if not any(config.get(k) for k in ("salary", "balance", "savings_goal")):
            lines += [
                "_Aún no has configurado tus valores financieros._",
                "  • _salario 5M_  -  salario mensual",
                "  • _saldo 2.5M_  -  saldo bancario actual",
                "  • _meta ahorro 500k_  -  meta de ahorro mensual",
            ]
        return "\n".join(lines)

    # =========================================================================
    # Summary
    # =========================================================================

    async def summary(self, contact: Contact, month_text: Optional[str] = None) -> None:
        jid = contact.jid
        tab = self._tab_for(month_text)
        if tab is None:
            await self.sender.send_text(jid, "No reconozco ese mes. Ejemplo: _resumen enero_")
            return

        entries = await self.ledger.list_expenses(contact.gastos.get("sheet_id"), tab)
        await self.sender.send_text(jid, self.format_summary(tab, entries, contact.gastos.get("config") or {}))

    @staticmethod
    def format_summary(tab: str, entries: List[LedgerEntry], config: dict) -> str:
        if not entries:
            return f"No hay gastos registrados en *{tab}*."

        totals = category_totals(entries)
        total = sum(totals.values())
        lines = [f"📊 *Resumen {tab}*", MENU_DIVIDER, ""]
        potential = 0.0
        for name, amount in sorted(totals.items(), key=lambda kv: -kv[1]):
            pct = amount / total * 100 if total else 0
            lines.append(f"  {name}: *{format_cop(amount)}* ({pct:.0f}%)")
            category = get_category(name)
            if category and category.reducible:
                potential += amount * category.savings_rate

        lines += ["", f"💸 *Total gastado:* {format_cop(total)} en {len(entries)} gastos"]

        base = config.get("salary") or config.get("balance")
        if base:
            lines.append(f"💵 *Disponible:* {format_cop(base - total)} de {format_cop(base)}")
        goal = config.get("savings_goal")
        if goal and base:
            status = "✅ vas bien" if base - total >= goal else "⚠️ en riesgo"
            lines.append(f"🎯 *Meta de ahorro:* {format_cop(goal)} ({status})")
        if potential > 0:
            lines.append(f"💡 Podrías ahorrar hasta *{format_cop(potential)}* reduciendo gastos opcionales")

        lines += ["", MENU_DIVIDER]
        return "\n".join(lines)

    async def refresh_summary(self, contact: Contact) -> str:
        """Rewrite the Resumen tab for the current month. Returns the reply text."""
        tab = month_tab_name(self.clock())
        sheet_id = contact.gastos.get("sheet_id")
        try:
            entries = await self.ledger.list_expenses(sheet_id, tab)
            await self.ledger.write_summary(sheet_id, tab, category_totals(entries))
        except LedgerError as e:
            logger.error(f"Summary refresh failed for {contact.jid}: {e}")
            return LEDGER_ERROR_MESSAGE
        return f"✅ Hoja *Resumen* actualizada ({tab}, {len(entries)} gastos)."
