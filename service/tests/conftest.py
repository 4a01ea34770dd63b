"""
Shared fakes for router and sub-bot tests.

Settings come from environment variables set here, before anything calls
get_settings().
"""

import copy
import os
from datetime import datetime
from typing import Any, Dict, List, Optional

os.environ.setdefault("SUPABASE_URL", "http://localhost:54321")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-service-role-key")
os.environ.setdefault("GROQ_API_KEY", "test-groq-key")
os.environ.setdefault("ADMIN_NUMBER", "573000000000")
os.environ.setdefault("ADMIN_LID", "")
os.environ.setdefault("BRIEFING_ENABLED", "false")

import pytest

from app.assistant.handler import AssistantHandler
from app.assistant.reminders import ReminderScheduler
from app.briefing.news import NewsService
from app.briefing.prices import PriceService
from app.briefing.scheduler import BriefingScheduler
from app.briefing.service import BriefingService
from app.gastos.categories import LearnedCategories
from app.gastos.dates import month_tab_name
from app.gastos.handler import GastosHandler
from app.gastos.ledger import LedgerEntry, LedgerError
from app.gastos.onboarding import GastosOnboarding
from app.whatsapp_bot.admin import AdminCommands
from app.whatsapp_bot.contacts import ContactStore
from app.whatsapp_bot.messages import InboundMessage
from app.whatsapp_bot.onboarding import PersonalityOnboarding
from app.whatsapp_bot.router import Router
from app.whatsapp_bot.sessions import SessionStore

ADMIN_JID = "573000000000@s.whatsapp.net"
USER_JID = "573001112233@s.whatsapp.net"
SHEET_ID = "1AbCdEfGhIjKlMnOpQrStUvWxYz0123456789"
FIXED_NOW = datetime(2026, 2, 10, 12, 30)


class InMemoryContactStore(ContactStore):
    """ContactStore over a dict, with Supabase upsert semantics (merge columns)."""

    def __init__(self):
        self.rows: Dict[str, Dict[str, Any]] = {}

    async def _select(self, jid: str) -> Optional[Dict[str, Any]]:
        row = self.rows.get(jid)
        return copy.deepcopy(row) if row else None

    async def _upsert(self, row: Dict[str, Any]) -> None:
        current = self.rows.get(row["jid"], {"blocked": False})
        self.rows[row["jid"]] = {**current, **copy.deepcopy(row)}

    async def _select_where(self, column: str, value: Any) -> List[Dict[str, Any]]:
        return [copy.deepcopy(r) for r in self.rows.values() if r.get(column) == value]

    def seed(self, jid: str, **fields: Any) -> None:
        self.rows[jid] = {"jid": jid, "blocked": False, **fields}


class FakeSender:
    """Records outbound messages instead of calling the gateway."""

    def __init__(self):
        self.sent: List[Dict[str, Any]] = []

    async def send_text(self, jid: str, text: str) -> dict:
        self.sent.append({"kind": "text", "jid": jid, "text": text})
        return {}

    async def send_menu(self, jid: str, title: str, options: list, footer: str = "") -> dict:
        self.sent.append({"kind": "menu", "jid": jid, "text": title, "options": options, "footer": footer})
        return {}

    async def send_media(self, jid: str, url: str, kind: str = "image", caption: str = "") -> dict:
        self.sent.append({"kind": kind, "jid": jid, "url": url, "text": caption})
        return {}

    async def send_document(self, jid: str, data: bytes, filename: str,
                            mimetype: str = "application/pdf", caption: str = "") -> dict:
        self.sent.append({"kind": "document", "jid": jid, "filename": filename, "text": caption})
        return {}

    async def send_audio(self, jid: str, data: bytes, mimetype: str = "audio/wav") -> dict:
        self.sent.append({"kind": "audio", "jid": jid, "text": ""})
        return {}

    async def send_presence(self, jid: str, presence: str = "composing") -> None:
        pass

    def texts(self, jid: Optional[str] = None) -> List[str]:
        return [m["text"] for m in self.sent if jid is None or m["jid"] == jid]

    @property
    def last(self) -> Dict[str, Any]:
        return self.sent[-1]


class FakeLedger:
    """In-memory spreadsheet: one list of rows per (sheet, tab)."""

    service_account_email = "bot@whatsbot.iam.gserviceaccount.com"

    def __init__(self):
        self.tabs: Dict[tuple, List[Dict[str, Any]]] = {}
        self.denied: set = set()
        self.fail_with: Optional[Exception] = None
        self.summaries: List[tuple] = []

    @property
    def rows(self) -> List[Dict[str, Any]]:
        return [row for rows in self.tabs.values() for row in rows]

    async def check_access(self, sheet_id: str) -> str:
        if sheet_id in self.denied:
            raise LedgerError("403 forbidden")
        return "Mis gastos"

    async def append_expense(self, sheet_id, dt, description, amount, category, subcategory="", tab=None):
        if self.fail_with is not None:
            raise self.fail_with
        tab = tab or month_tab_name(dt)
        self.tabs.setdefault((sheet_id, tab), []).append({
            "description": description,
            "amount": amount,
            "category": category,
            "subcategory": subcategory,
            "tab": tab,
        })

    async def list_expenses(self, sheet_id, tab):
        return [
            LedgerEntry(row_number=i + 2, fecha="2026-02-10", hora="12:30:00",
                        descripcion=r["description"], monto=float(r["amount"]),
                        categoria=r["category"], subcategoria=r["subcategory"])
            for i, r in enumerate(self.tabs.get((sheet_id, tab), []))
        ]

    async def recent_expenses(self, sheet_id, tab, limit=10):
        rows = await self.list_expenses(sheet_id, tab)
        return list(reversed(rows[-limit:]))

    async def delete_expense(self, sheet_id, tab, row_number):
        del self.tabs[(sheet_id, tab)][row_number - 2]

    async def update_expense(self, sheet_id, tab, row_number, fields):
        row = self.tabs[(sheet_id, tab)][row_number - 2]
        names = {"descripcion": "description", "monto": "amount", "categoria": "category"}
        for name, value in fields.items():
            row[names[name]] = value

    async def write_summary(self, sheet_id, tab, totals):
        self.summaries.append((sheet_id, tab, dict(totals)))


class FakeLLM:
    """Stands in for LLMService: canned answers, no network."""

    def __init__(self, reply: str = "Respuesta del asistente"):
        self.reply = reply
        self.calls: List[tuple] = []
        self.cleared: List[str] = []
        self.json_reply: dict = {}

    async def chat(self, chat_id: str, text: str, personality: Optional[str] = None) -> str:
        self.calls.append((chat_id, text, personality))
        return self.reply

    async def complete(self, prompt: str, system: str = "", max_tokens: int = 2048) -> str:
        return self.reply

    async def complete_json(self, prompt: str, system: str = "") -> dict:
        return self.json_reply

    def clear_history(self, chat_id: str) -> None:
        self.cleared.append(chat_id)


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def ready_gastos_data(sheet_id: str = SHEET_ID) -> Dict[str, Any]:
    return {
        "sheet_id": sheet_id,
        "sheet_url": f"https://docs.google.com/spreadsheets/d/{sheet_id}",
        "onboarding_step": "complete",
        "onboarding_complete": True,
        "config": {"salary": 3_000_000},
    }


@pytest.fixture
def contacts():
    return InMemoryContactStore()


@pytest.fixture
def sender():
    return FakeSender()


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def llm():
    return FakeLLM()


@pytest.fixture
def clock():
    return FakeClock()


def inbound(text: str = "", chat_id: str = USER_JID, **fields: Any) -> InboundMessage:
    return InboundMessage(chat_id=chat_id, text=text, **fields)


@pytest.fixture
def router(contacts, sender, ledger, llm, clock, tmp_path):
    """Router wired to in-memory fakes; the gastos clock is pinned to FIXED_NOW."""
    sessions = SessionStore(clock=clock)
    news = NewsService()
    prices = PriceService()
    scheduler = BriefingScheduler(sender, contacts, BriefingService(prices, news), enabled=False)
    learned = LearnedCategories(str(tmp_path / "learned_categories.json"))

    return Router(
        contacts=contacts,
        sessions=sessions,
        sender=sender,
        assistant=AssistantHandler(llm, ReminderScheduler(sender), sender, contacts),
        gastos=GastosHandler(contacts, ledger, learned, sessions, sender, clock=lambda: FIXED_NOW),
        gastos_onboarding=GastosOnboarding(contacts, ledger, sender, llm),
        personality=PersonalityOnboarding(contacts, sessions, sender, llm),
        admin=AdminCommands(contacts, sender, scheduler),
        scheduler=scheduler,
        news=news,
        prices=prices,
    )
