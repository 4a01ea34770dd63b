"""
Durable per-contact state in the Supabase `contacts` table.

One row per chat id (jid) holding identity, the active sub-bot, block
status, personality, and two JSON bags: `preferences` (briefing settings)
and `gastos_data` (expense-tracker settings and onboarding progress).

Expected schema:
    CREATE TABLE contacts (
        jid TEXT PRIMARY KEY,
        name TEXT,
        active_bot TEXT DEFAULT 'none',
        blocked BOOLEAN DEFAULT FALSE,
        block_reason TEXT,
        personality TEXT,
        onboarding_done BOOLEAN DEFAULT FALSE,
        preferences JSONB DEFAULT '{}',
        gastos_data JSONB DEFAULT '{}',
        created_at TIMESTAMPTZ DEFAULT now(),
        updated_at TIMESTAMPTZ DEFAULT now()
    );
"""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .logging_config import bot_logger as logger

ACTIVE_BOTS = ("none", "groq", "gastos")

DEFAULT_PREFS: Dict[str, Any] = {
    "briefing_enabled": False,
    "briefing_times": [7, 13, 19],
    "show_weather": True,
    "show_trm": True,
    "cryptos": ["BTC"],
    "fx_currencies": [],
    "news_count": 5,
    "news_topics": ["colombia", "internacional"],
    "voice_mode": False,
}

DEFAULT_GASTOS_DATA: Dict[str, Any] = {
    "sheet_id": None,
    "sheet_url": None,
    "onboarding_step": None,
    "onboarding_data": {},
    "onboarding_complete": False,
    "config": {},
}


def _merged(defaults: Dict[str, Any], stored: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    return {**copy.deepcopy(defaults), **(stored or {})}


@dataclass
class Contact:
    jid: str
    name: str = ""
    active_bot: str = "none"
    blocked: bool = False
    block_reason: Optional[str] = None
    personality: Optional[str] = None
    onboarding_done: bool = False
    preferences: Dict[str, Any] = field(default_factory=dict)
    gastos_data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Contact":
        return cls(
            jid=row["jid"],
            name=row.get("name") or "",
            active_bot=row.get("active_bot") or "none",
            blocked=bool(row.get("blocked")),
            block_reason=row.get("block_reason"),
            personality=row.get("personality"),
            onboarding_done=bool(row.get("onboarding_done")),
            preferences=row.get("preferences") or {},
            gastos_data=row.get("gastos_data") or {},
        )

    @property
    def prefs(self) -> Dict[str, Any]:
        """Preferences merged over DEFAULT_PREFS."""
        return _merged(DEFAULT_PREFS, self.preferences)

    @property
    def gastos(self) -> Dict[str, Any]:
        """Expense-tracker data merged over DEFAULT_GASTOS_DATA."""
        return _merged(DEFAULT_GASTOS_DATA, self.gastos_data)

    @property
    def gastos_ready(self) -> bool:
        data = self.gastos
        return bool(data.get("onboarding_complete") and data.get("sheet_id"))


class ContactStore(ABC):
    """
    Contact repository.

    Subclasses provide three storage primitives (`_select`, `_upsert`,
    `_select_where`); everything else is shared.
    """

    @abstractmethod
    async def _select(self, jid: str) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    async def _upsert(self, row: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def _select_where(self, column: str, value: Any) -> List[Dict[str, Any]]:
        ...

    # =========================================================================
    # Identity
    # =========================================================================

    async def get(self, jid: str) -> Optional[Contact]:
        row = await self._select(jid)
        return Contact.from_row(row) if row else None

    async def get_or_create(self, jid: str, name: str = "") -> tuple[Contact, bool]:
        """Load a contact, creating it on first message. Returns (contact, created)."""
        contact = await self.get(jid)
        if contact:
            if name and not contact.name:
                await self.update(jid, name=name)
                contact.name = name
            return contact, False

        await self._upsert({"jid": jid, "name": name or None})
        logger.info(f"New contact created: {jid} ({name})")
        return Contact(jid=jid, name=name), True

    async def update(self, jid: str, **fields: Any) -> None:
        fields["updated_at"] = datetime.now(timezone.utc).isoformat()
        await self._upsert({"jid": jid, **fields})

    async def set_active_bot(self, jid: str, bot: str) -> None:
        if bot not in ACTIVE_BOTS:
            raise ValueError(f"Unknown bot: {bot}")
        await self.update(jid, active_bot=bot)

    async def set_personality(self, jid: str, personality: str) -> None:
        await self.update(jid, personality=personality, onboarding_done=True)

    # =========================================================================
    # Preferences
    # =========================================================================

    async def get_prefs(self, jid: str) -> Dict[str, Any]:
        contact = await self.get(jid)
        return contact.prefs if contact else _merged(DEFAULT_PREFS, None)

    async def set_prefs(self, jid: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        """Merge updates into stored preferences (last write wins)."""
        merged = {**(await self.get_prefs(jid)), **updates}
        await self.update(jid, preferences=merged)
        return merged

    async def list_briefing_subscribers(self) -> List[Contact]:
        rows = await self._select_where("blocked", False)
        contacts = [Contact.from_row(r) for r in rows]
        return [c for c in contacts if c.prefs.get("briefing_enabled")]

    # =========================================================================
    # Gastos data
    # =========================================================================

    async def get_gastos(self, jid: str) -> Dict[str, Any]:
        contact = await self.get(jid)
        return contact.gastos if contact else _merged(DEFAULT_GASTOS_DATA, None)

    async def set_gastos(self, jid: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        merged = {**(await self.get_gastos(jid)), **updates}
        await self.update(jid, gastos_data=merged)
        return merged

    async def update_gastos_config(self, jid: str, config_updates: Dict[str, Any]) -> Dict[str, Any]:
        data = await self.get_gastos(jid)
        config = {**(data.get("config") or {}), **config_updates}
        await self.set_gastos(jid, {"config": config})
        return config

    async def list_gastos_contacts(self) -> List[Contact]:
        """Unblocked contacts with a finished expense-tracker setup."""
        rows = await self._select_where("blocked", False)
        return [c for c in (Contact.from_row(r) for r in rows) if c.gastos_ready]

    async def reset_gastos(self, jid: str) -> None:
        await self.update(jid, gastos_data=copy.deepcopy(DEFAULT_GASTOS_DATA), active_bot="groq")
        logger.info(f"Gastos data reset for {jid}")

    async def reset_all_gastos(self) -> int:
        """Reset every contact that has gastos data. Returns the number reset."""
        count = 0
        for row in await self._select_where("blocked", False) + await self._select_where("blocked", True):
            if row.get("gastos_data"):
                await self.reset_gastos(row["jid"])
                count += 1
        logger.info(f"Gastos data reset for {count} contacts")
        return count

    # =========================================================================
    # Blocklist
    # =========================================================================

    async def block(self, jid: str, reason: Optional[str] = None) -> None:
        await self.update(jid, blocked=True, block_reason=reason)
        logger.info(f"Contact blocked: {jid} ({reason})")

    async def unblock(self, jid: str) -> None:
        await self.update(jid, blocked=False, block_reason=None)
        logger.info(f"Contact unblocked: {jid}")

    async def list_blocked(self) -> List[Contact]:
        return [Contact.from_row(r) for r in await self._select_where("blocked", True)]


class SupabaseContactStore(ContactStore):
    """ContactStore backed by the Supabase `contacts` table."""

    table = "contacts"

    def __init__(self, client=None):
        if client is None:
            from app.supabase_client import get_supabase_admin
            client = get_supabase_admin()
        self.supabase = client

    async def _select(self, jid: str) -> Optional[Dict[str, Any]]:
        result = self.supabase.table(self.table).select("*").eq("jid", jid).limit(1).execute()
        return result.data[0] if result.data else None

    async def _upsert(self, row: Dict[str, Any]) -> None:
        self.supabase.table(self.table).upsert(row, on_conflict="jid").execute()

    async def _select_where(self, column: str, value: Any) -> List[Dict[str, Any]]:
        result = self.supabase.table(self.table).select("*").eq(column, value).execute()
        return result.data or []
