"""
Ephemeral per-chat session storage.

Pending multi-step interactions (category choice, row edit, bot selection,
onboarding) live here, keyed by (chat_id, kind). In-memory and process-local:
a restart drops every pending session, the durable contact record is the
source of truth for anything that must survive.

Expiry is lazy. Each entry carries an `expires_at` taken from the injected
clock; `expire()` pops due entries and runs their fallback exactly once.
The router calls `expire(chat_id)` before handling a chat's next message and
`run_sweeper()` does the same for all chats in the background.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from .logging_config import bot_logger as logger


class SessionKind(str, Enum):
    PENDING_CATEGORY = "pending_category"
    PENDING_EDIT = "pending_edit"
    PENDING_CONFIRMATION = "pending_confirmation"
    PENDING_BOT_SELECTION = "pending_bot_selection"
    GASTOS_ONBOARDING = "gastos_onboarding"
    PERSONALITY_ONBOARDING = "personality_onboarding"


# Timeouts in seconds
SESSION_TIMEOUTS = {
    SessionKind.PENDING_CATEGORY: 5 * 60,
    SessionKind.PENDING_EDIT: 5 * 60,
    SessionKind.PENDING_CONFIRMATION: 5 * 60,
    SessionKind.PENDING_BOT_SELECTION: 60,
    SessionKind.GASTOS_ONBOARDING: 15 * 60,
    SessionKind.PERSONALITY_ONBOARDING: 15 * 60,
}

ExpireCallback = Callable[["SessionEntry"], Awaitable[None]]


@dataclass
class SessionEntry:
    chat_id: str
    kind: SessionKind
    payload: Dict[str, Any]
    created_at: float
    expires_at: float
    on_expire: Optional[ExpireCallback] = field(default=None, repr=False)


class SessionStore:
    """In-memory session store with lazy, clock-driven expiry."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: Dict[Tuple[str, SessionKind], SessionEntry] = {}

    def now(self) -> float:
        return self._clock()

    def open(
        self,
        chat_id: str,
        kind: SessionKind,
        payload: Optional[Dict[str, Any]] = None,
        ttl: Optional[float] = None,
        on_expire: Optional[ExpireCallback] = None,
    ) -> SessionEntry:
        """
        Open (or replace) the session of `kind` for a chat.

        A replaced entry is dropped without running its fallback.
        """
        now = self._clock()
        entry = SessionEntry(
            chat_id=chat_id,
            kind=kind,
            payload=dict(payload or {}),
            created_at=now,
            expires_at=now + (ttl if ttl is not None else SESSION_TIMEOUTS[kind]),
            on_expire=on_expire,
        )
        self._entries[(chat_id, kind)] = entry
        return entry

    def get(self, chat_id: str, kind: SessionKind) -> Optional[SessionEntry]:
        """Live entry or None. Due entries stay in place until `expire()` collects them."""
        entry = self._entries.get((chat_id, kind))
        if entry is None or entry.expires_at <= self._clock():
            return None
        return entry

    def touch(self, chat_id: str, kind: SessionKind, ttl: Optional[float] = None) -> None:
        """Push back the deadline of a live entry."""
        entry = self.get(chat_id, kind)
        if entry:
            entry.expires_at = self._clock() + (ttl if ttl is not None else SESSION_TIMEOUTS[kind])

    def resolve(self, chat_id: str, kind: SessionKind) -> Optional[SessionEntry]:
        """Pop a live entry on normal completion. Its fallback never runs."""
        entry = self.get(chat_id, kind)
        if entry is not None:
            self._entries.pop((chat_id, kind), None)
        return entry

    def discard(self, chat_id: str, kind: Optional[SessionKind] = None) -> None:
        """Drop one kind, or every session of a chat, without fallbacks."""
        if kind is not None:
            self._entries.pop((chat_id, kind), None)
            return
        for key in [k for k in self._entries if k[0] == chat_id]:
            del self._entries[key]

    def has_any(self, chat_id: str) -> bool:
        now = self._clock()
        return any(k[0] == chat_id and e.expires_at > now for k, e in self._entries.items())

    def collect_expired(self, chat_id: Optional[str] = None) -> list[SessionEntry]:
        """Pop every due entry (optionally for one chat) and return them."""
        now = self._clock()
        due = [
            key for key, entry in self._entries.items()
            if entry.expires_at <= now and (chat_id is None or key[0] == chat_id)
        ]
        return [self._entries.pop(key) for key in due]

    async def expire(self, chat_id: Optional[str] = None) -> int:
        """
        Expire due sessions and run each fallback once.

        Fallback failures are logged; they never block the remaining ones.

        Returns:
            Number of expired entries
        """
        expired = self.collect_expired(chat_id)
        for entry in expired:
            logger.info(f"Session expired: chat={entry.chat_id}, kind={entry.kind.value}")
            if entry.on_expire is None:
                continue
            try:
                await entry.on_expire(entry)
            except Exception as e:
                logger.error(f"Session fallback failed for {entry.chat_id} ({entry.kind.value}): {e}", exc_info=True)
        return len(expired)

    async def run_sweeper(self, interval: float = 5.0) -> None:
        """Background loop expiring sessions of idle chats. Cancel the task to stop it."""
        while True:
            await asyncio.sleep(interval)
            await self.expire()

    def __len__(self) -> int:
        return len(self._entries)
