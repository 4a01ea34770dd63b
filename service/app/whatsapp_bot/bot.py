"""
Bot wiring and lifecycle.

Builds the router with its collaborators once, feeds it webhook payloads,
and owns the background tasks (session sweeper, briefing and salary schedulers).
"""

import asyncio
from typing import Any, List, Optional

from app.config import get_settings
from app.assistant.handler import AssistantHandler
from app.assistant.llm import LLMService
from app.assistant.reminders import ReminderScheduler
from app.briefing.news import NewsService
from app.briefing.prices import PriceService
from app.briefing.scheduler import BriefingScheduler
from app.briefing.service import BriefingService
from app.gastos.categories import LearnedCategories
from app.gastos.handler import GastosHandler
from app.gastos.ledger import SheetsLedger
from app.gastos.onboarding import GastosOnboarding
from app.gastos.salary import SalaryScheduler
from .admin import AdminCommands
from .contacts import SupabaseContactStore
from .logging_config import bot_logger as logger
from .messages import InboundMessage, parse_envelope
from .onboarding import PersonalityOnboarding
from .router import Router
from .sessions import SessionStore
from .whatsapp_api import get_gateway_client


# Global router instance (initialized once)
_router: Router | None = None
_tasks: List[asyncio.Task] = []


def get_router() -> Router:
    """Get or create the router and its collaborators."""
    global _router

    if _router is None:
        settings = get_settings()
        sender = get_gateway_client()
        contacts = SupabaseContactStore()
        sessions = SessionStore()
        llm = LLMService()
        ledger = SheetsLedger()
        news = NewsService()
        prices = PriceService()
        scheduler = BriefingScheduler(sender, contacts, BriefingService(prices, news))

        _router = Router(
            contacts=contacts,
            sessions=sessions,
            sender=sender,
            assistant=AssistantHandler(llm, ReminderScheduler(sender), sender, contacts),
            gastos=GastosHandler(contacts, ledger, LearnedCategories(settings.learned_categories_path),
                                 sessions, sender),
            gastos_onboarding=GastosOnboarding(contacts, ledger, sender, llm),
            personality=PersonalityOnboarding(contacts, sessions, sender, llm),
            admin=AdminCommands(contacts, sender, scheduler),
            scheduler=scheduler,
            news=news,
            prices=prices,
        )
        logger.info("WhatsApp router initialized")

    return _router


def extract_messages(payload: Any) -> List[InboundMessage]:
    """Envelopes from a webhook body: a single envelope or {"messages": [...]}."""
    if isinstance(payload, dict) and isinstance(payload.get("messages"), list):
        envelopes = payload["messages"]
    else:
        envelopes = [payload]

    messages = []
    for envelope in envelopes:
        message = parse_envelope(envelope)
        if message is not None:
            messages.append(message)
    return messages


async def handle_whatsapp_update(payload: Any) -> None:
    """
    Process an incoming webhook body from the gateway.

    Each message gets its own task; the router serializes per chat.
    """
    try:
        messages = extract_messages(payload)
        if not messages:
            logger.warning("Received webhook without usable messages")
            return

        router = get_router()
        await asyncio.gather(*(router.handle(message) for message in messages))

    except Exception as e:
        logger.error(f"Failed to process update: {e}", exc_info=True)


async def initialize_bot(sweep_interval: Optional[float] = None) -> None:
    """
    Build the router and start background tasks (call on startup).
    """
    router = get_router()
    _tasks.append(asyncio.create_task(router.sessions.run_sweeper(sweep_interval or 5.0)))
    _tasks.append(asyncio.create_task(router.scheduler.run()))
    _tasks.append(asyncio.create_task(SalaryScheduler(router.sender, router.contacts).run()))
    logger.info("Bot initialized successfully")


async def shutdown_bot() -> None:
    """
    Cancel background tasks and pending reminders (call on shutdown).
    """
    global _router
    for task in _tasks:
        task.cancel()
    await asyncio.gather(*_tasks, return_exceptions=True)
    _tasks.clear()

    if _router:
        _router.assistant.reminders.cancel_all()
        _router = None
        logger.info("Bot shut down")
