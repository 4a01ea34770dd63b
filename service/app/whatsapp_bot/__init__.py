"""
WhatsApp bot module.

ARCHITECTURE: Thin routing layer over the sub-bots.
- Receives gateway envelopes from the webhook
- Normalizes them into InboundMessage
- Routes each one to exactly one handler (see router.py)
- Replies through the gateway REST API

Sub-bot logic lives in app.assistant, app.gastos and app.briefing.
The router itself is imported from app.whatsapp_bot.bot to keep this
package importable from the sub-bots.
"""

from .messages import InboundMessage, InteractiveReply, PREFIX, extract_text, parse_envelope
from .sessions import SessionKind, SessionStore

__all__ = [
    "InboundMessage",
    "InteractiveReply",
    "PREFIX",
    "extract_text",
    "parse_envelope",
    "SessionKind",
    "SessionStore",
]
