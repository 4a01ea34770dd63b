"""
Normalization of WhatsApp gateway envelopes.

The gateway forwards raw message objects with many optional nested payload
shapes. Everything downstream works on `InboundMessage`, produced by
`parse_envelope()`. None of the functions here raise on malformed input.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Optional

# Zero-width marker prepended to every outbound text. Inbound messages that
# start with it are our own echoes (self-chat) and are ignored.
PREFIX = "\u200b"

MENU_DIVIDER = "─" * 25

# Envelope wrappers that carry the real payload one level down
_WRAPPERS = (
    "ephemeralMessage",
    "viewOnceMessage",
    "viewOnceMessageV2",
    "viewOnceMessageV2Extension",
    "documentWithCaptionMessage",
)

_DEVICE_SUFFIX = re.compile(r":\d+@")


@dataclass(frozen=True)
class InteractiveReply:
    """A button or list choice: option id plus its display text."""
    id: str
    text: str = ""


@dataclass(frozen=True)
class InboundMessage:
    """Canonical inbound message."""
    chat_id: str
    text: str
    interactive: Optional[InteractiveReply] = None
    from_me: bool = False
    message_id: str = ""
    push_name: str = ""

    @property
    def is_group(self) -> bool:
        return self.chat_id.endswith("@g.us")

    @property
    def is_broadcast(self) -> bool:
        return self.chat_id == "status@broadcast" or self.chat_id.endswith("@broadcast")


def _get(obj: Any, *path: str) -> Any:
    for key in path:
        if not isinstance(obj, dict):
            return None
        obj = obj.get(key)
    return obj


def unwrap_message(message: Any) -> dict:
    """Strip ephemeral/view-once wrappers. Returns {} for non-dicts."""
    if not isinstance(message, dict):
        return {}
    for _ in range(5):
        for wrapper in _WRAPPERS:
            inner = _get(message, wrapper, "message")
            if isinstance(inner, dict) and wrapper != "documentWithCaptionMessage":
                message = inner
                break
        else:
            return message
    return message


def extract_text(message: Any) -> str:
    """
    Best-effort plain text of a message payload.

    Checks, in priority order: plain conversation, extended text, image /
    video / document captions and captioned documents.
    """
    m = unwrap_message(message)
    candidates = (
        _get(m, "conversation"),
        _get(m, "extendedTextMessage", "text"),
        _get(m, "imageMessage", "caption"),
        _get(m, "videoMessage", "caption"),
        _get(m, "documentMessage", "caption"),
        _get(m, "documentWithCaptionMessage", "message", "documentMessage", "caption"),
    )
    for value in candidates:
        if isinstance(value, str) and value:
            return value
    return ""


def extract_interactive_reply(message: Any) -> Optional[InteractiveReply]:
    """Button / list selection normalized to {id, text}, or None."""
    m = unwrap_message(message)

    flow = _get(m, "interactiveResponseMessage", "nativeFlowResponseMessage")
    if isinstance(flow, dict):
        name = flow.get("name") or ""
        try:
            params = json.loads(flow.get("paramsJson") or "{}")
        except (TypeError, ValueError):
            return InteractiveReply(id=str(name))
        if not isinstance(params, dict):
            return InteractiveReply(id=str(name))
        text = params.get("text") or params.get("display_text") or params.get("displayText") or params.get("title") or ""
        return InteractiveReply(id=str(params.get("id") or name), text=str(text))

    buttons = _get(m, "buttonsResponseMessage")
    if isinstance(buttons, dict):
        return InteractiveReply(
            id=str(buttons.get("selectedButtonId") or ""),
            text=str(buttons.get("selectedDisplayText") or ""),
        )

    listed = _get(m, "listResponseMessage")
    if isinstance(listed, dict):
        return InteractiveReply(
            id=str(_get(listed, "singleSelectReply", "selectedRowId") or ""),
            text=str(listed.get("title") or ""),
        )

    return None


def parse_envelope(envelope: Any) -> Optional[InboundMessage]:
    """
    Map a gateway envelope ({key, pushName, message}) to an InboundMessage.

    Returns None when the envelope has no chat id or no payload at all.
    """
    if not isinstance(envelope, dict):
        return None
    key = envelope.get("key") or {}
    chat_id = _get(key, "remoteJid")
    if not isinstance(chat_id, str) or not chat_id:
        return None
    message = envelope.get("message")
    if not isinstance(message, dict):
        return None

    return InboundMessage(
        chat_id=chat_id,
        text=extract_text(message).strip(),
        interactive=extract_interactive_reply(message),
        from_me=bool(_get(key, "fromMe")),
        message_id=str(_get(key, "id") or ""),
        push_name=str(envelope.get("pushName") or ""),
    )


def normalize_jid(jid: str) -> str:
    """Drop the multi-device suffix: '573001234567:12@s.whatsapp.net' -> '573001234567@s.whatsapp.net'."""
    return _DEVICE_SUFFIX.sub("@", jid or "")


def phone_from_jid(jid: str) -> str:
    return normalize_jid(jid).split("@", 1)[0]


def jid_from_phone(number: str) -> str:
    digits = re.sub(r"\D", "", number or "")
    return f"{digits}@s.whatsapp.net" if digits else ""


def format_menu(title: str, options: list[dict], footer: str = "") -> str:
    """
    Render a numbered text menu.

    Each option is {"id", "text", "desc"?}; users answer with the number.
    """
    lines = []
    for i, option in enumerate(options, start=1):
        desc = f"\n      _{option['desc']}_" if option.get("desc") else ""
        lines.append(f"  *[ {i} ]* {option['text']}{desc}")

    text = f"{title}\n{MENU_DIVIDER}\n\n" + "\n\n".join(lines) + f"\n\n{MENU_DIVIDER}"
    if footer:
        text += f"\n_{footer}_"
    return text
