"""
WhatsApp gateway client for sending messages.

Thin httpx wrapper around the gateway's REST API. Every text goes out with
the zero-width PREFIX so the router can recognise its own echoes.
"""

import base64
from typing import Optional

import httpx

from app.config import get_settings
from .messages import PREFIX, format_menu


class GatewayClient:
    """Outbound side of the bot: text, menus, media, documents and audio."""

    def __init__(self, base_url: Optional[str] = None, token: Optional[str] = None, timeout: float = 20.0):
        settings = get_settings()
        self.base_url = (base_url or settings.whatsapp_gateway_url).rstrip("/")
        self.token = token if token is not None else settings.whatsapp_gateway_token
        self.timeout = timeout

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _post(self, path: str, payload: dict) -> dict:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(f"{self.base_url}{path}", json=payload, headers=self._headers())
            response.raise_for_status()
            return response.json() if response.content else {}

    async def send_text(self, jid: str, text: str) -> dict:
        """
        Send a text message.

        Args:
            jid: WhatsApp chat id
            text: Message body (WhatsApp markup: *bold*, _italic_)
        """
        return await self._post("/messages/text", {"jid": jid, "text": PREFIX + text})

    async def send_menu(self, jid: str, title: str, options: list[dict], footer: str = "") -> dict:
        """
        Send a numbered options menu.

        Args:
            jid: WhatsApp chat id
            title: Menu heading
            options: [{"id": "bot_gastos", "text": "Gastos", "desc": "..."}]
            footer: Hint line shown under the options
        """
        return await self.send_text(jid, format_menu(title, options, footer))

    async def send_media(self, jid: str, url: str, kind: str = "image", caption: str = "") -> dict:
        """Send image/video/gif by URL. `kind` is image, video or gif."""
        payload = {"jid": jid, "url": url, "type": kind}
        if caption:
            payload["caption"] = PREFIX + caption
        return await self._post("/messages/media", payload)

    async def send_document(self, jid: str, data: bytes, filename: str, mimetype: str = "application/pdf", caption: str = "") -> dict:
        payload = {
            "jid": jid,
            "filename": filename,
            "mimetype": mimetype,
            "data": base64.b64encode(data).decode("ascii"),
        }
        if caption:
            payload["caption"] = PREFIX + caption
        return await self._post("/messages/document", payload)

    async def send_audio(self, jid: str, data: bytes, mimetype: str = "audio/wav") -> dict:
        """Send a voice note (ptt)."""
        return await self._post("/messages/audio", {
            "jid": jid,
            "mimetype": mimetype,
            "ptt": True,
            "data": base64.b64encode(data).decode("ascii"),
        })

    async def send_presence(self, jid: str, presence: str = "composing") -> None:
        """Typing indicator. Best-effort, failures are ignored by callers."""
        await self._post("/presence", {"jid": jid, "presence": presence})


# Global client instance (created lazily)
_client: GatewayClient | None = None


def get_gateway_client() -> GatewayClient:
    global _client
    if _client is None:
        _client = GatewayClient()
    return _client
