"""
Media helpers for the assistant: GIF search, QR codes and PDF reports.
"""

import io
import random
import re
from datetime import datetime
from typing import Optional
from urllib.parse import quote

import httpx
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer
from xml.sax.saxutils import escape

from app.config import get_settings
from app.whatsapp_bot.logging_config import get_logger

logger = get_logger("assistant.media")

GIPHY_SEARCH_URL = "https://api.giphy.com/v1/gifs/search"
TENOR_SEARCH_URL = "https://api.tenor.com/v1/search"
# Public development key published by Tenor
TENOR_KEY = "LIVDSRZULELA"

QR_API_URL = "https://api.qrserver.com/v1/create-qr-code/"

PDF_SYSTEM_PROMPT = (
    "Eres un redactor de documentos. Escribe un documento completo y bien "
    "estructurado en Markdown simple (# título, ## secciones, listas con -). "
    "Responde solo con el contenido del documento, en español."
)


async def _search_giphy(client: httpx.AsyncClient, query: str, api_key: str) -> Optional[str]:
    response = await client.get(GIPHY_SEARCH_URL, params={
        "api_key": api_key, "q": query, "limit": 25, "rating": "g", "lang": "es",
    })
    response.raise_for_status()
    data = response.json().get("data") or []
    pool = random.sample(data, min(len(data), 8))
    for gif in pool:
        images = gif.get("images") or {}
        for variant in ("fixed_height", "downsized_medium", "fixed_height_small", "preview"):
            mp4 = (images.get(variant) or {}).get("mp4")
            if mp4:
                return mp4
    return None


async def _search_tenor(client: httpx.AsyncClient, query: str) -> Optional[str]:
    response = await client.get(TENOR_SEARCH_URL, params={
        "q": query, "key": TENOR_KEY, "limit": 10, "contentfilter": "medium",
        "media_filter": "minimal", "locale": "es_ES",
    })
    response.raise_for_status()
    # First results are the most relevant, no shuffling
    for result in (response.json().get("results") or [])[:3]:
        media = (result.get("media") or [{}])[0]
        for variant in ("mp4", "nanomp4", "tinymp4"):
            url = (media.get(variant) or {}).get("url")
            if url:
                return url
    return None


async def search_gif(query: str) -> Optional[str]:
    """
    MP4 url of a GIF matching `query`.

    Giphy first (when a key is configured), Tenor as fallback.
    Returns None when neither finds anything.
    """
    query = (query or "").strip()
    if not query:
        return None

    api_key = get_settings().giphy_api_key
    async with httpx.AsyncClient(timeout=8.0) as client:
        if api_key:
            try:
                url = await _search_giphy(client, query, api_key)
                if url:
                    return url
            except httpx.HTTPError as e:
                logger.warning(f"Giphy search failed, trying Tenor: {e}")
        try:
            return await _search_tenor(client, query)
        except httpx.HTTPError as e:
            logger.warning(f"Tenor search failed: {e}")
            return None


def qr_url(content: str, size: int = 400) -> str:
    return f"{QR_API_URL}?size={size}x{size}&data={quote(content, safe='')}"


# =========================================================================
# PDF
# =========================================================================

_BOLD = re.compile(r"\*\*(.+?)\*\*")
_ITALIC = re.compile(r"(?<![\w*])[*_](.+?)[*_](?![\w*])")
_CODE = re.compile(r"`(.+?)`")
_BULLET = re.compile(r"^[-•*]\s+")


def _inline(text: str) -> str:
    """Markdown inline marks to reportlab paragraph markup."""
    text = escape(text)
    text = _BOLD.sub(r"<b>\1</b>", text)
    text = _ITALIC.sub(r"<i>\1</i>", text)
    return _CODE.sub(r"<font face='Courier'>\1</font>", text)


def build_pdf(title: str, markdown: str, now: Optional[datetime] = None) -> bytes:
    """Render simplified Markdown as an A4 PDF document."""
    now = now or datetime.now()
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=A4, title=title, author="WhatsApp Bot")
    styles = getSampleStyleSheet()

    story = [
        Paragraph(f"<b>{escape(title)}</b>", styles["Title"]),
        Paragraph(f"<i>{now.strftime('%Y-%m-%d %H:%M')}</i>", styles["Normal"]),
        Spacer(1, 0.2 * inch),
    ]

    for line in markdown.splitlines():
        stripped = line.strip()
        if stripped.startswith("```"):
            continue
        if not stripped:
            story.append(Spacer(1, 0.1 * inch))
        elif stripped.startswith("### "):
            story.append(Paragraph(_inline(stripped[4:]), styles["h3"]))
        elif stripped.startswith("## "):
            story.append(Paragraph(_inline(stripped[3:]), styles["h2"]))
        elif stripped.startswith("# "):
            story.append(Paragraph(_inline(stripped[2:]), styles["h1"]))
        elif _BULLET.match(stripped):
            story.append(Paragraph(_inline(_BULLET.sub("", stripped)), styles["Normal"], bulletText="•"))
        else:
            story.append(Paragraph(_inline(stripped), styles["Normal"]))

    doc.build(story)
    return buffer.getvalue()


def pdf_filename(topic: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "_", topic.lower()).strip("_")[:40] or "documento"
    return f"{slug}.pdf"
