"""
Headlines from Google News RSS, by topic.

The last list sent is kept in memory so users can ask for details with
/noticia N.
"""

import html
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Dict, List, Optional

import httpx

from app.whatsapp_bot.logging_config import get_logger

logger = get_logger("briefing.news")

VALID_TOPICS = ["colombia", "internacional", "tecnologia", "deportes", "economia", "entretenimiento"]

TOPIC_LABELS = {
    "colombia": "Colombia",
    "internacional": "Internacional",
    "tecnologia": "Tecnología",
    "deportes": "Deportes",
    "economia": "Economía",
    "entretenimiento": "Entretenimiento",
}

_BASE = "https://news.google.com/rss"
_LOCALE = {"hl": "es-419", "gl": "CO", "ceid": "CO:es-419"}

TOPIC_FEEDS = {
    "colombia": _BASE,
    "internacional": f"{_BASE}/headlines/section/topic/WORLD",
    "tecnologia": f"{_BASE}/headlines/section/topic/TECHNOLOGY",
    "deportes": f"{_BASE}/headlines/section/topic/SPORTS",
    "economia": f"{_BASE}/headlines/section/topic/BUSINESS",
    "entretenimiento": f"{_BASE}/headlines/section/topic/ENTERTAINMENT",
}

_ARTICLE_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
    "Accept": "text/html",
    "Accept-Language": "es-CO,es;q=0.9",
}
_DROP_BLOCKS = re.compile(r"<(script|style|nav|footer|header|aside)\b[^>]*>.*?</\1>", re.IGNORECASE | re.DOTALL)
_BREAK_TAGS = re.compile(r"</?(?:p|br|div|h[1-6]|li|tr)\b[^>]*>", re.IGNORECASE)
_TAGS = re.compile(r"<[^>]+>")
ARTICLE_MAX_CHARS = 4000
ARTICLE_MIN_CHARS = 100


@dataclass
class NewsItem:
    title: str
    source: str
    url: str
    topic: str = ""


def parse_rss(xml_text: str, limit: int, topic: str = "") -> List[NewsItem]:
    """Parse an RSS document into NewsItems. Titles drop the trailing " - Source"."""
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        logger.warning(f"Invalid RSS for topic {topic}: {e}")
        return []

    items = []
    for item in root.iter("item"):
        raw_title = (item.findtext("title") or "").strip()
        if not raw_title:
            continue
        source = (item.findtext("source") or "").strip()
        title = raw_title
        if " - " in raw_title:
            title = raw_title.rsplit(" - ", 1)[0]
        items.append(NewsItem(
            title=title[:120],
            source=source,
            url=(item.findtext("link") or "").strip(),
            topic=topic,
        ))
        if len(items) >= limit:
            break
    return items


def html_to_text(page: str) -> Optional[str]:
    """
    Readable text of an HTML page, or None when too little is left.

    Scripts, styles and page chrome (nav, header, footer, aside) are dropped;
    block tags become line breaks. The result is capped at ARTICLE_MAX_CHARS.
    """
    text = _DROP_BLOCKS.sub("", page)
    text = _BREAK_TAGS.sub("\n", text)
    text = html.unescape(_TAGS.sub(" ", text))
    text = re.sub(r"[ \t\xa0]+", " ", text)
    text = re.sub(r"\s*\n\s*(\n\s*)+", "\n\n", text).strip()
    text = text[:ARTICLE_MAX_CHARS]
    return text if len(text) > ARTICLE_MIN_CHARS else None


class NewsService:
    def __init__(self, timeout: float = 10.0):
        self.timeout = timeout
        self._last_news: Dict[str, List[NewsItem]] = {}

    async def fetch_topic(self, topic: str, limit: int) -> List[NewsItem]:
        url = TOPIC_FEEDS.get(topic, _BASE)
        async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
            response = await client.get(url, params=_LOCALE)
            response.raise_for_status()
        return parse_rss(response.text, limit, topic)

    async def get_news_by_topics(self, topics: List[str], count: int = 5, chat_id: str = "") -> List[NewsItem]:
        """
        Up to `count` headlines spread across topics, without duplicates.

        The result is remembered per chat for /noticia N.
        """
        topics = [t for t in topics if t in TOPIC_FEEDS] or ["colombia"]
        per_topic = max(1, -(-count // len(topics)))

        seen = set()
        news: List[NewsItem] = []
        for topic in topics:
            try:
                items = await self.fetch_topic(topic, per_topic + 2)
            except httpx.HTTPError as e:
                logger.error(f"Google News RSS error for {topic}: {e}")
                continue
            added = 0
            for item in items:
                if item.title in seen or added >= per_topic:
                    continue
                seen.add(item.title)
                news.append(item)
                added += 1

        news = news[:count]
        if chat_id:
            self._last_news[chat_id] = news
        return news

    async def fetch_article(self, url: str) -> Optional[str]:
        """Article text behind a headline link, or None if it cannot be read."""
        if not url:
            return None
        try:
            async with httpx.AsyncClient(timeout=12.0, follow_redirects=True, headers=_ARTICLE_HEADERS) as client:
                response = await client.get(url)
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Article fetch failed for {url}: {e}")
            return None
        return html_to_text(response.text)

    def last_news(self, chat_id: str) -> List[NewsItem]:
        return self._last_news.get(chat_id, [])

    def news_detail(self, chat_id: str, number: int) -> Optional[NewsItem]:
        news = self.last_news(chat_id)
        if 1 <= number <= len(news):
            return news[number - 1]
        return None


def format_news(news: List[NewsItem]) -> Optional[str]:
    if not news:
        return None
    lines = []
    for i, item in enumerate(news, start=1):
        source = f" _({item.source})_" if item.source else ""
        lines.append(f"{i}. {item.title}{source}")
    return "📰 *Noticias destacadas*\n" + "\n".join(lines) + "\n\n_/noticia <num> para más info_"
