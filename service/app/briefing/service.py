"""
Daily briefing composer: greeting, weather, prices, news.
"""

from datetime import datetime
from typing import Optional

from app.gastos.dates import MONTH_NAMES, DAY_NAMES, local_now
from app.whatsapp_bot.logging_config import get_logger
from .news import NewsService, format_news
from .prices import PriceService
from .weather import get_weather, format_weather

logger = get_logger("briefing")

BRIEFING_FOOTER = "\n".join([
    "─" * 25,
    "⚙️ _Personaliza tu briefing:_",
    "_/prefs on|off_ → activar/desactivar automático",
    "_/prefs horarios 7 13 19_ → cambiar horarios",
    "_/prefs monedas BTC ETH SOL_ → criptos a mostrar",
    "_/prefs divisas EUR GBP_ → divisas fiat extra",
    "_/prefs noticias colombia tecnologia_ → temas",
    "_/prefs cantidad 5_ → número de noticias",
    "_/noticias_ • _/precios_ • _/briefing_",
])


def greeting(hour: int, name: str = "") -> str:
    suffix = f", {name}" if name else ""
    if hour < 12:
        return f"☀️ *Buenos días{suffix}!*"
    if hour < 18:
        return f"🌤️ *Buenas tardes{suffix}!*"
    return f"🌙 *Buenas noches{suffix}!*"


def format_long_date(dt: datetime) -> str:
    """"jueves 5 de febrero 2026" """
    return f"{DAY_NAMES[dt.weekday()].lower()} {dt.day} de {MONTH_NAMES[dt.month - 1].lower()} {dt.year}"


class BriefingService:
    def __init__(self, prices: Optional[PriceService] = None, news: Optional[NewsService] = None):
        self.prices = prices or PriceService()
        self.news = news or NewsService()

    async def build(self, prefs: dict, name: str = "", chat_id: str = "",
                    now: Optional[datetime] = None) -> str:
        """
        Full briefing text for a contact.

        Args:
            prefs: Contact preferences (merged over defaults)
            name: Display name for the greeting
            chat_id: Used to remember the headlines for /noticia N
            now: Local time; defaults to the configured timezone
        """
        now = now or local_now()
        sections = [f"{greeting(now.hour, name)} - _{format_long_date(now)}_", ""]

        if prefs.get("show_weather", True):
            weather_text = format_weather(await get_weather())
            if weather_text:
                sections += [weather_text, ""]

        prices_text = await self.prices.format_prices(prefs)
        if prices_text.startswith("💰"):
            sections += [prices_text, ""]

        news = await self.news.get_news_by_topics(
            prefs.get("news_topics") or ["colombia", "internacional"],
            int(prefs.get("news_count") or 5),
            chat_id=chat_id,
        )
        news_text = format_news(news)
        if news_text:
            sections += [news_text, ""]

        sections.append(BRIEFING_FOOTER)
        return "\n".join(sections)
