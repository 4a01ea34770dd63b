"""
Tests for the news feed parser and briefing helpers.
"""

import asyncio
from datetime import datetime

from conftest import FakeSender, InMemoryContactStore

from app.briefing.news import ARTICLE_MAX_CHARS, NewsItem, NewsService, format_news, html_to_text, parse_rss
from app.briefing.scheduler import BriefingScheduler

RSS = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0"><channel>
  <title>Google News</title>
  <item>
    <title>Gobierno anuncia reforma - El Tiempo</title>
    <link>https://news.google.com/articles/1</link>
    <source url="https://eltiempo.com">El Tiempo</source>
  </item>
  <item>
    <title>Selección gana 2 - 0 en Barranquilla - Semana</title>
    <link>https://news.google.com/articles/2</link>
    <source url="https://semana.com">Semana</source>
  </item>
  <item><title></title></item>
  <item>
    <title>Sin fuente</title>
    <link>https://news.google.com/articles/3</link>
  </item>
</channel></rss>"""


class TestParseRss:
    """Tests for parse_rss function."""

    def test_items_and_sources(self):
        items = parse_rss(RSS, limit=10, topic="colombia")
        assert [i.title for i in items] == [
            "Gobierno anuncia reforma",
            "Selección gana 2 - 0 en Barranquilla",
            "Sin fuente",
        ]
        assert items[0].source == "El Tiempo"
        assert items[0].url == "https://news.google.com/articles/1"
        assert items[0].topic == "colombia"
        assert items[2].source == ""

    def test_limit(self):
        assert len(parse_rss(RSS, limit=1)) == 1

    def test_invalid_xml(self):
        assert parse_rss("<rss><channel>", limit=5) == []


class TestFormatNews:
    """Tests for format_news function."""

    def test_numbered_with_sources(self):
        text = format_news([NewsItem("Uno", "El Tiempo", "u1"), NewsItem("Dos", "", "u2")])
        assert "1. Uno _(El Tiempo)_" in text
        assert "2. Dos\n" in text
        assert text.endswith("_/noticia <num> para más info_")

    def test_empty(self):
        assert format_news([]) is None


class TestNewsService:
    """Per-topic fetch, dedupe and per-chat memory."""

    def test_spreads_topics_and_remembers(self, monkeypatch):
        service = NewsService()

        async def fake_fetch(topic, limit):
            return [NewsItem(f"{topic} {i}", "", f"u{i}", topic) for i in range(limit)] + \
                [NewsItem("Repetida", "", "r", topic)]

        monkeypatch.setattr(service, "fetch_topic", fake_fetch)
        news = asyncio.run(service.get_news_by_topics(["colombia", "deportes", "inventado"], 4, chat_id="c1"))

        assert [n.topic for n in news] == ["colombia", "colombia", "deportes", "deportes"]
        assert service.last_news("c1") == news
        assert service.news_detail("c1", 3) == news[2]
        assert service.news_detail("c1", 5) is None
        assert service.last_news("otro") == []


class TestBriefingScheduler:
    """Scheduled sends: global switch, opt-in and once per hour."""

    def test_tick_sends_once_per_hour(self):
        contacts = InMemoryContactStore()
        contacts.seed("573001112233@s.whatsapp.net", preferences={"briefing_enabled": True, "briefing_times": [7]})
        contacts.seed("573004445566@s.whatsapp.net", preferences={"briefing_enabled": True, "briefing_times": [19]})
        contacts.seed("573007778899@s.whatsapp.net", preferences={"briefing_enabled": False})
        sender = FakeSender()

        class FakeBriefing:
            async def build(self, prefs, name="", chat_id="", now=None):
                return f"briefing {chat_id}"

        scheduler = BriefingScheduler(sender, contacts, FakeBriefing(), enabled=True)
        morning = datetime(2026, 2, 10, 7, 0)

        async def scenario():
            first = await scheduler.tick(morning)
            second = await scheduler.tick(morning.replace(minute=30))
            return first, second

        first, second = asyncio.run(scenario())
        recipients = {m["jid"] for m in sender.sent}
        assert "573001112233@s.whatsapp.net" in recipients
        assert "573004445566@s.whatsapp.net" not in recipients
        assert "573007778899@s.whatsapp.net" not in recipients
        assert second == 0
        assert first == len(sender.sent)

    def test_disabled_sends_nothing(self):
        contacts = InMemoryContactStore()
        contacts.seed("573001112233@s.whatsapp.net", preferences={"briefing_enabled": True})
        sender = FakeSender()
        scheduler = BriefingScheduler(sender, contacts, enabled=False)

        assert asyncio.run(scheduler.tick(datetime(2026, 2, 10, 7, 0))) == 0
        assert sender.sent == []


class TestHtmlToText:
    """Tests for html_to_text function."""

    def test_keeps_article_body(self):
        body = "El Congreso aprobó la reforma en último debate. " * 4
        page = (
            "<html><head><style>p {color: red}</style><script>var x = 1;</script></head>"
            "<body><nav>Inicio | Deportes</nav><header>Portada</header>"
            f"<h1>Reforma aprobada</h1><p>{body}</p><p>Fuente: Senado &amp; C&aacute;mara</p>"
            "<footer>© 2026</footer></body></html>"
        )
        text = html_to_text(page)

        assert text.startswith("Reforma aprobada")
        assert "El Congreso aprobó la reforma" in text
        assert "Senado & Cámara" in text
        for chrome in ("color: red", "var x", "Inicio", "Portada", "© 2026"):
            assert chrome not in text

    def test_too_short_is_none(self):
        assert html_to_text("<html><body><p>Suscríbete</p></body></html>") is None

    def test_capped_length(self):
        text = html_to_text("<p>" + "palabra " * 2000 + "</p>")
        assert len(text) == ARTICLE_MAX_CHARS
