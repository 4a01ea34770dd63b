"""
/prefs command: view and edit briefing preferences.

    /prefs                         show current preferences
    /prefs on | off                automatic briefing
    /prefs horarios 7 19           hours (must be scheduled hours)
    /prefs monedas BTC ETH         cryptos
    /prefs divisas EUR GBP | no    extra fiat currencies
    /prefs noticias colombia ...   news topics
    /prefs cantidad 5              headlines (1-10)
    /prefs clima on|off
    /prefs dolar on|off
"""

import re

from app.briefing.news import TOPIC_LABELS, VALID_TOPICS
from app.briefing.prices import COIN_ALIASES
from app.briefing.scheduler import SCHEDULED_TIMES
from app.briefing.service import BRIEFING_FOOTER
from .contacts import ContactStore

VALID_FX = ["EUR", "GBP", "JPY", "MXN", "BRL", "ARS", "PEN", "CLP", "VES", "CNY", "CAD", "CHF", "AUD"]

_SPLIT = re.compile(r"[\s,]+")
_TRUTHY = ("on", "si", "sí", "activar", "true")


def _hours_text(hours) -> str:
    return ", ".join(f"{h}:00" for h in hours) if hours else "ninguno"


def format_prefs_text(prefs: dict) -> str:
    cryptos = ", ".join(prefs.get("cryptos") or []) or "ninguna"
    divisas = ", ".join(prefs.get("fx_currencies") or []) or "ninguna"
    topics = ", ".join(TOPIC_LABELS.get(t, t) for t in prefs.get("news_topics") or []) or "ninguno"

    return "\n".join([
        "⚙️ *Mis preferencias del briefing*",
        "",
        f"Briefing automático: {'*activo* ✅' if prefs.get('briefing_enabled') else '*desactivado* ❌'}",
        f"Horarios: *{_hours_text(prefs.get('briefing_times'))}*",
        f"Clima: {'✅' if prefs.get('show_weather', True) else '❌'}",
        f"Dólar TRM: {'✅' if prefs.get('show_trm', True) else '❌'}",
        f"Criptomonedas: *{cryptos}*",
        f"Divisas extra: *{divisas}*",
        f"Temas de noticias: *{topics}*",
        f"Cantidad de noticias: *{prefs.get('news_count') or 5}*",
        "",
        BRIEFING_FOOTER,
    ])


def _values(args: str) -> list[str]:
    parts = _SPLIT.split(args.strip())
    return [p for p in parts[1:] if p]


async def handle_prefs_command(contacts: ContactStore, jid: str, args: str) -> str:
    """
    Apply a /prefs subcommand.

    Args:
        contacts: Contact repository
        jid: Chat id
        args: Text after "/prefs"

    Returns:
        Reply text (current prefs for unknown subcommands)
    """
    args_lower = args.strip().lower()
    prefs = await contacts.get_prefs(jid)
    sub = args_lower.split(" ", 1)[0] if args_lower else ""

    if sub == "on":
        prefs = await contacts.set_prefs(jid, {"briefing_enabled": True})
        return (f"✅ Briefing automático *activado*\nRecibirás actualizaciones a las "
                f"*{_hours_text(prefs.get('briefing_times'))}*\n\n_/prefs off para desactivar_")

    if sub == "off":
        await contacts.set_prefs(jid, {"briefing_enabled": False})
        return "❌ Briefing automático *desactivado*\n\n_/prefs on para activar_"

    if sub == "horarios":
        hours = []
        for value in _values(args_lower):
            if value.isdigit() and int(value) in SCHEDULED_TIMES and int(value) not in hours:
                hours.append(int(value))
        if not hours:
            return ("Horarios disponibles: *7* (7:00 AM), *13* (1:00 PM), *19* (7:00 PM)\n"
                    "Ejemplo: _/prefs horarios 7 19_")
        await contacts.set_prefs(jid, {"briefing_times": sorted(hours)})
        return f"⏰ Horarios actualizados: *{_hours_text(sorted(hours))}*"

    if sub == "monedas":
        cryptos = [v.upper() for v in _values(args_lower) if v in COIN_ALIASES]
        if not cryptos:
            return ("Disponibles: BTC ETH SOL BNB XRP ADA DOGE MATIC AVAX LINK ATOM LTC NEAR TON SHIB\n"
                    "Ejemplo: _/prefs monedas BTC ETH_")
        await contacts.set_prefs(jid, {"cryptos": cryptos})
        return f"₿ Criptomonedas: *{', '.join(cryptos)}*"

    if sub == "divisas":
        values = [v.upper() for v in _values(args_lower)]
        if any(v in ("NINGUNA", "NO", "NADA") for v in values):
            await contacts.set_prefs(jid, {"fx_currencies": []})
            return "💱 Divisas extra desactivadas."
        fx = [v for v in values if v in VALID_FX]
        if not fx:
            return f"Disponibles: {', '.join(VALID_FX)}\nEjemplo: _/prefs divisas EUR GBP_"
        await contacts.set_prefs(jid, {"fx_currencies": fx})
        return f"💱 Divisas extra: *{', '.join(fx)}*"

    if sub == "noticias":
        topics = [v for v in _values(args_lower) if v in VALID_TOPICS]
        if not topics:
            return (f"Temas disponibles: *{', '.join(VALID_TOPICS)}*\n"
                    "Ejemplo: _/prefs noticias colombia tecnologia_")
        await contacts.set_prefs(jid, {"news_topics": topics})
        return f"📰 Temas de noticias: *{', '.join(topics)}*"

    if sub == "cantidad":
        values = _values(args_lower)
        if not values or not values[0].isdigit() or not 1 <= int(values[0]) <= 10:
            return "Cantidad válida: 1 a 10\nEjemplo: _/prefs cantidad 5_"
        count = int(values[0])
        await contacts.set_prefs(jid, {"news_count": count})
        return f"📰 Cantidad de noticias: *{count}*"

    if sub == "clima":
        enabled = any(v in _TRUTHY for v in _values(args_lower))
        await contacts.set_prefs(jid, {"show_weather": enabled})
        return f"🌤️ Clima en el briefing: {'*activado*' if enabled else '*desactivado*'}"

    if sub in ("dolar", "dólar", "trm"):
        enabled = any(v in _TRUTHY for v in _values(args_lower))
        await contacts.set_prefs(jid, {"show_trm": enabled})
        return f"💵 Dólar TRM en el briefing: {'*activado*' if enabled else '*desactivado*'}"

    return format_prefs_text(prefs)
