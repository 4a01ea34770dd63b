"""
Date helpers for the ledger: month tab names, month parsing, local time.
"""

import re
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

from app.config import get_settings

MONTH_NAMES = [
    "Enero", "Febrero", "Marzo", "Abril", "Mayo", "Junio",
    "Julio", "Agosto", "Septiembre", "Octubre", "Noviembre", "Diciembre",
]

DAY_NAMES = ["Lunes", "Martes", "Miércoles", "Jueves", "Viernes", "Sábado", "Domingo"]

MONTH_ALIASES = {
    "enero": 1, "ene": 1, "january": 1, "jan": 1,
    "febrero": 2, "feb": 2, "february": 2,
    "marzo": 3, "mar": 3, "march": 3,
    "abril": 4, "abr": 4, "april": 4, "apr": 4,
    "mayo": 5, "may": 5,
    "junio": 6, "jun": 6, "june": 6,
    "julio": 7, "jul": 7, "july": 7,
    "agosto": 8, "ago": 8, "august": 8, "aug": 8,
    "septiembre": 9, "sep": 9, "sept": 9, "september": 9,
    "octubre": 10, "oct": 10, "october": 10,
    "noviembre": 11, "nov": 11, "november": 11,
    "diciembre": 12, "dic": 12, "december": 12, "dec": 12,
}

_ISO_MONTH = re.compile(r"^(\d{4})-(\d{1,2})$")
_NAMED_MONTH = re.compile(r"^([a-záéíóúüñ]+)\s*(\d{4})?$")


def local_now(tz: Optional[str] = None) -> datetime:
    return datetime.now(ZoneInfo(tz or get_settings().timezone))


def month_tab_name(dt: datetime) -> str:
    """datetime(2026, 2, 3) -> "Febrero 2026" """
    return f"{MONTH_NAMES[dt.month - 1]} {dt.year}"


def format_date(dt: datetime) -> str:
    return dt.strftime("%Y-%m-%d")


def format_time(dt: datetime) -> str:
    return dt.strftime("%H:%M:%S")


def day_of_week(dt: datetime) -> str:
    return DAY_NAMES[dt.weekday()]


def parse_month_input(text: Optional[str], current_year: Optional[int] = None) -> Optional[str]:
    """
    Month tab name from user input.

    Supports "enero", "feb", "enero 2025" and "2026-01". Returns None
    when the input is not a month.
    """
    if not text:
        return None
    value = text.strip().lower()

    iso = _ISO_MONTH.match(value)
    if iso:
        year, month = int(iso.group(1)), int(iso.group(2))
        if 1 <= month <= 12:
            return f"{MONTH_NAMES[month - 1]} {year}"
        return None

    named = _NAMED_MONTH.match(value)
    if named:
        month = MONTH_ALIASES.get(named.group(1))
        if month:
            year = int(named.group(2)) if named.group(2) else (current_year or local_now().year)
            return f"{MONTH_NAMES[month - 1]} {year}"

    return None
