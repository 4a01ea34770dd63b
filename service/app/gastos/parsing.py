"""
Expense text parsing: "Almuerzo 25k", "Uber 12.500 trabajo #oficina".
"""

import re
from dataclasses import dataclass
from typing import Optional

# Suffix amounts first ("25k", "1.5m"), then plain numbers with thousands
# separators ("15.000", "$8,500").
AMOUNT_REGEX = re.compile(
    r"\$?\d+(?:[.,]\d+)?[km]\b|\$?\d+(?:[.,]\d{3})*",
    re.IGNORECASE,
)
TAG_REGEX = re.compile(r"#(\w+)")

_SUFFIX_AMOUNT = re.compile(r"^(\d+(?:[.,]\d+)?)([km])$")
_MULTIPLIERS = {"k": 1_000, "m": 1_000_000}


@dataclass(frozen=True)
class ParsedExpense:
    amount: int
    description: str
    category_hint: Optional[str] = None
    tag: Optional[str] = None
    raw: str = ""


def parse_amount(raw: Optional[str]) -> Optional[int]:
    """
    Parse a Colombian-style amount.

    "15k" -> 15000, "1.5m" -> 1500000, "15.000" / "15,000" -> 15000.
    Returns None for unparseable or non-positive values.
    """
    if not raw or not isinstance(raw, str):
        return None
    value = raw.strip().lower()
    if value.startswith("$"):
        value = value[1:].strip()

    suffix = _SUFFIX_AMOUNT.match(value)
    if suffix:
        # Comma is a decimal separator only in this branch
        number = float(suffix.group(1).replace(",", "."))
        amount = round(number * _MULTIPLIERS[suffix.group(2)])
        return amount if amount > 0 else None

    digits = value.replace(".", "").replace(",", "")
    if not digits.isdigit():
        return None
    amount = int(digits)
    return amount if amount > 0 else None


def parse_expense(text: Optional[str]) -> Optional[ParsedExpense]:
    """
    Split free text into amount, description, category hint and #tag.

    The first amount-looking token that parses is the amount; any other
    numbers stay in the text. The first remaining word is the description,
    the rest is the category hint.
    """
    if not text or not isinstance(text, str):
        return None
    trimmed = text.strip()
    if not trimmed:
        return None

    amount = None
    amount_token = None
    for match in AMOUNT_REGEX.finditer(trimmed):
        parsed = parse_amount(match.group(0))
        if parsed is not None:
            amount = parsed
            amount_token = match.group(0)
            break
    if amount is None:
        return None

    tag_match = TAG_REGEX.search(trimmed)
    tag = tag_match.group(1).lower() if tag_match else None

    remaining = trimmed.replace(amount_token, " ", 1)
    remaining = TAG_REGEX.sub(" ", remaining)
    parts = remaining.split()
    if not parts:
        return None

    description = parts[0][:1].upper() + parts[0][1:].lower()
    hint = " ".join(parts[1:]).lower() if len(parts) > 1 else None

    return ParsedExpense(
        amount=amount,
        description=description,
        category_hint=hint,
        tag=tag,
        raw=trimmed,
    )


def format_cop(amount: float) -> str:
    """25000 -> "$25.000" """
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(round(amount)):,}".replace(",", ".")
