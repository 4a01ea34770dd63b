"""
Expense tracker sub-bot.

Parses "Almuerzo 25k", classifies it and writes it to the tenant's Google
Sheets ledger.
"""

from .parsing import parse_amount, parse_expense, format_cop, ParsedExpense
from .categories import categorize, Category, CATEGORIES, DEFAULT_CATEGORY, LearnedCategories

__all__ = [
    "parse_amount",
    "parse_expense",
    "format_cop",
    "ParsedExpense",
    "categorize",
    "Category",
    "CATEGORIES",
    "DEFAULT_CATEGORY",
    "LearnedCategories",
]
