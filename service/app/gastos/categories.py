"""
Expense categories and the keyword classifier.

Lookup order:
1. Learned override (exact normalized description the user categorized before)
2. Keywords, first category in CATEGORIES order wins
3. DEFAULT_CATEGORY
"""

import json
import os
import threading
import unicodedata
from dataclasses import dataclass, field
from typing import Dict, Optional

from app.whatsapp_bot.logging_config import get_logger

logger = get_logger("gastos")


@dataclass(frozen=True)
class Category:
    name: str
    color: str
    savings_rate: float
    reducible: bool
    keywords: tuple = field(default=(), repr=False)


CATEGORIES: list[Category] = [
    Category(
        name="Gastos Hormiga",
        color="#FF6B6B",
        savings_rate=0.70,
        reducible=True,
        keywords=("cafe", "café", "tinto", "snack", "dulce", "empanada", "mecato", "chicle",
                  "gaseosa", "jugo", "galleta", "paquete", "colombina", "bocadillo"),
    ),
    Category(
        name="Gastos Necesarios",
        color="#4ECDC4",
        savings_rate=0.05,
        reducible=False,
        keywords=("arriendo", "servicios", "luz", "agua", "internet", "mercado", "gas", "telefono",
                  "celular", "salud", "medicina", "farmacia", "eps", "aseo"),
    ),
    Category(
        name="Transporte",
        color="#45B7D1",
        savings_rate=0.30,
        reducible=True,
        keywords=("uber", "taxi", "bus", "transmilenio", "gasolina", "parqueadero", "peaje", "sitp",
                  "didi", "indriver", "moto", "bici"),
    ),
    Category(
        name="Alimentación",
        color="#96CEB4",
        savings_rate=0.25,
        reducible=True,
        keywords=("almuerzo", "cena", "desayuno", "restaurante", "domicilio", "rappi", "ifood", "comida",
                  "corrientazo", "hamburguesa", "pizza", "pollo", "sushi"),
    ),
    Category(
        name="Gastos Opcionales",
        color="#FFEAA7",
        savings_rate=0.50,
        reducible=True,
        keywords=("netflix", "spotify", "cine", "bar", "ropa", "suscripcion", "suscripción", "fiesta",
                  "regalo", "videojuego", "amazon", "disney", "hbo", "prime", "youtube", "claude",
                  "chatgpt", "openai"),
    ),
    Category(
        name="Educación",
        color="#DDA0DD",
        savings_rate=0.00,
        reducible=False,
        keywords=("curso", "libro", "udemy", "platzi", "universidad", "semestre", "matricula", "colegio",
                  "papeleria", "cuaderno", "coursera"),
    ),
]

DEFAULT_CATEGORY = Category(name="Sin Categoría", color="#B0B0B0", savings_rate=0.20, reducible=False)

_BY_NAME = {c.name: c for c in CATEGORIES}


def normalize(text: str) -> str:
    """Lower-case and strip diacritics: "Café" -> "cafe"."""
    decomposed = unicodedata.normalize("NFD", (text or "").lower())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch)).strip()


def get_category(name: str) -> Optional[Category]:
    if name == DEFAULT_CATEGORY.name:
        return DEFAULT_CATEGORY
    return _BY_NAME.get(name)


class LearnedCategories:
    """
    Flat JSON file mapping normalized descriptions to category names.

    Written whenever a user picks a category by hand for an uncategorized
    expense; read on every classification.
    """

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()

    def _load(self) -> Dict[str, str]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read learned categories at {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def all(self) -> Dict[str, str]:
        return self._load()

    def lookup(self, description: str) -> Optional[str]:
        return self._load().get(normalize(description))

    def learn(self, description: str, category_name: str) -> None:
        key = normalize(description)
        if not key:
            return
        with self._lock:
            data = self._load()
            data[key] = category_name
            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
        logger.info(f"Learned category: '{key}' -> {category_name}")


def categorize(description: str, category_hint: Optional[str] = None,
               learned: Optional[LearnedCategories] = None) -> Category:
    """
    Best-matching category for an expense.

    Args:
        description: Main expense word ("Almuerzo")
        category_hint: Remaining words, if any
        learned: Override store consulted before keywords

    Returns:
        Category (DEFAULT_CATEGORY when nothing matches)
    """
    if learned is not None and description:
        learned_name = learned.lookup(description)
        found = get_category(learned_name) if learned_name else None
        if found:
            return found

    text = normalize(" ".join(part for part in (description, category_hint) if part))
    for category in CATEGORIES:
        for keyword in category.keywords:
            if normalize(keyword) in text:
                return category

    return DEFAULT_CATEGORY
