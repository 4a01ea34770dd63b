"""
Tests for the expense category classifier and learned overrides.
"""

import json

from app.gastos.categories import (
    CATEGORIES,
    DEFAULT_CATEGORY,
    LearnedCategories,
    categorize,
    get_category,
    normalize,
)


class TestCategoryTable:
    """The fixed category list."""

    def test_declared_order(self):
        assert [c.name for c in CATEGORIES] == [
            "Gastos Hormiga",
            "Gastos Necesarios",
            "Transporte",
            "Alimentación",
            "Gastos Opcionales",
            "Educación",
        ]

    def test_default_category(self):
        assert DEFAULT_CATEGORY.name == "Sin Categoría"
        assert DEFAULT_CATEGORY.color == "#B0B0B0"
        assert DEFAULT_CATEGORY.savings_rate == 0.20

    def test_get_category(self):
        assert get_category("Transporte").color == "#45B7D1"
        assert get_category("Sin Categoría") is DEFAULT_CATEGORY
        assert get_category("Mascotas") is None


class TestNormalize:
    """Tests for normalize function."""

    def test_strips_accents_and_case(self):
        assert normalize("Café") == "cafe"
        assert normalize("  EDUCACIÓN ") == "educacion"

    def test_empty(self):
        assert normalize("") == ""
        assert normalize(None) == ""


class TestCategorize:
    """Tests for categorize function."""

    def test_keyword_match(self):
        assert categorize("Almuerzo").name == "Alimentación"
        assert categorize("Uber").name == "Transporte"
        assert categorize("Netflix").name == "Gastos Opcionales"

    def test_accent_insensitive(self):
        assert categorize("Café").name == "Gastos Hormiga"
        assert categorize("Matrícula").name == "Educación"

    def test_hint_is_considered(self):
        assert categorize("Pago", "arriendo apartamento").name == "Gastos Necesarios"

    def test_first_category_in_order_wins(self):
        """'cafe' (Hormiga) beats 'almuerzo' (Alimentación)."""
        assert categorize("Almuerzo", "y cafe").name == "Gastos Hormiga"

    def test_no_match_is_default(self):
        assert categorize("Ferreteria") is DEFAULT_CATEGORY


class TestLearnedCategories:
    """Tests for the learned-category override file."""

    def test_missing_file_is_empty(self, tmp_path):
        learned = LearnedCategories(str(tmp_path / "nope.json"))
        assert learned.all() == {}
        assert learned.lookup("Ferreteria") is None

    def test_learn_persists_normalized_key(self, tmp_path):
        path = tmp_path / "data" / "learned.json"
        learned = LearnedCategories(str(path))
        learned.learn("Ferretería", "Gastos Necesarios")

        assert json.loads(path.read_text(encoding="utf-8")) == {"ferreteria": "Gastos Necesarios"}
        assert LearnedCategories(str(path)).lookup("FERRETERIA") == "Gastos Necesarios"

    def test_learned_overrides_keywords(self, tmp_path):
        learned = LearnedCategories(str(tmp_path / "learned.json"))
        learned.learn("Uber", "Gastos Opcionales")

        assert categorize("Uber", None, learned).name == "Gastos Opcionales"
        assert categorize("Taxi", None, learned).name == "Transporte"

    def test_unknown_learned_name_is_ignored(self, tmp_path):
        path = tmp_path / "learned.json"
        path.write_text(json.dumps({"uber": "Mascotas"}), encoding="utf-8")

        assert categorize("Uber", None, LearnedCategories(str(path))).name == "Transporte"

    def test_corrupt_file_is_empty(self, tmp_path):
        path = tmp_path / "learned.json"
        path.write_text("{not json", encoding="utf-8")

        assert LearnedCategories(str(path)).all() == {}
