"""
Tests for the expense tracker: onboarding answers, commands and summaries.
"""

import asyncio
from datetime import datetime

import pytest
from google.auth.exceptions import TransportError

from conftest import SHEET_ID, USER_JID, inbound, ready_gastos_data

from app.gastos.dates import month_tab_name, parse_month_input
from app.gastos.handler import GastosHandler, category_from_reply, split_month_suffix
from app.gastos.ledger import LedgerEntry, LedgerError, SheetsLedger, _to_number, extract_sheet_id, sheet_url
from app.gastos.onboarding import (
    GOAL_LABELS,
    parse_frequency,
    parse_goals,
    parse_money,
    parse_paydays,
    parse_savings_goal,
)
from app.whatsapp_bot.messages import InteractiveReply


def _seed(contacts):
    contacts.seed(USER_JID, name="Ana", onboarding_done=True, active_bot="gastos",
                  gastos_data=ready_gastos_data())


def _run(router, *texts):
    async def scenario():
        for text in texts:
            await router.handle(inbound(text))
    asyncio.run(scenario())


class TestOnboardingParsers:
    """Free-text answers to the onboarding questions."""

    def test_goals(self):
        assert parse_goals("1") == ["control_gastos"]
        assert parse_goals("5") == list(GOAL_LABELS)
        assert parse_goals("quiero ahorrar e invertir") == ["ahorro", "inversion"]
        assert parse_goals("no sé") == ["control_gastos"]

    @pytest.mark.parametrize("text,expected", [
        ("Gano 3 millones al mes", 3_000_000),
        ("Me pagan 1.5M cada quincena", 1_500_000),
        ("Recibo 800k semanal", 800_000),
        ("2.000.000", 2_000_000),
        ("unos 2,5 millones", 2_500_000),
        ("depende", None),
    ])
    def test_money(self, text, expected):
        assert parse_money(text) == expected

    def test_frequency(self):
        assert parse_frequency("cada quincena") == "biweekly"
        assert parse_frequency("800k semanal") == "weekly"
        assert parse_frequency("3 millones") == "monthly"

    @pytest.mark.parametrize("text,expected", [
        ("El día 30", [30]),
        ("Los días 30 y 15", [15, 30]),
        ("cada quincena", [15, 30]),
        ("es irregular", []),
        ("a fin de mes", [30]),
        ("cuando puedan", None),
    ])
    def test_paydays(self, text, expected):
        assert parse_paydays(text) == expected

    def test_savings_goal(self):
        assert parse_savings_goal("100k al mes", 2_000_000) == (True, 100_000)
        assert parse_savings_goal("el 10%", 2_000_000) == (True, 200_000)
        assert parse_savings_goal("sin meta", 2_000_000) == (True, None)
        assert parse_savings_goal("mmm", 2_000_000) == (False, None)


class TestSheetIds:
    """Spreadsheet link handling."""

    def test_from_url_and_bare_id(self):
        assert extract_sheet_id(f"https://docs.google.com/spreadsheets/d/{SHEET_ID}/edit#gid=0") == SHEET_ID
        assert extract_sheet_id(f"  {SHEET_ID}  ") == SHEET_ID
        assert extract_sheet_id("mi hoja") is None
        assert sheet_url(SHEET_ID) == f"https://docs.google.com/spreadsheets/d/{SHEET_ID}"


class TestDates:
    """Month tab names."""

    def test_month_tab_name(self):
        assert month_tab_name(datetime(2026, 2, 3)) == "Febrero 2026"

    @pytest.mark.parametrize("text,expected", [
        ("enero", "Enero 2026"),
        ("feb", "Febrero 2026"),
        ("diciembre 2025", "Diciembre 2025"),
        ("2025-11", "Noviembre 2025"),
        ("2025-13", None),
        ("ayer", None),
    ])
    def test_parse_month_input(self, text, expected):
        assert parse_month_input(text, 2026) == expected

    def test_split_month_suffix(self):
        assert split_month_suffix("Almuerzo 25k [enero]", 2026) == ("Almuerzo 25k", "Enero 2026")
        assert split_month_suffix("Almuerzo 25k", 2026) == ("Almuerzo 25k", None)


class TestCategoryReply:
    """Tests for category_from_reply function."""

    def test_number_and_button(self):
        assert category_from_reply("1", None).name == "Gastos Hormiga"
        assert category_from_reply("6", None).name == "Educación"
        assert category_from_reply("", InteractiveReply(id="cat_2")).name == "Transporte"

    def test_out_of_range(self):
        assert category_from_reply("7", None) is None
        assert category_from_reply("0", None) is None
        assert category_from_reply("", InteractiveReply(id="cat_9")) is None
        assert category_from_reply("hola", None) is None


class TestGastosCommands:
    """ver gastos, borrar, editar, salario, resumen."""

    def test_view_empty_month(self, router, contacts, sender):
        _seed(contacts)
        _run(router, "ver gastos")

        assert sender.last["text"].startswith("No hay gastos registrados en *Febrero 2026*")

    def test_view_then_delete(self, router, contacts, sender, ledger):
        _seed(contacts)
        _run(router, "Almuerzo 25k", "Uber 12k", "ver gastos", "borrar 1")

        assert "*Últimos 2 gastos - Febrero 2026*" in sender.texts()[2]
        assert sender.last["text"].startswith("🗑️ Eliminado: Uber - $12.000 [Transporte]")
        assert [r["description"] for r in ledger.rows] == ["Almuerzo"]

    def test_delete_without_listing(self, router, contacts, sender):
        _seed(contacts)
        _run(router, "borrar 1")

        assert sender.last["text"] == 'Primero escribe "ver gastos" para ver la lista.'

    def test_natural_language_delete_asks_first(self, router, contacts, sender, ledger):
        _seed(contacts)
        _run(router, "Almuerzo 25k", "ver gastos", "borra el gasto 1")
        assert sender.last["text"].startswith("¿Borro el gasto #1: *Almuerzo*")
        assert len(ledger.rows) == 1

        _run(router, "sí")
        assert ledger.rows == []
        assert sender.last["text"] == "🗑️ Eliminado: Almuerzo - $25.000 [Alimentación]"

    def test_natural_language_delete_cancelled(self, router, contacts, sender, ledger):
        _seed(contacts)
        _run(router, "Almuerzo 25k", "ver gastos", "borra el gasto 1", "no")

        assert sender.last["text"] == "👍 Cancelado."
        assert len(ledger.rows) == 1

    def test_edit_amount(self, router, contacts, sender, ledger):
        _seed(contacts)
        _run(router, "Almuerzo 25k", "ver gastos", "editar 1", "monto 30k")

        assert ledger.rows[0]["amount"] == 30_000
        assert sender.last["text"].startswith("✏️ Gasto actualizado (Monto): $25.000 → *$30.000*")

    def test_edit_category(self, router, contacts, ledger):
        _seed(contacts)
        _run(router, "Almuerzo 25k", "ver gastos", "editar 1", "cat 1")

        assert ledger.rows[0]["category"] == "Gastos Hormiga"

    def test_salary_and_goal_config(self, router, contacts, sender):
        _seed(contacts)
        _run(router, "salario 5M", "meta ahorro 1M", "saldo abc")

        config = contacts.rows[USER_JID]["gastos_data"]["config"]
        assert config["salary"] == 5_000_000
        assert config["savings_goal"] == 1_000_000
        assert sender.texts()[0] == "✅ Salario configurado: *$5.000.000*"
        assert sender.last["text"] == "Monto inválido. Ejemplo: *saldo 2.5M*"

    def test_summary(self, router, contacts, sender):
        _seed(contacts)
        _run(router, "Almuerzo 30k", "Cafe 10k", "resumen")

        text = sender.last["text"]
        assert text.startswith("📊 *Resumen Febrero 2026*")
        assert "Alimentación: *$30.000* (75%)" in text
        assert "Gastos Hormiga: *$10.000* (25%)" in text
        assert "💸 *Total gastado:* $40.000 en 2 gastos" in text
        assert "💵 *Disponible:* $2.960.000 de $3.000.000" in text

    def test_actualizar_writes_summary_tab(self, router, contacts, sender, ledger):
        _seed(contacts)
        _run(router, "Almuerzo 30k", "/actualizar")

        assert ledger.summaries == [(SHEET_ID, "Febrero 2026", {"Alimentación": 30_000.0})]
        assert sender.last["text"] == "✅ Hoja *Resumen* actualizada (Febrero 2026, 1 gastos)."

    def test_help(self, router, contacts, sender):
        _seed(contacts)
        _run(router, "ayuda")

        assert sender.last["text"].startswith("💰 *Bot de Gastos*")


class TestFormatSummary:
    """Tests for GastosHandler.format_summary."""

    def test_empty_month(self):
        assert GastosHandler.format_summary("Marzo 2026", [], {}) == "No hay gastos registrados en *Marzo 2026*."

    def test_savings_potential(self):
        entries = [LedgerEntry(row_number=2, fecha="2026-03-01", hora="10:00:00", descripcion="Netflix",
                               monto=40_000, categoria="Gastos Opcionales", subcategoria="")]
        text = GastosHandler.format_summary("Marzo 2026", entries, {})
        assert "Podrías ahorrar hasta *$20.000*" in text


class TestNaturalLanguageConfig:
    """Sentences that set salary, balance or savings goal after a yes/no."""

    def test_salary_sentence_confirmed(self, router, contacts, sender):
        _seed(contacts)
        _run(router, "mi salario es 5M", "sí")

        assert sender.texts()[0] == "💵 ¿Configuro tu salario en *$5.000.000*?\n\n_Responde sí o no_"
        assert sender.last["text"] == "✅ Salario configurado: *$5.000.000*"
        assert contacts.rows[USER_JID]["gastos_data"]["config"]["salary"] == 5_000_000

    def test_balance_sentence(self, router, contacts, sender):
        _seed(contacts)
        _run(router, "tengo 2M en nequi", "si")

        assert sender.texts()[0].startswith("🏦 ¿Actualizo tu saldo a *$2.000.000*?")
        assert contacts.rows[USER_JID]["gastos_data"]["config"]["balance"] == 2_000_000

    def test_monthly_goal_sentence(self, router, contacts, sender):
        _seed(contacts)
        _run(router, "quiero ahorrar 500k al mes", "dale")

        assert sender.texts()[0].startswith("🎯 ¿Configuro tu meta de ahorro en *$500.000* mensual?")
        assert sender.last["text"] == "✅ Meta de ahorro mensual configurado: *$500.000*"
        assert contacts.rows[USER_JID]["gastos_data"]["config"]["savings_goal"] == 500_000

    def test_declined_keeps_config(self, router, contacts, sender):
        _seed(contacts)
        _run(router, "mi salario es 5M", "no")

        assert sender.last["text"] == "👍 Cancelado."
        assert contacts.rows[USER_JID]["gastos_data"]["config"]["salary"] == 3_000_000

    def test_edit_sentence_opens_editor(self, router, contacts, sender, ledger):
        _seed(contacts)
        _run(router, "Almuerzo 25k", "ver gastos", "cambia el gasto 1")
        assert sender.last["text"].startswith("✏️ ¿Edito el gasto #1: *Almuerzo* - $25.000?")

        _run(router, "sí")
        assert sender.last["text"].startswith("*Editando gasto #1:*")

        _run(router, "monto 30k")
        assert ledger.rows[0]["amount"] == 30_000

    def test_config_view(self, router, contacts, sender):
        _seed(contacts)
        _run(router, "config")

        text = sender.last["text"]
        assert text.startswith("⚙️ *Configuración*")
        assert "  Salario:  $3.000.000" in text
        assert "  Saldo:  No configurado" in text
        assert "Aún no has configurado" not in text

    def test_empty_config_shows_hint(self):
        text = GastosHandler.format_config({})
        assert "  Días de pago:  No configurados" in text
        assert "_Aún no has configurado tus valores financieros._" in text

    def test_full_config(self):
        text = GastosHandler.format_config({
            "salary": 4_000_000, "salary_frequency": "biweekly", "payday": [15, 30],
            "balance": 1_200_000, "savings_goal": 400_000,
        })
        assert "  Frecuencia:  quincenal" in text
        assert "  Días de pago:  15, 30" in text
        assert "  Meta de ahorro:  $400.000" in text


class _Unreachable:
    """Sheets client whose every call fails like a dead connection."""

    def __init__(self, error):
        self.error = error

    def spreadsheets(self):
        raise self.error


class TestSheetsLedgerErrors:
    """Every Sheets failure surfaces as LedgerError."""

    def test_missing_credentials_file(self, tmp_path):
        ledger = SheetsLedger(credentials_path=str(tmp_path / "missing.json"))
        with pytest.raises(LedgerError):
            asyncio.run(ledger.check_access(SHEET_ID))

    @pytest.mark.parametrize("error", [
        TimeoutError("timed out"),
        ConnectionResetError("connection reset"),
        TransportError("failed to refresh token"),
    ])
    def test_network_and_auth_errors(self, error):
        ledger = SheetsLedger(credentials_path="service-account.json")
        ledger._service = _Unreachable(error)
        with pytest.raises(LedgerError):
            asyncio.run(ledger.append_expense(SHEET_ID, datetime(2026, 2, 10), "Almuerzo", 25_000, "Alimentación"))


class TestCellNumbers:
    """Tests for _to_number function."""

    @pytest.mark.parametrize("value,expected", [
        (25_000, 25_000.0),
        (25.5, 25.5),
        ("25.5", 25.5),
        ("25.000", 25_000.0),
        ("1.250.000", 1_250_000.0),
        ("$1.250.000,50", 1_250_000.5),
        ("$ 25.000", 25_000.0),
        ("12,5", 12.5),
        ("", 0.0),
        (None, 0.0),
        ("n/a", 0.0),
    ])
    def test_to_number(self, value, expected):
        assert _to_number(value) == expected
