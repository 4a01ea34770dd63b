"""
Google Sheets expense ledger.

One spreadsheet per tenant (the user shares it with the service account
during onboarding), one tab per month ("Febrero 2026"), one row per expense.
The googleapiclient calls are blocking, so every public method runs them
in a worker thread.
"""

import asyncio
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from google.auth.exceptions import GoogleAuthError
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from app.config import get_settings
from app.whatsapp_bot.logging_config import get_logger
from .dates import day_of_week, format_date, format_time, month_tab_name

logger = get_logger("gastos.ledger")

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]

HEADERS = ["Fecha", "Hora", "Descripción", "Monto", "Categoría", "Subcategoría", "Día Semana"]
SUMMARY_TAB = "Resumen"

_SHEET_ID_REGEX = re.compile(r"/spreadsheets/d/([a-zA-Z0-9_-]{20,})")
_BARE_ID_REGEX = re.compile(r"^[a-zA-Z0-9_-]{20,}$")
_THOUSANDS_REGEX = re.compile(r"^-?\d{1,3}(?:\.\d{3})+$")


class LedgerError(Exception):
    """Spreadsheet could not be read or written."""
    pass


@dataclass
class LedgerEntry:
    row_number: int  # 1-indexed sheet row
    fecha: str
    hora: str
    descripcion: str
    monto: float
    categoria: str
    subcategoria: str = ""


def extract_sheet_id(text: str) -> Optional[str]:
    """Spreadsheet id from a share URL or a bare id."""
    if not text:
        return None
    match = _SHEET_ID_REGEX.search(text)
    if match:
        return match.group(1)
    candidate = text.strip()
    return candidate if _BARE_ID_REGEX.match(candidate) else None


def sheet_url(sheet_id: str) -> str:
    return f"https://docs.google.com/spreadsheets/d/{sheet_id}"


def _to_number(value) -> float:
    """
    Cell value as a number.

    Formatted strings use dots for thousands ("25.000", "$1.250.000,50");
    a dot that is not followed by groups of three digits is a decimal point ("25.5").
    """
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value or "").replace("$", "").replace(" ", "").strip()
    if "," in text:
        text = text.replace(".", "").replace(",", ".")
    elif _THOUSANDS_REGEX.match(text):
        text = text.replace(".", "")
    try:
        return float(text)
    except ValueError:
        return 0.0


class SheetsLedger:
    """Expense rows in Google Sheets, authenticated with a service account."""

    def __init__(self, credentials_path: Optional[str] = None):
        self.credentials_path = credentials_path or get_settings().google_service_account_file
        self._service = None

    @property
    def service(self):
        if self._service is None:
            credentials = service_account.Credentials.from_service_account_file(
                self.credentials_path, scopes=SCOPES
            )
            self._service = build("sheets", "v4", credentials=credentials, cache_discovery=False)
        return self._service

    @property
    def service_account_email(self) -> str:
        """Address users must share their spreadsheet with."""
        try:
            credentials = service_account.Credentials.from_service_account_file(self.credentials_path)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read service account file: {e}")
            return ""
        return credentials.service_account_email

    # =========================================================================
    # Blocking helpers (run in a thread)
    # =========================================================================

    def _tabs(self, sheet_id: str) -> Dict[str, int]:
        meta = self.service.spreadsheets().get(
            spreadsheetId=sheet_id, fields="properties.title,sheets.properties"
        ).execute()
        return {
            s["properties"]["title"]: s["properties"]["sheetId"]
            for s in meta.get("sheets", [])
        }

    def _ensure_tab(self, sheet_id: str, title: str, headers: List[str]) -> int:
        tabs = self._tabs(sheet_id)
        if title in tabs:
            return tabs[title]

        response = self.service.spreadsheets().batchUpdate(
            spreadsheetId=sheet_id,
            body={"requests": [{"addSheet": {"properties": {"title": title}}}]},
        ).execute()
        tab_id = response["replies"][0]["addSheet"]["properties"]["sheetId"]
        self.service.spreadsheets().values().update(
            spreadsheetId=sheet_id,
            range=f"'{title}'!A1",
            valueInputOption="RAW",
            body={"values": [headers]},
        ).execute()
        logger.info(f"Created tab '{title}' in {sheet_id}")
        return tab_id

    def _read_rows(self, sheet_id: str, tab: str) -> List[LedgerEntry]:
        try:
            result = self.service.spreadsheets().values().get(
                spreadsheetId=sheet_id, range=f"'{tab}'!A2:G",
                valueRenderOption="UNFORMATTED_VALUE",
            ).execute()
        except HttpError as e:
            # Missing tab means no expenses that month
            if e.resp.status == 400:
                return []
            raise

        entries = []
        for offset, row in enumerate(result.get("values", [])):
            row = list(row) + [""] * (len(HEADERS) - len(row))
            entries.append(LedgerEntry(
                row_number=offset + 2,
                fecha=row[0],
                hora=row[1],
                descripcion=row[2],
                monto=_to_number(row[3]),
                categoria=row[4],
                subcategoria=row[5],
            ))
        return entries

    def _append(self, sheet_id: str, dt: datetime, description: str, amount: int,
                category: str, subcategory: str, tab: Optional[str]) -> None:
        tab = tab or month_tab_name(dt)
        self._ensure_tab(sheet_id, tab, HEADERS)
        self.service.spreadsheets().values().append(
            spreadsheetId=sheet_id,
            range=f"'{tab}'!A:G",
            valueInputOption="USER_ENTERED",
            insertDataOption="INSERT_ROWS",
            body={"values": [[
                format_date(dt), format_time(dt), description, amount,
                category, subcategory or "", day_of_week(dt),
            ]]},
        ).execute()

    def _delete(self, sheet_id: str, tab: str, row_number: int) -> None:
        tabs = self._tabs(sheet_id)
        if tab not in tabs:
            raise LedgerError(f"No existe la pestaña {tab}")
        self.service.spreadsheets().batchUpdate(
            spreadsheetId=sheet_id,
            body={"requests": [{"deleteDimension": {"range": {
                "sheetId": tabs[tab],
                "dimension": "ROWS",
                "startIndex": row_number - 1,
                "endIndex": row_number,
            }}}]},
        ).execute()

    def _update(self, sheet_id: str, tab: str, row_number: int, fields: Dict[str, object]) -> None:
        columns = {"descripcion": "C", "monto": "D", "categoria": "E"}
        data = [
            {"range": f"'{tab}'!{columns[name]}{row_number}", "values": [[value]]}
            for name, value in fields.items() if name in columns
        ]
        if not data:
            return
        self.service.spreadsheets().values().batchUpdate(
            spreadsheetId=sheet_id,
            body={"valueInputOption": "USER_ENTERED", "data": data},
        ).execute()

    def _write_summary(self, sheet_id: str, tab: str, rows: List[List[object]]) -> None:
        self._ensure_tab(sheet_id, SUMMARY_TAB, ["Mes", "Categoría", "Total"])
        self.service.spreadsheets().values().clear(
            spreadsheetId=sheet_id, range=f"'{SUMMARY_TAB}'!A2:C"
        ).execute()
        self.service.spreadsheets().values().update(
            spreadsheetId=sheet_id,
            range=f"'{SUMMARY_TAB}'!A2",
            valueInputOption="USER_ENTERED",
            body={"values": [[tab] + row for row in rows]},
        ).execute()

    async def _run(self, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except HttpError as e:
            logger.error(f"Sheets API error in {func.__name__}: {e}")
            raise LedgerError(str(e)) from e
        except (GoogleAuthError, OSError) as e:
            # Credentials, network and timeouts
            logger.error(f"Sheets unreachable in {func.__name__}: {e}")
            raise LedgerError(str(e)) from e

    # =========================================================================
    # Public API
    # =========================================================================

    async def check_access(self, sheet_id: str) -> str:
        """Title of the spreadsheet; raises LedgerError if we cannot open it."""
        def _title():
            meta = self.service.spreadsheets().get(
                spreadsheetId=sheet_id, fields="properties.title"
            ).execute()
            return meta["properties"]["title"]
        return await self._run(_title)

    async def append_expense(self, sheet_id: str, dt: datetime, description: str, amount: int,
                             category: str, subcategory: str = "", tab: Optional[str] = None) -> None:
        """Append a row to `tab` (defaults to the month tab of `dt`)."""
        await self._run(self._append, sheet_id, dt, description, amount, category, subcategory, tab)
        logger.info(f"Row written to {sheet_id}: {description} - {amount}")

    async def list_expenses(self, sheet_id: str, tab: str) -> List[LedgerEntry]:
        return await self._run(self._read_rows, sheet_id, tab)

    async def recent_expenses(self, sheet_id: str, tab: str, limit: int = 10) -> List[LedgerEntry]:
        """Last `limit` rows of a month tab, most recent first."""
        rows = await self.list_expenses(sheet_id, tab)
        return list(reversed(rows[-limit:]))

    async def delete_expense(self, sheet_id: str, tab: str, row_number: int) -> None:
        await self._run(self._delete, sheet_id, tab, row_number)
        logger.info(f"Row {row_number} deleted from {tab}")

    async def update_expense(self, sheet_id: str, tab: str, row_number: int, fields: Dict[str, object]) -> None:
        await self._run(self._update, sheet_id, tab, row_number, fields)
        logger.info(f"Row {row_number} updated in {tab}: {list(fields)}")

    async def write_summary(self, sheet_id: str, tab: str, totals: Dict[str, float]) -> None:
        rows = [[name, total] for name, total in sorted(totals.items(), key=lambda kv: -kv[1])]
        await self._run(self._write_summary, sheet_id, tab, rows)
