"""Test doubles and file builders shared by the LedgerSync tests."""

from io import BytesIO

import pandas as pd

from ledgersync.exceptions import StoreReadError
from ledgersync.store.base import LEDGER_RANGE


def make_xlsx(rows: list[dict], columns: list[str] | None = None) -> bytes:
    """Build an XLSX workbook with one sheet from row dicts."""
    buffer = BytesIO()
    pd.DataFrame(rows, columns=columns).to_excel(buffer, index=False, engine="openpyxl")
    return buffer.getvalue()


def stringify_cell(cell):
    """Render a cell the way a spreadsheet hands it back."""
    if cell is None:
        return ""
    return str(cell)


class FakeRateProvider:
    """Rate provider returning fixed rates and recording every request."""

    def __init__(self, rates: dict[str, float] | None = None, default: float | None = None, error=None):
        self.rates = rates or {}
        self.default = default
        self.error = error
        self.calls: list[tuple[str, str, str]] = []

    async def get_rate(self, on: str, base: str, symbol: str) -> float:
        self.calls.append((on, base, symbol))
        if self.error is not None:
            raise self.error
        return self.rates.get(on, self.default)


class FakeStore:
    """In-memory ledger store; like a spreadsheet it hands every cell back as a string."""

    def __init__(self, destinations: list[str] | None = None):
        self.tabs: dict[str, list[list]] = {name: [] for name in destinations or []}
        self.read_error: Exception | None = None
        self.append_error: Exception | None = None
        self.appended: list[tuple[str, list[list]]] = []

    async def read(self, destination: str, range_spec: str = LEDGER_RANGE) -> list[list]:
        if self.read_error is not None:
            raise self.read_error
        if destination not in self.tabs:
            raise StoreReadError(f'Sheet tab "{destination}" does not exist. Please create the sheet tab first.')
        return [list(row) for row in self.tabs[destination]]

    async def append(self, destination: str, rows: list[list]) -> None:
        if self.append_error is not None:
            raise self.append_error
        self.appended.append((destination, rows))
        self.tabs[destination].extend([stringify_cell(cell) for cell in row] for row in rows)
