"""Deduplication logic for ledger imports.

Existing ledger rows come back from the store with stringly-typed cells, so
every comparison goes through the normalizers below rather than comparing
``Transaction`` objects directly.
"""

import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Sequence

from ledgersync.models import Transaction, round_amount
from ledgersync.store.base import Cell

logger = logging.getLogger(__name__)

TRANSACTION_HEADERS = [
    "Month",
    "Year",
    "Date",
    "Amount",
    "AmountEur",
    "Payee",
    "TransactionType",
    "Message",
    "Category",
]

# Column positions in a ledger row
MONTH, YEAR, DATE, AMOUNT, AMOUNT_EUR, PAYEE, TRANSACTION_TYPE, MESSAGE, CATEGORY = range(9)

# Absent cells are serialized inconsistently by the store
EMPTY_MARKERS = frozenset({"", "undefined", "null"})

INT_PREFIX = re.compile(r"^\s*([+-]?\d+)")
FLOAT_PREFIX = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


def parse_int_cell(value: Any) -> int | None:
    """Leading integer of a cell (``"12abc"`` -> 12), or None when there is none."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value) if math.isfinite(value) else None
    match = INT_PREFIX.match(str(value))
    return int(match.group(1)) if match else None


def parse_float_cell(value: Any) -> float | None:
    """Leading decimal number of a cell, or None when there is none."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if not math.isnan(value) else None
    match = FLOAT_PREFIX.match(str(value))
    return float(match.group(1)) if match else None


def _cell_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


@dataclass(frozen=True)
class StoreRow:
    """One raw row as returned by a ledger store, before any interpretation."""

    cells: tuple[Cell, ...]

    @classmethod
    def from_cells(cls, cells: Sequence[Cell]) -> "StoreRow":
        return cls(tuple(cells))

    def cell(self, index: int) -> Cell:
        return self.cells[index] if index < len(self.cells) else None

    @property
    def is_blank(self) -> bool:
        return all(_cell_str(cell).strip() == "" for cell in self.cells)

    @property
    def looks_like_header(self) -> bool:
        """True when the month column is not 1..12 or the amount column is not numeric."""
        if len(self.cells) < 3:
            return False
        month = parse_int_cell(self.cell(MONTH))
        month_ok = month is not None and 1 <= month <= 12
        amount_ok = parse_float_cell(self.cell(AMOUNT)) is not None
        return not month_ok or not amount_ok

    def to_transaction(self) -> Transaction:
        """Decode with the same coercions the ledger has always used; category is ignored."""
        return Transaction(
            month=parse_int_cell(self.cell(MONTH)) or 0,
            year=parse_int_cell(self.cell(YEAR)) or 0,
            date=_cell_str(self.cell(DATE)),
            amount=parse_float_cell(self.cell(AMOUNT)) or 0.0,
            amount_eur=parse_float_cell(self.cell(AMOUNT_EUR)) or 0.0,
            payee=_cell_str(self.cell(PAYEE)),
            transaction_type=_cell_str(self.cell(TRANSACTION_TYPE)),
            message=normalize_optional_text(self.cell(MESSAGE), keep_case=True),
        )


@dataclass
class DecodedLedger:
    """Existing ledger contents split into header and data."""

    transactions: list[Transaction]
    header_present: bool
    needs_header: bool


def decode_store_rows(rows: Sequence[Sequence[Cell]]) -> DecodedLedger:
    """
    Decode raw store rows into transactions.

    A header is only looked for in the first row. Blank rows are skipped. A
    header has to be written only when the destination holds nothing at all.
    """
    store_rows = [StoreRow.from_cells(row) for row in rows]
    non_blank = [row for row in store_rows if not row.is_blank]

    if not non_blank:
        logger.debug("Destination is empty, header will be written")
        return DecodedLedger(transactions=[], header_present=False, needs_header=True)

    header_present = non_blank[0].looks_like_header
    data_rows = non_blank[1:] if header_present else non_blank

    logger.debug(
        f"Header {'detected, skipping first row' if header_present else 'not detected'}; "
        f"{len(data_rows)} data rows from {len(store_rows)} total rows"
    )
    return DecodedLedger(
        transactions=[row.to_transaction() for row in data_rows],
        header_present=header_present,
        needs_header=False,
    )


def header_row() -> list[Cell]:
    return list(TRANSACTION_HEADERS)


def encode_transactions(transactions: Sequence[Transaction]) -> list[list[Cell]]:
    """Transactions as ledger rows in column order."""
    return [
        [
            t.month,
            t.year,
            t.date,
            t.amount,
            t.amount_eur,
            t.payee,
            t.transaction_type,
            t.message,
            t.category or "",
        ]
        for t in transactions
    ]


def normalize_integer(value: Any) -> int:
    parsed = parse_int_cell(value)
    return parsed if parsed is not None else 0


def normalize_number(value: Any) -> float:
    parsed = parse_float_cell(value)
    return parsed if parsed is not None else 0.0


def normalize_amount(value: Any) -> float:
    return round_amount(normalize_number(value))


def normalize_text(value: Any) -> str:
    return _cell_str(value).strip().lower()


def normalize_optional_text(value: Any, keep_case: bool = False) -> str:
    """Text where ``"undefined"``/``"null"``/empty all mean absent."""
    text = _cell_str(value).strip()
    if text.lower() in EMPTY_MARKERS:
        return ""
    return text if keep_case else text.lower()


def dedup_key(transaction: Transaction) -> tuple:
    """Normalized comparison key; category is not part of it."""
    return (
        normalize_integer(transaction.month),
        normalize_integer(transaction.year),
        normalize_text(transaction.date),
        normalize_amount(transaction.amount),
        normalize_amount(transaction.amount_eur),
        normalize_text(transaction.payee),
        normalize_optional_text(transaction.transaction_type),
        normalize_optional_text(transaction.message),
    )


def transactions_equal(a: Transaction, b: Transaction) -> bool:
    """Whether two transactions describe the same ledger entry."""
    return dedup_key(a) == dedup_key(b)


def find_new_transactions(
    incoming: Sequence[Transaction], existing: Sequence[Transaction]
) -> list[Transaction]:
    """
    Return the incoming transactions that have no equal in ``existing``.

    Incoming order is preserved. Duplicates within ``incoming`` itself are
    kept, since two identical purchases on the same day are legitimate.
    """
    existing_keys = {dedup_key(t) for t in existing}

    new_transactions = []
    for transaction in incoming:
        if dedup_key(transaction) in existing_keys:
            logger.debug(f"Duplicate: {transaction.date} {transaction.payee} {transaction.amount}")
            continue
        new_transactions.append(transaction)

    logger.info(
        f"Found {len(new_transactions)} new transactions "
        f"({len(incoming) - len(new_transactions)} already in ledger)"
    )
    return new_transactions
