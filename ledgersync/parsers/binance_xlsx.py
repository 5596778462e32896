"""Parser for Binance card XLSX exports."""

import asyncio

from ledgersync.exceptions import ParseError
from ledgersync.models import INSTITUTIONS, Institution, Transaction
from ledgersync.parsers.validation import (
    ParseResult,
    cell_text,
    coerce_cell_date,
    ensure_rows_parsed,
    log_parse_result,
    make_transaction,
    parse_decimal_comma,
    read_spreadsheet,
    sort_chronologically,
)

BINANCE_NAME = INSTITUTIONS[Institution.BINANCE].name

PAID_OUT_COLUMN = "Paid OUT (EUR)"
REQUIRED_COLUMNS = ("Timestamp", "Description", PAID_OUT_COLUMN)
PENDING_TYPE = "Katevaraus"
TIMESTAMP_FORMATS = ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d", "%d/%m/%Y %H:%M:%S", "%d/%m/%Y")


async def parse_binance_xlsx(contents: bytes) -> list[Transaction]:
    """
    Parse a Binance card XLSX export.

    Columns used: Timestamp (date), Description (payee), Paid OUT (EUR)
    (amount). The file lists spending as a positive "paid out" figure, so
    amounts are negated. Returned oldest first.

    Raises:
        ParseError: If the file cannot be parsed
    """
    records = await asyncio.to_thread(read_spreadsheet, contents, BINANCE_NAME, REQUIRED_COLUMNS)

    result = ParseResult(transactions=[])

    for row_number, record in enumerate(records, start=2):
        result.total_rows_processed += 1

        if cell_text(record.get("Type")) == PENDING_TYPE:
            result.pending_filtered += 1
            continue

        if record["Timestamp"] is None:
            result.rows_skipped += 1
            result.warnings.append(f"Row {row_number}: missing Timestamp")
            continue

        booked = coerce_cell_date(record["Timestamp"], TIMESTAMP_FORMATS)
        if booked is None:
            raise ParseError(BINANCE_NAME, f"Row {row_number}: invalid timestamp '{record['Timestamp']}'")

        paid_out = _parse_paid_out(record[PAID_OUT_COLUMN])
        if paid_out is None:
            raise ParseError(BINANCE_NAME, f"Row {row_number}: invalid amount '{record[PAID_OUT_COLUMN]}'")

        result.transactions.append(
            make_transaction(booked, 0.0 - paid_out, payee=cell_text(record["Description"]))
        )

    ensure_rows_parsed(result, BINANCE_NAME)

    result.transactions = sort_chronologically(result.transactions)
    log_parse_result(result, "Binance XLSX")

    return result.transactions


def _parse_paid_out(value: object) -> float | None:
    if value is None:
        return 0.0
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    try:
        return parse_decimal_comma(cell_text(value))
    except ValueError:
        return None
