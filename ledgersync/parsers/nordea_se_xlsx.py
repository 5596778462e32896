"""Parser for Nordea Sweden XLSX exports (SEK, converted to the reporting currency)."""

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
    parse_swedish_amount,
    read_spreadsheet,
    sort_chronologically,
)
from ledgersync.services.exchange_rate import CurrencyConverter, convert_transactions

NORDEA_SE_NAME = INSTITUTIONS[Institution.NORDEA_SE].name

REQUIRED_COLUMNS = ("Datum", "Transaktion", "Belopp")


async def parse_nordea_se_xlsx(contents: bytes, converter: CurrencyConverter | None = None) -> list[Transaction]:
    """
    Parse a Nordea Sweden XLSX export.

    Columns used: Datum (date), Transaktion (payee), Belopp (amount). Amounts
    are Swedish-formatted strings such as ``"-1.234,56"`` or plain numeric
    cells. Every row is converted from SEK; a failed conversion keeps the SEK
    amount for that row.

    Raises:
        ParseError: If the file cannot be parsed
    """
    records = await asyncio.to_thread(read_spreadsheet, contents, NORDEA_SE_NAME, REQUIRED_COLUMNS)

    result = ParseResult(transactions=[])

    # Row 1 is the header
    for row_number, record in enumerate(records, start=2):
        result.total_rows_processed += 1

        booked = coerce_cell_date(record["Datum"])
        if booked is None:
            raise ParseError(NORDEA_SE_NAME, f"Row {row_number}: invalid date '{record['Datum']}'")

        amount = _parse_amount(record["Belopp"])
        if amount is None:
            raise ParseError(NORDEA_SE_NAME, f"Row {row_number}: invalid amount '{record['Belopp']}'")

        result.transactions.append(make_transaction(booked, amount, payee=cell_text(record["Transaktion"])))

    ensure_rows_parsed(result, NORDEA_SE_NAME)

    await convert_transactions(result.transactions, converter, NORDEA_SE_NAME)

    result.transactions = sort_chronologically(result.transactions)
    log_parse_result(result, "Nordea SE XLSX")

    return result.transactions


def _parse_amount(value: object) -> float | None:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    try:
        return parse_swedish_amount(cell_text(value))
    except ValueError:
        return None
