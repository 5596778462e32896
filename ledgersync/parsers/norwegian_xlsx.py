"""Parser for Bank Norwegian credit card XLSX exports."""

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
)

NORWEGIAN_NAME = INSTITUTIONS[Institution.NORWEGIAN].name

REQUIRED_COLUMNS = ("TransactionDate", "Text", "Type", "Amount")

# Card authorisation hold; the same purchase reappears as "Osto" once settled
PENDING_TYPE = "Katevaraus"


async def parse_norwegian_xlsx(contents: bytes) -> list[Transaction]:
    """
    Parse a Bank Norwegian XLSX export.

    Columns used: TransactionDate (spreadsheet date serial or date cell),
    Text (payee), Type (transaction type), Merchant Category (message, optional),
    Amount (signed number).

    Raises:
        ParseError: If the file cannot be parsed
    """
    records = await asyncio.to_thread(read_spreadsheet, contents, NORWEGIAN_NAME, REQUIRED_COLUMNS)

    result = ParseResult(transactions=[])

    for row_number, record in enumerate(records, start=2):
        result.total_rows_processed += 1

        transaction_type = cell_text(record["Type"])
        if transaction_type == PENDING_TYPE:
            result.pending_filtered += 1
            continue

        if record["TransactionDate"] is None:
            result.rows_skipped += 1
            result.warnings.append(f"Row {row_number}: missing TransactionDate")
            continue

        booked = coerce_cell_date(record["TransactionDate"])
        if booked is None:
            raise ParseError(NORWEGIAN_NAME, f"Row {row_number}: invalid date '{record['TransactionDate']}'")

        amount = _parse_amount(record["Amount"])
        if amount is None:
            raise ParseError(NORWEGIAN_NAME, f"Row {row_number}: invalid amount '{record['Amount']}'")

        transaction = make_transaction(
            booked,
            amount,
            payee=cell_text(record["Text"]),
            transaction_type=transaction_type,
            message=cell_text(record.get("Merchant Category")),
        )
        result.transactions.append(transaction)

    ensure_rows_parsed(result, NORWEGIAN_NAME)
    log_parse_result(result, "Norwegian XLSX")

    return result.transactions


def _parse_amount(value: object) -> float | None:
    if value is None:
        return 0.0
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    try:
        return parse_decimal_comma(cell_text(value))
    except ValueError:
        return None
