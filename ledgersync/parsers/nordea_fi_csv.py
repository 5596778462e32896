"""Parser for Nordea Finland CSV exports."""

from ledgersync.exceptions import ParseError
from ledgersync.models import INSTITUTIONS, Institution, Transaction
from ledgersync.parsers.validation import (
    ParseResult,
    ensure_rows_parsed,
    log_parse_result,
    make_transaction,
    parse_date,
    parse_decimal_comma,
    read_delimited_rows,
)

NORDEA_FI_NAME = INSTITUTIONS[Institution.NORDEA_FI].name

MIN_COLUMNS = 7
DATE_FORMATS = ("%Y/%m/%d", "%Y-%m-%d", "%d.%m.%Y")


async def parse_nordea_fi_csv(contents: bytes) -> list[Transaction]:
    """
    Parse a Nordea Finland CSV export.

    Nordea FI CSV format (``;``-delimited, header row first):
    Kirjauspäivä;Määrä;Maksaja;Maksunsaaja;Nimi;Otsikko;Viitenumero;Valuutta
    2024/02/08;-63,00;FI49 2212 xxxx xxxx;;;Korkeasti koulutettujen;;EUR;

    The export lists the newest transaction first; the result is returned
    oldest first.

    Raises:
        ParseError: If the file cannot be parsed
    """
    result = ParseResult(transactions=[])

    rows = read_delimited_rows(contents, NORDEA_FI_NAME, delimiter=";")

    # Skip the header row
    for row_number, row in enumerate(rows[1:], start=2):
        result.total_rows_processed += 1

        if len(row) < MIN_COLUMNS:
            result.rows_skipped += 1
            result.warnings.append(f"Row {row_number}: expected {MIN_COLUMNS} columns, got {len(row)}")
            continue

        booking_date = parse_date(row[0], DATE_FORMATS)
        if booking_date is None:
            raise ParseError(NORDEA_FI_NAME, f"Row {row_number}: invalid booking date '{row[0]}'")

        try:
            amount = parse_decimal_comma(row[1])
        except ValueError:
            raise ParseError(NORDEA_FI_NAME, f"Row {row_number}: invalid amount '{row[1]}'")

        # Title column carries the counterparty; the reference number doubles as message
        transaction = make_transaction(
            booking_date,
            amount,
            payee=row[5].strip(),
            message=row[6].strip(),
        )
        result.transactions.append(transaction)

    ensure_rows_parsed(result, NORDEA_FI_NAME)
    log_parse_result(result, "Nordea FI CSV")

    result.transactions.reverse()
    return result.transactions
