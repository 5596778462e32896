"""Parser for OP (Osuuspankki) checking account CSV exports."""

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

OP_NAME = INSTITUTIONS[Institution.OP].name

MIN_COLUMNS = 10
DATE_FORMATS = ("%Y-%m-%d", "%d.%m.%Y")


async def parse_op_csv(contents: bytes) -> list[Transaction]:
    """
    Parse an OP checking account CSV export.

    OP CSV format (``;``-delimited, header row first):
    Kirjauspäivä;Arvopäivä;Määrä EUROA;Laji;Selitys;Saaja/Maksaja;Saajan tilinumero;
    Saajan pankin BIC;Viite;Viesti;Arkistointitunnus
    "2021-07-05";"2021-07-05";1700.00;"506";"TILISIIRTO";"NORDNET BANK AB";"";"";"";"Viesti: x";"20210705/5UTH01/023706"

    The value date (Arvopäivä) is authoritative, not the booking date.

    Raises:
        ParseError: If the file cannot be parsed
    """
    result = ParseResult(transactions=[])

    rows = read_delimited_rows(contents, OP_NAME, delimiter=";")

    # Skip the header row
    for row_number, row in enumerate(rows[1:], start=2):
        result.total_rows_processed += 1

        if len(row) < MIN_COLUMNS:
            result.rows_skipped += 1
            result.warnings.append(f"Row {row_number}: expected {MIN_COLUMNS} columns, got {len(row)}")
            continue

        value_date = parse_date(row[1], DATE_FORMATS)
        if value_date is None:
            raise ParseError(OP_NAME, f"Row {row_number}: invalid value date '{row[1]}'")

        try:
            amount = parse_decimal_comma(row[2])
        except ValueError:
            raise ParseError(OP_NAME, f"Row {row_number}: invalid amount '{row[2]}'")

        transaction = make_transaction(
            value_date,
            amount,
            payee=row[5].strip(),
            transaction_type=row[4].strip(),
            message=row[9].strip(),
        )
        result.transactions.append(transaction)

    ensure_rows_parsed(result, OP_NAME)
    log_parse_result(result, "OP CSV")

    return result.transactions
